"""
Profiler orchestration helpers.

This package wraps the host's sampling profiler (`perf` on Linux, `dtrace` on
macOS): it builds the recording command, runs it so that Ctrl+C stops only the
profiled program, and folds the raw output into collapsed stacks
(`origin`function;... weight`) for the per-function report and the flamegraph.
On macOS `instruments` also records with Xcode Instruments (`xcrun xctrace`).
"""

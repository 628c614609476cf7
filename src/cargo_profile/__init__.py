"""Cargo profiling helper (Python orchestrator layer).

This package builds a cargo target, records it with the host's sampling
profiler (`perf` or `dtrace`), folds the raw samples into collapsed stacks and
turns them into a per-function time table and an SVG flamegraph.
"""

from __future__ import annotations

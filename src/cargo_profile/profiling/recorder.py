from __future__ import annotations

import shlex
import signal
import subprocess
from pathlib import Path

from ..errors import ProfilerProcessError

# Children killed by these are assumed to have been interrupted by the user.
_INTERRUPT_SIGNALS = frozenset({signal.SIGINT, signal.SIGTERM})


def command(root: bool, program: str) -> list[str]:
    """Return the argv prefix for `program`, run through sudo when `root` is set."""
    if root:
        return ["sudo", program]
    return [program]


def terminated_by_error(returncode: int) -> bool:
    """True if the child failed on its own (not success, not killed by SIGINT/SIGTERM)."""
    if returncode == 0:
        return False
    if returncode < 0 and -returncode in _INTERRUPT_SIGNALS:
        return False
    return True


def _keep_running_on_sigint(signum: int, frame: object) -> None:
    pass


def run_profiler(argv: list[str], *, cwd: Path | None = None) -> int:
    """Run a profiler (`perf record`, `dtrace`) to completion and return its exit code.

    Ctrl+C goes to the whole foreground process group. While the child runs
    this process handles SIGINT with a no-op so it keeps going and collects
    the samples; SIG_IGN would be inherited by the child, so a real handler is
    installed instead.
    """
    cmd_str = shlex.join(argv)
    previous = signal.signal(signal.SIGINT, _keep_running_on_sigint)
    try:
        try:
            proc = subprocess.Popen(argv, cwd=cwd)
        except OSError as e:
            raise ProfilerProcessError(f"failed to spawn ({e})", command=cmd_str) from e
        returncode = proc.wait()
    finally:
        signal.signal(signal.SIGINT, previous)

    if terminated_by_error(returncode):
        raise ProfilerProcessError(f"failed to sample program (exit {returncode})", command=cmd_str, returncode=returncode)
    return returncode

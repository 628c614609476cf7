from __future__ import annotations


class ProfileError(RuntimeError):
    """Base class for failures that abort a profiling run."""


class BuildError(ProfileError):
    def __init__(self, message: str, *, command: str) -> None:
        super().__init__(f"{message}\n{command}")
        self.command = command


class EmptyProfileError(ProfileError):
    """No usable samples: the collapsed input has a total time of zero."""

    def __init__(self, *, ignored: int = 0) -> None:
        msg = "profile contains no usable samples"
        if ignored:
            msg += f" ({ignored} malformed line(s) ignored)"
        super().__init__(msg)
        self.ignored = ignored


class ProfilerProcessError(ProfileError):
    def __init__(self, message: str, *, command: str, returncode: int | None = None) -> None:
        super().__init__(f"{message}: {command}")
        self.command = command
        self.returncode = returncode


class UnsupportedPlatformError(ProfileError):
    def __init__(self, system: str) -> None:
        super().__init__(f"no profiler backend available for platform {system!r} (supported: Linux/perf, Darwin/dtrace)")
        self.system = system

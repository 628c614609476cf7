from __future__ import annotations

import os
import platform
import shlex
import subprocess
from pathlib import Path
from typing import Protocol

from ..cargo import BinFile
from ..errors import ProfilerProcessError, UnsupportedPlatformError
from ..model import BackendName
from . import collapse
from .recorder import command

DEFAULT_FREQUENCY_HZ = 997


class ProfilerBackend(Protocol):
    name: BackendName

    def tool(self) -> str: ...

    def record_argv(self, *, root: bool, binary: BinFile, args: list[str], raw_dir: Path, freq: int) -> list[str]: ...

    def to_collapsed(self, *, root: bool, raw_dir: Path) -> str: ...


class PerfBackend:
    """Linux `perf record` with DWARF call graphs."""

    name: BackendName = "perf"
    data_filename = "perf.data"

    def tool(self) -> str:
        return os.environ.get("PERF") or "perf"

    def record_argv(self, *, root: bool, binary: BinFile, args: list[str], raw_dir: Path, freq: int) -> list[str]:
        return [
            *command(root, self.tool()),
            "record",
            "-F",
            str(freq),
            "--call-graph",
            "dwarf",
            "-g",
            "-o",
            str(raw_dir / self.data_filename),
            str(binary.path),
            *args,
        ]

    def script_argv(self, *, root: bool, raw_dir: Path) -> list[str]:
        return [*command(root, self.tool()), "script", "-i", str(raw_dir / self.data_filename)]

    def to_collapsed(self, *, root: bool, raw_dir: Path) -> str:
        argv = self.script_argv(root=root, raw_dir=raw_dir)
        try:
            proc = subprocess.run(argv, stdout=subprocess.PIPE, check=False, text=True, errors="replace")
        except OSError as e:
            raise ProfilerProcessError(f"failed to spawn ({e})", command=shlex.join(argv)) from e
        if proc.returncode != 0:
            raise ProfilerProcessError(
                f"failed to run `perf script` (exit {proc.returncode})", command=shlex.join(argv), returncode=proc.returncode
            )
        return collapse.fold_perf_script(proc.stdout)


class DtraceBackend:
    """macOS `dtrace` user-stack sampling."""

    name: BackendName = "dtrace"
    stacks_filename = "cargo-profile.stacks"

    def tool(self) -> str:
        return os.environ.get("DTRACE") or "dtrace"

    @staticmethod
    def script(freq: int) -> str:
        return f"profile-{freq} /pid == $target/ {{ @[ustack(100)] = count(); }}"

    def record_argv(self, *, root: bool, binary: BinFile, args: list[str], raw_dir: Path, freq: int) -> list[str]:
        return [
            *command(root, self.tool()),
            "-x",
            "ustackframes=100",
            "-n",
            self.script(freq),
            "-o",
            str(raw_dir / self.stacks_filename),
            "-c",
            shlex.join([str(binary.path), *args]),
        ]

    def to_collapsed(self, *, root: bool, raw_dir: Path) -> str:
        stacks_file = raw_dir / self.stacks_filename
        try:
            text = stacks_file.read_text(errors="replace")
        except OSError as e:
            raise ProfilerProcessError(
                f"failed to open stacks file generated by dtrace ({e})", command=str(stacks_file)
            ) from e
        return collapse.fold_dtrace(text)


_BACKENDS: dict[str, type[PerfBackend] | type[DtraceBackend]] = {
    "Linux": PerfBackend,
    "Darwin": DtraceBackend,
}


def detect_backend(system: str | None = None) -> ProfilerBackend:
    """Return the profiler backend for the host (or `system`, as reported by `platform.system()`)."""
    system = platform.system() if system is None else system
    backend_cls = _BACKENDS.get(system)
    if backend_cls is None:
        raise UnsupportedPlatformError(system)
    return backend_cls()

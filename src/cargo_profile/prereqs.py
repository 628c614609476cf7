from __future__ import annotations

import os
import platform
import shutil
from pathlib import Path

from .cargo import cargo_executable
from .errors import UnsupportedPlatformError
from .model import PrerequisiteCheck
from .profiling.backends import ProfilerBackend, detect_backend
from .profiling.instruments import xcrun_executable


def check_platform_supported(system: str | None = None) -> PrerequisiteCheck:
    system = platform.system() if system is None else system
    try:
        backend = detect_backend(system)
    except UnsupportedPlatformError as e:
        return PrerequisiteCheck(check_name="platform_supported", status="fail", details=str(e))
    return PrerequisiteCheck(check_name="platform_supported", status="pass", details=f"{system}: {backend.name}")


def _on_path(program: str) -> bool:
    return shutil.which(program) is not None


def check_cargo_available() -> PrerequisiteCheck:
    cargo = cargo_executable()
    if _on_path(cargo):
        return PrerequisiteCheck(check_name="cargo_available", status="pass")
    return PrerequisiteCheck(
        check_name="cargo_available",
        status="fail",
        details=f"`{cargo}` not found. Install Rust via rustup or set CARGO to the cargo executable.",
    )


def check_profiler_available(backend: ProfilerBackend) -> PrerequisiteCheck:
    tool = backend.tool()
    if _on_path(tool):
        return PrerequisiteCheck(check_name="profiler_available", status="pass")
    env_var = backend.name.upper()
    hint = "Install linux-perf (e.g. `apt install linux-tools-generic`)" if backend.name == "perf" else "dtrace ships with macOS"
    return PrerequisiteCheck(
        check_name="profiler_available",
        status="fail",
        details=f"`{tool}` not found. {hint}, or set {env_var} to the executable.",
    )


def check_sudo_available() -> PrerequisiteCheck:
    if _on_path("sudo"):
        return PrerequisiteCheck(check_name="sudo_available", status="pass")
    return PrerequisiteCheck(
        check_name="sudo_available", status="fail", details="`--root` requires `sudo` on PATH."
    )


def check_macos(system: str | None = None) -> PrerequisiteCheck:
    system = platform.system() if system is None else system
    if system == "Darwin":
        return PrerequisiteCheck(check_name="platform_supported", status="pass", details=f"{system}: xctrace")
    return PrerequisiteCheck(
        check_name="platform_supported", status="fail", details=f"Xcode Instruments needs macOS (got {system})."
    )


def check_xcrun_available() -> PrerequisiteCheck:
    xcrun = xcrun_executable()
    if _on_path(xcrun):
        return PrerequisiteCheck(check_name="profiler_available", status="pass")
    return PrerequisiteCheck(
        check_name="profiler_available",
        status="fail",
        details=f"`{xcrun}` not found. Install Xcode (or its command line tools), or set XCRUN to the executable.",
    )


def check_out_dir_writable(out_dir: Path) -> PrerequisiteCheck:
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        test = out_dir / f".write_test_{os.getpid()}"
        test.write_text("ok")
        test.unlink()
        return PrerequisiteCheck(check_name="out_dir_writable", status="pass")
    except OSError as e:
        return PrerequisiteCheck(check_name="out_dir_writable", status="fail", details=str(e))


def check_all(
    *, backend: ProfilerBackend | None, root: bool, out_dir: Path, system: str | None = None
) -> list[PrerequisiteCheck]:
    """Run every check; `backend` is None when the platform is unsupported."""
    checks = [check_platform_supported(system), check_cargo_available()]
    if backend is not None:
        checks.append(check_profiler_available(backend))
    if root:
        checks.append(check_sudo_available())
    checks.append(check_out_dir_writable(out_dir))
    return checks


def format_prereq_failures(checks: list[PrerequisiteCheck]) -> str:
    lines: list[str] = ["Missing prerequisites:"]
    for c in checks:
        if c.status != "fail":
            continue
        hint = f" - {c.details}" if c.details else ""
        lines.append(f"- {c.check_name}{hint}")
    return "\n".join(lines)

from __future__ import annotations

import os
import platform
import re
import shlex
import subprocess
from pathlib import Path

from ..cargo import BinFile
from ..errors import ProfilerProcessError

TRACE_SUFFIX = ".trace"
ENTITLEMENTS_FILENAME = "entitlements.plist"

# Lets xctrace attach to an ad-hoc signed binary on Apple silicon.
ENTITLEMENTS_PLIST = """\
<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
    <dict>
        <key>com.apple.security.get-task-allow</key>
        <true/>
    </dict>
</plist>
"""

_UNSAFE_RE = re.compile(r"[^A-Za-z0-9._-]+")


def xcrun_executable() -> str:
    return os.environ.get("XCRUN") or "xcrun"


def list_templates_argv() -> list[str]:
    return [xcrun_executable(), "xctrace", "list", "templates"]


def trace_path(out_dir: Path, binary: BinFile, template: str) -> Path:
    """`<out_dir>/<binary>_<template>.trace`, with the template made filesystem safe."""
    slug = _UNSAFE_RE.sub("-", template).strip("-").lower() or "trace"
    return out_dir / f"{binary.path.name}_{slug}{TRACE_SUFFIX}"


def record_argv(
    *, template: str, binary: BinFile, args: list[str], output: Path, time_limit_ms: int | None = None
) -> list[str]:
    argv = [xcrun_executable(), "xctrace", "record", "--template", template, "--output", str(output)]
    if time_limit_ms is not None:
        argv += ["--time-limit", f"{time_limit_ms}ms"]
    return [*argv, "--launch", "--", str(binary.path), *args]


def needs_codesign(machine: str | None = None) -> bool:
    machine = platform.machine() if machine is None else machine
    return machine.lower() in {"arm64", "aarch64"}


def codesign_argv(binary: Path, entitlements: Path) -> list[str]:
    return ["codesign", "-s", "-", "-f", "--entitlements", str(entitlements), str(binary)]


def _run_checked(argv: list[str], what: str) -> str:
    try:
        proc = subprocess.run(argv, capture_output=True, check=False, text=True, errors="replace")
    except OSError as e:
        raise ProfilerProcessError(f"failed to spawn ({e})", command=shlex.join(argv)) from e
    if proc.returncode != 0:
        details = "; ".join(
            f'{name}: "{text.strip()}"' for name, text in (("stdout", proc.stdout), ("stderr", proc.stderr)) if text.strip()
        )
        message = f"{what} failed (exit {proc.returncode})" + (f": {details}" if details else "")
        raise ProfilerProcessError(message, command=shlex.join(argv), returncode=proc.returncode)
    return proc.stdout


def codesign(binary: Path) -> Path:
    """Re-sign `binary` ad hoc with the get-task-allow entitlement; returns the plist path."""
    entitlements = binary.parent / ENTITLEMENTS_FILENAME
    entitlements.write_text(ENTITLEMENTS_PLIST)
    _run_checked(codesign_argv(binary, entitlements), "code signing")
    return entitlements


def list_templates() -> str:
    return _run_checked(list_templates_argv(), "xctrace list templates")


def open_trace(path: Path) -> None:
    """Open a trace in Instruments.app."""
    _run_checked(["open", str(path)], "open")

from __future__ import annotations

import json
import os
import shlex
import subprocess
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Literal

import attrs

from .errors import BuildError

TargetKind = Literal["bin", "bench", "test", "example", "examples"]

# Artifact target kinds that produce something runnable.
_EXECUTABLE_KINDS = {"bin", "test", "bench"}


@attrs.define(frozen=True, slots=True)
class CargoTarget:
    """What to build and how to run it.

    - `name`: `--bin`/`--example` name (required), or the optional `--bench`/`--test` name.
    - `lib`: pass `--lib` (bench/test only).
    - `all`: pass `--benches`/`--tests` (bench/test only).
    - `args`: arguments forwarded to the built executable.
    """

    kind: TargetKind
    name: str | None = None
    lib: bool = False
    all: bool = False
    args: tuple[str, ...] = ()

    def __attrs_post_init__(self) -> None:
        if self.kind in {"bin", "example"} and not self.name:
            raise ValueError(f"cargo target {self.kind!r} requires a name")

    @property
    def supports_release_flag(self) -> bool:
        # `cargo bench` always builds with the bench (release) profile.
        return self.kind != "bench"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "name": self.name, "lib": self.lib, "all": self.all, "args": list(self.args)}


@attrs.define(frozen=True, slots=True)
class BinFile:
    path: Path
    extra_files: tuple[Path, ...] = ()
    profile: dict[str, Any] = attrs.field(factory=dict, hash=False)


def cargo_executable() -> str:
    return os.environ.get("CARGO") or "cargo"


def build_cargo_argv(target: CargoTarget, *, release: bool, cargo: str | None = None) -> list[str]:
    argv = [cargo or cargo_executable()]
    if target.kind == "bin":
        argv += ["build", "--bin", str(target.name)]
    elif target.kind == "bench":
        argv += ["bench", "--no-run"]
        if target.lib:
            argv.append("--lib")
        if target.name:
            argv += ["--bench", target.name]
        if target.all:
            argv.append("--benches")
    elif target.kind == "test":
        argv += ["test", "--no-run"]
        if target.lib:
            argv.append("--lib")
        if target.name:
            argv += ["--test", target.name]
        if target.all:
            argv.append("--tests")
    elif target.kind == "example":
        argv += ["build", "--example", str(target.name)]
    elif target.kind == "examples":
        argv += ["build", "--examples"]
    else:
        raise AssertionError(f"Unhandled target kind: {target.kind}")

    if release and target.supports_release_flag:
        argv.append("--release")
    argv.append("--message-format=json")
    return argv


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def _binary_from_artifact(artifact: dict[str, Any]) -> BinFile | None:
    filenames = [Path(p) for p in artifact.get("filenames", []) or []]
    executable: Path | None = None
    declared = artifact.get("executable")
    if isinstance(declared, str) and declared:
        executable = Path(declared)
    else:
        for p in filenames:
            if _is_executable(p):
                executable = p
                break
    if executable is None:
        return None

    extra = tuple(p for p in filenames if p != executable)
    profile = artifact.get("profile")
    return BinFile(path=executable, extra_files=extra, profile=profile if isinstance(profile, dict) else {})


def parse_cargo_messages(lines: Iterable[str], *, command: str = "cargo") -> list[BinFile]:
    """Collect runnable binaries from cargo's `--message-format=json` stream.

    Compiler diagnostics are echoed to stderr. Raises BuildError when cargo
    reports `build-finished` with `success: false`.
    """
    binaries: list[BinFile] = []
    for line in lines:
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            msg = json.loads(line)
        except json.JSONDecodeError:
            continue
        reason = msg.get("reason")

        if reason == "compiler-message":
            message = msg.get("message", {}) or {}
            text = message.get("rendered") or message.get("message")
            if text:
                print(str(text).rstrip(), file=sys.stderr)
        elif reason == "compiler-artifact":
            kinds = set((msg.get("target", {}) or {}).get("kind", []) or [])
            if not kinds & _EXECUTABLE_KINDS:
                continue
            binary = _binary_from_artifact(msg)
            if binary is not None:
                binaries.append(binary)
        elif reason == "build-finished":
            if not msg.get("success", False):
                raise BuildError("Failed to compile binary using cargo", command=command)

    return sorted(binaries, key=lambda b: b.path)


def compile_target(target: CargoTarget, *, release: bool, cwd: Path | None = None) -> list[BinFile]:
    """Build `target` with cargo and return the produced executables (sorted by path)."""
    argv = build_cargo_argv(target, release=release)
    cmd_str = shlex.join(argv)

    try:
        proc = subprocess.Popen(argv, cwd=cwd, stdout=subprocess.PIPE, stderr=None, text=True)
    except OSError as e:
        raise BuildError(f"failed to spawn cargo ({e})", command=cmd_str) from e

    assert proc.stdout is not None
    try:
        binaries = parse_cargo_messages(proc.stdout, command=cmd_str)
    finally:
        proc.stdout.close()
        returncode = proc.wait()

    if returncode != 0:
        raise BuildError(f"cargo exited with code {returncode}", command=cmd_str)
    if not binaries:
        raise BuildError("cargo did not produce any useful binary", command=cmd_str)
    return binaries

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import attrs

RunStatus = Literal["pass", "fail"]
RunMode = Literal["flamegraph", "per-fn"]
BackendName = Literal["perf", "dtrace"]


@attrs.define(frozen=True, slots=True)
class PrerequisiteCheck:
    check_name: str
    status: RunStatus
    details: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"check_name": self.check_name, "status": self.status, "details": self.details}


@attrs.define(frozen=True, slots=True)
class BinaryArtifacts:
    binary: Path
    binary_dir: Path
    raw_dir: Path
    collapsed_path: Path
    record_command: str
    flamegraph_path: Path | None = None
    per_fn_json_path: Path | None = None
    per_fn_md_path: Path | None = None
    total_time: int | None = None
    ignored_lines: int | None = None

    def to_dict(self) -> dict[str, Any]:
        def _opt(p: Path | None) -> str | None:
            return None if p is None else str(p)

        return {
            "binary": str(self.binary),
            "binary_dir": str(self.binary_dir),
            "raw_dir": str(self.raw_dir),
            "collapsed_path": str(self.collapsed_path),
            "record_command": self.record_command,
            "flamegraph_path": _opt(self.flamegraph_path),
            "per_fn_json_path": _opt(self.per_fn_json_path),
            "per_fn_md_path": _opt(self.per_fn_md_path),
            "total_time": self.total_time,
            "ignored_lines": self.ignored_lines,
        }


@attrs.define(frozen=True, slots=True)
class ProfileRun:
    run_id: str
    started_at: str
    finished_at: str | None
    status: RunStatus
    failure_reason: str | None
    mode: RunMode
    backend: BackendName | None
    release: bool
    root: bool
    frequency_hz: int
    target: dict[str, Any]
    artifacts_dir: Path
    git: dict[str, Any]
    commands: dict[str, str]
    prerequisites: list[PrerequisiteCheck] = attrs.field(factory=list)
    binaries: list[BinaryArtifacts] = attrs.field(factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "status": self.status,
            "failure_reason": self.failure_reason,
            "mode": self.mode,
            "backend": self.backend,
            "release": self.release,
            "root": self.root,
            "frequency_hz": self.frequency_hz,
            "target": self.target,
            "artifacts_dir": str(self.artifacts_dir),
            "git": self.git,
            "commands": self.commands,
            "prerequisites": [c.to_dict() for c in self.prerequisites],
            "binaries": [b.to_dict() for b in self.binaries],
        }

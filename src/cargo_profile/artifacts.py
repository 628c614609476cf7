from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from mdutils.mdutils import MdUtils  # type: ignore[import-untyped]

from .model import BinaryArtifacts, ProfileRun
from .schema import validate_schema

METADATA_FILENAME = "metadata.json"
COLLAPSED_FILENAME = "stacks.folded"
FLAMEGRAPH_FILENAME = "flamegraph.svg"
PER_FN_JSON_FILENAME = "per_fn.json"
PER_FN_MD_FILENAME = "per_fn.md"


def ensure_new_run_dir(artifacts_dir: Path) -> None:
    """Raise FileExistsError if artifacts_dir already exists (prevents overwrites)."""
    if artifacts_dir.exists():
        raise FileExistsError(f"Refusing to overwrite existing run dir: {artifacts_dir}")


def create_run_dir(artifacts_dir: Path) -> Path:
    artifacts_dir.mkdir(parents=True, exist_ok=False)
    return artifacts_dir


def create_binary_dirs(artifacts_dir: Path, name: str) -> tuple[Path, Path]:
    """Create `<run>/<name>/` and its `raw/` subdirectory; returns both."""
    binary_dir = artifacts_dir / name
    raw_dir = binary_dir / "raw"
    raw_dir.mkdir(parents=True)
    return binary_dir, raw_dir


def metadata_payload(run: ProfileRun, *, binaries_built: list[Path] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"profile_run": run.to_dict()}
    if binaries_built is not None:
        payload["binaries_built"] = [str(p) for p in binaries_built]
    return payload


def write_metadata(metadata_path: Path, payload: dict[str, Any]) -> None:
    """Validate against `metadata.schema.json` and write (raises jsonschema.ValidationError)."""
    validate_schema(payload, "metadata")
    metadata_path.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n")


def _binary_outputs(b: BinaryArtifacts, run_dir: Path) -> list[str]:
    def rel(p: Path) -> str:
        try:
            return str(p.relative_to(run_dir))
        except ValueError:
            return str(p)

    items = [f"`{rel(b.raw_dir)}/`: raw profiler output", f"`{rel(b.collapsed_path)}`: collapsed stacks"]
    if b.flamegraph_path is not None:
        items.append(f"`{rel(b.flamegraph_path)}`: flamegraph (SVG)")
    if b.per_fn_json_path is not None:
        items.append(f"`{rel(b.per_fn_json_path)}`: per-function table (JSON)")
    if b.per_fn_md_path is not None:
        items.append(f"`{rel(b.per_fn_md_path)}`: per-function table (Markdown)")
    return items


def write_readme(run_dir: Path, run: ProfileRun) -> Path:
    """Write `README.md` describing the run; returns its path."""
    md = MdUtils(file_name=str(run_dir / "README"), title=f"cargo-profile run `{run.run_id}`")
    md.new_paragraph(f"Mode: `{run.mode}`; backend: `{run.backend}`; status: `{run.status}`.")
    if run.failure_reason:
        md.new_paragraph(f"Failure: {run.failure_reason}")
    md.new_header(level=1, title="Commands")
    md.new_list([f"{k}: `{v}`" for k, v in sorted(run.commands.items()) if v])
    for b in run.binaries:
        md.new_header(level=1, title=b.binary.name)
        md.new_paragraph(f"`{b.record_command}`")
        md.new_list(_binary_outputs(b, run_dir))
    md.new_header(level=1, title="Metadata")
    md.new_paragraph(f"`{METADATA_FILENAME}`: run metadata")
    md.create_md_file()
    return run_dir / "README.md"

from __future__ import annotations

import re
from pathlib import Path

OUT_SUBDIR = ("target", "cargo-profile")


def find_cargo_root(start: Path | None = None) -> Path | None:
    """Return the nearest directory at or above `start` holding a `Cargo.toml`.

    The outermost match wins so that a workspace member resolves to the
    workspace root (where cargo puts `target/`).
    """
    here = (start or Path.cwd()).resolve()
    found: Path | None = None
    for parent in (here, *here.parents):
        if (parent / "Cargo.toml").is_file():
            found = parent
    return found


def default_out_dir(start: Path | None = None) -> Path:
    root = find_cargo_root(start)
    base = root if root is not None else (start or Path.cwd()).resolve()
    return base.joinpath(*OUT_SUBDIR)


def sanitize_run_id(run_id: str) -> str:
    """Make run_id filesystem-safe and non-empty."""
    s = run_id.strip()
    if not s:
        raise ValueError("run_id must be non-empty")
    s = re.sub(r"[^A-Za-z0-9_.-]+", "-", s)
    s = s.strip("-.")
    if not s:
        raise ValueError("run_id must contain at least one alphanumeric character after sanitization")
    return s


def run_artifacts_dir(*, out_dir: Path, run_id: str) -> Path:
    return (out_dir / sanitize_run_id(run_id)).resolve()


def binary_dir_name(binary: Path, taken: set[str]) -> str:
    """Directory name for one profiled binary, unique within a run.

    Test and bench executables carry a `-<hash>` suffix from cargo; it is kept
    so two test targets with the same crate name do not collide.
    """
    base = sanitize_run_id(binary.name) if binary.name.strip("-. ") else "binary"
    name = base
    n = 2
    while name in taken:
        name = f"{base}-{n}"
        n += 1
    taken.add(name)
    return name

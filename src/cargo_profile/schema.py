from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator


def schema_path(name: str) -> Path:
    return Path(__file__).resolve().parent / "schemas" / f"{name}.schema.json"


def validate_schema(payload: dict[str, Any], name: str, *, path: Path | None = None) -> None:
    """Validate `payload` against a bundled JSON schema (raises jsonschema.ValidationError)."""
    schema = json.loads((schema_path(name) if path is None else path).read_text())
    Draft202012Validator(schema).validate(payload)

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, TextIO

from mdutils.mdutils import MdUtils  # type: ignore[import-untyped]

from ..schema import validate_schema
from .model import AggregationEntry, AggregationTable

HEADER = ("Total time", "Own time", "File name")
_COLUMN_WIDTH = 12


def rank_entries(table: AggregationTable) -> list[AggregationEntry]:
    """Entries by total time, highest first; ties by function name."""
    return sorted(table.entries, key=lambda e: (-e.total_used, e.function))


def _percent(value: int, total_time: int) -> float:
    return value / total_time * 100


def _format_percent(value: int, total_time: int) -> str:
    return f"{_percent(value, total_time):.1f}%"


def format_report(table: AggregationTable, *, top: int | None = None) -> str:
    lines = [f"{HEADER[0]:<{_COLUMN_WIDTH}}{HEADER[1]:<{_COLUMN_WIDTH}}{HEADER[2]}"]
    ranked = rank_entries(table)
    if top is not None:
        ranked = ranked[:top]
    for e in ranked:
        total = _format_percent(e.total_used, table.total_time)
        own = _format_percent(e.self_used, table.total_time)
        lines.append(f"{total:<{_COLUMN_WIDTH}}{own:<{_COLUMN_WIDTH}}{e.function}")
    return "\n".join(lines)


def print_report(table: AggregationTable, *, top: int | None = None, file: TextIO | None = None) -> None:
    print(format_report(table, top=top), file=file or sys.stdout)


def report_to_dict(table: AggregationTable) -> dict[str, Any]:
    return {
        "total_time": table.total_time,
        "ignored_lines": table.ignored,
        "functions": [
            {
                **e.to_dict(),
                "total_pct": round(_percent(e.total_used, table.total_time), 3),
                "self_pct": round(_percent(e.self_used, table.total_time), 3),
            }
            for e in rank_entries(table)
        ],
    }


def write_report_json(table: AggregationTable, path: Path) -> None:
    payload = report_to_dict(table)
    validate_schema(payload, "per_fn")
    path.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n")


def write_markdown_report(table: AggregationTable, path: Path, *, title: str = "Per-function CPU time") -> Path:
    """Write the ranked table as Markdown. Returns the `.md` path written."""
    md = MdUtils(file_name=str(path.with_suffix("")), title=title)
    md.new_paragraph(f"Total samples: `{table.total_time}`; malformed lines ignored: `{table.ignored}`.")
    ranked = rank_entries(table)
    cells: list[str] = [*HEADER]
    for e in ranked:
        # Pipes would break the Markdown table.
        name = e.function.replace("|", "\\|")
        cells += [
            _format_percent(e.total_used, table.total_time),
            _format_percent(e.self_used, table.total_time),
            f"`{name}`",
        ]
    md.new_table(columns=3, rows=len(ranked) + 1, text=cells, text_align="left")
    md.create_md_file()
    return path.with_suffix(".md")

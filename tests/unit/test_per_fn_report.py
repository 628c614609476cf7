from __future__ import annotations

import io
import json
from pathlib import Path

from cargo_profile.per_fn import analyze
from cargo_profile.per_fn.report import (
    format_report,
    print_report,
    rank_entries,
    report_to_dict,
    write_markdown_report,
    write_report_json,
)
from cargo_profile.schema import validate_schema

SCENARIO = "m`a;m`b 10\nm`a;m`c 5\n"


def test_format_report_layout() -> None:
    assert format_report(analyze(SCENARIO)).splitlines() == [
        "Total time  Own time    File name",
        "100.0%      0.0%        a",
        "66.7%       66.7%       b",
        "33.3%       33.3%       c",
    ]


def test_ties_are_ordered_by_name() -> None:
    table = analyze("m`b 5\nm`a 5\n")
    assert [e.function for e in rank_entries(table)] == ["a", "b"]


def test_top_limits_rows() -> None:
    lines = format_report(analyze(SCENARIO), top=1).splitlines()
    assert len(lines) == 2
    assert lines[1].endswith("a")


def test_print_report_writes_to_file() -> None:
    buf = io.StringIO()
    print_report(analyze(SCENARIO), file=buf)
    assert buf.getvalue().startswith("Total time")
    assert buf.getvalue().endswith("c\n")


def test_report_to_dict_validates() -> None:
    payload = report_to_dict(analyze(SCENARIO + "junk\n"))
    validate_schema(payload, "per_fn")
    assert payload["total_time"] == 15
    assert payload["ignored_lines"] == 1
    assert payload["functions"][1] == {
        "function": "b",
        "total_used": 10,
        "self_used": 10,
        "total_pct": 66.667,
        "self_pct": 66.667,
    }


def test_write_report_json(tmp_path: Path) -> None:
    out = tmp_path / "per_fn.json"
    write_report_json(analyze(SCENARIO), out)
    data = json.loads(out.read_text())
    assert [f["function"] for f in data["functions"]] == ["a", "b", "c"]


def test_write_markdown_report(tmp_path: Path) -> None:
    md_path = write_markdown_report(analyze("m`a|b 3\nm`c 1\n"), tmp_path / "per_fn.md", title="CPU")
    assert md_path == tmp_path / "per_fn.md"
    text = md_path.read_text()
    assert "Total time" in text
    assert "a\\|b" in text
    assert "`c`" in text

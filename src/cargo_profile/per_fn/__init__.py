"""
Per-function CPU time from collapsed stacks.

Pipeline: `parse_collapsed` -> `merge_frames` -> `aggregate` -> `format_report`.
Each stage is a pure transformation over in-memory data; `analyze` runs the
first three once.
"""

from __future__ import annotations

from collections.abc import Iterable

from .aggregate import aggregate
from .merge import merge_frames
from .model import AggregationEntry, AggregationTable
from .parser import parse_collapsed
from .report import format_report, print_report

__all__ = [
    "AggregationEntry",
    "AggregationTable",
    "aggregate",
    "analyze",
    "format_report",
    "merge_frames",
    "parse_collapsed",
    "print_report",
]


def analyze(text: str | Iterable[str]) -> AggregationTable:
    """Parse, materialize and aggregate collapsed-stack text.

    Raises EmptyProfileError when no sample carries any weight.
    """
    return aggregate(merge_frames(parse_collapsed(text)))

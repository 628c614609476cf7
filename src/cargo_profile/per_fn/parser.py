from __future__ import annotations

import re
from collections.abc import Iterable

from .model import CollapsedSample, FrameLocation, ParsedProfile, SymbolTable

PATH_SEPARATOR = ";"
ORIGIN_SEPARATOR = "`"

# `<stack> <weight>`: the weight is the trailing whitespace-separated digit run.
_LINE_RE = re.compile(r"^(?P<stack>.*\S)\s+(?P<weight>[0-9]+)$")


def split_line(line: str) -> tuple[list[str], int] | None:
    """Split one collapsed line into function names (root first) and its weight.

    Returns None when the line is malformed: no trailing weight, or a label that
    does not decompose into exactly `origin` and `function` around the backtick.
    """
    m = _LINE_RE.match(line.strip())
    if m is None:
        return None

    functions: list[str] = []
    for label in m.group("stack").split(PATH_SEPARATOR):
        parts = label.split(ORIGIN_SEPARATOR)
        if len(parts) != 2 or not parts[1]:
            return None
        functions.append(parts[1])
    return functions, int(m.group("weight"))


def _iter_lines(text: str | Iterable[str]) -> Iterable[str]:
    if isinstance(text, str):
        return text.splitlines()
    return text


def parse_collapsed(text: str | Iterable[str]) -> ParsedProfile:
    """Parse collapsed-stack text into samples.

    Blank lines are skipped. Malformed lines are dropped and counted in
    `ParsedProfile.ignored`; they never raise.
    """
    symbols = SymbolTable()
    samples: list[CollapsedSample] = []
    ignored = 0

    for line in _iter_lines(text):
        if not line.strip():
            continue
        split = split_line(line)
        if split is None:
            ignored += 1
            continue
        functions, weight = split
        frames = tuple(FrameLocation(function=symbols.intern(name), depth=depth) for depth, name in enumerate(functions))
        samples.append(CollapsedSample(frames=frames, weight=weight))

    return ParsedProfile(samples=tuple(samples), ignored=ignored, symbols=symbols)

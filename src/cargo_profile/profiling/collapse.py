"""
Fold raw profiler output into collapsed stacks.

Every emitted label has the form `origin`function` so the per-function parser
accepts it: the origin is the binary/library the frame belongs to, the
function has its `+0x..` offset removed. Identical stacks are summed and the
result is sorted, one `label;label;... count` line per distinct stack.
"""

from __future__ import annotations

import os
import re
from collections import Counter
from collections.abc import Iterable

UNKNOWN_ORIGIN = "[unknown]"

_OFFSET_RE = re.compile(r"\+0x[0-9a-fA-F]+$")
# `    55d4c3b1a2f0 foo::bar+0x10 (/path/to/prog)`
_PERF_FRAME_RE = re.compile(r"^\s*(?P<addr>[0-9a-fA-F]+)\s+(?P<sym>.+?)\s+\((?P<dso>[^()]*)\)\s*$")


def _strip_offset(symbol: str) -> str:
    return _OFFSET_RE.sub("", symbol.strip())


def _tidy(part: str) -> str:
    # Demangled Rust symbols may contain `;` (`<[u8; 32] as Debug>::fmt`).
    return part.replace(";", ":").replace("`", "'")


def _label(origin: str, function: str) -> str:
    return f"{_tidy(origin) or UNKNOWN_ORIGIN}`{_tidy(function) or UNKNOWN_ORIGIN}"


def _render(stacks: Counter[tuple[str, ...]]) -> str:
    lines = [f"{';'.join(stack)} {count}" for stack, count in sorted(stacks.items()) if stack]
    return "\n".join(lines) + ("\n" if lines else "")


def _perf_frame_label(line: str) -> str:
    m = _PERF_FRAME_RE.match(line)
    if m is None:
        # Bare `addr` or `addr sym` without a dso.
        parts = line.split(None, 1)
        sym = parts[1] if len(parts) > 1 else parts[0]
        return _label(UNKNOWN_ORIGIN, _strip_offset(sym))
    dso = m.group("dso").strip()
    origin = UNKNOWN_ORIGIN if dso in {"", "unknown", "[unknown]"} else os.path.basename(dso)
    return _label(origin, _strip_offset(m.group("sym")))


def fold_perf_script(text: str | Iterable[str]) -> str:
    """Fold `perf script` output.

    Each event is a header line followed by frame lines (leaf first) and a
    blank line. The header is recognized by position only: perf right-aligns
    the command name, so it may be indented like the frames.
    """
    lines = text.splitlines() if isinstance(text, str) else text
    stacks: Counter[tuple[str, ...]] = Counter()
    frames: list[str] = []
    in_event = False

    def _flush() -> None:
        if frames:
            stacks[tuple(reversed(frames))] += 1
        frames.clear()

    for raw in lines:
        line = raw.rstrip("\n")
        if not line.strip():
            _flush()
            in_event = False
            continue
        if line.startswith("#"):
            continue
        if not in_event:
            in_event = True
            continue
        frames.append(_perf_frame_label(line))

    _flush()
    return _render(stacks)


def _dtrace_frame_label(frame: str) -> str:
    if "`" in frame:
        module, _, symbol = frame.partition("`")
        return _label(module.strip(), _strip_offset(symbol))
    return _label(UNKNOWN_ORIGIN, _strip_offset(frame))


def fold_dtrace(text: str | Iterable[str]) -> str:
    """Fold the output of a dtrace `@[ustack()] = count()` aggregation.

    Frames are listed leaf first and each stack ends with its count line.
    """
    lines = text.splitlines() if isinstance(text, str) else text
    stacks: Counter[tuple[str, ...]] = Counter()
    frames: list[str] = []

    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("CPU") or line.startswith("dtrace:"):
            continue
        if line.isdigit():
            if frames:
                stacks[tuple(reversed(frames))] += int(line)
            frames = []
            continue
        frames.append(_dtrace_frame_label(line))

    return _render(stacks)

from __future__ import annotations

from typing import Any

import attrs


class SymbolTable:
    """Interns function names into small integer ids for one run."""

    __slots__ = ("_ids", "_names")

    def __init__(self) -> None:
        self._ids: dict[str, int] = {}
        self._names: list[str] = []

    def intern(self, name: str) -> int:
        fid = self._ids.get(name)
        if fid is None:
            fid = len(self._names)
            self._ids[name] = fid
            self._names.append(name)
        return fid

    def name(self, fid: int) -> str:
        return self._names[fid]

    def lookup(self, name: str) -> int | None:
        return self._ids.get(name)

    def __len__(self) -> int:
        return len(self._names)


@attrs.define(frozen=True, slots=True)
class FrameLocation:
    function: int
    depth: int


@attrs.define(frozen=True, slots=True)
class FrameInterval:
    location: FrameLocation
    start_time: int
    end_time: int

    @property
    def duration(self) -> int:
        return self.end_time - self.start_time

    @property
    def depth(self) -> int:
        return self.location.depth

    def contains(self, other: FrameInterval) -> bool:
        return self.start_time <= other.start_time and other.end_time <= self.end_time


@attrs.define(frozen=True, slots=True)
class CollapsedSample:
    frames: tuple[FrameLocation, ...]
    weight: int

    @property
    def path(self) -> tuple[int, ...]:
        return tuple(loc.function for loc in self.frames)


@attrs.define(frozen=True, slots=True)
class ParsedProfile:
    samples: tuple[CollapsedSample, ...]
    ignored: int
    symbols: SymbolTable = attrs.field(eq=False)


@attrs.define(frozen=True, slots=True)
class MergedFrames:
    frames: tuple[FrameInterval, ...]
    total_time: int
    ignored: int
    symbols: SymbolTable = attrs.field(eq=False)


@attrs.define(frozen=True, slots=True)
class AggregationEntry:
    function: str
    total_used: int
    self_used: int

    def to_dict(self) -> dict[str, Any]:
        return {"function": self.function, "total_used": self.total_used, "self_used": self.self_used}


@attrs.define(frozen=True, slots=True)
class AggregationTable:
    total_time: int
    ignored: int
    entries: tuple[AggregationEntry, ...]

    def get(self, function: str) -> AggregationEntry | None:
        for e in self.entries:
            if e.function == function:
                return e
        return None

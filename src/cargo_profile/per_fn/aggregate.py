from __future__ import annotations

from bisect import bisect_left, bisect_right
from collections.abc import Iterator

from ..errors import EmptyProfileError
from .model import AggregationEntry, AggregationTable, FrameInterval, MergedFrames


class DepthIndex:
    """Intervals grouped by depth and sorted by start time.

    Intervals at one depth never overlap, so the children of a frame are a
    contiguous run of the next depth's list, found with two binary searches.
    """

    def __init__(self, frames: tuple[FrameInterval, ...]) -> None:
        by_depth: dict[int, list[FrameInterval]] = {}
        for f in frames:
            by_depth.setdefault(f.depth, []).append(f)
        self._frames: dict[int, list[FrameInterval]] = {}
        self._starts: dict[int, list[int]] = {}
        for depth, items in by_depth.items():
            items.sort(key=lambda f: (f.start_time, f.end_time))
            self._frames[depth] = items
            self._starts[depth] = [f.start_time for f in items]

    def children(self, parent: FrameInterval) -> Iterator[FrameInterval]:
        depth = parent.depth + 1
        starts = self._starts.get(depth)
        if not starts:
            return
        items = self._frames[depth]
        lo = bisect_left(starts, parent.start_time)
        hi = bisect_right(starts, parent.end_time)
        for child in items[lo:hi]:
            if parent.contains(child):
                yield child


def aggregate(merged: MergedFrames) -> AggregationTable:
    """Compute per-function total and self time from materialized frames.

    Raises EmptyProfileError when the profile's total time is zero.
    """
    if merged.total_time == 0:
        raise EmptyProfileError(ignored=merged.ignored)

    n = len(merged.symbols)
    total_used = [0] * n
    self_used = [0] * n
    present = [False] * n

    index = DepthIndex(merged.frames)
    for f in merged.frames:
        fid = f.location.function
        duration = f.duration
        total_used[fid] += duration
        self_used[fid] += duration - sum(c.duration for c in index.children(f))
        present[fid] = True

    entries = tuple(
        AggregationEntry(function=merged.symbols.name(fid), total_used=total_used[fid], self_used=self_used[fid])
        for fid in range(n)
        if present[fid]
    )
    return AggregationTable(total_time=merged.total_time, ignored=merged.ignored, entries=entries)

from __future__ import annotations

from cargo_profile.per_fn.merge import merge_frames
from cargo_profile.per_fn.model import MergedFrames
from cargo_profile.per_fn.parser import parse_collapsed


def _intervals(merged: MergedFrames) -> set[tuple[str, int, int, int]]:
    return {(merged.symbols.name(f.location.function), f.depth, f.start_time, f.end_time) for f in merged.frames}


def test_shared_root_is_one_interval() -> None:
    merged = merge_frames(parse_collapsed("m`a;m`b 10\nm`a;m`c 5\n"))
    assert merged.total_time == 15
    assert _intervals(merged) == {("a", 0, 0, 15), ("b", 1, 0, 10), ("c", 1, 10, 15)}


def test_identical_paths_coalesce_regardless_of_input_order() -> None:
    merged = merge_frames(parse_collapsed("m`a 3\nm`b 1\nm`a 2\n"))
    assert merged.total_time == 6
    assert _intervals(merged) == {("a", 0, 0, 5), ("b", 0, 5, 6)}


def test_order_is_deterministic() -> None:
    text = "m`b;m`x 2\nm`a 1\nm`b;m`y 4\n"
    assert merge_frames(parse_collapsed(text)).frames == merge_frames(parse_collapsed(text)).frames


def test_empty_input() -> None:
    merged = merge_frames(parse_collapsed(""))
    assert merged.frames == ()
    assert merged.total_time == 0


def test_ignored_is_carried_through() -> None:
    assert merge_frames(parse_collapsed("junk\nm`a 1\n")).ignored == 1


def test_interval_invariants() -> None:
    text = "\n".join(
        [
            "m`main;m`run;m`parse 4",
            "m`main;m`run;m`eval;m`add 3",
            "m`main;m`run;m`eval 2",
            "m`main;m`idle 5",
            "m`other;m`run 1",
            "m`main;m`run;m`parse 6",
        ]
    )
    merged = merge_frames(parse_collapsed(text))

    roots = [f for f in merged.frames if f.depth == 0]
    assert sum(f.duration for f in roots) == merged.total_time == 21

    by_depth: dict[int, list] = {}
    for f in merged.frames:
        by_depth.setdefault(f.depth, []).append(f)
    for items in by_depth.values():
        items.sort(key=lambda f: f.start_time)
        for left, right in zip(items, items[1:]):
            assert left.end_time <= right.start_time

    for f in merged.frames:
        if f.depth == 0:
            continue
        parents = [p for p in by_depth[f.depth - 1] if p.contains(f)]
        assert len(parents) == 1

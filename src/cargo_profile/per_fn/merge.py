from __future__ import annotations

from .model import CollapsedSample, FrameInterval, FrameLocation, MergedFrames, ParsedProfile, SymbolTable


def _sample_order(samples: tuple[CollapsedSample, ...], symbols: SymbolTable) -> list[CollapsedSample]:
    """Stable sort by call path (function names, root first).

    Identical paths become adjacent so they are materialized as one interval.
    """
    return sorted(samples, key=lambda s: tuple(symbols.name(fid) for fid in s.path))


def _shared_prefix(open_frames: list[tuple[int, int]], path: tuple[int, ...]) -> int:
    n = 0
    for (fid, _start), other in zip(open_frames, path):
        if fid != other:
            break
        n += 1
    return n


def _close_frames(open_frames: list[tuple[int, int]], *, keep: int, at: int, out: list[FrameInterval]) -> None:
    while len(open_frames) > keep:
        depth = len(open_frames) - 1
        fid, start = open_frames.pop()
        out.append(FrameInterval(location=FrameLocation(function=fid, depth=depth), start_time=start, end_time=at))


def merge_frames(parsed: ParsedProfile) -> MergedFrames:
    """Place every sample on a shared synthetic timeline, coalescing shared call paths.

    The cursor starts at 0 and advances by each sample's weight. A frame that
    continues the previous sample's path (same function at the same depth, all
    ancestors shared) stays open and grows; the rest of the previous path is
    closed at the cursor. Intervals are emitted in closing order.
    """
    frames: list[FrameInterval] = []
    open_frames: list[tuple[int, int]] = []
    cursor = 0

    for sample in _sample_order(parsed.samples, parsed.symbols):
        path = sample.path
        keep = _shared_prefix(open_frames, path)
        _close_frames(open_frames, keep=keep, at=cursor, out=frames)
        for fid in path[keep:]:
            open_frames.append((fid, cursor))
        cursor += sample.weight

    _close_frames(open_frames, keep=0, at=cursor, out=frames)
    return MergedFrames(frames=tuple(frames), total_time=cursor, ignored=parsed.ignored, symbols=parsed.symbols)

"""
SVG flamegraph rendering for collapsed stacks.

Frames are laid out bottom-up (root at the bottom), children sorted by weight
so the widest stacks sit on the left. Rendering uses `svgwrite`; the layout
follows the classic FlameGraph look (hashed warm colours, hover titles).
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from pathlib import Path

import attrs
import svgwrite

from .errors import EmptyProfileError
from .per_fn.model import ParsedProfile
from .per_fn.parser import parse_collapsed

FRAME_HEIGHT = 16
FRAME_GAP = 1
PADDING = 10
TITLE_HEIGHT = 24
FONT_SIZE = 12
DEFAULT_WIDTH = 1200


@attrs.define(slots=True)
class FlameNode:
    name: str
    value: int = 0
    children: dict[str, FlameNode] = attrs.field(factory=dict)

    def child(self, name: str) -> FlameNode:
        node = self.children.get(name)
        if node is None:
            node = FlameNode(name)
            self.children[name] = node
        return node

    def depth(self) -> int:
        if not self.children:
            return 0
        return 1 + max(c.depth() for c in self.children.values())


def build_tree(parsed: ParsedProfile) -> FlameNode:
    root = FlameNode("all")
    for sample in parsed.samples:
        root.value += sample.weight
        node = root
        for fid in sample.path:
            node = node.child(parsed.symbols.name(fid))
            node.value += sample.weight
    return root


def color_for(name: str) -> str:
    digest = hashlib.sha1(name.encode("utf-8")).digest()
    r = 205 + digest[0] % 50
    g = digest[1] % 230
    b = digest[2] % 55
    return f"rgb({r},{g},{b})"


def _fit_label(name: str, width: float) -> str | None:
    max_chars = int((width - 6) / (FONT_SIZE * 0.59))
    if max_chars < 3:
        return None
    if len(name) > max_chars:
        return name[: max_chars - 2] + ".."
    return name


def render_flamegraph(parsed: ParsedProfile, *, width: int = DEFAULT_WIDTH, title: str = "Flame Graph") -> svgwrite.Drawing:
    root = build_tree(parsed)
    levels = root.depth() + 1
    height = TITLE_HEIGHT + levels * (FRAME_HEIGHT + FRAME_GAP) + 2 * PADDING

    dwg = svgwrite.Drawing(size=(width, height), profile="full")
    dwg.add(dwg.rect(insert=(0, 0), size=(width, height), fill="#eeeeee"))
    dwg.add(
        dwg.text(title, insert=(width / 2, PADDING + FONT_SIZE + 2), text_anchor="middle", font_size=FONT_SIZE + 5, font_family="Verdana")
    )

    scale = (width - 2 * PADDING) / root.value if root.value else 0.0
    frames = dwg.add(dwg.g(font_family="Verdana", font_size=FONT_SIZE))

    def emit(node: FlameNode, level: int, x: float) -> None:
        w = node.value * scale
        if w < 0.1:
            return
        y = height - PADDING - (level + 1) * (FRAME_HEIGHT + FRAME_GAP)
        pct = node.value / root.value * 100
        g = frames.add(dwg.g(class_="frame"))
        rect = dwg.rect(insert=(x, y), size=(w, FRAME_HEIGHT), rx=2, ry=2, fill=color_for(node.name))
        rect.set_desc(title=f"{node.name} ({node.value} samples, {pct:.2f}%)")
        g.add(rect)
        label = _fit_label(node.name, w)
        if label is not None:
            g.add(dwg.text(label, insert=(x + 3, y + FRAME_HEIGHT - 4)))

        child_x = x
        for c in sorted(node.children.values(), key=lambda n: (-n.value, n.name)):
            emit(c, level + 1, child_x)
            child_x += c.value * scale

    if root.value:
        emit(root, 0, PADDING)
    return dwg


def save_flamegraph(parsed: ParsedProfile, path: Path, *, width: int = DEFAULT_WIDTH, title: str = "Flame Graph") -> Path:
    if not any(s.weight for s in parsed.samples):
        raise EmptyProfileError(ignored=parsed.ignored)
    dwg = render_flamegraph(parsed, width=width, title=title)
    path.parent.mkdir(parents=True, exist_ok=True)
    dwg.saveas(str(path))
    return path


def write_flamegraph(text: str | Iterable[str], path: Path, *, width: int = DEFAULT_WIDTH, title: str = "Flame Graph") -> Path:
    """Parse collapsed-stack text and save its flamegraph as SVG at `path`.

    Raises EmptyProfileError when no sample carries any weight.
    """
    return save_flamegraph(parse_collapsed(text), path, width=width, title=title)

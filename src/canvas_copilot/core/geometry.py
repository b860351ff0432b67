"""placement of new content relative to the selection, and fit metrics."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .models import ElementKind, Rect, SelectionRegion


# --- configuration ---

GAP = 20              # vertical gap between selection and inserted content
DEFAULT_MARGIN = 20   # offset from the document origin when nothing anchors placement

DEFAULT_SIZES = {
    ElementKind.NOTE: (800, 95),
    ElementKind.EMBED_HTML: (400, 200),
    ElementKind.IMAGE: (512, 512),
}

# text metrics for fit-sizing tree shapes
CHAR_WIDTH = 8
LINE_HEIGHT = 20
PADDING_X = 16
PADDING_Y = 10
MIN_NODE_WIDTH = 48

# spacing between tree levels and siblings
H_GAP = 60
V_GAP = 36


@dataclass
class Viewport:
    """model <-> view transform for a zoomed, panned canvas."""

    x: float = 0.0      # model coordinate at the view's left edge
    y: float = 0.0      # model coordinate at the view's top edge
    zoom: float = 1.0

    def to_view_coord(self, x: float, y: float) -> tuple[float, float]:
        return ((x - self.x) * self.zoom, (y - self.y) * self.zoom)

    def to_model_coord(self, x: float, y: float) -> tuple[float, float]:
        return (x / self.zoom + self.x, y / self.zoom + self.y)


class GeometryResolver:
    """computes model-space rectangles for inserted content."""

    def __init__(self, viewport: Optional[Viewport] = None):
        self.viewport = viewport or Viewport()

    def place_below(
        self,
        region: Optional[SelectionRegion],
        size: Optional[tuple[float, float]] = None,
        kind: Optional[ElementKind] = None,
    ) -> Rect:
        """rect directly below the region, GAP units down."""
        w, h = size or DEFAULT_SIZES.get(kind, DEFAULT_SIZES[ElementKind.NOTE])
        if region is None:
            return Rect(DEFAULT_MARGIN, DEFAULT_MARGIN, w, h)
        return Rect(region.x, region.y + region.height + GAP, w, h)

    def anchor_point(self, region: Optional[SelectionRegion]) -> Optional[tuple[float, float]]:
        if region is None:
            return None
        return (region.x, region.y)

    def to_view_coord(self, x: float, y: float) -> tuple[float, float]:
        return self.viewport.to_view_coord(x, y)


def measure_text(text: str) -> tuple[float, float]:
    """size of a shape that fits text, padding included."""
    lines = text.split("\n") if text else [""]
    longest = max(len(line) for line in lines)
    width = max(MIN_NODE_WIDTH, longest * CHAR_WIDTH + 2 * PADDING_X)
    height = len(lines) * LINE_HEIGHT + 2 * PADDING_Y
    return (width, height)


def branch_size(own: tuple[float, float], children: list[tuple[float, float]]) -> tuple[float, float]:
    """extent of a subtree given its shape size and its children's extents."""
    w, h = own
    if not children:
        return (w, h)
    stacked = sum(ch for _, ch in children) + V_GAP * (len(children) - 1)
    widest = max(cw for cw, _ in children)
    return (w + H_GAP + widest, max(h, stacked))

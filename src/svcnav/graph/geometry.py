"""
Connector geometry for the column view.

``compute_connectors`` is pure: it takes tile rectangles already measured in
viewport coordinates, the scroll container's rectangle and scroll offset, and
returns SVG path data in content coordinates. ``ConnectorOverlay`` is the thin
adapter that performs the measurement and re-runs the computation whenever
the selection, the columns, the container size or the scroll position change.
"""

import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..config import StrokeConfig
from ..core.types import NodeId
from .navigator import ColumnNavigator

TileKey = Tuple[int, NodeId]
Throughput = Callable[[NodeId, NodeId], float]

ARROW_SPREAD = math.pi / 8


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class Rect:
    """Bounding box in viewport coordinates."""
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height


@dataclass(frozen=True)
class ConnectorPath:
    parent_id: NodeId
    child_id: NodeId
    depth: int
    d: str
    width: float
    kind: str = "curve"


@dataclass
class LayoutSnapshot:
    """One measurement pass over the rendered columns."""
    tile_rects: Dict[TileKey, Rect] = field(default_factory=dict)
    container_rect: Rect = Rect(0.0, 0.0, 0.0, 0.0)
    scroll_offset: Point = Point(0.0, 0.0)


def stroke_width(value: float, lo: float, hi: float,
                 min_width: float = 1.5, max_width: float = 6.0) -> float:
    """
    Linear map of ``value`` from ``[lo, hi]`` onto ``[min_width, max_width]``.

    Degenerates to the midpoint when ``hi <= lo``; non-finite inputs count as 0.
    """
    v = value if math.isfinite(value) else 0.0
    lo = lo if math.isfinite(lo) else 0.0
    hi = hi if math.isfinite(hi) else lo
    if hi <= lo:
        return (min_width + max_width) / 2
    t = min(1.0, max(0.0, (v - lo) / (hi - lo)))
    return min_width + t * (max_width - min_width)


def right_center(rect: Rect, container: Rect, scroll: Point) -> Point:
    return Point(rect.right - container.left + scroll.x,
                 rect.top - container.top + rect.height / 2 + scroll.y)


def left_center(rect: Rect, container: Rect, scroll: Point) -> Point:
    return Point(rect.left - container.left + scroll.x,
                 rect.top - container.top + rect.height / 2 + scroll.y)


def curve_path(start: Point, end: Point) -> str:
    """Horizontal-tangent cubic Bezier from ``start`` to ``end``."""
    mid_x = start.x + (end.x - start.x) * 0.5
    return (
        f"M {start.x:g} {start.y:g} "
        f"C {mid_x:g} {start.y:g}, {mid_x:g} {end.y:g}, {end.x:g} {end.y:g}"
    )


def arrowhead(start: Point, end: Point, size: float = 6.0) -> Tuple[Point, Point]:
    """The two barb endpoints at +/- pi/8 from the connector's end angle."""
    angle = math.atan2(end.y - start.y, end.x - start.x)
    left = Point(end.x - size * math.cos(angle - ARROW_SPREAD),
                 end.y - size * math.sin(angle - ARROW_SPREAD))
    right = Point(end.x - size * math.cos(angle + ARROW_SPREAD),
                  end.y - size * math.sin(angle + ARROW_SPREAD))
    return left, right


def _line(start: Point, end: Point) -> str:
    return f"M {start.x:g} {start.y:g} L {end.x:g} {end.y:g}"


def compute_connectors(
    tile_rects: Mapping[TileKey, Rect],
    container_rect: Rect,
    scroll_offset: Point,
    path: Sequence[NodeId],
    columns: Sequence[Sequence[NodeId]],
    throughput: Throughput,
    stroke: Optional[StrokeConfig] = None,
) -> List[List[ConnectorPath]]:
    """
    Connectors for each adjacent column pair.

    Entry ``depth`` holds the curve and two arrow barbs from the selected
    tile ``path[depth]`` in column ``depth`` to every tile in column
    ``depth + 1``. Tiles without a measured rectangle are skipped.
    """
    style = stroke or StrokeConfig()
    result: List[List[ConnectorPath]] = []

    for depth, parent in enumerate(path):
        segments: List[ConnectorPath] = []
        result.append(segments)
        if depth + 1 >= len(columns):
            continue
        parent_rect = tile_rects.get((depth, parent))
        children = columns[depth + 1]
        if parent_rect is None or not children:
            continue

        start = right_center(parent_rect, container_rect, scroll_offset)
        values = [throughput(parent, child) for child in children]
        lo, hi = min(values), max(values)

        for child, value in zip(children, values):
            child_rect = tile_rects.get((depth + 1, child))
            if child_rect is None:
                continue
            end = left_center(child_rect, container_rect, scroll_offset)
            width = stroke_width(value, lo, hi, style.min_width, style.max_width)
            segments.append(ConnectorPath(parent, child, depth, curve_path(start, end), width))
            for barb in arrowhead(start, end, style.arrow_size):
                segments.append(ConnectorPath(parent, child, depth, _line(end, barb), width, kind="arrow"))

    return result


class ConnectorOverlay:
    """
    Keeps connector geometry in sync with a navigator's rendered layout.

    ``measure`` must return the layout as it is after the latest layout pass;
    recomputation is idempotent and safe to call repeatedly.
    """

    EVENTS = frozenset({"selection", "columns", "resize", "scroll"})

    def __init__(self, navigator: ColumnNavigator, measure: Callable[[], LayoutSnapshot],
                 throughput: Optional[Throughput] = None, stroke: Optional[StrokeConfig] = None):
        self.navigator = navigator
        self.measure = measure
        self.throughput = throughput or self._edge_throughput
        self.stroke = stroke
        self._connectors: List[List[ConnectorPath]] = []

    def _edge_throughput(self, parent: NodeId, child: NodeId) -> float:
        metrics = self.navigator.graph.metrics(parent, child)
        return metrics.requests_per_second if metrics else 0.0

    @property
    def connectors(self) -> List[List[ConnectorPath]]:
        return self._connectors

    def notify(self, event: str) -> List[List[ConnectorPath]]:
        if event not in self.EVENTS:
            raise ValueError(f"Unknown layout event: {event}")
        return self.recompute()

    def recompute(self) -> List[List[ConnectorPath]]:
        layout = self.measure()
        self._connectors = compute_connectors(
            layout.tile_rects,
            layout.container_rect,
            layout.scroll_offset,
            self.navigator.path,
            self.navigator.columns,
            self.throughput,
            self.stroke,
        )
        return self._connectors

"""
Plane geometry primitives used by edge routing.

Plain functions over :class:`~drawio_aggregate.models.Point`; none of them
raise for degenerate input, they report "no result" as ``None``.
"""

from __future__ import annotations

from typing import Sequence

from drawio_aggregate.models import CellBounds, Point

Segment = Sequence[Point]


def lines_intersection(seg_a: Segment, seg_b: Segment) -> Point | None:
    """Return the point where two line segments cross, or None.

    Parametric test: solves ``a0 + ua * (a1 - a0) == b0 + ub * (b1 - b0)``
    and accepts the solution when both parameters lie in [0, 1], so a
    touch at an endpoint counts. Zero-length and parallel (including
    collinear) segments never intersect.
    """
    x1, y1 = seg_a[0].x, seg_a[0].y
    x2, y2 = seg_a[1].x, seg_a[1].y
    x3, y3 = seg_b[0].x, seg_b[0].y
    x4, y4 = seg_b[1].x, seg_b[1].y

    if (x1 == x2 and y1 == y2) or (x3 == x4 and y3 == y4):
        return None

    denominator = (y4 - y3) * (x2 - x1) - (x4 - x3) * (y2 - y1)
    if denominator == 0:
        return None

    ua = ((x4 - x3) * (y1 - y3) - (y4 - y3) * (x1 - x3)) / denominator
    ub = ((x2 - x1) * (y1 - y3) - (y2 - y1) * (x1 - x3)) / denominator
    if ua < 0 or ua > 1 or ub < 0 or ub > 1:
        return None

    return Point(x1 + ua * (x2 - x1), y1 + ua * (y2 - y1))


def rectangle_hull(bounds: CellBounds, padding: float = 0) -> list[Point]:
    """Closed rectangle polygon around *bounds*, clockwise from top-left."""
    left = bounds.x - padding
    top = bounds.y - padding
    right = bounds.right + padding
    bottom = bounds.bottom + padding
    return [
        Point(left, top),
        Point(right, top),
        Point(right, bottom),
        Point(left, bottom),
    ]


def hull_edges(hull: Sequence[Point]) -> list[tuple[Point, Point]]:
    """Edges of a closed polygon in point order, last point wrapping to the first."""
    return [
        (hull[j], hull[j + 1 if j < len(hull) - 1 else 0])
        for j in range(len(hull))
    ]

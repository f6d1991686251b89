"""Tests for the plane geometry primitives."""

import pytest

from drawio_aggregate.geometry import hull_edges, lines_intersection, rectangle_hull
from drawio_aggregate.models import CellBounds, Point


def test_crossing_segments() -> None:
    hit = lines_intersection((Point(0, 0), Point(2, 2)), (Point(0, 2), Point(2, 0)))
    assert hit == Point(1, 1)


def test_touch_at_endpoint_counts() -> None:
    hit = lines_intersection((Point(0, 0), Point(1, 0)), (Point(1, -1), Point(1, 1)))
    assert hit is not None
    assert hit.x == pytest.approx(1)
    assert hit.y == pytest.approx(0)


def test_segments_that_would_cross_if_extended() -> None:
    assert lines_intersection((Point(0, 0), Point(1, 0)), (Point(5, -1), Point(5, 1))) is None


def test_parallel_segments() -> None:
    assert lines_intersection((Point(0, 0), Point(4, 0)), (Point(0, 1), Point(4, 1))) is None


def test_collinear_overlap_is_not_a_hit() -> None:
    assert lines_intersection((Point(0, 0), Point(4, 0)), (Point(2, 0), Point(6, 0))) is None


def test_zero_length_segments() -> None:
    p = Point(1, 1)
    assert lines_intersection((p, p), (Point(0, 0), Point(2, 2))) is None
    assert lines_intersection((Point(0, 0), Point(2, 2)), (p, p)) is None


def test_rectangle_hull_order() -> None:
    hull = rectangle_hull(CellBounds(10, 20, 30, 40))
    assert hull == [Point(10, 20), Point(40, 20), Point(40, 60), Point(10, 60)]


def test_rectangle_hull_padding() -> None:
    hull = rectangle_hull(CellBounds(0, 0, 10, 10), padding=2)
    assert hull[0] == Point(-2, -2)
    assert hull[2] == Point(12, 12)


def test_hull_edges_wrap() -> None:
    a, b, c = Point(0, 0), Point(1, 0), Point(0, 1)
    assert hull_edges([a, b, c]) == [(a, b), (b, c), (c, a)]


def test_single_point_hull_has_degenerate_edge() -> None:
    p = Point(3, 3)
    assert hull_edges([p]) == [(p, p)]

"""Tests for aggregated edge bendpoints."""

import pytest

from drawio_aggregate.aggregate import (
    Aggregate,
    AggregateConfig,
    EndpointMatch,
    EndpointSide,
    aggregated_edge_bendpoints,
    aggregated_position,
    aggregated_positions,
    apply_aggregated_bendpoints,
    build_index,
    clip_aggregates,
    clip_to_hull,
    contribution_point,
    is_obscured,
    match_endpoint,
    ROUTED_STYLE_KEY,
)
from drawio_aggregate.models import Diagram, Geometry, MxCell, Point


def _fold(d: Diagram, *cell_ids: str) -> None:
    """Mark containers as folded without resizing them."""
    for cid in cell_ids:
        d.find_cell(cid).collapsed = True


def _assert_points(actual: list[Point], expected: list[tuple[float, float]]) -> None:
    assert [p.x for p in actual] == pytest.approx([x for x, _ in expected])
    assert [p.y for p in actual] == pytest.approx([y for _, y in expected])


def _sibling_groups() -> Diagram:
    """G1 = unit square at the origin holding A, G2 = unit square at (10, 0)
    holding B. A and B are centred at (0.5, 0.5) and (10.5, 0.5)."""
    d = Diagram(name="siblings")
    d.add_group("G1", 0, 0, 1, 1, cell_id="g1")
    d.add_group("G2", 10, 0, 1, 1, cell_id="g2")
    d.add_vertex("A", 0.25, 0.25, 0.5, 0.5, parent="g1", cell_id="a")
    d.add_vertex("B", 0.25, 0.25, 0.5, 0.5, parent="g2", cell_id="b")
    d.add_edge("a", "b", cell_id="e")
    _fold(d, "g1", "g2")
    return d


def _fan_in() -> Diagram:
    """Three 10x10 leaves in G1 (centres x = 5, 45, 85) all wired to B in G2."""
    d = Diagram(name="fan-in")
    d.add_group("G1", 0, 0, 100, 100, cell_id="g1")
    d.add_group("G2", 300, 0, 100, 100, cell_id="g2")
    d.add_vertex("A1", 0, 0, 10, 10, parent="g1", cell_id="a1")
    d.add_vertex("A2", 40, 0, 10, 10, parent="g1", cell_id="a2")
    d.add_vertex("A3", 80, 0, 10, 10, parent="g1", cell_id="a3")
    d.add_vertex("B", 0, 0, 10, 10, parent="g2", cell_id="b")
    d.add_edge("a1", "b", cell_id="e1")
    d.add_edge("a2", "b", cell_id="e2")
    d.add_edge("a3", "b", cell_id="e3")
    _fold(d, "g1", "g2")
    return d


# ---------------------------------------------------------------------------
# Endpoint matching
# ---------------------------------------------------------------------------

def test_match_source_side() -> None:
    index = build_index(_sibling_groups())
    edge = index.edge("e")
    assert match_endpoint(index, edge, "g1", "g2", 1) == EndpointMatch(EndpointSide.SOURCE, "a")


def test_match_target_side() -> None:
    index = build_index(_sibling_groups())
    edge = index.edge("e")
    assert match_endpoint(index, edge, "g2", "g1", 1) == EndpointMatch(EndpointSide.TARGET, "b")


def test_no_match_at_wrong_depth() -> None:
    index = build_index(_sibling_groups())
    edge = index.edge("e")
    assert match_endpoint(index, edge, "g1", "g2", 0) is None
    assert match_endpoint(index, edge, "g1", "g2", 2) is None


def test_leaf_contribution_uses_edge_source_size() -> None:
    d = _sibling_groups()
    d.find_cell("b").geometry = Geometry(0, 0, 4, 4)
    index = build_index(d)
    edge = index.edge("e")
    point = contribution_point(index, edge, EndpointMatch(EndpointSide.TARGET, "b"))
    # B's own size is 4x4 but the offset is half of A's 0.5x0.5
    assert point == Point(10.25, 0.25)


def test_group_contribution_is_its_corner() -> None:
    d = Diagram()
    d.add_group("G1", 0, 0, 100, 100, cell_id="g1")
    d.add_group("G2", 300, 0, 100, 100, cell_id="g2")
    d.add_group("Inner", 20, 20, 30, 30, parent="g1", cell_id="inner")
    d.add_vertex("B", 0, 0, 10, 10, parent="g2", cell_id="b")
    d.add_edge("inner", "b", cell_id="e")
    _fold(d, "g1", "g2")
    index = build_index(d)
    src_side = aggregated_position(index, "g1", "g2", 1, index.edges())
    tgt_side = aggregated_position(index, "g2", "g1", 1, index.edges())
    assert src_side.anchor == Point(20, 20)
    # leaf B is offset by half of the source container's 30x30
    assert tgt_side.anchor == Point(315, 15)


# ---------------------------------------------------------------------------
# Anchor aggregation
# ---------------------------------------------------------------------------

def test_same_element_short_circuits() -> None:
    index = build_index(_sibling_groups())
    assert aggregated_position(index, "g1", "g1", 1, index.edges()) is None
    assert aggregated_position(index, "a", "a", 0, index.edges()) is None


def test_missing_hull_yields_nothing_even_with_matches() -> None:
    d = _sibling_groups()
    d.find_cell("g1").collapsed = False
    index = build_index(d)
    edges = index.edges()
    assert match_endpoint(index, edges[0], "g1", "g2", 1) is not None
    assert aggregated_position(index, "g1", "g2", 1, edges) is None

    index = build_index(d, config=AggregateConfig(hull_expanded_groups=True))
    assert aggregated_position(index, "g1", "g2", 1, index.edges()) is not None


def test_no_matching_edge_yields_nothing() -> None:
    index = build_index(_sibling_groups())
    assert aggregated_position(index, "g1", "g2", 1, []) is None


def test_single_edge_anchor_and_hull_copy() -> None:
    index = build_index(_sibling_groups())
    agg = aggregated_position(index, "g1", "g2", 1, index.edges())
    assert agg.anchor == Point(0.5, 0.5)
    assert agg.hull_points == (Point(0, 0), Point(1, 0), Point(1, 1), Point(0, 1))


def test_running_midpoint_in_edge_order() -> None:
    index = build_index(_fan_in())
    edges = index.edges()
    agg = aggregated_position(index, "g1", "g2", 1, edges)
    # (5,5) -> mid with (45,5) = (25,5) -> mid with (85,5) = (55,5); centroid would be 45
    assert agg.anchor == Point(55, 5)


def test_running_midpoint_depends_on_order() -> None:
    index = build_index(_fan_in())
    edges = list(reversed(index.edges()))
    agg = aggregated_position(index, "g1", "g2", 1, edges)
    # (85,5) -> (65,5) -> (35,5)
    assert agg.anchor == Point(35, 5)


def test_two_edges_give_pairwise_midpoint() -> None:
    d = _fan_in()
    d.delete_cells(["e3"])
    index = build_index(d)
    agg = aggregated_position(index, "g1", "g2", 1, index.edges())
    assert agg.anchor == Point(25, 5)


def test_layer_side_borrows_target_hull() -> None:
    d = _sibling_groups()
    d.add_vertex("T", 5, 0, 0.5, 0.5, cell_id="t")
    d.add_edge("t", "b", cell_id="e2")
    index = build_index(d)
    agg = aggregated_position(index, "1", "g2", 1, index.edges())
    assert agg.anchor == Point(5.25, 0.25)
    assert agg.hull_points == tuple(index.hull_points("g2"))


def test_aggregates_per_level() -> None:
    index = build_index(_sibling_groups())
    aggs = aggregated_positions(index, "a", "b")
    assert [a.anchor for a in aggs] == [Point(0.5, 0.5), Point(10.5, 0.5)]


def test_no_target_parent_gives_no_aggregates() -> None:
    d = _sibling_groups()
    d.cells.append(MxCell(id="loose", parent="elsewhere", vertex=True,
                          geometry=Geometry(20, 0, 1, 1)))
    index = build_index(d)
    assert aggregated_positions(index, "a", "loose") == []


# ---------------------------------------------------------------------------
# Hull clipping
# ---------------------------------------------------------------------------

def test_first_hull_edge_in_scan_order_wins() -> None:
    # Both the x=8 and the x=2 edge cross the segment; x=8 comes first.
    hull = [Point(8, -1), Point(8, 1), Point(2, 1), Point(2, -1)]
    hit = clip_to_hull(Point(0, 0), Point(10, 0), hull)
    assert hit.x == pytest.approx(8)
    assert hit.y == pytest.approx(0)


def test_no_crossing_keeps_anchor() -> None:
    hull = [Point(20, 20), Point(30, 20), Point(30, 30)]
    assert clip_to_hull(Point(0, 0), Point(10, 0), hull) == Point(0, 0)


def test_fewer_than_two_aggregates() -> None:
    agg = Aggregate(Point(0, 0), (Point(-1, -1), Point(1, -1), Point(1, 1)))
    assert clip_aggregates([]) == []
    assert clip_aggregates([agg]) == []


def test_second_half_aims_at_clipped_predecessor() -> None:
    first = Aggregate(
        Point(0, 0),
        (Point(-1, -1), Point(1, -1), Point(1, 1), Point(-1, 1)),
    )
    # A wall at x=0.5 lies between the first anchor and its clipped point.
    second = Aggregate(Point(10, 0), (Point(0.5, -5), Point(0.5, 5)))
    _assert_points(clip_aggregates([first, second]), [(1, 0), (10, 0)])


def test_clip_does_not_modify_aggregates() -> None:
    index = build_index(_sibling_groups())
    aggs = aggregated_positions(index, "a", "b")
    clip_aggregates(aggs)
    assert aggs[0].anchor == Point(0.5, 0.5)


# ---------------------------------------------------------------------------
# End to end
# ---------------------------------------------------------------------------

def test_sibling_groups_bend_on_facing_sides() -> None:
    index = build_index(_sibling_groups())
    bendpoints = aggregated_edge_bendpoints(index, index.edge("e"))
    _assert_points(bendpoints, [(1, 0.5), (10, 0.5)])


def test_ungrouped_target_has_no_bendpoints() -> None:
    d = _sibling_groups()
    d.cells.append(MxCell(id="loose", parent="elsewhere", vertex=True,
                          geometry=Geometry(20, 0, 1, 1)))
    d.add_edge("a", "loose", cell_id="e2")
    index = build_index(d)
    assert aggregated_edge_bendpoints(index, index.edge("e2")) == []


def test_edge_into_layer_has_no_bendpoints() -> None:
    d = _sibling_groups()
    d.add_edge("a", "1", cell_id="to-layer")
    index = build_index(d)
    edge = index.edge("to-layer")
    assert index.ancestor_at_depth("1", 1) is None
    assert aggregated_positions(index, "a", "1") == []
    assert aggregated_edge_bendpoints(index, edge) == []


def test_plain_edge_on_layer_has_no_bendpoints() -> None:
    d = Diagram()
    d.add_vertex("A", 0, 0, cell_id="a")
    d.add_vertex("B", 300, 0, cell_id="b")
    d.add_edge("a", "b", cell_id="e")
    index = build_index(d)
    assert aggregated_edge_bendpoints(index, index.edge("e")) == []


def test_top_level_target_bends_on_source_hull() -> None:
    d = Diagram()
    d.add_group("G1", 0, 0, 1, 1, cell_id="g1")
    d.add_vertex("A", 0.25, 0.25, 0.5, 0.5, parent="g1", cell_id="a")
    d.add_vertex("T", 5.25, 0.25, 0.5, 0.5, cell_id="t")
    d.add_edge("a", "t", cell_id="e")
    _fold(d, "g1")
    index = build_index(d)
    # Both anchors clip onto G1's right side: the root-side anchor uses G1's hull.
    bendpoints = aggregated_edge_bendpoints(index, index.edge("e"))
    _assert_points(bendpoints, [(1, 0.5), (1, 0.5)])


def test_fan_in_routes_through_aggregate() -> None:
    index = build_index(_fan_in())
    bendpoints = aggregated_edge_bendpoints(index, index.edge("e2"))
    # anchors (55,5) and (305,5); G1 right side x=100, G2 left side x=300
    _assert_points(bendpoints, [(100, 5), (300, 5)])


# ---------------------------------------------------------------------------
# Page-level pass
# ---------------------------------------------------------------------------

def test_obscured_edges() -> None:
    d = _sibling_groups()
    d.add_vertex("X", 50, 50, cell_id="x")
    d.add_vertex("Y", 250, 50, cell_id="y")
    d.add_edge("x", "y", cell_id="plain")
    index = build_index(d)
    assert is_obscured(index, index.edge("e"))
    assert not is_obscured(index, index.edge("plain"))


def test_apply_writes_waypoints() -> None:
    d = _sibling_groups()
    results = apply_aggregated_bendpoints(d)
    assert list(results) == ["e"]
    _assert_points(d.find_cell("e").geometry.points, [(1, 0.5), (10, 0.5)])


def test_apply_leaves_unrouted_edges_alone() -> None:
    d = _sibling_groups()
    d.add_vertex("X", 50, 50, cell_id="x")
    d.add_vertex("Y", 250, 50, cell_id="y")
    d.add_edge("x", "y", cell_id="plain", waypoints=[Point(150, 0)])
    results = apply_aggregated_bendpoints(d, config=AggregateConfig(only_obscured=False))
    assert "plain" not in results
    assert d.find_cell("plain").geometry.points == [Point(150, 0)]


def test_apply_uses_explicit_hulls() -> None:
    d = _sibling_groups()
    results = apply_aggregated_bendpoints(
        d, hulls={"g1": [(0, 0), (2, 0), (2, 1), (0, 1)]},
    )
    _assert_points(results["e"], [(2, 0.5), (10, 0.5)])


def test_apply_is_repeatable() -> None:
    d = _sibling_groups()
    first = apply_aggregated_bendpoints(d)
    second = apply_aggregated_bendpoints(d)
    assert first == second


def test_apply_tags_routed_edges() -> None:
    d = _sibling_groups()
    apply_aggregated_bendpoints(d)
    assert d.find_cell("e").style_value(ROUTED_STYLE_KEY) == "1"


def test_unfolding_drops_stale_bendpoints() -> None:
    d = _sibling_groups()
    apply_aggregated_bendpoints(d)
    d.set_collapsed("g1", False)
    d.set_collapsed("g2", False)
    assert apply_aggregated_bendpoints(d) == {}
    edge = d.find_cell("e")
    assert edge.geometry.points == []
    assert edge.style_value(ROUTED_STYLE_KEY) is None


def test_stale_route_cleared_when_edge_no_longer_aggregates() -> None:
    d = _sibling_groups()
    d.add_vertex("X", 50, 50, cell_id="x")
    d.add_edge("a", "x", cell_id="e2")
    assert "e2" in apply_aggregated_bendpoints(d)
    # open containers have no hull, so nothing routes e2 any more
    d.find_cell("g1").collapsed = False
    apply_aggregated_bendpoints(d, config=AggregateConfig(only_obscured=False))
    assert d.find_cell("e2").geometry.points == []

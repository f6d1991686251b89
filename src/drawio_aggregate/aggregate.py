"""
Aggregated edge bendpoints for edges hidden inside collapsed containers.

When an edge's real endpoint sits inside a folded container, the visible
edge has to leave (or enter) the container's boundary instead. The
position along that boundary reflects where the hidden endpoints are:

1. For every nesting level between the edge's source and the root, all
   edges of the page whose endpoints resolve to the same pair of ancestors
   are collected. Their hidden endpoints fold into one anchor point per
   side of the pair (see :func:`aggregated_position`).
2. The anchors form a chain from the source side toward the target side.
   Each anchor is moved to the first point where the segment toward its
   neighbour crosses the boundary hull of the container it represents
   (see :func:`clip_aggregates`).

The result is the edge's bendpoint list. Everything here is a pure
function of a :class:`~drawio_aggregate.hierarchy.ContainmentIndex`
snapshot except :func:`apply_aggregated_bendpoints`, which writes the
result back as edge waypoints.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, Sequence

from drawio_aggregate.geometry import hull_edges, lines_intersection
from drawio_aggregate.hierarchy import (
    ContainmentIndex,
    EdgeRef,
    ElementKind,
    HullInput,
)
from drawio_aggregate.models import Diagram, Geometry, MxCell, Point

logger = logging.getLogger("drawio-aggregate")

# Style token marking edges whose waypoints were written by routing
ROUTED_STYLE_KEY = "aggregated"


# ---------------------------------------------------------------------------
# Configuration / value types
# ---------------------------------------------------------------------------

@dataclass
class AggregateConfig:
    """Configuration for aggregated bendpoint routing."""
    hull_expanded_groups: bool = False  # Hull open containers too
    hull_padding: float = 0.0
    only_obscured: bool = True  # Skip edges with both ends visible


@dataclass(frozen=True)
class Aggregate:
    """One anchor point plus the hull of the container it stands for."""
    anchor: Point
    hull_points: tuple[Point, ...]


class EndpointSide(Enum):
    SOURCE = "source"
    TARGET = "target"


@dataclass(frozen=True)
class EndpointMatch:
    """Which end of an edge lies under the side being aggregated."""
    side: EndpointSide
    cell_id: str


def build_index(
    diagram: Diagram,
    hulls: Optional[Mapping[str, HullInput]] = None,
    config: Optional[AggregateConfig] = None,
) -> ContainmentIndex:
    cfg = config or AggregateConfig()
    return ContainmentIndex(
        diagram,
        hulls=hulls,
        hull_expanded_groups=cfg.hull_expanded_groups,
        hull_padding=cfg.hull_padding,
    )


# ---------------------------------------------------------------------------
# Anchor aggregation
# ---------------------------------------------------------------------------

def match_endpoint(
    index: ContainmentIndex,
    edge: EdgeRef,
    src: str,
    tgt: str,
    depth: int,
) -> EndpointMatch | None:
    """Resolve both ends of *edge* to their ancestors at *depth*.

    If those ancestors are ``(src, tgt)`` the edge's source is the endpoint
    nested under *src*; if they are ``(tgt, src)`` it is the edge's target.
    """
    src_anc = index.ancestor_at_depth(edge.source, depth)
    tgt_anc = index.ancestor_at_depth(edge.target, depth)
    if src_anc == src and tgt_anc == tgt:
        return EndpointMatch(EndpointSide.SOURCE, edge.source)
    if tgt_anc == src and src_anc == tgt:
        return EndpointMatch(EndpointSide.TARGET, edge.target)
    return None


def contribution_point(
    index: ContainmentIndex,
    edge: EdgeRef,
    match: EndpointMatch,
) -> Point:
    """Where a matched endpoint pulls the anchor.

    Containers count at their top-left corner. Leaf vertices are shifted
    by half the size of the *edge's source*, whichever end matched.
    """
    pos = index.position(match.cell_id)
    if index.is_group(match.cell_id):
        return pos
    width, height = index.dimensions(edge.source)
    return pos.translate(width / 2, height / 2)


def aggregated_position(
    index: ContainmentIndex,
    src: str,
    tgt: str,
    depth: int,
    edges: Sequence[EdgeRef],
) -> Aggregate | None:
    """Fold every edge running between *src* and *tgt* at *depth* into one
    anchor on the *src* side.

    The hull comes from *src*, or from *tgt* when *src* is a layer. Each
    matching edge contributes one point; the anchor is a running midpoint
    in edge order (first point, then midpoint of anchor and next point),
    so the result depends on the order of *edges*.

    Returns None when ``src == tgt``, when there is no hull, or when no
    edge matches.
    """
    if src == tgt:
        return None
    hull_owner = src if index.kind(src) is not ElementKind.GRAPH else tgt
    hull = index.hull_points(hull_owner)
    if hull is None:
        return None

    anchor: Point | None = None
    for edge in edges:
        match = match_endpoint(index, edge, src, tgt, depth)
        if match is None:
            continue
        point = contribution_point(index, edge, match)
        anchor = point if anchor is None else anchor.midpoint(point)

    if anchor is None:
        return None
    return Aggregate(anchor=anchor, hull_points=tuple(hull))


def aggregated_positions(
    index: ContainmentIndex,
    source_id: str,
    target_id: str,
) -> list[Aggregate]:
    """Anchors for every nesting level from *source_id* up to its root.

    The far side is the target's parent. At each level the source-side
    anchor is appended before the target-side one.
    """
    target = index.ancestor_at_depth(target_id, 1)
    if target is None:
        return []

    edges = index.edges()
    aggregates: list[Aggregate] = []
    depth = 0
    current = source_id
    while current is not None:
        for agg in (
            aggregated_position(index, current, target, depth, edges),
            aggregated_position(index, target, current, depth, edges),
        ):
            if agg is not None:
                aggregates.append(agg)
        depth += 1
        current = index.ancestor_at_depth(source_id, depth)
    return aggregates


# ---------------------------------------------------------------------------
# Hull clipping
# ---------------------------------------------------------------------------

def clip_to_hull(anchor: Point, toward: Point, hull: Sequence[Point]) -> Point:
    """First crossing of ``anchor -> toward`` with the hull, scanning hull
    edges in point order; *anchor* itself when nothing crosses."""
    for start, end in hull_edges(hull):
        hit = lines_intersection((anchor, toward), (start, end))
        if hit is not None:
            return hit
    return anchor


def clip_aggregates(aggregates: Sequence[Aggregate]) -> list[Point]:
    """Turn an anchor chain into bendpoints.

    Anchors in the first half are aimed at their successor, anchors in the
    second half at their predecessor, so both ends fold toward the middle.
    A second-half anchor aims at its predecessor's clipped point. Fewer
    than two anchors give no bendpoints.
    """
    if len(aggregates) < 2:
        return []
    half = len(aggregates) / 2
    points: list[Point] = []
    for i, agg in enumerate(aggregates):
        if i >= half:
            toward = points[i - 1]
        else:
            toward = aggregates[i + 1].anchor
        points.append(clip_to_hull(agg.anchor, toward, agg.hull_points))
    return points


def aggregated_edge_bendpoints(index: ContainmentIndex, edge: EdgeRef) -> list[Point]:
    """Bendpoints for *edge*, routed through the hulls of the collapsed
    containers that hide its endpoints."""
    aggregates = aggregated_positions(index, edge.source, edge.target)
    bendpoints = clip_aggregates(aggregates)
    logger.debug(
        "Edge '%s': %d aggregate(s), %d bendpoint(s)",
        edge.id, len(aggregates), len(bendpoints),
    )
    return bendpoints


# ---------------------------------------------------------------------------
# Page-level pass
# ---------------------------------------------------------------------------

def is_obscured(index: ContainmentIndex, edge: EdgeRef) -> bool:
    """Whether either end of *edge* is hidden in a folded container."""
    return (
        index.has_collapsed_ancestor(edge.source)
        or index.has_collapsed_ancestor(edge.target)
    )


def apply_aggregated_bendpoints(
    diagram: Diagram,
    hulls: Optional[Mapping[str, HullInput]] = None,
    config: Optional[AggregateConfig] = None,
) -> dict[str, list[Point]]:
    """Write aggregated bendpoints into the waypoints of a page's edges.

    Bendpoints are computed from one snapshot of the page taken before
    any edge is modified. Routed edges are tagged with the
    ``aggregated=1`` style token. A tagged edge that no longer yields
    bendpoints (its containers were unfolded, say) loses its waypoints
    and the tag. Untagged edges that yield nothing keep their waypoints.

    Args:
        diagram: The page to update.
        hulls: Optional explicit boundary polygons by cell ID.
        config: Routing options.

    Returns:
        Mapping of edge ID → the bendpoints written to it.
    """
    cfg = config or AggregateConfig()
    index = build_index(diagram, hulls, cfg)

    results: dict[str, list[Point]] = {}
    for edge in index.edges():
        if cfg.only_obscured and not is_obscured(index, edge):
            continue
        bendpoints = aggregated_edge_bendpoints(index, edge)
        if bendpoints:
            results[edge.id] = bendpoints

    stale = 0
    for cell in diagram.edges():
        if cell.id in results:
            if cell.geometry is None:
                cell.geometry = Geometry(relative=True)
            cell.geometry.points = list(results[cell.id])
            cell.set_style_value(ROUTED_STYLE_KEY, "1")
        elif cell.style_value(ROUTED_STYLE_KEY) == "1":
            clear_routed_waypoints(cell)
            stale += 1

    logger.debug(
        "Updated %d edge(s) and cleared %d stale route(s) on page '%s'",
        len(results), stale, diagram.name,
    )
    return results


def clear_routed_waypoints(cell: MxCell) -> None:
    """Drop an edge's waypoints together with its ``aggregated`` tag."""
    if cell.geometry is not None:
        cell.geometry.points = []
    cell.set_style_value(ROUTED_STYLE_KEY, None)

"""
Containment queries over a draw.io page.

A :class:`ContainmentIndex` is a read-only snapshot of one
:class:`~drawio_aggregate.models.Diagram`: an explicit ``cell id -> parent
id`` map plus the geometry lookups edge routing needs (absolute position,
size, group membership and boundary hull). Layers are the roots of the
containment tree; the structural cell ``"0"`` is not part of it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, Sequence, Union

from drawio_aggregate.geometry import rectangle_hull
from drawio_aggregate.models import ROOT_ID, CellBounds, Diagram, MxCell, Point

logger = logging.getLogger("drawio-aggregate")

HullInput = Sequence[Union[Point, Sequence[float]]]


class HierarchyError(ValueError):
    """Raised when a page's parent links do not form a tree."""


class ElementKind(Enum):
    GRAPH = "graph"
    NODE = "node"
    EDGE = "edge"


@dataclass(frozen=True)
class EdgeRef:
    """A connection between two cells, by ID."""
    id: str
    source: str
    target: str


class ContainmentIndex:
    """Snapshot of a page's containment tree and geometry.

    Args:
        diagram: The page to index. It is read, never modified.
        hulls: Optional boundary polygons keyed by cell ID. They take
            precedence over the rectangle derived from a container's bounds
            and are the only way to give a layer (graph root) a hull.
        hull_expanded_groups: Also derive hulls for containers that are not
            collapsed.
        hull_padding: Grow derived rectangle hulls by this many units.
    """

    def __init__(
        self,
        diagram: Diagram,
        hulls: Optional[Mapping[str, HullInput]] = None,
        hull_expanded_groups: bool = False,
        hull_padding: float = 0.0,
    ) -> None:
        self.diagram = diagram
        self.hull_expanded_groups = hull_expanded_groups
        self.hull_padding = hull_padding

        self._cells: dict[str, MxCell] = {
            c.id: c for c in diagram.cells if c.id != ROOT_ID
        }
        self._parents: dict[str, str] = {}
        self._has_children: set[str] = set()
        for cid, cell in self._cells.items():
            if cell.parent in self._cells and cell.parent != cid:
                self._parents[cid] = cell.parent
                if cell.vertex:
                    self._has_children.add(cell.parent)
        self._check_acyclic()

        self._hulls: dict[str, list[Point]] = {}
        for cid, pts in (hulls or {}).items():
            if cid not in self._cells:
                logger.warning("Ignoring hull for unknown cell '%s'", cid)
                continue
            self._hulls[cid] = [_as_point(p) for p in pts]

        self._edges: list[EdgeRef] = []
        for cell in diagram.cells:
            if not cell.edge:
                continue
            if cell.source not in self._cells or cell.target not in self._cells:
                logger.warning(
                    "Skipping edge '%s': dangling endpoint (%s -> %s)",
                    cell.id, cell.source, cell.target,
                )
                continue
            self._edges.append(EdgeRef(cell.id, cell.source, cell.target))

    def _check_acyclic(self) -> None:
        settled: set[str] = set()
        for start in self._parents:
            path: set[str] = set()
            current: str | None = start
            while current is not None and current not in settled:
                if current in path:
                    raise HierarchyError(
                        f"Cell '{current}' is its own ancestor."
                    )
                path.add(current)
                current = self._parents.get(current)
            settled |= path

    # ----- containment -----

    def __contains__(self, cell_id: object) -> bool:
        return cell_id in self._cells

    def cell(self, cell_id: str) -> MxCell | None:
        return self._cells.get(cell_id)

    def has_parent(self, cell_id: str) -> bool:
        return cell_id in self._parents

    def parent_of(self, cell_id: str) -> str | None:
        return self._parents.get(cell_id)

    def ancestor_at_depth(self, cell_id: str, depth: int) -> str | None:
        """Follow *depth* parent links up from *cell_id*.

        Depth 0 is the cell itself. Returns None when a root is reached
        before *depth* steps have been taken.
        """
        current: str | None = cell_id
        while current is not None and depth > 0:
            current = self._parents.get(current)
            depth -= 1
        return current

    def ancestor_chain(self, cell_id: str) -> list[str]:
        """The cell followed by each of its ancestors up to the root."""
        chain: list[str] = []
        current: str | None = cell_id
        while current is not None:
            chain.append(current)
            current = self._parents.get(current)
        return chain

    def kind(self, cell_id: str) -> ElementKind:
        cell = self._cells.get(cell_id)
        if cell is not None and cell.edge:
            return ElementKind.EDGE
        if cell is not None and cell.parent == ROOT_ID:
            return ElementKind.GRAPH
        return ElementKind.NODE

    def is_group(self, cell_id: str) -> bool:
        """Whether a vertex is a container: it has child vertices, is
        folded, or is styled as a container/swimlane."""
        cell = self._cells.get(cell_id)
        if cell is None or not cell.vertex:
            return False
        if cell.collapsed or cell_id in self._has_children:
            return True
        return cell.style_value("container") == "1" or cell.style_value("swimlane") == ""

    def has_collapsed_ancestor(self, cell_id: str) -> bool:
        """Whether the cell is hidden inside a folded container."""
        for ancestor in self.ancestor_chain(cell_id)[1:]:
            cell = self._cells[ancestor]
            if cell.collapsed:
                return True
        return False

    # ----- geometry -----

    def position(self, cell_id: str) -> Point:
        """Absolute top-left corner of a vertex on the page."""
        x, y = 0.0, 0.0
        current: str | None = cell_id
        while current is not None:
            cell = self._cells.get(current)
            if cell is None or not cell.vertex:
                break
            if cell.geometry and not cell.geometry.relative:
                x += cell.geometry.x
                y += cell.geometry.y
            current = self._parents.get(current)
        return Point(x, y)

    def dimensions(self, cell_id: str) -> tuple[float, float]:
        cell = self._cells.get(cell_id)
        if cell is None or cell.geometry is None or cell.geometry.relative:
            return 0.0, 0.0
        return cell.geometry.width, cell.geometry.height

    def bounds(self, cell_id: str) -> CellBounds:
        pos = self.position(cell_id)
        width, height = self.dimensions(cell_id)
        return CellBounds(pos.x, pos.y, width, height)

    def hull_points(self, cell_id: str) -> list[Point] | None:
        """Boundary polygon of a cell, or None if it has none.

        Explicit hulls win; otherwise folded containers (and, when
        configured, expanded ones) get the rectangle of their bounds.
        Returns a new list on every call.
        """
        if cell_id in self._hulls:
            return list(self._hulls[cell_id])
        if not self.is_group(cell_id):
            return None
        cell = self._cells[cell_id]
        if not cell.collapsed and not self.hull_expanded_groups:
            return None
        return rectangle_hull(self.bounds(cell_id), self.hull_padding)

    # ----- edges -----

    def edges(self) -> list[EdgeRef]:
        """Every routable edge on the page, in document order."""
        return list(self._edges)

    def edge(self, edge_id: str) -> EdgeRef | None:
        for ref in self._edges:
            if ref.id == edge_id:
                return ref
        return None


def _as_point(value: Point | Sequence[float]) -> Point:
    if isinstance(value, Point):
        return value
    return Point(float(value[0]), float(value[1]))

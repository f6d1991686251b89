"""
Draw.io Aggregate MCP Server — route edges through collapsed containers.

Exposes 4 tools that let an LLM agent build or load a .drawio diagram,
fold containers, and compute the bendpoints of edges whose endpoints are
hidden inside folded containers.

Tools:
  1. diagram  — lifecycle: create, save, load, import_xml, list, get_xml
  2. draw     — content:  add vertices, edges, groups; collapse/expand; delete
  3. route    — routing:  aggregate_edges, bendpoints, clear_waypoints
  4. inspect  — read-only: list cells, containment hierarchy, info
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from drawio_aggregate.aggregate import (
    AggregateConfig,
    aggregated_edge_bendpoints,
    apply_aggregated_bendpoints,
    build_index,
    clear_routed_waypoints,
    is_obscured,
)
from drawio_aggregate.hierarchy import ContainmentIndex, HierarchyError
from drawio_aggregate.models import (
    DEFAULT_LAYER_ID,
    ROOT_ID,
    Diagram,
    DrawioFile,
    MxCell,
    Point,
    snap_to_grid,
)
from drawio_aggregate.validation import (
    DIAGRAM_ACTIONS,
    DRAW_ACTIONS,
    INSPECT_ACTIONS,
    ROUTE_ACTIONS,
    ValidationError,
    validate_action,
    validate_bool,
    validate_edge_dict,
    validate_hull_dict,
    validate_int,
    validate_list,
    validate_non_empty_string,
    validate_number,
    validate_page_format,
    validate_page_index,
    validate_vertex_dict,
)

# FastMCP logs every request at INFO on stderr, which MCP clients surface
# as warnings.
logging.getLogger("mcp.server").setLevel(logging.WARNING)
logger = logging.getLogger("drawio-aggregate")

mcp = FastMCP(
    "drawio-aggregate-mcp",
    instructions=(
        "Routes draw.io edges whose endpoints are hidden in folded containers.\n\n"
        "Tools (pick the operation with 'action'):\n"
        "- diagram: create, save, load, import_xml, list, get_xml\n"
        "- draw: add_vertices, add_edges, add_group, collapse, expand, delete_cells\n"
        "- route: aggregate_edges (write bendpoints for every edge hidden in a\n"
        "  folded container), bendpoints (one edge, read-only), clear_waypoints\n"
        "- inspect: cells, hierarchy, info\n\n"
        "Coordinates passed to draw are absolute page positions, also for\n"
        "children of a container. Call route(action='aggregate_edges') again\n"
        "after folding, unfolding or moving containers: every call recomputes\n"
        "the bendpoints and drops routes that no longer apply.\n"
    ),
)

# name -> DrawioFile, guarded by _diagrams_lock
_diagrams: dict[str, DrawioFile] = {}
_diagrams_lock = threading.Lock()


def _lookup(name: str) -> DrawioFile:
    df = _diagrams.get(name)
    if df is None:
        raise ValidationError(f"diagram '{name}' not found.")
    return df


def _page(diagram_name: Any, page_index: Any) -> Diagram:
    df = _lookup(validate_non_empty_string(diagram_name, "diagram_name"))
    return df.diagrams[validate_page_index(page_index, len(df.diagrams))]


# ===================================================================
# TOOL 1: diagram — lifecycle
# ===================================================================

@mcp.tool()
def diagram(
    action: str,
    name: str = "",
    file_path: str = "",
    xml_content: str = "",
    page_format: str = "A4_PORTRAIT",
    grid: bool = True,
    grid_size: int = 10,
) -> str:
    """Create, load, save and list diagrams.

    Actions:
      create     — New empty diagram. Params: name, page_format, grid, grid_size.
      save       — Write a diagram to a .drawio file. Params: name, file_path.
      load       — Read a .drawio file. Params: name, file_path.
      import_xml — Read draw.io XML (mxfile or mxGraphModel). Params: name, xml_content.
      list       — Diagrams in memory with per-page cell counts.
      get_xml    — The diagram as draw.io XML. Params: name.

    Args:
        action: One of the actions above.
        name: Key of the diagram in memory.
        file_path: Path for save/load.
        xml_content: XML for import_xml.
        page_format: A4_PORTRAIT, A4_LANDSCAPE, LETTER_PORTRAIT,
                     LETTER_LANDSCAPE, A3_PORTRAIT, A3_LANDSCAPE or INFINITE.
        grid: Snap new shapes to the grid.
        grid_size: Grid spacing in pixels (1..100).

    Returns:
        A status message, XML or JSON depending on the action.
    """
    try:
        action = validate_action(action, "diagram", DIAGRAM_ACTIONS)
        if action == "list":
            return json.dumps(_listing(), indent=2)
        name = validate_non_empty_string(name, "name")

        if action == "create":
            fmt = validate_page_format(page_format)
            d = Diagram(name=name)
            d.set_page_format(fmt)
            d.grid = validate_bool(grid, "grid")
            d.grid_size = validate_int(grid_size, "grid_size", min_val=1, max_val=100)
            with _diagrams_lock:
                _diagrams[name] = DrawioFile(diagrams=[d])
            return f"Diagram '{name}' created ({fmt.name})."

        if action == "get_xml":
            return _lookup(name).to_xml()

        if action == "save":
            df = _lookup(name)
            path = Path(validate_non_empty_string(file_path, "file_path"))
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(df.to_xml(), encoding="utf-8")
            return f"Diagram saved to {path.resolve()}"

        if action == "load":
            path = Path(validate_non_empty_string(file_path, "file_path"))
            if not path.is_file():
                raise ValidationError(f"file '{file_path}' not found.")
            xml_content = path.read_text(encoding="utf-8")
        else:  # import_xml
            validate_non_empty_string(xml_content, "xml_content")
        return _register(name, xml_content)
    except ValidationError as exc:
        return f"Error: {exc.message}"


def _listing() -> list[dict[str, Any]]:
    return [
        {
            "name": name,
            "pages": [
                {
                    "index": i,
                    "name": d.name,
                    "vertices": sum(c.vertex for c in d.cells),
                    "edges": sum(c.edge for c in d.cells),
                }
                for i, d in enumerate(df.diagrams)
            ],
        }
        for name, df in _diagrams.items()
    ]


def _register(name: str, xml_content: str) -> str:
    try:
        df = DrawioFile.from_xml(xml_content)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    with _diagrams_lock:
        _diagrams[name] = df
    cells = sum(len(d.cells) for d in df.diagrams)
    logger.info("Imported '%s': %d page(s), %d cell(s)", name, len(df.diagrams), cells)
    return f"Imported '{name}' with {len(df.diagrams)} page(s) and {cells} cells."


# ===================================================================
# TOOL 2: draw — content
# ===================================================================

@mcp.tool()
def draw(
    action: str,
    diagram_name: str = "",
    vertices: list[dict[str, Any]] | None = None,
    edges: list[dict[str, Any]] | None = None,
    cell_ids: list[str] | None = None,
    group_label: str = "",
    group_x: float = 0,
    group_y: float = 0,
    group_width: float = 300,
    group_height: float = 200,
    group_parent_id: str = DEFAULT_LAYER_ID,
    group_collapsed: bool = False,
    page_index: int = 0,
) -> str:
    """Add, fold or delete diagram content.

    Actions:
      add_vertices — Params: vertices, a list of
                     {label, x, y, width?, height?, style?, parent_id?, cell_id?}.
      add_edges    — Params: edges, a list of
                     {source_id, target_id, label?, style?, parent_id?}.
      add_group    — Add a foldable container. Params: group_label, group_x,
                     group_y, group_width, group_height, group_parent_id,
                     group_collapsed.
      collapse     — Fold containers to 120x30. Their descendants are left
                     unchanged; draw.io does not render them while folded.
                     Params: cell_ids.
      expand       — Unfold containers back to their open size. Params: cell_ids.
      delete_cells — Delete cells with their descendants and attached edges.
                     Params: cell_ids.

    Returns:
        JSON with the affected cell IDs, or an error message.
    """
    try:
        action = validate_action(action, "draw", DRAW_ACTIONS)
        d = _page(diagram_name, page_index)

        if action == "add_vertices":
            return json.dumps(_add_vertices(d, vertices))
        if action == "add_edges":
            return json.dumps(_add_edges(d, edges))
        if action == "add_group":
            validate_non_empty_string(group_label, "group_label")
            width = validate_number(group_width, "group_width", min_val=0)
            height = validate_number(group_height, "group_height", min_val=0)
            _require_cell(d, group_parent_id, "parent")
            x, y = _to_local(d, group_x, group_y, group_parent_id)
            gid = d.add_group(
                group_label, x, y, width, height, parent=group_parent_id,
                collapsed=validate_bool(group_collapsed, "group_collapsed"),
            )
            return json.dumps({"group_id": gid})

        ids = validate_list(cell_ids or [], "cell_ids", min_length=1)
        if action == "delete_cells":
            return json.dumps({"deleted": d.delete_cells(ids)})
        for cid in ids:
            _require_cell(d, cid, "cell")
        folding = action == "collapse"
        changed = [cid for cid in ids if d.set_collapsed(cid, folding)]
        return json.dumps({"collapsed" if folding else "expanded": changed})
    except (ValidationError, HierarchyError) as exc:
        return f"Error: {getattr(exc, 'message', exc)}"


def _require_cell(d: Diagram, cell_id: str, what: str) -> MxCell:
    cell = d.find_cell(cell_id)
    if cell is None:
        raise ValidationError(f"{what} '{cell_id}' not found.")
    return cell


def _add_vertices(d: Diagram, vertices: list[dict[str, Any]] | None) -> list[str]:
    items = validate_list(vertices or [], "vertices", min_length=1)
    for i, v in enumerate(items):
        validate_vertex_dict(v, i)
    ids: list[str] = []
    for v in items:
        parent = v.get("parent_id", DEFAULT_LAYER_ID)
        _require_cell(d, parent, "parent")
        x, y = _to_local(d, v["x"], v["y"], parent)
        style = {"style": v["style"]} if "style" in v else {}
        ids.append(d.add_vertex(
            v["label"], x, y, v.get("width", 120), v.get("height", 60),
            parent=parent, cell_id=v.get("cell_id") or None, **style,
        ))
    return ids


def _add_edges(d: Diagram, edges: list[dict[str, Any]] | None) -> list[str]:
    items = validate_list(edges or [], "edges", min_length=1)
    for i, e in enumerate(items):
        validate_edge_dict(e, i)
        for key in ("source_id", "target_id"):
            _require_cell(d, e[key], key)
    ids: list[str] = []
    for e in items:
        style = {"style": e["style"]} if "style" in e else {}
        ids.append(d.add_edge(
            e["source_id"], e["target_id"], e.get("label", ""),
            parent=e.get("parent_id", DEFAULT_LAYER_ID), **style,
        ))
    return ids


def _to_local(d: Diagram, x: float, y: float, parent_id: str) -> tuple[float, float]:
    """Absolute page position -> position relative to *parent_id*, snapped
    to the grid first when the page has one."""
    if d.grid:
        x, y = snap_to_grid(x, d.grid_size), snap_to_grid(y, d.grid_size)
    origin = ContainmentIndex(d).position(parent_id)
    return x - origin.x, y - origin.y


# ===================================================================
# TOOL 3: route — aggregated bendpoints
# ===================================================================

@mcp.tool()
def route(
    action: str,
    diagram_name: str = "",
    edge_id: str = "",
    hulls: dict[str, list[list[float]]] | None = None,
    only_obscured: bool = True,
    hull_expanded_groups: bool = False,
    hull_padding: float = 0,
    page_index: int = 0,
) -> str:
    """Route edges whose endpoints are hidden in collapsed containers.

    Actions:
      aggregate_edges — Compute bendpoints for every edge on the page and
                        write them as waypoints. Edges routed by an earlier
                        call that no longer need bendpoints are reset.
                        Params: hulls?, only_obscured, hull_expanded_groups,
                        hull_padding.
      bendpoints      — Compute (without writing) the bendpoints of one
                        edge. Params: edge_id, hulls?, hull_expanded_groups,
                        hull_padding.
      clear_waypoints — Remove waypoints from every edge on the page.

    Args:
        hulls: Explicit boundary polygons, cell ID -> [[x, y], ...]. They
               override the rectangle of a folded container.
        only_obscured: Only route edges with an end inside a folded container.
        hull_expanded_groups: Give open containers a rectangular hull too.
        hull_padding: Grow rectangular hulls by this many pixels.

    Returns:
        JSON mapping of edge IDs to bendpoints, or an error message.
    """
    try:
        action = validate_action(action, "route", ROUTE_ACTIONS)
        cfg = AggregateConfig(
            hull_expanded_groups=validate_bool(hull_expanded_groups, "hull_expanded_groups"),
            hull_padding=validate_number(hull_padding, "hull_padding", min_val=0),
            only_obscured=validate_bool(only_obscured, "only_obscured"),
        )
        hull_map = validate_hull_dict(hulls)
        d = _page(diagram_name, page_index)

        if action == "clear_waypoints":
            routed = [c for c in d.edges() if c.geometry and c.geometry.points]
            for cell in routed:
                clear_routed_waypoints(cell)
            return f"Cleared waypoints from {len(routed)} edge(s)."

        if action == "aggregate_edges":
            with _diagrams_lock:
                results = apply_aggregated_bendpoints(d, hulls=hull_map, config=cfg)
            logger.info("Routed %d edge(s) on '%s'", len(results), diagram_name)
            return json.dumps({eid: _points_json(pts) for eid, pts in results.items()}, indent=2)

        # bendpoints
        edge_id = validate_non_empty_string(edge_id, "edge_id")
        index = build_index(d, hull_map, cfg)
        ref = index.edge(edge_id)
        if ref is None:
            raise ValidationError(f"edge '{edge_id}' not found.")
        return json.dumps({
            "edge_id": ref.id,
            "obscured": is_obscured(index, ref),
            "bendpoints": _points_json(aggregated_edge_bendpoints(index, ref)),
        }, indent=2)
    except (ValidationError, HierarchyError) as exc:
        return f"Error: {getattr(exc, 'message', exc)}"


def _points_json(points: list[Point]) -> list[dict[str, float]]:
    return [{"x": p.x, "y": p.y} for p in points]


# ===================================================================
# TOOL 4: inspect — read-only queries
# ===================================================================

@mcp.tool()
def inspect(
    action: str,
    diagram_name: str = "",
    page_index: int = 0,
) -> str:
    """Read-only views of a diagram page.

    Actions:
      cells     — Every cell with its type, label, parent, box and waypoints.
      hierarchy — Per vertex: ancestor chain, container flag, whether a
                  folded ancestor hides it, absolute position.
      info      — Counts, folded containers and edges that need routing.

    Returns:
        JSON data or an error message.
    """
    try:
        action = validate_action(action, "inspect", INSPECT_ACTIONS)
        d = _page(diagram_name, page_index)
        if action == "cells":
            return json.dumps([_describe(c) for c in d.cells], indent=2)

        index = build_index(d)
        if action == "hierarchy":
            entries = []
            for c in d.cells:
                if not c.vertex:
                    continue
                pos = index.position(c.id)
                entries.append({
                    "id": c.id,
                    "ancestors": index.ancestor_chain(c.id)[1:],
                    "group": index.is_group(c.id),
                    "hidden": index.has_collapsed_ancestor(c.id),
                    "position": {"x": pos.x, "y": pos.y},
                })
            return json.dumps(entries, indent=2)

        refs = index.edges()
        return json.dumps({
            "name": diagram_name,
            "page": d.name,
            "vertices": sum(c.vertex for c in d.cells),
            "edges": len(refs),
            "collapsed": [c.id for c in d.cells if c.collapsed],
            "obscured_edges": [e.id for e in refs if is_obscured(index, e)],
        }, indent=2)
    except (ValidationError, HierarchyError) as exc:
        return f"Error: {getattr(exc, 'message', exc)}"


def _describe(c: MxCell) -> dict[str, Any]:
    if c.vertex:
        kind = "vertex"
    elif c.edge:
        kind = "edge"
    elif c.parent == ROOT_ID:
        kind = "layer"
    else:
        kind = "root"
    info: dict[str, Any] = {"id": c.id, "type": kind}
    if c.value:
        info["label"] = c.value
    if c.parent:
        info["parent"] = c.parent
    if c.edge:
        info["source"] = c.source
        info["target"] = c.target
    if c.collapsed:
        info["collapsed"] = True
    geom = c.geometry
    if geom is not None and geom.points:
        info["waypoints"] = _points_json(geom.points)
    if geom is not None and not geom.relative:
        info["position"] = {"x": geom.x, "y": geom.y,
                            "width": geom.width, "height": geom.height}
    return info


def main() -> None:
    """Run the MCP server over stdio."""
    mcp.run()


if __name__ == "__main__":
    main()

"""
Checks for the parameters MCP clients pass to the tools.

Every check raises :class:`ValidationError` with a message that is shown
to the client verbatim (prefixed with ``Error:``), so messages name the
offending field and say what was expected.
"""

from __future__ import annotations

from typing import Any

from drawio_aggregate.models import PageFormat

DIAGRAM_ACTIONS = frozenset({"create", "save", "load", "import_xml", "list", "get_xml"})
DRAW_ACTIONS = frozenset({
    "add_vertices", "add_edges", "add_group", "collapse", "expand", "delete_cells",
})
ROUTE_ACTIONS = frozenset({"aggregate_edges", "bendpoints", "clear_waypoints"})
INSPECT_ACTIONS = frozenset({"cells", "hierarchy", "info"})


class ValidationError(Exception):
    """Raised when a tool parameter is missing or malformed."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _kind(value: Any) -> str:
    return type(value).__name__


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------

def validate_non_empty_string(value: Any, field_name: str) -> str:
    """Return *value* stripped; it must be a string with some content."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    raise ValidationError(f"'{field_name}' must be a non-empty string.")


def validate_number(
    value: Any,
    field_name: str,
    *,
    min_val: float | None = None,
    max_val: float | None = None,
) -> float:
    if not _is_number(value):
        raise ValidationError(f"'{field_name}' must be a number, got {_kind(value)}.")
    _check_range(value, field_name, min_val, max_val)
    return float(value)


def validate_int(
    value: Any,
    field_name: str,
    *,
    min_val: int | None = None,
    max_val: int | None = None,
) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"'{field_name}' must be an integer, got {_kind(value)}.")
    _check_range(value, field_name, min_val, max_val)
    return value


def _check_range(value: float, field_name: str, lo: float | None, hi: float | None) -> None:
    if lo is not None and value < lo:
        raise ValidationError(f"'{field_name}' must be >= {lo}, got {value}.")
    if hi is not None and value > hi:
        raise ValidationError(f"'{field_name}' must be <= {hi}, got {value}.")


def validate_bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"'{field_name}' must be a boolean, got {_kind(value)}.")
    return value


def validate_list(value: Any, field_name: str, *, min_length: int = 0) -> list:
    if not isinstance(value, list):
        raise ValidationError(f"'{field_name}' must be a list, got {_kind(value)}.")
    if len(value) < min_length:
        raise ValidationError(
            f"'{field_name}' must have at least {min_length} item(s), got {len(value)}."
        )
    return value


# ---------------------------------------------------------------------------
# Tool-level choices
# ---------------------------------------------------------------------------

def validate_action(value: Any, tool_name: str, allowed: frozenset[str]) -> str:
    """Normalise an ``action`` argument to lower case and check it."""
    choices = ", ".join(sorted(allowed))
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(
            f"'{tool_name}' requires an 'action' parameter. Valid actions: {choices}."
        )
    action = value.strip().lower()
    if action not in allowed:
        raise ValidationError(f"Unknown {tool_name} action '{value}'. Valid actions: {choices}.")
    return action


def validate_page_format(value: Any) -> PageFormat:
    """Look up a :class:`PageFormat` by name, case-insensitively."""
    name = value.strip().upper() if isinstance(value, str) else ""
    if name not in PageFormat.__members__:
        choices = ", ".join(PageFormat.__members__)
        raise ValidationError(f"'page_format' must be one of [{choices}], got {value!r}.")
    return PageFormat[name]


def validate_page_index(value: Any, num_pages: int) -> int:
    validate_int(value, "page_index")
    if not 0 <= value < num_pages:
        raise ValidationError(f"'page_index' {value} out of range (0..{num_pages - 1}).")
    return value


# ---------------------------------------------------------------------------
# Structured arguments
# ---------------------------------------------------------------------------

# key -> (expected kind, required)
_VERTEX_KEYS = {
    "label": (str, True),
    "x": (float, True),
    "y": (float, True),
    "width": (float, False),
    "height": (float, False),
    "style": (str, False),
    "parent_id": (str, False),
    "cell_id": (str, False),
}
_EDGE_KEYS = {
    "source_id": (str, True),
    "target_id": (str, True),
    "label": (str, False),
    "style": (str, False),
    "parent_id": (str, False),
}


def _check_item(item: Any, where: str, keys: dict[str, tuple[type, bool]]) -> None:
    if not isinstance(item, dict):
        raise ValidationError(f"{where} must be a dict/object.")
    for key, (expected, required) in keys.items():
        if key not in item:
            if required:
                raise ValidationError(f"{where} missing required key '{key}'.")
            continue
        value = item[key]
        if expected is float and not _is_number(value):
            raise ValidationError(f"{where}: '{key}' must be a number.")
        if expected is str and not isinstance(value, str):
            raise ValidationError(f"{where}: '{key}' must be a string.")


def validate_vertex_dict(v: Any, index: int) -> None:
    """Check one entry of ``draw(action='add_vertices', vertices=[...])``."""
    where = f"Vertex at index {index}"
    _check_item(v, where, _VERTEX_KEYS)
    for key in ("width", "height"):
        if key in v and v[key] <= 0:
            raise ValidationError(f"{where}: '{key}' must be > 0.")


def validate_edge_dict(e: Any, index: int) -> None:
    """Check one entry of ``draw(action='add_edges', edges=[...])``."""
    where = f"Edge at index {index}"
    _check_item(e, where, _EDGE_KEYS)
    for key in ("source_id", "target_id"):
        if not e[key].strip():
            raise ValidationError(f"{where}: '{key}' must be a non-empty string.")
    if e["source_id"] == e["target_id"]:
        raise ValidationError(
            f"{where}: 'source_id' and 'target_id' must be different "
            f"(self-loops not supported)."
        )


def validate_hull_dict(value: Any) -> dict[str, list[tuple[float, float]]]:
    """Explicit hulls: cell ID -> non-empty list of ``[x, y]`` pairs."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(
            f"'hulls' must be a dict mapping cell IDs to point lists, got {_kind(value)}."
        )
    hulls: dict[str, list[tuple[float, float]]] = {}
    for cid, pts in value.items():
        if not isinstance(cid, str) or not cid.strip():
            raise ValidationError("'hulls' keys must be non-empty cell ID strings.")
        if not isinstance(pts, list) or not pts:
            raise ValidationError(f"'hulls[{cid}]' must be a non-empty list of [x, y] pairs.")
        for i, pt in enumerate(pts):
            if not isinstance(pt, (list, tuple)) or len(pt) != 2 or not all(map(_is_number, pt)):
                raise ValidationError(f"'hulls[{cid}][{i}]' must be an [x, y] pair of numbers.")
        hulls[cid] = [(float(x), float(y)) for x, y in pts]
    return hulls

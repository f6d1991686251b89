"""
Document model for draw.io files.

Dataclasses mirroring the mxGraphModel schema closely enough to round-trip
what edge routing cares about: the containment tree (``parent``), folding
state (``collapsed`` plus ``alternateBounds``), vertex geometry and edge
waypoints. Anything else in an imported file (custom attributes, metadata)
is not preserved.
"""

from __future__ import annotations

import datetime
import html as _html
import uuid
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional

ROOT_ID = "0"
DEFAULT_LAYER_ID = "1"
STRUCTURAL_IDS = frozenset({ROOT_ID, DEFAULT_LAYER_ID})

FOLDED_SIZE = (120.0, 30.0)


class PageFormat(Enum):
    """Page sizes in draw.io units (px at 100 %)."""
    A4_PORTRAIT = (827, 1169)
    A4_LANDSCAPE = (1169, 827)
    LETTER_PORTRAIT = (850, 1100)
    LETTER_LANDSCAPE = (1100, 850)
    A3_PORTRAIT = (1169, 1654)
    A3_LANDSCAPE = (1654, 1169)
    INFINITE = (0, 0)  # no page: unbounded canvas


@dataclass(frozen=True)
class Point:
    """A 2-D coordinate. Immutable; operations return new points."""
    x: float
    y: float

    def translate(self, dx: float, dy: float) -> Point:
        return Point(self.x + dx, self.y + dy)

    def midpoint(self, other: Point) -> Point:
        return Point((self.x + other.x) / 2, (self.y + other.y) / 2)


@dataclass
class Geometry:
    """Box of a vertex, or a relative geometry carrying an edge's waypoints."""
    x: float = 0
    y: float = 0
    width: float = 120
    height: float = 60
    relative: bool = False
    points: list[Point] = field(default_factory=list)
    alternate_bounds: Optional[Geometry] = None  # the other size of a foldable container

    def box(self) -> dict[str, str]:
        return {
            "x": _num(self.x), "y": _num(self.y),
            "width": _num(self.width), "height": _num(self.height),
        }

    def to_element(self) -> ET.Element:
        el = ET.Element("mxGeometry")
        if self.relative:
            el.set("relative", "1")
        else:
            el.attrib.update(self.box())
        el.set("as", "geometry")
        if self.points:
            waypoints = ET.SubElement(el, "Array", {"as": "points"})
            for p in self.points:
                ET.SubElement(waypoints, "mxPoint", {"x": _num(p.x), "y": _num(p.y)})
        if self.alternate_bounds is not None:
            alt = ET.SubElement(el, "mxGeometry", self.alternate_bounds.box())
            alt.set("as", "alternateBounds")
        return el

    @classmethod
    def from_element(cls, el: ET.Element) -> Geometry:
        geom = cls(
            x=_float_attr(el, "x"),
            y=_float_attr(el, "y"),
            width=_float_attr(el, "width"),
            height=_float_attr(el, "height"),
            relative=el.get("relative") == "1",
        )
        waypoints = el.find("Array[@as='points']")
        if waypoints is not None:
            geom.points = [
                Point(_float_attr(p, "x"), _float_attr(p, "y"))
                for p in waypoints.iter("mxPoint")
            ]
        alt = el.find("mxGeometry[@as='alternateBounds']")
        if alt is not None:
            geom.alternate_bounds = cls(
                x=_float_attr(alt, "x"),
                y=_float_attr(alt, "y"),
                width=_float_attr(alt, "width"),
                height=_float_attr(alt, "height"),
            )
        return geom


@dataclass
class MxCell:
    """One mxCell: a vertex, an edge, a layer, or the root cell."""
    id: str
    value: str = ""
    style: str = ""
    parent: str = DEFAULT_LAYER_ID
    vertex: bool = False
    edge: bool = False
    source: Optional[str] = None
    target: Optional[str] = None
    collapsed: bool = False
    visible: bool = True
    geometry: Optional[Geometry] = None

    # ----- style tokens -----

    def style_value(self, key: str) -> str | None:
        """Value of ``key=value`` in the style string; ``""`` for a bare
        ``key`` token, None when absent."""
        for token in self.style.split(";"):
            name, sep, value = token.partition("=")
            if name.strip() == key:
                return value.strip() if sep else ""
        return None

    def set_style_value(self, key: str, value: str | None) -> None:
        """Set ``key=value`` in the style string, or drop *key* when value is None."""
        tokens = [
            t for t in self.style.split(";")
            if t.strip() and t.partition("=")[0].strip() != key
        ]
        if value is not None:
            tokens.append(f"{key}={value}")
        self.style = "".join(f"{t};" for t in tokens)

    # ----- XML -----

    def _attributes(self) -> Iterator[tuple[str, str]]:
        yield "id", self.id
        if self.value:
            # ET escapes on output, so undo any escaping done by the caller
            yield "value", _html.unescape(self.value)
        for name in ("style", "parent"):
            if getattr(self, name):
                yield name, getattr(self, name)
        for name in ("vertex", "edge"):
            if getattr(self, name):
                yield name, "1"
        for name in ("source", "target"):
            if getattr(self, name):
                yield name, getattr(self, name)
        if self.collapsed:
            yield "collapsed", "1"
        if not self.visible:
            yield "visible", "0"

    def to_element(self) -> ET.Element:
        el = ET.Element("mxCell", dict(self._attributes()))
        if self.geometry is not None:
            el.append(self.geometry.to_element())
        return el

    @classmethod
    def from_element(cls, el: ET.Element, wrapper: Optional[ET.Element] = None) -> MxCell:
        """Read an mxCell. With a wrapping ``<object>``/``<UserObject>``, the
        wrapper holds the cell's id and label."""
        geom_el = el.find("mxGeometry")
        cell_id = el.get("id", "")
        value = el.get("value", "")
        if wrapper is not None:
            cell_id = wrapper.get("id", cell_id)
            value = wrapper.get("label", value)
        return cls(
            id=cell_id,
            value=value,
            style=el.get("style", ""),
            parent=el.get("parent", ""),
            vertex=el.get("vertex") == "1",
            edge=el.get("edge") == "1",
            source=el.get("source"),
            target=el.get("target"),
            collapsed=el.get("collapsed") == "1",
            visible=el.get("visible") != "0",
            geometry=Geometry.from_element(geom_el) if geom_el is not None else None,
        )


@dataclass
class Diagram:
    """A single diagram page inside an mxfile."""
    name: str = "Page-1"
    id: str = field(default_factory=lambda: _uid())
    cells: list[MxCell] | None = None
    grid: bool = True
    grid_size: int = 10
    page: bool = True
    page_width: int = 827
    page_height: int = 1169
    background: str = "none"

    _next_id: int = field(default=2, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.cells is None:
            self.cells = [
                MxCell(id=ROOT_ID, parent=""),
                MxCell(id=DEFAULT_LAYER_ID, parent=ROOT_ID),
            ]

    def set_page_format(self, fmt: PageFormat) -> None:
        self.page = fmt is not PageFormat.INFINITE
        if self.page:
            self.page_width, self.page_height = fmt.value

    def next_id(self) -> str:
        while True:
            cid = str(self._next_id)
            self._next_id += 1
            if self.find_cell(cid) is None:
                return cid

    # ----- building -----

    def add_vertex(
        self,
        value: str,
        x: float,
        y: float,
        width: float = 120,
        height: float = 60,
        style: str = "rounded=1;whiteSpace=wrap;html=1;",
        parent: str = DEFAULT_LAYER_ID,
        cell_id: Optional[str] = None,
    ) -> str:
        cell = MxCell(
            id=cell_id or self.next_id(),
            value=value,
            style=style,
            parent=parent,
            vertex=True,
            geometry=Geometry(x, y, width, height),
        )
        self.cells.append(cell)
        return cell.id

    def add_edge(
        self,
        source: str,
        target: str,
        value: str = "",
        style: str = "endArrow=classic;html=1;",
        parent: str = DEFAULT_LAYER_ID,
        cell_id: Optional[str] = None,
        waypoints: Optional[list[Point]] = None,
    ) -> str:
        cell = MxCell(
            id=cell_id or self.next_id(),
            value=value,
            style=style,
            parent=parent,
            edge=True,
            source=source,
            target=target,
            geometry=Geometry(relative=True, points=list(waypoints or [])),
        )
        self.cells.append(cell)
        return cell.id

    def add_group(
        self,
        value: str,
        x: float,
        y: float,
        width: float = 300,
        height: float = 200,
        style: str = "swimlane;startSize=23;fontStyle=1;html=1;container=1;",
        parent: str = DEFAULT_LAYER_ID,
        cell_id: Optional[str] = None,
        collapsed: bool = False,
    ) -> str:
        """Add a foldable container (a swimlane unless *style* says otherwise)."""
        gid = self.add_vertex(value, x, y, width, height, style, parent, cell_id)
        if collapsed:
            self.set_collapsed(gid, True)
        return gid

    # ----- queries -----

    def find_cell(self, cell_id: str) -> MxCell | None:
        return next((c for c in self.cells if c.id == cell_id), None)

    def edges(self) -> list[MxCell]:
        return [c for c in self.cells if c.edge]

    # ----- editing -----

    def set_collapsed(
        self,
        cell_id: str,
        collapsed: bool,
        folded_size: tuple[float, float] = FOLDED_SIZE,
    ) -> bool:
        """Fold or unfold a container the way draw.io does.

        The current size and ``alternate_bounds`` trade places while the
        top-left corner stays put; the first fold uses *folded_size*.
        Descendants are not modified: their ``visible`` flags stay as they
        are and draw.io skips them while rendering a folded ancestor.

        Returns True if the cell changed state.
        """
        cell = self.find_cell(cell_id)
        if cell is None or not cell.vertex or cell.collapsed == collapsed:
            return False
        current = cell.geometry or Geometry()
        other = current.alternate_bounds
        if other is None and collapsed:
            other = Geometry(width=folded_size[0], height=folded_size[1])
        if other is not None:
            cell.geometry = Geometry(
                current.x, current.y, other.width, other.height,
                alternate_bounds=Geometry(current.x, current.y, current.width, current.height),
            )
        cell.collapsed = collapsed
        return True

    def delete_cells(self, cell_ids: list[str]) -> list[str]:
        """Delete cells together with their descendants and attached edges.

        The root cell and the default layer are never deleted. Returns the
        removed IDs in document order.
        """
        doomed = set(cell_ids) - STRUCTURAL_IDS
        grew = True
        while grew:
            before = len(doomed)
            doomed.update(
                c.id for c in self.cells
                if c.parent in doomed or c.source in doomed or c.target in doomed
            )
            grew = len(doomed) > before
        removed = [c.id for c in self.cells if c.id in doomed]
        self.cells = [c for c in self.cells if c.id not in doomed]
        return removed

    # ----- XML -----

    def to_element(self) -> ET.Element:
        model = ET.Element("mxGraphModel", {
            "grid": _flag(self.grid),
            "gridSize": str(self.grid_size),
            "fold": "1",
            "page": _flag(self.page),
            "pageScale": "1",
            "pageWidth": str(self.page_width),
            "pageHeight": str(self.page_height),
            "background": self.background,
        })
        root = ET.SubElement(model, "root")
        root.extend(c.to_element() for c in self.cells)
        page = ET.Element("diagram", {"name": self.name, "id": self.id})
        page.append(model)
        return page

    @classmethod
    def from_element(cls, page: ET.Element) -> Diagram | None:
        """Read a ``<diagram>`` page; None when it has no uncompressed model."""
        model = page.find("mxGraphModel")
        root = model.find("root") if model is not None else None
        if root is None:
            return None
        cells: list[MxCell] = []
        for el in root:
            if el.tag == "mxCell":
                cells.append(MxCell.from_element(el))
            elif el.tag in ("object", "UserObject"):
                inner = el.find("mxCell")
                if inner is not None:
                    cells.append(MxCell.from_element(inner, wrapper=el))
        d = cls(
            name=page.get("name", "Page"),
            id=page.get("id", "imported"),
            cells=cells,
            grid=model.get("grid", "1") == "1",
            grid_size=int(model.get("gridSize", "10")),
            page=model.get("page", "1") == "1",
            page_width=int(model.get("pageWidth", "827")),
            page_height=int(model.get("pageHeight", "1169")),
            background=model.get("background", "none"),
        )
        numeric = [int(c.id) for c in cells if c.id.isdigit()]
        d._next_id = max(numeric, default=1) + 1
        return d


@dataclass
class DrawioFile:
    """An ``<mxfile>``: one or more diagram pages."""
    diagrams: list[Diagram] | None = None
    host: str = "drawio-aggregate-mcp"
    agent: str = "drawio-aggregate-mcp/0.1"
    version: str = "24.7.17"

    def __post_init__(self) -> None:
        if self.diagrams is None:
            self.diagrams = [Diagram()]

    @property
    def active_diagram(self) -> Diagram:
        return self.diagrams[0]

    def to_xml(self) -> str:
        stamp = datetime.datetime.now(datetime.timezone.utc)
        mxfile = ET.Element("mxfile", {
            "host": self.host,
            "modified": stamp.strftime("%Y-%m-%dT%H:%M:%S.000Z"),
            "agent": self.agent,
            "version": self.version,
            "type": "device",
            "compressed": "false",
        })
        mxfile.extend(d.to_element() for d in self.diagrams)
        ET.indent(mxfile, space="  ")
        return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(mxfile, encoding="unicode")

    @classmethod
    def from_xml(cls, text: str) -> DrawioFile:
        """Parse an ``<mxfile>`` or a bare ``<mxGraphModel>``.

        Raises:
            ValueError: malformed XML, an unknown root element, or no
                readable page.
        """
        try:
            root = ET.fromstring(text)
        except ET.ParseError as exc:
            raise ValueError(f"malformed XML: {exc}") from exc
        if root.tag == "mxfile":
            pages = root.findall("diagram")
        elif root.tag == "mxGraphModel":
            wrapper = ET.Element("diagram", {"name": "Page-1", "id": "imported"})
            wrapper.append(root)
            pages = [wrapper]
        else:
            raise ValueError("unrecognized root element.")
        diagrams = [d for d in map(Diagram.from_element, pages) if d is not None]
        if not diagrams:
            raise ValueError("no readable diagram pages found.")
        return cls(diagrams=diagrams)


@dataclass
class CellBounds:
    """Axis-aligned box of a cell in page coordinates."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height


def snap_to_grid(value: float, grid_size: int = 10) -> float:
    return round(value / grid_size) * grid_size


def _uid() -> str:
    return uuid.uuid4().hex[:12]


def _num(value: float) -> str:
    """Integral floats print without the trailing '.0'."""
    value = float(value)
    return str(int(value)) if value.is_integer() else repr(value)


def _flag(value: bool) -> str:
    return "1" if value else "0"


def _float_attr(el: ET.Element, name: str) -> float:
    return float(el.get(name) or 0)

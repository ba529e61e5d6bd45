"""Mutable SVG layer document with stable leaf keys.

A layer SVG is parsed once with ``defusedxml``. Every drawable leaf gets a
``data-leaf`` key at parse time, and clones share those keys, so the
vector view and the raster view of a layer are matched by key rather
than by position. Keys are stripped again on serialization.

Squashing renames a leaf to ``<g>``: it stops drawing but stays in the
tree, keeps its key and is remembered in :attr:`VectorDocument.squashed`.
There is no operation that turns a squashed element back into a leaf.

Usage::

    doc = VectorDocument.parse(svg_text)
    for el in doc.leaves("circle"):
        ...
    doc.squash(el)
    raster_view = doc.clone()
    out = doc.to_string()
"""

from __future__ import annotations

import copy
import logging
import re
import xml.etree.ElementTree as ET
from typing import Dict, Iterator, List, Optional, Set, Tuple

from defusedxml import ElementTree as SafeET
from defusedxml.common import DefusedXmlException

logger = logging.getLogger(__name__)

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"

ET.register_namespace("", SVG_NS)
ET.register_namespace("xlink", XLINK_NS)

LEAF_KEY = "data-leaf"

DRAWABLE_TAGS = frozenset(
    ("path", "circle", "ellipse", "rect", "line", "polyline", "polygon", "text", "image")
)

# Length units relative to one inch.
_UNITS_PER_INCH = {
    "in": 1.0,
    "mm": 25.4,
    "cm": 2.54,
    "pt": 72.0,
    "pc": 6.0,
    "px": 90.0,
    "": 90.0,
}

_LENGTH_RE = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)\s*([a-z%]*)\s*$")
_NUMBER_RE = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")


class DocumentError(Exception):
    """Raised when an SVG document cannot be parsed or is structurally invalid."""

    pass


# ---------------------------------------------------------------------------
# Element helpers
# ---------------------------------------------------------------------------


def local_name(el: ET.Element) -> str:
    """Tag name without namespace (``{ns}path`` -> ``path``)."""
    tag = el.tag
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def parse_style(style: Optional[str]) -> Dict[str, str]:
    """Parse an inline ``style`` attribute into a dict."""
    result: Dict[str, str] = {}
    if not style:
        return result
    for decl in style.split(";"):
        if ":" not in decl:
            continue
        name, value = decl.split(":", 1)
        result[name.strip()] = value.strip()
    return result


def format_style(props: Dict[str, str]) -> str:
    return ";".join(f"{k}:{v}" for k, v in props.items())


def get_property(el: ET.Element, name: str) -> Optional[str]:
    """Read a presentation property; the ``style`` value wins over the attribute."""
    style = parse_style(el.get("style"))
    if name in style:
        return style[name]
    return el.get(name)


def set_property(el: ET.Element, name: str, value: str) -> None:
    """Write a presentation property to the attribute and, if present, the style."""
    el.set(name, value)
    style = parse_style(el.get("style"))
    if name in style:
        style[name] = value
        el.set("style", format_style(style))


def parse_length(value: Optional[str], default: float = 0.0) -> float:
    """Parse a unitless (user unit) length; trailing ``px`` is accepted."""
    if value is None:
        return default
    match = _NUMBER_RE.match(value.strip())
    if not match:
        return default
    return float(match.group(0))


def parse_float_list(value: Optional[str]) -> List[float]:
    return [float(v) for v in _NUMBER_RE.findall(value or "")]


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


class VectorDocument:
    """One parsed layer SVG.

    Parameters
    ----------
    root : ET.Element
        Root ``<svg>`` element, already carrying leaf keys

    Attributes
    ----------
    requires_raster : bool
        Raised by any squash that needs the raster fallback
    squashed : set[str]
        Keys of every squashed leaf, in this document
    """

    def __init__(self, root: ET.Element):
        self.root = root
        self.requires_raster = False
        self.squashed: Set[str] = set()
        self._ns = root.tag[1:].split("}", 1)[0] if root.tag.startswith("{") else ""
        self._next_key = 0
        for el in root.iter():
            key = el.get(LEAF_KEY)
            if key is not None and key.isdigit():
                self._next_key = max(self._next_key, int(key) + 1)
        self._parents: Optional[Dict[ET.Element, ET.Element]] = None

    # -- construction ------------------------------------------------------

    @classmethod
    def parse(cls, svg: str) -> "VectorDocument":
        """Parse SVG text and key every drawable leaf.

        Raises
        ------
        DocumentError
            If the text is blank, not well-formed XML, forbidden by
            defusedxml, or its root is not ``<svg>``
        """
        if svg is None or not svg.strip():
            raise DocumentError("SVG document is empty")
        try:
            root = SafeET.fromstring(svg)
        except (ET.ParseError, DefusedXmlException) as exc:
            raise DocumentError(f"Unable to parse SVG: {exc}") from exc

        if local_name(root) != "svg":
            raise DocumentError(f"Root element must be <svg>, got <{local_name(root)}>")

        doc = cls(root)
        for el in root.iter():
            if local_name(el) in DRAWABLE_TAGS and el.get(LEAF_KEY) is None:
                el.set(LEAF_KEY, doc.new_key())
        return doc

    def clone(self) -> "VectorDocument":
        """Deep copy sharing every leaf key, squash record and flag."""
        other = VectorDocument(copy.deepcopy(self.root))
        other.requires_raster = self.requires_raster
        other.squashed = set(self.squashed)
        other._next_key = max(other._next_key, self._next_key)
        return other

    def new_key(self) -> str:
        key = str(self._next_key)
        self._next_key += 1
        return key

    def make_element(self, name: str, attrib: Optional[Dict[str, str]] = None) -> ET.Element:
        """Create an element in this document's namespace (not yet inserted)."""
        tag = f"{{{self._ns}}}{name}" if self._ns else name
        return ET.Element(tag, attrib or {})

    # -- traversal ---------------------------------------------------------

    def _parent_map(self) -> Dict[ET.Element, ET.Element]:
        if self._parents is None:
            self._parents = {child: parent for parent in self.root.iter() for child in parent}
        return self._parents

    def parent(self, el: ET.Element) -> Optional[ET.Element]:
        return self._parent_map().get(el)

    def ancestors(self, el: ET.Element) -> Iterator[ET.Element]:
        """Yield parents from the nearest outward, root last."""
        node = self.parent(el)
        while node is not None:
            yield node
            node = self.parent(node)

    def leaves(self, *tags: str) -> List[ET.Element]:
        """Native drawable leaves in document order, optionally filtered by tag."""
        wanted = set(tags) if tags else DRAWABLE_TAGS
        return [
            el for el in self.root.iter()
            if local_name(el) in wanted and local_name(el) in DRAWABLE_TAGS
        ]

    def native_keys(self) -> Set[str]:
        """Keys of leaves that still draw as vectors."""
        return {el.get(LEAF_KEY) for el in self.leaves() if el.get(LEAF_KEY) is not None}

    def is_native(self, el: ET.Element) -> bool:
        return local_name(el) in DRAWABLE_TAGS

    # -- mutation ----------------------------------------------------------

    def squash(self, el: ET.Element, raster: bool = True) -> None:
        """Turn a leaf into an ink-less ``<g>``.

        Parameters
        ----------
        el : ET.Element
            Drawable leaf of this document
        raster : bool
            Raise :attr:`requires_raster`; False for removals that must
            not reappear through the raster fallback
        """
        if not self.is_native(el):
            return
        el.tag = f"{{{self._ns}}}g" if self._ns else "g"
        key = el.get(LEAF_KEY)
        if key is not None:
            self.squashed.add(key)
        if raster:
            self.requires_raster = True

    def insert_before(self, ref: ET.Element, new: ET.Element) -> None:
        parent = self._require_parent(ref)
        parent.insert(list(parent).index(ref), new)
        self._parent_map()[new] = parent

    def insert_after(self, ref: ET.Element, new: ET.Element) -> None:
        parent = self._require_parent(ref)
        parent.insert(list(parent).index(ref) + 1, new)
        self._parent_map()[new] = parent

    def remove(self, el: ET.Element) -> None:
        parent = self._require_parent(el)
        parent.remove(el)
        self._parents = None

    def _require_parent(self, el: ET.Element) -> ET.Element:
        parent = self.parent(el)
        if parent is None:
            raise DocumentError(f"<{local_name(el)}> has no parent in this document")
        return parent

    def hide(self, el: ET.Element) -> None:
        el.set("display", "none")

    def show(self, el: ET.Element) -> None:
        el.attrib.pop("display", None)
        style = parse_style(el.get("style"))
        if style.pop("display", None) is not None:
            el.set("style", format_style(style))

    # -- geometry of the document itself -----------------------------------

    def view_box(self) -> Optional[Tuple[float, float, float, float]]:
        """``(min_x, min_y, width, height)`` of the root viewBox, or None."""
        values = parse_float_list(self.root.get("viewBox"))
        if len(values) != 4 or values[2] <= 0 or values[3] <= 0:
            return None
        return (values[0], values[1], values[2], values[3])

    def size_inches(self) -> Tuple[float, float]:
        """Physical size from the root ``width``/``height``.

        Unitless values are 90 DPI pixels. Without width/height the
        viewBox size is used, read as pixels.

        Raises
        ------
        DocumentError
            If neither a usable width/height nor a viewBox is present,
            or a unit is not recognised
        """
        width = self.root.get("width")
        height = self.root.get("height")
        if width is None or height is None:
            vb = self.view_box()
            if vb is None:
                raise DocumentError("SVG has no width/height and no viewBox")
            return (vb[2] / _UNITS_PER_INCH["px"], vb[3] / _UNITS_PER_INCH["px"])
        return (_to_inches(width), _to_inches(height))

    # -- serialization -----------------------------------------------------

    def to_string(self) -> str:
        """Serialize without leaf keys."""
        root = copy.deepcopy(self.root)
        for el in root.iter():
            el.attrib.pop(LEAF_KEY, None)
        return ET.tostring(root, encoding="unicode")

    def __repr__(self) -> str:
        return (
            f"VectorDocument(leaves={len(self.leaves())}, squashed={len(self.squashed)}, "
            f"requires_raster={self.requires_raster})"
        )


def _to_inches(value: str) -> float:
    match = _LENGTH_RE.match(value)
    if not match:
        raise DocumentError(f"Cannot parse SVG length '{value}'")
    number, unit = float(match.group(1)), match.group(2)
    if unit not in _UNITS_PER_INCH:
        raise DocumentError(f"Unsupported SVG length unit '{unit}' in '{value}'")
    return number / _UNITS_PER_INCH[unit]


def is_blank(svg: Optional[str]) -> bool:
    """True for None, empty or whitespace-only SVG text."""
    return svg is None or not svg.strip()


def insert_before_close(svg: str, fragment: str) -> str:
    """Insert text immediately before the last ``</svg>``.

    Raises
    ------
    DocumentError
        If there is no closing ``</svg>`` tag
    """
    index = svg.rfind("</svg>")
    if index < 0:
        raise DocumentError("SVG text has no closing </svg> tag")
    return svg[:index] + fragment + svg[index:]

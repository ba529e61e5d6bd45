"""Monochrome rasterizer for PCB layer SVGs.

Renders a layer document with cairosvg into a uint8 bitmap, shape
(H, W): 255 is white background, 0 is black ink. The render is drawn
over white, decoded with Pillow, converted to luma and thresholded, so
anything rendered darker than ``ink_threshold`` is ink and the rest is
white; there are no gray levels.

cairosvg paints the full SVG model the layers use: fill and stroke with
inheritance and ``style``, dash arrays, line caps and joins, transforms,
text and ``data:`` images. Two things are removed before rendering:

    - images with any other href (no external fetches)
    - elements whose ``transform`` cannot be parsed

The rasterizer also answers geometry questions the clipper and the donut
normalizer need: an element's local bounds, its bounds in the parent
frame, and its bounds in document space grown by half its stroke. Path
bounds are exact (svgpathtools); text bounds come from Pillow's default
font and are an estimate.

Coordinate convention: user units map to pixels through
:class:`RasterFrame`; pixel ``i`` covers user interval
``[origin + i/scale, origin + (i+1)/scale)``.
"""

from __future__ import annotations

import copy
import io
import logging
import math
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Optional, Protocol, Tuple

import cairosvg
import numpy as np
from PIL import Image, ImageFont

from gerber_prep.svg import geometry, pathdata
from gerber_prep.svg.document import (
    XLINK_NS,
    DocumentError,
    VectorDocument,
    get_property,
    local_name,
    parse_float_list,
    parse_length,
    set_property,
)
from gerber_prep.svg.geometry import Rect

if TYPE_CHECKING:
    from gerber_prep.configs.loader import RasterConfig

logger = logging.getLogger(__name__)

_INHERITED = (
    "fill", "stroke", "stroke-width", "fill-opacity", "stroke-opacity",
    "font-size", "text-anchor", "visibility",
)
_DEFAULT_STYLE = {
    "fill": "#000000",
    "stroke": "none",
    "stroke-width": "1",
    "fill-opacity": "1",
    "stroke-opacity": "1",
    "font-size": "16",
    "text-anchor": "start",
    "visibility": "visible",
}

_NAMED_COLORS = {
    "black": (0, 0, 0),
    "white": (255, 255, 255),
    "red": (255, 0, 0),
    "green": (0, 128, 0),
    "lime": (0, 255, 0),
    "blue": (0, 0, 255),
    "yellow": (255, 255, 0),
    "cyan": (0, 255, 255),
    "magenta": (255, 0, 255),
    "gray": (128, 128, 128),
    "grey": (128, 128, 128),
    "silver": (192, 192, 192),
    "maroon": (128, 0, 0),
    "navy": (0, 0, 128),
    "olive": (128, 128, 0),
    "purple": (128, 0, 128),
    "teal": (0, 128, 128),
    "orange": (255, 165, 0),
}


# ---------------------------------------------------------------------------
# Colors
# ---------------------------------------------------------------------------


def parse_color(value: Optional[str]) -> Optional[Tuple[int, int, int]]:
    """Parse an SVG paint value to RGB.

    Returns
    -------
    tuple or None
        ``(r, g, b)`` in 0..255; None for ``none``/``transparent``/empty.
        Unknown paints (gradients, ``currentColor``) are black.
    """
    if value is None:
        return None
    text = value.strip().lower()
    if text in ("", "none", "transparent"):
        return None
    if text.startswith("#"):
        hexpart = text[1:]
        if len(hexpart) == 3:
            hexpart = "".join(c * 2 for c in hexpart)
        if len(hexpart) == 6:
            try:
                return tuple(int(hexpart[i:i + 2], 16) for i in (0, 2, 4))
            except ValueError:
                pass
        logger.debug("Unparseable color '%s', treating as ink", value)
        return (0, 0, 0)
    if text.startswith("rgb(") and text.endswith(")"):
        parts = [p.strip() for p in text[4:-1].split(",")]
        if len(parts) == 3:
            try:
                channels = []
                for p in parts:
                    if p.endswith("%"):
                        channels.append(int(round(float(p[:-1]) * 2.55)))
                    else:
                        channels.append(int(float(p)))
                return tuple(max(0, min(255, c)) for c in channels)
            except ValueError:
                pass
        return (0, 0, 0)
    return _NAMED_COLORS.get(text, (0, 0, 0))


# ---------------------------------------------------------------------------
# Frame
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RasterFrame:
    """Pixel grid over a region of user space.

    Attributes
    ----------
    width, height : int
        Image size in pixels
    origin_x, origin_y : float
        User coordinate of the image's top-left corner
    scale : float
        Pixels per user unit
    """

    width: int
    height: int
    origin_x: float = 0.0
    origin_y: float = 0.0
    scale: float = 1.0

    @classmethod
    def for_rect(cls, rect: Rect, padding: int = 2, scale: float = 1.0) -> "RasterFrame":
        """Frame covering ``rect`` at ``scale``: ceil of its size plus ``padding``."""
        x0, y0, x1, y1 = rect
        # Float noise such as 100.00000000000001 must not add a pixel.
        width = int(math.ceil(round((x1 - x0) * scale, 6))) + padding
        height = int(math.ceil(round((y1 - y0) * scale, 6))) + padding
        if width <= 0 or height <= 0:
            raise ValueError(f"Degenerate raster frame for rect {rect}")
        return cls(width=width, height=height, origin_x=x0, origin_y=y0, scale=scale)

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.height, self.width)

    @property
    def unit(self) -> float:
        """User units per pixel."""
        return 1.0 / self.scale

    def view_box(self) -> str:
        """``viewBox`` value showing exactly this frame's region of user space."""
        values = (self.origin_x, self.origin_y, self.width * self.unit, self.height * self.unit)
        return " ".join(repr(float(v)) for v in values)

    def blank(self) -> np.ndarray:
        return np.full(self.shape, 255, dtype=np.uint8)

    def pixel_to_user(self, px: float, py: float) -> Tuple[float, float]:
        """User coordinate of a pixel position (pixel centers at ``i + 0.5``)."""
        return (self.origin_x + px / self.scale, self.origin_y + py / self.scale)

    def pixel_region(
        self,
        rect: Rect,
        clamp: Optional[Rect] = None
    ) -> Optional[Tuple[int, int, int, int]]:
        """Pixels touched by a user-space rect, as ``(x0, y0, x1, y1)`` with exclusive ends.

        Parameters
        ----------
        rect : Rect
            Region in user units
        clamp : Rect, optional
            Additional user-space rect the region is clipped to

        Returns
        -------
        tuple or None
            None when the clipped region is empty
        """
        if clamp is not None:
            rect = (
                max(rect[0], clamp[0]), max(rect[1], clamp[1]),
                min(rect[2], clamp[2]), min(rect[3], clamp[3]),
            )
        s = self.scale
        x0 = max(0, int(math.floor((rect[0] - self.origin_x) * s)))
        y0 = max(0, int(math.floor((rect[1] - self.origin_y) * s)))
        x1 = min(self.width, int(math.ceil((rect[2] - self.origin_x) * s)))
        y1 = min(self.height, int(math.ceil((rect[3] - self.origin_y) * s)))
        if x1 <= x0 or y1 <= y0:
            return None
        return (x0, y0, x1, y1)


class Renderer(Protocol):
    """Anything that turns a document into a monochrome bitmap."""

    def render(self, doc: VectorDocument, frame: RasterFrame) -> np.ndarray:
        ...


# ---------------------------------------------------------------------------
# Rasterizer
# ---------------------------------------------------------------------------


class SvgRasterizer:
    """cairosvg-backed monochrome renderer and element-bounds oracle.

    Parameters
    ----------
    ink_threshold : int
        Rendered luma below this is ink (0), the rest white (255)
    """

    def __init__(self, ink_threshold: int = 128):
        self.ink_threshold = ink_threshold

    @classmethod
    def from_config(cls, cfg: "RasterConfig") -> "SvgRasterizer":
        return cls(ink_threshold=cfg.ink_threshold)

    # -- rendering ---------------------------------------------------------

    def render(self, doc: VectorDocument, frame: RasterFrame) -> np.ndarray:
        """Render a document into a new bitmap of ``frame.shape``.

        Parameters
        ----------
        doc : VectorDocument
            Layer document; not modified
        frame : RasterFrame
            Region of user space and pixel grid to render

        Returns
        -------
        np.ndarray
            Shape (H, W), uint8, values 0 (ink) and 255
        """
        svg = self._prepare(doc, frame)
        png_bytes = cairosvg.svg2png(bytestring=svg, background_color="white")
        with Image.open(io.BytesIO(png_bytes)) as image:
            gray = np.asarray(image.convert("L"), dtype=np.uint8)
        if gray.shape != frame.shape:
            raise DocumentError(f"Render size {gray.shape} does not match frame {frame.shape}")
        return np.where(gray < self.ink_threshold, 0, 255).astype(np.uint8)

    def render_string(self, svg: str, frame: RasterFrame) -> np.ndarray:
        """Parse and render SVG text.

        Raises
        ------
        DocumentError
            If the text cannot be parsed
        """
        return self.render(VectorDocument.parse(svg), frame)

    def _prepare(self, doc: VectorDocument, frame: RasterFrame) -> bytes:
        """Serialize a copy of ``doc`` sized and windowed to ``frame``."""
        root = copy.deepcopy(doc.root)
        root.set("width", str(frame.width))
        root.set("height", str(frame.height))
        root.set("viewBox", frame.view_box())
        root.set("preserveAspectRatio", "none")

        for el in root.iter():
            try:
                geometry.parse_transform(el.get("transform"))
            except ValueError as exc:
                logger.warning("Not rendering <%s id=%s>: %s", local_name(el), el.get("id"), exc)
                set_property(el, "display", "none")
            if local_name(el) == "image" and not _image_href(el).startswith("data:"):
                logger.debug("Not rendering <image id=%s>: only data URIs are drawn", el.get("id"))
                set_property(el, "display", "none")

        return ET.tostring(root, encoding="utf-8")

    # -- geometry ----------------------------------------------------------

    def local_bounds(self, el: ET.Element) -> Optional[Rect]:
        """Geometry bounds in the element's own coordinate system (no stroke)."""
        name = local_name(el)
        try:
            if name == "circle":
                r = parse_length(el.get("r"))
                cx, cy = parse_length(el.get("cx")), parse_length(el.get("cy"))
                return (cx - r, cy - r, cx + r, cy + r)
            if name == "ellipse":
                rx, ry = parse_length(el.get("rx")), parse_length(el.get("ry"))
                cx, cy = parse_length(el.get("cx")), parse_length(el.get("cy"))
                return (cx - rx, cy - ry, cx + rx, cy + ry)
            if name in ("rect", "image"):
                x, y = parse_length(el.get("x")), parse_length(el.get("y"))
                w, h = parse_length(el.get("width")), parse_length(el.get("height"))
                return (x, y, x + w, y + h)
            if name == "line":
                return geometry.points_bbox(np.array([
                    [parse_length(el.get("x1")), parse_length(el.get("y1"))],
                    [parse_length(el.get("x2")), parse_length(el.get("y2"))],
                ]))
            if name in ("polyline", "polygon"):
                values = parse_float_list(el.get("points"))
                return geometry.points_bbox(np.array(values[: len(values) // 2 * 2]))
            if name == "path":
                return pathdata.bounds(el.get("d") or "")
            if name == "text":
                return _text_bounds(el)
        except (ValueError, pathdata.PathDataError) as exc:
            logger.debug("No bounds for <%s id=%s>: %s", name, el.get("id"), exc)
        return None

    def computed_style(self, doc: VectorDocument, el: ET.Element) -> Dict[str, str]:
        """Inherited presentation properties of ``el``."""
        style = dict(_DEFAULT_STYLE)
        for node in list(reversed(list(doc.ancestors(el)))) + [el]:
            style = _inherit(style, node)
        return style

    def cumulative_matrix(self, doc: VectorDocument, el: ET.Element) -> np.ndarray:
        """Product of every ancestor-or-self ``transform``.

        Raises
        ------
        DocumentError
            If any transform on the chain cannot be parsed
        """
        matrix = geometry.IDENTITY.copy()
        for node in list(reversed(list(doc.ancestors(el)))) + [el]:
            try:
                matrix = matrix @ geometry.parse_transform(node.get("transform"))
            except ValueError as exc:
                raise DocumentError(str(exc)) from exc
        return matrix

    def stroke_width(self, doc: VectorDocument, el: ET.Element) -> float:
        """Effective stroke width; 0 when the stroke paints nothing."""
        style = self.computed_style(doc, el)
        if parse_color(style["stroke"]) is None or _is_zero(style["stroke-opacity"]):
            return 0.0
        return max(0.0, parse_length(style["stroke-width"], 1.0))

    def mapped_bounds(self, doc: VectorDocument, el: ET.Element) -> Optional[Rect]:
        """Document-space bounds grown by half the stroke width.

        Returns
        -------
        Rect or None
            None when the element has no measurable geometry
        """
        local = self.local_bounds(el)
        if local is None:
            return None
        grown = geometry.grow_rect(local, self.stroke_width(doc, el) / 2.0)
        return geometry.map_rect(self.cumulative_matrix(doc, el), grown)

    def parent_bounds(self, el: ET.Element) -> Optional[Rect]:
        """Geometry bounds in the parent's coordinate system."""
        local = self.local_bounds(el)
        if local is None:
            return None
        try:
            own = geometry.parse_transform(el.get("transform"))
        except ValueError as exc:
            raise DocumentError(str(exc)) from exc
        return geometry.map_rect(own, local)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _inherit(parent_style: Dict[str, str], el: ET.Element) -> Dict[str, str]:
    style = dict(parent_style)
    for prop in _INHERITED:
        value = get_property(el, prop)
        if value is not None and value.strip() and value.strip() != "inherit":
            style[prop] = value.strip()
    return style


def _is_zero(value: Optional[str]) -> bool:
    if value is None:
        return False
    try:
        return float(value.strip().rstrip("%")) <= 0.0
    except ValueError:
        return False


def _first(value: Optional[str]) -> float:
    values = parse_float_list(value)
    return values[0] if values else 0.0


def _image_href(el: ET.Element) -> str:
    return el.get(f"{{{XLINK_NS}}}href") or el.get("href") or ""


def _text_bounds(el: ET.Element) -> Optional[Rect]:
    text = "".join(el.itertext()).strip()
    if not text:
        return None
    font_size = parse_length(get_property(el, "font-size"), 16.0)
    if font_size <= 0:
        return None
    font = ImageFont.load_default(size=font_size)
    left, top, right, bottom = font.getbbox(text, anchor="ls")

    x, y = _first(el.get("x")), _first(el.get("y"))
    anchor = get_property(el, "text-anchor") or "start"
    if anchor == "middle":
        x -= font.getlength(text) / 2.0
    elif anchor == "end":
        x -= font.getlength(text)
    return (x + left, y + top, x + right, y + bottom)

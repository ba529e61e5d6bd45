"""Outline extraction: raster outline shapes back to closed polygons.

The board outline must stay a set of closed shapes, so the scanline
run tracer is not used for it. Each raster-fallback path of the outline
is rendered on its own and handed to a :class:`PolygonExtractor`; when
the outline is drawn with something other than a path, the whole raster
view is rendered once.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol

import cv2
import numpy as np

from gerber_prep.configs.loader import OutlineConfig
from gerber_prep.render.rasterizer import RasterFrame, Renderer
from gerber_prep.svg.document import VectorDocument, insert_before_close
from gerber_prep.svg.pathdata import format_number

logger = logging.getLogger(__name__)


def clean_outline(svg: str, board_outline_id: str = "boardoutline") -> str:
    """Keep only the board outline leaf when the outline layer has several.

    Returns
    -------
    str
        ``""`` when the document has no drawable leaves, the input when
        it has one leaf or no leaf with ``board_outline_id``, otherwise
        the document reduced to that leaf

    Raises
    ------
    DocumentError
        If the SVG cannot be parsed
    """
    doc = VectorDocument.parse(svg)
    leaves = doc.leaves()
    if not leaves:
        return ""
    if len(leaves) == 1:
        return svg

    keep = next((el for el in leaves if el.get("id") == board_outline_id), None)
    if keep is None:
        return svg
    for el in leaves:
        if el is not keep:
            doc.remove(el)
    logger.debug("Outline reduced to '%s' (%d other leaves removed)",
                 board_outline_id, len(leaves) - 1)
    return doc.to_string()


class PolygonExtractor(Protocol):
    """Turns an inverted outline render into SVG path elements."""

    def extract(self, bitmap: np.ndarray, frame: RasterFrame, layer_name: str) -> List[str]:
        ...


class ContourPolygonExtractor:
    """Polygon extractor backed by ``cv2.findContours``.

    Each outer contour and its holes become one ``evenodd`` filled path,
    simplified with ``cv2.approxPolyDP``.

    Parameters
    ----------
    approx_epsilon_px : float
        Douglas-Peucker tolerance in pixels; 0 keeps every vertex
    min_area_px : float
        Outer contours smaller than this are dropped as noise
    color : str
        Fill color of emitted paths
    """

    def __init__(
        self,
        approx_epsilon_px: float = 1.0,
        min_area_px: float = 4.0,
        color: str = "#000000"
    ):
        self.approx_epsilon_px = approx_epsilon_px
        self.min_area_px = min_area_px
        self.color = color

    @classmethod
    def from_config(cls, cfg: OutlineConfig, color: str = "#000000") -> "ContourPolygonExtractor":
        return cls(cfg.approx_epsilon_px, cfg.min_area_px, color)

    def _ring(self, contour: np.ndarray, frame: RasterFrame) -> str:
        if self.approx_epsilon_px > 0:
            contour = cv2.approxPolyDP(contour, self.approx_epsilon_px, True)
        pts = contour.reshape(-1, 2).astype(np.float64)
        coords = [frame.pixel_to_user(x + 0.5, y + 0.5) for x, y in pts]
        head = f"M{format_number(coords[0][0])},{format_number(coords[0][1])}"
        tail = "".join(f"L{format_number(x)},{format_number(y)}" for x, y in coords[1:])
        return head + tail + "z"

    def extract(self, bitmap: np.ndarray, frame: RasterFrame, layer_name: str) -> List[str]:
        mask = (bitmap == 255).astype(np.uint8) * 255
        contours, hierarchy = cv2.findContours(mask, cv2.RETR_CCOMP, cv2.CHAIN_APPROX_SIMPLE)
        if hierarchy is None:
            return []

        hierarchy = hierarchy.reshape(-1, 4)
        paths: List[str] = []
        for index, (_next, _prev, child, parent) in enumerate(hierarchy):
            if parent != -1:
                continue
            if cv2.contourArea(contours[index]) < self.min_area_px:
                continue
            rings = [self._ring(contours[index], frame)]
            while child != -1:
                rings.append(self._ring(contours[child], frame))
                child = hierarchy[child][0]
            paths.append(
                f"<path fill='{self.color}' stroke='none' fill-rule='evenodd' "
                f"d='{' '.join(rings)}' />\n"
            )

        logger.debug("%s: extracted %d polygon(s)", layer_name, len(paths))
        return paths


class OutlineExtractor:
    """Render outline shapes one at a time and merge the polygons.

    Parameters
    ----------
    renderer : Renderer
        Monochrome renderer
    polygon_extractor : PolygonExtractor, optional
        Defaults to :class:`ContourPolygonExtractor`
    """

    def __init__(
        self,
        renderer: Renderer,
        polygon_extractor: Optional[PolygonExtractor] = None
    ):
        self.renderer = renderer
        self.polygon_extractor = polygon_extractor or ContourPolygonExtractor()

    def _render_inverted(self, raster_doc: VectorDocument, frame: RasterFrame) -> np.ndarray:
        return cv2.bitwise_not(self.renderer.render(raster_doc, frame))

    def extract(
        self,
        raster_doc: VectorDocument,
        svg_string: str,
        frame: RasterFrame,
        layer_name: str
    ) -> str:
        """Merge polygons of the raster view's shapes into ``svg_string``.

        Parameters
        ----------
        raster_doc : VectorDocument
            Raster view, already reduced to raster-fallback elements
        svg_string : str
            Serialized vector view to merge into
        frame : RasterFrame
            Pixel grid over the board
        layer_name : str
            For logging and the extractor
        """
        paths = raster_doc.leaves("path")
        fragments: List[str] = []

        if not paths:
            bitmap = self._render_inverted(raster_doc, frame)
            fragments.extend(self.polygon_extractor.extract(bitmap, frame, layer_name))
        else:
            for path in paths:
                raster_doc.hide(path)
            for path in paths:
                raster_doc.show(path)
                bitmap = self._render_inverted(raster_doc, frame)
                fragments.extend(self.polygon_extractor.extract(bitmap, frame, layer_name))
                raster_doc.hide(path)

        if not fragments:
            logger.warning("%s: outline extraction produced no polygons", layer_name)
            return svg_string
        return insert_before_close(svg_string, "".join(fragments))

"""Board clipping for one layer document.

``BoardClipper.clip_to_board`` is the entry point of the sanitizing
pipeline. For one layer SVG it:

    1. parses it into the vector view
    2. squashes bare non-connector holes (except for drill)
    3. turns donut pads back into circles
    4. splits multi-contour outlines
    5. clones the raster view
    6. runs feature reduction on the vector view
    7. squashes leaves whose bounds cross the board (possible holes kept)
    8. squashes leaves colliding with the clip mask, if any
    9. traces (or, for the outline, polygonizes) the raster view when
       anything was squashed

Nothing raises out of ``clip_to_board``: a parse failure or an invalid
geometry yields an empty :class:`ClipResult` carrying a diagnostic.

Units: the board rect is in authoring units and is scaled to output
units once; layer documents are already in output units.
"""

from __future__ import annotations

import enum
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import List, Optional, Set

import numpy as np

from gerber_prep.configs.loader import ExportConfig
from gerber_prep.pipeline.board import BoardRect
from gerber_prep.pipeline.connectors import ConnectorMap
from gerber_prep.pipeline.contours import CUTOUT_DIAGNOSTIC, ContourSplit, split_contours
from gerber_prep.pipeline.donuts import normalize_donuts
from gerber_prep.pipeline.outline import ContourPolygonExtractor, OutlineExtractor, PolygonExtractor
from gerber_prep.pipeline.raster_trace import RasterTraceEngine, prepare_raster_view
from gerber_prep.pipeline.reducer import FeatureReducer
from gerber_prep.render.rasterizer import RasterFrame, SvgRasterizer
from gerber_prep.svg.document import (
    LEAF_KEY,
    DocumentError,
    VectorDocument,
    get_property,
    is_blank,
    local_name,
    parse_length,
    set_property,
)
from gerber_prep.svg.pathdata import format_number

logger = logging.getLogger(__name__)


class ClipPurpose(enum.Enum):
    """What the clipped layer is for; selects the passes that apply."""

    COPPER = "copper"
    SILK = "silk"
    MASK = "mask"
    OUTLINE = "outline"
    DRILL = "drill"

    @property
    def skip_bounds(self) -> bool:
        """Outline and drill geometry is never cut at the board edge."""
        return self in (ClipPurpose.OUTLINE, ClipPurpose.DRILL)

    @property
    def removes_bare_holes(self) -> bool:
        return self is not ClipPurpose.DRILL


@dataclass
class ClipResult:
    """Outcome of one ``clip_to_board`` call.

    Attributes
    ----------
    svg : str
        Sanitized SVG; empty on failure or for an empty document
    used_raster : bool
        True if the raster fallback contributed content
    contours : ContourSplit
        Result of multi-contour splitting (outline only)
    diagnostics : list[str]
        User-facing messages raised while clipping
    donuts : int
        Donut paths converted to circles
    clipped : int
        Leaves squashed by the bounds and collision passes
    """

    svg: str = ""
    used_raster: bool = False
    contours: ContourSplit = ContourSplit.NONE
    diagnostics: List[str] = field(default_factory=list)
    donuts: int = 0
    clipped: int = 0

    @property
    def empty(self) -> bool:
        return is_blank(self.svg)

    @property
    def rejected(self) -> bool:
        return self.contours is ContourSplit.REJECTED


class BoardClipper:
    """Sanitize and clip layer documents against the board.

    Parameters
    ----------
    config : ExportConfig, optional
        Resolutions, tolerances and raster settings
    renderer : SvgRasterizer, optional
        Renderer and bounds oracle; built from ``config`` by default
    reducer : FeatureReducer, optional
        Defaults to the standard rule set
    polygon_extractor : PolygonExtractor, optional
        Outline polygonizer; defaults to the OpenCV contour extractor
    """

    def __init__(
        self,
        config: Optional[ExportConfig] = None,
        renderer: Optional[SvgRasterizer] = None,
        reducer: Optional[FeatureReducer] = None,
        polygon_extractor: Optional[PolygonExtractor] = None
    ):
        self.config = config or ExportConfig()
        self.renderer = renderer or SvgRasterizer.from_config(self.config.raster)
        self.reducer = reducer or FeatureReducer()
        self.trace_engine = RasterTraceEngine(self.renderer, self.config.raster)
        self.outline_extractor = OutlineExtractor(
            self.renderer,
            polygon_extractor or ContourPolygonExtractor.from_config(
                self.config.outline, self.config.raster.trace_color
            ),
        )

    def clip_to_board(
        self,
        svg: str,
        board_rect: BoardRect,
        layer_name: str,
        purpose: ClipPurpose,
        clip_svg: str = "",
        connectors: Optional[ConnectorMap] = None
    ) -> ClipResult:
        """Sanitize one layer SVG and clip it to the board.

        Parameters
        ----------
        svg : str
            Layer SVG in output units
        board_rect : BoardRect
            Board size in authoring units
        layer_name : str
            Used in logs and diagnostics
        purpose : ClipPurpose
            Selects bare-hole removal, bounds pass and outline handling
        clip_svg : str
            Clipped SVG of the mask layer for this side; ink in it removes
            overlapping content
        connectors : ConnectorMap, optional
            Enables donut normalization

        Returns
        -------
        ClipResult
            Empty ``svg`` when the document is empty, malformed or rejected
        """
        try:
            return self._clip(svg, board_rect, layer_name, purpose, clip_svg, connectors)
        except DocumentError as exc:
            logger.warning("%s: cannot clip layer: %s", layer_name, exc)
            return ClipResult(diagnostics=[f"{layer_name}: {exc}"])
        except ValueError as exc:
            logger.warning("%s: invalid geometry: %s", layer_name, exc)
            return ClipResult(diagnostics=[f"{layer_name}: {exc}"])

    # -- stages ------------------------------------------------------------

    def _clip(
        self,
        svg: str,
        board_rect: BoardRect,
        layer_name: str,
        purpose: ClipPurpose,
        clip_svg: str,
        connectors: Optional[ConnectorMap]
    ) -> ClipResult:
        cfg = self.config
        doc = VectorDocument.parse(svg)
        if len(doc.root) == 0:
            logger.info("%s: document has no content", layer_name)
            return ClipResult()

        result = ClipResult()

        if purpose.removes_bare_holes:
            removed = self._remove_bare_holes(doc)
            if removed:
                logger.debug("%s: removed %d bare hole(s)", layer_name, removed)

        result.donuts = normalize_donuts(doc, connectors, self.renderer, cfg.resolution)

        if purpose is ClipPurpose.OUTLINE:
            result.contours = split_contours(doc)
            if result.rejected:
                result.diagnostics.append(CUTOUT_DIAGNOSTIC)
                return result

        raster_doc = doc.clone()
        self.reducer.reduce(doc)

        device = board_rect.to_device(cfg.resolution.scale)
        frame = RasterFrame.for_rect(device.as_rect(), padding=cfg.clipping.grid_padding_px)
        clip_mask = self._render_clip_mask(clip_svg, frame, layer_name)

        layer_keys = doc.native_keys()
        if not purpose.skip_bounds:
            result.clipped += self._bounds_pass(doc, device)
        if clip_mask is not None:
            result.clipped += self._collision_pass(doc, device, frame, clip_mask, layer_keys)

        if not doc.requires_raster:
            result.svg = doc.to_string()
            logger.info("%s: %d leaves kept as vectors", layer_name, len(doc.leaves()))
            return result

        logger.info(
            "%s: raster fallback for %d squashed element(s), %d clipped",
            layer_name, len(doc.squashed), result.clipped,
        )
        if purpose is ClipPurpose.OUTLINE:
            prepare_raster_view(doc, raster_doc, cfg.raster.trace_color)
            result.svg = self.outline_extractor.extract(
                raster_doc, doc.to_string(), frame, layer_name
            )
        else:
            result.svg = self.trace_engine.rasterize(doc, raster_doc, frame, clip_mask)
        result.used_raster = True
        return result

    def _remove_bare_holes(self, doc: VectorDocument) -> int:
        """Squash unstroked non-connector circles; they never reach the raster view."""
        marker = self.config.clipping.nonconnector_marker
        holes = [
            el for el in doc.leaves("circle")
            if marker in (el.get("id") or "")
            and parse_length(get_property(el, "stroke-width"), 0.0) == 0
        ]
        for el in holes:
            doc.squash(el, raster=False)
        return len(holes)

    def _render_clip_mask(
        self,
        clip_svg: str,
        frame: RasterFrame,
        layer_name: str
    ) -> Optional[np.ndarray]:
        if is_blank(clip_svg):
            return None
        try:
            return self.renderer.render_string(clip_svg, frame)
        except DocumentError as exc:
            logger.warning("%s: ignoring unparseable clip mask: %s", layer_name, exc)
            return None

    def _crosses(self, doc: VectorDocument, el: ET.Element, device: BoardRect) -> bool:
        bounds = self.renderer.mapped_bounds(doc, el)
        if bounds is None:
            return False
        return not device.contains(bounds, self.config.clipping.margin)

    def _bounds_pass(self, doc: VectorDocument, device: BoardRect) -> int:
        """Squash leaves crossing the board; retry crossing circles as holes."""
        possible_holes = []
        clipped = 0
        for el in doc.leaves():
            if not self._crosses(doc, el, device):
                continue
            if local_name(el) == "circle":
                possible_holes.append(el)
            doc.squash(el)
            clipped += 1

        for circle in possible_holes:
            self._try_hole(doc, circle, device)
        return clipped

    def _try_hole(self, doc: VectorDocument, circle: ET.Element, device: BoardRect) -> None:
        """Keep the inner disc of a clipped circle when it lies on the board."""
        clip_cfg = self.config.clipping
        radius = parse_length(circle.get("r"))
        stroke = parse_length(get_property(circle, "stroke-width"), 0.0)

        attrib = {k: v for k, v in circle.attrib.items() if k != LEAF_KEY}
        hole = doc.make_element("circle", attrib)
        hole.set(LEAF_KEY, doc.new_key())
        if circle.get("id"):
            hole.set("id", f"{circle.get('id')}_hole")
        set_property(hole, "stroke-width", "0")
        hole.set("r", format_number(radius - stroke / 2.0))
        doc.insert_after(circle, hole)

        if self._crosses(doc, hole, device):
            doc.remove(hole)
            return
        hole.set("r", format_number(radius - stroke / 2.0 + clip_cfg.hole_radius_growth))
        set_property(hole, "stroke-width", format_number(clip_cfg.hole_stroke_width))
        logger.debug("Kept possible hole %s r=%s", hole.get("id"), hole.get("r"))

    def _collision_pass(
        self,
        doc: VectorDocument,
        device: BoardRect,
        frame: RasterFrame,
        clip_mask: np.ndarray,
        layer_keys: Set[str]
    ) -> int:
        """Squash layer leaves whose ink overlaps clip-mask ink.

        Only leaves keyed in ``layer_keys`` are tested; hole circles added
        by the bounds pass have no raster counterpart and are left alone.
        """
        rendered = self.renderer.render(doc, frame)
        board = device.as_rect()
        clipped = 0
        for el in doc.leaves():
            if el.get(LEAF_KEY) not in layer_keys:
                continue
            bounds = self.renderer.mapped_bounds(doc, el)
            if bounds is None:
                continue
            region = frame.pixel_region(bounds, clamp=board)
            if region is None:
                continue
            x0, y0, x1, y1 = region
            overlap = (rendered[y0:y1, x0:x1] == 0) & (clip_mask[y0:y1, x0:x1] == 0)
            if np.any(overlap):
                doc.squash(el)
                clipped += 1
        return clipped

"""Raster fallback: render what could not stay vector, trace it back.

Steps for one layer:
    1. In the raster view, squash every element still native in the
       vector view (those are emitted as vectors directly)
    2. Recolor all remaining paint to a single ink color
    3. Render until two renders hash the same (bounded attempts)
    4. Knock out clip-mask ink
    5. Trace each horizontal run of ink as one stroked segment
    6. Append the traced path to the vector view's SVG text

The renderer is not trusted to be deterministic; ``render_until_stable``
is the only loop with a ceiling in the pipeline, and its cache lives only
for one call.

Bitmap conventions: renders are white (255) background with black (0)
ink; the stable render is inverted, so traced runs are the 255 pixels.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import cv2
import numpy as np

from gerber_prep.configs.loader import RasterConfig
from gerber_prep.render.rasterizer import RasterFrame, Renderer
from gerber_prep.svg.document import (
    LEAF_KEY,
    VectorDocument,
    get_property,
    insert_before_close,
    set_property,
)
from gerber_prep.svg.pathdata import format_number
from gerber_prep.utils.hashing import sha256_bitmap

logger = logging.getLogger(__name__)

_PAINT_PROPS = ("fill", "stroke")
_UNPAINTED = ("none", "")


@dataclass(frozen=True)
class StableRender:
    """Outcome of :func:`render_until_stable`.

    Attributes
    ----------
    bitmap : np.ndarray
        Accepted inverted render (ink 255), shape (H, W), uint8
    attempts : int
        Number of renders performed
    stable : bool
        True if the accepted digest had been seen before
    digest : str
        SHA-256 of the accepted bitmap's PNG encoding
    """

    bitmap: np.ndarray
    attempts: int
    stable: bool
    digest: str


def render_until_stable(
    render: Callable[[], np.ndarray],
    max_attempts: int = 6
) -> StableRender:
    """Render repeatedly until a digest repeats.

    Parameters
    ----------
    render : callable
        Produces one monochrome render (ink 0) per call
    max_attempts : int
        Upper bound on calls to ``render``, default 6 (5 retries)

    Returns
    -------
    StableRender
        The repeated render, or the last one when the bound is reached

    Raises
    ------
    ValueError
        If ``max_attempts`` is less than 1
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    seen: Dict[str, np.ndarray] = {}
    bitmap: Optional[np.ndarray] = None
    digest = ""
    for attempt in range(1, max_attempts + 1):
        bitmap = cv2.bitwise_not(render())
        digest = sha256_bitmap(bitmap)
        if digest in seen:
            logger.debug("Render stable after %d attempt(s): %s", attempt, digest[:12])
            return StableRender(seen[digest], attempt, True, digest)
        seen[digest] = bitmap

    logger.warning(
        "Render did not stabilize after %d attempts; using the last render", max_attempts
    )
    return StableRender(bitmap, max_attempts, False, digest)


def subtract_clip(bitmap: np.ndarray, clip_mask: np.ndarray) -> np.ndarray:
    """Force every pixel that is ink in ``clip_mask`` (value 0) to 0.

    Raises
    ------
    ValueError
        If the shapes differ
    """
    if bitmap.shape != clip_mask.shape:
        raise ValueError(
            f"Clip mask shape {clip_mask.shape} does not match bitmap {bitmap.shape}"
        )
    out = bitmap.copy()
    out[clip_mask == 0] = 0
    return out


def find_runs(bitmap: np.ndarray) -> List[Tuple[int, int, int]]:
    """Maximal horizontal runs of 255 pixels as ``(y, x_start, x_end)``, row-major."""
    h = bitmap.shape[0]
    white = (bitmap == 255).astype(np.int8)
    pad = np.zeros((h, 1), dtype=np.int8)
    edges = np.diff(np.hstack([pad, white, pad]), axis=1)
    ys, starts = np.nonzero(edges == 1)
    _, ends = np.nonzero(edges == -1)
    return [(int(y), int(x0), int(x1) - 1) for y, x0, x1 in zip(ys, starts, ends)]


def trace_runs(
    bitmap: np.ndarray,
    unit: float = 1.0,
    color: str = "#000000",
    batch: int = 10,
    origin: Tuple[float, float] = (0.0, 0.0)
) -> str:
    """Trace white runs as a single stroked SVG path element.

    Parameters
    ----------
    bitmap : np.ndarray
        Inverted render, shape (H, W); runs of 255 are traced
    unit : float
        User units per pixel; also the stroke width
    color : str
        Stroke color
    batch : int
        Segments per line of path data
    origin : tuple of float
        User coordinate of the bitmap's top-left corner

    Returns
    -------
    str
        ``<path .../>`` followed by a newline, or ``""`` with no runs

    Notes
    -----
    Each run ``x0..x1`` on row ``y`` becomes ``M{x0+½},{y+½}L{x1+½},{y+½}``
    in pixel units, mapped through ``origin`` and ``unit``.
    """
    runs = find_runs(bitmap)
    if not runs:
        return ""

    ox, oy = origin
    half = 0.5
    parts: List[str] = []
    for count, (y, x0, x1) in enumerate(runs, start=1):
        yy = format_number(oy + (y + half) * unit)
        parts.append(
            f"M{format_number(ox + (x0 + half) * unit)},{yy}"
            f"L{format_number(ox + (x1 + half) * unit)},{yy} "
        )
        if count % batch == 0:
            parts.append("\n")

    return (
        f"<path fill='none' stroke='{color}' stroke-width='{format_number(unit)}' "
        f"stroke-linecap='square' d='{''.join(parts)}' />\n"
    )


def recolor(doc: VectorDocument, color: str) -> int:
    """Set every painted fill/stroke (attribute or style) to ``color``."""
    changed = 0
    for el in doc.root.iter():
        for prop in _PAINT_PROPS:
            value = get_property(el, prop)
            if value is None or value.strip().lower() in _UNPAINTED:
                continue
            set_property(el, prop, color)
            changed += 1
    return changed


def prepare_raster_view(
    vector_doc: VectorDocument,
    raster_doc: VectorDocument,
    color: str
) -> int:
    """Leave only raster-fallback elements drawing in ``raster_doc``.

    Returns
    -------
    int
        Number of elements squashed in the raster view
    """
    native = vector_doc.native_keys()
    squashed = 0
    for el in raster_doc.leaves():
        if el.get(LEAF_KEY) in native:
            raster_doc.squash(el, raster=False)
            squashed += 1
    recolor(raster_doc, color)
    return squashed


class RasterTraceEngine:
    """Raster fallback for copper, mask, paste, silk and drill layers.

    Parameters
    ----------
    renderer : Renderer
        Monochrome renderer; may be nondeterministic
    config : RasterConfig
        Retry bound, trace color and batch size
    """

    def __init__(self, renderer: Renderer, config: Optional[RasterConfig] = None):
        self.renderer = renderer
        self.config = config or RasterConfig()

    def rasterize(
        self,
        vector_doc: VectorDocument,
        raster_doc: VectorDocument,
        frame: RasterFrame,
        clip_mask: Optional[np.ndarray] = None
    ) -> str:
        """Return the vector view's SVG with traced raster content appended.

        Parameters
        ----------
        vector_doc : VectorDocument
            Vector view; its native leaves are emitted as-is
        raster_doc : VectorDocument
            Raster view cloned from the same parse, modified in place
        frame : RasterFrame
            Pixel grid over the board
        clip_mask : np.ndarray, optional
            Non-inverted render of the clip layer (ink 0), ``frame.shape``
        """
        cfg = self.config
        prepare_raster_view(vector_doc, raster_doc, cfg.trace_color)

        result = render_until_stable(
            lambda: self.renderer.render(raster_doc, frame), cfg.max_attempts
        )
        bitmap = result.bitmap
        if clip_mask is not None:
            bitmap = subtract_clip(bitmap, clip_mask)

        traced = trace_runs(
            bitmap,
            unit=frame.unit,
            color=cfg.trace_color,
            batch=cfg.trace_batch_size,
            origin=(frame.origin_x, frame.origin_y),
        )
        logger.debug(
            "Traced raster fallback: %d attempt(s), stable=%s, %d bytes",
            result.attempts, result.stable, len(traced),
        )

        svg = vector_doc.to_string()
        if not traced:
            return svg
        return insert_before_close(svg, traced)

"""Layer sanitizing pipeline.

Stages, in the order ``BoardClipper.clip_to_board`` runs them:
    - donuts: ring pads back to circles
    - contours: one path per outline contour
    - reducer: squash what the emitter cannot translate
    - clipper: board bounds and clip-mask collision
    - raster_trace / outline: raster fallback

Convenience imports:
    from gerber_prep.pipeline import BoardClipper, BoardRect, ClipPurpose
"""

from .board import BoardRect
from .clipper import BoardClipper, ClipPurpose, ClipResult
from .connectors import ConnectorDescriptor, ConnectorMap
from .contours import CUTOUT_DIAGNOSTIC, ContourSplit, split_contours
from .donuts import normalize_donuts
from .outline import ContourPolygonExtractor, OutlineExtractor, PolygonExtractor, clean_outline
from .raster_trace import RasterTraceEngine, StableRender, render_until_stable, trace_runs
from .reducer import DEFAULT_RULES, FeatureReducer, ScaledTransformRule, SquashRule

__all__ = [
    'BoardRect',
    'BoardClipper',
    'ClipPurpose',
    'ClipResult',
    'ConnectorDescriptor',
    'ConnectorMap',
    'CUTOUT_DIAGNOSTIC',
    'ContourSplit',
    'split_contours',
    'normalize_donuts',
    'ContourPolygonExtractor',
    'OutlineExtractor',
    'PolygonExtractor',
    'clean_outline',
    'RasterTraceEngine',
    'StableRender',
    'render_until_stable',
    'trace_runs',
    'DEFAULT_RULES',
    'FeatureReducer',
    'ScaledTransformRule',
    'SquashRule',
]

"""Monochrome rendering of layer documents.

Convenience imports:
    from gerber_prep.render import SvgRasterizer, RasterFrame
"""

from .rasterizer import RasterFrame, Renderer, SvgRasterizer, parse_color

__all__ = [
    'RasterFrame',
    'Renderer',
    'SvgRasterizer',
    'parse_color',
]

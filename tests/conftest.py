"""Shared fixtures for gerber_prep tests.

Layer SVGs in tests are in output units (1000 DPI). A board of
``BoardRect(9, 9)`` authoring units is 100x100 output units.
"""

import pytest

from gerber_prep.configs.loader import ExportConfig
from gerber_prep.pipeline.board import BoardRect
from gerber_prep.render.rasterizer import SvgRasterizer

SVG_NS = "http://www.w3.org/2000/svg"


def layer_svg(body: str, width: float = 100, height: float = 100) -> str:
    """Wrap elements in a layer SVG of ``width`` x ``height`` output units."""
    return (
        f'<svg xmlns="{SVG_NS}" width="{width / 1000}in" height="{height / 1000}in" '
        f'viewBox="0 0 {width} {height}">{body}</svg>'
    )


@pytest.fixture
def config():
    return ExportConfig()


@pytest.fixture
def rasterizer():
    return SvgRasterizer()


@pytest.fixture
def board():
    """100x100 output units after scaling."""
    return BoardRect(9, 9)

"""Tests for gerber_prep.pipeline.raster_trace.

Tests:
    - Render stability loop: bounded attempts, accepts the repeated render
    - Scanline run detection and path formatting
    - Clip-mask subtraction
    - Raster view preparation and the full rasterize step, dashes included
"""

import cv2
import numpy as np
import pytest

from gerber_prep.configs.loader import RasterConfig
from gerber_prep.pipeline.raster_trace import (
    RasterTraceEngine,
    find_runs,
    prepare_raster_view,
    recolor,
    render_until_stable,
    subtract_clip,
    trace_runs,
)
from gerber_prep.render.rasterizer import RasterFrame
from gerber_prep.svg.document import VectorDocument, get_property

from conftest import layer_svg


class FlakyRenderer:
    """Returns a different bitmap on every call."""

    def __init__(self):
        self.calls = 0

    def __call__(self):
        self.calls += 1
        img = np.full((4, 4), 255, dtype=np.uint8)
        img.flat[self.calls % 16] = 0
        return img


class SequenceRenderer:
    def __init__(self, bitmaps):
        self.bitmaps = list(bitmaps)
        self.calls = 0

    def __call__(self):
        bitmap = self.bitmaps[min(self.calls, len(self.bitmaps) - 1)]
        self.calls += 1
        return bitmap.copy()


def path_data(traced):
    return traced.split("d='", 1)[1].split("'", 1)[0]


# ---------------------------------------------------------------------------
# Stability loop
# ---------------------------------------------------------------------------


def test_unstable_renderer_is_called_exactly_max_attempts():
    render = FlakyRenderer()
    result = render_until_stable(render, max_attempts=6)

    assert render.calls == 6
    assert result.attempts == 6
    assert not result.stable
    expected_last = np.full((4, 4), 255, dtype=np.uint8)
    expected_last.flat[6] = 0
    assert np.array_equal(result.bitmap, cv2.bitwise_not(expected_last))


def test_stable_renderer_accepted_on_second_render():
    img = np.full((3, 3), 255, dtype=np.uint8)
    img[1, 1] = 0
    render = SequenceRenderer([img])
    result = render_until_stable(render)

    assert render.calls == 2
    assert result.stable
    assert result.bitmap[1, 1] == 255
    assert result.bitmap[0, 0] == 0
    assert len(result.digest) == 64


def test_repeat_of_earlier_render_is_accepted():
    a = np.full((2, 2), 255, dtype=np.uint8)
    b = a.copy()
    b[0, 0] = 0
    render = SequenceRenderer([a, b, a])
    result = render_until_stable(render)

    assert render.calls == 3
    assert np.array_equal(result.bitmap, cv2.bitwise_not(a))


def test_invalid_attempt_bound_raises():
    with pytest.raises(ValueError):
        render_until_stable(lambda: np.zeros((1, 1), np.uint8), max_attempts=0)


# ---------------------------------------------------------------------------
# Runs and tracing
# ---------------------------------------------------------------------------


def test_find_runs_row_major():
    bitmap = np.array([
        [255, 255, 0, 255],
        [0, 0, 0, 0],
        [0, 255, 255, 255],
    ], dtype=np.uint8)
    assert find_runs(bitmap) == [(0, 0, 1), (0, 3, 3), (2, 1, 3)]


def test_trace_full_row():
    traced = trace_runs(np.full((1, 20), 255, dtype=np.uint8))
    assert path_data(traced) == "M0.5,0.5L19.5,0.5 "
    assert "stroke-width='1'" in traced
    assert "stroke-linecap='square'" in traced
    assert "fill='none'" in traced
    assert traced.endswith("/>\n")


def test_trace_no_ink_is_empty():
    assert trace_runs(np.zeros((5, 5), dtype=np.uint8)) == ""


def test_trace_single_pixel_run():
    traced = trace_runs(np.array([[255, 255, 0, 255]], dtype=np.uint8))
    assert path_data(traced) == "M0.5,0.5L1.5,0.5 M3.5,0.5L3.5,0.5 "


def test_trace_maps_through_unit_and_origin():
    traced = trace_runs(np.full((1, 2), 255, dtype=np.uint8), unit=2.0, origin=(10.0, 20.0))
    assert path_data(traced) == "M11,21L13,21 "
    assert "stroke-width='2'" in traced


def test_trace_breaks_lines_per_batch():
    bitmap = np.zeros((12, 3), dtype=np.uint8)
    bitmap[:, 1] = 255
    d = path_data(trace_runs(bitmap, batch=10))
    assert d.count("\n") == 1
    assert d.count("M") == 12
    assert d.split("\n")[0].count("M") == 10


def test_subtract_clip():
    bitmap = np.full((2, 2), 255, dtype=np.uint8)
    clip = np.array([[0, 255], [255, 255]], dtype=np.uint8)
    out = subtract_clip(bitmap, clip)
    assert out[0, 0] == 0
    assert out[1, 1] == 255
    assert bitmap[0, 0] == 255

    with pytest.raises(ValueError):
        subtract_clip(bitmap, np.zeros((3, 3), dtype=np.uint8))


# ---------------------------------------------------------------------------
# Raster view
# ---------------------------------------------------------------------------


def test_recolor_paints_only_painted_properties():
    doc = VectorDocument.parse(layer_svg(
        '<rect fill="#ff0000" stroke="none"/><circle style="stroke:#00ff00" fill="none"/>'
    ))
    assert recolor(doc, "#000000") == 2
    rect, circle = doc.leaves()
    assert rect.get("fill") == "#000000"
    assert rect.get("stroke") == "none"
    assert get_property(circle, "stroke") == "#000000"


def test_prepare_raster_view_keeps_only_fallback_leaves():
    vector = VectorDocument.parse(layer_svg(
        '<circle id="native" cx="5" cy="5" r="2"/><text id="squashed" x="1" y="9">A</text>'
    ))
    raster = vector.clone()
    vector.squash(vector.leaves("text")[0])

    assert prepare_raster_view(vector, raster, "#000000") == 1
    assert [el.get("id") for el in raster.leaves()] == ["squashed"]
    assert not raster.requires_raster


def test_rasterize_appends_trace_and_keeps_vectors(rasterizer):
    vector = VectorDocument.parse(layer_svg(
        '<circle id="pad" cx="20" cy="20" r="3" fill="black"/>'
        '<rect id="odd" x="2" y="2" width="10" height="4" fill="red"/>',
        30, 30,
    ))
    raster = vector.clone()
    vector.squash(vector.leaves("rect")[0])
    frame = RasterFrame(width=30, height=30)

    out = RasterTraceEngine(rasterizer, RasterConfig()).rasterize(vector, raster, frame)

    assert "<circle" in out
    assert "<rect" not in out
    assert "stroke-linecap='square'" in out
    assert out.rstrip().endswith("</svg>")
    doc = VectorDocument.parse(out)
    assert [el.get("id") for el in doc.leaves()] == ["pad", None]


def test_rasterize_with_full_clip_mask_traces_nothing(rasterizer):
    vector = VectorDocument.parse(layer_svg(
        '<rect id="odd" x="2" y="2" width="10" height="4" rx="1"/>', 30, 30,
    ))
    raster = vector.clone()
    vector.squash(vector.leaves("rect")[0])
    frame = RasterFrame(width=30, height=30)
    clip = np.zeros(frame.shape, dtype=np.uint8)

    out = RasterTraceEngine(rasterizer).rasterize(vector, raster, frame, clip)
    assert out == vector.to_string()


def test_rasterize_dashed_line_keeps_its_gaps(rasterizer):
    vector = VectorDocument.parse(layer_svg(
        '<line id="dash" x1="10" y1="50" x2="90" y2="50" stroke="black" '
        'stroke-width="2" stroke-dasharray="10,10"/>'
    ))
    raster = vector.clone()
    vector.squash(vector.leaves("line")[0])

    out = RasterTraceEngine(rasterizer).rasterize(vector, raster, RasterFrame(100, 100))

    d = path_data(out)
    # Four dashes on each of the two stroke rows, butt ends
    assert d.count("M") == 8
    assert "M10.5,49.5L19.5,49.5" in d
    assert "M30.5,49.5L39.5,49.5" in d
    assert "M70.5,50.5L79.5,50.5" in d
    assert "M9.5," not in d
    assert "L20.5," not in d

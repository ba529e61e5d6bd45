"""Tests for gerber_prep.pipeline.clipper.

Tests:
    - Elements inside the board stay vectors; crossing elements are squashed
    - Possible holes: the inner disc of a clipped circle is kept when it fits
    - Bare non-connector holes are dropped except for drill
    - Outline and drill skip the bounds pass
    - Clip-mask collision removes occluded content but never a kept hole
    - Failures come back as empty results with a diagnostic
"""

import pytest

from gerber_prep.pipeline.board import BoardRect
from gerber_prep.pipeline.clipper import BoardClipper, ClipPurpose, ClipResult
from gerber_prep.pipeline.connectors import ConnectorDescriptor, ConnectorMap
from gerber_prep.pipeline.contours import CUTOUT_DIAGNOSTIC, ContourSplit
from gerber_prep.svg.document import VectorDocument

from conftest import layer_svg


@pytest.fixture
def clipper(config):
    return BoardClipper(config)


def leaf_ids(svg):
    return [el.get("id") for el in VectorDocument.parse(svg).leaves()]


def find(svg, element_id):
    doc = VectorDocument.parse(svg)
    return next(el for el in doc.leaves() if el.get("id") == element_id)


# ---------------------------------------------------------------------------
# Purposes
# ---------------------------------------------------------------------------


def test_purpose_flags():
    assert ClipPurpose.OUTLINE.skip_bounds
    assert ClipPurpose.DRILL.skip_bounds
    assert not ClipPurpose.COPPER.skip_bounds
    assert not ClipPurpose.DRILL.removes_bare_holes
    assert ClipPurpose.SILK.removes_bare_holes


# ---------------------------------------------------------------------------
# Bounds pass
# ---------------------------------------------------------------------------


def test_circle_inside_board_is_kept_as_vector(clipper, board):
    svg = layer_svg('<circle id="pad" cx="50" cy="50" r="10" fill="none" stroke="black" stroke-width="2"/>')
    result = clipper.clip_to_board(svg, board, "Copper0", ClipPurpose.COPPER)

    assert not result.used_raster
    assert result.clipped == 0
    assert leaf_ids(result.svg) == ["pad"]


def test_element_crossing_board_is_squashed(clipper, board):
    svg = layer_svg(
        '<circle id="pad" cx="50" cy="50" r="10" stroke="black" stroke-width="2"/>'
        '<path id="far" d="M150,10 L200,10" stroke="black" stroke-width="4"/>',
    )
    result = clipper.clip_to_board(svg, board, "Copper0", ClipPurpose.COPPER)

    assert result.used_raster
    assert result.clipped == 1
    # Off-board ink is outside the raster grid, so nothing is traced back
    assert leaf_ids(result.svg) == ["pad"]


def test_partially_outside_element_is_traced_back(clipper, board):
    svg = layer_svg('<rect id="edge" x="80" y="40" width="40" height="10" fill="black"/>')
    result = clipper.clip_to_board(svg, board, "Copper0", ClipPurpose.COPPER)

    assert result.used_raster
    assert "edge" not in leaf_ids(result.svg)
    assert "stroke-linecap='square'" in result.svg


def test_margin_tolerates_tiny_overhang(clipper, board):
    svg = layer_svg('<rect id="flush" x="-0.05" y="0" width="100.05" height="10"/>')
    result = clipper.clip_to_board(svg, board, "Copper0", ClipPurpose.COPPER)
    assert leaf_ids(result.svg) == ["flush"]


def test_possible_hole_kept_and_enlarged(clipper, board):
    """The stroke crosses the edge but the hole itself fits on the board."""
    svg = layer_svg('<circle id="ring" cx="50" cy="50" r="45" fill="none" stroke="black" stroke-width="12"/>')
    result = clipper.clip_to_board(svg, board, "Copper0", ClipPurpose.COPPER)

    assert result.clipped == 1
    hole = find(result.svg, "ring_hole")
    assert hole.get("r") == "43"
    assert hole.get("stroke-width") == "2"
    assert hole.get("cx") == "50"


def test_possible_hole_still_crossing_is_removed(clipper, board):
    svg = layer_svg('<circle id="edge" cx="98" cy="50" r="10" fill="none" stroke="black" stroke-width="2"/>')
    result = clipper.clip_to_board(svg, board, "Copper0", ClipPurpose.COPPER)

    assert result.used_raster
    assert "edge_hole" not in leaf_ids(result.svg)
    assert "<circle" not in result.svg


# ---------------------------------------------------------------------------
# Bare holes
# ---------------------------------------------------------------------------


BARE_HOLE = '<circle id="nonconn3" cx="50" cy="50" r="5" fill="black"/>'


def test_bare_hole_removed_without_raster(clipper, board):
    result = clipper.clip_to_board(layer_svg(BARE_HOLE), board, "Copper0", ClipPurpose.COPPER)
    assert not result.used_raster
    assert leaf_ids(result.svg) == []


def test_bare_hole_kept_for_drill(clipper, board):
    result = clipper.clip_to_board(layer_svg(BARE_HOLE), board, "drill", ClipPurpose.DRILL)
    assert leaf_ids(result.svg) == ["nonconn3"]


def test_stroked_nonconnector_is_not_a_bare_hole(clipper, board):
    svg = layer_svg('<circle id="nonconn4" cx="50" cy="50" r="5" stroke="black" stroke-width="1"/>')
    result = clipper.clip_to_board(svg, board, "Copper0", ClipPurpose.COPPER)
    assert leaf_ids(result.svg) == ["nonconn4"]


# ---------------------------------------------------------------------------
# Purpose specific passes
# ---------------------------------------------------------------------------


def test_drill_skips_bounds(clipper, board):
    svg = layer_svg('<circle id="hole" cx="120" cy="50" r="5" fill="black"/>')
    result = clipper.clip_to_board(svg, board, "drill", ClipPurpose.DRILL)
    assert leaf_ids(result.svg) == ["hole"]


def test_outline_skips_bounds_and_splits_cutouts(clipper, board):
    svg = layer_svg(
        '<path id="board" fill="black" d="M0,0 L101,0 L101,100 L0,100 z M40,40 L60,40 L60,60 L40,60 z"/>'
    )
    result = clipper.clip_to_board(svg, board, "board", ClipPurpose.OUTLINE)

    assert result.contours is ContourSplit.SPLIT
    assert not result.used_raster
    assert leaf_ids(result.svg) == ["board", "board_1"]


def test_outline_with_unsupported_cutouts_is_rejected(clipper, board):
    svg = layer_svg('<path id="board" d="M0,0 L10,0 L10,10 z L5,5 L6,6 z"/>')
    result = clipper.clip_to_board(svg, board, "board", ClipPurpose.OUTLINE)

    assert result.rejected
    assert result.empty
    assert result.diagnostics == [CUTOUT_DIAGNOSTIC]


def test_curved_outline_is_polygonized(clipper, board):
    svg = layer_svg('<path id="board" fill="black" d="M10,10 C40,0 60,0 90,10 L90,90 L10,90 z"/>')
    result = clipper.clip_to_board(svg, board, "board", ClipPurpose.OUTLINE)

    assert result.used_raster
    assert "fill-rule='evenodd'" in result.svg
    assert "stroke-linecap" not in result.svg


def test_donuts_are_normalized_for_copper(clipper):
    connectors = ConnectorMap([
        ConnectorDescriptor(attached_id=1, svg_id="connector0pin", is_path=True,
                            radius=0.9, stroke_width=0.18),
    ])
    svg = layer_svg(
        '<g partID="1"><path id="connector0pin" fill="none" stroke="black" '
        'd="M40,50 A10,10 0 1,0 60,50 A10,10 0 1,0 40,50 z"/></g>'
    )
    result = clipper.clip_to_board(svg, BoardRect(9, 9), "Copper0", ClipPurpose.COPPER,
                                   connectors=connectors)

    assert result.donuts == 1
    assert not result.used_raster
    circle = find(result.svg, "connector0pin")
    assert circle.get("r") == "10"
    assert circle.get("stroke-width") == "2"


# ---------------------------------------------------------------------------
# Clip mask collision
# ---------------------------------------------------------------------------


def test_clip_mask_removes_occluded_content(clipper, board):
    mask = layer_svg('<rect x="0" y="0" width="50" height="100" fill="black"/>')
    silk = layer_svg(
        '<rect id="under" x="10" y="10" width="20" height="20" fill="black"/>'
        '<rect id="clear" x="70" y="10" width="20" height="20" fill="black"/>'
    )
    result = clipper.clip_to_board(silk, board, "Silk1", ClipPurpose.SILK, clip_svg=mask)

    assert result.clipped == 1
    assert result.used_raster
    assert leaf_ids(result.svg) == ["clear"]
    # The occluded ink is subtracted before tracing
    assert "stroke-linecap" not in result.svg


def test_clip_mask_leaves_possible_hole_in_place(clipper, board):
    mask = layer_svg('<rect x="0" y="45" width="100" height="10" fill="black"/>')
    silk = layer_svg('<circle id="ring" cx="50" cy="50" r="45" fill="none" stroke="black" stroke-width="12"/>')
    result = clipper.clip_to_board(silk, board, "Silk1", ClipPurpose.SILK, clip_svg=mask)

    assert result.clipped == 1
    hole = find(result.svg, "ring_hole")
    assert hole.get("r") == "43"


def test_unparseable_clip_mask_is_ignored(clipper, board):
    silk = layer_svg('<rect id="r" x="10" y="10" width="20" height="20"/>')
    result = clipper.clip_to_board(silk, board, "Silk1", ClipPurpose.SILK, clip_svg="<svg")
    assert leaf_ids(result.svg) == ["r"]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


def test_unparseable_layer_gives_empty_result(clipper, board):
    result = clipper.clip_to_board("not svg at all", board, "Copper0", ClipPurpose.COPPER)
    assert isinstance(result, ClipResult)
    assert result.empty
    assert len(result.diagnostics) == 1
    assert result.diagnostics[0].startswith("Copper0:")


def test_unparseable_transform_is_squashed(clipper, board):
    svg = layer_svg('<g transform="warp(2)"><circle cx="5" cy="5" r="1"/></g>')
    result = clipper.clip_to_board(svg, board, "Copper0", ClipPurpose.COPPER)
    assert result.used_raster
    assert leaf_ids(result.svg) == []
    assert result.diagnostics == []


def test_empty_document_gives_empty_result(clipper, board):
    result = clipper.clip_to_board(layer_svg(""), board, "Copper0", ClipPurpose.COPPER)
    assert result.empty
    assert result.diagnostics == []


def test_clipping_is_repeatable(clipper, board):
    svg = layer_svg(
        '<text id="t" x="20" y="50" font-size="20">R1</text>'
        '<circle id="c" cx="50" cy="50" r="5" stroke="black"/>'
    )
    first = clipper.clip_to_board(svg, board, "Silk0", ClipPurpose.SILK)
    second = clipper.clip_to_board(svg, board, "Silk0", ClipPurpose.SILK)
    assert first.svg == second.svg
    assert first.used_raster

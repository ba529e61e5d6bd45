"""End-to-end tests for gerber_prep.export.

The layer renderer and the Gerber emitter are fakes: the renderer hands
out canned layer SVGs by layer name, the emitter records what it was
given and returns a small text body.

Tests:
    - Export plan order for one- and two-sided boards
    - On-board content reaches the emitter, off-board content does not
    - Empty layers and write failures produce messages and do not stop
      the export
    - Mask layers become the clip mask of the silk layer on their side
    - The translation-loss message lists affected groups in fixed order
"""

import logging

import pytest

from gerber_prep.export import (
    Diagnostics,
    EmitResult,
    GerberExporter,
    LayerCategory,
    RenderedLayer,
    export_plan,
    translation_loss_message,
)
from gerber_prep.pipeline.board import BoardRect
from gerber_prep.pipeline.clipper import ClipPurpose, ClipResult
from gerber_prep.pipeline.connectors import ConnectorMap
from gerber_prep.pipeline.contours import CUTOUT_DIAGNOSTIC
from gerber_prep.svg.document import VectorDocument

from conftest import layer_svg

# 90 x 72 authoring units at 90 DPI is 1000 x 800 output units.
BOARD = BoardRect(90, 72)


def board_svg(body):
    return layer_svg(body, 1000, 800)


class FakeLayerRenderer:
    def __init__(self, layers):
        self.layers = layers
        self.calls = []

    def render_to(self, layer_set):
        self.calls.append(layer_set.name)
        return RenderedLayer(self.layers.get(layer_set.name, ""))


class FakeEmitter:
    def __init__(self, invalid=None):
        self.invalid = invalid or {}
        self.calls = {}

    def convert(self, svg, double_sided, layer_name, purpose, svg_size):
        self.calls[layer_name] = {
            "svg": svg,
            "double_sided": double_sided,
            "purpose": purpose,
            "svg_size": svg_size,
        }
        return EmitResult(f"G04 {layer_name}*\nM02*\n", self.invalid.get(layer_name, 0))


def leaf_ids(svg):
    return [el.get("id") for el in VectorDocument.parse(svg).leaves()]


@pytest.fixture
def diagnostics():
    return Diagnostics()


def run_export(layers, tmp_path, diagnostics, two_sided=True, emitter=None, **kwargs):
    renderer = FakeLayerRenderer(layers)
    emitter = emitter or FakeEmitter()
    exporter = GerberExporter(renderer, emitter, diagnostics=diagnostics)
    report = exporter.export(BOARD, "board", tmp_path, two_sided=two_sided, **kwargs)
    return report, renderer, emitter


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------


def test_export_plan_two_sided_order():
    assert [ls.name for ls in export_plan(True)] == [
        "Copper0", "Copper1", "Mask0", "Mask1", "PasteMask0", "PasteMask1",
        "Silk1", "Silk0", "contour", "drill",
    ]


def test_export_plan_one_sided_skips_top_layers():
    assert [ls.name for ls in export_plan(False)] == [
        "Copper0", "Mask0", "PasteMask0", "Silk1", "Silk0", "contour", "drill",
    ]


def test_translation_loss_message_order():
    message = translation_loss_message([LayerCategory.MASK, LayerCategory.OUTLINE, LayerCategory.COPPER])
    assert message == (
        "Unable to translate svg curves in the board outline layer, "
        "copper layer(s), mask layer(s)"
    )
    assert translation_loss_message([]) is None


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def test_pad_inside_kept_trace_outside_dropped(tmp_path, diagnostics):
    copper = board_svg(
        '<circle id="pad" cx="500" cy="400" r="20" fill="none" stroke="black" stroke-width="10"/>'
        '<path id="trace" d="M1100,100 L1200,100" stroke="black" stroke-width="24"/>'
    )
    report, _, emitter = run_export({"Copper0": copper}, tmp_path, diagnostics)

    sent = emitter.calls["Copper0"]
    assert leaf_ids(sent["svg"]) == ["pad"]
    assert sent["svg_size"] == pytest.approx((1000.0, 800.0))
    assert sent["purpose"] is ClipPurpose.COPPER
    assert sent["double_sided"] is True

    out = tmp_path / "board_copperBottom.gbl"
    assert out.read_text() == "G04 Copper0*\nM02*\n"
    outcome = report.outcome("Copper0")
    assert outcome.written
    assert outcome.used_raster
    assert outcome.path == out
    assert len(outcome.digest) == 64
    assert report.written_files == [out]


def test_empty_layers_are_reported_and_skipped(tmp_path, diagnostics):
    report, renderer, emitter = run_export({}, tmp_path, diagnostics)

    assert len(renderer.calls) == 10
    assert emitter.calls == {}
    assert report.written_files == []
    assert "Copper1 layer export is empty." in report.messages
    assert "exported mask layer Mask0 is empty" in report.messages
    assert "silk layer Silk1 export is empty" in report.messages
    assert "outline is empty" in report.messages
    assert "exported drill file is empty" in report.messages
    assert report.lossy == []


def test_one_sided_export_never_renders_top_copper(tmp_path, diagnostics):
    copper = board_svg('<circle id="pad" cx="500" cy="400" r="20"/>')
    _, renderer, emitter = run_export(
        {"Copper0": copper, "Copper1": copper}, tmp_path, diagnostics, two_sided=False
    )
    assert "Copper1" not in renderer.calls
    assert emitter.calls["Copper0"]["double_sided"] is False
    assert not (tmp_path / "board_copperTop.gtl").exists()


def test_silk_is_clipped_by_mask_of_same_side(tmp_path, diagnostics):
    mask = board_svg('<rect id="opening" x="0" y="0" width="300" height="800" fill="black"/>')
    silk = board_svg(
        '<rect id="under" x="100" y="100" width="50" height="50" fill="black"/>'
        '<rect id="clear" x="600" y="100" width="50" height="50" fill="black"/>'
    )
    _, _, emitter = run_export(
        {"Mask1": mask, "Silk1": silk, "Silk0": silk}, tmp_path, diagnostics
    )
    assert leaf_ids(emitter.calls["Silk1"]["svg"]) == ["clear"]
    # No bottom mask, so nothing clips the bottom silk
    assert leaf_ids(emitter.calls["Silk0"]["svg"]) == ["under", "clear"]


def test_outline_is_cleaned_before_clipping(tmp_path, diagnostics):
    outline = board_svg(
        '<rect id="boardoutline" x="0" y="0" width="1000" height="800" fill="black"/>'
        '<text id="label" x="10" y="10">x</text>'
    )
    report, _, emitter = run_export({"contour": outline}, tmp_path, diagnostics)

    sent = emitter.calls["contour"]
    assert leaf_ids(sent["svg"]) == ["boardoutline"]
    assert sent["purpose"] is ClipPurpose.OUTLINE
    assert (tmp_path / "board_contour.gm1").exists()
    assert report.lossy == []


def test_rejected_outline_skips_only_the_outline(tmp_path, diagnostics):
    outline = board_svg('<path id="board" d="M0,0 L1000,0 L1000,800 z L5,5 L6,6 z"/>')
    drill = board_svg('<circle id="h" cx="500" cy="400" r="15" fill="black"/>')
    report, _, emitter = run_export({"contour": outline, "drill": drill}, tmp_path, diagnostics)

    assert CUTOUT_DIAGNOSTIC in report.messages
    assert "contour" not in emitter.calls
    assert report.outcome("contour").skipped == "rejected"
    assert (tmp_path / "board_drill.txt").exists()


def test_unparseable_layer_is_an_export_failure(tmp_path, diagnostics):
    report, _, emitter = run_export({"Mask0": "<svg><oops"}, tmp_path, diagnostics)
    assert "Mask0 export failure" in report.messages
    assert "Mask0" not in emitter.calls


def test_write_failure_is_reported_and_export_continues(tmp_path, diagnostics):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    copper = board_svg('<circle id="pad" cx="500" cy="400" r="20"/>')

    renderer = FakeLayerRenderer({"Copper0": copper, "Mask0": copper})
    exporter = GerberExporter(renderer, FakeEmitter(), diagnostics=diagnostics)
    report = exporter.export(BOARD, "board", blocker, two_sided=False)

    expected = f"Copper0 layer: unable to save to '{blocker / 'board_copperBottom.gbl'}'"
    assert expected in report.messages
    assert not report.outcome("Copper0").written
    assert "Mask0" in [o.name for o in report.outcomes]


def test_translation_loss_is_reported_once(tmp_path, diagnostics):
    curved = board_svg('<path id="p" d="M100,100 C200,0 300,0 400,100" stroke="black"/>')
    emitter = FakeEmitter(invalid={"Mask0": 2})
    plain = board_svg('<circle id="c" cx="500" cy="400" r="20"/>')
    report, _, _ = run_export(
        {"Copper0": curved, "Copper1": curved, "Mask0": plain, "drill": curved},
        tmp_path, diagnostics, emitter=emitter,
    )

    loss = [m for m in report.messages if m.startswith("Unable to translate")]
    assert loss == ["Unable to translate svg curves in copper layer(s), mask layer(s)"]
    assert report.lossy == [LayerCategory.COPPER, LayerCategory.MASK]
    assert report.outcome("drill").used_raster


def test_clipper_receives_layer_settings(tmp_path, diagnostics, config):
    calls = []

    class SpyClipper:
        def clip_to_board(self, svg, board, name, purpose, clip_svg="", connectors=None):
            calls.append((name, purpose, connectors))
            return ClipResult(svg=svg)

    copper = board_svg('<circle id="pad" cx="500" cy="400" r="20"/>')
    layers = {name: copper for name in ("Copper0", "Mask0", "contour", "drill")}
    connectors = ConnectorMap()
    exporter = GerberExporter(
        FakeLayerRenderer(layers), FakeEmitter(), config, clipper=SpyClipper(),
        diagnostics=diagnostics,
    )
    exporter.export(BOARD, "board", tmp_path, two_sided=False, connectors=connectors)

    assert calls == [
        ("Copper0", ClipPurpose.COPPER, connectors),
        ("Mask0", ClipPurpose.MASK, None),
        ("board", ClipPurpose.OUTLINE, None),
        ("Copper0", ClipPurpose.DRILL, connectors),
    ]


def test_messages_are_logged_in_batch_mode(tmp_path, caplog):
    with caplog.at_level(logging.INFO, logger="gerber_prep.export.diagnostics"):
        report, _, _ = run_export({}, tmp_path, Diagnostics())
    assert "outline is empty" in caplog.text
    assert len(report.messages) == 10

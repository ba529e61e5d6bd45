"""Gerber export orchestration.

Runs every layer of the export plan through render -> clip -> emit ->
write, one after another. The only state carried between layers is the
clipped SVG of each mask layer, which becomes the clip mask of the silk
layer on the same side.

Failures are local: an empty layer, a clip failure or a write failure
produces a message and the export moves on. After the last layer one
message lists every layer group whose content needed the raster
fallback or had elements the emitter could not translate.

Usage::

    exporter = GerberExporter(layer_renderer, emitter, config)
    report = exporter.export(board, "myboard", "out/", two_sided=True,
                             connectors=connector_map)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple, Union

from gerber_prep.configs.loader import ExportConfig
from gerber_prep.export.diagnostics import Diagnostics
from gerber_prep.export.layers import LayerCategory, LayerSet, export_plan
from gerber_prep.pipeline.board import BoardRect
from gerber_prep.pipeline.clipper import BoardClipper, ClipPurpose
from gerber_prep.pipeline.connectors import ConnectorMap
from gerber_prep.pipeline.outline import clean_outline
from gerber_prep.svg.document import DocumentError, VectorDocument, is_blank
from gerber_prep.utils import fs, hashing
from gerber_prep.utils.logging_config import log_context

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Collaborator seams
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RenderedLayer:
    """Layer renderer output; blank ``svg`` or ``empty`` means nothing to export."""

    svg: str
    empty: bool = False


@dataclass(frozen=True)
class EmitResult:
    """Emitter output: file text plus the number of untranslatable elements."""

    text: str
    invalid_count: int = 0


class LayerRenderer(Protocol):
    def render_to(self, layer_set: LayerSet) -> RenderedLayer:
        ...


class FormatEmitter(Protocol):
    def convert(
        self,
        svg: str,
        double_sided: bool,
        layer_name: str,
        purpose: ClipPurpose,
        svg_size: Tuple[float, float]
    ) -> EmitResult:
        ...


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


@dataclass
class LayerOutcome:
    """What happened to one layer."""

    name: str
    path: Optional[Path] = None
    written: bool = False
    used_raster: bool = False
    invalid_count: int = 0
    skipped: Optional[str] = None
    digest: Optional[str] = None


@dataclass
class ExportReport:
    """Per-layer outcomes and every message raised during the export."""

    outcomes: List[LayerOutcome] = field(default_factory=list)
    messages: List[str] = field(default_factory=list)
    lossy: List[LayerCategory] = field(default_factory=list)

    @property
    def written_files(self) -> List[Path]:
        return [o.path for o in self.outcomes if o.written and o.path is not None]

    def outcome(self, name: str) -> Optional[LayerOutcome]:
        return next((o for o in self.outcomes if o.name == name), None)


def translation_loss_message(categories: List[LayerCategory]) -> Optional[str]:
    """Consolidated message naming the affected layer groups in fixed order."""
    ordered = [c.value for c in LayerCategory if c in categories]
    if not ordered:
        return None
    return f"Unable to translate svg curves in {', '.join(ordered)}"


# ---------------------------------------------------------------------------
# Exporter
# ---------------------------------------------------------------------------


class GerberExporter:
    """Export all layers of one board.

    Parameters
    ----------
    layer_renderer : LayerRenderer
        Composites logical layers into a layer SVG (output units)
    emitter : FormatEmitter
        Converts sanitized SVG into Gerber/Excellon text
    config : ExportConfig, optional
        Shipped defaults when omitted
    clipper : BoardClipper, optional
        Built from ``config`` when omitted
    diagnostics : Diagnostics, optional
        Non-interactive channel when omitted
    """

    def __init__(
        self,
        layer_renderer: LayerRenderer,
        emitter: FormatEmitter,
        config: Optional[ExportConfig] = None,
        clipper: Optional[BoardClipper] = None,
        diagnostics: Optional[Diagnostics] = None
    ):
        self.layer_renderer = layer_renderer
        self.emitter = emitter
        self.config = config or ExportConfig()
        self.clipper = clipper or BoardClipper(self.config)
        self.diagnostics = diagnostics or Diagnostics()

    def export(
        self,
        board: BoardRect,
        prefix: str,
        export_dir: Union[str, Path],
        two_sided: bool = True,
        connectors: Optional[ConnectorMap] = None
    ) -> ExportReport:
        """Export every planned layer.

        Parameters
        ----------
        board : BoardRect
            Board size in authoring units
        prefix : str
            File name prefix; files are ``<prefix><suffix>``
        export_dir : str or Path
            Output directory (created if missing)
        two_sided : bool
            Two-layer board: also export top copper, mask and paste
        connectors : ConnectorMap, optional
            Circle-like connectors for copper and drill

        Returns
        -------
        ExportReport
            Outcomes per layer and all messages
        """
        export_dir = Path(export_dir)
        report = ExportReport()
        first_message = len(self.diagnostics.messages)
        clip_masks: Dict[str, str] = {}

        logger.info("Exporting %s board to %s/%s*",
                    "two-sided" if two_sided else "one-sided", export_dir, prefix)

        for layer_set in export_plan(two_sided):
            with log_context(layer=layer_set.name):
                outcome = self._export_layer(
                    layer_set, board, prefix, export_dir, two_sided, connectors, clip_masks
                )
            report.outcomes.append(outcome)
            if (
                layer_set.category is not None
                and layer_set.category not in report.lossy
                and (outcome.used_raster or outcome.invalid_count > 0)
            ):
                report.lossy.append(layer_set.category)

        loss = translation_loss_message(report.lossy)
        if loss:
            self.diagnostics.report(loss)

        report.messages = self.diagnostics.messages[first_message:]
        logger.info("Export finished: %d file(s) written, %d message(s)",
                    len(report.written_files), len(report.messages))
        return report

    def _export_layer(
        self,
        layer_set: LayerSet,
        board: BoardRect,
        prefix: str,
        export_dir: Path,
        two_sided: bool,
        connectors: Optional[ConnectorMap],
        clip_masks: Dict[str, str]
    ) -> LayerOutcome:
        outcome = LayerOutcome(name=layer_set.name)
        cfg = self.config

        rendered = self.layer_renderer.render_to(layer_set)
        svg = rendered.svg
        if rendered.empty or is_blank(svg):
            self.diagnostics.report(layer_set.empty_text(), logging.INFO)
            outcome.skipped = "empty"
            return outcome

        try:
            if layer_set.purpose is ClipPurpose.OUTLINE:
                svg = clean_outline(svg, cfg.clipping.board_outline_id)
                if is_blank(svg):
                    self.diagnostics.report(layer_set.empty_text(), logging.INFO)
                    outcome.skipped = "empty"
                    return outcome
            width_in, height_in = VectorDocument.parse(svg).size_inches()
        except DocumentError as exc:
            logger.warning("Unreadable layer SVG: %s", exc)
            self.diagnostics.report(f"{layer_set.name} export failure")
            outcome.skipped = "failure"
            return outcome

        result = self.clipper.clip_to_board(
            svg,
            board,
            layer_set.clipper_name,
            layer_set.purpose,
            clip_svg=clip_masks.get(layer_set.clip_mask_from or "", ""),
            connectors=connectors if layer_set.uses_connectors else None,
        )
        for message in result.diagnostics:
            if result.rejected:
                self.diagnostics.report(message)
            else:
                logger.warning(message)

        if result.rejected:
            outcome.skipped = "rejected"
            return outcome
        if result.empty:
            self.diagnostics.report(f"{layer_set.name} export failure")
            outcome.skipped = "failure"
            return outcome

        clip_masks[layer_set.key] = result.svg
        outcome.used_raster = result.used_raster

        dpi = cfg.resolution.output_dpi
        emitted = self.emitter.convert(
            result.svg, two_sided, layer_set.name, layer_set.purpose,
            (width_in * dpi, height_in * dpi),
        )
        outcome.invalid_count = emitted.invalid_count
        if emitted.invalid_count:
            logger.info("Emitter could not translate %d element(s)", emitted.invalid_count)

        path = export_dir / f"{prefix}{cfg.suffix_for(layer_set.key)}"
        outcome.path = path
        try:
            fs.atomic_write_text(path, emitted.text)
        except RuntimeError as exc:
            logger.error("Write failed: %s", exc)
            self.diagnostics.report(f"{layer_set.name} layer: unable to save to '{path}'")
            return outcome

        outcome.written = True
        outcome.digest = hashing.sha256_bytes(emitted.text.encode("utf-8"))
        logger.debug("Wrote %s sha256=%s", path, outcome.digest)
        return outcome

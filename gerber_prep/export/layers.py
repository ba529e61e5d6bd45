"""Export plan: which layers are produced, in what order, and how.

Each :class:`LayerSet` names the logical board layers the layer renderer
composites, the purpose the clipper applies, the output-suffix key and
the message used when the layer renders empty.

Order matters: mask layers are clipped before the silk layers that use
them as clip masks.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import List, Optional, Tuple

from gerber_prep.pipeline.clipper import ClipPurpose


class LayerCategory(enum.Enum):
    """Layer groups named by the translation-loss message, in message order."""

    OUTLINE = "the board outline layer"
    SILK = "silkscreen layer(s)"
    COPPER = "copper layer(s)"
    MASK = "mask layer(s)"
    PASTE = "paste mask layer(s)"


@dataclass(frozen=True)
class LayerSet:
    """One exported file.

    Attributes
    ----------
    name : str
        Layer name used in logs and messages, e.g. ``"Copper0"``
    key : str
        Suffix key in ``ExportConfig.suffixes``
    view_layers : tuple[str, ...]
        Logical layers the layer renderer composites
    purpose : ClipPurpose
        Clipping behavior
    category : LayerCategory, optional
        Group for the translation-loss message; None for drill
    empty_message : str
        Message when the renderer returns nothing; ``{name}`` is filled in
    clip_name : str, optional
        Name the clipper sees, if different from ``name``
    clip_mask_from : str, optional
        Key of the layer whose clipped SVG is this layer's clip mask
    uses_connectors : bool
        Pass the connector map to the clipper
    two_sided_only : bool
        Only exported for two-layer boards
    """

    name: str
    key: str
    view_layers: Tuple[str, ...]
    purpose: ClipPurpose
    category: Optional[LayerCategory]
    empty_message: str
    clip_name: Optional[str] = None
    clip_mask_from: Optional[str] = None
    uses_connectors: bool = False
    two_sided_only: bool = False

    @property
    def clipper_name(self) -> str:
        return self.clip_name or self.name

    def empty_text(self) -> str:
        return self.empty_message.format(name=self.name)


COPPER0 = LayerSet(
    "Copper0", "copper0", ("Copper0", "Copper0Trace", "GroundPlane0"),
    ClipPurpose.COPPER, LayerCategory.COPPER, "{name} layer export is empty.",
    uses_connectors=True,
)
COPPER1 = LayerSet(
    "Copper1", "copper1", ("Copper1", "Copper1Trace", "GroundPlane1"),
    ClipPurpose.COPPER, LayerCategory.COPPER, "{name} layer export is empty.",
    uses_connectors=True, two_sided_only=True,
)
MASK0 = LayerSet(
    "Mask0", "mask0", ("Copper0", "GroundPlane0"),
    ClipPurpose.MASK, LayerCategory.MASK, "exported mask layer {name} is empty",
)
MASK1 = LayerSet(
    "Mask1", "mask1", ("Copper1", "GroundPlane1"),
    ClipPurpose.MASK, LayerCategory.MASK, "exported mask layer {name} is empty",
    two_sided_only=True,
)
PASTE0 = LayerSet(
    "PasteMask0", "paste0", ("Copper0", "GroundPlane0"),
    ClipPurpose.COPPER, LayerCategory.PASTE, "exported paste mask layer {name} is empty",
)
PASTE1 = LayerSet(
    "PasteMask1", "paste1", ("Copper1", "GroundPlane1"),
    ClipPurpose.COPPER, LayerCategory.PASTE, "exported paste mask layer {name} is empty",
    two_sided_only=True,
)
SILK1 = LayerSet(
    "Silk1", "silk1", ("Silkscreen1", "Silkscreen1Label"),
    ClipPurpose.SILK, LayerCategory.SILK, "silk layer {name} export is empty",
    clip_mask_from="mask1",
)
SILK0 = LayerSet(
    "Silk0", "silk0", ("Silkscreen0", "Silkscreen0Label"),
    ClipPurpose.SILK, LayerCategory.SILK, "silk layer {name} export is empty",
    clip_mask_from="mask0",
)
OUTLINE = LayerSet(
    "contour", "outline", ("Board",),
    ClipPurpose.OUTLINE, LayerCategory.OUTLINE, "outline is empty",
    clip_name="board",
)
DRILL = LayerSet(
    "drill", "drill", ("Copper0", "Copper1"),
    ClipPurpose.DRILL, None, "exported drill file is empty",
    clip_name="Copper0", uses_connectors=True,
)

STANDARD_LAYERS: Tuple[LayerSet, ...] = (
    COPPER0, COPPER1, MASK0, MASK1, PASTE0, PASTE1, SILK1, SILK0, OUTLINE, DRILL,
)


def export_plan(two_sided: bool) -> List[LayerSet]:
    """Layers to export for a one- or two-layer board, in export order."""
    return [ls for ls in STANDARD_LAYERS if two_sided or not ls.two_sided_only]

"""Export orchestration, layer plan and diagnostics.

Convenience imports:
    from gerber_prep.export import GerberExporter, Diagnostics
"""

from .diagnostics import Diagnostics
from .generator import (
    EmitResult,
    ExportReport,
    FormatEmitter,
    GerberExporter,
    LayerOutcome,
    LayerRenderer,
    RenderedLayer,
    translation_loss_message,
)
from .layers import STANDARD_LAYERS, LayerCategory, LayerSet, export_plan

__all__ = [
    'Diagnostics',
    'EmitResult',
    'ExportReport',
    'FormatEmitter',
    'GerberExporter',
    'LayerOutcome',
    'LayerRenderer',
    'RenderedLayer',
    'translation_loss_message',
    'STANDARD_LAYERS',
    'LayerCategory',
    'LayerSet',
    'export_plan',
]

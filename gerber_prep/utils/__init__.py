"""Cross-cutting utilities (lowest dependency layer).

This package provides shared primitives for:
    - Atomic file writes and YAML loading (fs)
    - Bitmap and file digests (hashing)
    - Unified logging (logging_config)

No module in utils/ may import from upper layers (svg, render, pipeline, export).

Convenience imports:
    from gerber_prep.utils import fs, hashing
    from gerber_prep.utils.logging_config import setup_logging, get_logger
"""

from . import fs
from . import hashing
from . import logging_config

from .logging_config import get_logger, pop_context, push_context, setup_logging

__all__ = [
    # Modules
    'fs',
    'hashing',
    'logging_config',
    # Direct exports
    'setup_logging',
    'get_logger',
    'push_context',
    'pop_context',
]

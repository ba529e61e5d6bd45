"""SVG document model, path data and affine geometry.

Convenience imports:
    from gerber_prep.svg import VectorDocument, DocumentError
    from gerber_prep.svg import geometry, pathdata
"""

from . import geometry
from . import pathdata
from .document import (
    DRAWABLE_TAGS,
    LEAF_KEY,
    DocumentError,
    VectorDocument,
    get_property,
    insert_before_close,
    is_blank,
    local_name,
    set_property,
)

__all__ = [
    'geometry',
    'pathdata',
    'DRAWABLE_TAGS',
    'LEAF_KEY',
    'DocumentError',
    'VectorDocument',
    'get_property',
    'insert_before_close',
    'is_blank',
    'local_name',
    'set_property',
]

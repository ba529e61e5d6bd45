"""SHA-256 digests for rendered bitmaps and written files.

Provides:
    - sha256_bitmap(): Hash a monochrome render (stability checks)
    - sha256_bytes(): Hash raw bytes (emitted Gerber text)
    - sha256_file(): Hash file contents (provenance logging)

The raster fallback compares digests of repeated renders of the same
document; two equal digests mean the render is trusted. Bitmaps are
encoded as PNG before hashing because the encoding is lossless and
covers shape as well as pixel values.

Usage:
    from gerber_prep.utils import hashing
    digest = hashing.sha256_bitmap(bitmap)
"""

import hashlib
from pathlib import Path
from typing import Union

import cv2
import numpy as np


def sha256_bitmap(bitmap: np.ndarray) -> str:
    """Compute SHA-256 hash of a bitmap via its PNG encoding.

    Parameters
    ----------
    bitmap : np.ndarray
        Image, shape (H, W), dtype uint8

    Returns
    -------
    str
        SHA-256 hex digest (64 characters)

    Raises
    ------
    ValueError
        If the bitmap cannot be PNG-encoded

    Notes
    -----
    Deterministic: same pixels and shape → same hash.
    """
    ok, encoded = cv2.imencode('.png', np.ascontiguousarray(bitmap))
    if not ok:
        raise ValueError(f"Failed to PNG-encode bitmap of shape {bitmap.shape}")

    sha256 = hashlib.sha256()
    sha256.update(encoded.tobytes())
    return sha256.hexdigest()


def sha256_bytes(data: bytes) -> str:
    """Hex digest of raw bytes (emitted layer text)."""
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: Union[str, Path], chunk_size: int = 1 << 20) -> str:
    """Hex digest of a file, read in ``chunk_size`` blocks.

    Raises
    ------
    FileNotFoundError
        If the file does not exist
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"File not found: {path}")

    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()

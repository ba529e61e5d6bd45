"""Affine transforms and rectangle helpers.

Provides:
    - SVG ``transform`` attribute parsing into 3x3 affine matrices
    - Scaling detection (non-uniform or anisotropic linear part)
    - Axis-aligned rectangle helpers: bbox, grow, map through a matrix

Used by:
    - rasterizer: per-element bounds and the transform check
    - reducer: the scaled-transform rule
    - board: containment tests

Rectangles are ``(x0, y0, x1, y1)`` tuples with ``x0 <= x1`` and
``y0 <= y1``. Points are numpy arrays of shape (N, 2). Units are
whatever user units the caller works in; nothing here converts.
"""

import math
import re
from typing import Optional, Tuple

import numpy as np

Rect = Tuple[float, float, float, float]

IDENTITY = np.eye(3, dtype=np.float64)

_TRANSFORM_RE = re.compile(r"([a-zA-Z]+)\s*\(([^)]*)\)")
_NUMBER_RE = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")


# ---------------------------------------------------------------------------
# Affine transforms
# ---------------------------------------------------------------------------


def affine(a: float, b: float, c: float, d: float, e: float, f: float) -> np.ndarray:
    """Build a 3x3 matrix from SVG ``matrix(a b c d e f)`` coefficients."""
    return np.array([[a, c, e], [b, d, f], [0.0, 0.0, 1.0]], dtype=np.float64)


def translate(tx: float, ty: float = 0.0) -> np.ndarray:
    return affine(1.0, 0.0, 0.0, 1.0, tx, ty)


def scale(sx: float, sy: Optional[float] = None) -> np.ndarray:
    return affine(sx, 0.0, 0.0, sx if sy is None else sy, 0.0, 0.0)


def rotate(angle_deg: float, cx: float = 0.0, cy: float = 0.0) -> np.ndarray:
    rad = math.radians(angle_deg)
    cos_a, sin_a = math.cos(rad), math.sin(rad)
    rot = affine(cos_a, sin_a, -sin_a, cos_a, 0.0, 0.0)
    if cx == 0.0 and cy == 0.0:
        return rot
    return translate(cx, cy) @ rot @ translate(-cx, -cy)


def parse_transform(text: Optional[str]) -> np.ndarray:
    """Parse an SVG ``transform`` attribute.

    Parameters
    ----------
    text : str, optional
        Attribute value, e.g. ``"translate(10,20) rotate(45)"``

    Returns
    -------
    np.ndarray
        3x3 affine matrix; identity for empty input

    Raises
    ------
    ValueError
        If a transform function is unknown or has the wrong arity
    """
    result = IDENTITY.copy()
    if not text or not text.strip():
        return result

    for name, args in _TRANSFORM_RE.findall(text):
        values = [float(v) for v in _NUMBER_RE.findall(args)]
        name = name.strip()
        n = len(values)

        if name == "matrix" and n == 6:
            m = affine(*values)
        elif name == "translate" and n in (1, 2):
            m = translate(*values)
        elif name == "scale" and n in (1, 2):
            m = scale(*values)
        elif name == "rotate" and n in (1, 3):
            m = rotate(*values)
        elif name == "skewX" and n == 1:
            m = affine(1.0, 0.0, math.tan(math.radians(values[0])), 1.0, 0.0, 0.0)
        elif name == "skewY" and n == 1:
            m = affine(1.0, math.tan(math.radians(values[0])), 0.0, 1.0, 0.0, 0.0)
        else:
            raise ValueError(f"Unsupported transform '{name}({args.strip()})'")

        result = result @ m

    return result


def is_scaling(matrix: np.ndarray, tol: float = 1e-6) -> bool:
    """Return True if the linear part scales, i.e. is not a pure rotation/reflection.

    Notes
    -----
    The linear part is a rotation or reflection exactly when both of its
    singular values are 1. Uniform scaling, non-uniform scaling and skew
    all move at least one singular value away from 1.
    """
    singular = np.linalg.svd(matrix[:2, :2], compute_uv=False)
    return bool(np.any(np.abs(singular - 1.0) > tol))


def apply(matrix: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Map points of shape (N, 2) through an affine matrix."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    return pts @ matrix[:2, :2].T + matrix[:2, 2]


# ---------------------------------------------------------------------------
# Rectangles
# ---------------------------------------------------------------------------


def points_bbox(points: np.ndarray) -> Optional[Rect]:
    """Axis-aligned bounding box of points, or None when empty."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    if len(pts) == 0:
        return None
    mins = pts.min(axis=0)
    maxs = pts.max(axis=0)
    return (float(mins[0]), float(mins[1]), float(maxs[0]), float(maxs[1]))


def grow_rect(rect: Rect, amount: float) -> Rect:
    return (rect[0] - amount, rect[1] - amount, rect[2] + amount, rect[3] + amount)


def map_rect(matrix: np.ndarray, rect: Rect) -> Rect:
    """Bounding box of a rect's four corners mapped through ``matrix``."""
    x0, y0, x1, y1 = rect
    corners = np.array([[x0, y0], [x1, y0], [x1, y1], [x0, y1]], dtype=np.float64)
    return points_bbox(apply(matrix, corners))


def rect_within(inner: Rect, outer: Rect) -> bool:
    """True if ``inner`` lies entirely inside ``outer`` (edges inclusive)."""
    return (
        inner[0] >= outer[0] and inner[1] >= outer[1]
        and inner[2] <= outer[2] and inner[3] <= outer[3]
    )


def rect_center(rect: Rect) -> Tuple[float, float]:
    return ((rect[0] + rect[2]) / 2.0, (rect[1] + rect[3]) / 2.0)

"""SVG path data inspection.

Path data is kept as the authored string everywhere in the pipeline; this
module only reads it. Parsing goes through ``svgpathtools``, which yields
absolute segments with exact bounds. The regexes answer the two questions
the reducer asks: does the data curve, and does it close more than one
subpath.
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

from svgpathtools import Path, parse_path

from gerber_prep.svg.geometry import Rect

# Any curve command: arcs, cubic, quadratic and their smooth forms.
CURVE_RE = re.compile(r"[aAcCqQtTsS]")

# A close command followed by more data.
MULTIPLE_CLOSE_RE = re.compile(r"z\s*[^\s]", re.IGNORECASE)

_CLOSE_SPLIT_RE = re.compile(r"[zZ]")
_MOVE_SPLIT_RE = re.compile(r"(?=[Mm])")
_NUMBER = r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?"
_MOVE_RE = re.compile(rf"^\s*([Mm])\s*({_NUMBER})\s*,?\s*({_NUMBER})")


class PathDataError(ValueError):
    """Raised when path data cannot be parsed."""


def has_curves(d: str) -> bool:
    return CURVE_RE.search(d or "") is not None


def has_multiple_contours(d: str) -> bool:
    """True if a close command is followed by more path data."""
    return MULTIPLE_CLOSE_RE.search(d or "") is not None


def split_on_close(d: str) -> List[str]:
    """Split path data on ``z``/``Z``, dropping blank fragments."""
    return [frag for frag in _CLOSE_SPLIT_RE.split(d) if frag.strip()]


def parse(d: str, current: complex = 0j) -> Path:
    """Parse path data into absolute segments.

    Parameters
    ----------
    d : str
        Path data
    current : complex
        Current point before ``d``; a leading relative move resolves
        against it

    Raises
    ------
    PathDataError
        If svgpathtools cannot read the data
    """
    if not d or not d.strip():
        raise PathDataError("Path data is empty")
    try:
        return parse_path(d, current_pos=current)
    except (ValueError, IndexError, TypeError) as exc:
        raise PathDataError(f"Unable to parse path data {d[:40]!r}: {exc}") from exc


def bounds(d: str) -> Optional[Rect]:
    """Exact geometry bounds of path data, None when it draws no segment.

    Raises
    ------
    PathDataError
        If the data cannot be parsed
    """
    path = parse(d)
    if len(path) == 0:
        return None
    xmin, xmax, ymin, ymax = path.bbox()
    return (xmin, ymin, xmax, ymax)


def first_move(d: str) -> Optional[Tuple[str, float, float]]:
    """Return ``(cmd, x, y)`` of the leading move command, or None."""
    match = _MOVE_RE.match(d or "")
    if match is None:
        return None
    return match.group(1), float(match.group(2)), float(match.group(3))


def last_move(d: str, current: complex = 0j) -> complex:
    """Absolute point of the last move command in ``d``.

    This is where a following ``z`` returns to, and so what a relative
    move after it is measured from.

    Parameters
    ----------
    d : str
        Path data without close commands
    current : complex
        Current point before ``d``

    Raises
    ------
    PathDataError
        If ``d`` does not start with a move, a move has no coordinates
        or the data cannot be parsed
    """
    move = current
    for piece in _MOVE_SPLIT_RE.split(d):
        if not piece.strip():
            continue
        head = first_move(piece)
        if head is None:
            raise PathDataError(f"Expected a move with coordinates at {piece.strip()[:30]!r}")
        cmd, x, y = head
        move = complex(x, y) if cmd == "M" else current + complex(x, y)
        path = parse(piece, current)
        current = path[-1].end if len(path) else move
    return move


def format_number(value: float) -> str:
    """Format a coordinate without trailing zeros (``2.50`` -> ``2.5``)."""
    text = f"{value:.4f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text

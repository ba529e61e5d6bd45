"""Multi-contour splitting for board outlines.

An outline with cutouts arrives as one path with several closed
subpaths. The emitter wants one path per contour (the first is the
outer boundary, the rest are holes), so the path data is split on its
close commands and every later contour becomes a sibling path.

A fragment that does not start with a move has no well-defined start
point once separated. In that case nothing is split and the author is
asked to redraw the cutouts with a boolean operation.
"""

from __future__ import annotations

import copy
import enum
import logging
import xml.etree.ElementTree as ET
from typing import List, Tuple

from gerber_prep.svg.document import LEAF_KEY, VectorDocument
from gerber_prep.svg.pathdata import (
    PathDataError,
    format_number,
    has_multiple_contours,
    last_move,
    split_on_close,
)

logger = logging.getLogger(__name__)

CUTOUT_DIAGNOSTIC = (
    "Unable to process the cutouts in this custom PCB shape. "
    "You may need to reload the shape SVG. "
    "Cutouts must be made using a shape 'subtraction' or 'difference' "
    "operation in your vector graphics editor."
)


class ContourSplit(enum.Enum):
    NONE = "none"
    SPLIT = "split"
    REJECTED = "rejected"


_Fragment = Tuple[str, complex]


def _plan(d: str) -> List[_Fragment]:
    """Fragments paired with the point a leading relative move starts from.

    After a close the current point is the start of the subpath just
    closed, i.e. the last move of the previous fragment.
    """
    plan = []
    anchor = 0j
    for frag in split_on_close(d):
        frag = frag.strip()
        if not frag.startswith(("m", "M")):
            raise ValueError(f"contour fragment does not start with a move: {frag[:30]!r}")
        plan.append((frag, anchor))
        anchor = last_move(frag, anchor)
    return plan


def split_contours(doc: VectorDocument) -> ContourSplit:
    """Split every multi-contour path into one path per contour.

    All paths are checked before any is modified, so a rejection leaves
    the document untouched.

    Returns
    -------
    ContourSplit
        ``NONE`` if no path had several contours, ``SPLIT`` if paths were
        split, ``REJECTED`` if a fragment did not start with a move
    """
    work: List[Tuple[ET.Element, str, List[_Fragment]]] = []
    for el in doc.leaves("path"):
        d = el.get("d") or ""
        if not has_multiple_contours(d):
            continue
        try:
            work.append((el, d, _plan(d)))
        except (ValueError, PathDataError) as exc:
            logger.warning("Path %s rejected for splitting: %s", el.get("id"), exc)
            return ContourSplit.REJECTED

    if not work:
        return ContourSplit.NONE

    for el, d, plan in work:
        ends_closed = d.rstrip()[-1:] in ("z", "Z")
        base_id = el.get("id")

        first_data, _ = plan[0]
        template = copy.deepcopy(el)
        el.set("d", first_data + "z")

        prev = el
        for index, (data, anchor) in enumerate(plan[1:], start=1):
            if data.startswith("m"):
                data = f"M{format_number(anchor.real)},{format_number(anchor.imag)} {data}"

            if index < len(plan) - 1 or ends_closed:
                data += "z"

            contour = copy.deepcopy(template)
            contour.set("d", data)
            contour.set(LEAF_KEY, doc.new_key())
            if base_id:
                contour.set("id", f"{base_id}_{index}")
            doc.insert_after(prev, contour)
            prev = contour

        logger.debug("Split path %s into %d contours", base_id, len(plan))

    return ContourSplit.SPLIT

"""Donut normalization: ring-shaped pad paths back to circles.

Some parts draw a round pad with a hole as a single path (a "donut").
The emitter handles a stroked circle exactly, but the donut's arcs would
send it through the lossy raster fallback. When the connector map says a
path is a circle-like connector, the path is replaced by a circle built
from the connector's measured radius and ring width.

Must run before feature reduction, otherwise the donut is squashed as a
curved path first.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Optional

from gerber_prep.configs.loader import ResolutionConfig
from gerber_prep.pipeline.connectors import ConnectorDescriptor, ConnectorMap
from gerber_prep.render.rasterizer import SvgRasterizer
from gerber_prep.svg.document import LEAF_KEY, VectorDocument, get_property
from gerber_prep.svg.geometry import rect_center
from gerber_prep.svg.pathdata import format_number

logger = logging.getLogger(__name__)

PART_ID_ATTR = "partID"


def _find_connector(
    doc: VectorDocument,
    el: ET.Element,
    connectors: ConnectorMap
) -> Optional[ConnectorDescriptor]:
    """Walk up to the nearest part with circle-like connectors and match the id.

    The search stops at the first part that has no circle-like connectors.
    """
    svg_id = el.get("id")
    for ancestor in doc.ancestors(el):
        raw = ancestor.get(PART_ID_ATTR)
        if raw is None:
            continue
        try:
            part_id = int(raw)
        except ValueError:
            logger.debug("Ignoring non-integer %s '%s'", PART_ID_ATTR, raw)
            continue

        candidates = [d for d in connectors.for_part(part_id) if d.is_circle_like]
        if not candidates:
            return None
        for desc in candidates:
            if desc.svg_id == svg_id:
                return desc
    return None


def normalize_donuts(
    doc: VectorDocument,
    connectors: Optional[ConnectorMap],
    renderer: SvgRasterizer,
    resolution: ResolutionConfig
) -> int:
    """Replace circle-like connector paths with circles.

    Parameters
    ----------
    doc : VectorDocument
        Layer document, modified in place
    connectors : ConnectorMap, optional
        Connector metadata; nothing happens without it
    renderer : SvgRasterizer
        Supplies element bounds in the parent frame
    resolution : ResolutionConfig
        Converts connector lengths to output units

    Returns
    -------
    int
        Number of paths converted
    """
    if not connectors:
        return 0
    circle_ids = connectors.circle_like_ids()
    if not circle_ids:
        return 0

    converted = 0
    for el in doc.leaves("path"):
        if el.get("id") not in circle_ids:
            continue
        desc = _find_connector(doc, el, connectors)
        if desc is None:
            continue

        bounds = renderer.parent_bounds(el)
        if bounds is None:
            logger.warning("Donut %s has no measurable bounds, left as path", el.get("id"))
            continue

        cx, cy = rect_center(bounds)
        attrib = {
            "cx": format_number(cx),
            "cy": format_number(cy),
            "r": format_number(desc.radius * resolution.scale),
            "stroke-width": format_number(desc.stroke_width * resolution.scale),
            "id": el.get("id"),
        }
        for prop in ("fill", "stroke"):
            value = get_property(el, prop)
            if value is not None:
                attrib[prop] = value
        if el.get(LEAF_KEY) is not None:
            attrib[LEAF_KEY] = el.get(LEAF_KEY)

        circle = doc.make_element("circle", attrib)
        doc.insert_before(el, circle)
        doc.remove(el)
        converted += 1
        logger.debug("Donut %s -> circle r=%s at (%s, %s)",
                     attrib["id"], attrib["r"], attrib["cx"], attrib["cy"])

    return converted

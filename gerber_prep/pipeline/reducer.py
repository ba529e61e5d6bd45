"""Feature reduction: squash what the emitter cannot translate.

Each :class:`SquashRule` selects drawable leaves by tag and, optionally,
by a presentation property (attribute or ``style``) and a value regex.
Matches are squashed into ink-less ``<g>`` elements and the document's
``requires_raster`` flag is raised, so the raster fallback redraws them.

Rules run in a fixed order (:data:`DEFAULT_RULES`). A second pass over
an already reduced document finds nothing, because squashed elements
are no longer leaves.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Optional, Pattern, Sequence

from gerber_prep.svg import geometry, pathdata
from gerber_prep.svg.document import VectorDocument, get_property

logger = logging.getLogger(__name__)

ANY_TAG = "*"

# Any value other than "none" (or blank).
NOT_NONE_RE = re.compile(r"^\s*(?!none\s*$)\S", re.IGNORECASE)


@dataclass(frozen=True)
class SquashRule:
    """Squash leaves of ``tag`` whose ``attribute`` matches ``pattern``.

    With no attribute every leaf of the tag matches; with an attribute
    and no pattern, presence of the attribute is enough.
    """

    name: str
    tag: str
    attribute: Optional[str] = None
    pattern: Optional[Pattern[str]] = None

    def matches(self, doc: VectorDocument, el: ET.Element) -> bool:
        if self.attribute is None:
            return True
        value = get_property(el, self.attribute)
        if value is None:
            return False
        if self.pattern is None:
            return True
        return self.pattern.search(value) is not None


@dataclass(frozen=True)
class ScaledTransformRule:
    """Squash leaves under any transform whose linear part scales or skews."""

    name: str = "scaled-transform"
    tag: str = ANY_TAG

    def matches(self, doc: VectorDocument, el: ET.Element) -> bool:
        for node in [el, *doc.ancestors(el)]:
            text = node.get("transform")
            if not text:
                continue
            try:
                if geometry.is_scaling(geometry.parse_transform(text)):
                    return True
            except ValueError:
                logger.debug("Unparseable transform '%s', treating as scaled", text)
                return True
        return False


DEFAULT_RULES = (
    SquashRule("text", "text"),
    SquashRule("ellipse", "ellipse"),
    SquashRule("rounded-rect-x", "rect", "rx"),
    SquashRule("rounded-rect-y", "rect", "ry"),
    SquashRule("dashed-rect", "rect", "stroke-dasharray", NOT_NONE_RE),
    SquashRule("dashed-circle", "circle", "stroke-dasharray", NOT_NONE_RE),
    SquashRule("dashed-line", "line", "stroke-dasharray", NOT_NONE_RE),
    SquashRule("curved-path", "path", "d", pathdata.CURVE_RE),
    SquashRule("multi-contour-path", "path", "d", pathdata.MULTIPLE_CLOSE_RE),
    SquashRule("image", "image"),
    ScaledTransformRule(),
)


class FeatureReducer:
    """Applies squash rules in order.

    Parameters
    ----------
    rules : sequence of rules
        Objects with ``name``, ``tag`` and ``matches(doc, el)``;
        defaults to :data:`DEFAULT_RULES`
    """

    def __init__(self, rules: Sequence = DEFAULT_RULES):
        self.rules = tuple(rules)

    def reduce(self, doc: VectorDocument) -> bool:
        """Squash every leaf matched by any rule.

        Returns
        -------
        bool
            True if at least one element was squashed
        """
        changed = False
        for rule in self.rules:
            candidates = doc.leaves() if rule.tag == ANY_TAG else doc.leaves(rule.tag)
            hits = [el for el in candidates if rule.matches(doc, el)]
            for el in hits:
                doc.squash(el)
            if hits:
                changed = True
                logger.debug("Rule %s squashed %d element(s)", rule.name, len(hits))
        return changed

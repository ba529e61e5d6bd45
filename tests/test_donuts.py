"""Tests for gerber_prep.pipeline.donuts.

Tests:
    - A circle-like connector path becomes a centred circle whose radius
      and ring width come from the connector, scaled to output units
    - Paths that are not circle-like connectors are left alone
    - An id collision under another part does not convert
"""

import pytest

from gerber_prep.configs.loader import ResolutionConfig
from gerber_prep.pipeline.connectors import ConnectorDescriptor, ConnectorMap
from gerber_prep.pipeline.donuts import normalize_donuts
from gerber_prep.svg.document import LEAF_KEY, VectorDocument, local_name

from conftest import layer_svg

DONUT_D = "M90,100 A10,10 0 1,0 110,100 A10,10 0 1,0 90,100 z M95,100 A5,5 0 1,1 105,100 A5,5 0 1,1 95,100 z"


@pytest.fixture
def connectors():
    return ConnectorMap([
        ConnectorDescriptor(attached_id=7, svg_id="connector0pin", is_path=True,
                            radius=10.0, stroke_width=2.0),
        ConnectorDescriptor(attached_id=7, svg_id="connector1pad", is_path=False,
                            radius=4.0, stroke_width=1.0),
    ])


def donut_doc(part_id=7, svg_id="connector0pin"):
    return VectorDocument.parse(layer_svg(
        f'<g partID="{part_id}"><g>'
        f'<path id="{svg_id}" fill="none" stroke="#f7bd13" d="{DONUT_D}"/>'
        '</g></g>',
        200, 200,
    ))


def test_donut_becomes_circle(connectors, rasterizer):
    doc = donut_doc()
    key = doc.leaves("path")[0].get(LEAF_KEY)

    assert normalize_donuts(doc, connectors, rasterizer, ResolutionConfig()) == 1
    assert doc.leaves("path") == []

    circle, = doc.leaves("circle")
    assert circle.get("id") == "connector0pin"
    assert circle.get("r") == "111.1111"
    assert circle.get("stroke-width") == "22.2222"
    assert float(circle.get("cx")) == pytest.approx(100.0, abs=0.5)
    assert float(circle.get("cy")) == pytest.approx(100.0, abs=0.5)
    assert circle.get("stroke") == "#f7bd13"
    assert circle.get("fill") == "none"
    assert circle.get(LEAF_KEY) == key


def test_circle_takes_the_path_position_in_its_parent(connectors, rasterizer):
    doc = donut_doc()
    parent = doc.parent(doc.leaves("path")[0])
    normalize_donuts(doc, connectors, rasterizer, ResolutionConfig())
    assert [local_name(el) for el in parent] == ["circle"]


def test_no_connectors_is_a_no_op(rasterizer):
    doc = donut_doc()
    assert normalize_donuts(doc, None, rasterizer, ResolutionConfig()) == 0
    assert normalize_donuts(doc, ConnectorMap(), rasterizer, ResolutionConfig()) == 0
    assert len(doc.leaves("path")) == 1


def test_non_path_connector_is_not_circle_like(connectors, rasterizer):
    doc = donut_doc(svg_id="connector1pad")
    assert normalize_donuts(doc, connectors, rasterizer, ResolutionConfig()) == 0
    assert len(doc.leaves("path")) == 1


def test_same_id_under_other_part_is_left_alone(connectors, rasterizer):
    connectors.add(ConnectorDescriptor(attached_id=9, svg_id="connector5pin"))
    doc = donut_doc(part_id=9)
    assert normalize_donuts(doc, connectors, rasterizer, ResolutionConfig()) == 0
    assert len(doc.leaves("path")) == 1


def test_path_outside_any_part_is_left_alone(connectors, rasterizer):
    doc = VectorDocument.parse(layer_svg(f'<path id="connector0pin" d="{DONUT_D}"/>', 200, 200))
    assert normalize_donuts(doc, connectors, rasterizer, ResolutionConfig()) == 0


def test_only_circle_like_connectors_are_matched(rasterizer):
    connectors = ConnectorMap([
        ConnectorDescriptor(attached_id=7, svg_id="connector0pin", is_path=False),
        ConnectorDescriptor(attached_id=7, svg_id="connector0pin", is_path=True,
                            radius=10.0, stroke_width=2.0),
    ])
    doc = donut_doc()
    assert normalize_donuts(doc, connectors, rasterizer, ResolutionConfig()) == 1
    circle, = doc.leaves("circle")
    assert circle.get("r") == "111.1111"
    assert circle.get("stroke-width") == "22.2222"


def test_part_without_circle_like_connectors_ends_the_search(rasterizer):
    connectors = ConnectorMap([
        ConnectorDescriptor(attached_id=3, svg_id="connector0pin", is_path=False),
        ConnectorDescriptor(attached_id=7, svg_id="connector0pin", is_path=True,
                            radius=10.0, stroke_width=2.0),
    ])
    doc = VectorDocument.parse(layer_svg(
        f'<g partID="7"><g partID="3">'
        f'<path id="connector0pin" d="{DONUT_D}"/>'
        '</g></g>',
        200, 200,
    ))
    assert normalize_donuts(doc, connectors, rasterizer, ResolutionConfig()) == 0
    assert len(doc.leaves("path")) == 1

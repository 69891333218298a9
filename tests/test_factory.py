"""Tests for ElementFactory: defaults, identity, label binding and image files."""
from __future__ import annotations

import random

import pytest

from models import (
    ArrowElement,
    FrameElement,
    ImageElement,
    LineElement,
    Position,
    SceneContractError,
    SceneFile,
    ShapeElement,
    TextElement,
)
from scene.factory import (
    ID_LENGTH,
    SEED_RANGE,
    ElementFactory,
    ElementSpec,
    FileReference,
    LabelSpec,
    estimate_text_size,
    resolve_file_references,
)


def _factory(seed: int = 7) -> ElementFactory:
    return ElementFactory(random.Random(seed))


# ─────────────────────────────────────────────────────────
# Identity
# ─────────────────────────────────────────────────────────


class TestIdentity:
    def test_seeded_factories_agree(self):
        spec = ElementSpec(type="rectangle", width=10, height=10)
        a = _factory(3).build(spec).elements[0]
        b = _factory(3).build(spec).elements[0]
        assert (a.id, a.seed, a.version_nonce) == (b.id, b.seed, b.version_nonce)

    def test_generated_id_shape(self):
        el = _factory().build(ElementSpec(type="ellipse")).elements[0]
        assert len(el.id) == ID_LENGTH

    def test_given_id_kept(self):
        el = _factory().build(ElementSpec(type="diamond", id="A")).elements[0]
        assert el.id == "A"

    def test_seeds_in_range_and_unique(self):
        factory = _factory()
        specs = [ElementSpec(type="rectangle", label=LabelSpec(f"n{i}")) for i in range(50)]
        elements = factory.build_all(specs).elements
        seeds = [el.seed for el in elements]
        assert len(set(seeds)) == len(seeds)
        assert all(0 <= s < SEED_RANGE for s in seeds)
        assert all(0 <= el.version_nonce < SEED_RANGE for el in elements)


# ─────────────────────────────────────────────────────────
# Style defaults
# ─────────────────────────────────────────────────────────


class TestDefaults:
    def test_shape_defaults(self):
        el = _factory().build(ElementSpec(type="rectangle", x=1, y=2, width=3, height=4)).elements[0]
        assert isinstance(el, ShapeElement)
        d = el.to_dict()
        assert d["strokeColor"] == "#1e1e1e"
        assert d["backgroundColor"] == "transparent"
        assert d["fillStyle"] == "solid"
        assert d["strokeWidth"] == 2
        assert d["strokeStyle"] == "solid"
        assert d["roughness"] == 1
        assert d["opacity"] == 100
        assert d["angle"] == 0
        assert d["version"] == 1
        assert d["isDeleted"] is False
        assert d["groupIds"] == []
        assert d["boundElements"] == []
        assert (d["x"], d["y"], d["width"], d["height"]) == (1, 2, 3, 4)

    def test_missing_size_is_zero(self):
        el = _factory().build(ElementSpec(type="rectangle")).elements[0]
        assert (el.width, el.height) == (0, 0)

    def test_arrow_defaults(self):
        el = _factory().build(ElementSpec(type="arrow")).elements[0]
        assert isinstance(el, ArrowElement)
        assert el.start_arrowhead is None
        assert el.end_arrowhead == "arrow"
        assert el.points == [Position(0.0, 0.0), Position(0.0, 0.0)]
        assert el.start_binding is None and el.end_binding is None

    def test_arrow_explicit_heads(self):
        el = _factory().build(ElementSpec(type="arrow", start_arrowhead="dot", end_arrowhead=None)).elements[0]
        assert (el.start_arrowhead, el.end_arrowhead) == ("dot", None)

    def test_line_defaults(self):
        el = _factory().build(ElementSpec(type="line")).elements[0]
        assert isinstance(el, LineElement)
        assert el.start_arrowhead is None and el.end_arrowhead is None

    def test_single_point_path_replaced(self):
        el = _factory().build(ElementSpec(type="arrow", points=[Position(3, 3)])).elements[0]
        assert el.points == [Position(0.0, 0.0), Position(0.0, 0.0)]

    def test_arrow_bindings(self):
        el = _factory().build(ElementSpec(type="arrow", start_id="A", end_id="B")).elements[0]
        d = el.to_dict()
        assert d["startBinding"] == {"elementId": "A", "focus": 0.0, "gap": 0.0}
        assert d["endBinding"]["elementId"] == "B"

    def test_frame_defaults(self):
        el = _factory().build(ElementSpec(type="frame")).elements[0]
        assert isinstance(el, FrameElement)
        assert el.name == "" and el.children == []

    def test_text_gets_estimated_size(self):
        el = _factory().build(ElementSpec(type="text", text="hello", font_size=10)).elements[0]
        assert isinstance(el, TextElement)
        assert (el.width, el.height) == estimate_text_size("hello", 10)

    def test_unknown_type_rejected(self):
        with pytest.raises(SceneContractError):
            _factory().build(ElementSpec(type="star"))

    def test_element_type_mismatch_rejected(self):
        with pytest.raises(SceneContractError):
            ShapeElement(id="x", type="arrow")


# ─────────────────────────────────────────────────────────
# Labels
# ─────────────────────────────────────────────────────────


class TestLabels:
    def test_label_bound_both_ways(self):
        result = _factory().build(ElementSpec(
            type="rectangle", id="A", width=100, height=40, label=LabelSpec("Start", 16),
        ))
        shape, text = result.elements
        assert text.id == "A_text"
        assert text.container_id == "A"
        assert {"id": "A_text", "type": "text"} in shape.bound_elements
        assert text.text == text.original_text == "Start"

    def test_label_centred_on_shape(self):
        shape, text = _factory().build(ElementSpec(
            type="rectangle", id="A", x=10, y=20, width=100, height=40, label=LabelSpec("Hi", 10),
        )).elements
        assert text.x + text.width / 2 == pytest.approx(60)
        assert text.y + text.height / 2 == pytest.approx(40)

    def test_label_centred_on_arrow_path(self):
        arrow, text = _factory().build(ElementSpec(
            type="arrow", id="e", x=0, y=0,
            points=[Position(0, 0), Position(100, 50)],
            label=LabelSpec("yes", 12),
        )).elements
        assert text.container_id == "e"
        assert text.x + text.width / 2 == pytest.approx(50)
        assert text.y + text.height / 2 == pytest.approx(25)

    def test_empty_label_not_built(self):
        result = _factory().build(ElementSpec(type="rectangle", label=LabelSpec("")))
        assert len(result.elements) == 1

    def test_label_inherits_group(self):
        _, text = _factory().build(ElementSpec(
            type="rectangle", group_ids=["g1"], label=LabelSpec("x"),
        )).elements
        assert text.group_ids == ["g1"]


# ─────────────────────────────────────────────────────────
# Images and file references
# ─────────────────────────────────────────────────────────


class TestImages:
    def test_new_file_id_minted(self):
        result = _factory().build(ElementSpec(type="image", file_id="orig"))
        (image,) = result.elements
        (ref,) = result.file_refs
        assert isinstance(image, ImageElement)
        assert image.file_id != "orig"
        assert ref == FileReference(image.file_id, "orig")

    def test_unmeasured_size_is_zero(self):
        image = _factory().build(ElementSpec(type="image", file_id="orig")).elements[0]
        assert (image.width, image.height) == (0, 0)

    def test_image_without_file_rejected(self):
        with pytest.raises(SceneContractError):
            _factory().build(ElementSpec(type="image"))

    def test_resolve_references(self):
        files = {"orig": SceneFile("orig", "image/svg+xml", "data:image/svg+xml;base64,AA==", 5)}
        resolved = resolve_file_references([FileReference("new1", "orig")], files)
        assert list(resolved) == ["new1"]
        assert resolved["new1"].id == "new1"
        assert resolved["new1"].data_url == files["orig"].data_url

    def test_dangling_reference_rejected(self):
        with pytest.raises(SceneContractError):
            resolve_file_references([FileReference("new1", "missing")], {})

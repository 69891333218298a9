"""Tests for translate() extraction and curvature control points."""
from __future__ import annotations

import math

import pytest

from models import Position
from scene.geometry import bounding_box, curvature_point, extract_translation


# ─────────────────────────────────────────────────────────
# extract_translation
# ─────────────────────────────────────────────────────────


class TestExtractTranslation:
    def test_comma_separated(self):
        assert extract_translation("translate(10, 20)") == Position(10.0, 20.0)

    def test_space_separated_negative(self):
        assert extract_translation("translate(-12.5 7)") == Position(-12.5, 7.0)

    def test_single_argument(self):
        assert extract_translation("translate(42)") == Position(42.0, 0.0)

    def test_inside_compound_transform(self):
        assert extract_translation("scale(2) translate(3,4)") == Position(3.0, 4.0)

    @pytest.mark.parametrize("value", [None, "", "rotate(45)", "translate()"])
    def test_missing_gives_origin(self, value):
        assert extract_translation(value) == Position(0.0, 0.0)


# ─────────────────────────────────────────────────────────
# curvature_point
# ─────────────────────────────────────────────────────────


def _dist_to_mid(p: Position, a: Position, b: Position) -> float:
    return math.hypot(p.x - (a.x + b.x) / 2, p.y - (a.y + b.y) / 2)


class TestCurvaturePoint:
    def test_horizontal_segment(self):
        p = curvature_point(Position(0, 0), Position(10, 0), 0.5)
        assert p.x == pytest.approx(5.0)
        assert p.y == pytest.approx(5.0)

    def test_distance_is_curvature_times_length(self):
        a, b = Position(1, 2), Position(7, 10)
        p = curvature_point(a, b, 0.3)
        assert _dist_to_mid(p, a, b) == pytest.approx(0.3 * 10.0)

    def test_swapping_endpoints_flips_side(self):
        a, b = Position(0, 0), Position(8, 6)
        p = curvature_point(a, b, 0.4)
        q = curvature_point(b, a, 0.4)
        mid = Position(4, 3)
        assert p.x - mid.x == pytest.approx(-(q.x - mid.x))
        assert p.y - mid.y == pytest.approx(-(q.y - mid.y))

    def test_negative_curvature_flips_side(self):
        a, b = Position(0, 0), Position(8, 6)
        p = curvature_point(a, b, 0.4)
        q = curvature_point(a, b, -0.4)
        assert p.x + q.x == pytest.approx(8.0)
        assert p.y + q.y == pytest.approx(6.0)

    def test_zero_curvature_is_midpoint(self):
        p = curvature_point(Position(0, 0), Position(4, 4), 0.0)
        assert (p.x, p.y) == (pytest.approx(2.0), pytest.approx(2.0))

    def test_coincident_points(self):
        assert curvature_point(Position(3, 3), Position(3, 3), 0.5) == Position(3, 3)

    def test_vertical_segment_down(self):
        p = curvature_point(Position(0, 0), Position(0, 10), 0.5)
        assert p == Position(-5.0, 5.0)

    def test_vertical_segment_up(self):
        p = curvature_point(Position(0, 10), Position(0, 0), 0.5)
        assert p == Position(5.0, 5.0)

    def test_vertical_negative_curvature(self):
        p = curvature_point(Position(0, 0), Position(0, 10), -0.5)
        assert p == Position(5.0, 5.0)

    def test_vertical_matches_general_formula_limit(self):
        near = curvature_point(Position(0, 0), Position(1e-9, 10), 0.5)
        exact = curvature_point(Position(0, 0), Position(0, 10), 0.5)
        assert near.x == pytest.approx(exact.x, abs=1e-6)
        assert near.y == pytest.approx(exact.y, abs=1e-6)


class TestBoundingBox:
    def test_box(self):
        pts = [Position(0, 0), Position(4, -2), Position(1, 5)]
        assert bounding_box(pts) == (0, -2, 4, 7)

    def test_empty(self):
        assert bounding_box([]) == (0.0, 0.0, 0.0, 0.0)

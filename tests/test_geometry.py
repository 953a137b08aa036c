"""Tests for similarity fitting and inversion."""

import numpy as np
import pytest

from hairscan.errors import DegenerateLandmarks
from hairscan.geometry import SimilarityTransform, fit_similarity, is_collinear
from hairscan.template import CANONICAL_ANCHORS
from hairscan.types import Point


TRIPLES = [
    (Point(165.0, 176.0), Point(235.0, 176.0), Point(200.0, 218.0)),
    (Point(10.0, 20.0), Point(40.0, 25.0), Point(22.0, 60.0)),
    (Point(-3.5, 7.25), Point(120.0, -40.0), Point(55.0, 300.0)),
    (Point(512.3, 301.9), Point(498.1, 388.4), Point(430.0, 340.0)),
]


class TestFitSimilarity:
    @pytest.mark.parametrize("src", TRIPLES)
    def test_round_trip_returns_source_points(self, src):
        fwd = fit_similarity(*src, *CANONICAL_ANCHORS)
        back = fwd.invert()
        for p in src:
            q = back.apply(fwd.apply(p))
            scale = max(abs(p.x), abs(p.y), 1.0)
            assert abs(q.x - p.x) <= 1e-6 * scale
            assert abs(q.y - p.y) <= 1e-6 * scale

    def test_recovers_exact_similarity(self):
        truth = SimilarityTransform(a=1.2, b=-0.4, tx=30.0, ty=-12.0)
        src = TRIPLES[1]
        dst = [truth.apply(p) for p in src]
        fitted = fit_similarity(*src, *dst)
        assert fitted.a == pytest.approx(truth.a)
        assert fitted.b == pytest.approx(truth.b)
        assert fitted.tx == pytest.approx(truth.tx)
        assert fitted.ty == pytest.approx(truth.ty)

    def test_maps_eyes_onto_canonical_eyes(self):
        src = (Point(165.0, 176.0), Point(235.0, 176.0), Point(200.0, 218.0))
        fwd = fit_similarity(*src, *CANONICAL_ANCHORS)
        left = fwd.apply(src[0])
        right = fwd.apply(src[1])
        assert left.x == pytest.approx(-0.5)
        assert left.y == pytest.approx(0.0, abs=1e-9)
        assert right.x == pytest.approx(0.5)

    def test_coincident_points_are_degenerate(self):
        p = Point(5.0, 5.0)
        with pytest.raises(DegenerateLandmarks):
            fit_similarity(p, p, p, *CANONICAL_ANCHORS)

    def test_collinear_points_are_degenerate(self):
        with pytest.raises(DegenerateLandmarks):
            fit_similarity(Point(0, 0), Point(10, 10), Point(20, 20), *CANONICAL_ANCHORS)

    @pytest.mark.parametrize("k", [1e-3, 1e3, 1e4, 1e5])
    def test_round_trip_at_any_pixel_scale(self, k):
        src = [Point(p.x * k, p.y * k) for p in TRIPLES[0]]
        fwd = fit_similarity(*src, *CANONICAL_ANCHORS)
        back = fwd.invert()
        for p in src:
            q = back.apply(fwd.apply(p))
            assert q.x == pytest.approx(p.x, rel=1e-6)
            assert q.y == pytest.approx(p.y, rel=1e-6)

    @pytest.mark.parametrize("k", [1.0, 1e4])
    def test_mirrored_equilateral_is_degenerate(self, k):
        # a reflection of an isotropic triangle has no rotation/scale component
        h = np.sqrt(3.0) * k
        src = (Point(0.0, 0.0), Point(2.0 * k, 0.0), Point(k, h))
        dst = (Point(0.0, 0.0), Point(2.0 * k, 0.0), Point(k, -h))
        with pytest.raises(DegenerateLandmarks):
            fit_similarity(*src, *dst)

    def test_coincident_targets_are_degenerate(self):
        origin = Point(0.0, 0.0)
        with pytest.raises(DegenerateLandmarks):
            fit_similarity(*TRIPLES[0], origin, origin, origin)


class TestSimilarityTransform:
    def test_invert_zero_scale_fails(self):
        with pytest.raises(DegenerateLandmarks):
            SimilarityTransform(0.0, 0.0, 1.0, 2.0).invert()

    def test_invert_of_rotation(self):
        t = SimilarityTransform(a=0.0, b=2.0, tx=3.0, ty=-1.0)  # 90 deg, scale 2
        inv = t.invert()
        p = Point(7.0, -4.0)
        q = inv.apply(t.apply(p))
        assert q.x == pytest.approx(p.x)
        assert q.y == pytest.approx(p.y)

    def test_apply_many_matches_apply(self):
        t = SimilarityTransform(a=0.8, b=0.3, tx=-5.0, ty=2.5)
        pts = np.array([[1.0, 2.0], [-3.0, 4.5], [0.0, 0.0]])
        out = t.apply_many(pts)
        for (x, y), (ox, oy) in zip(pts, out):
            q = t.apply(Point(x, y))
            assert ox == pytest.approx(q.x)
            assert oy == pytest.approx(q.y)

    def test_as_matrix_layout(self):
        m = SimilarityTransform(a=1.0, b=0.5, tx=2.0, ty=3.0).as_matrix()
        assert m.shape == (2, 3)
        assert m[0, 1] == pytest.approx(-0.5)
        assert m[1, 0] == pytest.approx(0.5)


def test_is_collinear():
    assert is_collinear(Point(0, 0), Point(1, 1), Point(5, 5))
    assert not is_collinear(Point(0, 0), Point(1, 0), Point(0, 1))

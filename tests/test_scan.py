"""Tests for scan orchestration and threshold selection."""

import numpy as np
import pytest

import hairscan.scan as scan_mod
from hairscan.config import merge_config
from hairscan.scan import ScanOrchestrator, analyze, scored_regions, threshold_for
from hairscan.types import NormalizedRect, RegionKind, ScanState, ThresholdSet


class TestThresholds:
    def test_calibrated_regions(self):
        t = ThresholdSet(front=0.2, crown=0.3, sides=0.4)
        assert threshold_for(RegionKind.FRONT, t) == 0.2
        assert threshold_for(RegionKind.CROWN, t) == 0.3
        assert threshold_for(RegionKind.LEFT_SIDE, t) == 0.4
        assert threshold_for(RegionKind.RIGHT_SIDE, t) == 0.4
        assert threshold_for(RegionKind.JAWLINE, t) == 0.4

    def test_derived_regions_with_defaults(self):
        t = ThresholdSet()
        assert threshold_for(RegionKind.UPPER_LIP, t) == pytest.approx(0.70)
        assert threshold_for(RegionKind.CHIN, t) == pytest.approx(0.50)

    def test_derived_regions_follow_front(self):
        t = ThresholdSet(front=0.8)
        assert threshold_for(RegionKind.UPPER_LIP, t) == pytest.approx(0.95)
        assert threshold_for(RegionKind.CHIN, t) == pytest.approx(0.60)
        t = ThresholdSet(front=0.64)
        assert threshold_for(RegionKind.UPPER_LIP, t) == pytest.approx(0.80)

    def test_derived_rules_from_config(self):
        cfg = merge_config({"derived_thresholds": {"chin": {"factor": 1.0, "min": 0.0, "max": 1.0}}})
        assert threshold_for(RegionKind.CHIN, ThresholdSet(front=0.33), cfg) == pytest.approx(0.33)


class TestScanOrchestrator:
    def test_complete_scan(self, face_image, frontal_face):
        outcome = analyze(face_image, frontal_face, ThresholdSet())
        assert outcome.state is ScanState.COMPLETE
        assert outcome.ok
        assert outcome.reason is None
        scores = outcome.result.scores
        assert [s.kind for s in scores] == list(RegionKind)
        for s in scores:
            assert 0.0 <= s.score <= 1.0
            assert s.passed == (s.score >= s.threshold)
        assert outcome.result.elapsed_ms >= 0
        assert set(outcome.regions) == set(RegionKind)

    def test_default_thresholds_from_config(self, face_image, frontal_face):
        cfg = merge_config({"thresholds": {"front": 0.99}})
        outcome = ScanOrchestrator(cfg).run(face_image, frontal_face)
        assert outcome.result.score_for(RegionKind.FRONT).threshold == 0.99

    @pytest.mark.parametrize("score,expected", [(0.20, True), (0.10, False), (0.15, True)])
    def test_front_pass_fail(self, monkeypatch, face_image, frontal_face, score, expected):
        monkeypatch.setattr(scan_mod, "score_region", lambda pixels, params=None: score)
        outcome = analyze(face_image, frontal_face, ThresholdSet(front=0.15))
        front = outcome.result.score_for(RegionKind.FRONT)
        assert front.score == score
        assert front.passed is expected

    def test_yaw_rejection_yields_no_result(self, face_image, make_face):
        outcome = analyze(face_image, make_face(yaw=30.0))
        assert outcome.state is ScanState.FAILED
        assert outcome.result is None
        assert "face not facing forward" in outcome.reason
        assert not outcome.ok

    def test_missing_image_fails(self, frontal_face):
        outcome = analyze(None, frontal_face)
        assert outcome.state is ScanState.FAILED
        assert outcome.result is None
        assert outcome.reason

    def test_empty_image_fails(self, frontal_face):
        outcome = analyze(np.zeros((0, 0, 3), dtype=np.uint8), frontal_face)
        assert outcome.state is ScanState.FAILED

    def test_region_errors_are_absorbed(self, monkeypatch, face_image, frontal_face):
        calls = {"n": 0}

        def flaky(pixels, params=None):
            calls["n"] += 1
            if calls["n"] % 2:
                raise RuntimeError("boom")
            return 0.5

        monkeypatch.setattr(scan_mod, "score_region", flaky)
        outcome = analyze(face_image, frontal_face, ThresholdSet(front=0.1, crown=0.1, sides=0.1))
        assert outcome.state is ScanState.COMPLETE
        scores = outcome.result.scores
        assert len(scores) == 7
        failed = [s for s in scores if s.score == 0.0]
        assert failed and all(not s.passed for s in failed)
        assert any(s.score == 0.5 for s in scores)

    def test_regions_outside_image_score_zero(self, make_face):
        # face box mostly beyond a small image: clipped crops are unscorable
        image = np.full((60, 60, 3), 150, dtype=np.uint8)
        face = make_face(left=40.0, top=40.0)
        outcome = analyze(image, face)
        assert outcome.state is ScanState.COMPLETE
        assert all(s.score == 0.0 and not s.passed for s in outcome.result.scores)

    @pytest.mark.parametrize("right,expected_calls", [(0.14, 0), (0.15, 1)])
    def test_crops_below_min_size_skip_scorer(self, monkeypatch, make_face, right, expected_calls):
        calls = []

        def record(pixels, params=None):
            calls.append(pixels.shape)
            return 1.0

        monkeypatch.setattr(scan_mod, "score_region", record)
        image = np.full((100, 100, 3), 150, dtype=np.uint8)
        face = make_face(left=0.0, top=0.0, width=100.0, height=100.0)
        rect = NormalizedRect(l=0.1, t=0.1, r=right, b=0.6)  # 4 px vs 5 px wide, 50 px tall

        rs = ScanOrchestrator()._score_one(image, face, RegionKind.FRONT, rect, ThresholdSet())
        assert len(calls) == expected_calls
        if expected_calls:
            assert calls[0] == (50, 5, 3)
            assert rs.score == 1.0 and rs.passed
        else:
            assert rs.score == 0.0 and not rs.passed
        assert rs.threshold == 0.15

    def test_unexpected_error_fails_scan(self, monkeypatch, face_image, frontal_face):
        def explode(face):
            raise RuntimeError("locator exploded")

        monkeypatch.setattr(scan_mod, "locate_regions", explode)
        orch = ScanOrchestrator()
        outcome = orch.run(face_image, frontal_face)
        assert outcome.state is ScanState.FAILED
        assert "locator exploded" in outcome.reason
        assert orch.state is ScanState.FAILED

    def test_state_after_success(self, face_image, frontal_face):
        orch = ScanOrchestrator()
        orch.run(face_image, frontal_face)
        assert orch.state is ScanState.COMPLETE

    def test_thread_pool_matches_inline(self, face_image, frontal_face):
        inline = analyze(face_image, frontal_face)
        pooled = analyze(face_image, frontal_face, cfg=merge_config(None, {"runtime": {"workers": 4}}))
        assert [s.score for s in pooled.result.scores] == pytest.approx([s.score for s in inline.result.scores], abs=1e-9)

    def test_lower_face_strokes_raise_upper_lip_and_chin(self, face_image, frontal_face):
        outcome = analyze(face_image, frontal_face)
        lip = outcome.result.score_for(RegionKind.UPPER_LIP).score
        crown = outcome.result.score_for(RegionKind.CROWN).score
        assert lip > crown


def test_scored_regions_rows(face_image, frontal_face):
    outcome = analyze(face_image, frontal_face)
    rows = scored_regions(outcome)
    assert [r["region"] for r in rows] == [k.value for k in RegionKind]
    assert all(len(r["rect"]) == 4 for r in rows)


def test_scored_regions_empty_on_failure(frontal_face):
    assert scored_regions(analyze(None, frontal_face)) == []

"""Scan orchestration.

validating -> locating -> scoring -> complete, with any whole-face failure
(quality gate, missing image, unexpected error) ending in `failed`.
Individual regions never abort a scan: a region that cannot be scored is
recorded with score 0 and passed=False.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Mapping, Optional

import numpy as np

from .config import DEFAULTS, merge_config
from .errors import AnalysisError, FaceQualityInsufficient, ImageDecodeFailure, InvalidRegion
from .locator import locate_regions
from .quality import check_face_quality, describe_rejection
from .scorer import MIN_SCORABLE_SIZE, ScorerParams, crop, score_region
from .types import (
    FaceObservation,
    NormalizedRect,
    RegionKind,
    RegionScore,
    ScanOutcome,
    ScanResult,
    ScanState,
    ThresholdSet,
)

logger = logging.getLogger(__name__)


def _derive(front: float, rule: Mapping[str, Any]) -> float:
    value = front * float(rule["factor"])
    return min(max(value, float(rule["min"])), float(rule["max"]))


def threshold_for(kind: RegionKind, thresholds: ThresholdSet, cfg: Optional[Mapping[str, Any]] = None) -> float:
    """Pass threshold for one region.

    Only three thresholds are calibrated; upper lip and chin are derived
    from the front threshold with their own bounds.
    """
    derived = (cfg or {}).get("derived_thresholds") or DEFAULTS["derived_thresholds"]
    if kind is RegionKind.FRONT:
        return thresholds.front
    if kind is RegionKind.CROWN:
        return thresholds.crown
    if kind in (RegionKind.LEFT_SIDE, RegionKind.RIGHT_SIDE, RegionKind.JAWLINE):
        return thresholds.sides
    if kind is RegionKind.UPPER_LIP:
        return _derive(thresholds.front, derived["upper_lip"])
    if kind is RegionKind.CHIN:
        return _derive(thresholds.front, derived["chin"])
    raise ValueError(f"unknown region kind: {kind!r}")


def _check_image(image: Optional[np.ndarray]) -> np.ndarray:
    if image is None:
        raise ImageDecodeFailure("no image supplied")
    arr = np.asarray(image)
    if arr.size == 0 or arr.ndim not in (2, 3):
        raise ImageDecodeFailure(f"image buffer has unusable shape {arr.shape}")
    return arr


class ScanOrchestrator:
    """Runs one analysis per `run` call; holds no reference to the result."""

    def __init__(self, cfg: Optional[Dict[str, Any]] = None):
        self.cfg = cfg if cfg is not None else merge_config()
        self.params = ScorerParams.from_config(self.cfg)
        self.workers = int(self.cfg.get("runtime", {}).get("workers", 0) or 0)
        self.state = ScanState.VALIDATING

    def _transition(self, state: ScanState) -> None:
        logger.debug("scan state %s -> %s", self.state.value, state.value)
        self.state = state

    def run(
        self,
        image: Optional[np.ndarray],
        face: FaceObservation,
        thresholds: Optional[ThresholdSet] = None,
    ) -> ScanOutcome:
        self.state = ScanState.VALIDATING
        if thresholds is None:
            thresholds = ThresholdSet.from_mapping(self.cfg.get("thresholds"))
        try:
            return self._run(image, face, thresholds)
        except AnalysisError as e:
            self._transition(ScanState.FAILED)
            logger.info("Scan rejected: %s", e)
            return ScanOutcome(state=ScanState.FAILED, reason=str(e))
        except Exception as e:
            self._transition(ScanState.FAILED)
            logger.exception("Scan failed unexpectedly")
            return ScanOutcome(state=ScanState.FAILED, reason=f"internal processing error: {e}")

    def _run(self, image: Optional[np.ndarray], face: FaceObservation, thresholds: ThresholdSet) -> ScanOutcome:
        img = _check_image(image)
        decision = check_face_quality(face, self.cfg)
        if not decision.accepted:
            raise FaceQualityInsufficient(describe_rejection(face, decision))

        start = time.perf_counter()
        self._transition(ScanState.LOCATING)
        regions = locate_regions(face)

        self._transition(ScanState.SCORING)
        kinds = list(RegionKind)
        if self.workers > 0:
            with ThreadPoolExecutor(max_workers=min(self.workers, len(kinds))) as ex:
                scores = list(ex.map(lambda k: self._score_one(img, face, k, regions[k], thresholds), kinds))
        else:
            scores = [self._score_one(img, face, k, regions[k], thresholds) for k in kinds]

        elapsed_ms = int(round((time.perf_counter() - start) * 1000.0))
        result = ScanResult(scores=tuple(scores), elapsed_ms=elapsed_ms)
        self._transition(ScanState.COMPLETE)
        logger.info("Scan complete: %d/%d regions passed in %d ms", result.passed_count, len(scores), elapsed_ms)
        return ScanOutcome(state=ScanState.COMPLETE, result=result, regions=regions)

    def _score_one(
        self,
        image: np.ndarray,
        face: FaceObservation,
        kind: RegionKind,
        rect: NormalizedRect,
        thresholds: ThresholdSet,
    ) -> RegionScore:
        thr = threshold_for(kind, thresholds, self.cfg)
        h, w = image.shape[:2]
        px = rect.to_pixels(face.bbox, w, h)
        if px.w < MIN_SCORABLE_SIZE or px.h < MIN_SCORABLE_SIZE:
            logger.info("Region %s too small to score: (%d,%d) %dx%d", kind.value, px.x, px.y, px.w, px.h)
            return RegionScore(kind, 0.0, False, thr)

        try:
            score = score_region(crop(image, px), self.params)
        except InvalidRegion as e:
            logger.info("Invalid region %s: %s", kind.value, e)
            return RegionScore(kind, 0.0, False, thr)
        except Exception as e:
            logger.warning("Error analyzing %s: %s", kind.value, e)
            return RegionScore(kind, 0.0, False, thr)

        passed = score >= thr
        logger.debug("%s: score=%.3f threshold=%.3f pass=%s", kind.value, score, thr, passed)
        return RegionScore(kind, score, passed, thr)


def analyze(
    image: Optional[np.ndarray],
    face: FaceObservation,
    thresholds: Optional[ThresholdSet] = None,
    cfg: Optional[Dict[str, Any]] = None,
) -> ScanOutcome:
    """Score all seven regions of one face in one RGB image."""
    return ScanOrchestrator(cfg).run(image, face, thresholds)


def scored_regions(outcome: ScanOutcome) -> List[Dict[str, Any]]:
    """Region boxes joined with their scores, for overlays and reports."""
    if not outcome.ok or outcome.regions is None:
        return []
    rows = []
    for rs in outcome.result.scores:
        r = outcome.regions[rs.kind]
        rows.append({"region": rs.kind.value, "rect": (r.l, r.t, r.r, r.b), "score": rs.score, "passed": rs.passed})
    return rows


__all__ = ["threshold_for", "ScanOrchestrator", "analyze", "scored_regions"]

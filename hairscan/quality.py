"""Face quality gate.

Hard preconditions a face must meet before any region is scored: minimum
bounding-box size, near-frontal yaw/pitch and both eye landmarks present.
Boundaries are inclusive.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from .types import FaceObservation, LandmarkType, QualityDecision

REASON_TOO_SMALL = "face too small for analysis"
REASON_YAW = "face not facing forward"
REASON_PITCH = "face tilted too much"
REASON_LANDMARKS = "missing critical landmarks"


def check_face_quality(face: FaceObservation, cfg: Optional[Dict] = None) -> QualityDecision:
    q = (cfg or {}).get("quality", {})
    min_w = float(q.get("min_width", 100.0))
    min_h = float(q.get("min_height", 120.0))
    max_yaw = float(q.get("max_yaw", 25.0))
    max_pitch = float(q.get("max_pitch", 20.0))

    reasons: List[str] = []
    box = face.bbox
    if box.width < min_w or box.height < min_h:
        reasons.append(REASON_TOO_SMALL)

    # Missing angles come from detectors without pose output; not a rejection
    if face.yaw is not None and abs(face.yaw) > max_yaw:
        reasons.append(REASON_YAW)
    if face.pitch is not None and abs(face.pitch) > max_pitch:
        reasons.append(REASON_PITCH)

    if face.landmark(LandmarkType.LEFT_EYE) is None or face.landmark(LandmarkType.RIGHT_EYE) is None:
        reasons.append(REASON_LANDMARKS)

    return QualityDecision(accepted=not reasons, reasons=reasons)


def _describe(face: FaceObservation, reason: str) -> str:
    if reason == REASON_YAW and face.yaw is not None:
        return f"{reason} (yaw: {face.yaw:.1f}°)"
    if reason == REASON_PITCH and face.pitch is not None:
        return f"{reason} (pitch: {face.pitch:.1f}°)"
    if reason == REASON_TOO_SMALL:
        return f"{reason} ({face.bbox.width:.0f}x{face.bbox.height:.0f})"
    return reason


def describe_rejection(face: FaceObservation, decision: QualityDecision) -> str:
    """Human-readable message listing every rejection reason."""
    return "; ".join(_describe(face, r) for r in decision.reasons)


__all__ = [
    "REASON_TOO_SMALL",
    "REASON_YAW",
    "REASON_PITCH",
    "REASON_LANDMARKS",
    "check_face_quality",
    "describe_rejection",
]

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class BBox:
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height


@dataclass
class ImageMeta:
    path: str
    width: int
    height: int
    channels: Optional[int] = None
    ext: Optional[str] = None


class LandmarkType(str, Enum):
    LEFT_EYE = "left_eye"
    RIGHT_EYE = "right_eye"
    LEFT_MOUTH = "left_mouth"
    RIGHT_MOUTH = "right_mouth"
    NOSE_BASE = "nose_base"


@dataclass
class FaceObservation:
    """One detected face as delivered by an external detector.

    Angles are in degrees; missing angles are treated as frontal.
    """

    bbox: BBox
    landmarks: Dict[LandmarkType, Point] = field(default_factory=dict)
    yaw: Optional[float] = None
    pitch: Optional[float] = None
    roll: Optional[float] = None

    def landmark(self, kind: LandmarkType) -> Optional[Point]:
        return self.landmarks.get(kind)


class RegionKind(str, Enum):
    # Declaration order is the canonical result order.
    FRONT = "front"
    CROWN = "crown"
    LEFT_SIDE = "left_side"
    RIGHT_SIDE = "right_side"
    UPPER_LIP = "upper_lip"
    CHIN = "chin"
    JAWLINE = "jawline"


@dataclass(frozen=True)
class CanonicalRect:
    left: float
    top: float
    right: float
    bottom: float


@dataclass(frozen=True)
class PixelRect:
    x: int
    y: int
    w: int
    h: int


@dataclass(frozen=True)
class NormalizedRect:
    # Fractions of the face bounding box, each in [0, 1]
    l: float
    t: float
    r: float
    b: float

    def to_pixels(self, bbox: BBox, image_width: int, image_height: int) -> PixelRect:
        """Absolute pixel crop for this rect, clamped to the image."""
        x = int(round(bbox.left + self.l * bbox.width))
        y = int(round(bbox.top + self.t * bbox.height))
        w = int(round((self.r - self.l) * bbox.width))
        h = int(round((self.b - self.t) * bbox.height))
        x = min(max(x, 0), max(image_width - 1, 0))
        y = min(max(y, 0), max(image_height - 1, 0))
        w = min(max(w, 0), image_width - x)
        h = min(max(h, 0), image_height - y)
        return PixelRect(x=x, y=y, w=w, h=h)


@dataclass(frozen=True)
class RegionScore:
    kind: RegionKind
    score: float
    passed: bool
    threshold: Optional[float] = None


@dataclass(frozen=True)
class ScanResult:
    scores: Tuple[RegionScore, ...]
    elapsed_ms: int

    def __post_init__(self) -> None:
        kinds = [s.kind for s in self.scores]
        if kinds != list(RegionKind):
            raise ValueError("ScanResult requires exactly one score per region in canonical order")

    @property
    def passed_count(self) -> int:
        return sum(1 for s in self.scores if s.passed)

    def score_for(self, kind: RegionKind) -> RegionScore:
        return self.scores[list(RegionKind).index(kind)]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "elapsed_ms": self.elapsed_ms,
            "passed": self.passed_count,
            "regions": [
                {
                    "region": s.kind.value,
                    "score": round(float(s.score), 4),
                    "threshold": s.threshold,
                    "passed": s.passed,
                }
                for s in self.scores
            ],
        }


@dataclass(frozen=True)
class ThresholdSet:
    front: float = 0.15
    crown: float = 0.15
    sides: float = 0.15

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "ThresholdSet":
        data = data or {}
        return cls(
            front=float(data.get("front", 0.15)),
            crown=float(data.get("crown", 0.15)),
            sides=float(data.get("sides", 0.15)),
        )


@dataclass
class QualityDecision:
    accepted: bool
    reasons: List[str]

    @property
    def reason(self) -> Optional[str]:
        return self.reasons[0] if self.reasons else None


class ScanState(str, Enum):
    VALIDATING = "validating"
    LOCATING = "locating"
    SCORING = "scoring"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class ScanOutcome:
    state: ScanState
    result: Optional[ScanResult] = None
    reason: Optional[str] = None
    regions: Optional[Dict[RegionKind, NormalizedRect]] = None

    @property
    def ok(self) -> bool:
        return self.state is ScanState.COMPLETE and self.result is not None

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Tuple

from .types import CanonicalRect, Point, RegionKind


# Landmark-normalized space: inter-eye distance 1.0, mouth centre at y=0.6
CANONICAL_LEFT_EYE = Point(-0.5, 0.0)
CANONICAL_RIGHT_EYE = Point(0.5, 0.0)
CANONICAL_MOUTH = Point(0.0, 0.6)

CANONICAL_ANCHORS: Tuple[Point, Point, Point] = (
    CANONICAL_LEFT_EYE,
    CANONICAL_RIGHT_EYE,
    CANONICAL_MOUTH,
)

CANONICAL_REGIONS: Mapping[RegionKind, CanonicalRect] = MappingProxyType(
    {
        RegionKind.FRONT: CanonicalRect(-0.35, -0.35, 0.35, 0.15),
        RegionKind.CROWN: CanonicalRect(-0.40, -0.90, 0.40, -0.40),
        RegionKind.LEFT_SIDE: CanonicalRect(-0.95, -0.10, -0.20, 0.70),
        RegionKind.RIGHT_SIDE: CanonicalRect(0.20, -0.10, 0.95, 0.70),
        RegionKind.UPPER_LIP: CanonicalRect(-0.20, 0.45, 0.20, 0.60),
        RegionKind.CHIN: CanonicalRect(-0.30, 0.70, 0.30, 1.10),
        RegionKind.JAWLINE: CanonicalRect(-0.50, 0.40, 0.50, 0.95),
    }
)


def canonical_rect(kind: RegionKind) -> CanonicalRect:
    return CANONICAL_REGIONS[kind]


__all__ = [
    "CANONICAL_LEFT_EYE",
    "CANONICAL_RIGHT_EYE",
    "CANONICAL_MOUTH",
    "CANONICAL_ANCHORS",
    "CANONICAL_REGIONS",
    "canonical_rect",
]

"""Region locator.

Projects the canonical region template onto a detected face using a
similarity fitted from three anchors (left eye, right eye, mouth centre).
Missing landmarks are replaced by bounding-box relative fallbacks so the
locator works on partial detections.
"""

from __future__ import annotations

import logging
from typing import Dict, Tuple

import numpy as np

from .errors import DegenerateLandmarks, InvalidRegion
from .geometry import SimilarityTransform, fit_similarity
from .template import CANONICAL_ANCHORS, CANONICAL_REGIONS
from .types import BBox, CanonicalRect, FaceObservation, LandmarkType, NormalizedRect, Point, RegionKind

logger = logging.getLogger(__name__)

Anchors = Tuple[Point, Point, Point]


def fallback_anchors(bbox: BBox) -> Anchors:
    x0, y0, w, h = bbox.left, bbox.top, bbox.width, bbox.height
    return (
        Point(x0 + w * 0.35, y0 + h * 0.4),
        Point(x0 + w * 0.65, y0 + h * 0.4),
        Point(x0 + w * 0.5, y0 + h * 0.7),
    )


def resolve_anchors(face: FaceObservation) -> Anchors:
    """Left eye, right eye and mouth centre, preferring detected landmarks."""
    bbox = face.bbox
    fb_left, fb_right, fb_mouth = fallback_anchors(bbox)

    eye_l = face.landmark(LandmarkType.LEFT_EYE) or fb_left
    eye_r = face.landmark(LandmarkType.RIGHT_EYE) or fb_right

    l_mouth = face.landmark(LandmarkType.LEFT_MOUTH)
    r_mouth = face.landmark(LandmarkType.RIGHT_MOUTH)
    nose = face.landmark(LandmarkType.NOSE_BASE)
    if l_mouth is not None and r_mouth is not None:
        mouth = Point((l_mouth.x + r_mouth.x) * 0.5, (l_mouth.y + r_mouth.y) * 0.5)
    elif nose is not None:
        mouth = Point(nose.x, nose.y + bbox.height * 0.25)
    else:
        mouth = fb_mouth
    return eye_l, eye_r, mouth


def face_to_canonical(face: FaceObservation) -> SimilarityTransform:
    """Similarity from image pixels to canonical space.

    Degenerate anchor triples fall back to the box-relative anchors.
    """
    anchors = resolve_anchors(face)
    try:
        return fit_similarity(*anchors, *CANONICAL_ANCHORS)
    except DegenerateLandmarks as e:
        logger.debug("Anchor landmarks degenerate (%s); using box fallback", e)
        return fit_similarity(*fallback_anchors(face.bbox), *CANONICAL_ANCHORS)


def _map_rect(rect: CanonicalRect, to_image: SimilarityTransform, bbox: BBox) -> NormalizedRect:
    corners = np.array(
        [
            [rect.left, rect.top],
            [rect.right, rect.top],
            [rect.right, rect.bottom],
            [rect.left, rect.bottom],
        ],
        dtype=np.float64,
    )
    img = to_image.apply_many(corners)
    x_min, y_min = img.min(axis=0)
    x_max, y_max = img.max(axis=0)

    x0, y0 = bbox.left, bbox.top
    x1, y1 = bbox.right, bbox.bottom
    x_min = float(np.clip(x_min, x0, x1))
    x_max = float(np.clip(x_max, x0, x1))
    y_min = float(np.clip(y_min, y0, y1))
    y_max = float(np.clip(y_max, y0, y1))

    inv_w = 1.0 / bbox.width
    inv_h = 1.0 / bbox.height
    l = min(max((x_min - x0) * inv_w, 0.0), 1.0)
    t = min(max((y_min - y0) * inv_h, 0.0), 1.0)
    r = min(max((x_max - x0) * inv_w, l), 1.0)
    b = min(max((y_max - y0) * inv_h, t), 1.0)
    return NormalizedRect(l=l, t=t, r=r, b=b)


def locate_regions(face: FaceObservation) -> Dict[RegionKind, NormalizedRect]:
    """Seven face-relative rectangles in canonical region order."""
    bbox = face.bbox
    if not (bbox.width > 0 and bbox.height > 0):
        raise InvalidRegion("face bounding box must have positive size")

    to_image = face_to_canonical(face).invert()
    return {kind: _map_rect(CANONICAL_REGIONS[kind], to_image, bbox) for kind in RegionKind}


__all__ = [
    "fallback_anchors",
    "resolve_anchors",
    "face_to_canonical",
    "locate_regions",
]

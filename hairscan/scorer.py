"""Region density scorer.

Scores a cropped RGB region in [0, 1] from three per-pixel signals:
  - skin-relative darkness: how much darker a pixel is than a blurred
    luminance baseline of the surrounding skin
  - multi-scale Sobel edge magnitude, with a persistence bonus for pixels
    that stay above a robust per-scale threshold
  - saturation suppression: colourful (non skin-like) pixels are damped

Final score = edge_weight * edge_score + darkness_weight * darkness_score.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional, Tuple

import cv2
import numpy as np

from .errors import InternalProcessingError, InvalidRegion
from .types import PixelRect

logger = logging.getLogger(__name__)

_EPS = 1e-6
# Darkness below this is blur round-off, not texture
_DARKNESS_FLOOR = 1e-4
# Float buffers are unit range; allow round-off from upstream conversions
_FLOAT_RANGE_TOL = 1e-3
_LUMA = np.array([0.2126, 0.7152, 0.0722], dtype=np.float32)

MIN_REGION_SIZE = 3
# Crops smaller than this are recorded as 0/fail without scoring
MIN_SCORABLE_SIZE = 5


@dataclass(frozen=True)
class ScorerParams:
    edge_weight: float = 0.7
    darkness_weight: float = 0.3
    saturation_power: float = 1.5
    # Fraction of darkest pixels averaged into the darkness score
    percentile_threshold: float = 0.35
    scales: Tuple[float, ...] = (1.0, 0.7)
    edge_percentile: float = 0.80
    blur_radius: int = 2
    persistence_bonus: float = 0.25
    saturation_floor: float = 0.2

    @classmethod
    def from_config(cls, cfg: Optional[Mapping[str, Any]]) -> "ScorerParams":
        sc = dict((cfg or {}).get("scorer", {}) or {})
        if "scales" in sc:
            sc["scales"] = tuple(float(s) for s in sc["scales"])
        known = {k: v for k, v in sc.items() if k in cls.__dataclass_fields__}
        return cls(**known)

    def validate(self) -> None:
        if self.edge_weight < 0.0 or self.darkness_weight < 0.0:
            raise InvalidRegion("weights must be non-negative")
        if self.edge_weight + self.darkness_weight <= 0.0:
            raise InvalidRegion("weights must not both be zero")
        if not 0.0 < self.percentile_threshold <= 1.0:
            raise InvalidRegion("percentile_threshold must be in (0, 1]")
        if not 0.0 <= self.edge_percentile <= 1.0:
            raise InvalidRegion("edge_percentile must be in [0, 1]")
        if self.saturation_power < 0.0:
            raise InvalidRegion("saturation_power must be non-negative")
        if not self.scales or any(s <= 0.0 for s in self.scales):
            raise InvalidRegion("scales must be a non-empty list of positive factors")
        if self.blur_radius < 0:
            raise InvalidRegion("blur_radius must be non-negative")

    def normalized(self) -> "ScorerParams":
        """Copy with edge/darkness weights rescaled to sum to 1."""
        total = self.edge_weight + self.darkness_weight
        if abs(total - 1.0) <= _EPS:
            return self
        return replace(
            self,
            edge_weight=self.edge_weight / total,
            darkness_weight=self.darkness_weight / total,
        )


@dataclass(frozen=True)
class RegionStats:
    score: float
    edge_score: float
    darkness_score: float
    candidate_ratio: float


def crop(image: np.ndarray, rect: PixelRect) -> np.ndarray:
    """Read-only view of `rect` inside `image`."""
    if rect.w <= 0 or rect.h <= 0:
        raise InvalidRegion(f"non-positive crop size {rect.w}x{rect.h}")
    view = image[rect.y:rect.y + rect.h, rect.x:rect.x + rect.w]
    view = view.view()
    view.flags.writeable = False
    return view


def _to_float_rgb(pixels: Optional[np.ndarray]) -> np.ndarray:
    if pixels is None:
        raise InvalidRegion("pixel buffer is None")
    arr = np.asarray(pixels)
    if arr.size == 0:
        raise InvalidRegion("pixel buffer is empty")
    if arr.ndim == 2:
        arr = arr[:, :, None]
    if arr.ndim != 3 or arr.shape[2] not in (1, 3, 4):
        raise InvalidRegion(f"unsupported pixel layout {arr.shape}")
    h, w = arr.shape[:2]
    if h < MIN_REGION_SIZE or w < MIN_REGION_SIZE:
        raise InvalidRegion(f"region {w}x{h} is smaller than {MIN_REGION_SIZE}x{MIN_REGION_SIZE}")

    if arr.shape[2] == 1:
        arr = np.repeat(arr, 3, axis=2)
    elif arr.shape[2] == 4:
        arr = arr[:, :, :3]

    if np.issubdtype(arr.dtype, np.integer):
        info = np.iinfo(arr.dtype)
        rgb = arr.astype(np.float32) / float(info.max)
    else:
        peak = float(np.nanmax(arr))
        if peak > 1.0 + _FLOAT_RANGE_TOL:
            raise InvalidRegion(f"float pixel values must lie in [0, 1], got max {peak:.3g}")
        rgb = np.clip(arr.astype(np.float32), 0.0, 1.0)
    return rgb


def skin_baseline(lum: np.ndarray, radius: int) -> np.ndarray:
    """Blurred luminance approximating bare skin tone."""
    if radius <= 0:
        return lum.copy()
    k = 2 * radius + 1
    return cv2.GaussianBlur(lum, (k, k), 0, borderType=cv2.BORDER_REFLECT)


def edge_magnitude(lum: np.ndarray, scale: float = 1.0) -> np.ndarray:
    """Sobel magnitude in [0, 1] computed at `scale`, aligned to `lum`'s size."""
    h, w = lum.shape[:2]
    work = lum
    if scale != 1.0:
        nw = max(1, int(round(w * scale)))
        nh = max(1, int(round(h * scale)))
        work = cv2.resize(lum, (nw, nh), interpolation=cv2.INTER_CUBIC)
    gx = cv2.Sobel(work, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(work, cv2.CV_32F, 0, 1, ksize=3)
    mag = np.clip(np.hypot(gx, gy), 0.0, 1.0)
    if mag.shape[:2] != (h, w):
        mag = cv2.resize(mag, (w, h), interpolation=cv2.INTER_LINEAR)
    return mag


def _lower_quantile(values: np.ndarray, q: float) -> float:
    return float(np.quantile(values, q, method="lower"))


def analyze_region(pixels: np.ndarray, params: Optional[ScorerParams] = None) -> RegionStats:
    """Full score breakdown for one region."""
    params = params or ScorerParams()
    params.validate()
    params = params.normalized()

    rgb = _to_float_rgb(pixels)
    lum = (rgb @ _LUMA).astype(np.float32)
    max_c = rgb.max(axis=2)
    min_c = rgb.min(axis=2)
    sat = (max_c - min_c) / (max_c + min_c + _EPS)

    skin = skin_baseline(lum, params.blur_radius)
    darkness = np.maximum(0.0, (skin - lum) / (skin + _EPS))
    darkness[darkness < _DARKNESS_FLOOR] = 0.0
    darkness = np.clip(darkness, 0.0, 1.0)

    edges = [edge_magnitude(lum, s) for s in params.scales]
    e_stack = np.stack(edges, axis=0)
    e_max = e_stack.max(axis=0)
    thresholds = np.array([_lower_quantile(e, params.edge_percentile) for e in edges], dtype=np.float32)
    persist = (e_stack > thresholds[:, None, None]).sum(axis=0) / float(len(edges))

    sat_boost = np.maximum(
        np.power(np.clip(1.0 - sat, 0.0, 1.0), params.saturation_power),
        params.saturation_floor,
    )

    candidates = (e_max > 0.0) & (darkness > 0.0)
    contrib = np.where(
        candidates,
        e_max * darkness * sat_boost * (1.0 + params.persistence_bonus * persist),
        0.0,
    )
    n_candidates = int(np.count_nonzero(candidates))

    flat_dark = np.sort(darkness, axis=None)
    n = flat_dark.size
    keep_start = min(max(int(np.floor(n * (1.0 - params.percentile_threshold))), 0), n - 1)
    darkness_score = float(np.clip(flat_dark[keep_start:].mean(), 0.0, 1.0))

    p95 = _lower_quantile(contrib, 0.95)
    if n_candidates > 0 and p95 > _EPS:
        edge_score = float(np.clip(contrib.sum() / (n_candidates * p95), 0.0, 1.0))
    else:
        edge_score = 0.0

    score = float(np.clip(params.edge_weight * edge_score + params.darkness_weight * darkness_score, 0.0, 1.0))
    return RegionStats(
        score=score,
        edge_score=edge_score,
        darkness_score=darkness_score,
        candidate_ratio=n_candidates / float(n),
    )


def score_region(pixels: np.ndarray, params: Optional[ScorerParams] = None) -> float:
    """Density score in [0, 1] for an RGB(A) region.

    Integer buffers are scaled by their dtype maximum; float buffers must
    already be in [0, 1].

    Raises InvalidRegion for empty buffers, unsupported layouts, float values
    above 1, regions below 3x3 and out-of-range parameters; OpenCV/numeric
    failures surface as InternalProcessingError.
    """
    try:
        return analyze_region(pixels, params).score
    except InvalidRegion:
        raise
    except (cv2.error, FloatingPointError, ValueError) as e:
        raise InternalProcessingError(f"failed to process image region: {e}") from e


__all__ = [
    "ScorerParams",
    "RegionStats",
    "MIN_REGION_SIZE",
    "MIN_SCORABLE_SIZE",
    "crop",
    "skin_baseline",
    "edge_magnitude",
    "analyze_region",
    "score_region",
]

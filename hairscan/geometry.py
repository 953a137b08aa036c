"""2D similarity transforms fitted from three landmark correspondences.

A similarity is rotation + uniform scale + translation (no reflection):
  x' = a*x - b*y + tx
  y' = b*x + a*y + ty
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .errors import DegenerateLandmarks
from .types import Point

_EPS = 1e-9


@dataclass(frozen=True)
class SimilarityTransform:
    a: float
    b: float
    tx: float
    ty: float

    def apply(self, p: Point) -> Point:
        return Point(
            self.a * p.x - self.b * p.y + self.tx,
            self.b * p.x + self.a * p.y + self.ty,
        )

    def apply_many(self, pts: np.ndarray) -> np.ndarray:
        """Apply to an (N, 2) array of points."""
        pts = np.asarray(pts, dtype=np.float64).reshape(-1, 2)
        m = np.array([[self.a, -self.b], [self.b, self.a]], dtype=np.float64)
        return pts @ m.T + np.array([self.tx, self.ty], dtype=np.float64)

    def invert(self) -> "SimilarityTransform":
        s2 = self.a * self.a + self.b * self.b
        if s2 == 0.0:
            raise DegenerateLandmarks("cannot invert a zero-scale similarity")
        ia = self.a / s2
        ib = -self.b / s2
        itx = -(ia * self.tx - ib * self.ty)
        ity = -(ib * self.tx + ia * self.ty)
        return SimilarityTransform(ia, ib, itx, ity)

    def as_matrix(self) -> np.ndarray:
        """2x3 affine matrix suitable for cv2.warpAffine."""
        return np.array(
            [[self.a, -self.b, self.tx], [self.b, self.a, self.ty]],
            dtype=np.float64,
        )


def _as_array(points: Sequence[Point]) -> np.ndarray:
    return np.array([[p.x, p.y] for p in points], dtype=np.float64)


def fit_similarity(
    s1: Point, s2: Point, s3: Point, t1: Point, t2: Point, t3: Point
) -> SimilarityTransform:
    """Least-squares similarity mapping (s1, s2, s3) onto (t1, t2, t3).

    Raises DegenerateLandmarks when the source points collapse to a point.
    """
    src = _as_array([s1, s2, s3])
    dst = _as_array([t1, t2, t3])
    cs = src.mean(axis=0)
    ct = dst.mean(axis=0)
    S = src - cs
    T = dst - ct

    den = float(np.sum(S * S))
    if den < _EPS:
        raise DegenerateLandmarks("source landmarks are coincident")
    if is_collinear(s1, s2, s3):
        raise DegenerateLandmarks("source landmarks are collinear")

    num_a = float(np.sum(S[:, 0] * T[:, 0] + S[:, 1] * T[:, 1]))
    num_b = float(np.sum(S[:, 0] * T[:, 1] - S[:, 1] * T[:, 0]))
    a = num_a / den
    b = num_b / den
    if (a * a + b * b) * den <= _EPS * float(np.sum(T * T)):
        # Mirrored source triangles can cancel the rotation terms; measured
        # against the target spread so the check is independent of pixel scale.
        raise DegenerateLandmarks("landmark fit has vanishing scale")

    tx = float(ct[0] - (a * cs[0] - b * cs[1]))
    ty = float(ct[1] - (b * cs[0] + a * cs[1]))
    return SimilarityTransform(a, b, tx, ty)


def is_collinear(p1: Point, p2: Point, p3: Point, tol: float = 1e-6) -> bool:
    """True if the three points lie (numerically) on one line."""
    cross = (p2.x - p1.x) * (p3.y - p1.y) - (p2.y - p1.y) * (p3.x - p1.x)
    scale = max(
        abs(p2.x - p1.x) + abs(p2.y - p1.y),
        abs(p3.x - p1.x) + abs(p3.y - p1.y),
        1.0,
    )
    return abs(cross) <= tol * scale * scale


__all__ = ["SimilarityTransform", "fit_similarity", "is_collinear"]

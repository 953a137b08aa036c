"""Shared fixtures for hairscan tests.

All images and faces are synthetic; no detection models needed.
"""

import numpy as np
import pytest

from hairscan.types import BBox, FaceObservation, LandmarkType, Point


def build_face(
    left=100.0,
    top=80.0,
    width=200.0,
    height=240.0,
    eye_dist=70.0,
    angle_deg=0.0,
    yaw=0.0,
    pitch=0.0,
    landmarks=True,
):
    """Face with eyes/mouth laid out as in canonical space, optionally rolled."""
    cx = left + width / 2.0
    eye_y = top + height * 0.4
    theta = np.radians(angle_deg)
    c, s = np.cos(theta), np.sin(theta)

    def place(u, v):
        # canonical (u, v) -> image, rotated about the eye midpoint
        x = eye_dist * (c * u - s * v)
        y = eye_dist * (s * u + c * v)
        return Point(float(cx + x), float(eye_y + y))

    lms = {}
    if landmarks:
        lms = {
            LandmarkType.LEFT_EYE: place(-0.5, 0.0),
            LandmarkType.RIGHT_EYE: place(0.5, 0.0),
            LandmarkType.LEFT_MOUTH: place(-0.3, 0.6),
            LandmarkType.RIGHT_MOUTH: place(0.3, 0.6),
            LandmarkType.NOSE_BASE: place(0.0, 0.35),
        }
    return FaceObservation(bbox=BBox(left, top, width, height), landmarks=lms, yaw=yaw, pitch=pitch)


def stripes(h=64, w=64, period=4, dark=0, light=255):
    """Gray vertical stripes, half dark / half light per period."""
    cols = (np.arange(w) % period) < (period // 2)
    row = np.where(cols, dark, light).astype(np.uint8)
    img = np.repeat(row[None, :], h, axis=0)
    return np.repeat(img[:, :, None], 3, axis=2)


@pytest.fixture
def make_face():
    return build_face


@pytest.fixture
def frontal_face():
    return build_face()


@pytest.fixture
def stripe_region():
    return stripes()


@pytest.fixture
def face_image():
    """400x400 RGB skin-toned image with fine dark strokes on the lower face."""
    rng = np.random.default_rng(7)
    img = np.full((400, 400, 3), (205, 160, 140), dtype=np.uint8)
    noise = rng.integers(-6, 7, size=img.shape, dtype=np.int16)
    img = np.clip(img.astype(np.int16) + noise, 0, 255).astype(np.uint8)
    for x in range(140, 260, 5):
        img[200:260, x, :] = (70, 50, 45)
    return img

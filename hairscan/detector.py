"""Face observation sources.

The scan engine never detects faces itself; this module provides the two
collaborators the CLI uses to obtain a `FaceObservation`:

- `FaceMeshDetector`: MediaPipe FaceMesh landmarks reduced to the five
  landmarks the engine reads, with yaw/pitch/roll from solvePnP (EPnP)
  against a 3D template. Requires the optional `mediapipe` dependency.
- `load_face_file`: a YAML/JSON sidecar written by an external detector.

Pose conventions follow OpenCV: X right, Y down, Z forward;
R = Rz(roll) * Ry(yaw) * Rx(pitch).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import cv2
import numpy as np
import yaml

from .types import BBox, FaceObservation, ImageMeta, LandmarkType, Point

try:
    import mediapipe as mp
except ImportError:  # pragma: no cover - optional dependency
    mp = None  # type: ignore

logger = logging.getLogger(__name__)


# MediaPipe FaceMesh indices, "left" meaning image-left
EYE_RINGS: Dict[LandmarkType, List[int]] = {
    LandmarkType.LEFT_EYE: [33, 160, 158, 133, 153, 144],
    LandmarkType.RIGHT_EYE: [263, 387, 385, 362, 380, 373],
}
POINT_LANDMARKS: Dict[LandmarkType, int] = {
    LandmarkType.LEFT_MOUTH: 61,
    LandmarkType.RIGHT_MOUTH: 291,
    LandmarkType.NOSE_BASE: 2,
}

# Order: nose, chin, left_eye, right_eye, left_mouth, right_mouth
PNP_INDICES: List[int] = [1, 152, 33, 263, 61, 291]
PNP_TEMPLATE = np.array(
    [
        [0.0, 0.0, 0.0],
        [0.0, -63.6, -12.5],
        [-43.3, 32.7, -26.0],
        [43.3, 32.7, -26.0],
        [-28.9, -28.9, -24.1],
        [28.9, -28.9, -24.1],
    ],
    dtype=np.float32,
)
_MESH_SIZE = 468


@dataclass
class DetectorConfig:
    static_image_mode: bool = True
    refine_landmarks: bool = False
    max_faces: int = 1

    @classmethod
    def from_config(cls, cfg: Optional[Mapping[str, Any]]) -> "DetectorConfig":
        d = (cfg or {}).get("detector", {}) or {}
        return cls(
            static_image_mode=bool(d.get("static_image_mode", True)),
            refine_landmarks=bool(d.get("refine_landmarks", False)),
            max_faces=int(d.get("max_faces", 1)),
        )


def camera_matrix(width: int, height: int, focal: Optional[float] = None) -> np.ndarray:
    """Pinhole intrinsics with principal point at the image centre."""
    w, h = float(width), float(height)
    f = float(focal) if focal is not None else max(w, h)
    return np.array([[f, 0.0, w / 2.0], [0.0, f, h / 2.0], [0.0, 0.0, 1.0]], dtype=np.float32)


def _euler_from_R(R: np.ndarray) -> Tuple[float, float, float]:
    """yaw(Y), pitch(X), roll(Z) in radians for R = Rz * Ry * Rx."""
    sy = np.sqrt(R[0, 0] * R[0, 0] + R[1, 0] * R[1, 0])
    yaw = np.arctan2(-R[2, 0], sy)
    if sy >= 1e-6:
        pitch = np.arctan2(R[2, 1], R[2, 2])
        roll = np.arctan2(R[1, 0], R[0, 0])
    else:
        # Gimbal lock
        pitch = np.arctan2(-R[1, 2], R[1, 1])
        roll = 0.0
    return float(yaw), float(pitch), float(roll)


def _wrap_half_turn(deg: float) -> float:
    # EPnP may return the face-away solution; fold pitch into [-90, 90]
    if deg > 90.0:
        return deg - 180.0
    if deg < -90.0:
        return deg + 180.0
    return deg


def estimate_angles(pts2d: np.ndarray, width: int, height: int) -> Optional[Tuple[float, float, float]]:
    """(yaw, pitch, roll) in degrees from the six PnP points, or None."""
    K = camera_matrix(width, height)
    dist = np.zeros((8, 1), dtype=np.float32)
    pts2d = np.asarray(pts2d, dtype=np.float32).reshape(-1, 2)
    ok, rvec, _ = cv2.solvePnP(PNP_TEMPLATE, pts2d, K, dist, flags=cv2.SOLVEPNP_EPNP)
    if not ok:
        ok, rvec, _ = cv2.solvePnP(PNP_TEMPLATE, pts2d, K, dist, flags=cv2.SOLVEPNP_ITERATIVE)
    if not ok:
        return None
    R, _ = cv2.Rodrigues(rvec)
    yaw, pitch, roll = np.degrees(_euler_from_R(R))
    return float(yaw), _wrap_half_turn(float(pitch)), float(roll)


def _bbox_from_pixels(pixel: np.ndarray) -> BBox:
    x_min, y_min = pixel.min(axis=0)
    x_max, y_max = pixel.max(axis=0)
    return BBox(float(x_min), float(y_min), float(x_max - x_min), float(y_max - y_min))


def observation_from_mesh(pixel: np.ndarray, width: int, height: int, with_pose: bool = True) -> FaceObservation:
    """Build a FaceObservation from FaceMesh pixel coordinates (N, 2)."""
    pixel = np.asarray(pixel, dtype=np.float64)
    if pixel.ndim != 2 or pixel.shape[0] < _MESH_SIZE or pixel.shape[1] < 2:
        raise ValueError("Landmark array too small for FaceMesh indices")
    pixel = pixel[:, :2]

    landmarks: Dict[LandmarkType, Point] = {}
    for kind, ring in EYE_RINGS.items():
        cx, cy = pixel[ring].mean(axis=0)
        landmarks[kind] = Point(float(cx), float(cy))
    for kind, idx in POINT_LANDMARKS.items():
        landmarks[kind] = Point(float(pixel[idx, 0]), float(pixel[idx, 1]))

    face = FaceObservation(bbox=_bbox_from_pixels(pixel), landmarks=landmarks)
    if with_pose:
        angles = estimate_angles(pixel[PNP_INDICES], width, height)
        if angles is None:
            logger.warning("solvePnP failed; pose left unset")
        else:
            face.yaw, face.pitch, face.roll = angles
    return face


class FaceMeshDetector:
    """Reusable wrapper around MediaPipe FaceMesh for static images.

    Usage:
        with FaceMeshDetector(DetectorConfig()) as det:
            face = det.detect(rgb, meta)
    """

    def __init__(self, cfg: Optional[DetectorConfig] = None):
        if mp is None:
            raise ImportError("mediapipe must be installed to use FaceMeshDetector (pip install hairscan[detect])")
        self.cfg = cfg or DetectorConfig()
        self._mesh = None

    def __enter__(self):
        self._mesh = mp.solutions.face_mesh.FaceMesh(
            static_image_mode=self.cfg.static_image_mode,
            refine_landmarks=self.cfg.refine_landmarks,
            max_num_faces=self.cfg.max_faces,
        )
        return self

    def __exit__(self, exc_type, exc, tb):
        if self._mesh is not None:
            self._mesh.close()
            self._mesh = None

    def detect(self, image_rgb: np.ndarray, meta: ImageMeta) -> Optional[FaceObservation]:
        """Largest detected face, or None when no face is found."""
        if self._mesh is None:
            self.__enter__()
        results = self._mesh.process(image_rgb)
        if not results or not results.multi_face_landmarks:
            return None

        width, height = meta.width, meta.height
        meshes = []
        for flm in results.multi_face_landmarks:
            pix = np.array([[pt.x * width, pt.y * height] for pt in flm.landmark], dtype=np.float64)
            meshes.append(pix)
        areas = [float(np.prod(m.max(axis=0) - m.min(axis=0))) for m in meshes]
        primary = meshes[int(np.argmax(areas))]
        return observation_from_mesh(primary, width, height)


def _point(value: Any) -> Point:
    if isinstance(value, Mapping):
        return Point(float(value["x"]), float(value["y"]))
    x, y = value
    return Point(float(x), float(y))


def face_from_dict(data: Mapping[str, Any]) -> FaceObservation:
    box = data.get("bbox")
    if box is None:
        raise ValueError("face description requires a 'bbox'")
    if isinstance(box, Mapping):
        bbox = BBox(float(box["left"]), float(box["top"]), float(box["width"]), float(box["height"]))
    else:
        left, top, width, height = box
        bbox = BBox(float(left), float(top), float(width), float(height))

    landmarks: Dict[LandmarkType, Point] = {}
    for name, value in (data.get("landmarks") or {}).items():
        try:
            kind = LandmarkType(name)
        except ValueError:
            logger.debug("Ignoring unknown landmark %r", name)
            continue
        landmarks[kind] = _point(value)

    def _angle(key: str) -> Optional[float]:
        v = data.get(key)
        return None if v is None else float(v)

    return FaceObservation(
        bbox=bbox,
        landmarks=landmarks,
        yaw=_angle("yaw"),
        pitch=_angle("pitch"),
        roll=_angle("roll"),
    )


def face_to_dict(face: FaceObservation) -> Dict[str, Any]:
    b = face.bbox
    return {
        "bbox": [b.left, b.top, b.width, b.height],
        "landmarks": {k.value: [p.x, p.y] for k, p in face.landmarks.items()},
        "yaw": face.yaw,
        "pitch": face.pitch,
        "roll": face.roll,
    }


def load_face_file(path: str | Path) -> FaceObservation:
    """Read a YAML or JSON face description (JSON is valid YAML)."""
    p = Path(path)
    with p.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Face file must contain a mapping: {p}")
    return face_from_dict(data)


__all__ = [
    "DetectorConfig",
    "FaceMeshDetector",
    "camera_matrix",
    "estimate_angles",
    "observation_from_mesh",
    "face_from_dict",
    "face_to_dict",
    "load_face_file",
]

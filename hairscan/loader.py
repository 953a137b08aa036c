"""Image source for the scan engine.

- Recursive image enumeration with extension whitelist and optional `max_files`.
- Unicode-safe decoding via OpenCV (imdecode) with fallback to imread.
- Images are handed to the engine as RGB uint8 arrays.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Generator, Iterable, Optional, Tuple

import cv2
import numpy as np

from .types import ImageMeta
from .utils import IMAGE_EXTS, is_image_file

logger = logging.getLogger(__name__)


def to_rgb(img: np.ndarray) -> np.ndarray:
    """Convert an OpenCV-decoded image (gray, BGR or BGRA) to RGB."""
    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2RGB)
    if img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2RGB)
    return cv2.cvtColor(img, cv2.COLOR_BGR2RGB)


class ImageLoader:
    def __init__(
        self,
        input_dir: str | Path,
        exts: Optional[Iterable[str]] = None,
        max_files: Optional[int] = None,
    ):
        self.input_dir = Path(input_dir)
        self.exts = set(e.lower() for e in (exts or IMAGE_EXTS))
        self.max_files = max_files

    def enumerate(self) -> Generator[Path, None, None]:
        count = 0
        if not self.input_dir.exists():
            logger.warning("Input directory does not exist: %s", self.input_dir)
            return
        for p in sorted(self.input_dir.rglob("*")):
            if p.is_file() and is_image_file(p, self.exts):
                yield p
                count += 1
                if self.max_files is not None and count >= self.max_files:
                    return

    @staticmethod
    def _imread_unicode(path: Path) -> Optional[np.ndarray]:
        try:
            data = np.fromfile(str(path), dtype=np.uint8)
        except OSError as e:
            logger.debug("Cannot read %s: %s", path, e)
            return None
        if data.size == 0:
            return None
        img = cv2.imdecode(data, cv2.IMREAD_UNCHANGED)
        if img is None:
            img = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
        return img

    def read_image(self, path: str | Path) -> Tuple[Optional[np.ndarray], Optional[ImageMeta], Optional[str]]:
        """Return (rgb, meta, error); error is set when decoding failed."""
        p = Path(path)
        img = self._imread_unicode(p)
        if img is None:
            return None, None, "unreadable"
        if img.dtype != np.uint8:
            img = cv2.normalize(img, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)
        rgb = to_rgb(img)
        h, w = rgb.shape[:2]
        meta = ImageMeta(path=str(p), width=w, height=h, channels=rgb.shape[2], ext=p.suffix.lower())
        return rgb, meta, None

    def iter_images(self) -> Generator[Tuple[Path, np.ndarray, ImageMeta], None, None]:
        for p in self.enumerate():
            img, meta, err = self.read_image(p)
            if err is not None or img is None or meta is None:
                logger.warning("Failed to read image: %s (%s)", p, err)
                continue
            yield p, img, meta


__all__ = ["ImageLoader", "to_rgb"]

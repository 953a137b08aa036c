from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Optional

IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".bmp", ".webp", ".tiff"}
FACE_SIDECAR_SUFFIXES = (".face.yaml", ".face.yml", ".face.json")

# Libraries that log chatty INFO lines while loading models
_NOISY_LOGGERS = ("absl", "mediapipe", "tensorflow")


def setup_logging(level: str | int = "INFO") -> None:
    """Configure root logging for the CLI.

    Accepts either a level name or a numeric level. Model-loading
    libraries are held at WARNING unless DEBUG is requested.
    """
    if isinstance(level, str):
        lvl = logging.getLevelName(level.upper())
        if not isinstance(lvl, int):
            lvl = logging.INFO
    else:
        lvl = int(level)
    logging.basicConfig(
        level=lvl,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(lvl if lvl <= logging.DEBUG else max(lvl, logging.WARNING))


def ensure_dir(path: str | os.PathLike) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def is_image_file(path: str | os.PathLike, exts: Optional[Iterable[str]] = None) -> bool:
    allowed = set(e.lower() for e in (exts or IMAGE_EXTS))
    return Path(path).suffix.lower() in allowed


def face_sidecar(image_path: str | os.PathLike) -> Optional[Path]:
    """`<stem>.face.yaml|yml|json` next to the image, if present."""
    p = Path(image_path)
    for suffix in FACE_SIDECAR_SUFFIXES:
        cand = p.with_name(p.stem + suffix)
        if cand.exists():
            return cand
    return None

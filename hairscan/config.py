from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping

import yaml

logger = logging.getLogger(__name__)


DEFAULTS: Dict[str, Any] = {
    "paths": {
        "input_dir": "images",
        "output_dir": "outputs",
    },
    "quality": {
        # Absolute pixel sizes assume the reference capture resolution
        "min_width": 100,
        "min_height": 120,
        "max_yaw": 25.0,
        "max_pitch": 20.0,
    },
    "thresholds": {
        "front": 0.15,
        "crown": 0.15,
        "sides": 0.15,
    },
    # Upper lip and chin thresholds derive from the front threshold:
    # clamp(front * factor, min, max)
    "derived_thresholds": {
        "upper_lip": {"factor": 1.25, "min": 0.70, "max": 0.95},
        "chin": {"factor": 0.75, "min": 0.50, "max": 0.65},
    },
    "scorer": {
        "edge_weight": 0.7,
        "darkness_weight": 0.3,
        "saturation_power": 1.5,
        "percentile_threshold": 0.35,
        "scales": [1.0, 0.7],
        "edge_percentile": 0.80,
        "blur_radius": 2,
        "persistence_bonus": 0.25,
        "saturation_floor": 0.2,
    },
    "detector": {
        "static_image_mode": True,
        "refine_landmarks": False,
        "max_faces": 1,
    },
    "runtime": {
        "workers": 0,  # 0 => score regions inline; >0 => thread pool size
        "batch_workers": 0,  # 0 => single process; >0 => process pool size
        "max_files": None,
        "log_level": "INFO",
    },
}


def _deep_merge(base: MutableMapping[str, Any], override: Mapping[str, Any]) -> MutableMapping[str, Any]:
    for k, v in override.items():
        if k in base and isinstance(base[k], MutableMapping) and isinstance(v, Mapping):
            _deep_merge(base[k], v)
        else:
            base[k] = v
    return base


def load_yaml(path: str | Path | None) -> Dict[str, Any]:
    if not path:
        return {}
    p = Path(path)
    if not p.exists():
        logger.warning("YAML config not found: %s", p)
        return {}
    with p.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError("Top-level of YAML must be a mapping/dict")
    return data


def merge_config(yaml_cfg: Mapping[str, Any] | None = None, cli_overrides: Mapping[str, Any] | None = None) -> Dict[str, Any]:
    cfg: Dict[str, Any] = copy.deepcopy(DEFAULTS)
    if yaml_cfg:
        _deep_merge(cfg, dict(yaml_cfg))
    if cli_overrides:
        _deep_merge(cfg, dict(cli_overrides))
    return cfg


def load_and_merge(yaml_path: str | Path | None, cli_overrides: Mapping[str, Any] | None = None) -> Dict[str, Any]:
    yaml_cfg = load_yaml(yaml_path)
    return merge_config(yaml_cfg, cli_overrides)

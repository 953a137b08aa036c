"""Output writers.

Per-image scan records go to JSON indices (completed and rejected scans);
a YAML summary reports counts and per-region pass rates.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .detector import face_to_dict
from .types import FaceObservation, ImageMeta, RegionKind, ScanOutcome
from .utils import ensure_dir

logger = logging.getLogger(__name__)


def build_record(
    meta: ImageMeta,
    face: Optional[FaceObservation],
    outcome: ScanOutcome,
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    rec: Dict[str, Any] = {
        "file": meta.path,
        "width": meta.width,
        "height": meta.height,
        "face": face_to_dict(face) if face is not None else None,
        "state": outcome.state.value,
        "completed": outcome.ok,
        "reason": outcome.reason,
        "result": outcome.result.as_dict() if outcome.result is not None else None,
    }
    if extra:
        rec.update(extra)
    return rec


class ResultsWriter:
    def __init__(self, output_dir: str | Path, cfg: Optional[Dict[str, Any]] = None):
        self.output_dir = Path(output_dir)
        ensure_dir(self.output_dir)
        self.cfg = cfg or {}
        self.completed: List[Dict[str, Any]] = []
        self.rejected: List[Dict[str, Any]] = []

    def add(self, record: Dict[str, Any]) -> None:
        if record.get("completed"):
            self.completed.append(record)
        else:
            self.rejected.append(record)

    def _write_json(self, path: Path, data: List[Dict[str, Any]]):
        with path.open("w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)

    def _pass_rates(self) -> Dict[str, float]:
        rates: Dict[str, float] = {}
        if not self.completed:
            return rates
        for kind in RegionKind:
            passed = 0
            for rec in self.completed:
                for region in rec["result"]["regions"]:
                    if region["region"] == kind.value and region["passed"]:
                        passed += 1
            rates[kind.value] = round(passed / len(self.completed), 4)
        return rates

    def finalize(self) -> Dict[str, Any]:
        out_dir = ensure_dir(self.output_dir)

        self._write_json(out_dir / "scans.json", self.completed)
        self._write_json(out_dir / "rejected.json", self.rejected)

        summary = {
            "counts": {
                "completed": len(self.completed),
                "rejected": len(self.rejected),
                "total": len(self.completed) + len(self.rejected),
            },
            "pass_rates": self._pass_rates(),
            "thresholds": (self.cfg or {}).get("thresholds", {}),
            "paths": (self.cfg or {}).get("paths", {}),
        }
        with (out_dir / "summary.yaml").open("w", encoding="utf-8") as f:
            yaml.safe_dump(summary, f, sort_keys=False, allow_unicode=True)

        logger.info("Wrote %d completed / %d rejected records to %s", len(self.completed), len(self.rejected), out_dir)
        return summary


__all__ = [
    "build_record",
    "ResultsWriter",
]

import argparse
import os
from pathlib import Path
from concurrent.futures import ProcessPoolExecutor, as_completed

import cv2
from tqdm import tqdm

from hairscan.config import load_and_merge
from hairscan.utils import face_sidecar, setup_logging
from hairscan.loader import ImageLoader
from hairscan.scan import ScanOrchestrator, scored_regions
from hairscan.types import ThresholdSet
from hairscan.writers import ResultsWriter, build_record


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Facial hair density scan")
    # Single-image mode
    p.add_argument("--image", help="Path to a single image (PNG/JPG)")
    p.add_argument("--face", default=None, help="YAML/JSON face description; FaceMesh detection is used if omitted")
    p.add_argument("--save-debug", default=None, help="Optional path to save region overlay (single-image mode)")
    # Batch mode
    p.add_argument("--input-dir", help="Directory of images to process (batch mode)")
    p.add_argument("--output-dir", help="Directory to write outputs (JSON + summary)")
    p.add_argument("--max-files", type=int, default=None, help="Optional max files to process (for testing)")
    p.add_argument("--workers", type=int, default=None, help="Number of worker processes (0=single-process)")
    # Calibration
    p.add_argument("--thr-front", type=float, default=None, help="Front region threshold")
    p.add_argument("--thr-crown", type=float, default=None, help="Crown region threshold")
    p.add_argument("--thr-sides", type=float, default=None, help="Side regions threshold")
    # Config
    p.add_argument("--config", default=None, help="Optional YAML config path")
    p.add_argument("--log-level", default=None, help="Override log level (e.g., INFO, DEBUG)")
    return p.parse_args()


def draw_debug(image_rgb, face, outcome, out_path: str):
    vis = cv2.cvtColor(image_rgb, cv2.COLOR_RGB2BGR)
    b = face.bbox
    cv2.rectangle(vis, (int(b.left), int(b.top)), (int(b.right), int(b.bottom)), (255, 255, 0), 1)
    for pt in face.landmarks.values():
        cv2.circle(vis, (int(pt.x), int(pt.y)), 2, (255, 0, 255), -1)
    for row in scored_regions(outcome):
        l, t, r, bt = row["rect"]
        x0, y0 = int(b.left + l * b.width), int(b.top + t * b.height)
        x1, y1 = int(b.left + r * b.width), int(b.top + bt * b.height)
        color = (0, 200, 0) if row["passed"] else (0, 0, 255)
        cv2.rectangle(vis, (x0, y0), (x1, y1), color, 2)
        label = "%s %.2f" % (row["region"], row["score"])
        cv2.putText(vis, label, (x0 + 2, y0 + 12), cv2.FONT_HERSHEY_SIMPLEX, 0.35, color, 1, cv2.LINE_AA)
    cv2.imwrite(out_path, vis)


def obtain_face(image, meta, cfg: dict, face_path=None):
    # Local imports keep mediapipe optional and workers picklable
    from hairscan.detector import DetectorConfig, FaceMeshDetector, load_face_file

    if face_path is not None:
        return load_face_file(face_path)
    with FaceMeshDetector(DetectorConfig.from_config(cfg)) as det:
        return det.detect(image, meta)


def process_one_path(path_str: str, cfg: dict) -> dict:
    from hairscan.loader import ImageLoader
    from hairscan.scan import ScanOrchestrator
    from hairscan.types import ImageMeta as IMeta, ScanOutcome, ScanState

    loader = ImageLoader(input_dir=Path(path_str).parent)
    img, meta, err = loader.read_image(path_str)
    if err or img is None or meta is None:
        meta_fallback = meta if meta is not None else IMeta(path=str(path_str), width=0, height=0)
        outcome = ScanOutcome(state=ScanState.FAILED, reason=err or "unreadable")
        return build_record(meta_fallback, None, outcome)

    face = obtain_face(img, meta, cfg, face_sidecar(path_str))
    if face is None:
        return build_record(meta, None, ScanOutcome(state=ScanState.FAILED, reason="no_face"))

    outcome = ScanOrchestrator(cfg).run(img, face)
    return build_record(meta, face, outcome)


def main():
    # Reduce TF/MediaPipe verbosity if desired
    os.environ.setdefault("TF_CPP_MIN_LOG_LEVEL", "2")

    args = parse_args()

    cli_overrides = {"paths": {}, "runtime": {}, "thresholds": {}}
    if args.input_dir:
        cli_overrides["paths"]["input_dir"] = args.input_dir
    if args.output_dir:
        cli_overrides["paths"]["output_dir"] = args.output_dir
    if args.max_files is not None:
        cli_overrides["runtime"]["max_files"] = args.max_files
    if args.workers is not None:
        cli_overrides["runtime"]["batch_workers"] = args.workers
    if args.log_level:
        cli_overrides["runtime"]["log_level"] = args.log_level
    for key, value in (("front", args.thr_front), ("crown", args.thr_crown), ("sides", args.thr_sides)):
        if value is not None:
            cli_overrides["thresholds"][key] = value

    cfg = load_and_merge(args.config, cli_overrides)

    setup_logging(cfg.get("runtime", {}).get("log_level", "INFO"))

    # Single-image mode
    if args.image and not args.input_dir:
        loader = ImageLoader(input_dir=Path(args.image).parent)
        image, meta, err = loader.read_image(args.image)
        if err or image is None or meta is None:
            raise SystemExit(f"Failed to read image: {args.image} ({err})")

        face = obtain_face(image, meta, cfg, args.face or face_sidecar(args.image))
        if face is None:
            print("No face detected")
            return

        thresholds = ThresholdSet.from_mapping(cfg.get("thresholds"))
        outcome = ScanOrchestrator(cfg).run(image, face, thresholds)
        if not outcome.ok:
            print("Scan failed:", outcome.reason)
            return

        for rs in outcome.result.scores:
            print(
                "%-10s score=%.3f threshold=%.3f %s"
                % (rs.kind.value, rs.score, rs.threshold, "pass" if rs.passed else "below threshold")
            )
        print("Elapsed (ms):", outcome.result.elapsed_ms)

        if args.save_debug:
            out_path = str(args.save_debug)
            draw_debug(image, face, outcome, out_path)
            print("Saved debug overlay:", out_path)
        return

    # Batch mode
    input_dir = cfg.get("paths", {}).get("input_dir")
    output_dir = cfg.get("paths", {}).get("output_dir")
    if not input_dir or not output_dir:
        raise SystemExit("Batch mode requires --input-dir and --output-dir (or set in config)")

    loader = ImageLoader(input_dir=input_dir, max_files=cfg.get("runtime", {}).get("max_files"))
    paths = list(loader.enumerate())
    if not paths:
        print("No images found in", input_dir)
        return

    writer = ResultsWriter(output_dir, cfg)

    workers = int(cfg.get("runtime", {}).get("batch_workers", 0) or 0)
    if workers <= 0:
        for p in tqdm(paths, desc="Scanning", unit="img"):
            writer.add(process_one_path(str(p), cfg))
    else:
        with ProcessPoolExecutor(max_workers=workers) as ex:
            futures = {ex.submit(process_one_path, str(p), cfg): p for p in paths}
            for fut in tqdm(as_completed(futures), total=len(futures), desc="Scanning", unit="img"):
                try:
                    writer.add(fut.result())
                except Exception as e:
                    print("Worker failed on %s: %s" % (futures[fut], e))

    summary = writer.finalize()
    print("Summary:", summary)


if __name__ == "__main__":
    main()

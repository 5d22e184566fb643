import argparse
import logging
from dataclasses import replace
from pathlib import Path

from infer_kit import (
    ImageDecodeError,
    InferKitError,
    draw_detections,
    load_class_names,
    load_detection_pipeline,
    load_image,
    load_model_profile,
    write_overlay,
)
from infer_kit.config import BUILTIN_PROFILES


logger = logging.getLogger("run_detection")


def main() -> int:
    parser = argparse.ArgumentParser(description="Run ONNX detection on images and print YOLO label lines.")
    parser.add_argument("images", nargs="+", help="Image file(s) to run on.")
    parser.add_argument("--model", required=True, help="Path to an ONNX detection model.")
    parser.add_argument(
        "--profile",
        default="yolov11",
        help=f"Built-in profile ({', '.join(sorted(BUILTIN_PROFILES))}) or path to a JSON profile.",
    )
    parser.add_argument("--metadata", default=None, help="Optional class names file (names: mapping/list).")
    parser.add_argument("--imgsz", type=int, default=None, help="Override model input size (square).")
    parser.add_argument("--conf", type=float, default=None, help="Override score threshold.")
    parser.add_argument("--iou", type=float, default=None, help="Override IoU threshold for NMS.")
    parser.add_argument("--class-aware", action="store_true", help="Run NMS per class instead of across classes.")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--save", action="store_true", help="Write <image>_detect.png next to each image.")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING...).")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.profile in BUILTIN_PROFILES:
        profile = BUILTIN_PROFILES[args.profile]
    else:
        profile = load_model_profile(Path(args.profile))

    overrides = {}
    if args.imgsz is not None:
        overrides.update(input_width=args.imgsz, input_height=args.imgsz)
    if args.conf is not None:
        overrides["score_threshold"] = args.conf
    if args.iou is not None:
        overrides["iou_threshold"] = args.iou
    if args.class_aware:
        overrides["class_aware_nms"] = True
    if overrides:
        profile = replace(profile, **overrides)

    class_names = load_class_names(args.metadata) if args.metadata else profile.class_name_map()

    onnx_providers = None
    if args.onnx_providers:
        onnx_providers = [p.strip() for p in str(args.onnx_providers).split(",") if p.strip()]

    pipeline = load_detection_pipeline(args.model, profile, onnx_providers=onnx_providers)

    failed = 0
    for image_path in args.images:
        # One bad image must not stop the batch.
        try:
            img = load_image(image_path)
            detections = pipeline(img)
        except ImageDecodeError as exc:
            logger.warning("skipping %s: %s", image_path, exc)
            failed += 1
            continue
        except InferKitError as exc:
            logger.error("inference failed for %s: %s", image_path, exc)
            failed += 1
            continue

        h, w = img.shape[:2]
        print(f"# {image_path} ({len(detections)} detections)")
        for det in detections:
            cls, cx, cy, bw, bh = det.to_yolo(w, h)
            name = class_names.get(cls, str(cls))
            print(f"{cls} {cx:.6f} {cy:.6f} {bw:.6f} {bh:.6f}  # {name} {det.score:.3f}")

        if args.save:
            vis = draw_detections(img, detections, class_names=class_names, show_score=True)
            write_overlay(image_path, vis)

    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())

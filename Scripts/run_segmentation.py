import argparse
import logging
from dataclasses import replace
from typing import List

from infer_kit import (
    SAM_PROFILE,
    PromptPoint,
    highlight,
    load_image,
    load_segmentation_pipeline,
    overlay_mask,
    write_overlay,
)
from infer_kit.visualize import HIGHLIGHT_SUFFIX, MASK_SUFFIX


def _parse_point(value: str) -> PromptPoint:
    """"x,y" or "x,y,label" in original image pixels."""
    parts = [p.strip() for p in value.split(",")]
    if len(parts) not in (2, 3):
        raise argparse.ArgumentTypeError(f"Point must be x,y or x,y,label, got {value!r}")
    try:
        x, y = float(parts[0]), float(parts[1])
        label = int(parts[2]) if len(parts) == 3 else 1
        return PromptPoint(x=x, y=y, label=label)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def main() -> int:
    parser = argparse.ArgumentParser(description="Segment an object from point prompts with a SAM ONNX export.")
    parser.add_argument("image", help="Path to an input image.")
    parser.add_argument("--encoder", required=True, help="SAM image encoder (.onnx).")
    parser.add_argument("--decoder", required=True, help="SAM mask decoder (.onnx).")
    parser.add_argument(
        "--point",
        type=_parse_point,
        action="append",
        required=True,
        help="Prompt point x,y[,label] in image pixels (label 1 = foreground, 0 = background). Repeatable.",
    )
    parser.add_argument("--multimask", action="store_true", help="Ask for 3 candidates and keep the best one.")
    parser.add_argument("--low-res", action="store_true", help="Upsample low_res_masks instead of masks.")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING...).")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    profile = replace(
        SAM_PROFILE,
        multimask=bool(args.multimask),
        mask_output="low_res_masks" if args.low_res else "masks",
    )
    onnx_providers = None
    if args.onnx_providers:
        onnx_providers = [p.strip() for p in str(args.onnx_providers).split(",") if p.strip()]

    pipeline = load_segmentation_pipeline(args.encoder, args.decoder, profile, onnx_providers=onnx_providers)

    img = load_image(args.image)
    points: List[PromptPoint] = args.point
    prediction = pipeline(img, points)

    masked = write_overlay(args.image, overlay_mask(img, prediction.mask), MASK_SUFFIX)
    highlighted = write_overlay(args.image, highlight(img, prediction.mask), HIGHLIGHT_SUFFIX)

    print(f"mask index={prediction.index} area={prediction.mask.area}px")
    print(f"Wrote {masked}")
    print(f"Wrote {highlighted}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

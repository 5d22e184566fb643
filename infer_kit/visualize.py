"""
Result sink: render detections / masks onto images and write overlay files next to
the source image.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple, Union

import numpy as np

from .resize import _cv2
from .types import Detection, Mask


logger = logging.getLogger(__name__)

DETECTION_SUFFIX = "_detect"
MASK_SUFFIX = "_masked"
HIGHLIGHT_SUFFIX = "_highlighted"

_PALETTE = (
    (255, 56, 56),
    (255, 157, 151),
    (255, 112, 31),
    (255, 178, 29),
    (207, 210, 49),
    (72, 249, 10),
    (146, 204, 23),
    (61, 219, 134),
    (26, 147, 52),
    (0, 212, 187),
    (44, 153, 168),
    (0, 194, 255),
    (52, 69, 147),
    (100, 115, 255),
    (0, 24, 236),
    (132, 56, 255),
    (82, 0, 133),
    (203, 56, 255),
    (255, 149, 200),
    (255, 55, 199),
)


def color_for_class(class_id: int) -> Tuple[int, int, int]:
    """
    Deterministic BGR color for a class id (OpenCV expects BGR).
    """

    if 0 <= class_id < len(_PALETTE):
        return _PALETTE[class_id]
    rng = np.random.default_rng(int(class_id))
    bgr = rng.integers(0, 256, size=3, dtype=np.uint8)
    return int(bgr[0]), int(bgr[1]), int(bgr[2])


def _check_bgr(image: np.ndarray) -> None:
    if image is None or not hasattr(image, "shape"):
        raise TypeError("image must be a NumPy array (BGR).")
    if image.ndim != 3 or image.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image, 'shape', None)}")


def _label_text(det: Detection, class_names: Optional[Dict[int, str]], show_score: bool) -> str:
    name = class_names.get(det.class_id, str(det.class_id)) if class_names else str(det.class_id)
    return f"{name} {det.score:.2f}" if show_score else name


def _pixel_corners(det: Detection, width: int, height: int) -> Tuple[int, int, int, int]:
    """Detection corners rounded to pixels and clamped into a width x height image."""
    limits = np.array([width - 1, height - 1, width - 1, height - 1], dtype=np.float64)
    corners = np.clip(np.round(np.asarray(det.as_xyxy(), dtype=np.float64)), 0, limits).astype(int)
    x1, y1, x2, y2 = (int(v) for v in corners)
    return x1, y1, x2, y2


def draw_detections(
    image_bgr: np.ndarray,
    detections: Iterable[Detection],
    *,
    class_names: Optional[Dict[int, str]] = None,
    show_score: bool = True,
    box_thickness: int = 2,
    font_scale: float = 0.5,
) -> np.ndarray:
    """
    Draw each detection as a class-colored box with a filled "name score" tag and
    return a copy; the tag sits above the box, or inside it at the top edge of the image.
    """

    cv2 = _cv2()
    _check_bgr(image_bgr)

    out = image_bgr.copy()
    h, w = out.shape[:2]
    font = cv2.FONT_HERSHEY_SIMPLEX

    for det in detections:
        x1, y1, x2, y2 = _pixel_corners(det, w, h)
        color = color_for_class(det.class_id)
        cv2.rectangle(out, (x1, y1), (x2, y2), color, thickness=box_thickness)

        text = _label_text(det, class_names, show_score)
        (tw, th), baseline = cv2.getTextSize(text, font, font_scale, 1)
        above = y1 - th - baseline
        tag_top = above if above >= 0 else y1
        tag_bottom = min(tag_top + th + baseline, h - 1)
        cv2.rectangle(out, (x1, tag_top), (min(x1 + tw, w - 1), tag_bottom), color, thickness=-1)
        cv2.putText(out, text, (x1, min(tag_top + th, h - 1)), font, font_scale, (255, 255, 255), 1, cv2.LINE_AA)

    return out


def overlay_mask(
    image_bgr: np.ndarray,
    mask: Mask,
    color: Tuple[int, int, int] = (0, 0, 255),
    alpha: float = 0.5,
) -> np.ndarray:
    """
    Blend `color` over the foreground pixels of `mask`; background is left as is.
    """

    _check_bgr(image_bgr)
    if image_bgr.shape[:2] != (mask.height, mask.width):
        raise ValueError(
            f"Image size {image_bgr.shape[1]}x{image_bgr.shape[0]} does not match mask {mask.width}x{mask.height}"
        )
    if not 0.0 <= alpha <= 1.0:
        raise ValueError("alpha must be in [0, 1]")

    out = image_bgr.copy()
    fg = mask.data
    blended = out[fg].astype(np.float32) * (1.0 - alpha) + np.asarray(color, dtype=np.float32) * alpha
    out[fg] = np.clip(np.round(blended), 0, 255).astype(out.dtype)
    return out


def overlay_path(source: Union[str, Path], suffix: str) -> Path:
    """`photo.jpg` + `_detect` -> `photo_detect.png` in the same directory."""
    src = Path(source)
    return src.with_name(f"{src.stem}{suffix}.png")


def write_overlay(source: Union[str, Path], image: np.ndarray, suffix: str = DETECTION_SUFFIX) -> Path:
    cv2 = _cv2()
    out_path = overlay_path(source, suffix)
    ok = cv2.imwrite(str(out_path), image)
    if not ok:
        raise RuntimeError(f"Failed to write output image: {out_path}")
    logger.info("wrote overlay %s", out_path)
    return out_path

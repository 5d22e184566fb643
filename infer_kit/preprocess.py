"""
Image -> model-ready CHW tensor.

Two resize modes are supported:

- stretch: detection models (YOLO); resize straight to the input size and scale to 0-1.
- pad_square: promptable segmentation (SAM); pad to a square at the origin, resize,
  then standardize with per-channel mean/std.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np

from .errors import ImageDecodeError
from .half import encode_float16
from .resize import _cv2, pad_square_resize, stretch_resize
from .types import ResizeRatio


logger = logging.getLogger(__name__)

ImageSource = Union[str, Path, bytes, bytearray, np.ndarray]


class ResizeMode(str, Enum):
    STRETCH = "stretch"
    PAD_SQUARE = "pad_square"


@dataclass(frozen=True)
class Normalization:
    """Per-channel (value - mean) / std, channels in RGB order."""

    mean: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    std: Tuple[float, float, float] = (255.0, 255.0, 255.0)

    def __post_init__(self) -> None:
        if len(self.mean) != 3 or len(self.std) != 3:
            raise ValueError("mean and std need exactly 3 channel values")
        if any(s == 0 for s in self.std):
            raise ValueError("std values must be non-zero")


UNIT_SCALE = Normalization()
SAM_NORMALIZATION = Normalization(mean=(123.675, 116.28, 103.53), std=(58.395, 57.12, 57.375))

_DEFAULT_NORMALIZATION = {
    ResizeMode.STRETCH: UNIT_SCALE,
    ResizeMode.PAD_SQUARE: SAM_NORMALIZATION,
}


@dataclass(frozen=True)
class PreprocessResult:
    blob: np.ndarray
    orig_size: Tuple[int, int]  # (width, height)
    ratio: ResizeRatio


def load_image(source: ImageSource) -> np.ndarray:
    """
    Decode `source` into a 3-channel BGR uint8 array (OpenCV convention).

    Accepts a file path, encoded image bytes, or an already decoded array
    (grayscale, BGR or BGRA).
    """

    cv2 = _cv2()

    if isinstance(source, np.ndarray):
        img = source
        if img.ndim < 2 or img.shape[0] == 0 or img.shape[1] == 0:
            raise ImageDecodeError(f"Image has no pixels: shape {img.shape}")
        if img.ndim == 2:
            img = cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
        elif img.ndim == 3 and img.shape[2] == 4:
            img = cv2.cvtColor(img, cv2.COLOR_BGRA2BGR)
        elif img.ndim != 3 or img.shape[2] != 3:
            raise ImageDecodeError(f"Expected image shape (H, W, 3), got {img.shape}")
        return img

    if isinstance(source, (bytes, bytearray)):
        raw = bytes(source)
        where = "<bytes>"
    else:
        path = Path(source)
        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise ImageDecodeError(f"Could not read image at path: {path}") from exc
        where = str(path)

    # imdecode (rather than imread) so non-ASCII paths behave the same everywhere.
    img = cv2.imdecode(np.frombuffer(raw, dtype=np.uint8), cv2.IMREAD_COLOR) if raw else None
    if img is None:
        raise ImageDecodeError(f"Could not decode image: {where}")
    return img


def to_chw_blob(image_rgb: np.ndarray, normalization: Normalization) -> np.ndarray:
    """HWC RGB -> normalized (1, 3, H, W) float32."""
    mean = np.asarray(normalization.mean, dtype=np.float32)
    std = np.asarray(normalization.std, dtype=np.float32)
    blob = (image_rgb.astype(np.float32) - mean) / std
    return np.ascontiguousarray(np.transpose(blob, (2, 0, 1))[None, ...])


def preprocess(
    image: ImageSource,
    target_width: int,
    target_height: int,
    mode: Union[ResizeMode, str] = ResizeMode.STRETCH,
    normalization: Optional[Normalization] = None,
    dtype: str = "float32",
) -> PreprocessResult:
    """
    Decode, resize and normalize an image into a (1, 3, target_height, target_width) blob.

    Args:
        image: path, encoded bytes, or BGR array
        mode: "stretch" or "pad_square"
        normalization: overrides the mode's default mean/std
        dtype: "float32" or "float16" (fp16 is encoded with the truncating codec)
    """

    mode = ResizeMode(mode)
    if dtype not in ("float32", "float16"):
        raise ValueError(f"Unsupported blob dtype {dtype!r}")

    img = load_image(image)
    orig_h, orig_w = img.shape[:2]

    if mode is ResizeMode.STRETCH:
        resized, ratio = stretch_resize(img, (int(target_width), int(target_height)))
    else:
        resized, ratio = pad_square_resize(img, (int(target_width), int(target_height)))

    norm = normalization if normalization is not None else _DEFAULT_NORMALIZATION[mode]
    blob = to_chw_blob(resized[:, :, ::-1], norm)
    if dtype == "float16":
        blob = encode_float16(blob)

    logger.debug(
        "preprocessed %dx%d image -> %s blob %s (mode=%s, ratio=%.4f/%.4f)",
        orig_w, orig_h, dtype, blob.shape, mode.value, ratio.x, ratio.y,
    )
    return PreprocessResult(blob=blob, orig_size=(orig_w, orig_h), ratio=ratio)

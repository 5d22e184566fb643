from typing import Tuple

import numpy as np

from .types import ResizeRatio


def _cv2():
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for image decoding and resizing. Install with `pip install opencv-python`.") from e
    return cv2


def stretch_resize(image: np.ndarray, new_shape: Tuple[int, int] = (640, 640)):
    """
    Resize straight to `new_shape` (width, height); aspect ratio is not preserved.

    Returns:
        resized: image of shape (new_h, new_w, C)
        ratio: ResizeRatio(original_w / new_w, original_h / new_h)
    """

    cv2 = _cv2()
    h, w = image.shape[:2]
    new_w, new_h = new_shape
    if new_w <= 0 or new_h <= 0:
        raise ValueError(f"Target size must be positive, got {new_shape}")

    if (w, h) != (new_w, new_h):
        image = cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_LINEAR)

    return image, ResizeRatio(x=w / new_w, y=h / new_h)


def pad_to_square(image: np.ndarray, color: Tuple[int, int, int] = (0, 0, 0)) -> np.ndarray:
    """
    Pad right/bottom so the image sits at the origin of a max(w, h) square canvas.
    """

    cv2 = _cv2()
    h, w = image.shape[:2]
    size = max(h, w)
    bottom, right = size - h, size - w
    if bottom == 0 and right == 0:
        return image
    return cv2.copyMakeBorder(image, 0, bottom, 0, right, cv2.BORDER_CONSTANT, value=color)


def pad_square_resize(
    image: np.ndarray,
    new_shape: Tuple[int, int] = (1024, 1024),
    color: Tuple[int, int, int] = (0, 0, 0),
):
    """
    Pad to a square (anchored top-left, no aspect distortion), then resize to `new_shape`.

    The ratio is relative to the square side, so it is the same on both axes for a
    square target, and maps model-space coordinates straight back to original pixels.
    """

    square = pad_to_square(image, color=color)
    resized, _ = stretch_resize(square, new_shape)
    side = square.shape[0]
    new_w, new_h = new_shape
    return resized, ResizeRatio(x=side / new_w, y=side / new_h)

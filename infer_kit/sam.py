"""
Promptable mask decoding (Segment Anything ONNX exports).

The encoder and decoder networks run in the execution engine; this module builds the
decoder's named inputs and turns its mask logits back into a binary mask at the
original image resolution.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import ShapeMismatchError
from .tensor import Tensor
from .types import Mask, PromptPoint, ResizeRatio


logger = logging.getLogger(__name__)

EMBEDDING_SHAPE = (1, 256, 64, 64)
PRIOR_MASK_SHAPE = (1, 1, 256, 256)
HIGHLIGHT_FACTOR = 0.3

DECODER_INPUTS = (
    "image_embeddings",
    "point_coords",
    "point_labels",
    "mask_input",
    "has_mask_input",
    "orig_im_size",
)
MULTIMASK_INPUT = "multimask_output"

ArrayOrTensor = Union[Tensor, np.ndarray]


def _array(value: ArrayOrTensor) -> np.ndarray:
    if isinstance(value, Tensor):
        return value.to_float32()
    return np.asarray(value, dtype=np.float32)


def build_decoder_feeds(
    embedding: ArrayOrTensor,
    points: Sequence[PromptPoint],
    orig_size: Tuple[int, int],
    ratio: ResizeRatio,
    prior_mask: Optional[ArrayOrTensor] = None,
    multimask: Optional[bool] = None,
) -> Dict[str, np.ndarray]:
    """
    Assemble the mask decoder inputs.

    Args:
        embedding: encoder output, (1, 256, 64, 64)
        points: prompt points in original image pixels
        orig_size: (width, height) of the original image
        ratio: ResizeRatio from pad-square preprocessing; maps points into model input space
        prior_mask: optional low-res logits (1, 1, 256, 256) from a previous prediction
        multimask: include `multimask_output` when not None
    """

    emb = _array(embedding)
    if emb.shape != EMBEDDING_SHAPE:
        raise ShapeMismatchError(f"image_embeddings must have shape {EMBEDDING_SHAPE}, got {emb.shape}")
    if not points:
        raise ValueError("At least one prompt point is required")

    coords = np.array([ratio.to_model(p.x, p.y) for p in points], dtype=np.float32).reshape(1, len(points), 2)
    labels = np.array([p.label for p in points], dtype=np.float32).reshape(1, len(points))

    if prior_mask is None:
        mask_input = np.zeros(PRIOR_MASK_SHAPE, dtype=np.float32)
        has_mask = np.zeros((1,), dtype=np.float32)
    else:
        mask_input = _array(prior_mask)
        if mask_input.shape != PRIOR_MASK_SHAPE:
            raise ShapeMismatchError(f"mask_input must have shape {PRIOR_MASK_SHAPE}, got {mask_input.shape}")
        has_mask = np.ones((1,), dtype=np.float32)

    orig_w, orig_h = orig_size
    feeds: Dict[str, np.ndarray] = {
        "image_embeddings": emb,
        "point_coords": coords,
        "point_labels": labels,
        "mask_input": mask_input,
        "has_mask_input": has_mask,
        # The decoder wants (height, width).
        "orig_im_size": np.array([orig_h, orig_w], dtype=np.float32),
    }
    if multimask is not None:
        feeds[MULTIMASK_INPUT] = np.array([bool(multimask)], dtype=np.bool_)
    return feeds


def best_mask_index(iou_predictions: ArrayOrTensor) -> int:
    """Index of the candidate mask with the highest predicted IoU."""
    scores = _array(iou_predictions).reshape(-1)
    if scores.size == 0:
        raise ShapeMismatchError("iou_predictions is empty")
    return int(np.argmax(scores))


def decode_mask(mask_tensor: ArrayOrTensor, target_width: int, target_height: int, index: int = 0) -> Mask:
    """
    Pick candidate `index` from a (1, K, mh, mw) logits tensor, upsample it with
    nearest-neighbour sampling to (target_height, target_width) and binarize (> 0).
    """

    logits = _array(mask_tensor)
    if logits.ndim != 4 or logits.shape[0] != 1:
        raise ShapeMismatchError(f"Mask tensor must have shape (1, K, H, W), got {logits.shape}")
    k, mh, mw = logits.shape[1:]
    if not 0 <= index < k:
        raise IndexError(f"Mask index {index} out of range for {k} candidate mask(s)")
    if target_width <= 0 or target_height <= 0:
        raise ValueError(f"Target size must be positive, got {(target_width, target_height)}")
    if mh == 0 or mw == 0:
        raise ShapeMismatchError(f"Mask tensor has an empty spatial dimension: {logits.shape}")

    src_x = (np.arange(target_width, dtype=np.int64) * mw) // target_width
    src_y = (np.arange(target_height, dtype=np.int64) * mh) // target_height
    sampled = logits[0, index][np.ix_(src_y, src_x)]

    mask = Mask.from_array(sampled > 0)
    logger.debug("decoded mask %d: %dx%d -> %dx%d, area=%d", index, mw, mh, target_width, target_height, mask.area)
    return mask


def highlight(image: np.ndarray, mask: Mask, factor: float = HIGHLIGHT_FACTOR) -> np.ndarray:
    """
    Dim everything outside the mask (each channel x factor, floored); the
    foreground passes through unchanged. Returns a new image.
    """

    if image.shape[:2] != (mask.height, mask.width):
        raise ShapeMismatchError(
            f"Image size {image.shape[1]}x{image.shape[0]} does not match mask {mask.width}x{mask.height}"
        )
    dimmed = np.floor(image.astype(np.float32) * factor).astype(image.dtype)
    if image.ndim == 3 and image.shape[2] == 4:
        dimmed[:, :, 3] = image[:, :, 3]  # alpha untouched
    background = ~mask.data
    if image.ndim == 3:
        background = background[:, :, None]
    return np.where(background, dimmed, image)

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import EngineInvocationError, ShapeMismatchError
from .half import float16_bits_to_float32
from .nms import suppress
from .tensor import Tensor
from .types import Detection, ResizeRatio


logger = logging.getLogger(__name__)


class OutputLayout(str, Enum):
    """
    Raw detection output layouts. The caller picks one from the model family; shape
    alone is ambiguous for small N / C.
    """

    # (1, N, 5 + C): contiguous [cx, cy, w, h, obj, class_scores...] per record (YOLOv5 style)
    PER_DETECTION = "per_detection"
    # (1, 4 + C, A): field-major, one column per anchor (YOLOv8/v11 style)
    PER_ANCHOR = "per_anchor"


BOX_FORMATS = ("auto", "pixels", "normalized")
SCORE_OVERFLOW_POLICIES = ("rescale", "clip", "raise")


@dataclass(frozen=True)
class PostConfig:
    """
    Konfigurasi untuk post processing
    """

    layout: OutputLayout = OutputLayout.PER_ANCHOR
    score_threshold: float = 0.45
    # Objectness gate, only used by PER_DETECTION outputs.
    confidence_threshold: float = 0.45
    iou_threshold: float = 0.45
    # "auto" treats boxes as normalized to the model input when every surviving centre is in [0, 1].
    box_format: str = "auto"
    # What to do with class scores > 1: "rescale" (/100 then clip), "clip", or "raise".
    score_overflow: str = "rescale"
    class_aware_nms: bool = False
    max_detections: Optional[int] = None
    # Optional list of class IDs to keep; None keeps all.
    class_ids: Optional[Sequence[int]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "layout", OutputLayout(self.layout))
        if self.box_format not in BOX_FORMATS:
            raise ValueError(f"box_format must be one of {BOX_FORMATS}, got {self.box_format!r}")
        if self.score_overflow not in SCORE_OVERFLOW_POLICIES:
            raise ValueError(f"score_overflow must be one of {SCORE_OVERFLOW_POLICIES}, got {self.score_overflow!r}")
        for name in ("score_threshold", "confidence_threshold", "iou_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be in [0, 1], got {value}")


OutputLike = Union[Tensor, np.ndarray]


def _as_float32(output: OutputLike) -> np.ndarray:
    if isinstance(output, Tensor):
        return output.to_float32()
    a = np.asarray(output)
    if a.dtype == np.float16:
        return float16_bits_to_float32(a)
    return a.astype(np.float32)


# ---------------------------------------------------------------------- #
# Per-layout field access: (boxes cxcywh (K, 4), objectness (K,) or None, class scores (K, C))
# ---------------------------------------------------------------------- #
def _fields_per_detection(p: np.ndarray) -> Tuple[np.ndarray, Optional[np.ndarray], np.ndarray]:
    if p.shape[2] < 6:
        raise ShapeMismatchError(f"Per-detection output needs at least 6 fields (5 + C), got shape {p.shape}")
    rows = p[0]
    return rows[:, 0:4], rows[:, 4], rows[:, 5:]


def _fields_per_anchor(p: np.ndarray) -> Tuple[np.ndarray, Optional[np.ndarray], np.ndarray]:
    if p.shape[1] < 5:
        raise ShapeMismatchError(f"Per-anchor output needs at least 5 fields (4 + C), got shape {p.shape}")
    cols = p[0]
    return cols[0:4, :].T, None, cols[4:, :].T


_FIELD_ACCESSORS = {
    OutputLayout.PER_DETECTION: _fields_per_detection,
    OutputLayout.PER_ANCHOR: _fields_per_anchor,
}


def _handle_score_overflow(scores: np.ndarray, policy: str, what: str = "class score") -> np.ndarray:
    over = np.isfinite(scores) & (scores > 1.0)
    count = int(over.sum())
    if count == 0:
        return scores

    if policy == "raise":
        raise EngineInvocationError(
            f"Model produced {count} {what}(s) above 1.0 (max {float(scores[over].max()):.4f})"
        )

    logger.warning("%d %s(s) above 1.0 in model output; applying %r policy", count, what, policy)
    fixed = scores.copy()
    if policy == "rescale":
        # Some exports emit percentages instead of probabilities.
        fixed[over] = np.clip(scores[over] / 100.0, 0.0, 1.0)
    else:
        fixed[over] = 1.0
    return fixed


def _looks_normalized(boxes: np.ndarray) -> bool:
    """
    True when every box centre lies in [0, 1]. Only the centres are checked: a
    normalized box may legitimately overshoot the frame in width or height.
    """

    if boxes.shape[0] == 0:
        return False
    centres = boxes[:, 0:2]
    return bool(centres.min() >= 0.0 and centres.max() <= 1.0)



def decode(
    output: OutputLike,
    original_width: int,
    original_height: int,
    ratio: ResizeRatio,
    score_threshold: float,
    confidence_threshold: float,
    layout: Union[OutputLayout, str] = OutputLayout.PER_ANCHOR,
    *,
    box_format: str = "auto",
    score_overflow: str = "rescale",
) -> List[Detection]:
    """
    Turn one raw output tensor into detections in original image pixels.

    No IoU filtering happens here; detections come out in record / anchor order.

    Args:
        output: (1, N, 5 + C) for PER_DETECTION or (1, 4 + C, A) for PER_ANCHOR
        original_width, original_height: size of the source image
        ratio: original / model-input scale factors from preprocessing
        score_threshold: minimum final score
        confidence_threshold: minimum objectness (PER_DETECTION only)
    """

    layout = OutputLayout(layout)
    if box_format not in BOX_FORMATS:
        raise ValueError(f"box_format must be one of {BOX_FORMATS}, got {box_format!r}")

    p = _as_float32(output)
    if p.ndim != 3:
        raise ShapeMismatchError(f"Detection output must have rank 3 (1, ., .), got shape {p.shape}")
    if p.shape[0] != 1:
        raise ShapeMismatchError(f"Batch > 1 is not supported (got shape {p.shape}). Pass one image at a time.")

    boxes, objectness, class_scores = _FIELD_ACCESSORS[layout](p)
    if boxes.shape[0] == 0:
        return []

    class_ids = np.argmax(class_scores, axis=1)
    best = class_scores[np.arange(class_scores.shape[0]), class_ids]

    keep = np.ones(boxes.shape[0], dtype=bool)
    if objectness is not None:
        objectness = _handle_score_overflow(objectness, score_overflow, "objectness")
        keep &= objectness >= confidence_threshold

    best = np.where(keep, best, 0.0)
    best = _handle_score_overflow(best, score_overflow)
    scores = best * objectness if objectness is not None else best
    keep &= np.isfinite(scores) & (scores >= 0.0) & (scores >= score_threshold)

    boxes = boxes.astype(np.float64)
    keep &= np.isfinite(boxes).all(axis=1)

    # Only surviving candidates decide the coordinate format.
    if box_format == "normalized" or (box_format == "auto" and _looks_normalized(boxes[keep])):
        input_w = original_width / ratio.x
        input_h = original_height / ratio.y
        boxes = boxes * np.array([input_w, input_h, input_w, input_h])

    cx, cy = boxes[:, 0], boxes[:, 1]
    half_w = np.maximum(boxes[:, 2], 0.0) / 2
    half_h = np.maximum(boxes[:, 3], 0.0) / 2
    x1 = np.clip((cx - half_w) * ratio.x, 0.0, float(original_width))
    y1 = np.clip((cy - half_h) * ratio.y, 0.0, float(original_height))
    x2 = np.clip((cx + half_w) * ratio.x, 0.0, float(original_width))
    y2 = np.clip((cy + half_h) * ratio.y, 0.0, float(original_height))

    detections = [
        Detection(
            x1=float(x1[i]),
            y1=float(y1[i]),
            x2=float(x2[i]),
            y2=float(y2[i]),
            score=float(scores[i]),
            class_id=int(class_ids[i]),
        )
        for i in np.flatnonzero(keep)
    ]
    logger.debug("decoded %d/%d candidates (%s)", len(detections), boxes.shape[0], layout.value)
    return detections


class DetectionPostprocessor:
    """
    Generic post-process: decode -> optional class filter -> NMS.

    Returns detections ordered by descending score.
    """

    def __init__(self, cfg: PostConfig):
        self.cfg = cfg

    def process(
        self,
        output: OutputLike,
        orig_size: Tuple[int, int],
        ratio: ResizeRatio,
    ) -> List[Detection]:
        """
        Arg:
            output: raw model output for a single image
            orig_size: (width, height) of the source image
            ratio: ResizeRatio from preprocessing
        """

        orig_w, orig_h = orig_size
        detections = decode(
            output,
            orig_w,
            orig_h,
            ratio,
            self.cfg.score_threshold,
            self.cfg.confidence_threshold,
            self.cfg.layout,
            box_format=self.cfg.box_format,
            score_overflow=self.cfg.score_overflow,
        )

        if self.cfg.class_ids is not None:
            allowed = {int(c) for c in self.cfg.class_ids}
            detections = [d for d in detections if d.class_id in allowed]

        keep = suppress(
            detections,
            self.cfg.iou_threshold,
            class_aware=self.cfg.class_aware_nms,
            max_detections=self.cfg.max_detections,
        )
        return [detections[i] for i in keep]

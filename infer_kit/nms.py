from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from .types import Detection


@dataclass(frozen=True)
class NMSConfig:
    iou_threshold: float = 0.45
    # None keeps every surviving box.
    max_detections: Optional[int] = None
    # False: one box suppresses any overlapping box whatever its class.
    class_aware: bool = False


def box_iou(a: Sequence[float], b: Sequence[float]) -> float:
    """
    IoU of two xyxy boxes; 0 when they do not overlap (or the union is empty).
    """

    ix1, iy1 = max(a[0], b[0]), max(a[1], b[1])
    ix2, iy2 = min(a[2], b[2]), min(a[3], b[3])
    if ix2 <= ix1 or iy2 <= iy1:
        return 0.0
    inter = (ix2 - ix1) * (iy2 - iy1)
    union = (a[2] - a[0]) * (a[3] - a[1]) + (b[2] - b[0]) * (b[3] - b[1]) - inter
    if union <= 0:
        return 0.0
    return float(inter / union)


def _greedy(boxes: np.ndarray, scores: np.ndarray, iou_threshold: float, max_detections: Optional[int]) -> List[int]:
    x1 = boxes[:, 0]
    y1 = boxes[:, 1]
    x2 = boxes[:, 2]
    y2 = boxes[:, 3]
    areas = (x2 - x1) * (y2 - y1)

    # Stable: equal scores keep their input order.
    order = np.argsort(-scores, kind="stable")
    keep: List[int] = []

    while order.size > 0 and (max_detections is None or len(keep) < max_detections):
        i = int(order[0])
        keep.append(i)

        rest = order[1:]
        xx1 = np.maximum(x1[i], x1[rest])
        yy1 = np.maximum(y1[i], y1[rest])
        xx2 = np.minimum(x2[i], x2[rest])
        yy2 = np.minimum(y2[i], y2[rest])

        w = np.maximum(0.0, xx2 - xx1)
        h = np.maximum(0.0, yy2 - yy1)
        inter = w * h
        union = areas[i] + areas[rest] - inter
        iou = np.where(union > 0, inter / np.maximum(union, 1e-12), 0.0)

        order = rest[iou <= iou_threshold]

    return keep


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig = NMSConfig()) -> np.ndarray:
    """
    Greedy NumPy NMS. Expects boxes shape (N,4) in xyxy and scores shape (N,).
    Returns indices of boxes to keep, highest score first.
    """

    boxes = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    scores = np.asarray(scores, dtype=np.float64).reshape(-1)
    if boxes.shape[0] != scores.shape[0]:
        raise ValueError(f"boxes ({boxes.shape[0]}) and scores ({scores.shape[0]}) length differ")
    if boxes.size == 0:
        return np.empty((0,), dtype=np.int64)

    keep = _greedy(boxes, scores, cfg.iou_threshold, cfg.max_detections)
    return np.array(keep, dtype=np.int64)


def suppress(
    detections: Sequence[Detection],
    iou_threshold: float,
    *,
    class_aware: bool = False,
    max_detections: Optional[int] = None,
) -> List[int]:
    """
    Indices into `detections` that survive NMS, ordered by descending score.

    Suppression is class-agnostic unless `class_aware` is set, in which case each
    class is suppressed on its own and the survivors are merged by score.
    """

    if not detections:
        return []

    boxes = np.array([d.as_xyxy() for d in detections], dtype=np.float64)
    scores = np.array([d.score for d in detections], dtype=np.float64)

    if not class_aware:
        return _greedy(boxes, scores, iou_threshold, max_detections)

    class_ids = np.array([d.class_id for d in detections])
    kept: List[int] = []
    for cls in np.unique(class_ids):
        idx = np.where(class_ids == cls)[0]
        keep_local = _greedy(boxes[idx], scores[idx], iou_threshold, None)
        kept.extend(int(i) for i in idx[keep_local])

    kept.sort(key=lambda i: (-scores[i], i))
    if max_detections is not None:
        kept = kept[:max_detections]
    return kept

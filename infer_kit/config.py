from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .postprocess import BOX_FORMATS, SCORE_OVERFLOW_POLICIES, OutputLayout, PostConfig
from .preprocess import SAM_NORMALIZATION, Normalization


@dataclass(frozen=True)
class ModelProfile:
    """
    Everything a detection run needs besides the model file.

    Passed into each pipeline instead of module constants, so pipelines for
    different models can run side by side.
    """

    layout: OutputLayout = OutputLayout.PER_ANCHOR
    input_width: int = 640
    input_height: int = 640
    score_threshold: float = 0.45
    confidence_threshold: float = 0.45
    iou_threshold: float = 0.45
    box_format: str = "auto"
    score_overflow: str = "rescale"
    class_aware_nms: bool = False
    max_detections: Optional[int] = None
    class_names: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "layout", OutputLayout(self.layout))
        object.__setattr__(self, "class_names", tuple(self.class_names))
        if self.input_width < 32 or self.input_height < 32:
            raise ValueError("input_width and input_height must be >= 32")
        if self.max_detections is not None and self.max_detections < 1:
            raise ValueError("max_detections must be >= 1")
        # Threshold / enum validation lives in PostConfig.
        self.post_config()

    def post_config(self) -> PostConfig:
        return PostConfig(
            layout=self.layout,
            score_threshold=self.score_threshold,
            confidence_threshold=self.confidence_threshold,
            iou_threshold=self.iou_threshold,
            box_format=self.box_format,
            score_overflow=self.score_overflow,
            class_aware_nms=self.class_aware_nms,
            max_detections=self.max_detections,
        )

    def class_name_map(self) -> Dict[int, str]:
        return dict(enumerate(self.class_names))


@dataclass(frozen=True)
class SegmentationProfile:
    input_size: int = 1024
    normalization: Normalization = field(default_factory=lambda: SAM_NORMALIZATION)
    # "masks" is already at original resolution; "low_res_masks" is 256x256.
    mask_output: str = "masks"
    multimask: bool = False

    def __post_init__(self) -> None:
        if self.input_size < 32:
            raise ValueError("input_size must be >= 32")
        if self.mask_output not in ("masks", "low_res_masks"):
            raise ValueError("mask_output must be 'masks' or 'low_res_masks'")


YOLOV5_PROFILE = ModelProfile(layout=OutputLayout.PER_DETECTION)
YOLOV11_PROFILE = ModelProfile(layout=OutputLayout.PER_ANCHOR)
SAM_PROFILE = SegmentationProfile()

BUILTIN_PROFILES: Dict[str, ModelProfile] = {
    "yolov5": YOLOV5_PROFILE,
    "yolov8": YOLOV11_PROFILE,
    "yolov11": YOLOV11_PROFILE,
}


def _require_number(payload: Dict[str, Any], key: str) -> float:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _require_int(payload: Dict[str, Any], key: str) -> int:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _require_choice(payload: Dict[str, Any], key: str, choices: Tuple[str, ...]) -> str:
    value = payload[key]
    if not isinstance(value, str) or value not in choices:
        raise ValueError(f"{key} must be one of {list(choices)}")
    return value


def load_model_profile(path: Path) -> ModelProfile:
    """
    Read a JSON model profile. Missing keys fall back to the `base` built-in profile
    (default "yolov11"):

        {"base": "yolov5", "input_width": 640, "score_threshold": 0.3, "class_names": ["person"]}
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Model profile not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid model profile JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Model profile must be a JSON object")

    allowed = {
        "base",
        "layout",
        "input_width",
        "input_height",
        "score_threshold",
        "confidence_threshold",
        "iou_threshold",
        "box_format",
        "score_overflow",
        "class_aware_nms",
        "max_detections",
        "class_names",
    }
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown model profile keys: {unknown}")

    base_name = payload.get("base", "yolov11")
    if base_name not in BUILTIN_PROFILES:
        raise ValueError(f"base must be one of {sorted(BUILTIN_PROFILES)}")
    base = BUILTIN_PROFILES[base_name]

    kwargs: Dict[str, Any] = {}
    if "layout" in payload:
        kwargs["layout"] = OutputLayout(_require_choice(payload, "layout", tuple(l.value for l in OutputLayout)))
    for key in ("input_width", "input_height"):
        if key in payload:
            kwargs[key] = _require_int(payload, key)
    for key in ("score_threshold", "confidence_threshold", "iou_threshold"):
        if key in payload:
            kwargs[key] = _require_number(payload, key)
    if "box_format" in payload:
        kwargs["box_format"] = _require_choice(payload, "box_format", BOX_FORMATS)
    if "score_overflow" in payload:
        kwargs["score_overflow"] = _require_choice(payload, "score_overflow", SCORE_OVERFLOW_POLICIES)
    if "class_aware_nms" in payload:
        if not isinstance(payload["class_aware_nms"], bool):
            raise ValueError("class_aware_nms must be a boolean")
        kwargs["class_aware_nms"] = payload["class_aware_nms"]
    if payload.get("max_detections") is not None:
        kwargs["max_detections"] = _require_int(payload, "max_detections")
    if "class_names" in payload:
        names = payload["class_names"]
        if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
            raise ValueError("class_names must be a list of strings")
        kwargs["class_names"] = tuple(names)

    return replace(base, **kwargs)

"""
Pre/post-processing around ONNX detection and promptable segmentation models.

Turns images into model-ready tensors and raw output tensors back into detections
or masks in original image pixels. Runtime-agnostic: the core works on NumPy arrays,
ONNX Runtime is only needed by the optional backend.
"""

from .errors import EngineInvocationError, ImageDecodeError, InferKitError, ModelNotFoundError, ShapeMismatchError
from .half import encode_float16, float16_bits_to_float32, float32_to_float16_bits, to_full, to_half
from .tensor import Tensor
from .types import Detection, Mask, PromptPoint, ResizeRatio
from .preprocess import Normalization, PreprocessResult, ResizeMode, SAM_NORMALIZATION, UNIT_SCALE, load_image, preprocess
from .postprocess import DetectionPostprocessor, OutputLayout, PostConfig, decode
from .nms import NMSConfig, box_iou, nms, suppress
from .sam import best_mask_index, build_decoder_feeds, decode_mask, highlight
from .config import (
    SAM_PROFILE,
    YOLOV5_PROFILE,
    YOLOV11_PROFILE,
    ModelProfile,
    SegmentationProfile,
    load_model_profile,
)
from .runtime import (
    DetectionPipeline,
    ImageEmbedding,
    MaskPrediction,
    SegmentationPipeline,
    find_project_root,
    load_detection_pipeline,
    load_segmentation_pipeline,
    resolve_model_path,
)
from .metadata import load_class_names
from .visualize import draw_detections, overlay_mask, overlay_path, write_overlay

__version__ = "0.1.0"

__all__ = [
    "EngineInvocationError",
    "ImageDecodeError",
    "InferKitError",
    "ModelNotFoundError",
    "ShapeMismatchError",
    "encode_float16",
    "float16_bits_to_float32",
    "float32_to_float16_bits",
    "to_full",
    "to_half",
    "Tensor",
    "Detection",
    "Mask",
    "PromptPoint",
    "ResizeRatio",
    "Normalization",
    "PreprocessResult",
    "ResizeMode",
    "SAM_NORMALIZATION",
    "UNIT_SCALE",
    "load_image",
    "preprocess",
    "DetectionPostprocessor",
    "OutputLayout",
    "PostConfig",
    "decode",
    "NMSConfig",
    "box_iou",
    "nms",
    "suppress",
    "best_mask_index",
    "build_decoder_feeds",
    "decode_mask",
    "highlight",
    "SAM_PROFILE",
    "YOLOV5_PROFILE",
    "YOLOV11_PROFILE",
    "ModelProfile",
    "SegmentationProfile",
    "load_model_profile",
    "DetectionPipeline",
    "ImageEmbedding",
    "MaskPrediction",
    "SegmentationPipeline",
    "find_project_root",
    "load_detection_pipeline",
    "load_segmentation_pipeline",
    "resolve_model_path",
    "load_class_names",
    "draw_detections",
    "overlay_mask",
    "overlay_path",
    "write_overlay",
]

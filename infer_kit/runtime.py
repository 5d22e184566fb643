from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Union

import numpy as np

from .config import SAM_PROFILE, YOLOV11_PROFILE, ModelProfile, SegmentationProfile
from .errors import ModelNotFoundError, ShapeMismatchError
from .postprocess import DetectionPostprocessor
from .preprocess import ImageSource, PreprocessResult, ResizeMode, preprocess
from .sam import EMBEDDING_SHAPE, MULTIMASK_INPUT, best_mask_index, build_decoder_feeds, decode_mask
from .types import Detection, Mask, PromptPoint, ResizeRatio


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
InferFn = Callable[[np.ndarray], np.ndarray]
RunFn = Callable[[Dict[str, np.ndarray]], Dict[str, np.ndarray]]

PROJECT_MARKERS = ("pyproject.toml", "setup.py", ".git")


def find_project_root(start: Optional[PathLike] = None) -> Path:
    """Nearest ancestor of `start` (default: cwd) that holds a project marker; `start` itself if none does."""
    here = Path(start if start is not None else Path.cwd()).resolve()
    if here.is_file():
        here = here.parent
    for candidate in (here, *here.parents):
        if any((candidate / marker).exists() for marker in PROJECT_MARKERS):
            return candidate
    return here


def resolve_model_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Locate a model file. Relative paths such as `models/yolo11n.onnx` are taken from
    `root`, or from the project root when root is "auto"/None, so scripts work from any
    working directory. Raises ModelNotFoundError before any engine is loaded.
    """

    model = Path(path)
    if not model.is_absolute():
        base = find_project_root() if root in ("auto", None) else Path(root).resolve()
        model = (base / model).resolve()
    if not model.is_file():
        raise ModelNotFoundError(f"Model not found at: {model}")
    return model


class DetectionPipeline:
    """
    Plug-and-play pipeline: preprocess (stretch) -> inference -> decode -> NMS.

    Takes a path, encoded bytes, or a BGR array and returns detections in original
    image coordinates, highest score first. Engine errors propagate unchanged.
    """

    def __init__(
        self,
        infer_fn: InferFn,
        profile: ModelProfile = YOLOV11_PROFILE,
        *,
        input_dtype: str = "float32",
        backend: Optional[object] = None,
    ):
        self._infer_fn = infer_fn
        self.profile = profile
        self.input_dtype = input_dtype
        self.backend = backend
        self.post = DetectionPostprocessor(profile.post_config())

    def preprocess(self, image: ImageSource) -> PreprocessResult:
        return preprocess(
            image,
            self.profile.input_width,
            self.profile.input_height,
            mode=ResizeMode.STRETCH,
            dtype=self.input_dtype,
        )

    def __call__(self, image: ImageSource) -> List[Detection]:
        prep = self.preprocess(image)
        output = self._infer_fn(prep.blob)
        detections = self.post.process(output, orig_size=prep.orig_size, ratio=prep.ratio)
        logger.debug("%d detection(s) after NMS", len(detections))
        return detections


@dataclass(frozen=True)
class ImageEmbedding:
    """Encoder output for one image plus what the decoder needs to map prompts."""

    embedding: np.ndarray
    orig_size: tuple  # (width, height)
    ratio: ResizeRatio


@dataclass(frozen=True)
class MaskPrediction:
    mask: Mask
    index: int
    iou_predictions: np.ndarray
    # (1, 1, 256, 256) logits of the chosen mask, usable as the next prior mask.
    low_res_logits: Optional[np.ndarray] = None


class SegmentationPipeline:
    """
    Promptable segmentation: encode an image once, then decode masks for any number
    of point prompts against that embedding.
    """

    def __init__(
        self,
        encoder_fn: RunFn,
        decoder_fn: RunFn,
        profile: SegmentationProfile = SAM_PROFILE,
        *,
        decoder_accepts_multimask: bool = True,
    ):
        self._encoder_fn = encoder_fn
        self._decoder_fn = decoder_fn
        self.profile = profile
        self.decoder_accepts_multimask = decoder_accepts_multimask

    def embed(self, image: ImageSource) -> ImageEmbedding:
        size = self.profile.input_size
        prep = preprocess(
            image,
            size,
            size,
            mode=ResizeMode.PAD_SQUARE,
            normalization=self.profile.normalization,
        )
        outputs = self._encoder_fn({"input_image": prep.blob})
        if "image_embeddings" not in outputs:
            raise ShapeMismatchError(f"Encoder returned no 'image_embeddings' (got {sorted(outputs)})")
        embedding = np.asarray(outputs["image_embeddings"], dtype=np.float32)
        if embedding.shape != EMBEDDING_SHAPE:
            raise ShapeMismatchError(f"image_embeddings must have shape {EMBEDDING_SHAPE}, got {embedding.shape}")
        return ImageEmbedding(embedding=embedding, orig_size=prep.orig_size, ratio=prep.ratio)

    def predict(
        self,
        embedded: ImageEmbedding,
        points: Sequence[PromptPoint],
        *,
        prior_mask: Optional[np.ndarray] = None,
        mask_index: Optional[int] = None,
    ) -> MaskPrediction:
        """
        Decode one mask for `points`. With `mask_index=None` the candidate with the best
        predicted IoU is used.
        """

        multimask = self.profile.multimask if self.decoder_accepts_multimask else None
        feeds = build_decoder_feeds(
            embedded.embedding,
            points,
            embedded.orig_size,
            embedded.ratio,
            prior_mask=prior_mask,
            multimask=multimask,
        )
        outputs = self._decoder_fn(feeds)
        for name in (self.profile.mask_output, "iou_predictions"):
            if name not in outputs:
                raise ShapeMismatchError(f"Decoder returned no {name!r} (got {sorted(outputs)})")

        ious = np.asarray(outputs["iou_predictions"], dtype=np.float32)
        index = best_mask_index(ious) if mask_index is None else mask_index
        orig_w, orig_h = embedded.orig_size
        mask = decode_mask(outputs[self.profile.mask_output], orig_w, orig_h, index=index)

        low_res = outputs.get("low_res_masks")
        if low_res is not None:
            low_res = np.asarray(low_res, dtype=np.float32)
            low_res = low_res[:, index : index + 1] if low_res.ndim == 4 and low_res.shape[1] > index else None
        return MaskPrediction(mask=mask, index=index, iou_predictions=ious, low_res_logits=low_res)

    def __call__(self, image: ImageSource, points: Sequence[PromptPoint]) -> MaskPrediction:
        return self.predict(self.embed(image), points)


def load_detection_pipeline(
    model_path: PathLike,
    profile: ModelProfile = YOLOV11_PROFILE,
    *,
    root: Optional[PathLike] = "auto",
    onnx_providers: Optional[Sequence[str]] = None,
    onnx_input_name: Optional[str] = None,
    onnx_output_name: Optional[str] = None,
) -> DetectionPipeline:
    """
    Create a detection pipeline for an ONNX model on disk.

        pipe = load_detection_pipeline("models/yolov5s.onnx", YOLOV5_PROFILE)

    The blob dtype (float32 / float16) follows the model's declared input type.
    """

    from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

    resolved = resolve_model_path(model_path, root=root)
    backend = OnnxRuntimeBackend(
        resolved,
        OnnxRuntimeBackendConfig(
            providers=onnx_providers,
            input_name=onnx_input_name,
            output_name=onnx_output_name,
        ),
    )
    return DetectionPipeline(backend.infer, profile, input_dtype=backend.input_dtype, backend=backend)


def load_segmentation_pipeline(
    encoder_path: PathLike,
    decoder_path: PathLike,
    profile: SegmentationProfile = SAM_PROFILE,
    *,
    root: Optional[PathLike] = "auto",
    onnx_providers: Optional[Sequence[str]] = None,
) -> SegmentationPipeline:
    from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

    cfg = OnnxRuntimeBackendConfig(providers=onnx_providers)
    encoder = OnnxRuntimeBackend(resolve_model_path(encoder_path, root=root), cfg)
    decoder = OnnxRuntimeBackend(resolve_model_path(decoder_path, root=root), cfg)
    return SegmentationPipeline(
        lambda feeds: encoder.run(feeds, ["image_embeddings"]),
        decoder.run,
        profile,
        decoder_accepts_multimask=MULTIMASK_INPUT in decoder.input_names,
    )

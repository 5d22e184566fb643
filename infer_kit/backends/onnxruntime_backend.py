from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import numpy as np

from ..errors import EngineInvocationError, ModelNotFoundError


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Tried in this order when no providers are configured; CPU is always last.
PREFERRED_PROVIDERS = ("CUDAExecutionProvider", "DmlExecutionProvider")


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: ORT execution providers (e.g., ["CUDAExecutionProvider", "CPUExecutionProvider"]);
      None picks a GPU provider when the installed build has one, then CPU
    - input_name/output_name: override auto-selected I/O names if needed
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None
    output_name: Optional[str] = None


def default_providers(available: Sequence[str]) -> List[str]:
    chosen = [p for p in PREFERRED_PROVIDERS if p in available]
    chosen.append("CPUExecutionProvider")
    return chosen


class OnnxRuntimeBackend:
    """
    Thin ONNX Runtime session wrapper.

    `infer` runs single-input / single-output detection models; `run` takes a dict of
    named feeds (SAM encoder / decoder). Engine failures surface as EngineInvocationError
    with the ORT exception chained.
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e

        self._ort = ort
        self.model_path = Path(model_path)
        if not self.model_path.is_file():
            raise ModelNotFoundError(f"Model not found at: {self.model_path}")

        sess_opts = ort.SessionOptions()
        sess_opts.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        sess_opts.execution_mode = ort.ExecutionMode.ORT_SEQUENTIAL
        sess_opts.enable_cpu_mem_arena = True

        if cfg.providers is not None:
            providers = list(cfg.providers)
        else:
            providers = default_providers(ort.get_available_providers())

        try:
            self.session = ort.InferenceSession(str(self.model_path), sess_options=sess_opts, providers=providers)
        except Exception as e:
            raise EngineInvocationError(f"Failed to load model {self.model_path}: {e}") from e

        self.input_names = [i.name for i in self.session.get_inputs()]
        self.output_names = [o.name for o in self.session.get_outputs()]
        self.input_name = cfg.input_name or self.input_names[0]
        # If output_name not provided, pick first output.
        self.output_name = cfg.output_name or self.output_names[0]
        logger.info(
            "loaded %s (inputs=%s, outputs=%s, providers=%s)",
            self.model_path.name, self.input_names, self.output_names, self.providers_in_use,
        )

    @property
    def providers_in_use(self) -> Sequence[str]:
        # ORT returns providers in priority order for this session.
        return tuple(self.session.get_providers())

    @property
    def input_dtype(self) -> str:
        """"float16" or "float32", from the primary input's declared type."""
        for meta in self.session.get_inputs():
            if meta.name == self.input_name:
                return "float16" if "float16" in str(meta.type) else "float32"
        return "float32"

    def run(self, feeds: Dict[str, np.ndarray], output_names: Optional[Sequence[str]] = None) -> Dict[str, np.ndarray]:
        names = list(output_names) if output_names is not None else list(self.output_names)
        try:
            outputs = self.session.run(names, feeds)
        except Exception as e:
            raise EngineInvocationError(f"Inference failed for {self.model_path.name}: {e}") from e
        return dict(zip(names, outputs))

    def infer(self, blob: np.ndarray) -> np.ndarray:
        return self.run({self.input_name: blob}, [self.output_name])[self.output_name]

"""ONNX inference engine adapter.

Owns a single loaded model handle. ``load`` is idempotent and serialized;
``infer`` is rejected until a load has fully completed.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

import numpy as np

from juktoborno.errors import ModelLoadError, NotLoadedError, ShapeMismatchError

if TYPE_CHECKING:
    from numpy.typing import NDArray
    from onnxruntime import InferenceSession

    from juktoborno.ml.model_manager import ModelSpec, OnnxModelManager

logger = logging.getLogger(__name__)

ProgressSink = Callable[[float], None]


class ProgressReporter:
    """Forwards progress to a sink, mapped into ``[start, end]`` and never decreasing."""

    def __init__(self, sink: ProgressSink | None, start: float = 0.0, end: float = 1.0) -> None:
        self._sink = sink
        self._start = start
        self._end = end
        self._last = -1.0

    def __call__(self, fraction: float) -> None:
        fraction = min(max(fraction, 0.0), 1.0)
        value = self._start + (self._end - self._start) * fraction
        if value < self._last:
            return
        self._last = value
        if self._sink is not None:
            self._sink(value)


def _static_dim(dim: object) -> int | None:
    # Symbolic dims such as "batch" or None are unconstrained.
    return dim if isinstance(dim, int) and dim > 0 else None


class OnnxInferenceEngine:
    """Runs a single ONNX classification model."""

    def __init__(self, manager: OnnxModelManager, spec: ModelSpec) -> None:
        self._manager = manager
        self._spec = spec
        self._load_lock = threading.Lock()
        self._session: InferenceSession | None = None
        self._input_name: str = ""
        self._input_shape: tuple[int | None, int | None, int | None] = (None, None, None)
        self._num_classes: int | None = None

    @property
    def spec(self) -> ModelSpec:
        return self._spec

    @property
    def is_loaded(self) -> bool:
        return self._session is not None

    @property
    def input_shape(self) -> tuple[int | None, int | None, int | None]:
        """Declared ``(channels, height, width)``; None where the model leaves a dim dynamic."""
        return self._input_shape

    @property
    def num_classes(self) -> int | None:
        return self._num_classes

    def load(self, progress: ProgressSink | None = None) -> None:
        """Fetch the model artifact and open an inference session.

        A second call after a successful load returns immediately. Progress
        is reported at artifact fetch, session creation, and completion.

        Raises:
            ModelLoadError: If the artifact cannot be fetched or parsed.
        """
        report = ProgressReporter(progress)
        with self._load_lock:
            if self._session is not None:
                report(1.0)
                return

            report(0.0)
            logger.info("Loading model %s", self._spec.name)
            try:
                model_path = self._manager.ensure_model(self._spec)
                report(0.3)
                session = self._manager.create_session(model_path)
            except Exception as exc:
                raise ModelLoadError(f"Failed to load model '{self._spec.name}': {exc}") from exc
            report(0.7)

            model_input = session.get_inputs()[0]
            dims = list(model_input.shape or [])
            if len(dims) != 4:
                raise ModelLoadError(f"Model '{self._spec.name}' declares unsupported input shape {dims}")
            self._input_name = model_input.name
            self._input_shape = (_static_dim(dims[1]), _static_dim(dims[2]), _static_dim(dims[3]))

            output_dims = list(session.get_outputs()[0].shape or [])
            self._num_classes = _static_dim(output_dims[-1]) if output_dims else None

            self._session = session
            logger.info(
                "Model %s ready (input=%s shape=%s classes=%s)",
                self._spec.name,
                self._input_name,
                self._input_shape,
                self._num_classes,
            )
        report(1.0)

    def infer(self, tensor: NDArray[np.float32]) -> NDArray[np.float64]:
        """Run the model on a ``(C, H, W)`` tensor and return one raw score per class.

        Raises:
            NotLoadedError: If no load has completed.
            ShapeMismatchError: If the tensor shape disagrees with the model input.
        """
        session = self._session
        if session is None:
            raise NotLoadedError("Model not loaded. Call load() first.")

        if tensor.ndim != 3:
            raise ShapeMismatchError(f"Expected a (C, H, W) tensor, got shape {tensor.shape}")
        for actual, declared in zip(tensor.shape, self._input_shape, strict=True):
            if declared is not None and actual != declared:
                raise ShapeMismatchError(
                    f"Tensor shape {tuple(tensor.shape)} does not match model input {self._input_shape}"
                )

        batch = np.asarray(tensor, dtype=np.float32)[np.newaxis, ...]
        outputs = session.run(None, {self._input_name: batch})
        return np.asarray(outputs[0], dtype=np.float64).reshape(-1)

    def unload(self) -> None:
        """Drop the session; a later ``load`` starts from scratch."""
        with self._load_lock:
            if self._session is not None:
                logger.info("Unloading model %s", self._spec.name)
            self._session = None
            self._num_classes = None

"""Classification pipeline: decode -> normalize -> infer -> interpret -> rank.

:class:`JuktobornoClassifier` is the single owner of the loaded model and
the label table. Create one per process, call :meth:`load` once, then share
it across requests; :meth:`classify` writes no shared state.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from PIL import Image

from juktoborno.errors import InvalidArgumentError, LoadError, NotLoadedError
from juktoborno.ml.engine import OnnxInferenceEngine, ProgressReporter
from juktoborno.ml.labels import LabelTable
from juktoborno.ml.model_manager import OnnxModelManager, resolve_model_spec
from juktoborno.ml.preprocessing import decode_image, normalize
from juktoborno.ml.ranking import ClassificationResult, rank
from juktoborno.ml.scores import interpret

if TYPE_CHECKING:
    from juktoborno.config import Settings
    from juktoborno.ml.engine import ProgressSink
    from juktoborno.ml.model_manager import ModelSpec

logger = logging.getLogger(__name__)

# Share of overall load progress spent on the model; the label table takes the rest.
_MODEL_PROGRESS_SHARE: float = 0.8


class JuktobornoClassifier:
    """Owns the inference engine and label table for one model build."""

    def __init__(
        self,
        settings: Settings,
        *,
        manager: OnnxModelManager | None = None,
        engine: OnnxInferenceEngine | None = None,
        labels: LabelTable | None = None,
    ) -> None:
        self._settings = settings
        self._spec: ModelSpec = engine.spec if engine is not None else resolve_model_spec(settings)
        self._manager = manager if manager is not None else OnnxModelManager(settings)
        self._engine = engine if engine is not None else OnnxInferenceEngine(self._manager, self._spec)
        self._labels = labels if labels is not None else LabelTable()
        self._progress: float = 0.0

    @property
    def spec(self) -> ModelSpec:
        return self._spec

    @property
    def labels(self) -> LabelTable:
        return self._labels

    @property
    def is_loaded(self) -> bool:
        return self._engine.is_loaded and self._labels.is_loaded

    @property
    def load_progress(self) -> float:
        """Most recent overall load progress in [0, 1]."""
        return self._progress

    @property
    def num_classes(self) -> int | None:
        return self._engine.num_classes

    def load(self, progress: ProgressSink | None = None) -> None:
        """Load the model, then the label mappings. Idempotent.

        Raises:
            ModelLoadError: If the model artifact cannot be loaded.
            LoadError: If the label mappings cannot be loaded.
        """

        def sink(value: float) -> None:
            self._progress = max(self._progress, value)
            if progress is not None:
                progress(value)

        self._engine.load(ProgressReporter(sink, 0.0, _MODEL_PROGRESS_SHARE))

        if not self._labels.is_loaded:
            try:
                mappings_path = self._manager.ensure_mappings(self._spec)
            except Exception as exc:
                raise LoadError(f"Could not fetch label mappings for '{self._spec.name}': {exc}") from exc
            self._labels.load(mappings_path)

        sink(1.0)
        logger.info("Classifier ready (%s, %d labels)", self._spec.name, len(self._labels))

    def classify(self, image: bytes | Image.Image, top_k: int) -> ClassificationResult:
        """Classify one image and return the top ``top_k`` predictions.

        Raises:
            NotLoadedError: If :meth:`load` has not completed.
            DecodeError: If the image cannot be decoded.
            ShapeMismatchError: If the configured input shape disagrees with the model.
            InvalidArgumentError: If ``top_k`` is not positive.
        """
        if not self.is_loaded:
            raise NotLoadedError("Classifier not loaded. Call load() first.")
        if top_k <= 0:
            raise InvalidArgumentError(f"top_k must be positive, got {top_k}")

        if isinstance(image, Image.Image):
            source = image
        else:
            source = decode_image(image, max_pixels=self._settings.max_image_pixels)

        tensor = normalize(source, self._spec.input_size, self._spec.input_channels)
        raw_scores = self._engine.infer(tensor)
        scores = interpret(raw_scores)
        result = rank(scores, self._labels, top_k)

        logger.debug(
            "Classified image as class %d (%.4f)",
            result.primary.class_index,
            result.primary.confidence,
        )
        return result

    def shutdown(self) -> None:
        """Release the model session. The label table is kept."""
        self._engine.unload()
        self._progress = 0.0

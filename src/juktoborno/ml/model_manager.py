"""Model manager: resolve, download, and open ONNX model artifacts.

Handles the registry of known juktoborno model builds, downloading the
model and its label mappings from HuggingFace (or using local overrides),
and creating ONNX InferenceSessions configured for the selected device.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

if TYPE_CHECKING:
    from juktoborno.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Model registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelSpec:
    """Static metadata for a single trained model build.

    ``input_size`` and ``input_channels`` are the input contract the model
    was trained with; the normalizer is configured from them.
    """

    name: str
    repo_id: str
    filename: str
    mappings_filename: str
    input_size: int
    input_channels: int
    license: str
    model_path: str | None = None
    mappings_path: str | None = None


MODEL_REGISTRY: dict[str, ModelSpec] = {
    "efficientnet_b0_gray256": ModelSpec(
        name="efficientnet_b0_gray256",
        repo_id="juktoborno/juktoborno-models",
        filename="efficientnet_b0_best.onnx",
        mappings_filename="mappings.csv",
        input_size=256,
        input_channels=1,
        license="MIT",
    ),
    "efficientnet_b0_rgb224": ModelSpec(
        name="efficientnet_b0_rgb224",
        repo_id="juktoborno/juktoborno-models",
        filename="efficientnet_b0_rgb224.onnx",
        mappings_filename="mappings.csv",
        input_size=224,
        input_channels=3,
        license="MIT",
    ),
    "cnn_gray128": ModelSpec(
        name="cnn_gray128",
        repo_id="juktoborno/juktoborno-models",
        filename="juktoborno_cnn_128.onnx",
        mappings_filename="mappings.csv",
        input_size=128,
        input_channels=1,
        license="MIT",
    ),
}


def resolve_model_spec(settings: Settings) -> ModelSpec:
    """Look up the configured model build and apply local path and shape overrides."""
    try:
        spec = MODEL_REGISTRY[settings.model_name]
    except KeyError:
        raise KeyError(f"Unknown model: {settings.model_name}") from None

    overrides: dict[str, object] = {}
    if settings.model_path is not None:
        overrides["model_path"] = settings.model_path
    if settings.mappings_path is not None:
        overrides["mappings_path"] = settings.mappings_path
    if settings.input_size is not None:
        overrides["input_size"] = settings.input_size
    if settings.input_channels is not None:
        overrides["input_channels"] = settings.input_channels
    if not overrides:
        return spec
    return dataclasses.replace(spec, **overrides)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


class OnnxModelManager:
    """Resolves model artifacts and creates ONNX inference sessions."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)

        self._lock = threading.Lock()
        self._paths: dict[str, Path] = {}

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    def ensure_model(self, spec: ModelSpec) -> Path:
        """Return a local path to the model artifact, downloading it if needed."""
        return self._ensure_file(spec, spec.filename, spec.model_path)

    def ensure_mappings(self, spec: ModelSpec) -> Path:
        """Return a local path to the label mappings CSV, downloading it if needed."""
        return self._ensure_file(spec, spec.mappings_filename, spec.mappings_path)

    def create_session(self, model_path: Path) -> InferenceSession:
        """Open an InferenceSession for a local model file."""
        session = InferenceSession(
            str(model_path),
            sess_options=self._session_options,
            providers=self._providers,
        )
        logger.info("Created session for %s (providers=%s)", model_path, session.get_providers())
        return session

    # -- Internal -----------------------------------------------------------

    def _ensure_file(self, spec: ModelSpec, filename: str, local_override: str | None) -> Path:
        if local_override is not None:
            path = Path(local_override)
            if not path.is_file():
                raise FileNotFoundError(f"Configured file does not exist: {path}")
            return path

        key = f"{spec.repo_id}/{filename}"
        with self._lock:
            cached = self._paths.get(key)
            if cached is not None and cached.exists():
                return cached

        self._models_dir.mkdir(parents=True, exist_ok=True)
        downloaded = Path(
            hf_hub_download(
                repo_id=spec.repo_id,
                filename=filename,
                local_dir=str(self._models_dir),
            )
        )
        with self._lock:
            self._paths[key] = downloaded
        logger.info("Downloaded %s to %s", key, downloaded)
        return downloaded

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "gpu_mem_limit": self._settings.gpu_mem_limit,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
        opts.enable_mem_pattern = True
        opts.enable_mem_reuse = True

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts

"""Tests for the ONNX inference engine adapter."""

from __future__ import annotations

import threading
from pathlib import Path
from unittest.mock import MagicMock

import numpy as np
import pytest
from conftest import make_session

from juktoborno.errors import ModelLoadError, NotLoadedError, ShapeMismatchError
from juktoborno.ml.engine import OnnxInferenceEngine, ProgressReporter
from juktoborno.ml.model_manager import MODEL_REGISTRY

SPEC = MODEL_REGISTRY["efficientnet_b0_gray256"]


def _make_engine(session: MagicMock | None = None) -> tuple[OnnxInferenceEngine, MagicMock]:
    manager = MagicMock()
    manager.ensure_model.return_value = Path("/tmp/model.onnx")
    manager.create_session.return_value = session if session is not None else make_session([0.1, 0.2, 0.7])
    return OnnxInferenceEngine(manager, SPEC), manager


def _tensor(channels: int = 1, size: int = 256) -> np.ndarray:
    return np.zeros((channels, size, size), dtype=np.float32)


class TestProgressReporter:
    def test_maps_into_range(self) -> None:
        seen: list[float] = []
        report = ProgressReporter(seen.append, 0.0, 0.8)
        report(0.5)
        report(1.0)
        assert seen == pytest.approx([0.4, 0.8])

    def test_never_decreases(self) -> None:
        seen: list[float] = []
        report = ProgressReporter(seen.append)
        report(0.7)
        report(0.3)
        report(1.0)
        assert seen == [0.7, 1.0]

    def test_none_sink_is_allowed(self) -> None:
        ProgressReporter(None)(0.5)


class TestLoad:
    def test_load_reports_monotonic_progress_ending_at_one(self) -> None:
        engine, _ = _make_engine()
        seen: list[float] = []
        engine.load(seen.append)

        assert seen == sorted(seen)
        assert seen[-1] == 1.0
        assert all(0.0 <= v <= 1.0 for v in seen)

    def test_load_reads_declared_shapes(self) -> None:
        engine, _ = _make_engine(make_session([0.0] * 10, input_shape=[1, 3, 224, 224]))
        engine.load()

        assert engine.is_loaded
        assert engine.input_shape == (3, 224, 224)
        assert engine.num_classes == 10

    def test_symbolic_dims_are_unconstrained(self) -> None:
        engine, _ = _make_engine(make_session([0.5, 0.5], input_shape=["N", 1, "H", "W"]))
        engine.load()
        assert engine.input_shape == (1, None, None)

    def test_load_twice_initializes_once(self) -> None:
        engine, manager = _make_engine()
        engine.load()
        seen: list[float] = []
        engine.load(seen.append)

        manager.ensure_model.assert_called_once()
        manager.create_session.assert_called_once()
        assert seen == [1.0]

    def test_concurrent_loads_initialize_once(self) -> None:
        engine, manager = _make_engine()
        threads = [threading.Thread(target=engine.load) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        manager.create_session.assert_called_once()

    def test_missing_artifact_raises_model_load_error(self) -> None:
        engine, manager = _make_engine()
        manager.ensure_model.side_effect = FileNotFoundError("no such file")

        with pytest.raises(ModelLoadError, match="no such file"):
            engine.load()
        assert not engine.is_loaded

    def test_corrupt_artifact_raises_model_load_error(self) -> None:
        engine, manager = _make_engine()
        manager.create_session.side_effect = RuntimeError("INVALID_PROTOBUF")

        with pytest.raises(ModelLoadError):
            engine.load()
        assert not engine.is_loaded

    def test_unsupported_input_rank_raises(self) -> None:
        engine, _ = _make_engine(make_session([0.5, 0.5], input_shape=[1, 256]))
        with pytest.raises(ModelLoadError, match="input shape"):
            engine.load()

    def test_failed_load_can_be_retried(self) -> None:
        engine, manager = _make_engine()
        manager.ensure_model.side_effect = [OSError("network down"), Path("/tmp/model.onnx")]

        with pytest.raises(ModelLoadError):
            engine.load()
        engine.load()
        assert engine.is_loaded


class TestInfer:
    def test_infer_before_load_raises(self) -> None:
        engine, _ = _make_engine()
        with pytest.raises(NotLoadedError):
            engine.infer(_tensor())

    def test_infer_returns_flat_scores(self) -> None:
        session = make_session([0.1, 0.2, 0.7])
        engine, _ = _make_engine(session)
        engine.load()

        scores = engine.infer(_tensor())

        assert scores.shape == (3,)
        np.testing.assert_allclose(scores, [0.1, 0.2, 0.7], atol=1e-6)
        feeds = session.run.call_args.args[1]
        assert feeds["input"].shape == (1, 1, 256, 256)
        assert feeds["input"].dtype == np.float32

    def test_channel_mismatch_raises(self) -> None:
        engine, _ = _make_engine()
        engine.load()
        with pytest.raises(ShapeMismatchError):
            engine.infer(_tensor(channels=3))

    def test_size_mismatch_raises(self) -> None:
        engine, _ = _make_engine()
        engine.load()
        with pytest.raises(ShapeMismatchError):
            engine.infer(_tensor(size=128))

    def test_wrong_rank_raises(self) -> None:
        engine, _ = _make_engine()
        engine.load()
        with pytest.raises(ShapeMismatchError):
            engine.infer(np.zeros((256, 256), dtype=np.float32))

    def test_unload_rejects_further_inference(self) -> None:
        engine, _ = _make_engine()
        engine.load()
        engine.unload()
        assert not engine.is_loaded
        with pytest.raises(NotLoadedError):
            engine.infer(_tensor())

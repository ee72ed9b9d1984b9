"""Shared pytest fixtures for juktoborno tests."""

from __future__ import annotations

import io
from typing import TYPE_CHECKING
from unittest.mock import MagicMock

import numpy as np
import pytest
from PIL import Image

from juktoborno.config import Settings
from juktoborno.ml.labels import LabelTable

if TYPE_CHECKING:
    from pathlib import Path

MAPPINGS_CSV = (
    "class_number,typed_juktoborno,described,folder\n"
    "0,ক্ক,ক + ক,folder_001\n"
    "1,ক্ত,ক + ত,folder_002\n"
    "2,ক্ষ,ক + ষ,folder_003\n"
    "3,ঙ্ক,ঙ + ক,folder_004\n"
)


def make_label_table(text: str = MAPPINGS_CSV) -> LabelTable:
    """LabelTable loaded from in-memory CSV text."""
    table = LabelTable()
    table.load(io.StringIO(text))
    return table


def make_settings(**overrides: object) -> Settings:
    defaults: dict[str, object] = {
        "device": "cpu",
        "model_name": "efficientnet_b0_gray256",
        "models_dir": "/tmp/juktoborno_test_models",
        "intra_op_threads": 0,
        "inter_op_threads": 1,
        "gpu_mem_limit": 2_147_483_648,
        "max_concurrent": 2,
    }
    defaults.update(overrides)
    return Settings(**defaults)  # type: ignore[arg-type]


def make_session(
    scores: list[float],
    input_shape: list[object] | None = None,
) -> MagicMock:
    """Fake InferenceSession returning ``scores`` for every run."""
    session = MagicMock()
    model_input = MagicMock()
    model_input.name = "input"
    model_input.shape = input_shape if input_shape is not None else ["batch", 1, 256, 256]
    model_output = MagicMock()
    model_output.shape = ["batch", len(scores)]
    session.get_inputs.return_value = [model_input]
    session.get_outputs.return_value = [model_output]
    session.get_providers.return_value = ["CPUExecutionProvider"]
    session.run.return_value = [np.array([scores], dtype=np.float32)]
    return session


def image_bytes(
    color: tuple[int, int, int] = (255, 255, 255),
    size: tuple[int, int] = (64, 48),
    fmt: str = "PNG",
) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color=color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture()
def mappings_file(tmp_path: Path) -> Path:
    path = tmp_path / "mappings.csv"
    path.write_text(MAPPINGS_CSV, encoding="utf-8")
    return path


@pytest.fixture()
def model_file(tmp_path: Path) -> Path:
    path = tmp_path / "model.onnx"
    path.write_bytes(b"onnx")
    return path


@pytest.fixture()
def local_settings(model_file: Path, mappings_file: Path) -> Settings:
    """Settings pointing at local model and mapping files (no downloads)."""
    return make_settings(model_path=str(model_file), mappings_path=str(mappings_file))

"""Environment-based configuration for Juktoborno."""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from JUKTOBORNO_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="JUKTOBORNO_",
        case_sensitive=False,
        protected_namespaces=("settings_",),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8082

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Model selection (registry name; local paths and shape override the registry entry)
    model_name: str = "efficientnet_b0_gray256"
    model_path: str | None = None
    mappings_path: str | None = None
    input_size: int | None = Field(default=None, ge=1)
    input_channels: int | None = None
    models_dir: str = "models"

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)

    # Timeouts in seconds (None = unbounded)
    load_timeout: float | None = Field(default=120.0, gt=0)
    infer_timeout: float | None = Field(default=10.0, gt=0)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=20_971_520, ge=1)

    # Ranking
    default_top_k: int = Field(default=5, ge=1)
    max_top_k: int = Field(default=50, ge=1)

    # Model management
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    @field_validator("input_channels")
    @classmethod
    def _check_channels(cls, value: int | None) -> int | None:
        if value is not None and value not in (1, 3):
            raise ValueError("input_channels must be 1 or 3")
        return value


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()

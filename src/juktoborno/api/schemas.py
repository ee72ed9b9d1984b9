"""Pydantic request/response schemas for the Juktoborno API."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from juktoborno.ml.ranking import ClassificationResult, RankedPrediction


class Prediction(BaseModel):
    """A single ranked juktoborno prediction."""

    class_id: int
    class_name: str
    typed_juktoborno: str = Field(description="The compound character as text")
    description: str = Field(description="Gloss of the character, e.g. its component consonants")
    folder: str = Field(description="Organizational tag of the class")
    confidence: float = Field(ge=0.0, le=1.0)

    @classmethod
    def from_ranked(cls, ranked: RankedPrediction) -> Prediction:
        return cls(
            class_id=ranked.class_index,
            class_name=ranked.display_label,
            typed_juktoborno=ranked.display_label,
            description=ranked.description,
            folder=ranked.group,
            confidence=min(max(ranked.confidence, 0.0), 1.0),
        )


class PredictResponse(BaseModel):
    """Primary prediction plus the ordered top-K list."""

    predicted_class_id: int
    predicted_class_name: str
    typed_juktoborno: str
    described: str
    folder: str
    confidence: float = Field(ge=0.0, le=1.0)
    top_predictions: list[Prediction]

    @classmethod
    def from_result(cls, result: ClassificationResult) -> PredictResponse:
        top = [Prediction.from_ranked(ranked) for ranked in result.predictions]
        best = top[0]
        return cls(
            predicted_class_id=best.class_id,
            predicted_class_name=best.class_name,
            typed_juktoborno=best.typed_juktoborno,
            described=best.description,
            folder=best.folder,
            confidence=best.confidence,
            top_predictions=top,
        )


class HealthResponse(BaseModel):
    """Health check response."""

    model_config = ConfigDict(protected_namespaces=())

    status: str = "ok"
    gpu: bool
    model: str
    model_loaded: bool
    load_progress: float = Field(ge=0.0, le=1.0)
    num_classes: int | None
    concurrent_requests: int
    queue_depth: int


class LoadResponse(BaseModel):
    """Result of an explicit model load request."""

    model: str
    loaded: bool
    load_progress: float = Field(ge=0.0, le=1.0)
    labels: int


class ModelInfo(BaseModel):
    """Information about a known model build."""

    name: str
    input_size: int
    input_channels: int
    status: str = Field(description="Model status: 'active' or 'available'")
    license: str


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str

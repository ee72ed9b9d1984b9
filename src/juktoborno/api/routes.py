"""API route definitions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, UploadFile, status

from juktoborno.api.middleware import verify_api_key
from juktoborno.api.schemas import (
    ErrorResponse,
    HealthResponse,
    LoadResponse,
    ModelInfo,
    ModelsResponse,
    PredictResponse,
)
from juktoborno.ml.model_manager import MODEL_REGISTRY

if TYPE_CHECKING:
    from juktoborno.config import Settings
    from juktoborno.ml.classifier import JuktobornoClassifier
    from juktoborno.ml.inference import InferencePool

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_classifier(request: Request) -> JuktobornoClassifier:
    classifier: JuktobornoClassifier = request.app.state.classifier
    return classifier


async def _read_upload(file: UploadFile, max_size: int) -> bytes:
    data = await file.read(max_size + 1)
    if len(data) > max_size:
        raise HTTPException(
            status_code=status.HTTP_413_CONTENT_TOO_LARGE,
            detail=f"File exceeds maximum size of {max_size} bytes",
        )
    return data


@router.post(
    "/predict",
    response_model=PredictResponse,
    responses={
        status.HTTP_413_CONTENT_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_422_UNPROCESSABLE_CONTENT: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
        status.HTTP_504_GATEWAY_TIMEOUT: {"model": ErrorResponse},
    },
    summary="Classify a juktoborno image",
)
async def predict(
    request: Request,
    file: UploadFile,
    top_k: Annotated[int | None, Query(ge=1, description="Number of ranked predictions to return")] = None,
) -> PredictResponse:
    """Classify an uploaded, captured, or drawn character image and return ranked predictions."""
    settings = _get_settings(request)
    k = settings.default_top_k if top_k is None else top_k
    if k > settings.max_top_k:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail=f"top_k must be at most {settings.max_top_k}",
        )

    image_bytes = await _read_upload(file, settings.max_file_size)
    pool = _get_inference_pool(request)
    classifier = _get_classifier(request)
    result = await pool.run(classifier.classify, image_bytes, k, timeout=settings.infer_timeout)

    logger.info(
        "Predicted class %d (%.3f) for %s",
        result.primary.class_index,
        result.primary.confidence,
        file.filename,
    )
    return PredictResponse.from_result(result)


@router.post(
    "/model/load",
    response_model=LoadResponse,
    responses={
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
        status.HTTP_504_GATEWAY_TIMEOUT: {"model": ErrorResponse},
    },
    summary="Load the configured model",
)
async def load_model(request: Request) -> LoadResponse:
    """Load the model and label mappings if not loaded yet; a no-op otherwise."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    classifier = _get_classifier(request)
    await pool.run(classifier.load, timeout=settings.load_timeout)
    return LoadResponse(
        model=classifier.spec.name,
        loaded=classifier.is_loaded,
        load_progress=classifier.load_progress,
        labels=len(classifier.labels),
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    classifier = _get_classifier(request)
    return HealthResponse(
        status="ok" if classifier.is_loaded else "loading",
        gpu=settings.device == "cuda",
        model=classifier.spec.name,
        model_loaded=classifier.is_loaded,
        load_progress=classifier.load_progress,
        num_classes=classifier.num_classes,
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List known model builds",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return known model builds and which one is active."""
    settings = _get_settings(request)

    models: list[ModelInfo] = []
    for spec in MODEL_REGISTRY.values():
        models.append(
            ModelInfo(
                name=spec.name,
                input_size=spec.input_size,
                input_channels=spec.input_channels,
                status="active" if spec.name == settings.model_name else "available",
                license=spec.license,
            )
        )

    return ModelsResponse(models=models)

"""Middleware: API key authentication and pipeline error translation."""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from juktoborno.errors import (
    DecodeError,
    InferenceTimeoutError,
    InvalidArgumentError,
    JuktobornoError,
    LoadError,
    ModelLoadError,
    NotLoadedError,
    ShapeMismatchError,
)
from juktoborno.ml.inference import QueueFullError

if TYPE_CHECKING:
    from fastapi import FastAPI

    from juktoborno.config import Settings

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)

_ERROR_STATUS: list[tuple[type[Exception], int]] = [
    (DecodeError, status.HTTP_422_UNPROCESSABLE_CONTENT),
    (InvalidArgumentError, status.HTTP_422_UNPROCESSABLE_CONTENT),
    (NotLoadedError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ModelLoadError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (LoadError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (InferenceTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
    (ShapeMismatchError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def _get_settings_from_request(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


async def verify_api_key(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> None:
    """Check the Bearer token against the configured API key.

    If no API key is configured (JUKTOBORNO_API_KEY not set), all requests pass.
    If configured, requests must include 'Authorization: Bearer <key>'.
    """
    settings = _get_settings_from_request(request)
    if settings.api_key is None:
        return

    if credentials is None or not secrets.compare_digest(credentials.credentials.encode(), settings.api_key.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )


def status_for_error(exc: Exception) -> int:
    """Map a pipeline error to an HTTP status code."""
    for error_type, code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def _pipeline_error_handler(request: Request, exc: Exception) -> JSONResponse:
    code = status_for_error(exc)
    if code >= status.HTTP_500_INTERNAL_SERVER_ERROR and code != status.HTTP_503_SERVICE_UNAVAILABLE:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected (%d): %s", request.method, request.url.path, code, exc)
    return JSONResponse(status_code=code, content={"detail": str(exc)})


async def _queue_full_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.warning("%s %s rejected: inference queue full", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Server busy, try again later"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Translate pipeline errors into JSON error responses."""
    app.add_exception_handler(JuktobornoError, _pipeline_error_handler)
    app.add_exception_handler(QueueFullError, _queue_full_handler)

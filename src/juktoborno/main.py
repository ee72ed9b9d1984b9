"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from juktoborno.api.middleware import register_exception_handlers
from juktoborno.api.routes import router
from juktoborno.config import get_settings
from juktoborno.errors import JuktobornoError
from juktoborno.ml.classifier import JuktobornoClassifier
from juktoborno.ml.inference import InferencePool

logger = logging.getLogger(__name__)


async def warm_up(app: FastAPI) -> None:
    """Load the model in the background so startup is not blocked by the download."""
    settings = app.state.settings
    pool: InferencePool = app.state.inference_pool
    classifier: JuktobornoClassifier = app.state.classifier
    try:
        await pool.run(classifier.load, timeout=settings.load_timeout)
    except (JuktobornoError, TimeoutError) as exc:
        # The model stays unloaded; POST /api/v1/model/load retries.
        logger.error("Background model load failed: %s", exc)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting Juktoborno (device=%s, max_concurrent=%s, model=%s)",
        settings.device,
        settings.max_concurrent,
        settings.model_name,
    )

    inference_pool = InferencePool(settings)
    app.state.inference_pool = inference_pool
    classifier = JuktobornoClassifier(settings)
    app.state.classifier = classifier

    warm_up_task = asyncio.create_task(warm_up(app))

    logger.info("Juktoborno accepting requests")
    yield

    logger.info("Shutting down Juktoborno")
    warm_up_task.cancel()
    with suppress(asyncio.CancelledError):
        await warm_up_task
    inference_pool.shutdown()
    classifier.shutdown()
    logger.info("Juktoborno shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="Juktoborno",
        description="Classification API for Bengali compound characters (juktoborno)",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(application)
    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Run the API server with uvicorn."""
    settings = get_settings()
    uvicorn.run("juktoborno.main:app", host=settings.host, port=settings.port)

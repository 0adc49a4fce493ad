"""
FastAPI application entry point.

Usage:
    uvicorn tts_gateway.main:app --host 0.0.0.0 --port 8000

    # or with an explicit settings file
    TTS_GATEWAY_SETTINGS=/etc/tts-gateway/settings.yaml uvicorn tts_gateway.main:app
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from tts_gateway import __version__
from tts_gateway.api.routes import router
from tts_gateway.core.logging import configure_logging, get_logger, info
from tts_gateway.services.synthesis_service import close_service

_LOG = get_logger("tts-gateway.main")


@asynccontextmanager
async def _lifespan(app: FastAPI):
    info(_LOG, "startup", version=__version__)
    yield
    await close_service()
    info(_LOG, "shutdown")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    The service itself is built lazily on the first request, so a bad
    backend key or unreachable store shows up as a request error rather
    than a crashed worker.
    """
    configure_logging()

    app = FastAPI(title="tts-gateway", version=__version__, lifespan=_lifespan)
    app.include_router(router)
    return app


app = create_app()

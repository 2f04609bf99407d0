"""
FastAPI application factory.

Run locally with::

    uvicorn fincoach.api.main:app --reload
"""
from __future__ import annotations

import contextlib
import logging
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..core.config import get_settings
from ..core.db import init_db_schema
from ..core.errors import ConfigurationError, NotebookConflictError, NotebookStateError
from ..core.utils.logger import configure_logging
from .dependencies import get_storage_backend
from .routers import admin, notebooks, personas, sessions, storage, webhook

logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_logging(settings.log_level)
    if settings.storage_backend == "database" and settings.env in {"dev", "test"}:
        await init_db_schema()
    logger.info("fincoach started with %s storage (%s)", settings.storage_backend, settings.env)
    yield
    if get_storage_backend.cache_info().currsize:
        await get_storage_backend().aclose()


async def _configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("Configuration error on %s: missing %s", request.url.path, ", ".join(exc.missing))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": {"code": exc.code, "missing": exc.missing}},
    )


async def _notebook_state_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


def create_app() -> FastAPI:
    app = FastAPI(title="fincoach", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ConfigurationError, _configuration_error_handler)
    app.add_exception_handler(NotebookStateError, _notebook_state_handler)
    app.add_exception_handler(NotebookConflictError, _notebook_state_handler)

    app.include_router(sessions.router)
    app.include_router(webhook.router)
    app.include_router(notebooks.router)
    app.include_router(storage.router)
    app.include_router(personas.router)
    app.include_router(admin.router)

    @app.get("/health", tags=["health"])
    async def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()

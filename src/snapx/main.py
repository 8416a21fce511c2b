"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from snapx.config import Settings
    from snapx.storage.base import EmbeddingStore
    from snapx.storage.objects import ObjectStorage

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from snapx.api.routes import router
from snapx.config import get_settings
from snapx.core.collections import CollectionService
from snapx.core.ingestion import IngestionCoordinator
from snapx.core.matcher import MatchEngine
from snapx.errors import SnapXError
from snapx.storage.base import build_store
from snapx.storage.objects import build_object_storage
from snapx.storage.pool import IOPool

logger = logging.getLogger(__name__)


def init_app_state(
    app: FastAPI,
    settings: Settings,
    *,
    store: EmbeddingStore | None = None,
    object_storage: ObjectStorage | None = None,
) -> None:
    """Wire settings, backends and core services onto ``app.state``."""
    io_pool = IOPool(settings)
    store = store or build_store(settings, io_pool)
    object_storage = object_storage or build_object_storage(settings, io_pool)

    app.state.settings = settings
    app.state.io_pool = io_pool
    app.state.store = store
    app.state.object_storage = object_storage
    app.state.collections = CollectionService(store, object_storage, max_file_size=settings.max_file_size)
    app.state.matcher = MatchEngine(
        store,
        threshold=settings.match_threshold,
        embedding_dim=settings.embedding_dim,
    )
    app.state.ingestion = IngestionCoordinator(
        store,
        object_storage,
        embedding_dim=settings.embedding_dim,
        max_files=settings.max_upload_files,
        max_file_size=settings.max_file_size,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    init_app_state(app, settings)
    logger.info(
        "Starting SnapX (store=%s, object_storage=%s, threshold=%s, embedding_dim=%s)",
        settings.store_backend,
        settings.object_storage,
        settings.match_threshold,
        settings.embedding_dim,
    )
    if settings.auth_secret is None:
        logger.warning("SNAPX_AUTH_SECRET is not set; owner routes will reject every request")

    await app.state.store.open()
    logger.info("SnapX ready")
    yield

    logger.info("Shutting down SnapX")
    await app.state.store.close()
    app.state.io_pool.shutdown()
    logger.info("SnapX shutdown complete")


async def _handle_snapx_error(request: Request, exc: SnapXError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="SnapX",
        description="Event photo galleries where guests find their own photos by face",
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

    application.add_exception_handler(SnapXError, _handle_snapx_error)  # type: ignore[arg-type]
    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Serve the application with uvicorn using SNAPX_HOST / SNAPX_PORT."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("snapx.main:app", host=settings.host, port=settings.port)

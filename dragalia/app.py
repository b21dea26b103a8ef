"""FastAPI ASGI application factory and runtime wiring.

This module provides the production entrypoint ``uvicorn dragalia.app:app``
and owns application-level orchestration:

- lifespan startup/shutdown around ``StorageDb``, including the blocking
  storage readiness gate,
- middleware and error-handler installation,
- router registration.

The HTTP behavior itself lives in ``dragalia.http`` (middleware, formatters,
error shaping, settings).
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Protocol, cast

from fastapi import FastAPI
from starlette.concurrency import run_in_threadpool

from dragalia.api import router as api_router
from dragalia.http.errors import install_error_handlers
from dragalia.http.middleware import (
    AttachRequestStateMiddleware,
    DeChunkerMiddleware,
    ResponseHeaderPolicyMiddleware,
    ShutdownGuardMiddleware,
)
from dragalia.http.settings import AppSettings
from dragalia.readiness import wait_for_storage
from dragalia.storage import StorageDb

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from starlette.types import ASGIApp


logger = logging.getLogger(__name__)


class MiddlewareFactory(Protocol):
    def __call__(self, app: ASGIApp, /, *args: object, **kwargs: object) -> ASGIApp: ...


async def _shutdown_storage(app: FastAPI, storage: StorageDb) -> None:
    app.state.shutting_down = True
    try:
        await run_in_threadpool(storage.close)
    except Exception:
        logger.exception("Shutdown: error closing MongoDB connection")


def install_middleware(app: FastAPI, settings: AppSettings) -> None:
    """Install the middleware chain.

    Starlette wraps in reverse registration order: the last middleware added
    is the outermost one.
    """
    app.add_middleware(
        cast("MiddlewareFactory", DeChunkerMiddleware),
        idle_timeout=settings.chunk_idle_timeout,
        max_body_bytes=settings.max_body_bytes,
        raw_framing=settings.dechunk_raw_framing,
    )
    app.add_middleware(cast("MiddlewareFactory", AttachRequestStateMiddleware))
    app.add_middleware(cast("MiddlewareFactory", ShutdownGuardMiddleware))
    app.add_middleware(cast("MiddlewareFactory", ResponseHeaderPolicyMiddleware))


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    bootstrap_settings = AppSettings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        settings = AppSettings.from_env()
        app.state.settings = settings
        app.state.shutting_down = False

        storage = await run_in_threadpool(
            StorageDb,
            db_name=settings.db_name,
            host=settings.db_host,
        )

        # No request is served before this returns; it may block forever
        # if the database never becomes reachable.
        probes = await run_in_threadpool(
            wait_for_storage,
            storage,
            interval=settings.db_probe_interval,
        )
        logger.info("Storage reachable after %d probe(s)", probes)

        app.state.storage = storage

        try:
            yield
        finally:
            await _shutdown_storage(app, storage)

    app = FastAPI(
        lifespan=lifespan,
        openapi_url=bootstrap_settings.openapi_url,
    )

    install_error_handlers(app)
    install_middleware(app, bootstrap_settings)
    app.include_router(api_router)

    return app


app = create_app()

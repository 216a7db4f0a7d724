"""
gatekeeper.api.app

FastAPI app factory for the gate service.

Responsibilities:
- Build the FastAPI application and register routers/middleware/error handlers.
- Create and dispose the shared-store handle and the process-wide `Gate`.
- Provide a single composition root where cross-cutting concerns live.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from gatekeeper import __version__
from gatekeeper.api.errors import register_error_handlers
from gatekeeper.api.routers.auth import router as auth_router
from gatekeeper.api.routers.dev_auth import router as dev_auth_router
from gatekeeper.api.routers.health import router as health_router
from gatekeeper.clock import Clock, system_clock
from gatekeeper.gate import Gate
from gatekeeper.observability.logging import configure_logging, get_logger
from gatekeeper.observability.middleware import RequestContextMiddleware
from gatekeeper.settings import Settings
from gatekeeper.store import SharedStore, create_store

log = get_logger(__name__)


def create_app(
    *,
    settings: Settings,
    store: SharedStore | None = None,
    clock: Clock = system_clock,
) -> FastAPI:
    # Configure structured logging once at process startup (before app serves requests).
    configure_logging(
        service_name=settings.service_name,
        level=settings.log_level,
        json_logs=settings.log_json,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info("startup", env=settings.env, store_backend=settings.store_backend)
        # Store handle and gate are created once and only read afterwards.
        shared = store if store is not None else create_store(settings, clock=clock)
        app.state.settings = settings
        app.state.store = shared
        app.state.gate = Gate.from_settings(settings, store=shared, clock=clock)
        try:
            yield
        finally:
            await shared.close()
            log.info("shutdown")

    app = FastAPI(
        title="Gatekeeper",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(RequestContextMiddleware)
    register_error_handlers(app, settings=settings)
    app.include_router(health_router, tags=["health"])
    app.include_router(dev_auth_router)
    app.include_router(auth_router)

    return app


# --- Module Notes -----------------------------------------------------------
# Services embedding the gate mount their own routers on the returned app and
# wrap protected handlers with `gatekeeper.api.gating.gated_endpoint`.

"""DepSentinel REST API — FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from depsentinel.api.deps import close_scan_service, init_scan_service
from depsentinel.api.errors import register_error_handlers
from depsentinel.api.middleware.request_id import RequestIDMiddleware
from depsentinel.api.routers import scans
from depsentinel.core.logging import setup_logging


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: build the scan service. Shutdown: close the OSV client."""
    init_scan_service()
    yield
    await close_scan_service()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    setup_logging()

    app = FastAPI(
        title="DepSentinel",
        docs_url="/api/v1/docs",
        openapi_url="/api/v1/openapi.json",
        lifespan=_lifespan,
    )

    register_error_handlers(app)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health", tags=["ops"])
    async def health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    app.include_router(scans.router, prefix="/api/v1/scans", tags=["scans"])

    return app

"""Unified error handling — ServiceError + RequestValidationError → JSON."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from depsentinel.services import (
    ArchiveUnavailableError,
    NotFoundError,
    ServiceError,
    UpstreamError,
    UpstreamRateLimitedError,
    ValidationError,
)

_STATUS_MAP: dict[type[ServiceError], int] = {
    NotFoundError: 404,
    ArchiveUnavailableError: 409,
    ValidationError: 422,
    UpstreamRateLimitedError: 429,
    UpstreamError: 502,
}


def status_for(exc: ServiceError) -> int:
    for cls in type(exc).__mro__:
        if cls in _STATUS_MAP:
            return _STATUS_MAP[cls]
    return 500


async def _service_error_handler(_request: Request, exc: ServiceError) -> JSONResponse:
    headers = None
    if isinstance(exc, UpstreamRateLimitedError):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(
        status_code=status_for(exc),
        content={"error": exc.code, "detail": str(exc), "retryable": exc.retryable},
        headers=headers,
    )


async def _validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    messages = []
    for err in exc.errors():
        loc = " → ".join(str(part) for part in err["loc"])
        messages.append(f"{loc}: {err['msg']}")
    return JSONResponse(
        status_code=422,
        content={
            "error": ValidationError.code,
            "detail": "; ".join(messages),
            "retryable": False,
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register exception handlers on the app."""
    app.add_exception_handler(ServiceError, _service_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]

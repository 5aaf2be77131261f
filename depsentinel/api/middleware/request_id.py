"""Request ID middleware — binds X-Request-ID and timing to every scan request's logs."""

from __future__ import annotations

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

log = structlog.get_logger("depsentinel.api")


def _accept_request_id(value: str) -> str:
    """Reuse a caller's UUID so their logs line up with ours; otherwise mint one."""
    try:
        return str(uuid.UUID(value))
    except (ValueError, AttributeError):
        return uuid.uuid4().hex


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _accept_request_id(request.headers.get("x-request-id", ""))
        tokens = structlog.contextvars.bind_contextvars(
            request_id=request_id,
            path=request.url.path,
        )
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            log.exception("http.request_failed", elapsed_ms=_elapsed_ms(start))
            raise
        else:
            log.info(
                "http.request",
                method=request.method,
                status=response.status_code,
                elapsed_ms=_elapsed_ms(start),
            )
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            structlog.contextvars.reset_contextvars(**tokens)


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 1)

"""
gatekeeper.api.errors

Uniform error envelope for all denials and failures.

Responsibilities:
- Render `GateError` subclasses as `{code, message, retryAfterMs?, path, timestamp, traceId}`.
- Add `Retry-After` on quota denials.
- Hide internal error detail in prod.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from gatekeeper.errors import GateError, QuotaExceeded
from gatekeeper.observability.logging import get_logger
from gatekeeper.settings import Settings

log = get_logger(__name__)


class ErrorResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = False
    code: str
    message: str
    retry_after_ms: int | None = None
    path: str
    timestamp: datetime
    trace_id: str | None = None


def _render(
    *, status: int, body: ErrorResponse, headers: dict[str, str] | None = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
        headers=headers,
    )


def register_error_handlers(app: FastAPI, *, settings: Settings) -> None:
    @app.exception_handler(GateError)
    async def _gate_error(request: Request, exc: GateError) -> JSONResponse:
        retry_after_ms = exc.retry_after_ms if isinstance(exc, QuotaExceeded) else None
        headers = None
        if retry_after_ms is not None:
            headers = {"Retry-After": str(max(1, math.ceil(retry_after_ms / 1000)))}
        body = ErrorResponse(
            code=exc.code,
            message=exc.message,
            retry_after_ms=retry_after_ms,
            path=request.url.path,
            timestamp=datetime.now(tz=UTC),
            trace_id=getattr(request.state, "request_id", None),
        )
        return _render(status=exc.http_status, body=body, headers=headers)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        log.exception("unhandled_exception", error_type=type(exc).__name__)
        message = "Internal error" if settings.env == "prod" else str(exc) or type(exc).__name__
        body = ErrorResponse(
            code="INTERNAL_ERROR",
            message=message,
            path=request.url.path,
            timestamp=datetime.now(tz=UTC),
            trace_id=getattr(request.state, "request_id", None),
        )
        return _render(status=500, body=body)

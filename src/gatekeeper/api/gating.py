"""
gatekeeper.api.gating

Adapter from gated handlers to FastAPI endpoints.

Responsibilities:
- Pull the bearer token and the shared `Gate` from the request.
- Run the handler through `Gate.run`; denials surface as `GateError` for the
  app-level error handlers to render.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import Depends, Request

from gatekeeper.api.deps import bearer_token, gate_from_app
from gatekeeper.auth.models import Principal
from gatekeeper.gate import Gate, GatedOperation

GatedHandler = Callable[[Principal, Request], Awaitable[Any]]


def gated_endpoint(
    operation: GatedOperation, handler: GatedHandler
) -> Callable[..., Awaitable[Any]]:
    """
    Usage:
        router.add_api_route("/items/{item_id}", gated_endpoint(op, update_item), methods=["PUT"])
    """

    async def endpoint(
        request: Request,
        token: str | None = Depends(bearer_token),
        gate: Gate = Depends(gate_from_app),
    ):
        return await gate.run(token=token, request=request, handler=handler, operation=operation)

    endpoint.__name__ = getattr(handler, "__name__", operation.name)
    return endpoint

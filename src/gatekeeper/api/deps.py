"""
gatekeeper.api.deps

FastAPI dependency wiring for the API layer.

Responsibilities:
- Expose app.state resources (settings, shared store, gate) as dependencies.
- Extract the raw bearer token without rejecting the request; the gate decides.
"""

from __future__ import annotations

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from gatekeeper.gate import Gate
from gatekeeper.settings import Settings
from gatekeeper.store.base import SharedStore

_bearer = HTTPBearer(auto_error=False)


def settings_from_app(request: Request) -> Settings:
    return request.app.state.settings  # type: ignore[no-any-return]


def store_from_app(request: Request) -> SharedStore:
    # Created once in the app lifespan (see `gatekeeper.api.app.create_app`).
    return request.app.state.store  # type: ignore[no-any-return]


def gate_from_app(request: Request) -> Gate:
    return request.app.state.gate  # type: ignore[no-any-return]


def bearer_token(
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> str | None:
    if creds is None or not creds.credentials:
        return None
    return creds.credentials


# --- Module Notes -----------------------------------------------------------
# Missing/garbled Authorization headers are not rejected here so that every auth
# failure is classified and rendered by the gate's error taxonomy.

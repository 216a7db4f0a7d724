"""
gatekeeper.api.routers.health

Liveness and readiness probes.

`/readyz` reports not-ready whenever the shared store is unreachable, since every
gated request would be denied (fail closed) in that state anyway.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from gatekeeper import __version__
from gatekeeper.api.deps import settings_from_app, store_from_app
from gatekeeper.errors import StoreUnavailable
from gatekeeper.settings import Settings
from gatekeeper.store.base import SharedStore

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok", "version": __version__}


@router.get("/readyz")
async def readyz(
    store: SharedStore = Depends(store_from_app),
    settings: Settings = Depends(settings_from_app),
) -> dict[str, str]:
    if not await store.ping():
        raise StoreUnavailable(f"Shared store ({settings.store_backend}) did not answer ping")
    return {"status": "ready", "store": settings.store_backend}

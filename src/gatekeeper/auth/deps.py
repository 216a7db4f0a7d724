"""
gatekeeper.auth.deps

FastAPI dependency functions for authentication.

Responsibilities:
- Convert a bearer token into a typed `Principal` for routes that need identity
  but not quota or locking (e.g. logout).
"""

from __future__ import annotations

from fastapi import Depends

from gatekeeper.api.deps import bearer_token, gate_from_app
from gatekeeper.auth.models import Principal
from gatekeeper.gate import Gate


async def get_principal(
    token: str | None = Depends(bearer_token),
    gate: Gate = Depends(gate_from_app),
) -> Principal:
    # Same verification + revocation path as gated operations; failures raise GateError.
    return await gate.authenticate(token)


# --- Module Notes -----------------------------------------------------------
# Protected business operations should go through `api.gating.gated_endpoint`
# instead, so quota and locking are applied as well.

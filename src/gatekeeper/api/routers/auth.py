"""
gatekeeper.api.routers.auth

Token lifecycle endpoints.

Responsibilities:
- Exchange an allowlisted refresh token for a new access token.
- Log out: revoke the presented access token and drop the subject's refresh token.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from gatekeeper.api.deps import gate_from_app, settings_from_app
from gatekeeper.auth.deps import get_principal
from gatekeeper.auth.jwt import JwtConfig, issue_token
from gatekeeper.auth.models import Principal, TokenType
from gatekeeper.errors import InvalidToken
from gatekeeper.gate import Gate
from gatekeeper.observability.logging import get_logger
from gatekeeper.settings import Settings

log = get_logger(__name__)

router = APIRouter(prefix="/v1/auth", tags=["auth"])


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class AccessTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime


@router.post("/refresh", response_model=AccessTokenResponse)
async def refresh_access_token(
    body: RefreshRequest,
    settings: Settings = Depends(settings_from_app),
    gate: Gate = Depends(gate_from_app),
) -> AccessTokenResponse:
    principal = gate.verifier.verify(body.refresh_token, expected_type=TokenType.refresh)
    # Only the most recently issued refresh token per subject is honoured.
    if not await gate.registry.refresh_matches(principal):
        raise InvalidToken("Refresh token is no longer active")

    access = issue_token(
        cfg=JwtConfig.from_settings(settings),
        subject=principal.subject,
        roles=sorted(principal.roles),
        ttl=timedelta(seconds=settings.token_ttl_seconds),
    )
    log.info("auth.refreshed", subject=principal.subject)
    return AccessTokenResponse(access_token=access.token, expires_at=access.expires_at)


@router.post("/logout")
async def logout(
    principal: Principal = Depends(get_principal),
    gate: Gate = Depends(gate_from_app),
) -> dict[str, str]:
    await gate.registry.revoke(principal)
    await gate.registry.forget_refresh(principal.subject)
    log.info("auth.logged_out", subject=principal.subject)
    return {"status": "logged_out"}

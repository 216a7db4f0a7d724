from __future__ import annotations

from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from starlette.status import HTTP_404_NOT_FOUND

from gatekeeper.api.deps import gate_from_app, settings_from_app
from gatekeeper.auth.jwt import JwtConfig, issue_token
from gatekeeper.auth.models import TokenType
from gatekeeper.gate import Gate
from gatekeeper.settings import Settings

router = APIRouter(prefix="/v1/dev", tags=["dev"])


class DevTokenRequest(BaseModel):
    subject: str = Field(min_length=1, max_length=256)
    roles: list[str] = Field(default_factory=list)
    ttl_minutes: int | None = Field(default=None, ge=1, le=24 * 60)


class DevTokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: datetime


@router.post("/token", response_model=DevTokenResponse)
async def mint_dev_token(
    body: DevTokenRequest,
    settings: Settings = Depends(settings_from_app),
    gate: Gate = Depends(gate_from_app),
) -> DevTokenResponse:
    if settings.env == "prod":
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Not found")

    cfg = JwtConfig.from_settings(settings)
    ttl = (
        timedelta(minutes=body.ttl_minutes)
        if body.ttl_minutes is not None
        else timedelta(seconds=settings.token_ttl_seconds)
    )
    access = issue_token(cfg=cfg, subject=body.subject, roles=body.roles, ttl=ttl)
    refresh = issue_token(
        cfg=cfg,
        subject=body.subject,
        roles=body.roles,
        token_type=TokenType.refresh,
        ttl=timedelta(seconds=settings.refresh_token_ttl_seconds),
    )
    await gate.registry.remember_refresh(body.subject, refresh)
    return DevTokenResponse(
        access_token=access.token,
        refresh_token=refresh.token,
        expires_at=access.expires_at,
    )

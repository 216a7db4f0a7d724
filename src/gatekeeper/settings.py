"""
gatekeeper.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for all layers.
- Hide secrets from repr/logging (e.g., JWT signing key).
- Offer a cached settings instance for dependency injection.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEV_SIGNING_KEY = "dev-signing-key-change-me-0123456789abcdef"


class RateLimitSettings(BaseModel):
    # Per-principal bucket: `capacity` tokens restored every `refill_interval_ms`.
    capacity: int = Field(default=10, ge=1)
    refill_interval_ms: int = Field(default=1000, ge=1)
    per_principal: bool = True

    # Optional service-wide tier checked before the per-principal one (0 disables it).
    global_capacity: int = Field(default=0, ge=0)
    global_refill_interval_ms: int = Field(default=1000, ge=1)


class LockSettings(BaseModel):
    default_lease_ms: int = Field(default=30_000, ge=1)
    wait_timeout_ms: int = Field(default=2_000, ge=0)
    max_retries: int = Field(default=3, ge=0)
    retry_backoff_ms: int = Field(default=100, ge=0)
    poll_interval_ms: int = Field(default=50, ge=1)


class Settings(BaseSettings):
    """
    Env-driven configuration, e.g. `GATE_JWT_SIGNING_KEY` or
    `GATE_RATE_LIMIT__CAPACITY`. Loaded once at startup and treated as read-only.
    """

    model_config = SettingsConfigDict(
        env_prefix="GATE_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "gatekeeper"
    log_level: str = "INFO"
    log_json: bool = True

    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Auth
    jwt_alg: str = "HS256"
    jwt_issuer: str = "gatekeeper"
    jwt_audience: str = "gatekeeper-api"
    jwt_signing_key: str = Field(default=_DEV_SIGNING_KEY, repr=False)
    token_ttl_seconds: int = Field(default=3600, ge=1)
    refresh_token_ttl_seconds: int = Field(default=7 * 24 * 3600, ge=1)

    # Shared store
    store_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = Field(default="redis://localhost:6379/0", repr=False)
    key_prefix: str = "gate"

    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    lock: LockSettings = Field(default_factory=LockSettings)

    @model_validator(mode="after")
    def _reject_dev_key_in_prod(self) -> Settings:
        if self.env == "prod" and self.jwt_signing_key == _DEV_SIGNING_KEY:
            raise ValueError("GATE_JWT_SIGNING_KEY must be set in prod")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Cache avoids re-parsing env vars for each request dependency.
    return Settings()


# --- Module Notes -----------------------------------------------------------
# Instances share quota and lock state only through the store; every instance
# must run with the same rate-limit policy and key prefix to agree on buckets.

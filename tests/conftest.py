"""
tests.conftest

Shared fixtures: a controllable clock, test settings, the in-memory store and token helpers.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from gatekeeper.auth.jwt import IssuedToken, JwtConfig, issue_token
from gatekeeper.auth.models import TokenType
from gatekeeper.settings import LockSettings, RateLimitSettings, Settings
from gatekeeper.store import MemoryStore, StoreKeys

TEST_SIGNING_KEY = "test-signing-key-0123456789abcdef0123456789"


class FakeClock:
    """Wall clock that only moves when told to; starts at the current whole second."""

    def __init__(self, start: float | None = None) -> None:
        self.now = float(int(time.time())) if start is None else start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        env="test",
        jwt_signing_key=TEST_SIGNING_KEY,
        rate_limit=RateLimitSettings(capacity=5, refill_interval_ms=1000),
        lock=LockSettings(
            default_lease_ms=5000,
            wait_timeout_ms=100,
            max_retries=2,
            retry_backoff_ms=10,
            poll_interval_ms=10,
        ),
    )


@pytest.fixture
def store(clock: FakeClock) -> MemoryStore:
    return MemoryStore(clock=clock)


@pytest.fixture
def keys() -> StoreKeys:
    return StoreKeys("test")


@pytest.fixture
def jwt_cfg(settings: Settings) -> JwtConfig:
    return JwtConfig.from_settings(settings)


@pytest.fixture
def make_token(jwt_cfg: JwtConfig, clock: FakeClock) -> Callable[..., IssuedToken]:
    def _make(
        subject: str = "alice",
        roles: list[str] | None = None,
        *,
        token_type: TokenType = TokenType.access,
        ttl: timedelta = timedelta(minutes=5),
    ) -> IssuedToken:
        return issue_token(
            cfg=jwt_cfg,
            subject=subject,
            roles=roles or ["user"],
            token_type=token_type,
            ttl=ttl,
            now=datetime.fromtimestamp(clock(), tz=UTC),
        )

    return _make

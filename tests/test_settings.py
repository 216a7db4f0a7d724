"""
tests.test_settings

Env-driven configuration.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from gatekeeper.settings import Settings


def test_prod_requires_explicit_signing_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GATE_JWT_SIGNING_KEY", raising=False)

    with pytest.raises(ValidationError):
        Settings(env="prod")

    assert Settings(env="prod", jwt_signing_key="k" * 40).env == "prod"


def test_nested_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GATE_RATE_LIMIT__CAPACITY", "42")
    monkeypatch.setenv("GATE_LOCK__DEFAULT_LEASE_MS", "1500")
    monkeypatch.setenv("GATE_STORE_BACKEND", "redis")

    s = Settings()

    assert s.rate_limit.capacity == 42
    assert s.rate_limit.refill_interval_ms == 1000
    assert s.lock.default_lease_ms == 1500
    assert s.store_backend == "redis"


def test_signing_key_not_in_repr() -> None:
    s = Settings(jwt_signing_key="super-secret-value-0123456789")

    assert "super-secret-value" not in repr(s)

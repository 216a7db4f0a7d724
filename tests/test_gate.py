"""
tests.test_gate

Gate pipeline: stage ordering, denials, and lock cleanup on every exit path.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from conftest import FakeClock

from gatekeeper.auth.models import Principal
from gatekeeper.errors import (
    Forbidden,
    InvalidToken,
    QuotaExceeded,
    ResourceBusy,
    RevokedToken,
    StoreUnavailable,
)
from gatekeeper.gate import Gate, GateContext, GatedOperation, GateStage
from gatekeeper.gate.state import InvalidTransition
from gatekeeper.settings import RateLimitSettings, Settings
from gatekeeper.store import MemoryStore

S = GateStage

PLAIN = GatedOperation(name="history", category="history")
EXCLUSIVE = GatedOperation(
    name="draw",
    category="draw",
    resource=lambda principal, request: f"draw:{principal.subject}",
)
SHARED = GatedOperation(
    name="settle",
    category="settle",
    resource=lambda principal, request: "pool:1",
    wait_timeout_ms=2000,
)


class FailingStore(MemoryStore):
    async def take_tokens(self, key: str, **kwargs: Any) -> Any:
        raise StoreUnavailable("store down")


@pytest.fixture
def gate(settings: Settings, store: MemoryStore, clock: FakeClock) -> Gate:
    return Gate.from_settings(settings, store=store, clock=clock)


async def _echo(principal: Principal, request: Any) -> str:
    return f"ok:{principal.subject}"


@pytest.mark.asyncio
async def test_plain_operation_walks_every_stage(gate: Gate, make_token) -> None:
    ctx = GateContext(operation=PLAIN)

    result = await gate.run(
        token=make_token().token, request=None, handler=_echo, operation=PLAIN, context=ctx
    )

    assert result == "ok:alice"
    assert ctx.history == [S.received, S.token_verified, S.quota_checked, S.executing, S.released]


@pytest.mark.asyncio
async def test_exclusive_operation_holds_and_releases_lock(gate: Gate, make_token) -> None:
    ctx = GateContext(operation=EXCLUSIVE)
    seen: list[str | None] = []

    async def handler(principal: Principal, request: Any) -> None:
        # Lock is held while the handler runs.
        seen.append(ctx.resource_id)
        assert await gate.locks.try_acquire("draw:alice") is None

    await gate.run(
        token=make_token().token, request=None, handler=handler, operation=EXCLUSIVE, context=ctx
    )

    assert seen == ["draw:alice"]
    assert ctx.history == [
        S.received,
        S.token_verified,
        S.quota_checked,
        S.lock_held,
        S.executing,
        S.released,
    ]
    assert ctx.lock is None
    assert await gate.locks.try_acquire("draw:alice") is not None


@pytest.mark.asyncio
@pytest.mark.parametrize("token", [None, "", "garbage"])
async def test_bad_token_is_denied_before_handler(gate: Gate, token: str | None) -> None:
    ctx = GateContext(operation=PLAIN)
    called = False

    async def handler(principal: Principal, request: Any) -> None:
        nonlocal called
        called = True

    with pytest.raises(InvalidToken):
        await gate.run(token=token, request=None, handler=handler, operation=PLAIN, context=ctx)

    assert not called
    assert ctx.history == [S.received, S.denied]
    assert isinstance(ctx.denial, InvalidToken)


@pytest.mark.asyncio
async def test_revoked_token_is_denied(gate: Gate, make_token) -> None:
    issued = make_token()
    principal = await gate.authenticate(issued.token)
    await gate.registry.revoke(principal)

    with pytest.raises(RevokedToken):
        await gate.run(token=issued.token, request=None, handler=_echo, operation=PLAIN)


@pytest.mark.asyncio
async def test_missing_role_is_forbidden(gate: Gate, make_token) -> None:
    op = GatedOperation(name="audit", required_roles=frozenset({"auditor"}))
    ctx = GateContext(operation=op)

    with pytest.raises(Forbidden):
        await gate.run(
            token=make_token(roles=["user"]).token,
            request=None,
            handler=_echo,
            operation=op,
            context=ctx,
        )
    assert ctx.history == [S.received, S.token_verified, S.denied]


@pytest.mark.asyncio
async def test_admin_bypasses_role_requirement(gate: Gate, make_token) -> None:
    op = GatedOperation(name="audit", required_roles=frozenset({"auditor"}))

    result = await gate.run(
        token=make_token(roles=["admin"]).token, request=None, handler=_echo, operation=op
    )
    assert result == "ok:alice"


@pytest.mark.asyncio
async def test_quota_exhaustion_carries_retry_hint(gate: Gate, make_token) -> None:
    token = make_token().token
    for _ in range(5):
        await gate.run(token=token, request=None, handler=_echo, operation=PLAIN)

    ctx = GateContext(operation=PLAIN)
    with pytest.raises(QuotaExceeded) as exc_info:
        await gate.run(token=token, request=None, handler=_echo, operation=PLAIN, context=ctx)

    assert exc_info.value.retry_after_ms == 1000
    assert ctx.history[-2:] == [S.token_verified, S.denied]


@pytest.mark.asyncio
async def test_global_tier_is_shared_across_principals(
    settings: Settings, store: MemoryStore, clock: FakeClock, make_token
) -> None:
    tiered = settings.model_copy(
        update={"rate_limit": RateLimitSettings(capacity=5, refill_interval_ms=1000, global_capacity=2)}
    )
    gate = Gate.from_settings(tiered, store=store, clock=clock)

    await gate.run(token=make_token("alice").token, request=None, handler=_echo, operation=PLAIN)
    await gate.run(token=make_token("bob").token, request=None, handler=_echo, operation=PLAIN)
    with pytest.raises(QuotaExceeded):
        await gate.run(token=make_token("carol").token, request=None, handler=_echo, operation=PLAIN)


@pytest.mark.asyncio
async def test_global_tier_spans_categories(
    settings: Settings, store: MemoryStore, clock: FakeClock, make_token
) -> None:
    tiered = settings.model_copy(
        update={
            "rate_limit": RateLimitSettings(
                capacity=5, refill_interval_ms=1000, per_principal=False, global_capacity=3
            )
        }
    )
    gate = Gate.from_settings(tiered, store=store, clock=clock)
    other = GatedOperation(name="draw", category="draw")

    await gate.run(token=make_token("alice").token, request=None, handler=_echo, operation=PLAIN)
    await gate.run(token=make_token("bob").token, request=None, handler=_echo, operation=other)
    await gate.run(token=make_token("carol").token, request=None, handler=_echo, operation=PLAIN)
    with pytest.raises(QuotaExceeded):
        await gate.run(token=make_token("dave").token, request=None, handler=_echo, operation=other)


@pytest.mark.asyncio
async def test_shared_tier_capacity_holds_under_larger_global_tier(
    settings: Settings, store: MemoryStore, clock: FakeClock, make_token
) -> None:
    tiered = settings.model_copy(
        update={
            "rate_limit": RateLimitSettings(
                capacity=5, refill_interval_ms=1000, per_principal=False, global_capacity=100
            )
        }
    )
    gate = Gate.from_settings(tiered, store=store, clock=clock)

    admitted = 0
    for i in range(20):
        try:
            await gate.run(
                token=make_token(f"user{i}").token, request=None, handler=_echo, operation=PLAIN
            )
        except QuotaExceeded:
            continue
        admitted += 1

    assert admitted == 5


def test_stage_without_principal_is_rejected() -> None:
    ctx = GateContext(operation=PLAIN)

    with pytest.raises(InvalidTransition):
        ctx.require_principal()


@pytest.mark.asyncio
async def test_handler_error_releases_lock(gate: Gate, make_token) -> None:
    ctx = GateContext(operation=EXCLUSIVE)

    async def handler(principal: Principal, request: Any) -> None:
        raise ValueError("handler failed")

    with pytest.raises(ValueError):
        await gate.run(
            token=make_token().token, request=None, handler=handler, operation=EXCLUSIVE, context=ctx
        )

    assert ctx.history[-2:] == [S.executing, S.released]
    assert ctx.denial is None
    assert await gate.locks.try_acquire("draw:alice") is not None


@pytest.mark.asyncio
async def test_cancelled_handler_releases_lock(gate: Gate, make_token) -> None:
    ctx = GateContext(operation=EXCLUSIVE)
    started = asyncio.Event()

    async def handler(principal: Principal, request: Any) -> None:
        started.set()
        await asyncio.sleep(10)

    task = asyncio.create_task(
        gate.run(
            token=make_token().token, request=None, handler=handler, operation=EXCLUSIVE, context=ctx
        )
    )
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert ctx.stage is S.released
    assert await gate.locks.try_acquire("draw:alice") is not None


@pytest.mark.asyncio
async def test_held_resource_reports_busy_after_retries(gate: Gate, make_token) -> None:
    await gate.locks.acquire("draw:alice")
    ctx = GateContext(operation=EXCLUSIVE)

    with pytest.raises(ResourceBusy) as exc_info:
        await gate.run(
            token=make_token().token, request=None, handler=_echo, operation=EXCLUSIVE, context=ctx
        )

    assert exc_info.value.resource_id == "draw:alice"
    assert ctx.history[-2:] == [S.quota_checked, S.denied]


@pytest.mark.asyncio
async def test_lock_retry_succeeds_once_holder_releases(gate: Gate, make_token) -> None:
    holder = await gate.locks.acquire("draw:alice")

    async def release_later() -> None:
        await asyncio.sleep(0.15)
        await gate.locks.release(holder)

    releaser = asyncio.create_task(release_later())
    result = await gate.run(
        token=make_token().token, request=None, handler=_echo, operation=EXCLUSIVE
    )
    await releaser

    assert result == "ok:alice"


@pytest.mark.asyncio
async def test_store_outage_fails_closed(settings: Settings, clock: FakeClock, make_token) -> None:
    gate = Gate.from_settings(settings, store=FailingStore(clock=clock), clock=clock)
    ctx = GateContext(operation=PLAIN)

    with pytest.raises(StoreUnavailable):
        await gate.run(
            token=make_token().token, request=None, handler=_echo, operation=PLAIN, context=ctx
        )
    assert ctx.stage is S.denied


@pytest.mark.asyncio
async def test_exclusive_handlers_never_overlap(gate: Gate, make_token) -> None:
    active = 0
    peak = 0

    async def handler(principal: Principal, request: Any) -> None:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.005)
        active -= 1

    tokens = [make_token(f"user{i}").token for i in range(10)]
    await asyncio.gather(
        *[
            gate.run(token=t, request=None, handler=handler, operation=SHARED)
            for t in tokens
        ]
    )

    assert peak == 1

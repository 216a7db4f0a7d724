"""
gatekeeper.gate.pipeline

Gate composition root.

Responsibilities:
- Build the ordered stage pipeline (token -> quota -> lock) from settings.
- Run a downstream handler inside the pipeline with guaranteed cleanup.
- Record the per-request state machine and log denials.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from contextlib import AsyncExitStack
from typing import Any, TypeVar

from gatekeeper.auth.jwt import JwtConfig, TokenVerifier
from gatekeeper.auth.models import Principal
from gatekeeper.auth.revocation import TokenRegistry
from gatekeeper.clock import Clock, system_clock
from gatekeeper.errors import GateError
from gatekeeper.gate.operations import GatedOperation
from gatekeeper.gate.stages import LockStage, QuotaStage, Stage, TokenStage
from gatekeeper.gate.state import GateContext, GateStage
from gatekeeper.locks import LockManager
from gatekeeper.observability.logging import get_logger
from gatekeeper.ratelimit import RateLimiter, RateLimitPolicy
from gatekeeper.settings import Settings
from gatekeeper.store.base import SharedStore, StoreKeys

log = get_logger(__name__)

R = TypeVar("R")
Handler = Callable[[Principal, Any], Awaitable[R]]


class Gate:
    def __init__(
        self,
        *,
        token_stage: TokenStage,
        quota_stage: QuotaStage,
        lock_stage: LockStage,
        registry: TokenRegistry,
        locks: LockManager,
    ) -> None:
        self._token_stage = token_stage
        self.verifier = token_stage.verifier
        self._stages: list[Stage] = [token_stage, quota_stage, lock_stage]
        self.registry = registry
        self.locks = locks

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        store: SharedStore,
        clock: Clock = system_clock,
    ) -> Gate:
        keys = StoreKeys(settings.key_prefix)
        registry = TokenRegistry(store=store, keys=keys, clock=clock)
        verifier = TokenVerifier(JwtConfig.from_settings(settings), clock=clock)

        limiters: list[RateLimiter] = []
        global_policy = RateLimitPolicy.global_from(settings.rate_limit)
        if global_policy is not None:
            limiters.append(
                RateLimiter(store=store, keys=keys, policy=global_policy, clock=clock, name="global")
            )
        limiters.append(
            RateLimiter(
                store=store,
                keys=keys,
                policy=RateLimitPolicy.per_principal_from(settings.rate_limit),
                clock=clock,
            )
        )

        locks = LockManager(store=store, keys=keys, settings=settings.lock, clock=clock)
        return cls(
            token_stage=TokenStage(verifier=verifier, registry=registry),
            quota_stage=QuotaStage(limiters=limiters),
            lock_stage=LockStage(locks=locks, settings=settings.lock),
            registry=registry,
            locks=locks,
        )

    async def authenticate(self, token: str | None) -> Principal:
        """Token stage only: verification plus revocation check, no quota or lock."""

        return await self._token_stage.authenticate(token)

    async def run(
        self,
        *,
        token: str | None,
        request: Any,
        handler: Handler[R],
        operation: GatedOperation,
        context: GateContext | None = None,
    ) -> R:
        """
        RECEIVED -> TOKEN_VERIFIED -> QUOTA_CHECKED -> [LOCK_HELD] -> EXECUTING -> RELEASED,
        or DENIED if any stage fails before the handler starts. Gate errors are re-raised
        for the caller to render; handler errors propagate unchanged.
        """

        ctx = context or GateContext(operation=operation)
        try:
            async with AsyncExitStack() as stack:
                for stage in self._stages:
                    await stage.enter(ctx, token, request)
                    stack.push_async_callback(stage.exit, ctx)

                principal = ctx.require_principal()
                ctx.advance(GateStage.executing)
                # Stage exits (lock release) run when this block unwinds, on any outcome.
                return await handler(principal, request)
        except GateError as e:
            if ctx.stage is not GateStage.executing and not ctx.terminal:
                ctx.deny(e)
                log.warning(
                    "gate.denied",
                    operation=operation.name,
                    code=e.code,
                    status=e.http_status,
                    subject=ctx.principal.subject if ctx.principal else None,
                )
            raise
        finally:
            if ctx.stage in (GateStage.executing, GateStage.lock_held):
                ctx.advance(GateStage.released)


# --- Module Notes -----------------------------------------------------------
# The gate holds no per-request state of its own; everything request-scoped
# lives on the GateContext, so one Gate instance serves all concurrent requests.

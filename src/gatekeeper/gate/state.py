"""
gatekeeper.gate.state

Per-request gate state machine.

Responsibilities:
- Enumerate the request lifecycle stages.
- Enforce the allowed transition table and record the path taken.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from gatekeeper.auth.models import Principal
from gatekeeper.errors import GateError
from gatekeeper.gate.operations import GatedOperation
from gatekeeper.locks import LockHandle


class GateStage(enum.StrEnum):
    received = "RECEIVED"
    token_verified = "TOKEN_VERIFIED"
    quota_checked = "QUOTA_CHECKED"
    lock_held = "LOCK_HELD"
    executing = "EXECUTING"
    released = "RELEASED"
    denied = "DENIED"


_TRANSITIONS: dict[GateStage, frozenset[GateStage]] = {
    GateStage.received: frozenset({GateStage.token_verified, GateStage.denied}),
    GateStage.token_verified: frozenset({GateStage.quota_checked, GateStage.denied}),
    GateStage.quota_checked: frozenset(
        {GateStage.lock_held, GateStage.executing, GateStage.denied}
    ),
    GateStage.lock_held: frozenset({GateStage.executing, GateStage.released}),
    GateStage.executing: frozenset({GateStage.released}),
    GateStage.released: frozenset(),
    GateStage.denied: frozenset(),
}


class InvalidTransition(RuntimeError):
    pass


@dataclass(slots=True)
class GateContext:
    """
    Mutable per-request record; never shared between requests.
    """

    operation: GatedOperation
    stage: GateStage = GateStage.received
    history: list[GateStage] = field(default_factory=lambda: [GateStage.received])
    principal: Principal | None = None
    resource_id: str | None = None
    lock: LockHandle | None = None
    denial: GateError | None = None

    @property
    def terminal(self) -> bool:
        return not _TRANSITIONS[self.stage]

    def advance(self, stage: GateStage) -> None:
        if stage not in _TRANSITIONS[self.stage]:
            raise InvalidTransition(f"{self.stage} -> {stage} is not allowed")
        self.stage = stage
        self.history.append(stage)

    def require_principal(self) -> Principal:
        if self.principal is None:
            raise InvalidTransition(f"No verified principal at stage {self.stage}")
        return self.principal

    def deny(self, error: GateError) -> None:
        self.denial = error
        self.advance(GateStage.denied)


# --- Module Notes -----------------------------------------------------------
# RELEASED is reached whether the handler succeeded, raised or was cancelled;
# DENIED only before the handler runs.

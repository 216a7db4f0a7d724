"""
gatekeeper.gate.operations

Descriptors for protected operations.

Responsibilities:
- Declare what the gate enforces per operation: quota category and cost, roles,
  and (for exclusive operations) how to derive the locked resource id.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from gatekeeper.auth.models import Principal

ResourceResolver = Callable[[Principal, Any], str | None]


@dataclass(frozen=True, slots=True)
class GatedOperation:
    name: str
    category: str = "default"
    cost: int = 1
    required_roles: frozenset[str] = field(default_factory=frozenset)
    # Exclusive operations resolve a resource id to lock; None skips locking.
    resource: ResourceResolver | None = None
    lease_ms: int | None = None
    wait_timeout_ms: int | None = None

    @property
    def exclusive(self) -> bool:
        return self.resource is not None

    def resource_id(self, principal: Principal, request: Any) -> str | None:
        if self.resource is None:
            return None
        return self.resource(principal, request)

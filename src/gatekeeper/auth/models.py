"""
gatekeeper.auth.models

Auth domain models.

Responsibilities:
- Define the authenticated identity type (`Principal`) produced by token verification.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime


class TokenType(enum.StrEnum):
    access = "access"
    refresh = "refresh"


@dataclass(frozen=True, slots=True)
class Principal:
    """
    Authenticated caller identity, immutable for the lifetime of a request.
    """

    subject: str
    roles: frozenset[str]
    expires_at: datetime
    token_id: str
    token_type: TokenType = TokenType.access

    @property
    def is_admin(self) -> bool:
        return "admin" in self.roles

    def has_roles(self, required: frozenset[str]) -> bool:
        # Admin bypasses role checks (ops/debug).
        return self.is_admin or required.issubset(self.roles)


# --- Module Notes -----------------------------------------------------------
# Keep this model minimal; it is passed to every downstream handler.

"""
gatekeeper.errors

Error taxonomy for the gate.

Responsibilities:
- Give every denial a stable machine-readable `code` and HTTP status.
- Carry retry hints (quota) so the API layer can render them.
"""

from __future__ import annotations


class GateError(Exception):
    code: str = "GATE_ERROR"
    http_status: int = 500
    default_message: str = "Request could not be processed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# Auth: terminal, never retried by the gate.
class InvalidToken(GateError):
    code = "INVALID_TOKEN"
    http_status = 401
    default_message = "Invalid token"


class ExpiredToken(InvalidToken):
    code = "TOKEN_EXPIRED"
    default_message = "Token has expired"


class MalformedToken(InvalidToken):
    code = "MALFORMED_TOKEN"
    default_message = "Token is malformed"


class RevokedToken(InvalidToken):
    code = "TOKEN_REVOKED"
    default_message = "Token has been revoked"


class Forbidden(GateError):
    code = "FORBIDDEN"
    http_status = 403
    default_message = "Insufficient role"


class QuotaExceeded(GateError):
    code = "RATE_LIMIT_EXCEEDED"
    http_status = 429
    default_message = "Too many requests, retry later"

    def __init__(self, retry_after_ms: int, message: str | None = None) -> None:
        super().__init__(message)
        self.retry_after_ms = retry_after_ms


class LockUnavailable(GateError):
    code = "LOCK_UNAVAILABLE"
    http_status = 409
    default_message = "Resource is locked by another holder"

    def __init__(self, resource_id: str, message: str | None = None) -> None:
        super().__init__(message)
        self.resource_id = resource_id


class ResourceBusy(GateError):
    code = "RESOURCE_BUSY"
    http_status = 423
    default_message = "Resource is busy, retry later"

    def __init__(self, resource_id: str, message: str | None = None) -> None:
        super().__init__(message)
        self.resource_id = resource_id


class StoreUnavailable(GateError):
    code = "STORE_UNAVAILABLE"
    http_status = 503
    default_message = "Shared store unavailable"


# --- Module Notes -----------------------------------------------------------
# StoreUnavailable is always surfaced: the gate denies instead of bypassing
# quota or exclusivity when coordination state cannot be read.

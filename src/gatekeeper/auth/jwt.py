"""
gatekeeper.auth.jwt

JWT issuing and verification.

Responsibilities:
- Issue access/refresh JWTs carrying subject, roles, token type and a unique `jti`.
- Verify tokens into a `Principal`, classifying failures as invalid, expired or malformed.

Note:
- HS256 with a shared signing key; every instance must be configured with the same key.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from jwt import DecodeError, InvalidSignatureError, InvalidTokenError

from gatekeeper.auth.models import Principal, TokenType
from gatekeeper.clock import Clock, system_clock
from gatekeeper.errors import ExpiredToken, InvalidToken, MalformedToken
from gatekeeper.settings import Settings

# `sub` and `jti` are shape-checked in `verify` so that absent or mistyped values
# classify as malformed rather than invalid.
_REQUIRED_CLAIMS = ["exp", "iat", "iss", "aud", "type"]


@dataclass(frozen=True, slots=True)
class JwtConfig:
    # Algorithm/issuer/audience are enforced during decoding.
    alg: str
    issuer: str
    audience: str
    secret: str

    @classmethod
    def from_settings(cls, settings: Settings) -> JwtConfig:
        return cls(
            alg=settings.jwt_alg,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            secret=settings.jwt_signing_key,
        )


@dataclass(frozen=True, slots=True)
class IssuedToken:
    token: str
    token_id: str
    expires_at: datetime


def issue_token(
    *,
    cfg: JwtConfig,
    subject: str,
    roles: list[str],
    token_type: TokenType = TokenType.access,
    ttl: timedelta = timedelta(hours=1),
    now: datetime | None = None,
) -> IssuedToken:
    now = now or datetime.now(tz=UTC)
    expires_at = now + ttl
    token_id = uuid.uuid4().hex
    # Keep payload minimal and stable; downstream services should avoid parsing arbitrary fields.
    payload: dict[str, Any] = {
        "iss": cfg.issuer,
        "aud": cfg.audience,
        "sub": subject,
        "roles": roles,
        "type": str(token_type),
        "jti": token_id,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    token = jwt.encode(payload, cfg.secret, algorithm=cfg.alg)
    return IssuedToken(
        token=token,
        token_id=token_id,
        expires_at=datetime.fromtimestamp(payload["exp"], tz=UTC),
    )


class TokenVerifier:
    """
    Pure verification: the outcome depends only on the token, the clock and the config.
    """

    def __init__(self, cfg: JwtConfig, *, clock: Clock = system_clock) -> None:
        self._cfg = cfg
        self._clock = clock

    def verify(self, token: str, *, expected_type: TokenType = TokenType.access) -> Principal:
        payload = self._decode(token)
        now = self._clock()

        exp = payload["exp"]
        if not isinstance(exp, int | float) or isinstance(exp, bool):
            raise MalformedToken("Expiration claim must be numeric")
        if now >= exp:
            raise ExpiredToken()

        nbf = payload.get("nbf")
        if nbf is not None:
            if not isinstance(nbf, int | float) or isinstance(nbf, bool):
                raise MalformedToken("Not-before claim must be numeric")
            if now < nbf:
                raise InvalidToken("Token is not yet valid")

        subject = payload.get("sub")
        roles_raw = payload.get("roles", [])
        token_id = payload.get("jti")
        if not isinstance(subject, str) or not subject:
            raise MalformedToken("Invalid token subject")
        if not isinstance(roles_raw, list):
            raise MalformedToken("Invalid token roles")
        if not isinstance(token_id, str) or not token_id:
            raise MalformedToken("Invalid token id")

        try:
            token_type = TokenType(payload["type"])
        except ValueError as e:
            raise MalformedToken("Unknown token type") from e
        if token_type is not expected_type:
            raise InvalidToken(f"Expected {expected_type} token")

        return Principal(
            subject=subject,
            roles=frozenset(str(r) for r in roles_raw),
            expires_at=datetime.fromtimestamp(exp, tz=UTC),
            token_id=token_id,
            token_type=token_type,
        )

    def _decode(self, token: str) -> dict[str, Any]:
        if not token:
            raise InvalidToken("Missing bearer token")
        try:
            # Time-based claims are checked against the injected clock in `verify`.
            return jwt.decode(
                token,
                self._cfg.secret,
                algorithms=[self._cfg.alg],
                issuer=self._cfg.issuer,
                audience=self._cfg.audience,
                options={
                    "require": _REQUIRED_CLAIMS,
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "verify_sub": False,
                    "verify_jti": False,
                },
            )
        except InvalidSignatureError as e:
            raise InvalidToken("Signature verification failed") from e
        except DecodeError as e:
            raise MalformedToken(str(e)) from e
        except InvalidTokenError as e:
            raise InvalidToken(str(e)) from e


# --- Module Notes -----------------------------------------------------------
# Token issuing is used by:
# - `api/routers/dev_auth.py` (dev convenience)
# - `api/routers/auth.py` (refresh flow)

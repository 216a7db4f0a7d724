"""
tests.test_jwt

Token verification: claims extraction and the invalid/expired/malformed split.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt
import pytest
from conftest import FakeClock

from gatekeeper.auth.jwt import JwtConfig, TokenVerifier, issue_token
from gatekeeper.auth.models import TokenType
from gatekeeper.errors import ExpiredToken, InvalidToken, MalformedToken


def test_valid_token_yields_principal_with_claims(jwt_cfg, clock, make_token) -> None:
    issued = make_token("alice", ["user", "auditor"])

    principal = TokenVerifier(jwt_cfg, clock=clock).verify(issued.token)

    assert principal.subject == "alice"
    assert principal.roles == frozenset({"user", "auditor"})
    assert principal.token_id == issued.token_id
    assert principal.expires_at == issued.expires_at
    assert principal.token_type is TokenType.access
    assert not principal.is_admin


def test_expired_token_is_rejected(jwt_cfg, clock: FakeClock, make_token) -> None:
    issued = make_token(ttl=timedelta(seconds=60))
    verifier = TokenVerifier(jwt_cfg, clock=clock)

    clock.advance(30)
    verifier.verify(issued.token)

    clock.advance(30)
    with pytest.raises(ExpiredToken):
        verifier.verify(issued.token)


def test_bad_signature_is_invalid_not_malformed(jwt_cfg, clock, make_token) -> None:
    issued = make_token()
    other = JwtConfig(
        alg=jwt_cfg.alg,
        issuer=jwt_cfg.issuer,
        audience=jwt_cfg.audience,
        secret="another-signing-key-0123456789abcdef0123",
    )

    with pytest.raises(InvalidToken) as excinfo:
        TokenVerifier(other, clock=clock).verify(issued.token)
    assert excinfo.type is InvalidToken


@pytest.mark.parametrize("token", ["not-a-jwt", "a.b.c", "e30.e30"])
def test_structurally_invalid_token_is_malformed(jwt_cfg, clock, token: str) -> None:
    with pytest.raises(MalformedToken):
        TokenVerifier(jwt_cfg, clock=clock).verify(token)


def test_missing_token_is_invalid(jwt_cfg, clock) -> None:
    with pytest.raises(InvalidToken):
        TokenVerifier(jwt_cfg, clock=clock).verify("")


def test_wrong_audience_is_invalid(jwt_cfg, clock) -> None:
    foreign = JwtConfig(
        alg=jwt_cfg.alg, issuer=jwt_cfg.issuer, audience="someone-else", secret=jwt_cfg.secret
    )
    issued = issue_token(cfg=foreign, subject="alice", roles=[])

    with pytest.raises(InvalidToken) as excinfo:
        TokenVerifier(jwt_cfg, clock=clock).verify(issued.token)
    assert excinfo.type is InvalidToken


def test_refresh_token_is_not_accepted_as_access(jwt_cfg, clock, make_token) -> None:
    refresh = make_token(token_type=TokenType.refresh)
    verifier = TokenVerifier(jwt_cfg, clock=clock)

    with pytest.raises(InvalidToken):
        verifier.verify(refresh.token)
    assert verifier.verify(refresh.token, expected_type=TokenType.refresh).token_type is (
        TokenType.refresh
    )


@pytest.mark.parametrize(
    "overrides",
    [
        {"roles": "admin"},
        {"sub": None},
        {"sub": 123},
        {"sub": ""},
        {"jti": None},
        {"jti": 7},
    ],
)
def test_bad_claim_shapes_are_malformed(jwt_cfg, clock, overrides: dict) -> None:
    now = int(clock())
    claims = {
        "iss": jwt_cfg.issuer,
        "aud": jwt_cfg.audience,
        "sub": "alice",
        "roles": ["user"],
        "type": "access",
        "jti": "abc",
        "iat": now,
        "exp": now + 60,
    }
    claims.update(overrides)
    # None means the claim is left out entirely.
    token = jwt.encode(
        {k: v for k, v in claims.items() if v is not None}, jwt_cfg.secret, algorithm=jwt_cfg.alg
    )

    with pytest.raises(MalformedToken):
        TokenVerifier(jwt_cfg, clock=clock).verify(token)


def test_missing_registered_claim_is_invalid(jwt_cfg, clock) -> None:
    now = int(clock())
    token = jwt.encode(
        {"iss": jwt_cfg.issuer, "aud": jwt_cfg.audience, "sub": "alice", "iat": now, "exp": now + 60},
        jwt_cfg.secret,
        algorithm=jwt_cfg.alg,
    )

    with pytest.raises(InvalidToken) as exc_info:
        TokenVerifier(jwt_cfg, clock=clock).verify(token)
    assert type(exc_info.value) is InvalidToken


def test_issued_expiry_matches_ttl(jwt_cfg) -> None:
    now = datetime(2030, 1, 1, tzinfo=UTC)
    issued = issue_token(cfg=jwt_cfg, subject="bob", roles=[], ttl=timedelta(hours=1), now=now)

    assert issued.expires_at == now + timedelta(hours=1)
    assert len(issued.token_id) == 32

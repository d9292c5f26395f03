"""Token verification tests — local and Supabase trust roots.

Learn: verify_local / verify_external never raise; None means "not this
kind of token". The strategies wrap them into tagged matches, local first.
"""

import time
import uuid
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from clara.auth.jwt import (
    ACCESS,
    TokenError,
    create_access_token,
    create_password_reset_token,
    create_refresh_token,
    verify_external,
    verify_local,
    verify_token,
)
from clara.auth.strategies import (
    LOCAL,
    SUPABASE,
    LocalTokenStrategy,
    SupabaseTokenStrategy,
    default_strategies,
)
from clara.config import settings

from conftest import supabase_token


def _tamper(token: str) -> str:
    """Flip a character in the middle of the signature segment."""
    header, payload, signature = token.split(".")
    mid = len(signature) // 2
    swapped = "A" if signature[mid] != "A" else "B"
    return ".".join([header, payload, signature[:mid] + swapped + signature[mid + 1:]])


# ═══════════════════════════════════════════════════════════
# Local tokens
# ═══════════════════════════════════════════════════════════


def test_local_access_token_round_trip():
    user_id, company_id = str(uuid.uuid4()), str(uuid.uuid4())
    token = create_access_token(user_id, company_id, email="a@example.com", role="admin")

    claims = verify_local(token)
    assert claims is not None
    assert claims["sub"] == user_id
    assert claims["company_id"] == company_id
    assert claims["email"] == "a@example.com"
    assert claims["role"] == "admin"
    assert claims["type"] == ACCESS


def test_tampered_signature_is_rejected():
    token = create_access_token(str(uuid.uuid4()), str(uuid.uuid4()))
    assert verify_local(_tamper(token)) is None


def test_refresh_token_is_not_an_access_token():
    """Refresh tokens verify, but never authenticate a request."""
    token = create_refresh_token(str(uuid.uuid4()))
    assert verify_token(token)["type"] == "refresh"
    assert verify_local(token) is None


def test_password_reset_token_is_not_an_access_token():
    assert verify_local(create_password_reset_token("a@example.com")) is None


def test_expired_local_token():
    now = datetime.now(timezone.utc)
    token = jwt.encode(
        {
            "sub": str(uuid.uuid4()),
            "company_id": str(uuid.uuid4()),
            "type": ACCESS,
            "iat": now - timedelta(hours=2),
            "exp": now - timedelta(hours=1),
        },
        settings.jwt_secret,
        algorithm="HS256",
    )
    assert verify_local(token) is None
    with pytest.raises(TokenError, match="expired"):
        verify_token(token)


def test_local_token_without_company_is_rejected():
    token = jwt.encode(
        {"sub": str(uuid.uuid4()), "type": ACCESS, "exp": int(time.time()) + 60},
        settings.jwt_secret,
        algorithm="HS256",
    )
    assert verify_local(token) is None


def test_garbage_token():
    assert verify_local("not-a-jwt") is None
    assert verify_external("not-a-jwt") is None


# ═══════════════════════════════════════════════════════════
# Supabase tokens
# ═══════════════════════════════════════════════════════════


def test_supabase_token_verifies():
    claims = verify_external(supabase_token("sb-123", email="a@example.com"))
    assert claims is not None
    assert claims["sub"] == "sb-123"
    assert claims["email"] == "a@example.com"


def test_supabase_disabled_without_secret(monkeypatch):
    token = supabase_token("sb-123")
    monkeypatch.setattr(settings, "supabase_jwt_secret", "")
    assert verify_external(token) is None


def test_supabase_token_without_subject():
    now = int(time.time())
    token = jwt.encode(
        {"email": "a@example.com", "aud": "authenticated", "exp": now + 60},
        settings.supabase_jwt_secret,
        algorithm="HS256",
    )
    assert verify_external(token) is None


def test_supabase_token_wrong_audience():
    assert verify_external(supabase_token("sb-123", audience="anon")) is None


def test_supabase_token_audience_not_checked_when_unset(monkeypatch):
    monkeypatch.setattr(settings, "supabase_jwt_audience", "")
    assert verify_external(supabase_token("sb-123", audience="anon")) is not None


def test_trust_roots_do_not_cross():
    """A local token is not a Supabase token, and vice versa."""
    local = create_access_token(str(uuid.uuid4()), str(uuid.uuid4()))
    external = supabase_token("sb-123")
    assert verify_external(local) is None
    assert verify_local(external) is None


# ═══════════════════════════════════════════════════════════
# Strategies
# ═══════════════════════════════════════════════════════════


def test_strategies_tag_their_source():
    local = LocalTokenStrategy().verify(create_access_token("u1", "c1"))
    assert local.source == LOCAL
    assert local.subject == "u1"

    external = SupabaseTokenStrategy().verify(supabase_token("sb-9"))
    assert external.source == SUPABASE
    assert external.subject == "sb-9"

    assert LocalTokenStrategy().verify(supabase_token("sb-9")) is None


def test_default_strategy_order():
    strategies = default_strategies()
    assert [type(s) for s in strategies] == [LocalTokenStrategy, SupabaseTokenStrategy]

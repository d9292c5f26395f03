"""JWT token creation and verification.

Learn: Two independent trust roots sign the bearer tokens we accept.
- Local tokens: signed with settings.jwt_secret by this service.
  Access (60min), refresh (7 days), password-reset (60min), email sign-in
  link (15min) and invite (7 days) variants, told apart by the "type" claim.
- Supabase tokens: signed by Supabase Auth with settings.supabase_jwt_secret.
  We only verify them; the "sub" claim is the Supabase user id.

verify_local / verify_external never raise: None means "not this kind of
token", and the caller moves on to the next trust root.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from clara.config import settings

ACCESS = "access"
REFRESH = "refresh"
PASSWORD_RESET = "password_reset"
EMAIL_LINK = "email_link"
INVITE = "invite"


class TokenError(Exception):
    """Raised when token creation/verification fails."""


def create_access_token(
    user_id: str,
    company_id: str,
    email: Optional[str] = None,
    role: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a JWT access token carrying the principal's fields."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "company_id": str(company_id),
        "email": email,
        "role": role,
        "type": ACCESS,
        "exp": now + timedelta(
            minutes=expires_minutes or settings.access_token_expire_minutes
        ),
        "iat": now,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_refresh_token(
    user_id: str,
    expires_days: Optional[int] = None,
) -> str:
    """Create a JWT refresh token."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "type": REFRESH,
        "exp": now + timedelta(
            days=expires_days or settings.refresh_token_expire_days
        ),
        "iat": now,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_password_reset_token(email: str) -> str:
    """Create a short-lived token that authorizes one password reset."""
    now = datetime.now(timezone.utc)
    payload = {
        "email": email,
        "type": PASSWORD_RESET,
        "exp": now + timedelta(minutes=settings.password_reset_expire_minutes),
        "iat": now,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_email_link_token(email: str) -> str:
    """Create a one-click sign-in token for the email-link flow."""
    now = datetime.now(timezone.utc)
    payload = {
        "email": email,
        "type": EMAIL_LINK,
        "exp": now + timedelta(minutes=settings.email_link_expire_minutes),
        "iat": now,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_invite_token(email: str, company_id: str) -> str:
    """Create the token an invited user spends to set their first password."""
    now = datetime.now(timezone.utc)
    payload = {
        "email": email,
        "company_id": str(company_id),
        "type": INVITE,
        "exp": now + timedelta(days=settings.invite_expire_days),
        "iat": now,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict:
    """Verify and decode a locally issued JWT.

    Returns the payload dict on success.
    Raises TokenError on failure.
    """
    try:
        return jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")


def verify_local(token: str) -> Optional[dict]:
    """Return claims for a valid local access token, else None."""
    try:
        payload = verify_token(token)
    except TokenError:
        return None
    if payload.get("type") != ACCESS:
        return None
    if not payload.get("sub") or not payload.get("company_id"):
        return None
    return payload


def verify_external(token: str) -> Optional[dict]:
    """Return claims for a valid Supabase token, else None.

    An unset supabase_jwt_secret disables Supabase sign-in entirely.
    """
    secret = settings.supabase_jwt_secret
    if not secret:
        return None

    audience = settings.supabase_jwt_audience or None
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=audience,
            options={"verify_aud": audience is not None},
        )
    except jwt.InvalidTokenError:
        return None
    if not payload.get("sub"):
        return None
    return payload

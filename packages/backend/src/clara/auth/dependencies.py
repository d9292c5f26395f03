"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to extract
and validate the current principal from the request.

Two bearer-token sources, tried in this order:
1. Local access JWT (issued by /auth/login) → principal straight from claims
2. Supabase JWT → Supabase subject resolved to a local user (cached)

The resolved Principal is also stored on request.state.principal so
guards and handlers can read it without re-authenticating.
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from clara.auth.identity import IdentityCache, IdentityResolver
from clara.auth.strategies import LOCAL, TokenStrategy, default_strategies
from clara.db.engine import get_db
from clara.services.user_service import UserStore

logger = structlog.get_logger()

BEARER_PREFIX = "Bearer "

NO_TOKEN = "No authorization token provided"
INVALID_TOKEN = "Invalid or expired token"


@dataclass(frozen=True)
class Principal:
    """The authenticated caller for one request. Never persisted."""

    user_id: str
    company_id: str
    email: Optional[str] = None
    role: Optional[str] = None


class Authenticator:
    """Walks the token strategies in order and builds a Principal."""

    def __init__(
        self,
        resolver: IdentityResolver,
        strategies: Optional[list[TokenStrategy]] = None,
    ):
        self.resolver = resolver
        self.strategies = strategies if strategies is not None else default_strategies()

    async def authenticate(self, token: str) -> Optional[Principal]:
        for strategy in self.strategies:
            match = strategy.verify(token)
            if match is None:
                continue

            if match.source == LOCAL:
                claims = match.claims
                return Principal(
                    user_id=str(claims["sub"]),
                    company_id=str(claims["company_id"]),
                    email=claims.get("email"),
                    role=claims.get("role"),
                )

            user = await self.resolver.resolve(match.subject, match.claims.get("email"))
            if user is None:
                logger.warning(
                    "auth.external_user_not_found",
                    source=match.source,
                    sub=match.subject,
                )
                return None
            return Principal(
                user_id=user.id,
                company_id=user.company_id,
                email=user.email,
                role=user.role,
            )
        return None


def get_identity_cache(request: Request) -> IdentityCache:
    """The app-owned identity cache (created in create_app)."""
    return request.app.state.identity_cache


def get_user_store(db: AsyncSession = Depends(get_db)) -> UserStore:
    return UserStore(db)


def get_authenticator(
    users: UserStore = Depends(get_user_store),
    cache: IdentityCache = Depends(get_identity_cache),
) -> Authenticator:
    return Authenticator(IdentityResolver(users, cache))


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


async def get_current_user_optional(
    request: Request,
    authorization: Optional[str] = Header(None),
    authenticator: Authenticator = Depends(get_authenticator),
) -> Optional[Principal]:
    """Extract the current principal (optional — None if absent or invalid).

    Learn: This is the "soft" auth dependency, for endpoints that behave
    differently for signed-in and anonymous callers but never require auth.
    """
    principal = None
    token = _bearer_token(authorization)
    if token:
        principal = await authenticator.authenticate(token)
    request.state.principal = principal
    return principal


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    authenticator: Authenticator = Depends(get_authenticator),
) -> Principal:
    """Extract the current principal (required — 401 if missing or invalid)."""
    token = _bearer_token(authorization)
    if token is None:
        raise HTTPException(
            status_code=401,
            detail=NO_TOKEN,
            headers={"WWW-Authenticate": "Bearer"},
        )

    principal = await authenticator.authenticate(token)
    if principal is None:
        raise HTTPException(
            status_code=401,
            detail=INVALID_TOKEN,
            headers={"WWW-Authenticate": "Bearer"},
        )

    request.state.principal = principal
    return principal


def get_company_id(request: Request) -> Optional[str]:
    principal = getattr(request.state, "principal", None)
    return principal.company_id if principal else None


def get_user_id(request: Request) -> Optional[str]:
    principal = getattr(request.state, "principal", None)
    return principal.user_id if principal else None

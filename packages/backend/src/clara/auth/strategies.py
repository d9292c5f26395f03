"""Bearer-token verification strategies.

Learn: Instead of "try one decoder, catch, try the other", each trust root
is a strategy returning a tagged TokenMatch or None. The authenticator walks
an ordered list and stops at the first match, so a service-issued token is
never treated as a Supabase token and vice versa.
"""

from dataclasses import dataclass, field
from typing import Optional, Protocol

from clara.auth.jwt import verify_external, verify_local

LOCAL = "local"
SUPABASE = "supabase"


@dataclass(frozen=True)
class TokenMatch:
    """A token that verified against one trust root."""

    source: str  # LOCAL or SUPABASE
    claims: dict = field(default_factory=dict)

    @property
    def subject(self) -> Optional[str]:
        return self.claims.get("sub")


class TokenStrategy(Protocol):
    def verify(self, token: str) -> Optional[TokenMatch]:
        ...


class LocalTokenStrategy:
    """Access tokens issued by /auth/login and /auth/register."""

    def verify(self, token: str) -> Optional[TokenMatch]:
        claims = verify_local(token)
        if claims is None:
            return None
        return TokenMatch(source=LOCAL, claims=claims)


class SupabaseTokenStrategy:
    """Tokens issued by Supabase Auth; disabled when no secret is configured."""

    def verify(self, token: str) -> Optional[TokenMatch]:
        claims = verify_external(token)
        if claims is None:
            return None
        return TokenMatch(source=SUPABASE, claims=claims)


def default_strategies() -> list[TokenStrategy]:
    """Local first, then Supabase. Order matters."""
    return [LocalTokenStrategy(), SupabaseTokenStrategy()]

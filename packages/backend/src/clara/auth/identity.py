"""Supabase subject → local user resolution, with a bounded TTL cache.

Learn: A Supabase token only tells us the Supabase user id ("sub") and
usually an email. Resolving that to a local user costs one or two queries,
so results are cached per process:

- TTL: entries older than ttl_seconds are treated as absent on read.
- Capacity: when full, the oldest-inserted entry is evicted (insertion
  order, not LRU).
- invalidate(subject) / invalidate() drop entries after a user's
  credentials or profile change.

The database stays the source of truth; the cache only saves lookups.
"""

import time
from dataclasses import replace
from typing import Callable, Optional, Protocol

import structlog

from clara.db.models import UserRecord
from clara.logging import mask_email

logger = structlog.get_logger()

DEFAULT_TTL_SECONDS = 5 * 60
DEFAULT_MAX_SIZE = 500


class UserLookup(Protocol):
    """The slice of the user store the resolver depends on."""

    async def find_by_external_id(self, external_id: str) -> Optional[UserRecord]:
        ...

    async def find_by_email(self, email: str) -> Optional[UserRecord]:
        ...

    async def link_external_id(self, user_id: str, external_id: str) -> None:
        ...


class IdentityCache:
    """Process-local map of subject → (UserRecord, inserted_at)."""

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[UserRecord, float]] = {}

    def get(self, subject: str) -> Optional[UserRecord]:
        entry = self._entries.get(subject)
        if entry is None:
            return None
        record, inserted_at = entry
        if self._clock() - inserted_at >= self.ttl_seconds:
            self._entries.pop(subject, None)
            return None
        return record

    def set(self, subject: str, record: UserRecord) -> None:
        if subject in self._entries:
            # Re-insert so the refreshed entry counts as newest.
            self._entries.pop(subject, None)
        elif len(self._entries) >= self.max_size:
            oldest = next(iter(self._entries), None)
            if oldest is not None:
                self._entries.pop(oldest, None)
        self._entries[subject] = (record, self._clock())

    def invalidate(self, subject: Optional[str] = None) -> None:
        """Drop one subject, or everything when subject is None."""
        if subject is None:
            self._entries.clear()
        else:
            self._entries.pop(subject, None)

    def invalidate_user(self, user_id: str) -> None:
        """Drop every entry whose snapshot belongs to a local user id."""
        stale = [
            subject
            for subject, (record, _) in list(self._entries.items())
            if record.id == str(user_id)
        ]
        for subject in stale:
            self._entries.pop(subject, None)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, subject: object) -> bool:
        return subject in self._entries


class IdentityResolver:
    """Resolve a Supabase subject to a local user, linking by email once."""

    def __init__(self, users: UserLookup, cache: IdentityCache):
        self.users = users
        self.cache = cache

    async def resolve(
        self, subject: str, email_hint: Optional[str] = None
    ) -> Optional[UserRecord]:
        cached = self.cache.get(subject)
        if cached is not None:
            return cached

        user = await self.users.find_by_external_id(subject)

        if user is None and email_hint:
            user = await self._link_by_email(subject, email_hint)

        if user is not None:
            self.cache.set(subject, user)
        return user

    async def _link_by_email(
        self, subject: str, email: str
    ) -> Optional[UserRecord]:
        """Attach a Supabase identity to an existing, unlinked local user.

        Learn: This merges a password-registered account with its first
        Supabase sign-in. It is only as safe as Supabase's own email
        verification, so a user already linked to another subject is never
        re-linked.
        """
        user = await self.users.find_by_email(email.strip().lower())
        if user is None:
            return None

        if user.supabase_id and user.supabase_id != subject:
            logger.warning(
                "auth.external_email_linked_elsewhere",
                sub=subject,
                user_id=user.id,
            )
            return None

        if not user.supabase_id:
            await self.users.link_external_id(user.id, subject)
            user = replace(user, supabase_id=subject)
            logger.info(
                "auth.external_identity_linked",
                sub=subject,
                user_id=user.id,
                email=mask_email(user.email),
            )
        return user


def invalidate_identity(cache: IdentityCache, subject: Optional[str] = None) -> None:
    """Collaborator entry point: drop cached identities after a credential change."""
    cache.invalidate(subject)

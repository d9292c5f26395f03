"""User store — reads and writes for users and their companies.

Learn: Service layer separates business logic from HTTP routing.
Lookups used by authentication return detached UserRecord snapshots
(safe to cache across requests); management operations return ORM rows
for the routers to serialize.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clara.auth.password import hash_password, needs_rehash, verify_password
from clara.db.models import ROLE_ADMIN, ROLE_USER, Company, User, UserRecord


class EmailAlreadyRegisteredError(Exception):
    pass


class InvalidCredentialsError(Exception):
    pass


class UserNotFoundError(Exception):
    pass


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _as_uuid(value) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


class UserStore:
    """Business logic for users, scoped by company."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Identity lookups ───────────────────────────────

    async def find_by_external_id(self, external_id: str) -> Optional[UserRecord]:
        user = await self._first(select(User).where(User.supabase_id == external_id))
        return UserRecord.from_model(user) if user else None

    async def find_by_email(self, email: str) -> Optional[UserRecord]:
        user = await self.get_by_email(email)
        return UserRecord.from_model(user) if user else None

    async def find_by_id(self, user_id: str) -> Optional[UserRecord]:
        user = await self.get(user_id)
        return UserRecord.from_model(user) if user else None

    async def link_external_id(self, user_id: str, external_id: str) -> None:
        """Attach a Supabase id to a user. Re-linking the same pair is a no-op."""
        await self.db.execute(
            update(User)
            .where(User.id == _as_uuid(user_id))
            .values(supabase_id=external_id, updated_at=datetime.now(timezone.utc))
        )
        await self.db.commit()

    # ─── Rows ───────────────────────────────────────────

    async def get(self, user_id) -> Optional[User]:
        uid = _as_uuid(user_id)
        if uid is None:
            return None
        return await self.db.get(User, uid)

    async def get_by_email(self, email: str) -> Optional[User]:
        return await self._first(
            select(User).where(User.email == normalize_email(email))
        )

    async def get_company(self, company_id) -> Optional[Company]:
        cid = _as_uuid(company_id)
        if cid is None:
            return None
        return await self.db.get(Company, cid)

    async def list_company_users(self, company_id) -> list[User]:
        result = await self.db.execute(
            select(User)
            .where(User.company_id == _as_uuid(company_id))
            .order_by(User.created_at.asc(), User.email.asc())
        )
        return list(result.scalars().all())

    # ─── Registration / login ───────────────────────────

    async def create_company_with_admin(
        self,
        *,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        company_name: str,
    ) -> User:
        """Create a company and its first (admin) user."""
        email = normalize_email(email)
        if await self.get_by_email(email):
            raise EmailAlreadyRegisteredError(email)

        company = Company(name=company_name.strip())
        self.db.add(company)
        await self.db.flush()

        user = User(
            company_id=company.id,
            email=email,
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            role=ROLE_ADMIN,
            active=True,
            password_hash=hash_password(password),
        )
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def invite_user(
        self,
        company_id,
        *,
        email: str,
        first_name: str,
        last_name: str = "",
        role: str = ROLE_USER,
    ) -> User:
        """Add a passwordless member to a company; they set a password via the invite link."""
        email = normalize_email(email)
        if await self.get_by_email(email):
            raise EmailAlreadyRegisteredError(email)

        user = User(
            company_id=_as_uuid(company_id),
            email=email,
            first_name=first_name.strip(),
            last_name=(last_name or "").strip(),
            role=ROLE_ADMIN if role == ROLE_ADMIN else ROLE_USER,
            active=True,
            password_hash=None,
        )
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def authenticate(self, email: str, password: str) -> User:
        """Check email/password; the same error covers unknown email and bad password."""
        user = await self.get_by_email(email)
        if not user or not user.password_hash or not user.active:
            raise InvalidCredentialsError()
        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError()
        if needs_rehash(user.password_hash):
            user.password_hash = hash_password(password)
            await self.db.commit()
        return user

    async def record_login(self, user: User) -> None:
        user.last_login = datetime.now(timezone.utc)
        await self.db.commit()

    async def change_password(
        self, user_id, current_password: str, new_password: str
    ) -> User:
        user = await self.get(user_id)
        if not user:
            raise UserNotFoundError(str(user_id))
        if not user.password_hash or not verify_password(
            current_password, user.password_hash
        ):
            raise InvalidCredentialsError()
        user.password_hash = hash_password(new_password)
        await self.db.commit()
        return user

    async def update_password_by_email(self, email: str, new_password: str) -> User:
        user = await self.get_by_email(email)
        if not user:
            raise UserNotFoundError(email)
        user.password_hash = hash_password(new_password)
        await self.db.commit()
        return user

    # ─── Profile / membership ───────────────────────────

    async def update_profile(
        self,
        user_id,
        *,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> User:
        user = await self.get(user_id)
        if not user:
            raise UserNotFoundError(str(user_id))

        if email is not None:
            email = normalize_email(email)
            if email != user.email:
                existing = await self.get_by_email(email)
                if existing and existing.id != user.id:
                    raise EmailAlreadyRegisteredError(email)
                user.email = email
        if first_name is not None:
            user.first_name = first_name.strip()
        if last_name is not None:
            user.last_name = last_name.strip()

        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def update_membership(
        self,
        user: User,
        *,
        role: Optional[str] = None,
        active: Optional[bool] = None,
    ) -> User:
        if role is not None:
            user.role = ROLE_ADMIN if role == ROLE_ADMIN else ROLE_USER
        if active is not None:
            user.active = bool(active)
        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def delete_user(self, user: User) -> None:
        await self.db.delete(user)
        await self.db.commit()

    async def _first(self, stmt) -> Optional[User]:
        result = await self.db.execute(stmt)
        return result.scalars().first()

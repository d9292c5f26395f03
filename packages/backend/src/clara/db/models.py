"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Generic column types (Uuid, String, DateTime) keep the
models portable between Postgres in production and SQLite in tests.

Key concepts:
- Company is the tenant boundary; every user and every stored ServiceTrade
  credential belongs to exactly one company.
- email is unique system-wide (one company per email address).
- supabase_id links a local user to a Supabase Auth identity; once set it is
  unique across all users.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


ROLE_ADMIN = "admin"
ROLE_USER = "user"


class Company(Base):
    """Multi-tenant root. Users and integration credentials hang off it."""

    __tablename__ = "companies"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    default_timezone: Mapped[str] = mapped_column(
        String(64), nullable=False, default="America/New_York"
    )
    address_line1: Mapped[Optional[str]] = mapped_column(String(500))
    city: Mapped[Optional[str]] = mapped_column(String(255))
    state: Mapped[Optional[str]] = mapped_column(String(255))
    zipcode: Mapped[Optional[str]] = mapped_column(String(50))
    country: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=utcnow
    )

    users: Mapped[list["User"]] = relationship(back_populates="company")


class User(Base):
    """A person who signs in, either with a password or via Supabase."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ROLE_USER
    )  # admin, user
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    password_hash: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )  # nullable for invited / Supabase-only users
    supabase_id: Mapped[Optional[str]] = mapped_column(
        String(64), unique=True, nullable=True
    )
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=utcnow
    )

    company: Mapped["Company"] = relationship(back_populates="users")

    @property
    def name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p).strip()


class CompanyServiceTradeCredentials(Base):
    """ServiceTrade username/password for one company (one row per company)."""

    __tablename__ = "company_servicetrade"

    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("companies.id", ondelete="CASCADE"), primary_key=True
    )
    username: Mapped[str] = mapped_column(String(255), nullable=False)
    password: Mapped[str] = mapped_column(String(255), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=utcnow
    )


@dataclass(frozen=True)
class UserRecord:
    """Detached snapshot of a user row.

    Learn: The identity cache outlives the request's database session, so it
    must hold plain values, not ORM instances bound to a closed session.
    """

    id: str
    email: str
    company_id: str
    role: str
    active: bool
    supabase_id: Optional[str] = None
    password_hash: Optional[str] = None

    @classmethod
    def from_model(cls, user: User) -> "UserRecord":
        return cls(
            id=str(user.id),
            email=user.email,
            company_id=str(user.company_id),
            role=user.role,
            active=user.active,
            supabase_id=user.supabase_id,
            password_hash=user.password_hash,
        )

"""Test fixtures — in-memory SQLite per test, real auth pipeline.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Settings are read once at import, so the CLARA_* env vars below are set
   before anything from clara is imported.
2. Each test gets its own aiosqlite in-memory engine (StaticPool keeps the
   single connection alive) with the schema created from the models.
3. get_db is overridden to hand that session to every request, and the
   identity cache and ServiceTrade client on app.state are replaced with
   fresh instances so no state leaks between tests.

Unlike routes that only need *a* caller, auth is the thing under test here,
so get_current_user is NOT overridden: tests register, log in, and send
real bearer tokens.
"""

import os

os.environ.setdefault("CLARA_ENVIRONMENT", "development")
os.environ.setdefault("CLARA_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("CLARA_JWT_SECRET", "test-local-secret-0123456789abcdef0123")
os.environ.setdefault(
    "CLARA_SUPABASE_JWT_SECRET", "test-supabase-secret-0123456789abcdef01"
)
os.environ.setdefault("CLARA_SERVICETRADE_BASE_URL", "https://st.example.test")
os.environ.setdefault("CLARA_BCRYPT_ROUNDS", "4")

import time  # noqa: E402
import uuid  # noqa: E402
from urllib.parse import parse_qs, urlsplit  # noqa: E402

import httpx  # noqa: E402
import jwt  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from clara.api import auth as auth_api  # noqa: E402
from clara.api import users as users_api  # noqa: E402
from clara.auth.identity import IdentityCache  # noqa: E402
from clara.config import settings  # noqa: E402
from clara.db.engine import get_db  # noqa: E402
from clara.db.models import Base  # noqa: E402
from clara.main import app  # noqa: E402
from clara.services.servicetrade import ServiceTradeClient  # noqa: E402

ST_BASE = settings.servicetrade_base_url
DEFAULT_PASSWORD = "secure_password_123"


@pytest_asyncio.fixture()
async def db_session():
    """Per-test session on a throwaway in-memory database."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session = AsyncSession(bind=engine, expire_on_commit=False)
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


@pytest_asyncio.fixture()
async def client(db_session):
    """HTTP client for the app with get_db pointed at the test session."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.state.identity_cache = IdentityCache()
    app.state.servicetrade = ServiceTradeClient(httpx.AsyncClient(), base_url=ST_BASE)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await app.state.servicetrade.http.aclose()
    app.dependency_overrides.clear()


@pytest.fixture
def sent_links(monkeypatch):
    """Collect every outbound account link instead of logging it."""
    sent = []

    def record(event, email, link):
        sent.append({"event": event, "email": email, "link": link})

    monkeypatch.setattr(auth_api, "deliver_link", record)
    monkeypatch.setattr(users_api, "deliver_link", record)
    return sent


# ═══════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}@example.com"


async def register(client, email=None, password=DEFAULT_PASSWORD, company_name="Acme HVAC"):
    """Register a company + admin; returns the token response JSON."""
    r = await client.post(
        "/api/v1/auth/register",
        json={
            "email": email or unique_email(),
            "password": password,
            "first_name": "Test",
            "last_name": "User",
            "company_name": company_name,
        },
    )
    assert r.status_code == 201, r.text
    return r.json()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def supabase_token(sub: str, email=None, audience="authenticated", **extra) -> str:
    """A token shaped like the ones Supabase Auth issues."""
    now = int(time.time())
    payload = {"sub": sub, "aud": audience, "iat": now, "exp": now + 3600, **extra}
    if email is not None:
        payload["email"] = email
    return jwt.encode(payload, settings.supabase_jwt_secret, algorithm="HS256")


def link_token(link: str) -> str:
    return parse_qs(urlsplit(link).query)["token"][0]

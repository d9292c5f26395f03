"""Guard tests — company match and role checks.

Learn: The guards only read the Principal, so these tests mount them on a
tiny app and override get_current_user with a fixed caller. The "no
principal" case keeps the real dependency to show the guard never runs
before authentication does.
"""

from typing import Optional

import pytest
import pytest_asyncio
from fastapi import Depends, FastAPI, Request
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel

from clara.auth.dependencies import (
    Principal,
    get_company_id,
    get_current_user,
    get_user_id,
)
from clara.auth.guards import require_company_match, require_role
from clara.auth.identity import IdentityCache
from clara.db.engine import get_db

from conftest import bearer, register

COMPANY = "1a2b3c4d-1111-4111-8111-abcdef111111"
OTHER_COMPANY = "22222222-2222-2222-2222-222222222222"


class Job(BaseModel):
    company_id: Optional[str] = None
    title: str = "Quarterly maintenance"


def build_app() -> FastAPI:
    guarded = FastAPI()

    @guarded.get("/companies/{company_id}/jobs")
    async def jobs_by_path(principal: Principal = Depends(require_company_match())):
        return {"company_id": principal.company_id}

    @guarded.get("/jobs")
    async def jobs_by_query(principal: Principal = Depends(require_company_match())):
        return {"company_id": principal.company_id}

    @guarded.post("/jobs")
    async def create_job(job: Job, principal: Principal = Depends(require_company_match())):
        return {"title": job.title}

    @guarded.get("/tenants/{tenant}/jobs")
    async def jobs_by_custom_field(
        principal: Principal = Depends(require_company_match("tenant")),
    ):
        return {"ok": True}

    @guarded.get("/admin")
    async def admin_only(principal: Principal = Depends(require_role("admin"))):
        return {"ok": True}

    @guarded.get("/staff")
    async def staff(principal: Principal = Depends(require_role(["admin", "user"]))):
        return {"ok": True}

    @guarded.get("/whoami", dependencies=[Depends(require_role("user"))])
    async def whoami(request: Request):
        return {"user_id": get_user_id(request), "company_id": get_company_id(request)}

    return guarded


@pytest_asyncio.fixture()
async def guarded_client():
    """Client whose caller is a 'user' in COMPANY."""
    guarded = build_app()

    def as_member(request: Request) -> Principal:
        principal = Principal(
            user_id="u-1", company_id=COMPANY, email="u1@example.com", role="user"
        )
        request.state.principal = principal
        return principal

    guarded.dependency_overrides[get_current_user] = as_member
    async with AsyncClient(
        transport=ASGITransport(app=guarded), base_url="http://test"
    ) as ac:
        yield ac


# ═══════════════════════════════════════════════════════════
# require_company_match
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_path_company_match(guarded_client):
    r = await guarded_client.get(f"/companies/{COMPANY}/jobs")
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_path_company_mismatch(guarded_client):
    r = await guarded_client.get(f"/companies/{OTHER_COMPANY}/jobs")
    assert r.status_code == 403
    assert r.json()["detail"] == "Access denied: company mismatch"


@pytest.mark.asyncio
async def test_no_company_named_passes(guarded_client):
    r = await guarded_client.get("/jobs")
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_query_company_mismatch(guarded_client):
    r = await guarded_client.get("/jobs", params={"company_id": OTHER_COMPANY})
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_body_company_mismatch(guarded_client):
    r = await guarded_client.post("/jobs", json={"company_id": OTHER_COMPANY})
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_body_company_match(guarded_client):
    r = await guarded_client.post("/jobs", json={"company_id": COMPANY, "title": "Fix RTU"})
    assert r.status_code == 200
    assert r.json()["title"] == "Fix RTU"


@pytest.mark.asyncio
async def test_path_takes_precedence_over_query(guarded_client):
    r = await guarded_client.get(
        f"/companies/{COMPANY}/jobs", params={"company_id": OTHER_COMPANY}
    )
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_company_match_ignores_case(guarded_client):
    r = await guarded_client.post("/jobs", json={"company_id": COMPANY.upper()})
    assert r.status_code == 200
    r = await guarded_client.get(f"/companies/{COMPANY.upper()}/jobs")
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_custom_field_name(guarded_client):
    assert (await guarded_client.get(f"/tenants/{COMPANY}/jobs")).status_code == 200
    assert (await guarded_client.get(f"/tenants/{OTHER_COMPANY}/jobs")).status_code == 403


# ═══════════════════════════════════════════════════════════
# require_role
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_role_not_allowed(guarded_client):
    r = await guarded_client.get("/admin")
    assert r.status_code == 403
    assert r.json()["detail"] == "Insufficient permissions"


@pytest.mark.asyncio
async def test_role_list_allowed(guarded_client):
    assert (await guarded_client.get("/staff")).status_code == 200


@pytest.mark.asyncio
async def test_guards_without_principal_answer_401():
    guarded = build_app()

    async def no_db():
        yield None

    guarded.dependency_overrides[get_db] = no_db
    guarded.state.identity_cache = IdentityCache()
    async with AsyncClient(
        transport=ASGITransport(app=guarded), base_url="http://test"
    ) as ac:
        assert (await ac.get("/admin")).status_code == 401
        assert (await ac.get(f"/companies/{COMPANY}/jobs")).status_code == 401


@pytest.mark.asyncio
async def test_principal_helpers_read_request_state(guarded_client):
    r = await guarded_client.get("/whoami")
    assert r.json() == {"user_id": "u-1", "company_id": COMPANY}


def test_require_role_needs_a_role():
    with pytest.raises(ValueError):
        require_role()


# ═══════════════════════════════════════════════════════════
# Guards on the real routes
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_company_routes_are_tenant_scoped(client):
    acme = await register(client, company_name="Acme HVAC")
    other = await register(client, company_name="Other Mechanical")

    own = await client.get(
        f"/api/v1/companies/{acme['user']['company_id']}",
        headers=bearer(acme["access_token"]),
    )
    assert own.status_code == 200
    assert own.json()["name"] == "Acme HVAC"

    foreign = await client.get(
        f"/api/v1/companies/{other['user']['company_id']}",
        headers=bearer(acme["access_token"]),
    )
    assert foreign.status_code == 403


@pytest.mark.asyncio
async def test_company_id_spelling_does_not_matter(client):
    acme = await register(client)
    own_id = acme["user"]["company_id"]

    r = await client.get(
        f"/api/v1/companies/{own_id.upper()}",
        headers=bearer(acme["access_token"]),
    )
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_admin_updates_company(client):
    acme = await register(client)
    r = await client.patch(
        f"/api/v1/companies/{acme['user']['company_id']}",
        headers=bearer(acme["access_token"]),
        json={"name": "Acme Heating & Cooling", "city": "Raleigh"},
    )
    assert r.status_code == 200
    assert r.json()["name"] == "Acme Heating & Cooling"
    assert r.json()["city"] == "Raleigh"

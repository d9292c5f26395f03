"""Health endpoint tests."""

import pytest

from clara.config import settings


@pytest.mark.asyncio
async def test_health_returns_ok(client):
    """Health endpoint should return server status and version."""
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["server"] == "ok"
    assert data["database"] == "ok"
    assert data["status"] == "healthy"
    assert "version" in data


@pytest.mark.asyncio
async def test_health_reports_supabase_and_cache(client, monkeypatch):
    resp = await client.get("/api/v1/health")
    assert resp.json()["supabase_auth"] == "enabled"
    assert resp.json()["identity_cache_entries"] == 0

    monkeypatch.setattr(settings, "supabase_jwt_secret", "")
    resp = await client.get("/api/v1/health")
    assert resp.json()["supabase_auth"] == "disabled"

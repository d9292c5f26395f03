"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running and the
database answers on the request's own session. Supabase sign-in is
reported as enabled or not, without a network call.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from clara import __version__
from clara.config import settings
from clara.db.engine import get_db

router = APIRouter()


@router.get("/health")
async def health_check(request: Request, db: AsyncSession = Depends(get_db)):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    status = "healthy" if checks["database"] == "ok" else "degraded"

    return {
        "status": status,
        **checks,
        "supabase_auth": "enabled" if settings.supabase_jwt_secret else "disabled",
        "identity_cache_entries": len(request.app.state.identity_cache),
    }

"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Auth is applied per route via Depends(get_current_user) or one of
the guards in clara.auth.guards, which all build on it. Health and the
token-issuing auth routes are open (no auth required).
"""

from fastapi import APIRouter

from clara.api.auth import router as auth_router
from clara.api.companies import router as companies_router
from clara.api.health import router as health_router
from clara.api.servicetrade import router as servicetrade_router
from clara.api.users import router as users_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
api_router.include_router(companies_router, tags=["companies"])
api_router.include_router(users_router, tags=["users"])
api_router.include_router(servicetrade_router, tags=["servicetrade"])

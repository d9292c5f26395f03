"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Process-wide state (the identity cache and the ServiceTrade
client with its session cache) is built here and hung on app.state, so
each app (and each test) owns isolated instances. Lifespan only handles
shutdown: closing the HTTP client and the database engine.
"""

from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clara import __version__
from clara.api import api_router
from clara.auth.identity import IdentityCache
from clara.config import settings
from clara.logging import configure_logging
from clara.services.servicetrade import ServiceTradeClient

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info(
        "clara.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
        supabase_auth=bool(settings.supabase_jwt_secret),
    )

    yield

    logger.info("clara.shutdown")
    await app.state.servicetrade.http.aclose()

    from clara.db.engine import engine
    await engine.dispose()


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the full error, answer with a generic 500."""
    logger.exception(
        "server.unhandled_error",
        method=request.method,
        path=request.url.path,
        error=str(exc),
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    configure_logging(debug=settings.debug, json_logs=not settings.is_development)

    app = FastAPI(
        title="Clara Confirms API",
        description="Authentication, company-scoped users, and the ServiceTrade integration",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.identity_cache = IdentityCache(
        max_size=settings.identity_cache_max_size,
        ttl_seconds=settings.identity_cache_ttl_seconds,
    )
    app.state.servicetrade = ServiceTradeClient(
        httpx.AsyncClient(timeout=settings.servicetrade_timeout_seconds),
        base_url=settings.servicetrade_base_url,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → Security → RequestId → handler

    from clara.middleware.request_id import RequestIdMiddleware
    from clara.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: clara.main:app)
app = create_app()

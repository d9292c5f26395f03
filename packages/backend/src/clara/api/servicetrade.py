"""ServiceTrade integration API.

Learn: Credentials live per company in company_servicetrade; the live
session lives in the app-wide ServiceTradeClient. Routes never echo
upstream error payloads outside development; callers get a 502 with a
generic message instead.

- POST   /integrations/servicetrade/credentials → save + connect
- POST   /integrations/servicetrade/login       → connect with saved creds
- GET    /integrations/servicetrade/status      → session check (reconnects)
- DELETE /integrations/servicetrade/session     → close session, keep creds
- POST   /integrations/servicetrade/proxy       → authenticated passthrough
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from clara.auth.dependencies import Principal, get_current_user
from clara.config import settings
from clara.db.engine import get_db
from clara.schemas.servicetrade import (
    ConnectionStatus,
    CredentialsSave,
    ProxyRequest,
    ProxyResponse,
)
from clara.services.credential_service import CredentialStore
from clara.services.servicetrade import ServiceTradeClient

logger = structlog.get_logger()

router = APIRouter(prefix="/integrations/servicetrade")

UPSTREAM_FAILED = "ServiceTrade request failed"


def get_servicetrade(request: Request) -> ServiceTradeClient:
    """The app-owned ServiceTrade client (created in create_app)."""
    return request.app.state.servicetrade


def get_credential_store(db: AsyncSession = Depends(get_db)) -> CredentialStore:
    return CredentialStore(db)


def _upstream_error(detail: str) -> HTTPException:
    return HTTPException(
        status_code=502,
        detail=detail if settings.is_development else UPSTREAM_FAILED,
    )


@router.post("/credentials", response_model=ConnectionStatus)
async def save_credentials(
    body: CredentialsSave,
    principal: Principal = Depends(get_current_user),
    store: CredentialStore = Depends(get_credential_store),
    servicetrade: ServiceTradeClient = Depends(get_servicetrade),
):
    """Save ServiceTrade username/password for the caller's company and connect."""
    username = body.username.strip()
    await store.upsert_credentials(principal.company_id, username, body.password)

    session = await servicetrade.login(principal.company_id, username, body.password)
    if session is None:
        raise HTTPException(
            status_code=403,
            detail="Invalid ServiceTrade credentials. Credentials were saved; check them and try again.",
        )
    return ConnectionStatus(
        connected=True,
        has_credentials=True,
        user=session.user,
        message="Connected to ServiceTrade",
    )


@router.post("/login", response_model=ConnectionStatus)
async def login_with_saved_credentials(
    principal: Principal = Depends(get_current_user),
    store: CredentialStore = Depends(get_credential_store),
    servicetrade: ServiceTradeClient = Depends(get_servicetrade),
):
    credentials = await store.get_credentials(principal.company_id)
    if credentials is None:
        raise HTTPException(
            status_code=400,
            detail="ServiceTrade credentials not configured for this company",
        )

    session = await servicetrade.login(
        principal.company_id, credentials.username, credentials.password
    )
    if session is None:
        raise HTTPException(status_code=403, detail="Invalid ServiceTrade credentials")
    return ConnectionStatus(
        connected=True,
        has_credentials=True,
        user=session.user,
        message="Successfully authenticated with ServiceTrade",
    )


@router.get("/status", response_model=ConnectionStatus)
async def connection_status(
    principal: Principal = Depends(get_current_user),
    store: CredentialStore = Depends(get_credential_store),
    servicetrade: ServiceTradeClient = Depends(get_servicetrade),
):
    """Report the company's connection, reconnecting with saved credentials if needed."""
    session = await servicetrade.get_session(principal.company_id)
    if session is not None:
        return ConnectionStatus(connected=True, has_credentials=True, user=session.user)

    credentials = await store.get_credentials(principal.company_id)
    if credentials is None:
        return ConnectionStatus(
            connected=False,
            has_credentials=False,
            message="No ServiceTrade credentials saved. Connect with username and password.",
        )

    session = await servicetrade.login(
        principal.company_id, credentials.username, credentials.password
    )
    if session is not None:
        return ConnectionStatus(connected=True, has_credentials=True, user=session.user)

    return ConnectionStatus(
        connected=False,
        has_credentials=True,
        message="Saved credentials are invalid. Update them to reconnect.",
    )


@router.delete("/session", status_code=204)
async def close_session(
    principal: Principal = Depends(get_current_user),
    servicetrade: ServiceTradeClient = Depends(get_servicetrade),
):
    """Close the company's ServiceTrade session. Saved credentials are kept."""
    await servicetrade.logout(principal.company_id)
    return Response(status_code=204)


@router.post("/proxy", response_model=ProxyResponse)
async def proxy(
    body: ProxyRequest,
    principal: Principal = Depends(get_current_user),
    store: CredentialStore = Depends(get_credential_store),
    servicetrade: ServiceTradeClient = Depends(get_servicetrade),
):
    """Forward one call to ServiceTrade as the caller's company."""
    credentials = await store.get_credentials(principal.company_id)
    result = await servicetrade.request(
        principal.company_id,
        body.method,
        body.path,
        body=body.body,
        credentials=credentials,
    )

    if result.status >= 500:
        logger.warning(
            "servicetrade.proxy_upstream_error",
            company_id=principal.company_id,
            status=result.status,
            path=body.path,
        )
        raise _upstream_error(str(result.messages or result.data))

    if not result.ok and not settings.is_development:
        return ProxyResponse(
            ok=False, status=result.status, messages={"error": [UPSTREAM_FAILED]}
        )

    return ProxyResponse(
        ok=result.ok,
        status=result.status,
        data=result.data,
        messages=result.messages,
    )

"""Authorization guards — composable dependency factories.

Learn: Guards run after authentication and only look at the Principal.
They answer 403 ("not permitted"), never 401 ("log in"), once a
principal exists, so the two failure kinds stay distinguishable.

Usage:
    @router.get("/companies/{company_id}")
    async def get_company(
        principal: Principal = Depends(require_company_match("company_id")),
    ): ...

    @router.delete("/users/{user_id}")
    async def delete_user(
        principal: Principal = Depends(require_role("admin")),
    ): ...
"""

import uuid
from typing import Any, Callable, Optional, Union

import structlog
from fastapi import Depends, HTTPException, Request

from clara.auth.dependencies import Principal, get_current_user

logger = structlog.get_logger()


async def _json_body(request: Request) -> Optional[dict]:
    if "application/json" not in request.headers.get("content-type", ""):
        return None
    try:
        body = await request.json()
    except (ValueError, UnicodeDecodeError):
        return None
    return body if isinstance(body, dict) else None


async def requested_value(request: Request, field_name: str) -> Optional[Any]:
    """Look a field up in path params, then JSON body, then query string."""
    value = request.path_params.get(field_name)
    if value:
        return value

    body = await _json_body(request)
    if body is not None and body.get(field_name):
        return body[field_name]

    return request.query_params.get(field_name) or None


def _same_company(requested: Any, company_id: Any) -> bool:
    """Compare company ids as UUIDs when both parse, else as lower-cased text."""
    try:
        return uuid.UUID(str(requested)) == uuid.UUID(str(company_id))
    except ValueError:
        return str(requested).strip().lower() == str(company_id).strip().lower()


def require_company_match(field_name: str = "company_id") -> Callable:
    """Dependency factory: reject requests naming another company.

    A request that names no company at all passes; the guard only objects
    to an explicit mismatch.
    """

    async def check_company(
        request: Request,
        principal: Principal = Depends(get_current_user),
    ) -> Principal:
        requested = await requested_value(request, field_name)
        if requested is not None and not _same_company(requested, principal.company_id):
            logger.warning(
                "auth.company_mismatch",
                user_id=principal.user_id,
                user_company_id=principal.company_id,
                requested_company_id=str(requested),
            )
            raise HTTPException(
                status_code=403, detail="Access denied: company mismatch"
            )
        return principal

    return check_company


def require_role(*roles: Union[str, list[str], tuple[str, ...]]) -> Callable:
    """Dependency factory: allow only principals holding one of the roles."""
    allowed: set[str] = set()
    for role in roles:
        if isinstance(role, (list, tuple, set)):
            allowed.update(role)
        else:
            allowed.add(role)
    if not allowed:
        raise ValueError("require_role needs at least one role")

    async def check_role(
        principal: Principal = Depends(get_current_user),
    ) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return principal

    return check_role

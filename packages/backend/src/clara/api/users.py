"""Users API — manage the members of the caller's company.

Learn: Every route is admin-only except listing, and every lookup is
checked against the caller's company_id, so one company's admin can never
touch another company's users. Admins cannot demote, deactivate, or delete
themselves.

Invites create a passwordless member and hand out a 7-day link; the
invitee spends it on /auth/reset-password to set their first password.
"""

import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException

from clara.auth.dependencies import (
    Principal,
    get_current_user,
    get_identity_cache,
    get_user_store,
)
from clara.auth.guards import require_role
from clara.auth.identity import IdentityCache
from clara.auth.jwt import create_invite_token
from clara.db.models import ROLE_ADMIN, User
from clara.schemas.auth import MessageResponse, UserRead
from clara.schemas.company import InviteRequest, MembershipUpdate
from clara.services.links import RESET_PASSWORD_PATH, build_link, deliver_link
from clara.services.user_service import EmailAlreadyRegisteredError, UserStore

logger = structlog.get_logger()

router = APIRouter(prefix="/users")

_admin = require_role(ROLE_ADMIN)


async def _company_user(users: UserStore, user_id: uuid.UUID, principal: Principal) -> User:
    user = await users.get(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if str(user.company_id) != principal.company_id:
        raise HTTPException(status_code=403, detail="Access denied")
    return user


@router.get("", response_model=list[UserRead])
async def list_users(
    principal: Principal = Depends(get_current_user),
    users: UserStore = Depends(get_user_store),
):
    return await users.list_company_users(principal.company_id)


@router.post("/invite", response_model=UserRead, status_code=201)
async def invite_user(
    body: InviteRequest,
    principal: Principal = Depends(_admin),
    users: UserStore = Depends(get_user_store),
):
    """Add a member to the caller's company and send them an invite link."""
    try:
        user = await users.invite_user(
            principal.company_id,
            email=body.email,
            first_name=body.first_name,
            last_name=body.last_name,
            role=body.role,
        )
    except EmailAlreadyRegisteredError:
        raise HTTPException(status_code=409, detail="Email is already registered")

    token = create_invite_token(user.email, principal.company_id)
    deliver_link(
        "users.invite_issued",
        user.email,
        build_link(RESET_PASSWORD_PATH, token, invite="true"),
    )
    logger.info(
        "users.invited",
        invited_user_id=str(user.id),
        invited_by=principal.user_id,
        company_id=principal.company_id,
        role=user.role,
    )
    return user


@router.patch("/{user_id}", response_model=UserRead)
async def update_user(
    user_id: uuid.UUID,
    body: MembershipUpdate,
    principal: Principal = Depends(_admin),
    users: UserStore = Depends(get_user_store),
    cache: IdentityCache = Depends(get_identity_cache),
):
    """Change a member's role or active flag."""
    if body.role is None and body.active is None:
        raise HTTPException(status_code=400, detail="No updates provided")

    user = await _company_user(users, user_id, principal)

    if str(user.id) == principal.user_id:
        if body.active is False:
            raise HTTPException(status_code=400, detail="You cannot deactivate yourself")
        if body.role is not None and body.role != ROLE_ADMIN:
            raise HTTPException(
                status_code=400, detail="You cannot remove your own admin role"
            )

    user = await users.update_membership(user, role=body.role, active=body.active)
    cache.invalidate_user(str(user.id))

    logger.info(
        "users.updated",
        target_user_id=str(user.id),
        updated_by=principal.user_id,
        role=body.role,
        active=body.active,
    )
    return user


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: uuid.UUID,
    principal: Principal = Depends(_admin),
    users: UserStore = Depends(get_user_store),
    cache: IdentityCache = Depends(get_identity_cache),
):
    user = await _company_user(users, user_id, principal)
    if str(user.id) == principal.user_id:
        raise HTTPException(status_code=400, detail="You cannot delete yourself")

    await users.delete_user(user)
    cache.invalidate_user(str(user_id))

    logger.info(
        "users.deleted",
        deleted_user_id=str(user_id),
        deleted_by=principal.user_id,
        company_id=principal.company_id,
    )
    return MessageResponse(message="User deleted")

"""Auth API — registration, login, tokens, and password management.

Learn: Routes for the local (email/password) identity:
- POST /auth/register → create a company + admin user → JWT tokens
- POST /auth/login → email/password → JWT tokens
- POST /auth/refresh → refresh token → new access token
- GET /auth/me → current user info
- PATCH /auth/profile → update name/email
- POST /auth/change-password, /auth/forgot-password, /auth/reset-password
  (reset-password also spends invite tokens: the invited user's first password)
- POST /auth/magic-link → email a one-click sign-in link
- POST /auth/verify-email-link → sign-in link token → JWT tokens
- POST /auth/logout → client-side token drop (logged only)
- GET /auth/session → optional auth: who is calling, if anyone

Anything that changes a user's credentials or profile drops that user's
cached Supabase identity so the next request reloads it.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException

from clara.auth.dependencies import (
    Principal,
    get_current_user,
    get_current_user_optional,
    get_identity_cache,
    get_user_store,
)
from clara.auth.identity import IdentityCache
from clara.auth.jwt import (
    EMAIL_LINK,
    INVITE,
    PASSWORD_RESET,
    REFRESH,
    TokenError,
    create_access_token,
    create_email_link_token,
    create_password_reset_token,
    create_refresh_token,
    verify_token,
)
from clara.db.models import User
from clara.logging import mask_email
from clara.schemas.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    MagicLinkRequest,
    MessageResponse,
    ProfileUpdate,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    UserRead,
    VerifyEmailLinkRequest,
)
from clara.services.links import (
    LINK_LOGIN_PATH,
    RESET_PASSWORD_PATH,
    build_link,
    deliver_link,
)
from clara.services.user_service import (
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    UserNotFoundError,
    UserStore,
    normalize_email,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/auth")

RESET_REQUESTED_MESSAGE = (
    "If an account exists with this email, you will receive a password reset link."
)
SIGN_IN_LINK_MESSAGE = (
    "If an account exists with this email, you will receive a sign-in link."
)
INVALID_LINK = "Invalid or expired link"


def _issue_tokens(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(
            str(user.id), str(user.company_id), email=user.email, role=user.role
        ),
        refresh_token=create_refresh_token(str(user.id)),
        user=UserRead.model_validate(user),
    )


# ─── Register ────────────────────────────────────────────


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(body: RegisterRequest, users: UserStore = Depends(get_user_store)):
    """Create a new company with its first (admin) user."""
    try:
        user = await users.create_company_with_admin(
            email=body.email,
            password=body.password,
            first_name=body.first_name,
            last_name=body.last_name,
            company_name=body.company_name,
        )
    except EmailAlreadyRegisteredError:
        raise HTTPException(status_code=409, detail="Email already registered")

    logger.info(
        "auth.registered",
        user_id=str(user.id),
        company_id=str(user.company_id),
    )
    return _issue_tokens(user)


# ─── Login ───────────────────────────────────────────────


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, users: UserStore = Depends(get_user_store)):
    """Login with email and password → JWT tokens."""
    try:
        user = await users.authenticate(body.email, body.password)
    except InvalidCredentialsError:
        logger.info("auth.login_failed", email=mask_email(body.email))
        raise HTTPException(status_code=401, detail="Invalid credentials")

    await users.record_login(user)
    return _issue_tokens(user)


# ─── Refresh ────────────────────────────────────────────


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, users: UserStore = Depends(get_user_store)):
    """Exchange a refresh token for a new access + refresh pair.

    The access token is rebuilt from the current user row, so role or
    company changes take effect on refresh.
    """
    try:
        payload = verify_token(body.refresh_token)
    except TokenError as e:
        raise HTTPException(status_code=401, detail=str(e))

    if payload.get("type") != REFRESH:
        raise HTTPException(status_code=401, detail="Not a refresh token")

    user = await users.get(payload.get("sub"))
    if not user or not user.active:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    return _issue_tokens(user)


# ─── Current user ───────────────────────────────────────


@router.get("/me", response_model=UserRead)
async def get_me(
    principal: Principal = Depends(get_current_user),
    users: UserStore = Depends(get_user_store),
):
    """Get the current authenticated user's info."""
    user = await users.get(principal.user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.patch("/profile", response_model=UserRead)
async def update_profile(
    body: ProfileUpdate,
    principal: Principal = Depends(get_current_user),
    users: UserStore = Depends(get_user_store),
    cache: IdentityCache = Depends(get_identity_cache),
):
    try:
        user = await users.update_profile(
            principal.user_id,
            first_name=body.first_name,
            last_name=body.last_name,
            email=body.email,
        )
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
    except EmailAlreadyRegisteredError:
        raise HTTPException(status_code=409, detail="Email already registered")

    cache.invalidate_user(principal.user_id)
    return user


# ─── Passwords ──────────────────────────────────────────


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    principal: Principal = Depends(get_current_user),
    users: UserStore = Depends(get_user_store),
    cache: IdentityCache = Depends(get_identity_cache),
):
    try:
        await users.change_password(
            principal.user_id, body.current_password, body.new_password
        )
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
    except InvalidCredentialsError:
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    cache.invalidate_user(principal.user_id)
    logger.info("auth.password_changed", user_id=principal.user_id)
    return MessageResponse(message="Password changed successfully")


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    body: ForgotPasswordRequest,
    users: UserStore = Depends(get_user_store),
):
    """Issue a password reset link. The reply never reveals whether the account exists."""
    email = normalize_email(body.email)
    user = await users.get_by_email(email)
    if not user:
        logger.debug("auth.password_reset_unknown_email", email=mask_email(email))
        return MessageResponse(message=RESET_REQUESTED_MESSAGE)

    token = create_password_reset_token(email)
    deliver_link(
        "auth.password_reset_issued", email, build_link(RESET_PASSWORD_PATH, token)
    )
    return MessageResponse(message=RESET_REQUESTED_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    body: ResetPasswordRequest,
    users: UserStore = Depends(get_user_store),
    cache: IdentityCache = Depends(get_identity_cache),
):
    """Set a new password from a reset link, or a first password from an invite."""
    try:
        payload = verify_token(body.token)
    except TokenError:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")

    kind = payload.get("type")
    if kind not in (PASSWORD_RESET, INVITE) or not payload.get("email"):
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")

    user = await users.get_by_email(payload["email"])
    # An invite only counts for the company that issued it.
    if not user or (kind == INVITE and str(user.company_id) != payload.get("company_id")):
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")

    try:
        user = await users.update_password_by_email(user.email, body.new_password)
    except UserNotFoundError:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")

    cache.invalidate_user(str(user.id))
    logger.info("auth.password_reset", email=mask_email(user.email), invite=kind == INVITE)
    return MessageResponse(message="Password reset successful")


# ─── Email sign-in links ────────────────────────────────


@router.post("/magic-link", response_model=MessageResponse)
async def magic_link(body: MagicLinkRequest, users: UserStore = Depends(get_user_store)):
    """Issue a one-click sign-in link. Same reply whether or not the account exists."""
    email = normalize_email(body.email)
    user = await users.get_by_email(email)
    if not user or not user.active:
        logger.debug("auth.email_link_unknown_email", email=mask_email(email))
        return MessageResponse(message=SIGN_IN_LINK_MESSAGE)

    token = create_email_link_token(email)
    deliver_link("auth.email_link_issued", email, build_link(LINK_LOGIN_PATH, token))
    return MessageResponse(message=SIGN_IN_LINK_MESSAGE)


@router.post("/verify-email-link", response_model=TokenResponse)
async def verify_email_link(
    body: VerifyEmailLinkRequest,
    users: UserStore = Depends(get_user_store),
):
    """Exchange a sign-in link token for access + refresh tokens."""
    try:
        payload = verify_token(body.token)
    except TokenError:
        raise HTTPException(status_code=400, detail=INVALID_LINK)

    if payload.get("type") != EMAIL_LINK or not payload.get("email"):
        raise HTTPException(status_code=400, detail=INVALID_LINK)

    user = await users.get_by_email(payload["email"])
    if not user or not user.active:
        raise HTTPException(status_code=400, detail=INVALID_LINK)

    await users.record_login(user)
    logger.info("auth.email_link_login", user_id=str(user.id))
    return _issue_tokens(user)


@router.post("/logout", response_model=MessageResponse)
async def logout(principal: Principal = Depends(get_current_user)):
    """Tokens are stateless; the client drops them. Logged for audit."""
    logger.info("auth.logout", user_id=principal.user_id)
    return MessageResponse(message="Logout successful")


@router.get("/session")
async def get_session(principal: Optional[Principal] = Depends(get_current_user_optional)):
    """Report who is calling, without requiring authentication."""
    if principal is None:
        return {"authenticated": False}
    return {
        "authenticated": True,
        "user_id": principal.user_id,
        "company_id": principal.company_id,
        "email": principal.email,
        "role": principal.role,
    }

"""
api/routes/auth.py -- Account REST endpoints.

Routes:
  POST   /auth/register                -- create an Inactive account, send its code
  POST   /auth/verify-otp              -- activate an account with its code
  POST   /auth/login                   -- password login; returns token pair
  POST   /auth/get-access-token        -- exchange a refresh token for an access token
  PATCH  /auth/promoteToAdmin/{id}     -- set role=Admin (bearer)
  GET    /auth/                        -- list users (Admin)
  GET    /auth/{id}                    -- one user (Admin)
  PATCH  /auth/{id}                    -- partial update (Admin or SuperAdmin)
  DELETE /auth/{id}                    -- delete a plain User (Admin)

Status overrides (everything else uses the AppError default):
  verify-otp with an unknown email answers 405.
  get-access-token answers 400 for every failure.
  promoteToAdmin answers 400 when the target is missing or the caller is refused.

Responses never carry the password digest: UserResponse has no field for it.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import (
    AccessTokenResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    UserEnvelope,
    UserListResponse,
    UserPatch,
    UserResponse,
    VerifyOtpRequest,
)
from auth.accounts import AccountManager
from auth.dependencies import get_current_identity, require_roles
from auth.models import Identity
from auth.roles import ADMIN_ONLY, ADMIN_OR_SUPER
from core.errors import AppError, ForbiddenError, NotFoundError

# Auth policy:
# - register, verify-otp, login, get-access-token: public
# - promoteToAdmin:      any valid access token (see DESIGN.md, open question)
# - GET /auth/, GET /auth/{id}, DELETE /auth/{id}: Admin
# - PATCH /auth/{id}:    Admin or SuperAdmin
router = APIRouter(prefix="/auth")


def _accounts(request: Request) -> AccountManager:
    return request.app.state.accounts


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/register", response_model=UserEnvelope)
def register(request: Request, body: RegisterRequest) -> UserEnvelope:
    """Create an Inactive account and dispatch its one-time activation code."""
    user = _accounts(request).register(body.to_domain(), body.password)
    return UserEnvelope(
        message="User registered. A verification code has been sent.",
        data=UserResponse.from_domain(user),
    )


@router.post("/verify-otp", response_model=UserEnvelope)
def verify_otp(request: Request, body: VerifyOtpRequest) -> UserEnvelope:
    try:
        user = _accounts(request).activate(body.email, body.otp)
    except NotFoundError as exc:
        raise exc.with_status(405) from exc
    return UserEnvelope(message="Account activated.", data=UserResponse.from_domain(user))


@router.post("/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> LoginResponse:
    """Verify credentials and record a session for the caller's address and user agent."""
    pair = _accounts(request).login(
        body.email,
        body.password,
        network_addr=request.client.host if request.client else None,
        device_info=request.headers.get("user-agent"),
    )
    return LoginResponse(access_token=pair.access_token, refresh_token=pair.refresh_token)


@router.post("/get-access-token", response_model=AccessTokenResponse)
def get_access_token(request: Request, body: RefreshRequest) -> AccessTokenResponse:
    try:
        access_token = _accounts(request).refresh(body.refresh_token)
    except AppError as exc:
        raise exc.with_status(400) from exc
    return AccessTokenResponse(message="New access token issued.", access_token=access_token)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.patch("/promoteToAdmin/{user_id}", response_model=UserEnvelope)
def promote_to_admin(
    request: Request,
    user_id: int,
    identity: Identity = Depends(get_current_identity),
) -> UserEnvelope:
    try:
        user = _accounts(request).promote(user_id, caller=identity)
    except (NotFoundError, ForbiddenError) as exc:
        raise exc.with_status(400) from exc
    return UserEnvelope(message="User promoted to Admin.", data=UserResponse.from_domain(user))


@router.get("/", response_model=UserListResponse)
def list_users(
    request: Request,
    search: Optional[str] = None,
    role: Optional[str] = None,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    identity: Identity = Depends(require_roles(*ADMIN_ONLY)),
) -> UserListResponse:
    """Paginated user listing with role/status filters and a name/email search."""
    result = _accounts(request).list_users(
        identity.role,
        search=search,
        role=role,
        status=status,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return UserListResponse.from_domain(result)


@router.get("/{user_id}", response_model=UserEnvelope, response_model_exclude_none=True)
def get_user(
    request: Request,
    user_id: int,
    identity: Identity = Depends(require_roles(*ADMIN_ONLY)),
) -> UserEnvelope:
    return UserEnvelope(data=UserResponse.from_domain(_accounts(request).get(user_id)))


@router.patch("/{user_id}", response_model=UserEnvelope)
def update_user(
    request: Request,
    user_id: int,
    body: UserPatch,
    identity: Identity = Depends(require_roles(*ADMIN_OR_SUPER)),
) -> UserEnvelope:
    """Apply a partial update. A new password is re-hashed before storage."""
    user = _accounts(request).update(user_id, body.model_dump(exclude_none=True), identity.role)
    return UserEnvelope(message="User updated.", data=UserResponse.from_domain(user))


@router.delete("/{user_id}", response_model=MessageResponse)
def delete_user(
    request: Request,
    user_id: int,
    identity: Identity = Depends(require_roles(*ADMIN_ONLY)),
) -> MessageResponse:
    """Delete a plain User account. Admin and other elevated roles are refused."""
    _accounts(request).remove(user_id, identity.role)
    return MessageResponse(message="User deleted.")

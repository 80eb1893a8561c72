"""Authentication API endpoints.

Provides login, logout, token refresh, current user info and the role
preference.
All endpoints except login and refresh require a valid JWT token.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from src.dealroom.access.roles import Role, normalize_role
from src.dealroom.api.deps import get_current_user, get_deal_repository, get_role_preferences
from src.dealroom.config import get_settings
from src.dealroom.core.redis import RolePreferenceStore
from src.dealroom.core.security import (
    create_access_token,
    create_refresh_token,
    verify_password,
    verify_token,
)
from src.dealroom.deals.audit import AuditAction, record_audit
from src.dealroom.schemas.auth import (
    LoginRequest,
    RolePreferenceResponse,
    RolePreferenceUpdate,
    SessionUser,
    TokenRefreshRequest,
    TokenResponse,
    UserResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _token_pair(user: SessionUser) -> TokenResponse:
    token_data = {
        "sub": user.id,
        "email": user.email,
        "role": user.role.value if user.role else None,
    }
    return TokenResponse(
        access_token=create_access_token(token_data),
        refresh_token=create_refresh_token(token_data),
    )


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    repo: Any = Depends(get_deal_repository),
    store: RolePreferenceStore = Depends(get_role_preferences),
):
    """Authenticate a user and return JWT tokens."""
    stored = await repo.get_user_by_email(body.email)

    if not stored or not stored.is_active or not stored.hashed_password:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if not verify_password(body.password, stored.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    user = stored.to_session()

    # Session snapshot is a convenience; login must not fail without Redis
    try:
        await store.save_user(user)
    except Exception:
        logger.warning("auth.session_snapshot_failed", user_id=user.id, exc_info=True)

    await record_audit(repo, AuditAction.AUTH_LOGIN, actor=user, resource_type="user", resource_id=user.id)
    logger.info("auth.login", user_id=user.id, role=user.role.value if user.role else None)
    return _token_pair(user)


@router.post("/logout", status_code=204)
async def logout(
    current_user: SessionUser = Depends(get_current_user),
    repo: Any = Depends(get_deal_repository),
    store: RolePreferenceStore = Depends(get_role_preferences),
):
    """Drop the session snapshot. The role preference is kept for the next login."""
    try:
        await store.clear_user(current_user.id)
    except Exception:
        logger.warning("auth.session_clear_failed", user_id=current_user.id, exc_info=True)

    await record_audit(
        repo,
        AuditAction.AUTH_LOGOUT,
        actor=current_user,
        resource_type="user",
        resource_id=current_user.id,
    )
    logger.info("auth.logout", user_id=current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(body: TokenRefreshRequest, repo: Any = Depends(get_deal_repository)):
    """Refresh an expired access token using a valid refresh token."""
    payload = verify_token(body.refresh_token, token_type="refresh")

    user = await repo.get_user(payload["sub"])
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )

    return _token_pair(user)


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: SessionUser = Depends(get_current_user)):
    """Return the current session user."""
    return UserResponse(
        id=current_user.id,
        email=current_user.email,
        name=current_user.name,
        role=current_user.role.value if current_user.role else None,
        lender_id=current_user.lender_id,
        deal_access=sorted(current_user.deal_access),
    )


def _default_role(user: SessionUser) -> Role:
    return user.role or normalize_role(get_settings().DEFAULT_ROLE) or Role.ISSUER


@router.get("/role-preference", response_model=RolePreferenceResponse)
async def get_role_preference(
    role: str | None = Query(default=None, description="Override and persist the preference"),
    current_user: SessionUser = Depends(get_current_user),
    store: RolePreferenceStore = Depends(get_role_preferences),
):
    """Effective role preference. A valid ``role`` query param wins and is saved."""
    effective, source = await store.resolve(current_user.id, role, _default_role(current_user))
    return RolePreferenceResponse(role=effective, source=source)


@router.put("/role-preference", response_model=RolePreferenceResponse)
async def put_role_preference(
    body: RolePreferenceUpdate,
    current_user: SessionUser = Depends(get_current_user),
    store: RolePreferenceStore = Depends(get_role_preferences),
):
    """Persist a role preference."""
    role = normalize_role(body.role)
    await store.set_role(current_user.id, role)
    return RolePreferenceResponse(role=role, source="stored")

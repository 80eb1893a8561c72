"""FastAPI dependency injection for the repository, session state and auth.

These dependencies are used in endpoint function signatures to inject the
deal repository, the role preference store, and the authenticated user.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from fastapi import Depends, HTTPException, Request, status

from src.dealroom.access.capabilities import Capabilities, capabilities_for
from src.dealroom.core.redis import RolePreferenceStore, get_role_store
from src.dealroom.core.security import verify_token
from src.dealroom.deals.audit import AuditAction, record_audit
from src.dealroom.schemas.auth import SessionUser


def get_deal_repository(request: Request) -> Any:
    """Retrieve DealRepository from app.state, 503 if not available."""
    repo = getattr(request.app.state, "deal_repository", None)
    if repo is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Deal room not initialized",
        )
    return repo


def get_role_preferences(request: Request) -> RolePreferenceStore:
    """Role preference store from app.state, or one over the global pool."""
    store = getattr(request.app.state, "role_store", None)
    if store is None:
        store = get_role_store()
    return store


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


async def get_current_user(
    request: Request,
    repo: Any = Depends(get_deal_repository),
) -> SessionUser:
    """Validate the Bearer JWT and rebuild the session user from storage.

    Raises:
        HTTPException(401): If no valid token is provided or the user is gone.
    """
    token = _bearer_token(request)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_token(token, token_type="access")
    user = await repo.get_user(payload["sub"])
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


async def get_optional_user(
    request: Request,
    repo: Any = Depends(get_deal_repository),
) -> SessionUser | None:
    """Like get_current_user, but None when no token is sent."""
    if _bearer_token(request) is None:
        return None
    return await get_current_user(request, repo)


def require_capability(name: str) -> Callable[..., Any]:
    """Dependency factory: 403 unless the user's role grants ``name``."""
    if name not in Capabilities.model_fields:
        raise ValueError(f"Unknown capability: {name}")

    async def _check(user: SessionUser = Depends(get_current_user)) -> SessionUser:
        if not getattr(capabilities_for(user.role), name):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role lacks capability: {name}",
            )
        return user

    return _check


async def ensure_deal_visible(repo: Any, user: SessionUser, deal_id: str) -> None:
    """403 (and an ACCESS_DENIED audit entry) when the user may not open the deal."""
    if user.can_access_deal(deal_id):
        return
    await record_audit(
        repo,
        AuditAction.ACCESS_DENIED,
        actor=user,
        deal_id=deal_id,
        resource_type="deal",
        resource_id=deal_id,
    )
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="No access to this deal",
    )


# Alias for cleaner endpoint signatures
require_auth = Depends(get_current_user)

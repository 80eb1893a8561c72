"""Access decision endpoints.

The client asks the gate before rendering a route and follows the redirect
it gets back. Capabilities and notice-banner text are served from the same
tables the server enforces.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from src.dealroom.access.capabilities import Capabilities, capabilities_for
from src.dealroom.access.gate import Allow, access_notice, authorize
from src.dealroom.api.deps import get_current_user, get_optional_user
from src.dealroom.core.monitoring import record_access_decision
from src.dealroom.schemas.auth import SessionUser

router = APIRouter(prefix="/api/access", tags=["access"])


class AuthorizeRequest(BaseModel):
    path: str
    track_origin: bool = False


class AuthorizeResponse(BaseModel):
    allowed: bool
    path: str
    reason: str | None = None
    location: str | None = None


class NoticeResponse(BaseModel):
    title: str
    description: str


@router.post("/authorize", response_model=AuthorizeResponse)
async def authorize_route(
    body: AuthorizeRequest,
    user: SessionUser | None = Depends(get_optional_user),
) -> AuthorizeResponse:
    """Gate decision for a client route. Unauthenticated callers get the login redirect."""
    decision = authorize(user, body.path, track_origin=body.track_origin)
    if isinstance(decision, Allow):
        record_access_decision("allow")
        return AuthorizeResponse(allowed=True, path=decision.path)

    reason = decision.reason.value if decision.reason else None
    record_access_decision("redirect", reason)
    return AuthorizeResponse(
        allowed=False,
        path=decision.path,
        reason=reason,
        location=decision.location,
    )


@router.get("/capabilities", response_model=Capabilities)
async def get_capabilities(
    role: str | None = Query(default=None, description="Look up another role's table"),
    user: SessionUser = Depends(get_current_user),
) -> Capabilities:
    return capabilities_for(role if role is not None else user.role)


@router.get("/notice", response_model=NoticeResponse)
async def get_notice(
    reason: str = Query(...),
    origin: str | None = Query(default=None, alias="from"),
) -> NoticeResponse:
    """Banner text for a redirect reason code."""
    notice = access_notice(reason, origin)
    if notice is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown reason: {reason}",
        )
    return NoticeResponse(title=notice.title, description=notice.description)

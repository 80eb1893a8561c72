"""REST API endpoints for lender contacts."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from src.dealroom.access.roles import is_internal
from src.dealroom.api.deps import get_current_user, get_deal_repository, require_capability
from src.dealroom.deals.repository import DuplicateLenderError
from src.dealroom.deals.schemas import InvitationRead, LenderCreate, LenderRead
from src.dealroom.schemas.auth import SessionUser

router = APIRouter(prefix="/api/lenders", tags=["lenders"])


@router.get("", response_model=list[LenderRead])
async def list_lenders(
    user: SessionUser = Depends(require_capability("view_investor_book")),
    repo: Any = Depends(get_deal_repository),
) -> list[LenderRead]:
    return await repo.list_lenders()


@router.post("", response_model=LenderRead, status_code=201)
async def create_lender(
    body: LenderCreate,
    user: SessionUser = Depends(require_capability("invite_lenders")),
    repo: Any = Depends(get_deal_repository),
) -> LenderRead:
    """Add a lender contact. Malformed emails are rejected with 422."""
    try:
        return await repo.create_lender(body)
    except DuplicateLenderError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.get("/{lender_id}/invitations", response_model=list[InvitationRead])
async def list_lender_invitations(
    lender_id: str,
    user: SessionUser = Depends(get_current_user),
    repo: Any = Depends(get_deal_repository),
) -> list[InvitationRead]:
    """A lender's invitations; lenders may only list their own."""
    if not is_internal(user.role) and user.lender_id != lender_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot view another lender's invitations",
        )
    return await repo.list_invitations_by_lender(lender_id)

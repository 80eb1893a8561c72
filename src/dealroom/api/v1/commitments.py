"""REST API endpoints for lender commitments.

Investors submit commitments for their own lender record once invited and
past the NDA wall. Internal roles with see_all_commitments read the whole
book; investors read only their own. Each submission refreshes the deal's
committed total.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from src.dealroom.access.capabilities import capabilities_for
from src.dealroom.api.deps import (
    ensure_deal_visible,
    get_current_user,
    get_deal_repository,
    require_capability,
)
from src.dealroom.deals.audit import AuditAction, record_audit
from src.dealroom.deals.repository import DealNotFoundError
from src.dealroom.deals.schemas import CommitmentCreate, CommitmentRead
from src.dealroom.schemas.auth import SessionUser

router = APIRouter(prefix="/api/deals/{deal_id}/commitments", tags=["commitments"])


@router.get("", response_model=list[CommitmentRead])
async def list_commitments(
    deal_id: str,
    user: SessionUser = Depends(get_current_user),
    repo: Any = Depends(get_deal_repository),
) -> list[CommitmentRead]:
    """All commitments for the book, or the caller's own."""
    caps = capabilities_for(user.role)
    if not (caps.see_all_commitments or caps.submit_commitment):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Role lacks capability: see_all_commitments",
        )
    await ensure_deal_visible(repo, user, deal_id)
    if caps.see_all_commitments:
        return await repo.list_commitments(deal_id)
    if not user.lender_id:
        return []
    return await repo.list_commitments(deal_id, lender_id=user.lender_id)


@router.post("", response_model=CommitmentRead, status_code=201)
async def submit_commitment(
    deal_id: str,
    body: CommitmentCreate,
    user: SessionUser = Depends(require_capability("submit_commitment")),
    repo: Any = Depends(get_deal_repository),
) -> CommitmentRead:
    """Submit a commitment on behalf of the caller's lender."""
    await ensure_deal_visible(repo, user, deal_id)
    if not user.lender_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No lender record for this user",
        )
    invitation = await repo.get_invitation(deal_id, user.lender_id)
    if invitation is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Lender is not invited to this deal",
        )
    if invitation.nda_required and invitation.nda_signed_at is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="NDA signature required",
        )

    try:
        commitment = await repo.create_commitment(deal_id, user.lender_id, body)
    except DealNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

    await record_audit(
        repo,
        AuditAction.SUBMIT_COMMITMENT,
        actor=user,
        deal_id=deal_id,
        lender_id=user.lender_id,
        resource_type="commitment",
        resource_id=commitment.id,
        metadata={"amount": commitment.amount, "status": commitment.status},
    )
    return commitment

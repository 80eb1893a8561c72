"""REST API endpoints for deal invitations.

Inviting lenders, NDA signature and access-tier changes. One invitation
exists per (deal, lender); a second invite for the same pair is a 409.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, EmailStr

from src.dealroom.api.deps import (
    ensure_deal_visible,
    get_current_user,
    get_deal_repository,
    require_capability,
)
from src.dealroom.deals.audit import AuditAction, record_audit
from src.dealroom.deals.repository import (
    DealNotFoundError,
    DuplicateInvitationError,
    InvitationNotFoundError,
)
from src.dealroom.deals.schemas import AccessTier, InvitationCreate, InvitationRead
from src.dealroom.schemas.auth import SessionUser

router = APIRouter(prefix="/api/deals/{deal_id}/invitations", tags=["invitations"])


# ── Request Schemas ──────────────────────────────────────────────────────────


class CreateInvitationRequest(BaseModel):
    lender_id: str
    access_tier: AccessTier = AccessTier.EARLY
    nda_required: bool | None = None  # defaults to the deal's setting


class SignNdaRequest(BaseModel):
    signer_email: EmailStr | None = None
    nda_version: str | None = None


class UpdateTierRequest(BaseModel):
    tier: AccessTier


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.get("", response_model=list[InvitationRead])
async def list_invitations(
    deal_id: str,
    user: SessionUser = Depends(require_capability("view_investor_book")),
    repo: Any = Depends(get_deal_repository),
) -> list[InvitationRead]:
    await ensure_deal_visible(repo, user, deal_id)
    return await repo.list_invitations_by_deal(deal_id)


@router.post("", response_model=InvitationRead, status_code=201)
async def create_invitation(
    deal_id: str,
    body: CreateInvitationRequest,
    user: SessionUser = Depends(require_capability("invite_lenders")),
    repo: Any = Depends(get_deal_repository),
) -> InvitationRead:
    """Invite a lender to the deal."""
    await ensure_deal_visible(repo, user, deal_id)
    deal = await repo.get_deal(deal_id)
    if deal is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Deal not found: {deal_id}",
        )
    if await repo.get_lender(body.lender_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Lender not found: {body.lender_id}",
        )

    data = InvitationCreate(
        lender_id=body.lender_id,
        access_tier=body.access_tier,
        nda_required=deal.nda_required if body.nda_required is None else body.nda_required,
        invited_by=user.email,
    )
    try:
        invitation = await repo.create_invitation(deal_id, data)
    except DealNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except DuplicateInvitationError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))

    await record_audit(
        repo,
        AuditAction.CREATE_INVITATION,
        actor=user,
        deal_id=deal_id,
        lender_id=body.lender_id,
        resource_type="invitation",
        resource_id=invitation.id,
        metadata={"access_tier": invitation.access_tier.value},
    )
    return invitation


@router.post("/{lender_id}/sign-nda", response_model=InvitationRead)
async def sign_nda(
    deal_id: str,
    lender_id: str,
    body: SignNdaRequest,
    request: Request,
    user: SessionUser = Depends(require_capability("sign_nda")),
    repo: Any = Depends(get_deal_repository),
) -> InvitationRead:
    """Sign the deal NDA on behalf of the caller's own lender record."""
    if user.lender_id != lender_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot sign an NDA for another lender",
        )
    await ensure_deal_visible(repo, user, deal_id)

    signer_ip = request.client.host if request.client else None
    try:
        invitation = await repo.sign_nda(
            deal_id,
            lender_id,
            signer_email=str(body.signer_email) if body.signer_email else user.email,
            nda_version=body.nda_version,
            signer_ip=signer_ip,
        )
    except InvitationNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

    await record_audit(
        repo,
        AuditAction.SIGN_NDA,
        actor=user,
        deal_id=deal_id,
        lender_id=lender_id,
        resource_type="invitation",
        resource_id=invitation.id,
        metadata={"nda_version": body.nda_version, "ip": signer_ip},
    )
    return invitation


@router.patch("/{lender_id}/tier", response_model=InvitationRead)
async def update_tier(
    deal_id: str,
    lender_id: str,
    body: UpdateTierRequest,
    user: SessionUser = Depends(require_capability("manage_deals")),
    repo: Any = Depends(get_deal_repository),
) -> InvitationRead:
    """Change a lender's document access tier."""
    await ensure_deal_visible(repo, user, deal_id)
    try:
        invitation = await repo.update_tier(deal_id, lender_id, body.tier, user.email)
    except InvitationNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

    await record_audit(
        repo,
        AuditAction.UPDATE_TIER,
        actor=user,
        deal_id=deal_id,
        lender_id=lender_id,
        resource_type="invitation",
        resource_id=invitation.id,
        metadata={"tier": body.tier.value},
    )
    return invitation

"""REST API endpoints for deals.

Provides the deal list, deal detail, the aggregated deal context, derived
deadlines (JSON and ICS), tier-filtered documents, the activity log and
lender reminders, plus deal edits, publishing, document registration and
client-reported activity. All endpoints require authentication; investors
only see deals in their access set. Opening or downloading a document is
recorded as VIEW_DOC or DOWNLOAD_DOC, which the reminder audiences read.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response
from pydantic import BaseModel, Field

from src.dealroom.access.documents import can_access_doc_tier, filter_documents_by_tier
from src.dealroom.access.roles import Role
from src.dealroom.api.deps import (
    ensure_deal_visible,
    get_current_user,
    get_deal_repository,
    require_capability,
)
from src.dealroom.config import get_settings
from src.dealroom.deals.audit import CLIENT_AUDIT_ACTIONS, AuditAction, record_audit
from src.dealroom.deals.calendar import deadlines_to_ics
from src.dealroom.deals.context import DealContext, load_deal_context
from src.dealroom.deals.deadlines import Deadline, derive_deadlines
from src.dealroom.deals.reminders import send_reminders
from src.dealroom.deals.repository import DealNotFoundError
from src.dealroom.deals.schemas import (
    AccessTier,
    AuditLogRead,
    DealCreate,
    DealRead,
    DealUpdate,
    DocumentCreate,
    DocumentRead,
    ReminderRequest,
    ReminderResult,
)
from src.dealroom.schemas.auth import SessionUser

router = APIRouter(prefix="/api/deals", tags=["deals"])


# ── Request Schemas ──────────────────────────────────────────────────────────


class ClientAuditEvent(BaseModel):
    """Activity reported by the client. The actor comes from the session."""

    action: AuditAction
    resource_type: str | None = Field(default=None, max_length=50)
    resource_id: str | None = Field(default=None, max_length=64)
    metadata: dict[str, Any] = Field(default_factory=dict)


# ── Helpers ──────────────────────────────────────────────────────────────────


async def _visible_deal(repo: Any, user: SessionUser, deal_id: str) -> DealRead:
    """Load a deal the user may open: 403 before 404 so existence is not leaked."""
    await ensure_deal_visible(repo, user, deal_id)
    deal = await repo.get_deal(deal_id)
    if deal is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Deal not found: {deal_id}",
        )
    return deal


async def _viewer_signed_at(repo: Any, user: SessionUser, deal_id: str) -> datetime | None:
    if not user.lender_id:
        return None
    invitation = await repo.get_invitation(deal_id, user.lender_id)
    return invitation.nda_signed_at if invitation else None


async def _investor_tier(repo: Any, user: SessionUser, deal_id: str) -> AccessTier | None:
    """Document tier an investor reads at, or None for internal roles.

    Uninvited investors read at early. Raises 403 while the NDA wall is up.
    """
    if user.role is not Role.INVESTOR:
        return None
    invitation = (
        await repo.get_invitation(deal_id, user.lender_id) if user.lender_id else None
    )
    if invitation is None:
        return AccessTier.EARLY
    if invitation.nda_required and invitation.nda_signed_at is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="NDA signature required",
        )
    return invitation.access_tier


async def _readable_document(
    repo: Any, user: SessionUser, deal_id: str, document_id: str
) -> DocumentRead:
    """A document the user may open. Out-of-tier documents are a 404, like missing ones."""
    await _visible_deal(repo, user, deal_id)
    tier = await _investor_tier(repo, user, deal_id)
    document = await repo.get_document(deal_id, document_id)
    if document is None or (
        tier is not None and not can_access_doc_tier(tier, document.visibility_tier)
    ):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Document not found: {document_id}",
        )
    return document


# ── Deals ────────────────────────────────────────────────────────────────────


@router.get("", response_model=list[DealRead])
async def list_deals(
    user: SessionUser = Depends(get_current_user),
    repo: Any = Depends(get_deal_repository),
) -> list[DealRead]:
    """Deals visible to the user."""
    if user.role is Role.INVESTOR:
        return await repo.list_deals(user.deal_access)
    if user.role is None:
        return []
    return await repo.list_deals()


@router.post("", response_model=DealRead, status_code=201)
async def create_deal(
    body: DealCreate,
    user: SessionUser = Depends(require_capability("create_deal")),
    repo: Any = Depends(get_deal_repository),
) -> DealRead:
    """Create a deal (issuers only)."""
    if body.sponsor_user_id is None:
        body = body.model_copy(update={"sponsor_user_id": user.id})
    deal = await repo.create_deal(body)
    await repo.grant_deal_access(user.id, deal.id)
    return deal


@router.get("/{deal_id}", response_model=DealRead)
async def get_deal(
    deal_id: str,
    user: SessionUser = Depends(get_current_user),
    repo: Any = Depends(get_deal_repository),
) -> DealRead:
    return await _visible_deal(repo, user, deal_id)


@router.patch("/{deal_id}", response_model=DealRead)
async def update_deal(
    deal_id: str,
    body: DealUpdate,
    user: SessionUser = Depends(require_capability("edit_term_sheet")),
    repo: Any = Depends(get_deal_repository),
) -> DealRead:
    """Edit deal terms and dates. Only the fields sent are changed."""
    await _visible_deal(repo, user, deal_id)
    try:
        deal = await repo.update_deal(deal_id, body)
    except DealNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

    await record_audit(
        repo,
        AuditAction.UPDATE_DEAL,
        actor=user,
        deal_id=deal_id,
        resource_type="deal",
        resource_id=deal_id,
        metadata={"fields": sorted(body.model_dump(exclude_unset=True))},
    )
    return deal


@router.post("/{deal_id}/publish", response_model=DealRead)
async def publish_deal(
    deal_id: str,
    user: SessionUser = Depends(require_capability("publish_deal")),
    repo: Any = Depends(get_deal_repository),
) -> DealRead:
    """Open the deal to lenders. Launch date defaults to today if unset."""
    await _visible_deal(repo, user, deal_id)
    try:
        deal = await repo.publish_deal(deal_id, datetime.now(timezone.utc).date())
    except DealNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

    await record_audit(
        repo,
        AuditAction.PUBLISH_DEAL,
        actor=user,
        deal_id=deal_id,
        resource_type="deal",
        resource_id=deal_id,
        metadata={"stage": deal.stage},
    )
    return deal


@router.get("/{deal_id}/context", response_model=DealContext)
async def get_deal_context(
    deal_id: str,
    user: SessionUser = Depends(get_current_user),
    repo: Any = Depends(get_deal_repository),
) -> DealContext:
    """Aggregated deal view: deal, invitation, deadlines, capabilities, NDA state.

    Load failures are reported in the ``error`` field, not as an HTTP error.
    """
    await ensure_deal_visible(repo, user, deal_id)
    context = await load_deal_context(repo, deal_id, user)
    if context.deal is not None:
        await record_audit(
            repo,
            AuditAction.VIEW_DEAL,
            actor=user,
            deal_id=deal_id,
            resource_type="deal",
            resource_id=deal_id,
        )
    return context


# ── Deadlines ────────────────────────────────────────────────────────────────


@router.get("/{deal_id}/deadlines", response_model=list[Deadline])
async def get_deadlines(
    deal_id: str,
    user: SessionUser = Depends(get_current_user),
    repo: Any = Depends(get_deal_repository),
) -> list[Deadline]:
    """Derived deadlines for the deal, ascending by due date."""
    deal = await _visible_deal(repo, user, deal_id)
    signed_at = await _viewer_signed_at(repo, user, deal_id)
    return derive_deadlines(
        deal, signed_at, nda_deadline_days=get_settings().NDA_DEADLINE_DAYS
    )


@router.get("/{deal_id}/deadlines.ics")
async def get_deadlines_calendar(
    deal_id: str,
    user: SessionUser = Depends(get_current_user),
    repo: Any = Depends(get_deal_repository),
) -> Response:
    """Deadlines as an iCalendar download."""
    deal = await _visible_deal(repo, user, deal_id)
    signed_at = await _viewer_signed_at(repo, user, deal_id)
    deadlines = derive_deadlines(
        deal, signed_at, nda_deadline_days=get_settings().NDA_DEADLINE_DAYS
    )
    return Response(
        content=deadlines_to_ics(deal, deadlines),
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="deal-{deal_id}-deadlines.ics"'},
    )


# ── Documents ────────────────────────────────────────────────────────────────


@router.get("/{deal_id}/documents", response_model=list[DocumentRead])
async def list_documents(
    deal_id: str,
    user: SessionUser = Depends(get_current_user),
    repo: Any = Depends(get_deal_repository),
) -> list[DocumentRead]:
    """Deal documents. Investors see only their tier, and nothing behind the NDA wall."""
    await _visible_deal(repo, user, deal_id)
    tier = await _investor_tier(repo, user, deal_id)
    documents = await repo.list_documents(deal_id)
    if tier is None:
        return documents
    return filter_documents_by_tier(documents, tier)


@router.post("/{deal_id}/documents", response_model=DocumentRead, status_code=201)
async def create_document(
    deal_id: str,
    body: DocumentCreate,
    user: SessionUser = Depends(require_capability("upload_documents")),
    repo: Any = Depends(get_deal_repository),
) -> DocumentRead:
    """Register an uploaded document on the deal."""
    await _visible_deal(repo, user, deal_id)
    try:
        document = await repo.create_document(deal_id, body)
    except DealNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

    await record_audit(
        repo,
        AuditAction.UPLOAD_DOC,
        actor=user,
        deal_id=deal_id,
        resource_type="document",
        resource_id=document.id,
        metadata={"name": document.name, "visibility_tier": document.visibility_tier},
    )
    return document


@router.get("/{deal_id}/documents/{document_id}", response_model=DocumentRead)
async def get_document(
    deal_id: str,
    document_id: str,
    user: SessionUser = Depends(get_current_user),
    repo: Any = Depends(get_deal_repository),
) -> DocumentRead:
    """Open one document. Recorded as VIEW_DOC."""
    document = await _readable_document(repo, user, deal_id, document_id)
    await record_audit(
        repo,
        AuditAction.VIEW_DOC,
        actor=user,
        deal_id=deal_id,
        resource_type="document",
        resource_id=document.id,
        metadata={"name": document.name},
    )
    return document


@router.post("/{deal_id}/documents/{document_id}/download", response_model=DocumentRead)
async def download_document(
    deal_id: str,
    document_id: str,
    user: SessionUser = Depends(get_current_user),
    repo: Any = Depends(get_deal_repository),
) -> DocumentRead:
    """Hand out a document's file reference. Recorded as DOWNLOAD_DOC."""
    document = await _readable_document(repo, user, deal_id, document_id)
    await record_audit(
        repo,
        AuditAction.DOWNLOAD_DOC,
        actor=user,
        deal_id=deal_id,
        resource_type="document",
        resource_id=document.id,
        metadata={"name": document.name, "version": document.version},
    )
    return document


# ── Activity ─────────────────────────────────────────────────────────────────


@router.get("/{deal_id}/logs", response_model=list[AuditLogRead])
async def list_logs(
    deal_id: str,
    limit: int | None = Query(default=None, ge=1, le=1000),
    user: SessionUser = Depends(require_capability("view_investor_book")),
    repo: Any = Depends(get_deal_repository),
) -> list[AuditLogRead]:
    """Deal activity, newest first."""
    await _visible_deal(repo, user, deal_id)
    return await repo.list_logs(deal_id, limit=limit or get_settings().AUDIT_LOG_DEFAULT_LIMIT)


@router.post("/{deal_id}/logs", response_model=AuditLogRead, status_code=201)
async def create_log(
    deal_id: str,
    body: ClientAuditEvent,
    user: SessionUser = Depends(get_current_user),
    repo: Any = Depends(get_deal_repository),
) -> AuditLogRead:
    """Record client-side activity (deal and document views, downloads)."""
    if body.action not in CLIENT_AUDIT_ACTIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Action cannot be reported by clients: {body.action.value}",
        )
    await _visible_deal(repo, user, deal_id)
    entry = await record_audit(
        repo,
        body.action,
        actor=user,
        deal_id=deal_id,
        resource_type=body.resource_type,
        resource_id=body.resource_id,
        metadata=body.metadata,
    )
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Audit log unavailable",
        )
    return entry


@router.post("/{deal_id}/reminders", response_model=ReminderResult)
async def post_reminders(
    deal_id: str,
    body: ReminderRequest,
    user: SessionUser = Depends(require_capability("send_reminders")),
    repo: Any = Depends(get_deal_repository),
) -> ReminderResult:
    """Record reminders to the chosen lender audience."""
    await _visible_deal(repo, user, deal_id)
    return await send_reminders(repo, deal_id, body, user)

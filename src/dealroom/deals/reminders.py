"""Lender reminders.

Resolves a reminder audience to invited lenders and records one
SEND_REMINDER audit entry per recipient. Nothing is delivered; the audit
trail is the record of what was sent.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.dealroom.deals.audit import AuditAction, record_audit
from src.dealroom.deals.schemas import (
    InvitationRead,
    ReminderAudience,
    ReminderRequest,
    ReminderResult,
)
from src.dealroom.schemas.auth import SessionUser

logger = structlog.get_logger(__name__)

# Upper bound on audit entries scanned when resolving activity-based audiences
ACTIVITY_SCAN_LIMIT = 10_000


async def _lenders_with_activity(
    repository: Any, deal_id: str, actions: tuple[AuditAction, ...]
) -> set[str]:
    lender_ids: set[str] = set()
    for action in actions:
        logs = await repository.list_logs(deal_id, limit=ACTIVITY_SCAN_LIMIT, action=action.value)
        lender_ids.update(log.lender_id for log in logs if log.lender_id)
    return lender_ids


async def resolve_audience(
    repository: Any, deal_id: str, audience: ReminderAudience
) -> list[InvitationRead]:
    """Invitations on the deal that fall into ``audience``."""
    invitations = await repository.list_invitations_by_deal(deal_id)

    if audience is ReminderAudience.ALL:
        return invitations

    if audience is ReminderAudience.MISSING_NDA:
        return [i for i in invitations if i.nda_required and i.nda_signed_at is None]

    if audience is ReminderAudience.NO_COMMITMENT:
        committed = await _lenders_with_activity(
            repository, deal_id, (AuditAction.SUBMIT_COMMITMENT,)
        )
        return [i for i in invitations if i.lender_id not in committed]

    viewed = await _lenders_with_activity(
        repository, deal_id, (AuditAction.VIEW_DOC, AuditAction.DOWNLOAD_DOC)
    )
    return [i for i in invitations if i.lender_id not in viewed]


async def send_reminders(
    repository: Any,
    deal_id: str,
    request: ReminderRequest,
    actor: SessionUser,
) -> ReminderResult:
    """Record a reminder to every lender in the requested audience."""
    invitations = await resolve_audience(repository, deal_id, request.audience)

    recipients: list[str] = []
    for invitation in invitations:
        lender = await repository.get_lender(invitation.lender_id)
        if lender is None:
            logger.warning(
                "reminders.lender_missing",
                deal_id=deal_id,
                lender_id=invitation.lender_id,
            )
            continue
        await record_audit(
            repository,
            AuditAction.SEND_REMINDER,
            actor=actor,
            deal_id=deal_id,
            lender_id=lender.id,
            resource_type="lender",
            resource_id=lender.id,
            metadata={
                "audience": request.audience.value,
                "subject": request.subject,
                "recipient": lender.email,
            },
        )
        recipients.append(lender.email)

    logger.info(
        "reminders.sent",
        deal_id=deal_id,
        audience=request.audience.value,
        sent_count=len(recipients),
    )
    return ReminderResult(sent_count=len(recipients), recipients=recipients)

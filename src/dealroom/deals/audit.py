"""Deal room audit trail.

AuditAction is the standard action vocabulary and CLIENT_AUDIT_ACTIONS the
subset a client may report itself. record_audit() appends an
entry through the repository and never lets a storage failure break the
operation being audited.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

import structlog

from src.dealroom.deals.schemas import AuditLogCreate, AuditLogRead
from src.dealroom.schemas.auth import SessionUser

logger = structlog.get_logger(__name__)


class AuditAction(str, Enum):
    AUTH_LOGIN = "AUTH_LOGIN"
    AUTH_LOGOUT = "AUTH_LOGOUT"
    VIEW_DEAL = "VIEW_DEAL"
    UPDATE_DEAL = "UPDATE_DEAL"
    PUBLISH_DEAL = "PUBLISH_DEAL"
    SIGN_NDA = "SIGN_NDA"
    CREATE_INVITATION = "CREATE_INVITATION"
    UPDATE_TIER = "UPDATE_TIER"
    SEND_REMINDER = "SEND_REMINDER"
    DOWNLOAD_DOC = "DOWNLOAD_DOC"
    VIEW_DOC = "VIEW_DOC"
    UPLOAD_DOC = "UPLOAD_DOC"
    SUBMIT_QA = "SUBMIT_QA"
    ANSWER_QA = "ANSWER_QA"
    SUBMIT_COMMITMENT = "SUBMIT_COMMITMENT"
    SUBMIT_IOI = "SUBMIT_IOI"
    ACCESS_DENIED = "ACCESS_DENIED"


# Activity the client may report itself through POST /api/deals/{id}/logs.
# Everything else is written server-side by the operation it describes.
CLIENT_AUDIT_ACTIONS: frozenset[AuditAction] = frozenset(
    {AuditAction.VIEW_DEAL, AuditAction.VIEW_DOC, AuditAction.DOWNLOAD_DOC}
)


async def record_audit(
    repository: Any,
    action: AuditAction,
    *,
    actor: SessionUser | None = None,
    deal_id: str | None = None,
    lender_id: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> AuditLogRead | None:
    """Append an audit entry attributed to ``actor``.

    Returns the stored entry, or None if the write failed.
    """
    if actor is None:
        actor_role = "anonymous"
    elif actor.role is None:
        actor_role = "unknown"
    else:
        actor_role = actor.role.value

    if lender_id is None and actor is not None:
        lender_id = actor.lender_id

    entry = AuditLogCreate(
        deal_id=deal_id,
        lender_id=lender_id,
        user_id=actor.id if actor else None,
        actor_role=actor_role,
        actor_email=actor.email if actor else None,
        action=action.value,
        resource_type=resource_type,
        resource_id=resource_id,
        metadata=metadata or {},
    )
    try:
        return await repository.create_log(entry)
    except Exception:
        logger.error(
            "audit.write_failed",
            action=action.value,
            deal_id=deal_id,
            exc_info=True,
        )
        return None

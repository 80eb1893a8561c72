"""Deal context aggregation.

Assembles everything a deal page needs about one deal for one user into a
single read-only view: the deal, the viewer's invitation, derived deadlines,
role capabilities and NDA/tier standing.

Nothing is cached. A change to the deal, the invitation or the user means
calling again and recomputing everything.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from src.dealroom.access.capabilities import Capabilities, capabilities_for
from src.dealroom.config import get_settings
from src.dealroom.deals.deadlines import Deadline, derive_deadlines, first_outstanding
from src.dealroom.deals.schemas import AccessTier, DealRead, InvitationRead
from src.dealroom.schemas.auth import SessionUser

logger = structlog.get_logger(__name__)


class DealContext(BaseModel):
    """Read-only composite consumed by deal pages."""

    model_config = ConfigDict(frozen=True)

    deal: DealRead | None = None
    invitation: InvitationRead | None = None
    deadlines: list[Deadline] = Field(default_factory=list)
    next_deadline: Deadline | None = None
    capabilities: Capabilities
    nda_signed: bool = True
    access_tier: AccessTier | None = None
    loading: bool = False
    error: str | None = None


def is_nda_signed(invitation: InvitationRead | None) -> bool:
    """True when there is no NDA to sign or it has been signed."""
    if invitation is None:
        return True
    return not invitation.nda_required or invitation.nda_signed_at is not None


def assemble_deal_context(
    deal: DealRead | None,
    invitation: InvitationRead | None,
    user: SessionUser | None,
    *,
    loading: bool = False,
    error: str | None = None,
    now: datetime | None = None,
) -> DealContext:
    """Build the deal context from already-loaded inputs. Pure."""
    now = now or datetime.now(timezone.utc)
    nda_signed_at = invitation.nda_signed_at if invitation else None

    deadlines: list[Deadline] = []
    if deal is not None:
        deadlines = derive_deadlines(
            deal,
            nda_signed_at,
            now=now,
            nda_deadline_days=get_settings().NDA_DEADLINE_DAYS,
        )

    return DealContext(
        deal=deal,
        invitation=invitation,
        deadlines=deadlines,
        next_deadline=first_outstanding(deadlines, now) if deadlines else None,
        capabilities=capabilities_for(user.role if user else None),
        nda_signed=is_nda_signed(invitation),
        access_tier=invitation.access_tier if invitation else None,
        loading=loading,
        error=error,
    )


async def load_deal_context(
    repository: Any,
    deal_id: str,
    user: SessionUser | None,
    *,
    now: datetime | None = None,
) -> DealContext:
    """Fetch the deal and the viewer's invitation, then assemble the context.

    Repository failures become the ``error`` field; this never raises for
    a missing deal or an unreachable store.
    """
    deal: DealRead | None = None
    invitation: InvitationRead | None = None
    error: str | None = None

    try:
        deal = await repository.get_deal(deal_id)
        if deal is None:
            error = f"Deal not found: {deal_id}"
        elif user is not None and user.lender_id:
            invitation = await repository.get_invitation(deal_id, user.lender_id)
    except Exception as exc:
        logger.warning("deal_context.load_failed", deal_id=deal_id, exc_info=True)
        error = str(exc) or exc.__class__.__name__

    return assemble_deal_context(deal, invitation, user, error=error, now=now)

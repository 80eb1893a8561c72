"""Document visibility tiers and the investor NDA wall.

Tiers are cumulative:
- early: lender presentation, supplemental material, teaser
- full: early + paydown model, KYC, financial model
- legal: full + credit agreement and other legal documents
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TypeVar

from pydantic import BaseModel, ConfigDict

from src.dealroom.deals.schemas import AccessTier, InvitationRead

TIER_HIERARCHY: dict[str, frozenset[str]] = {
    AccessTier.EARLY.value: frozenset({"early", "teaser"}),
    AccessTier.FULL.value: frozenset({"early", "teaser", "full"}),
    AccessTier.LEGAL.value: frozenset({"early", "teaser", "full", "legal"}),
}

DocT = TypeVar("DocT")


def _tier_value(tier: AccessTier | str | None) -> str:
    if isinstance(tier, AccessTier):
        return tier.value
    return (tier or "").strip().lower()


def can_access_doc_tier(user_tier: AccessTier | str | None, doc_tier: str) -> bool:
    """Whether a holder of ``user_tier`` may see a document tagged ``doc_tier``.

    Unknown user tiers fall back to early.
    """
    allowed = TIER_HIERARCHY.get(_tier_value(user_tier), TIER_HIERARCHY[AccessTier.EARLY.value])
    return doc_tier.strip().lower() in allowed


def filter_documents_by_tier(
    documents: Iterable[DocT], user_tier: AccessTier | str | None
) -> list[DocT]:
    """Keep only documents visible at ``user_tier``.

    Documents are read through their ``visibility_tier`` attribute.
    """
    return [
        doc
        for doc in documents
        if can_access_doc_tier(user_tier, getattr(doc, "visibility_tier", None) or "early")
    ]


class LenderAccess(BaseModel):
    """A lender's NDA and tier standing on one deal."""

    model_config = ConfigDict(frozen=True)

    nda_required: bool
    nda_signed: bool
    access_tier: AccessTier
    nda_wall: bool


def lender_access(invitation: InvitationRead) -> LenderAccess:
    """NDA wall is up while an NDA is required and not yet signed."""
    nda_signed = invitation.nda_signed_at is not None
    return LenderAccess(
        nda_required=invitation.nda_required,
        nda_signed=nda_signed,
        access_tier=invitation.access_tier,
        nda_wall=invitation.nda_required and not nda_signed,
    )

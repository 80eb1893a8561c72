"""Document tier visibility and NDA wall tests."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.dealroom.access.documents import (
    can_access_doc_tier,
    filter_documents_by_tier,
    lender_access,
)
from src.dealroom.deals.schemas import AccessTier, DocumentRead, InvitationRead


def _doc(name: str, tier: str) -> DocumentRead:
    return DocumentRead(id=name, deal_id="101", name=name, category="General", visibility_tier=tier)


DOCS = [
    _doc("Lender Presentation", "early"),
    _doc("Teaser", "teaser"),
    _doc("Financial Model", "full"),
    _doc("Credit Agreement", "legal"),
]


@pytest.mark.parametrize(
    "tier,expected",
    [
        (AccessTier.EARLY, {"Lender Presentation", "Teaser"}),
        (AccessTier.FULL, {"Lender Presentation", "Teaser", "Financial Model"}),
        ("legal", {"Lender Presentation", "Teaser", "Financial Model", "Credit Agreement"}),
    ],
)
def test_filter_documents_by_tier(tier, expected):
    assert {d.name for d in filter_documents_by_tier(DOCS, tier)} == expected


def test_unknown_tier_falls_back_to_early():
    assert can_access_doc_tier("platinum", "early")
    assert not can_access_doc_tier("platinum", "full")
    assert not can_access_doc_tier(None, "legal")


def test_doc_tier_comparison_ignores_case():
    assert can_access_doc_tier("FULL", " Full ")


def test_lender_access_nda_wall():
    invitation = InvitationRead(
        id="inv", deal_id="101", lender_id="l-1", invited_by="desk@bank.com"
    )
    access = lender_access(invitation)
    assert access.nda_wall and not access.nda_signed
    assert access.access_tier is AccessTier.EARLY

    signed = invitation.model_copy(update={"nda_signed_at": datetime.now(timezone.utc)})
    assert not lender_access(signed).nda_wall

    waived = invitation.model_copy(update={"nda_required": False})
    assert not lender_access(waived).nda_wall

"""Deal context aggregation tests."""

from __future__ import annotations

from datetime import date, datetime, timezone

from src.dealroom.access.capabilities import NO_CAPABILITIES, capabilities_for
from src.dealroom.deals.context import assemble_deal_context, is_nda_signed, load_deal_context
from src.dealroom.deals.deadlines import DeadlineKind
from src.dealroom.deals.schemas import AccessTier, DealRead, InvitationCreate, InvitationRead
from src.dealroom.schemas.auth import SessionUser

DEAL_ID = "101"
NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def _deal() -> DealRead:
    return DealRead(
        id="7",
        name="Cobalt Revolver",
        sponsor="Cobalt Holdings",
        instrument="Revolver",
        size=75_000_000,
        launch_date=date(2026, 10, 15),
        close_date=date(2026, 12, 1),
    )


def _invitation(**overrides) -> InvitationRead:
    fields = {
        "id": "inv-1",
        "deal_id": "7",
        "lender_id": "lender-1",
        "invited_by": "desk@bank.com",
        "access_tier": AccessTier.FULL,
    }
    fields.update(overrides)
    return InvitationRead(**fields)


INVESTOR = SessionUser(id="u-3", email="lena@fund.com", role="Investor", lender_id="lender-1")


# ── is_nda_signed ────────────────────────────────────────────────────────────


def test_nda_signed_without_invitation():
    assert is_nda_signed(None)


def test_nda_signed_when_not_required():
    assert is_nda_signed(_invitation(nda_required=False))


def test_nda_unsigned_when_required_and_pending():
    assert not is_nda_signed(_invitation())


def test_nda_signed_once_timestamp_set():
    assert is_nda_signed(_invitation(nda_signed_at=NOW))


# ── assemble_deal_context ────────────────────────────────────────────────────


def test_assemble_with_pending_nda():
    ctx = assemble_deal_context(_deal(), _invitation(), INVESTOR, now=NOW)
    assert ctx.deal is not None and ctx.deal.id == "7"
    assert ctx.nda_signed is False
    assert ctx.access_tier is AccessTier.FULL
    assert ctx.capabilities == capabilities_for("Investor")
    assert [d.kind for d in ctx.deadlines] == [DeadlineKind.NDA, DeadlineKind.CLOSE]
    assert ctx.next_deadline is not None
    assert ctx.next_deadline.kind is DeadlineKind.NDA
    assert ctx.error is None and ctx.loading is False


def test_assemble_with_signed_nda_moves_next_deadline():
    ctx = assemble_deal_context(_deal(), _invitation(nda_signed_at=NOW), INVESTOR, now=NOW)
    assert ctx.nda_signed
    assert ctx.next_deadline is not None
    assert ctx.next_deadline.kind is DeadlineKind.CLOSE


def test_assemble_without_deal_or_user():
    ctx = assemble_deal_context(None, None, None, error="Deal not found: 7", now=NOW)
    assert ctx.deal is None
    assert ctx.deadlines == []
    assert ctx.next_deadline is None
    assert ctx.capabilities == NO_CAPABILITIES
    assert ctx.nda_signed is True
    assert ctx.access_tier is None
    assert ctx.error == "Deal not found: 7"


# ── load_deal_context ────────────────────────────────────────────────────────


async def test_load_for_internal_user(repo, seeded):
    ctx = await load_deal_context(repo, DEAL_ID, seeded["issuer"], now=NOW)
    assert ctx.deal is not None
    assert ctx.invitation is None
    assert ctx.capabilities.create_deal
    assert len(ctx.deadlines) == 4


async def test_load_picks_up_investor_invitation(repo, seeded):
    await repo.create_invitation(
        DEAL_ID,
        InvitationCreate(lender_id="lender-1", access_tier=AccessTier.LEGAL, invited_by="desk@bank.com"),
    )
    ctx = await load_deal_context(repo, DEAL_ID, seeded["investor"], now=NOW)
    assert ctx.invitation is not None
    assert ctx.access_tier is AccessTier.LEGAL
    assert ctx.nda_signed is False


async def test_load_missing_deal_sets_error(repo, seeded):
    ctx = await load_deal_context(repo, "nope", seeded["issuer"], now=NOW)
    assert ctx.deal is None
    assert ctx.error == "Deal not found: nope"


async def test_load_turns_repository_failure_into_error(seeded):
    class BrokenRepository:
        async def get_deal(self, deal_id):
            raise ConnectionError("database unavailable")

    ctx = await load_deal_context(BrokenRepository(), DEAL_ID, seeded["issuer"], now=NOW)
    assert ctx.deal is None
    assert ctx.error == "database unavailable"
    assert ctx.capabilities == capabilities_for("Issuer")

"""Audit trail and reminder audience tests."""

from __future__ import annotations

from src.dealroom.deals.audit import AuditAction, record_audit
from src.dealroom.deals.reminders import resolve_audience, send_reminders
from src.dealroom.deals.schemas import (
    InvitationCreate,
    LenderCreate,
    ReminderAudience,
    ReminderRequest,
)
from src.dealroom.schemas.auth import SessionUser

DEAL_ID = "101"


# ── record_audit ─────────────────────────────────────────────────────────────


async def test_record_audit_attributes_actor(repo, seeded):
    entry = await record_audit(
        repo, AuditAction.VIEW_DEAL, actor=seeded["investor"], deal_id=DEAL_ID
    )
    assert entry is not None
    assert entry.actor_role == "Investor"
    assert entry.actor_email == "lena@fund.com"
    assert entry.lender_id == "lender-1"
    assert entry.action == "VIEW_DEAL"


async def test_record_audit_anonymous_and_unknown_roles(repo):
    anonymous = await record_audit(repo, AuditAction.ACCESS_DENIED, deal_id=DEAL_ID)
    assert anonymous is not None
    assert anonymous.actor_role == "anonymous"
    assert anonymous.user_id is None

    roleless = SessionUser(id="u-9", email="who@example.com", role="auditor")
    unknown = await record_audit(repo, AuditAction.ACCESS_DENIED, actor=roleless)
    assert unknown is not None
    assert unknown.actor_role == "unknown"


async def test_record_audit_swallows_storage_failure(seeded):
    class BrokenRepository:
        async def create_log(self, data):
            raise RuntimeError("disk full")

    result = await record_audit(
        BrokenRepository(), AuditAction.SIGN_NDA, actor=seeded["investor"], deal_id=DEAL_ID
    )
    assert result is None


# ── Reminder audiences ───────────────────────────────────────────────────────


async def _invite_two_lenders(repo) -> None:
    await repo.create_lender(
        LenderCreate(first_name="Max", last_name="Mezz", email="max@mezz.com", organization="Mezz LP"),
        lender_id="lender-3",
    )
    for lender_id in ("lender-1", "lender-3"):
        await repo.create_invitation(
            DEAL_ID, InvitationCreate(lender_id=lender_id, invited_by="desk@bank.com")
        )


async def test_audience_all_and_missing_nda(repo, seeded):
    await _invite_two_lenders(repo)
    await repo.sign_nda(DEAL_ID, "lender-1", signer_email="lena@fund.com")

    everyone = await resolve_audience(repo, DEAL_ID, ReminderAudience.ALL)
    assert {i.lender_id for i in everyone} == {"lender-1", "lender-3"}

    missing = await resolve_audience(repo, DEAL_ID, ReminderAudience.MISSING_NDA)
    assert [i.lender_id for i in missing] == ["lender-3"]


async def test_audience_by_activity(repo, seeded):
    await _invite_two_lenders(repo)
    await record_audit(
        repo, AuditAction.SUBMIT_COMMITMENT, actor=seeded["investor"], deal_id=DEAL_ID
    )
    await record_audit(
        repo, AuditAction.DOWNLOAD_DOC, deal_id=DEAL_ID, lender_id="lender-3"
    )

    no_commitment = await resolve_audience(repo, DEAL_ID, ReminderAudience.NO_COMMITMENT)
    assert [i.lender_id for i in no_commitment] == ["lender-3"]

    unviewed = await resolve_audience(repo, DEAL_ID, ReminderAudience.UNVIEWED_DOCS)
    assert [i.lender_id for i in unviewed] == ["lender-1"]


async def test_send_reminders_writes_one_entry_per_recipient(repo, seeded):
    await _invite_two_lenders(repo)
    request = ReminderRequest(subject="IOIs due Friday", body_text="Please submit.")

    result = await send_reminders(repo, DEAL_ID, request, seeded["bookrunner"])

    assert result.sent_count == 2
    assert set(result.recipients) == {"lena@fund.com", "max@mezz.com"}
    logs = await repo.list_logs(DEAL_ID, action=AuditAction.SEND_REMINDER.value)
    assert len(logs) == 2
    assert all(log.metadata["subject"] == "IOIs due Friday" for log in logs)
    assert all(log.actor_role == "Bookrunner" for log in logs)


async def test_send_reminders_skips_missing_lender(repo, seeded):
    await repo.create_invitation(
        DEAL_ID, InvitationCreate(lender_id="ghost", invited_by="desk@bank.com")
    )
    request = ReminderRequest(subject="Reminder", body_text="Body")
    result = await send_reminders(repo, DEAL_ID, request, seeded["bookrunner"])
    assert result.sent_count == 0
    assert result.recipients == []

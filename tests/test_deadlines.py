"""Deadline derivation tests.

All tests pin ``now`` so results do not depend on the wall clock.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from src.dealroom.deals.deadlines import (
    DeadlineKind,
    derive_deadlines,
    first_outstanding,
    next_deadline,
)
from src.dealroom.deals.schemas import DealRead

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def _deal(**overrides) -> DealRead:
    fields = {
        "id": "101",
        "name": "Atlas Term Loan B",
        "sponsor": "Atlas Capital",
        "instrument": "Term Loan B",
        "size": 500_000_000.0,
        "close_date": date(2026, 12, 15),
    }
    fields.update(overrides)
    return DealRead(**fields)


def _is_sorted(deadlines) -> bool:
    return all(a.due_at <= b.due_at for a, b in zip(deadlines, deadlines[1:]))


# ── derive_deadlines ─────────────────────────────────────────────────────────


def test_close_date_only_yields_one_deadline():
    deadlines = derive_deadlines(_deal(), now=NOW)
    assert len(deadlines) == 1
    assert deadlines[0].kind is DeadlineKind.CLOSE
    assert deadlines[0].label == "Expected Close"
    assert deadlines[0].due_at == datetime(2026, 12, 15, tzinfo=timezone.utc)


def test_hard_close_adds_exactly_one_and_stays_sorted():
    base = derive_deadlines(_deal(), now=NOW)
    with_hard = derive_deadlines(_deal(hard_close_date=date(2026, 12, 31)), now=NOW)
    assert len(with_hard) == len(base) + 1
    assert with_hard[-1].kind is DeadlineKind.HARD_CLOSE
    assert _is_sorted(with_hard)


def test_hard_close_before_close_is_still_sorted():
    deadlines = derive_deadlines(_deal(hard_close_date=date(2026, 11, 30)), now=NOW)
    assert [d.kind for d in deadlines] == [DeadlineKind.HARD_CLOSE, DeadlineKind.CLOSE]


def test_no_dates_yields_nothing():
    assert derive_deadlines(_deal(close_date=None), now=NOW) == []


def test_full_lifecycle_ordering():
    deal = _deal(
        launch_date=date(2026, 10, 10),
        ioi_date=date(2026, 11, 1),
        commitment_date=date(2026, 11, 20),
        hard_close_date=date(2026, 12, 31),
    )
    deadlines = derive_deadlines(deal, now=NOW)
    assert [d.kind for d in deadlines] == [
        DeadlineKind.NDA,
        DeadlineKind.IOI,
        DeadlineKind.COMMITMENT,
        DeadlineKind.CLOSE,
        DeadlineKind.HARD_CLOSE,
    ]
    assert _is_sorted(deadlines)


def test_nda_deadline_is_launch_plus_offset():
    deadlines = derive_deadlines(_deal(launch_date=date(2026, 10, 15)), now=NOW)
    nda = deadlines[0]
    assert nda.kind is DeadlineKind.NDA
    assert nda.nda_gated
    assert nda.due_at == datetime(2026, 10, 22, tzinfo=timezone.utc)
    assert not nda.satisfied
    assert nda.days_remaining == 5


def test_nda_offset_is_configurable():
    deadlines = derive_deadlines(
        _deal(launch_date=date(2026, 10, 15)), now=NOW, nda_deadline_days=14
    )
    assert deadlines[0].due_at == datetime(2026, 10, 29, tzinfo=timezone.utc)


def test_signed_nda_marks_nda_deadline_satisfied():
    signed = datetime(2026, 10, 16, 9, 30, tzinfo=timezone.utc)
    deadlines = derive_deadlines(_deal(launch_date=date(2026, 10, 15)), signed, now=NOW)
    nda = deadlines[0]
    assert nda.satisfied
    assert not nda.elapsed


def test_past_milestones_are_kept_and_marked_elapsed():
    deal = _deal(ioi_date=date(2026, 9, 1))
    deadlines = derive_deadlines(deal, now=NOW)
    ioi = deadlines[0]
    assert ioi.kind is DeadlineKind.IOI
    assert ioi.elapsed and ioi.satisfied
    assert ioi.days_remaining < 0


def test_non_nda_milestones_are_not_gated():
    deadlines = derive_deadlines(_deal(ioi_date=date(2026, 11, 1)), now=NOW)
    assert not any(d.nda_gated for d in deadlines)


def test_naive_now_is_treated_as_utc():
    naive = datetime(2026, 10, 17, 12, 0)
    assert derive_deadlines(_deal(), now=naive) == derive_deadlines(_deal(), now=NOW)


# ── next_deadline ────────────────────────────────────────────────────────────


def test_next_deadline_skips_elapsed_and_satisfied():
    signed = datetime(2026, 10, 16, tzinfo=timezone.utc)
    deal = _deal(
        launch_date=date(2026, 10, 15),
        ioi_date=date(2026, 9, 1),
        commitment_date=date(2026, 11, 20),
    )
    upcoming = next_deadline(deal, signed, now=NOW)
    assert upcoming is not None
    assert upcoming.kind is DeadlineKind.COMMITMENT


def test_next_deadline_is_unsigned_nda_when_pending():
    upcoming = next_deadline(_deal(launch_date=date(2026, 10, 15)), now=NOW)
    assert upcoming is not None
    assert upcoming.kind is DeadlineKind.NDA


def test_next_deadline_none_when_everything_passed():
    deal = _deal(close_date=date(2026, 1, 1), hard_close_date=date(2026, 2, 1))
    assert next_deadline(deal, now=NOW) is None


def test_next_deadline_never_before_now():
    deal = _deal(
        launch_date=date(2026, 9, 1),
        ioi_date=date(2026, 10, 1),
        commitment_date=date(2026, 10, 17),
        hard_close_date=date(2027, 1, 5),
    )
    for hour in range(0, 24, 3):
        now = datetime(2026, 10, 17, hour, tzinfo=timezone.utc)
        upcoming = next_deadline(deal, now=now)
        assert upcoming is None or upcoming.due_at >= now


def test_due_exactly_now_is_still_next():
    now = datetime(2026, 12, 15, tzinfo=timezone.utc)
    upcoming = next_deadline(_deal(), now=now)
    assert upcoming is not None
    assert upcoming.kind is DeadlineKind.CLOSE
    assert upcoming.days_remaining == 0


def test_first_outstanding_on_empty_list():
    assert first_outstanding([], NOW) is None

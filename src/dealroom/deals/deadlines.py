"""Deadline derivation from a deal's lifecycle dates.

Deadlines are never stored. Every read recomputes them from the deal and
the optional NDA signature timestamp, so they cannot drift from the dates
they come from.

Milestones, one deadline each when the date is present on the deal:
- nda: launch_date + NDA deadline offset; satisfied once the NDA is signed
- ioi: IOI submission
- commitment: commitment due
- close: expected (soft) close
- hard_close: hard close

Past milestones are kept and marked elapsed so audit and history views see
the full timeline.
"""

from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict

from src.dealroom.deals.schemas import DealRead

NDA_DEADLINE_DAYS = 7

_SECONDS_PER_DAY = 24 * 60 * 60


class DeadlineKind(str, Enum):
    NDA = "nda"
    IOI = "ioi"
    COMMITMENT = "commitment"
    CLOSE = "close"
    HARD_CLOSE = "hard_close"


_LABELS: dict[DeadlineKind, str] = {
    DeadlineKind.NDA: "Sign NDA",
    DeadlineKind.IOI: "IOI Submission",
    DeadlineKind.COMMITMENT: "Commitment Due",
    DeadlineKind.CLOSE: "Expected Close",
    DeadlineKind.HARD_CLOSE: "Hard Close",
}


class Deadline(BaseModel):
    """One dated milestone, derived for a specific evaluation instant."""

    model_config = ConfigDict(frozen=True)

    kind: DeadlineKind
    label: str
    due_at: datetime
    satisfied: bool = False
    elapsed: bool = False
    nda_gated: bool = False
    days_remaining: int = 0


def _as_utc_midnight(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _build(
    kind: DeadlineKind,
    due: date,
    now: datetime,
    *,
    nda_gated: bool = False,
    done: bool = False,
) -> Deadline:
    due_at = _as_utc_midnight(due)
    elapsed = due_at < now
    seconds_left = (due_at - now).total_seconds()
    return Deadline(
        kind=kind,
        label=_LABELS[kind],
        due_at=due_at,
        satisfied=done or elapsed,
        elapsed=elapsed,
        nda_gated=nda_gated,
        days_remaining=math.ceil(seconds_left / _SECONDS_PER_DAY),
    )


def derive_deadlines(
    deal: DealRead,
    nda_signed_at: datetime | None = None,
    *,
    now: datetime | None = None,
    nda_deadline_days: int = NDA_DEADLINE_DAYS,
) -> list[Deadline]:
    """Derive the deal's deadlines, ascending by due date.

    Args:
        deal: The deal whose lifecycle dates drive the milestones.
        nda_signed_at: When the viewing lender signed the NDA, if they have.
        now: Evaluation instant (defaults to the current UTC time).
        nda_deadline_days: Days after launch the NDA is due.

    Returns:
        One Deadline per milestone present on the deal.
    """
    now = _as_aware(now) if now is not None else datetime.now(timezone.utc)
    deadlines: list[Deadline] = []

    if deal.launch_date is not None:
        deadlines.append(
            _build(
                DeadlineKind.NDA,
                deal.launch_date + timedelta(days=nda_deadline_days),
                now,
                nda_gated=True,
                done=nda_signed_at is not None,
            )
        )

    dated = (
        (DeadlineKind.IOI, deal.ioi_date),
        (DeadlineKind.COMMITMENT, deal.commitment_date),
        (DeadlineKind.CLOSE, deal.close_date),
        (DeadlineKind.HARD_CLOSE, deal.hard_close_date),
    )
    for kind, due in dated:
        if due is not None:
            deadlines.append(_build(kind, due, now))

    # sorted() is stable, so same-day milestones keep lifecycle order
    return sorted(deadlines, key=lambda d: d.due_at)


def next_deadline(
    deal: DealRead,
    nda_signed_at: datetime | None = None,
    *,
    now: datetime | None = None,
    nda_deadline_days: int = NDA_DEADLINE_DAYS,
) -> Deadline | None:
    """Earliest outstanding deadline at or after ``now``, or None."""
    now = _as_aware(now) if now is not None else datetime.now(timezone.utc)
    return first_outstanding(
        derive_deadlines(deal, nda_signed_at, now=now, nda_deadline_days=nda_deadline_days),
        now,
    )


def first_outstanding(deadlines: list[Deadline], now: datetime) -> Deadline | None:
    """Pick the next deadline from an already-derived, sorted list."""
    now = _as_aware(now)
    for deadline in deadlines:
        if not deadline.satisfied and deadline.due_at >= now:
            return deadline
    return None

"""ICS calendar rendering for derived deal deadlines.

Each deadline becomes an all-day VEVENT. DTEND is exclusive for all-day
events, so it is the day after the due date. Lines end in CRLF and text
fields are escaped per RFC 5545.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from src.dealroom.config import get_settings
from src.dealroom.deals.deadlines import Deadline
from src.dealroom.deals.schemas import DealRead

CRLF = "\r\n"


def escape_ics_text(value: str) -> str:
    """Escape backslash, semicolon, comma and newlines for a TEXT value."""
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def _event_lines(deal: DealRead, deadline: Deadline, dtstamp: str) -> list[str]:
    start = deadline.due_at.date()
    end = start + timedelta(days=1)
    description = f"{deadline.label} for {deal.name} ({deal.instrument}, {deal.sponsor})"
    return [
        "BEGIN:VEVENT",
        f"UID:{deal.id}-{deadline.kind.value}@dealroom",
        f"DTSTAMP:{dtstamp}",
        f"DTSTART;VALUE=DATE:{start:%Y%m%d}",
        f"DTEND;VALUE=DATE:{end:%Y%m%d}",
        f"SUMMARY:{escape_ics_text(f'{deal.name}: {deadline.label}')}",
        f"DESCRIPTION:{escape_ics_text(description)}",
        "STATUS:CONFIRMED",
        "TRANSP:TRANSPARENT",
        "END:VEVENT",
    ]


def deadlines_to_ics(
    deal: DealRead,
    deadlines: list[Deadline],
    *,
    now: datetime | None = None,
) -> str:
    """Render a VCALENDAR holding one all-day event per deadline."""
    now = now or datetime.now(timezone.utc)
    dtstamp = now.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{get_settings().CALENDAR_PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
    ]
    for deadline in deadlines:
        lines.extend(_event_lines(deal, deadline, dtstamp))
    lines.append("END:VCALENDAR")

    return CRLF.join(lines) + CRLF

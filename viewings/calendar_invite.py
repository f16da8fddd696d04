"""iCalendar invite text for confirmed viewings.

The invite is delivered as a chat message the recipient can copy into a
``.ics`` file; nothing is written to disk. Appointment times are wall-clock
times in the configured calendar timezone and are emitted in UTC.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from viewings.models import Property, ViewingAppointment

PRODID = "-//Viewings//Property Viewing//EN"
UID_DOMAIN = "viewings.local"


def format_ics_datetime(value: datetime) -> str:
    """``YYYYMMDDTHHMMSSZ`` in UTC."""
    return value.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def to_utc(day: date, at: time, tz_name: str) -> datetime:
    return datetime.combine(day, at, tzinfo=ZoneInfo(tz_name)).astimezone(timezone.utc)


def _escape(text: str) -> str:
    return (
        text.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def build_ics(
    appointment: ViewingAppointment,
    prop: Property,
    tz_name: str = "UTC",
    now: Optional[datetime] = None,
) -> str:
    """Return a VCALENDAR with one VEVENT for ``appointment``."""
    now = now or datetime.now(tz=timezone.utc)
    start = to_utc(appointment.appointment_date, appointment.start_time, tz_name)
    end = to_utc(appointment.appointment_date, appointment.end_time, tz_name)

    details = ["Property viewing appointment", "", f"Property: {prop.address}"]
    if prop.property_type:
        details.append(f"Type: {prop.property_type}")
    if prop.price is not None:
        details.append(f"Price: {prop.price:,.0f}")
    details.append(f"Reference: {appointment.short_id()}")
    description = "\n".join(details)

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:REQUEST",
        "BEGIN:VEVENT",
        f"UID:{appointment.id}@{UID_DOMAIN}",
        f"DTSTAMP:{format_ics_datetime(now)}",
        f"DTSTART:{format_ics_datetime(start)}",
        f"DTEND:{format_ics_datetime(end)}",
        "SUMMARY:" + _escape(f"Property Viewing - {prop.address}"),
        f"DESCRIPTION:{_escape(description)}",
        f"LOCATION:{_escape(prop.address)}",
        "STATUS:CONFIRMED",
        "TRANSP:OPAQUE",
        "BEGIN:VALARM",
        "TRIGGER:-PT15M",
        "ACTION:DISPLAY",
        "DESCRIPTION:Property viewing in 15 minutes",
        "END:VALARM",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
    return "\r\n".join(lines)


def invite_message(
    appointment: ViewingAppointment,
    prop: Property,
    tz_name: str = "UTC",
    now: Optional[datetime] = None,
) -> str:
    """Chat message wrapping the ICS block in a code fence."""
    ics = build_ics(appointment, prop, tz_name, now)
    return (
        "📅 *Calendar Invite*\n\n"
        "Copy the text below and save it as an \".ics\" file to add the viewing "
        "to your calendar.\n\n"
        f"```\n{ics}\n```"
    )

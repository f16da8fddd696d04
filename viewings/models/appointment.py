"""Pydantic models for viewing appointments and bookable slots."""

from __future__ import annotations

import uuid
import datetime as dt
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class AppointmentStatus(str, Enum):
    PENDING_OWNER_APPROVAL = "pending_owner_approval"
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    CANCELLED = "cancelled"


# Statuses that hold a property's time range
ACTIVE_STATUSES = frozenset(
    {AppointmentStatus.PENDING_OWNER_APPROVAL, AppointmentStatus.CONFIRMED}
)


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def format_date(day: date) -> str:
    """``Mon, Mar 3`` style date for chat messages."""
    return f"{day:%a, %b} {day.day}"


def format_time_range(start: time, end: time) -> str:
    return f"{start:%H:%M} - {end:%H:%M}"


class ViewingAppointment(BaseModel):
    """A booked (or requested) viewing of one property by one user."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    property_id: str
    user_id: str
    appointment_date: date
    start_time: time
    end_time: time
    viewing_time_slot_id: Optional[str] = None
    status: AppointmentStatus = AppointmentStatus.PENDING_OWNER_APPROVAL
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def short_id(self, length: int = 4) -> str:
        """Human-typeable prefix of the identifier used in owner replies."""
        return self.id[:length]

    def overlaps(self, start: time, end: time) -> bool:
        """Half-open overlap: touching boundaries do not conflict."""
        return self.start_time < end and self.end_time > start

    @property
    def date_formatted(self) -> str:
        return format_date(self.appointment_date)

    @property
    def time_formatted(self) -> str:
        return format_time_range(self.start_time, self.end_time)


class ViewingTimeSlot(BaseModel):
    """Generic slot template used when a property has no owner rules."""

    id: str
    start_time: time
    end_time: time


DEFAULT_TIME_SLOTS: list[ViewingTimeSlot] = [
    ViewingTimeSlot(id=f"default-{hour:02d}00", start_time=time(hour), end_time=time(hour + 1))
    for hour in range(9, 19)
]


class CandidateSlot(BaseModel):
    """A concrete (date, start, end) window offered to a buyer."""

    date: dt.date
    start_time: time
    end_time: time
    time_slot_id: str = ""

    @property
    def date_formatted(self) -> str:
        return format_date(self.date)

    @property
    def time_formatted(self) -> str:
        return format_time_range(self.start_time, self.end_time)


class ProposedAppointment(BaseModel):
    """A time the owner proposed, waiting on the buyer's yes/no."""

    date: dt.date
    start_time: time
    end_time: time
    supersedes_appointment_id: Optional[str] = None

    @property
    def date_formatted(self) -> str:
        return format_date(self.date)

    @property
    def time_formatted(self) -> str:
        return format_time_range(self.start_time, self.end_time)

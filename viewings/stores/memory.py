"""In-memory data layer for development and tests.

``InMemoryAppointmentStore.create`` re-checks the overlap rule under a lock,
standing in for the database exclusion constraint the production store
relies on.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Iterable, Optional

from viewings.errors import BookingConflictError
from viewings.models import (
    DEFAULT_TIME_SLOTS,
    AppointmentStatus,
    Contact,
    Property,
    ViewingAppointment,
    ViewingTimeSlot,
)

from .base import AppointmentStore, DirectoryStore

log = logging.getLogger("viewings.stores.memory")


class InMemoryDirectory(DirectoryStore):
    def __init__(
        self,
        properties: Iterable[Property] = (),
        users: Iterable[Contact] = (),
    ) -> None:
        self._properties: dict[str, Property] = {p.id: p for p in properties}
        self._users: dict[str, Contact] = {u.id: u for u in users}

    def add_property(self, prop: Property) -> None:
        self._properties[prop.id] = prop
        for person in (prop.owner, prop.agent):
            if person is not None:
                self._users.setdefault(person.id, person)

    def add_user(self, user: Contact) -> None:
        self._users[user.id] = user

    async def get_property_with_details(self, property_id: str) -> Optional[Property]:
        return self._properties.get(property_id)

    async def find_property(self, property_id: str) -> Optional[Property]:
        return self._properties.get(property_id)

    async def find_user(self, user_id: str) -> Optional[Contact]:
        return self._users.get(user_id)


class InMemoryAppointmentStore(AppointmentStore):
    def __init__(self, time_slots: Optional[list[ViewingTimeSlot]] = None) -> None:
        self._appointments: dict[str, ViewingAppointment] = {}
        self._time_slots = list(DEFAULT_TIME_SLOTS if time_slots is None else time_slots)
        self._lock = asyncio.Lock()

    async def create(self, appointment: ViewingAppointment) -> ViewingAppointment:
        async with self._lock:
            for existing in self._appointments.values():
                if (
                    existing.property_id == appointment.property_id
                    and existing.appointment_date == appointment.appointment_date
                    and existing.is_active
                    and appointment.is_active
                    and existing.overlaps(appointment.start_time, appointment.end_time)
                ):
                    raise BookingConflictError(
                        f"Range {appointment.time_formatted} on "
                        f"{appointment.appointment_date} overlaps appointment {existing.id}"
                    )
            stored = appointment.model_copy()
            self._appointments[stored.id] = stored
            log.info(
                "Appointment %s created for property %s on %s (%s)",
                stored.id, stored.property_id, stored.appointment_date, stored.status.value,
            )
            return stored.model_copy()

    async def get(self, appointment_id: str) -> Optional[ViewingAppointment]:
        found = self._appointments.get(appointment_id)
        return found.model_copy() if found else None

    async def find_by_prefix(self, prefix: str) -> list[ViewingAppointment]:
        prefix = prefix.lower()
        return [
            a.model_copy()
            for a in self._appointments.values()
            if a.id.lower().startswith(prefix)
        ]

    async def list_active(self, property_id: str, day: date) -> list[ViewingAppointment]:
        return sorted(
            (
                a.model_copy()
                for a in self._appointments.values()
                if a.property_id == property_id and a.appointment_date == day and a.is_active
            ),
            key=lambda a: a.start_time,
        )

    async def list_for_user(
        self,
        user_id: str,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> list[ViewingAppointment]:
        return [
            a for a in await self.list_all(from_date, to_date) if a.user_id == user_id
        ]

    async def transition(
        self,
        appointment_id: str,
        from_statuses: Iterable[AppointmentStatus],
        to_status: AppointmentStatus,
    ) -> Optional[ViewingAppointment]:
        async with self._lock:
            current = self._appointments.get(appointment_id)
            if current is None or current.status not in set(from_statuses):
                return None
            current.status = to_status
            current.updated_at = datetime.now(tz=timezone.utc)
            return current.model_copy()

    async def list_pending_older_than(self, cutoff: datetime) -> list[ViewingAppointment]:
        return [
            a.model_copy()
            for a in self._appointments.values()
            if a.status == AppointmentStatus.PENDING_OWNER_APPROVAL and a.created_at < cutoff
        ]

    async def list_time_slots(self) -> list[ViewingTimeSlot]:
        return sorted(self._time_slots, key=lambda s: s.start_time)

    async def list_all(
        self,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> list[ViewingAppointment]:
        selected = [
            a.model_copy()
            for a in self._appointments.values()
            if (from_date is None or a.appointment_date >= from_date)
            and (to_date is None or a.appointment_date <= to_date)
        ]
        selected.sort(key=lambda a: (a.appointment_date, a.start_time))
        return selected

"""Availability resolver and overlap guard.

Computes the bookable viewing slots for a property over a lookahead window.
Two sources, never mixed:

* the owner's weekly ``availability`` rules, when the property declares any;
* the generic ``ViewingTimeSlot`` catalogue (weekdays only) otherwise.

A property with rules that are all booked yields an empty list. It does
*not* fall back to the generic catalogue.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Callable, Optional

from viewings.models import AvailabilityRule, CandidateSlot, Property
from viewings.stores.base import AppointmentStore, DirectoryStore

log = logging.getLogger("viewings.availability")


def split_range(start: time, end: time, granularity_minutes: int) -> list[tuple[time, time]]:
    """Cut ``[start, end)`` into consecutive blocks of ``granularity_minutes``.

    ``granularity_minutes <= 0`` returns the whole range as one block. A
    trailing block shorter than the granularity is dropped.
    """
    if granularity_minutes <= 0:
        return [(start, end)]

    anchor = date(2000, 1, 1)
    cursor = datetime.combine(anchor, start)
    stop = datetime.combine(anchor, end)
    step = timedelta(minutes=granularity_minutes)

    blocks: list[tuple[time, time]] = []
    while cursor + step <= stop:
        blocks.append((cursor.time(), (cursor + step).time()))
        cursor += step
    return blocks


class AvailabilityResolver:
    """Resolve open viewing slots and answer overlap queries for a property."""

    def __init__(
        self,
        directory: DirectoryStore,
        appointments: AppointmentStore,
        max_slots: int = 15,
        slot_granularity_minutes: int = 0,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self._directory = directory
        self._appointments = appointments
        self._max_slots = max_slots
        self._granularity = slot_granularity_minutes
        self._today = today or date.today

    async def is_range_booked(
        self,
        property_id: str,
        day: date,
        start: time,
        end: time,
        ignore_id: Optional[str] = None,
    ) -> bool:
        """True if an active appointment overlaps ``[start, end)`` on ``day``.

        ``ignore_id`` leaves one appointment out of the check, such as a
        request about to be replaced. Storage errors count as booked so a
        broken read never offers a slot.
        """
        try:
            existing = await self._appointments.list_active(property_id, day)
        except Exception:
            log.exception(
                "Overlap check failed for property %s on %s; treating as booked",
                property_id, day,
            )
            return True
        return any(a.overlaps(start, end) for a in existing if a.id != ignore_id)

    async def get_available_slots(
        self, property_id: str, days_ahead: int = 7
    ) -> list[CandidateSlot]:
        """Open slots for the next ``days_ahead`` days, starting tomorrow."""
        prop = await self._directory.find_property(property_id)
        if prop is None:
            log.info("No property %s; no slots", property_id)
            return []
        return await self.slots_for_property(prop, days_ahead)

    async def slots_for_property(
        self, prop: Property, days_ahead: int = 7
    ) -> list[CandidateSlot]:
        days = [self._today() + timedelta(days=i) for i in range(1, days_ahead + 1)]

        if prop.has_availability_rules:
            log.info("Using owner-defined availability for property %s", prop.id)
            slots = await self._slots_from_rules(prop, prop.availability or [], days)
        else:
            log.info("No owner-defined availability for property %s, using generic slots", prop.id)
            slots = await self._slots_from_catalogue(prop, days)

        slots.sort(key=lambda s: (s.date, s.start_time))
        return slots[: self._max_slots]

    async def _slots_from_rules(
        self, prop: Property, rules: list[AvailabilityRule], days: list[date]
    ) -> list[CandidateSlot]:
        slots: list[CandidateSlot] = []
        for day in days:
            weekday = day.strftime("%A")
            for rule in (r for r in rules if r.day == weekday):
                for start, end in split_range(rule.start_time, rule.end_time, self._granularity):
                    if await self.is_range_booked(prop.id, day, start, end):
                        continue
                    slots.append(CandidateSlot(
                        date=day,
                        start_time=start,
                        end_time=end,
                        time_slot_id=f"{rule.day}-{start:%H:%M}",
                    ))
        return slots

    async def _slots_from_catalogue(
        self, prop: Property, days: list[date]
    ) -> list[CandidateSlot]:
        templates = await self._appointments.list_time_slots()
        slots: list[CandidateSlot] = []
        for day in days:
            if day.weekday() >= 5:  # Saturday, Sunday
                continue
            for template in templates:
                if await self.is_range_booked(prop.id, day, template.start_time, template.end_time):
                    continue
                slots.append(CandidateSlot(
                    date=day,
                    start_time=template.start_time,
                    end_time=template.end_time,
                    time_slot_id=template.id,
                ))
        return slots

"""Tests for the double-booking guard: check-before-insert plus store constraint."""

import asyncio
import random
from datetime import date, datetime, time, timedelta
from itertools import combinations

import pytest

from conftest import BUYER, BUYER_2, OWNER

from viewings import messages
from viewings.errors import BookingConflictError
from viewings.models import (
    AppointmentStatus,
    AwaitingBuyerConfirmation,
    SlotSelection,
    ViewingAppointment,
)

DAY = date(2025, 3, 10)


def _at(minutes: int) -> time:
    return (datetime.combine(DAY, time(0)) + timedelta(minutes=minutes)).time()


def _overlap(a: ViewingAppointment, b: ViewingAppointment) -> bool:
    return a.start_time < b.end_time and a.end_time > b.start_time


class TestAdjacency:
    @pytest.mark.asyncio
    async def test_back_to_back_both_succeed(self, service):
        first = await service.book_appointment("prop-1", "a", DAY, time(10), time(11))
        second = await service.book_appointment("prop-1", "b", DAY, time(11), time(12))

        assert first.status == AppointmentStatus.PENDING_OWNER_APPROVAL
        assert second.status == AppointmentStatus.PENDING_OWNER_APPROVAL

    @pytest.mark.asyncio
    async def test_overlap_rejected(self, service):
        await service.book_appointment("prop-1", "a", DAY, time(10), time(11))

        with pytest.raises(BookingConflictError):
            await service.book_appointment("prop-1", "b", DAY, time(10, 30), time(11, 30))

    @pytest.mark.asyncio
    async def test_same_range_other_date_allowed(self, service):
        await service.book_appointment("prop-1", "a", DAY, time(10), time(11))
        await service.book_appointment("prop-1", "b", DAY + timedelta(days=1), time(10), time(11))

    @pytest.mark.asyncio
    async def test_declined_range_can_be_rebooked(self, service, store):
        first = await service.book_appointment("prop-1", "a", DAY, time(10), time(11))
        await store.transition(first.id, {AppointmentStatus.PENDING_OWNER_APPROVAL},
                               AppointmentStatus.DECLINED)

        again = await service.book_appointment("prop-1", "b", DAY, time(10), time(11))
        assert again.id != first.id


class TestRandomisedInvariant:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", [7, 1234, 99991])
    async def test_accepted_ranges_never_overlap(self, service, store, seed):
        rng = random.Random(seed)
        accepted: list[ViewingAppointment] = []
        rejected: list[tuple[time, time]] = []

        for i in range(150):
            start = rng.randrange(8 * 60, 19 * 60, 15)
            length = rng.choice([15, 30, 45, 60, 90, 120, 180])
            status = rng.choice([AppointmentStatus.PENDING_OWNER_APPROVAL, AppointmentStatus.CONFIRMED])
            try:
                accepted.append(await service.book_appointment(
                    "prop-1", f"user-{i}", DAY, _at(start), _at(start + length), status=status,
                ))
            except BookingConflictError:
                rejected.append((_at(start), _at(start + length)))

        assert accepted and rejected
        for a, b in combinations(accepted, 2):
            assert not _overlap(a, b), f"{a.time_formatted} overlaps {b.time_formatted}"
        for start, end in rejected:
            assert any(a.overlaps(start, end) for a in accepted)

        active = await store.list_active("prop-1", DAY)
        assert len(active) == len(accepted)


class TestStoreConstraint:
    @pytest.mark.asyncio
    async def test_concurrent_inserts_only_one_wins(self, store):
        def make(user_id):
            return ViewingAppointment(
                property_id="prop-1", user_id=user_id,
                appointment_date=DAY, start_time=time(14), end_time=time(17),
            )

        results = await asyncio.gather(
            store.create(make("a")), store.create(make("b")), return_exceptions=True,
        )

        assert sum(isinstance(r, ViewingAppointment) for r in results) == 1
        assert sum(isinstance(r, BookingConflictError) for r in results) == 1

    @pytest.mark.asyncio
    async def test_insert_conflict_surfaces_as_unavailable(self, service, store, directory):
        """A booking that lands between the check and the insert is reported, not raised."""
        prop = await directory.get_property_with_details("prop-1")
        await service.handle_viewing_interest("I want to see it", BUYER, "prop-1")
        await service.handle_viewing_interest("I want to see it", BUYER_2, "prop-1")

        # Buyer 2 books first; buyer 1's check races past it
        assert await service.process_slot_selection("1", BUYER_2) == [messages.REQUEST_SENT]

        async def never_booked(*args, **kwargs):
            return False

        service.resolver.is_range_booked = never_booked
        reply = await service.process_slot_selection("1", BUYER)

        assert reply == [messages.SLOT_UNAVAILABLE]
        assert isinstance(service.pending.get(BUYER.phone_number), SlotSelection)
        assert len(await store.list_active(prop.id, DAY)) == 1

    @pytest.mark.asyncio
    async def test_proposal_losing_insert_race_restores_request(self, service, store):
        original = await store.create(ViewingAppointment(
            property_id="prop-1", user_id=BUYER.id,
            appointment_date=DAY, start_time=time(14), end_time=time(17),
        ))
        await service.handle_owner_response(f"Suggest Tuesday at 3pm for {original.short_id()}", OWNER)
        await store.create(ViewingAppointment(
            property_id="prop-1", user_id=BUYER_2.id,
            appointment_date=DAY + timedelta(days=1), start_time=time(15), end_time=time(16),
        ))

        async def never_booked(*args, **kwargs):
            return False

        service.resolver.is_range_booked = never_booked
        reply = await service.process_coordination_response("yes", BUYER)

        assert reply == [messages.BOOKING_FAILED]
        assert (await store.get(original.id)).status == AppointmentStatus.PENDING_OWNER_APPROVAL
        assert isinstance(service.pending.get(BUYER.phone_number), AwaitingBuyerConfirmation)

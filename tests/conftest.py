"""Shared fixtures for the viewing-core tests."""

import os
import sys
from datetime import date, datetime, timezone

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from viewings.config import Settings
from viewings.models import Contact, Property
from viewings.notifications import Notifier
from viewings.pending_store import PendingRequestStore
from viewings.service import AppointmentService
from viewings.stores import InMemoryAppointmentStore, InMemoryDirectory

# A Friday: the next Monday is three days away
TODAY = date(2025, 3, 7)
NOW = datetime(2025, 3, 7, 9, 0, tzinfo=timezone.utc)

OWNER = Contact(id="owner-1", phone_number="+306900000001", name="Olga", role="owner")
AGENT = Contact(id="agent-1", phone_number="+306900000009", name="Andreas", role="agent")
BUYER = Contact(id="buyer-1", phone_number="+306900000002", name="Bill", role="buyer")
BUYER_2 = Contact(id="buyer-2", phone_number="+306900000003", name="Bea", role="renter")
STRANGER = Contact(id="owner-2", phone_number="+306900000004", role="owner")

MONDAY_AFTERNOON = [{"day": "Monday", "startTime": "14:00", "endTime": "17:00"}]


class RecordingNotifier(Notifier):
    """Collects outbound messages instead of sending them."""

    def __init__(self, fail: bool = False):
        self.sent: list[tuple[str, str]] = []
        self.fail = fail

    async def send_message(self, phone_number: str, text: str) -> None:
        if self.fail:
            raise RuntimeError("provider down")
        self.sent.append((phone_number, text))

    def to(self, phone_number: str) -> list[str]:
        return [text for phone, text in self.sent if phone == phone_number]


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_property(
    property_id: str = "prop-1",
    availability=None,
    owner: Contact | None = OWNER,
    agent: Contact | None = None,
) -> Property:
    return Property(
        id=property_id,
        address="12 Ermou St, Athens",
        property_type="apartment",
        price=250000,
        owner=owner,
        agent=agent,
        availability=availability,
    )


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def directory():
    d = InMemoryDirectory()
    d.add_property(make_property("prop-1", availability=MONDAY_AFTERNOON))
    d.add_property(make_property("prop-open", availability=None))
    for user in (BUYER, BUYER_2, STRANGER):
        d.add_user(user)
    return d


@pytest.fixture
def store():
    return InMemoryAppointmentStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(directory, store, notifier, settings, clock):
    return AppointmentService(
        directory,
        store,
        notifier,
        settings=settings,
        pending=PendingRequestStore(
            ttl_seconds=settings.pending_request_ttl_minutes * 60,
            coordination_ttl_seconds=settings.coordination_ttl_hours * 3600,
            clock=clock,
        ),
        today=lambda: TODAY,
        now=lambda: NOW,
    )

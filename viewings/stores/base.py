"""Abstract base classes for the data layer.

The appointment core reads properties and users through ``DirectoryStore``
and reads/writes appointments through ``AppointmentStore``. Any backend
(PostgREST, in-memory, etc.) implements these ABCs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Iterable, Optional

from viewings.models import (
    AppointmentStatus,
    Contact,
    Property,
    ViewingAppointment,
    ViewingTimeSlot,
)


class DirectoryStore(ABC):
    """Read-only access to properties and users."""

    @abstractmethod
    async def get_property_with_details(self, property_id: str) -> Optional[Property]:
        """Return the property with its owner and agent contacts populated."""

    @abstractmethod
    async def find_property(self, property_id: str) -> Optional[Property]:
        """Return the property record (availability rules included)."""

    @abstractmethod
    async def find_user(self, user_id: str) -> Optional[Contact]:
        """Look up a user by identifier."""


class AppointmentStore(ABC):
    """Persistence for viewing appointments and generic time-slot templates.

    ``create`` must reject an appointment whose range overlaps an active
    appointment for the same property and date by raising
    ``BookingConflictError`` (a database exclusion constraint in production).
    """

    @abstractmethod
    async def create(self, appointment: ViewingAppointment) -> ViewingAppointment:
        """Insert a new appointment.

        Raises:
            BookingConflictError: The range is no longer free.
        """

    @abstractmethod
    async def get(self, appointment_id: str) -> Optional[ViewingAppointment]:
        """Fetch one appointment by full identifier."""

    @abstractmethod
    async def find_by_prefix(self, prefix: str) -> list[ViewingAppointment]:
        """Return every appointment whose identifier starts with ``prefix``."""

    @abstractmethod
    async def list_active(self, property_id: str, day: date) -> list[ViewingAppointment]:
        """Appointments for the property on ``day`` that still hold their range."""

    @abstractmethod
    async def list_for_user(
        self,
        user_id: str,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> list[ViewingAppointment]:
        """A user's appointments ordered by date then start time."""

    @abstractmethod
    async def transition(
        self,
        appointment_id: str,
        from_statuses: Iterable[AppointmentStatus],
        to_status: AppointmentStatus,
    ) -> Optional[ViewingAppointment]:
        """Compare-and-set the status.

        Returns:
            The updated appointment, or None when the appointment does not
            exist or its current status is not in ``from_statuses``.
        """

    @abstractmethod
    async def list_pending_older_than(self, cutoff: datetime) -> list[ViewingAppointment]:
        """``pending_owner_approval`` appointments created before ``cutoff``."""

    @abstractmethod
    async def list_time_slots(self) -> list[ViewingTimeSlot]:
        """Generic slot templates ordered by start time."""

    @abstractmethod
    async def list_all(
        self,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> list[ViewingAppointment]:
        """Every appointment in the optional date window (for statistics)."""

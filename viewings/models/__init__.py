"""Data models for the appointment core."""

from .appointment import (
    ACTIVE_STATUSES,
    DEFAULT_TIME_SLOTS,
    AppointmentStatus,
    CandidateSlot,
    ProposedAppointment,
    ViewingAppointment,
    ViewingTimeSlot,
)
from .parsing import (
    AppointmentIntent,
    ConfirmationResult,
    OwnerResponse,
    ProposedTime,
    TimePreference,
)
from .pending import (
    AwaitingBuyerConfirmation,
    Coordinating,
    PendingRequest,
    PreferenceCollection,
    SlotSelection,
)
from .property import AvailabilityRule, Contact, Property

__all__ = [
    "ACTIVE_STATUSES",
    "DEFAULT_TIME_SLOTS",
    "AppointmentIntent",
    "AppointmentStatus",
    "AvailabilityRule",
    "AwaitingBuyerConfirmation",
    "CandidateSlot",
    "ConfirmationResult",
    "Contact",
    "Coordinating",
    "OwnerResponse",
    "PendingRequest",
    "PreferenceCollection",
    "Property",
    "ProposedAppointment",
    "ProposedTime",
    "SlotSelection",
    "TimePreference",
    "ViewingAppointment",
    "ViewingTimeSlot",
]

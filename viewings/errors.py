"""Exception types raised inside the appointment core.

None of these escape the public operations on ``AppointmentService``; they
are caught at that boundary and turned into chat text.
"""


class ViewingError(Exception):
    """Base class for appointment-core errors."""


class BookingConflictError(ViewingError):
    """The requested range overlaps an active appointment for the property."""


class ParserError(ViewingError):
    """An LLM-backed parser failed or returned output outside its contract."""


class StoreError(ViewingError):
    """The data layer returned an unexpected error."""


class NotificationError(ViewingError):
    """An outbound message could not be handed to the messaging provider."""

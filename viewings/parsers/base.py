"""Abstract base classes for the natural-language parsers.

The appointment core treats each parser as an oracle with a fixed output
contract. Every backend (OpenAI-backed, rule-based) implements these ABCs.
Implementations must not raise for ordinary input; an LLM backend falls
back to its rule-based sibling instead.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional

from viewings.models import (
    AppointmentIntent,
    ConfirmationResult,
    OwnerResponse,
    ProposedTime,
    TimePreference,
)


class IntentDetector(ABC):
    """Decides whether a buyer message asks to view a property."""

    @abstractmethod
    async def detect(self, message: str) -> AppointmentIntent:
        """Classify ``message``.

        Args:
            message: Raw inbound chat text.

        Returns:
            AppointmentIntent with ``is_appointment_request`` set and a
            confidence between 0 and 1.
        """


class ConfirmationClassifier(ABC):
    """Yes/no classifier for replies to a proposed viewing time."""

    @abstractmethod
    async def classify(self, message: str) -> ConfirmationResult:
        """Return whether ``message`` accepts the proposal.

        Counter-proposals ("actually 4pm") are ``negotiation``, not
        confirmations.
        """


class PreferenceParser(ABC):
    """Free text to structured viewing-time preferences."""

    @abstractmethod
    async def parse(self, message: str) -> TimePreference:
        """Extract days, times, flexibility and urgency from ``message``.

        The ``summary`` field is always populated; when nothing can be
        extracted it holds the original message.
        """

    @abstractmethod
    async def extract_proposal(
        self, message: str, today: date, duration_minutes: int = 60
    ) -> Optional[ProposedTime]:
        """Pull one concrete date and time range out of ``message``.

        Relative references ("tomorrow", "Tuesday") resolve against
        ``today``; a bare weekday means its next occurrence after today.
        When only a start time is given the range lasts
        ``duration_minutes``.

        Returns:
            ProposedTime, or None when the text lacks either a day or a
            time.
        """


class OwnerResponseParser(ABC):
    """Parses an owner's or agent's reply about a specific appointment."""

    @abstractmethod
    async def parse(self, message: str) -> OwnerResponse:
        """Return the reply's intent and the short appointment ID it cites.

        ``intent`` is ``unclear`` when the text is not about an
        appointment; ``appointment_id`` is None when no ID is present.
        """

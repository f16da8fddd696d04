"""Notifier ABC for outbound chat messages.

The appointment core sends counterparty messages (owner notifications,
buyer proposals, calendar invites) through this interface. Delivery is
best effort: callers log a failed send and carry on.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from viewings.pending_store import redact_pii

log = logging.getLogger("viewings.notifications")


class Notifier(ABC):
    """Outbound messaging transport."""

    @abstractmethod
    async def send_message(self, phone_number: str, text: str) -> None:
        """Deliver ``text`` to ``phone_number``.

        Args:
            phone_number: E.164 number, with or without a channel prefix.
            text: Message body.

        Raises:
            NotificationError: The provider rejected or never received the
                message.
        """


class LogNotifier(Notifier):
    """Writes messages to the log instead of sending them.

    Used when no messaging provider is configured.
    """

    async def send_message(self, phone_number: str, text: str) -> None:
        log.info("[stub] message to %s: %s", redact_pii(phone_number), text[:120])

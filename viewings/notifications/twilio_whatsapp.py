"""Twilio WhatsApp notifier.

Posts to the Twilio Messages REST API. Both sender and recipient carry the
``whatsapp:`` channel prefix, added here when missing.

API reference:
  https://www.twilio.com/docs/whatsapp/api
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from viewings.errors import NotificationError
from viewings.pending_store import redact_pii

from .base import Notifier

log = logging.getLogger("viewings.notifications.twilio")

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"
WHATSAPP_PREFIX = "whatsapp:"
# Twilio rejects bodies longer than this
MAX_BODY_LENGTH = 1600


def whatsapp_address(phone_number: str) -> str:
    phone_number = phone_number.strip()
    if phone_number.startswith(WHATSAPP_PREFIX):
        return phone_number
    return WHATSAPP_PREFIX + phone_number


class TwilioWhatsAppNotifier(Notifier):
    """Sends WhatsApp messages through Twilio.

    Args:
        account_sid: Twilio account SID (``AC...``).
        auth_token: Twilio auth token.
        from_number: The WhatsApp-enabled sender number.
        transport: Optional httpx transport, for tests.
    """

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._account_sid = account_sid
        self._from = whatsapp_address(from_number)
        self._client = httpx.AsyncClient(
            base_url=TWILIO_API_BASE,
            auth=(account_sid, auth_token),
            timeout=httpx.Timeout(timeout, connect=5.0),
            transport=transport,
        )

    async def send_message(self, phone_number: str, text: str) -> None:
        to = whatsapp_address(phone_number)
        chunks = _split_body(text)
        for chunk in chunks:
            try:
                resp = await self._client.post(
                    f"/Accounts/{self._account_sid}/Messages.json",
                    data={"From": self._from, "To": to, "Body": chunk},
                )
                resp.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise NotificationError(
                    f"Twilio returned {exc.response.status_code} for {redact_pii(phone_number)}: "
                    f"{exc.response.text[:200]}"
                ) from exc
            except httpx.HTTPError as exc:
                raise NotificationError(
                    f"Twilio request failed for {redact_pii(phone_number)}: {exc}"
                ) from exc
            log.info("WhatsApp message sent to %s (sid=%s)",
                     redact_pii(phone_number), resp.json().get("sid"))

    async def aclose(self) -> None:
        await self._client.aclose()


def _split_body(text: str) -> list[str]:
    """Split on line boundaries so no chunk exceeds ``MAX_BODY_LENGTH``."""
    if len(text) <= MAX_BODY_LENGTH:
        return [text]
    chunks: list[str] = []
    current = ""
    for line in text.splitlines(keepends=True):
        while len(line) > MAX_BODY_LENGTH:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:MAX_BODY_LENGTH])
            line = line[MAX_BODY_LENGTH:]
        if len(current) + len(line) > MAX_BODY_LENGTH:
            chunks.append(current)
            current = ""
        current += line
    if current:
        chunks.append(current)
    return chunks

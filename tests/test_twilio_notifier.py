"""Tests for the Twilio WhatsApp notifier."""

from urllib.parse import parse_qs

import httpx
import pytest

from viewings.errors import NotificationError
from viewings.notifications import LogNotifier
from viewings.notifications.twilio_whatsapp import (
    MAX_BODY_LENGTH,
    TwilioWhatsAppNotifier,
    whatsapp_address,
)


def _notifier(handler) -> TwilioWhatsAppNotifier:
    return TwilioWhatsAppNotifier(
        "AC123", "token", "+14155238886", transport=httpx.MockTransport(handler),
    )


def _form(request: httpx.Request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


class TestAddress:
    def test_adds_prefix(self):
        assert whatsapp_address("+306900000002") == "whatsapp:+306900000002"

    def test_keeps_existing_prefix(self):
        assert whatsapp_address("whatsapp:+306900000002") == "whatsapp:+306900000002"


class TestSend:
    @pytest.mark.asyncio
    async def test_posts_form(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(201, json={"sid": "SM1"})

        await _notifier(handler).send_message("+306900000002", "Hello")

        [request] = seen
        assert request.url.path == "/2010-04-01/Accounts/AC123/Messages.json"
        assert request.headers["Authorization"].startswith("Basic ")
        assert _form(request) == {
            "From": "whatsapp:+14155238886",
            "To": "whatsapp:+306900000002",
            "Body": "Hello",
        }

    @pytest.mark.asyncio
    async def test_rejection_raises(self):
        def handler(request):
            return httpx.Response(400, json={"message": "not a WhatsApp number"})

        with pytest.raises(NotificationError) as excinfo:
            await _notifier(handler).send_message("+306900000002", "Hello")

        assert "400" in str(excinfo.value)
        assert "+306900000002" not in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_network_error_raises(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(NotificationError):
            await _notifier(handler).send_message("+306900000002", "Hello")

    @pytest.mark.asyncio
    async def test_long_body_split_on_lines(self):
        bodies = []

        def handler(request):
            bodies.append(_form(request)["Body"])
            return httpx.Response(201, json={"sid": f"SM{len(bodies)}"})

        line = "x" * 99 + "\n"
        text = line * 40  # 4000 characters

        await _notifier(handler).send_message("+306900000002", text)

        assert len(bodies) == 3
        assert all(len(b) <= MAX_BODY_LENGTH for b in bodies)
        assert "".join(bodies) == text


class TestLogNotifier:
    @pytest.mark.asyncio
    async def test_logs_redacted(self, caplog):
        with caplog.at_level("INFO", logger="viewings.notifications"):
            await LogNotifier().send_message("+306900000002", "Hello")

        assert "+30***02" in caplog.text
        assert "+306900000002" not in caplog.text

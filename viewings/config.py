"""Application configuration via environment variables."""

from __future__ import annotations

import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings

log = logging.getLogger("viewings.config")


class Settings(BaseSettings):
    # LLM
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    llm_timeout_seconds: float = 15.0

    # Twilio WhatsApp
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_whatsapp_number: str = ""

    # PostgREST data layer
    postgrest_url: str = ""
    postgrest_api_key: str = ""

    # Calendar
    calendar_timezone: str = "UTC"

    # Availability
    availability_days_ahead: int = 7
    max_offered_slots: int = 15
    slot_granularity_minutes: int = 0      # 0 = offer each owner rule as one block
    default_viewing_minutes: int = 60
    offer_generic_slots: bool = False

    # Appointments
    short_id_length: int = 4
    stale_pending_hours: int = 0           # 0 = never expire pending_owner_approval rows

    # Pending requests
    pending_request_ttl_minutes: int = 30
    coordination_ttl_hours: int = 24
    pending_sweep_interval_seconds: float = 60.0

    # Admin auth
    admin_api_key: str = ""

    # Server
    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []
        _placeholders = {"sk-...", "AC..."}

        try:
            ZoneInfo(self.calendar_timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(
                f"CALENDAR_TIMEZONE {self.calendar_timezone!r} is not a known IANA timezone."
            ) from None

        for name in (
            "availability_days_ahead",
            "max_offered_slots",
            "default_viewing_minutes",
            "pending_request_ttl_minutes",
            "coordination_ttl_hours",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name.upper()} must be >= 1, got {getattr(self, name)}")

        if self.slot_granularity_minutes < 0:
            raise ValueError(
                f"SLOT_GRANULARITY_MINUTES must be >= 0, got {self.slot_granularity_minutes}"
            )
        if not 4 <= self.short_id_length <= 36:
            raise ValueError(
                f"SHORT_ID_LENGTH must be between 4 and 36, got {self.short_id_length}"
            )
        if self.stale_pending_hours < 0:
            raise ValueError(
                f"STALE_PENDING_HOURS must be >= 0, got {self.stale_pending_hours}"
            )

        # LLM key: optional, parsers fall back to rules
        if not self.openai_api_key or self.openai_api_key in _placeholders:
            warnings.append(
                "OPENAI_API_KEY not set. Rule-based parsers will be used for all messages."
            )

        if not self.twilio_account_sid or self.twilio_account_sid in _placeholders:
            warnings.append("TWILIO_ACCOUNT_SID is missing. WhatsApp messages won't be sent.")

        if not self.postgrest_url:
            warnings.append("POSTGREST_URL not set. Using the in-memory data store.")

        # Admin API key: warn if unset
        if not self.admin_api_key:
            if self.debug:
                warnings.append(
                    "ADMIN_API_KEY not set. Admin APIs are open (DEBUG=true)."
                )
            else:
                warnings.append(
                    "ADMIN_API_KEY not set. Admin APIs are locked in production. "
                    "Set ADMIN_API_KEY in .env to enable admin access."
                )

        return warnings


settings = Settings()

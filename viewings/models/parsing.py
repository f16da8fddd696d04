"""Output contracts for the natural-language parser collaborators."""

from __future__ import annotations

import datetime as dt
from datetime import time
from typing import Literal, Optional

from pydantic import BaseModel, Field


class TimePreference(BaseModel):
    """A buyer's stated availability, e.g. "Tuesday or Wednesday afternoon"."""

    days: list[str] = Field(default_factory=list)
    times: list[str] = Field(default_factory=list)
    flexibility: Literal["high", "medium", "low"] = "high"
    urgency: Literal["high", "medium", "low"] = "medium"
    summary: str = ""


class ConfirmationResult(BaseModel):
    is_confirmation: bool = False
    confidence: float = 0.0
    type: Literal["confirmation", "rejection", "negotiation", "unknown"] = "unknown"


class AppointmentIntent(BaseModel):
    is_appointment_request: bool = False
    confidence: float = 0.0
    intent_type: Literal["viewing", "booking", "inquiry"] = "inquiry"
    has_contextual_reference: bool = False
    keywords: list[str] = Field(default_factory=list)


class OwnerResponse(BaseModel):
    intent: Literal["confirm", "decline", "suggest_new_time", "unclear"] = "unclear"
    appointment_id: Optional[str] = None
    new_time_suggestion: Optional[str] = None


class ProposedTime(BaseModel):
    """A concrete date and time range pulled out of free text."""

    date: dt.date
    start_time: time
    end_time: time

"""Pydantic models for properties and the people attached to them.

Properties are owned by the property-management subsystem; the appointment
core only reads them.
"""

from __future__ import annotations

from datetime import time
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


class Contact(BaseModel):
    """A user as resolved by the external user lookup."""

    id: str
    phone_number: str
    name: Optional[str] = None
    role: str = "buyer"  # buyer | renter | owner | agent


class AvailabilityRule(BaseModel):
    """Owner-declared weekly availability, e.g. Monday 14:00-17:00."""

    model_config = ConfigDict(populate_by_name=True)

    day: str
    start_time: time = Field(alias="startTime")
    end_time: time = Field(alias="endTime")

    @field_validator("day")
    @classmethod
    def _normalise_day(cls, value: str) -> str:
        day = value.strip().title()
        if day not in WEEKDAYS:
            raise ValueError(f"Unknown weekday: {value!r}")
        return day

    @model_validator(mode="after")
    def _check_range(self) -> "AvailabilityRule":
        if self.start_time >= self.end_time:
            raise ValueError("Start time must be before end time")
        return self


class Property(BaseModel):
    id: str
    address: str
    property_type: str = ""  # apartment | house | commercial | land
    price: Optional[float] = None
    owner: Optional[Contact] = None
    agent: Optional[Contact] = None
    availability: Optional[list[AvailabilityRule]] = None

    @property
    def has_availability_rules(self) -> bool:
        """True when the owner declared at least one weekly rule."""
        return bool(self.availability)

    @property
    def representative(self) -> Optional[Contact]:
        """The person who answers viewing requests: the owner, else the agent."""
        if self.owner and self.owner.phone_number:
            return self.owner
        if self.agent and self.agent.phone_number:
            return self.agent
        return None

    def is_represented_by(self, contact: Contact) -> bool:
        """Whether ``contact`` is this property's owner or agent."""
        for person in (self.owner, self.agent):
            if person is None:
                continue
            if person.id == contact.id or (
                person.phone_number and person.phone_number == contact.phone_number
            ):
                return True
        return False

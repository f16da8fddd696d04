"""Pending-request variants, one per stage of the buyer's booking flow.

Each variant carries only the fields its stage needs. ``PendingRequest`` is
a discriminated union on ``kind``.
"""

from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from .appointment import CandidateSlot, ProposedAppointment
from .parsing import TimePreference
from .property import Property


class SlotSelection(BaseModel):
    """Numbered slots were offered; a reply like "3" picks one."""

    kind: Literal["slot_selection"] = "slot_selection"
    property: Property
    offered_slots: list[CandidateSlot]


class PreferenceCollection(BaseModel):
    """No owner rules; waiting for the buyer's free-text availability."""

    kind: Literal["preference_collection"] = "preference_collection"
    property: Property
    original_message: str = ""


class Coordinating(BaseModel):
    """Preferences relayed to the owner; waiting for the owner's answer."""

    kind: Literal["coordinating"] = "coordinating"
    property: Property
    preferences: TimePreference


class AwaitingBuyerConfirmation(BaseModel):
    """The owner proposed a time; waiting for the buyer's yes/no."""

    kind: Literal["awaiting_buyer_confirmation"] = "awaiting_buyer_confirmation"
    property: Property
    proposal: ProposedAppointment
    preferences: Optional[TimePreference] = None


PendingRequest = Annotated[
    Union[SlotSelection, PreferenceCollection, Coordinating, AwaitingBuyerConfirmation],
    Field(discriminator="kind"),
]

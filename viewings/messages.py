"""Chat text for every step of the viewing flow.

WhatsApp markdown: ``*bold*``, plain newlines. Every function returns one
message body.
"""

from __future__ import annotations

from itertools import groupby
from typing import Iterable, Optional

from viewings.models import (
    AppointmentStatus,
    CandidateSlot,
    Property,
    ProposedAppointment,
    TimePreference,
    ViewingAppointment,
)

_PROPERTY_EMOJI = {
    "apartment": "🏢",
    "house": "🏠",
    "commercial": "🏬",
    "land": "🌳",
}

_STATUS_LABEL = {
    AppointmentStatus.PENDING_OWNER_APPROVAL: "awaiting owner approval",
    AppointmentStatus.CONFIRMED: "confirmed",
    AppointmentStatus.DECLINED: "declined",
    AppointmentStatus.CANCELLED: "cancelled",
}


def property_emoji(property_type: str) -> str:
    return _PROPERTY_EMOJI.get((property_type or "").lower(), "🏠")


def _header(prop: Property, title: str = "Property Viewing") -> str:
    return f"{property_emoji(prop.property_type)} *{title} - {prop.address}*"


def status_label(status: AppointmentStatus) -> str:
    return _STATUS_LABEL[status]


# ── Generic ──────────────────────────────────────────────────────

GENERIC_ERROR = "❌ Something went wrong while handling your request. Please try again."
PROPERTY_NOT_FOUND = "❌ Property not found. Please try searching again."
NO_PENDING_REQUEST = (
    "🤔 I don't have any pending viewing requests from you. "
    "Please search for a property first."
)
SLOT_NUMBER_PROMPT = '💡 Please specify the slot number. Example: "I want slot 3" or just "3"'
SLOT_UNAVAILABLE = "❌ Sorry, that time slot is no longer available. Please choose another time."
BOOKING_FAILED = (
    "❌ Sorry, that time is no longer available. "
    "Reply with another day or time and I'll check with the owner/agent."
)
REQUEST_SENT = (
    "👍 Great! I've sent your request to the property owner/agent for confirmation.\n\n"
    "I will let you know as soon as they respond!"
)
NO_REPRESENTATIVE = (
    "❌ This property has no owner or agent contact on file, "
    "so I can't arrange a viewing right now."
)


def invalid_slot(count: int) -> str:
    return f"❌ Invalid slot number. Please choose between 1 and {count}"


# ── Buyer: slots and preferences ─────────────────────────────────


def slot_list(prop: Property, slots: list[CandidateSlot]) -> str:
    """Numbered slot list grouped under one heading per date."""
    lines = [_header(prop), "", "🗓️ *Available Viewing Times:*", ""]
    number = 1
    for _, day_slots in groupby(slots, key=lambda s: s.date):
        day_slots = list(day_slots)
        lines.append(f"📅 *{day_slots[0].date_formatted}*")
        for slot in day_slots:
            lines.append(f"{number}. {slot.time_formatted}")
            number += 1
        lines.append("")
    lines.append("💡 *Reply with the number* of your preferred time slot")
    lines.append('Example: "I want slot 3" or just "3"')
    return "\n".join(lines)


def fully_booked(prop: Property) -> str:
    return (
        f"{_header(prop)}\n\n"
        "😕 All of the owner's viewing times for the next few days are already booked.\n\n"
        "Please check back later or ask about another property."
    )


def preference_prompt(prop: Property) -> str:
    return (
        f"{_header(prop)}\n\n"
        "🤔 The property owner/agent hasn't set specific viewing times yet.\n\n"
        "📋 *When would you like to view this property?*\n\n"
        "Please let me know your preferred:\n"
        "• Day(s): Monday, Tuesday, etc.\n"
        "• Time(s): Morning, afternoon, evening, or specific times\n\n"
        'Example: "Tuesday or Wednesday afternoon" or "Tomorrow at 2 PM"\n\n'
        "💼 I'll coordinate with the owner/agent and get back to you!"
    )


def preferences_received(preferences: TimePreference) -> str:
    return (
        f"📝 Got it! You prefer: *{preferences.summary}*\n\n"
        "⏳ I'm now coordinating with the property owner/agent.\n\n"
        "🔔 I'll get back to you as soon as they reply with available times!"
    )


def preferences_updated(preferences: TimePreference) -> str:
    return (
        f"📝 Got your updated preferences: *{preferences.summary}*\n\n"
        "⏳ I'm coordinating with the property owner/agent again.\n\n"
        "🔔 I'll get back to you with their availability!"
    )


COORDINATION_REINFORCED = (
    "✅ Perfect! I've confirmed your availability with the property owner/agent.\n\n"
    "📞 They'll get back to us soon with the final confirmation."
)


def buyer_booking_confirmed(prop: Property, appointment: ViewingAppointment) -> str:
    return (
        "✅ *Viewing Confirmed!*\n\n"
        f"📍 {prop.address}\n"
        f"📅 {appointment.date_formatted}\n"
        f"⏰ {appointment.time_formatted}\n\n"
        "🎉 The property owner/agent has been notified."
    )


# ── Owner notifications ──────────────────────────────────────────


def owner_new_request(prop: Property, appointment: ViewingAppointment, short_id: str) -> str:
    return (
        f"{_header(prop, 'New Viewing Request')}\n\n"
        "👤 A potential buyer/renter is interested.\n"
        f"📅 Date: {appointment.date_formatted}\n"
        f"⏰ Time: {appointment.time_formatted}\n\n"
        "*Please reply to this message to confirm, decline, or suggest a new time.*\n\n"
        "Examples:\n"
        f'- "Confirm {short_id}"\n'
        f'- "Decline {short_id}"\n'
        f'- "Suggest Tuesday at 3pm for {short_id}"'
    )


def owner_availability_request(prop: Property, preferences: TimePreference) -> str:
    return (
        f"{_header(prop, 'Viewing Request')}\n\n"
        "👤 Interested party: potential buyer/renter\n\n"
        f"🗓️ *Their preferences:*\n{preferences.summary}\n\n"
        "❓ *When are you available for a viewing?*\n\n"
        "Please reply with a day and time, for example:\n"
        '"Tuesday 2-4 PM" or "Wednesday at 10am"'
    )


def owner_buyer_confirmed(prop: Property, appointment: ViewingAppointment) -> str:
    return (
        f"{_header(prop, 'Viewing Confirmed')}\n\n"
        "👤 Visitor: potential buyer/renter\n"
        f"📅 Date: {appointment.date_formatted}\n"
        f"⏰ Time: {appointment.time_formatted}\n\n"
        "✅ The interested party has confirmed the viewing time."
    )


def owner_confirm_ack(appointment: ViewingAppointment) -> str:
    return (
        f"✅ Viewing on {appointment.date_formatted} at {appointment.time_formatted} "
        "is confirmed. The buyer/renter has been notified."
    )


def owner_decline_ack(appointment: ViewingAppointment) -> str:
    return (
        f"👍 Viewing request for {appointment.date_formatted} at "
        f"{appointment.time_formatted} declined. The buyer/renter has been notified."
    )


def owner_suggestion_ack(suggestion: str) -> str:
    return f'📨 I\'ve passed your suggestion "{suggestion}" to the buyer/renter.'


def owner_proposal_ack(proposal: ProposedAppointment) -> str:
    return (
        f"📨 I've proposed {proposal.date_formatted} at {proposal.time_formatted} "
        "to the buyer/renter and will confirm once they reply."
    )


def owner_proposal_taken(prop: Property) -> str:
    return (
        f"⚠️ That time overlaps another viewing already booked at {prop.address}. "
        "Please reply with a different day or time."
    )


def appointment_not_found(short_id: str) -> str:
    return (
        f"❌ I couldn't find a viewing request with ID *{short_id}*. "
        "Please check the ID in the original request."
    )


def ambiguous_short_id(short_id: str) -> str:
    return (
        f"🤔 More than one viewing request starts with *{short_id}*. "
        "Please reply with a few more characters of the ID."
    )


def appointment_already(appointment: ViewingAppointment) -> str:
    return (
        f"ℹ️ The viewing on {appointment.date_formatted} at {appointment.time_formatted} "
        f"is already {status_label(appointment.status)}."
    )


# ── Buyer: owner decisions ───────────────────────────────────────


def buyer_owner_confirmed(prop: Property, appointment: ViewingAppointment) -> str:
    return (
        "✅ *Viewing Confirmed!*\n\n"
        f"📍 {prop.address}\n"
        f"📅 {appointment.date_formatted}\n"
        f"⏰ {appointment.time_formatted}\n\n"
        "🎉 The owner/agent has confirmed your viewing."
    )


def buyer_owner_declined(prop: Property, appointment: ViewingAppointment) -> str:
    return (
        f"😕 Sorry, the owner/agent can't do the viewing at {prop.address} on "
        f"{appointment.date_formatted} at {appointment.time_formatted}.\n\n"
        "💡 Ask me to view the property again to pick another time."
    )


def buyer_new_time_suggestion(
    prop: Property,
    suggestion: str,
    proposal: Optional[ProposedAppointment] = None,
) -> str:
    if proposal is not None:
        when = f"*{proposal.date_formatted} at {proposal.time_formatted}*"
    else:
        when = f"*{suggestion}*"
    return (
        f"{_header(prop)}\n\n"
        f"🔁 The owner/agent suggested a different time: {when}\n\n"
        '✅ Reply "yes" to confirm, or tell me another day and time that suits you.'
    )


def buyer_proposal(prop: Property, proposal: ProposedAppointment) -> str:
    return (
        f"{_header(prop)}\n\n"
        "🗓️ The owner/agent is available:\n"
        f"📅 {proposal.date_formatted}\n"
        f"⏰ {proposal.time_formatted}\n\n"
        '✅ Reply "yes" to confirm, or tell me another day and time that suits you.'
    )


# ── Cancellation, listings, expiry ───────────────────────────────


def buyer_cancelled(appointment: ViewingAppointment) -> str:
    return (
        f"🗑️ Your viewing on {appointment.date_formatted} at "
        f"{appointment.time_formatted} has been cancelled."
    )


def owner_cancelled(prop: Property, appointment: ViewingAppointment) -> str:
    return (
        f"{_header(prop, 'Viewing Cancelled')}\n\n"
        f"The buyer/renter cancelled the viewing on {appointment.date_formatted} at "
        f"{appointment.time_formatted} (ID {appointment.short_id()})."
    )


def cannot_cancel(appointment: ViewingAppointment) -> str:
    return f"ℹ️ That viewing is already {status_label(appointment.status)} and can't be cancelled."


def buyer_request_expired(prop: Optional[Property], appointment: ViewingAppointment) -> str:
    where = f" at {prop.address}" if prop else ""
    return (
        f"⌛ Your viewing request{where} for {appointment.date_formatted} at "
        f"{appointment.time_formatted} expired without a reply from the owner/agent.\n\n"
        "💡 Ask me to view the property again to request another time."
    )


def upcoming_appointments(
    entries: Iterable[tuple[ViewingAppointment, Optional[Property]]],
    days: int,
    short_id_length: int = 4,
) -> str:
    entries = list(entries)
    if not entries:
        return f"📭 You have no viewings scheduled in the next {days} days."
    lines = [f"🗓️ *Your viewings (next {days} days)*", ""]
    for appointment, prop in entries:
        address = prop.address if prop else "Unknown property"
        lines.append(
            f"• {appointment.date_formatted}, {appointment.time_formatted}: {address} "
            f"({status_label(appointment.status)}, ID {appointment.short_id(short_id_length)})"
        )
    return "\n".join(lines)

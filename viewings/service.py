"""Appointment service: the viewing-request state machine.

A buyer's flow is resumed by independent inbound messages, so all per-buyer
context lives in the ``PendingRequestStore``:

    interest ──► slot_selection ──(number)──► appointment pending_owner_approval
            └──► preference_collection ──(free text)──► coordinating
    coordinating ──(owner proposes a time)──► awaiting_buyer_confirmation
    awaiting_buyer_confirmation ──("yes")──► appointment confirmed

Owner replies are matched by appointment short ID (``handle_owner_response``)
or, for availability answers without an ID, by scanning coordinating buyers
for the owner's properties (``handle_owner_availability``).

Every public operation returns the chat messages for the sender and never
raises; counterparty messages go through the ``Notifier`` on a best-effort
basis.
"""

from __future__ import annotations

import functools
import logging
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from viewings import messages
from viewings.availability import AvailabilityResolver
from viewings.calendar_invite import invite_message
from viewings.config import Settings
from viewings.errors import BookingConflictError
from viewings.models import (
    AppointmentIntent,
    AppointmentStatus,
    AwaitingBuyerConfirmation,
    Contact,
    Coordinating,
    PreferenceCollection,
    Property,
    ProposedAppointment,
    SlotSelection,
    TimePreference,
    ViewingAppointment,
)
from viewings.notifications import Notifier
from viewings.parsers import Parsers, has_time_reference
from viewings.pending_store import PendingRequestStore, redact_pii
from viewings.stores import AppointmentStore, DirectoryStore

log = logging.getLogger("viewings.service")

# A reply that is only a slot number: "2", "#2", "slot 2", "I'll take 2"
_SLOT_NUMBER = re.compile(
    r"^\s*(?:(?:i(?:\s+(?:want|choose|pick|will\s+take)|['’]ll\s+take)|take)\s+)?"
    r"(?:(?:slot|option|number)\s*|#)?(\d{1,3})\s*[.!]?\s*$",
    re.IGNORECASE,
)
_PENDING = {AppointmentStatus.PENDING_OWNER_APPROVAL}


def _user_facing(fn):
    """Turn any exception escaping a public operation into a retry message."""

    @functools.wraps(fn)
    async def wrapper(self, *args, **kwargs):
        try:
            return await fn(self, *args, **kwargs)
        except Exception:
            log.exception("%s failed", fn.__name__)
            return [messages.GENERIC_ERROR]

    return wrapper


class AppointmentService:
    """Coordinates viewing requests between buyers and owners/agents.

    Args:
        directory: Read-only property and user lookup.
        appointments: Appointment persistence with an overlap constraint.
        notifier: Outbound message transport for the counterparty.
        parsers: Natural-language collaborators (rule-based by default).
        settings: Tunables; defaults to the process-wide ``Settings``.
        pending: Pending-request store; built from ``settings`` if omitted.
        today: Returns the local calendar date, injectable for tests.
        now: Returns the current UTC datetime, injectable for tests.
    """

    def __init__(
        self,
        directory: DirectoryStore,
        appointments: AppointmentStore,
        notifier: Notifier,
        parsers: Optional[Parsers] = None,
        settings: Optional[Settings] = None,
        pending: Optional[PendingRequestStore] = None,
        today: Optional[Callable[[], date]] = None,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if settings is None:
            from viewings.config import settings as default_settings

            settings = default_settings
        self.settings = settings
        self.directory = directory
        self.appointments = appointments
        self.notifier = notifier
        self.parsers = parsers or Parsers()
        self.pending = pending or PendingRequestStore(
            ttl_seconds=settings.pending_request_ttl_minutes * 60,
            coordination_ttl_seconds=settings.coordination_ttl_hours * 3600,
        )
        self._today = today or self._local_today
        self._now = now or (lambda: datetime.now(tz=timezone.utc))
        self.resolver = AvailabilityResolver(
            directory,
            appointments,
            max_slots=settings.max_offered_slots,
            slot_granularity_minutes=settings.slot_granularity_minutes,
            today=self._today,
        )

    def _local_today(self) -> date:
        return datetime.now(ZoneInfo(self.settings.calendar_timezone)).date()

    # ── Buyer flow ───────────────────────────────────────────────

    @_user_facing
    async def handle_viewing_interest(
        self, message: str, user: Contact, property_id: str
    ) -> list[str]:
        """Start a viewing flow for ``property_id``.

        Offers numbered slots when the owner declared availability rules,
        otherwise asks the buyer when they would like to visit.
        """
        log.info("Viewing interest in property %s from %s", property_id, redact_pii(user.phone_number))
        prop = await self.directory.get_property_with_details(property_id)
        if prop is None:
            self.pending.delete(user.phone_number)
            return [messages.PROPERTY_NOT_FOUND]
        if prop.representative is None:
            log.warning("Property %s has no owner or agent phone number", prop.id)
            self.pending.delete(user.phone_number)
            return [messages.NO_REPRESENTATIVE]

        if prop.has_availability_rules or self.settings.offer_generic_slots:
            slots = await self.resolver.slots_for_property(
                prop, self.settings.availability_days_ahead
            )
            if slots:
                self.pending.set(
                    user.phone_number, SlotSelection(property=prop, offered_slots=slots)
                )
                return [messages.slot_list(prop, slots)]
            if prop.has_availability_rules:
                self.pending.delete(user.phone_number)
                return [messages.fully_booked(prop)]

        self.pending.set(
            user.phone_number,
            PreferenceCollection(property=prop, original_message=message),
        )
        return [messages.preference_prompt(prop)]

    @_user_facing
    async def process_slot_selection(self, message: str, user: Contact) -> list[str]:
        """Book the slot the buyer picked by its 1-based number."""
        state = self.pending.get(user.phone_number)
        if not isinstance(state, SlotSelection):
            return [messages.NO_PENDING_REQUEST]

        match = _SLOT_NUMBER.search(message or "")
        if not match:
            return [messages.SLOT_NUMBER_PROMPT]
        number = int(match.group(1))
        if not 1 <= number <= len(state.offered_slots):
            return [messages.invalid_slot(len(state.offered_slots))]

        prop = state.property
        slot = state.offered_slots[number - 1]
        try:
            appointment = await self.book_appointment(
                prop.id,
                user.id,
                slot.date,
                slot.start_time,
                slot.end_time,
                # Rule-derived slots have no catalogue row to reference
                time_slot_id=None if prop.has_availability_rules else slot.time_slot_id,
            )
        except BookingConflictError:
            log.info("Slot %d for property %s was taken before %s could book it",
                     number, prop.id, redact_pii(user.phone_number))
            return [messages.SLOT_UNAVAILABLE]

        self.pending.delete(user.phone_number)
        await self._notify(
            prop.representative,
            messages.owner_new_request(prop, appointment, self._short_id(appointment)),
        )
        return [messages.REQUEST_SENT]

    @_user_facing
    async def process_buyer_preferences(self, message: str, user: Contact) -> list[str]:
        """Relay the buyer's free-text availability to the owner/agent."""
        state = self.pending.get(user.phone_number)
        if not isinstance(state, PreferenceCollection):
            return [messages.NO_PENDING_REQUEST]

        preferences = await self.parsers.preferences.parse(message)
        return await self._coordinate(user, state.property, preferences,
                                      messages.preferences_received(preferences))

    @_user_facing
    async def process_coordination_response(
        self, message: str, user: Contact
    ) -> Optional[list[str]]:
        """Handle a buyer message while the owner is being consulted.

        Returns None when the buyer is not coordinating or the message is
        neither a confirmation nor a new day/time, so the caller can route
        it elsewhere.
        """
        state = self.pending.get(user.phone_number)
        if not isinstance(state, (Coordinating, AwaitingBuyerConfirmation)):
            return None

        confirmation = await self.parsers.confirmation.classify(message)
        if confirmation.is_confirmation:
            if isinstance(state, AwaitingBuyerConfirmation):
                return await self._book_proposal(state, user)
            preferences = state.preferences.model_copy(
                update={"summary": f"{state.preferences.summary} (confirmed: {message})"}
            )
            return await self._coordinate(user, state.property, preferences,
                                          messages.COORDINATION_REINFORCED)

        if has_time_reference(message):
            preferences = await self.parsers.preferences.parse(message)
            return await self._coordinate(user, state.property, preferences,
                                          messages.preferences_updated(preferences))

        return None

    @_user_facing
    async def cancel_appointment(self, short_id: str, user: Contact) -> list[str]:
        """Cancel one of the user's own pending requests by short ID."""
        matches = [
            a for a in await self.appointments.find_by_prefix(short_id.lower())
            if a.user_id == user.id
        ]
        if not matches:
            return [messages.appointment_not_found(short_id)]
        if len(matches) > 1:
            return [messages.ambiguous_short_id(short_id)]

        appointment = matches[0]
        updated = await self.appointments.transition(
            appointment.id, _PENDING, AppointmentStatus.CANCELLED
        )
        if updated is None:
            current = await self.appointments.get(appointment.id) or appointment
            return [messages.cannot_cancel(current)]

        log.info("Appointment %s cancelled by %s", updated.id, redact_pii(user.phone_number))
        prop = await self.directory.get_property_with_details(updated.property_id)
        if prop is not None:
            await self._notify(prop.representative, messages.owner_cancelled(prop, updated))
        return [messages.buyer_cancelled(updated)]

    @_user_facing
    async def list_upcoming_appointments(self, user: Contact, days: int = 7) -> list[str]:
        """The user's active viewings from today through ``days`` ahead."""
        today = self._today()
        upcoming = [
            a for a in await self.appointments.list_for_user(
                user.id, today, today + timedelta(days=days)
            )
            if a.is_active
        ]
        properties: dict[str, Optional[Property]] = {}
        for appointment in upcoming:
            if appointment.property_id not in properties:
                properties[appointment.property_id] = await self.directory.find_property(
                    appointment.property_id
                )
        entries = [(a, properties[a.property_id]) for a in upcoming]
        return [messages.upcoming_appointments(entries, days, self.settings.short_id_length)]

    async def is_appointment_request(self, message: str) -> AppointmentIntent:
        """Classify whether ``message`` asks to view a property."""
        try:
            return await self.parsers.intent.detect(message)
        except Exception:
            log.exception("Intent detection failed; treating message as inquiry")
            return AppointmentIntent()

    # ── Owner flow ───────────────────────────────────────────────

    @_user_facing
    async def handle_owner_response(
        self, message: str, owner: Contact
    ) -> Optional[list[str]]:
        """Apply an owner's confirm / decline / suggest reply to an appointment.

        Returns None when the message does not cite an appointment or its
        intent is unclear.
        """
        reply = await self.parsers.owner.parse(message)
        if reply.intent == "unclear" or not reply.appointment_id:
            return None
        short_id = reply.appointment_id

        candidates: list[tuple[ViewingAppointment, Property]] = []
        for appointment in await self.appointments.find_by_prefix(short_id):
            prop = await self.directory.get_property_with_details(appointment.property_id)
            if prop is not None and prop.is_represented_by(owner):
                candidates.append((appointment, prop))
        if not candidates:
            log.info("No appointment %s for owner %s", short_id, redact_pii(owner.phone_number))
            return [messages.appointment_not_found(short_id)]
        if len(candidates) > 1:
            return [messages.ambiguous_short_id(short_id)]

        appointment, prop = candidates[0]
        if appointment.status != AppointmentStatus.PENDING_OWNER_APPROVAL:
            return [messages.appointment_already(appointment)]

        buyer = await self.directory.find_user(appointment.user_id)
        log.info("Owner %s replied %s to appointment %s",
                 redact_pii(owner.phone_number), reply.intent, appointment.id)

        if reply.intent == "confirm":
            return await self._owner_confirm(appointment, prop, buyer, owner)
        if reply.intent == "decline":
            return await self._owner_decline(appointment, prop, buyer)
        return await self._owner_suggest(
            appointment, prop, buyer, reply.new_time_suggestion or message
        )

    @_user_facing
    async def handle_owner_availability(
        self, message: str, owner: Contact
    ) -> Optional[list[str]]:
        """Turn an owner's "Tuesday 2-4 PM" reply into a proposal for the buyer.

        The reply goes to the most recently updated coordinating buyer for one
        of the owner's properties. Returns None when no buyer is waiting or the
        message has no concrete day and time.
        """
        waiting = [
            (phone, entry)
            for phone, entry in self.pending.items()
            if isinstance(entry.state, Coordinating)
            and entry.state.property.is_represented_by(owner)
        ]
        if not waiting:
            return None
        phone, entry = max(waiting, key=lambda item: item[1].updated_at)
        state: Coordinating = entry.state

        proposed = await self.parsers.preferences.extract_proposal(
            message, self._today(), self.settings.default_viewing_minutes
        )
        if proposed is None:
            return None

        prop = state.property
        if await self.resolver.is_range_booked(
            prop.id, proposed.date, proposed.start_time, proposed.end_time
        ):
            return [messages.owner_proposal_taken(prop)]

        proposal = ProposedAppointment(
            date=proposed.date,
            start_time=proposed.start_time,
            end_time=proposed.end_time,
        )
        self.pending.set(
            phone,
            AwaitingBuyerConfirmation(
                property=prop, proposal=proposal, preferences=state.preferences
            ),
        )
        await self._notify(phone, messages.buyer_proposal(prop, proposal))
        return [messages.owner_proposal_ack(proposal)]

    # ── Routing ──────────────────────────────────────────────────

    async def dispatch_message(
        self, message: str, user: Contact, property_id: Optional[str] = None
    ) -> Optional[list[str]]:
        """Route an inbound message to whichever step of the flow owns it.

        ``property_id`` is the listing the conversation is about, if any; it
        lets a fresh "I'd like to see it" start a new flow. Returns None when
        no step claims the message.
        """
        state = self.pending.get(user.phone_number)
        if isinstance(state, SlotSelection) and _SLOT_NUMBER.search(message or ""):
            return await self.process_slot_selection(message, user)
        if isinstance(state, PreferenceCollection):
            return await self.process_buyer_preferences(message, user)
        if isinstance(state, (Coordinating, AwaitingBuyerConfirmation)):
            result = await self.process_coordination_response(message, user)
            if result is not None:
                return result

        if user.role in ("owner", "agent"):
            result = await self.handle_owner_response(message, user)
            if result is None:
                result = await self.handle_owner_availability(message, user)
            if result is not None:
                return result

        if property_id:
            intent = await self.is_appointment_request(message)
            if intent.is_appointment_request:
                return await self.handle_viewing_interest(message, user, property_id)
        return None

    # ── Booking ──────────────────────────────────────────────────

    async def book_appointment(
        self,
        property_id: str,
        user_id: str,
        day: date,
        start: time,
        end: time,
        status: AppointmentStatus = AppointmentStatus.PENDING_OWNER_APPROVAL,
        time_slot_id: Optional[str] = None,
    ) -> ViewingAppointment:
        """Check the range is free, then insert.

        The store's own constraint catches a booking that lands between the
        check and the insert.

        Raises:
            BookingConflictError: The range overlaps an active appointment.
        """
        if await self.resolver.is_range_booked(property_id, day, start, end):
            raise BookingConflictError(
                f"{day} {start:%H:%M}-{end:%H:%M} is booked for property {property_id}"
            )
        return await self.appointments.create(
            ViewingAppointment(
                property_id=property_id,
                user_id=user_id,
                appointment_date=day,
                start_time=start,
                end_time=end,
                viewing_time_slot_id=time_slot_id,
                status=status,
            )
        )

    # ── Maintenance ──────────────────────────────────────────────

    async def expire_stale_appointments(self, max_age_hours: float) -> int:
        """Cancel ``pending_owner_approval`` appointments older than the cutoff.

        Each affected buyer is told their request expired. Returns the number
        of appointments cancelled.
        """
        cutoff = self._now() - timedelta(hours=max_age_hours)
        expired = 0
        for appointment in await self.appointments.list_pending_older_than(cutoff):
            updated = await self.appointments.transition(
                appointment.id, _PENDING, AppointmentStatus.CANCELLED
            )
            if updated is None:
                continue
            expired += 1
            buyer = await self.directory.find_user(updated.user_id)
            prop = await self.directory.find_property(updated.property_id)
            await self._notify(buyer, messages.buyer_request_expired(prop, updated))
        if expired:
            log.info("Cancelled %d stale pending appointment(s) older than %sh",
                     expired, max_age_hours)
        return expired

    async def statistics(self) -> dict[str, int]:
        """Counts of all appointments by date bucket and status."""
        today = self._today()
        stats = {"total": 0, "upcoming": 0, "past": 0, "today": 0}
        stats.update({status.value: 0 for status in AppointmentStatus})
        for appointment in await self.appointments.list_all():
            stats["total"] += 1
            stats[appointment.status.value] += 1
            if appointment.appointment_date == today:
                stats["today"] += 1
            elif appointment.appointment_date > today:
                stats["upcoming"] += 1
            else:
                stats["past"] += 1
        return stats

    # ── Helpers ──────────────────────────────────────────────────

    def _short_id(self, appointment: ViewingAppointment) -> str:
        return appointment.short_id(self.settings.short_id_length)

    async def _notify(self, recipient: Contact | str | None, text: str) -> None:
        """Best-effort counterparty message; failures are logged only."""
        phone = recipient.phone_number if isinstance(recipient, Contact) else recipient
        if not phone:
            log.warning("No phone number to notify; message dropped")
            return
        try:
            await self.notifier.send_message(phone, text)
        except Exception:
            log.warning("Failed to notify %s", redact_pii(phone), exc_info=True)

    async def _coordinate(
        self,
        user: Contact,
        prop: Property,
        preferences: TimePreference,
        reply: str,
    ) -> list[str]:
        """Store ``coordinating`` for the buyer and ask the owner for times."""
        self.pending.set(user.phone_number, Coordinating(property=prop, preferences=preferences))
        await self._notify(
            prop.representative, messages.owner_availability_request(prop, preferences)
        )
        return [reply]

    async def _book_proposal(
        self, state: AwaitingBuyerConfirmation, user: Contact
    ) -> list[str]:
        prop, proposal = state.property, state.proposal
        if await self.resolver.is_range_booked(
            prop.id, proposal.date, proposal.start_time, proposal.end_time,
            ignore_id=proposal.supersedes_appointment_id,
        ):
            log.info("Proposed time for property %s is no longer free", prop.id)
            return [messages.BOOKING_FAILED]

        superseded = None
        if proposal.supersedes_appointment_id:
            # The owner countered the original request, so it no longer holds its range
            superseded = await self.appointments.transition(
                proposal.supersedes_appointment_id, _PENDING, AppointmentStatus.CANCELLED
            )
        try:
            appointment = await self.book_appointment(
                prop.id,
                user.id,
                proposal.date,
                proposal.start_time,
                proposal.end_time,
                status=AppointmentStatus.CONFIRMED,
            )
        except BookingConflictError:
            log.info("Proposed time for property %s is no longer free", prop.id)
            await self._restore_superseded(superseded)
            return [messages.BOOKING_FAILED]
        except Exception:
            await self._restore_superseded(superseded)
            raise

        self.pending.delete(user.phone_number)
        invite = invite_message(appointment, prop, self.settings.calendar_timezone)
        representative = prop.representative
        await self._notify(representative, messages.owner_buyer_confirmed(prop, appointment))
        await self._notify(representative, invite)
        return [messages.buyer_booking_confirmed(prop, appointment), invite]

    async def _restore_superseded(self, superseded: Optional[ViewingAppointment]) -> None:
        """Put back a request cancelled for a proposal that lost the insert race."""
        if superseded is None:
            return
        try:
            restored = await self.appointments.transition(
                superseded.id,
                {AppointmentStatus.CANCELLED},
                AppointmentStatus.PENDING_OWNER_APPROVAL,
            )
        except Exception:
            log.warning("Could not restore appointment %s", superseded.id, exc_info=True)
            return
        if restored is not None:
            log.info("Appointment %s back to pending after failed proposal", restored.id)

    async def _owner_confirm(
        self,
        appointment: ViewingAppointment,
        prop: Property,
        buyer: Optional[Contact],
        owner: Contact,
    ) -> list[str]:
        updated = await self.appointments.transition(
            appointment.id, _PENDING, AppointmentStatus.CONFIRMED
        )
        if updated is None:
            current = await self.appointments.get(appointment.id) or appointment
            return [messages.appointment_already(current)]

        invite = invite_message(updated, prop, self.settings.calendar_timezone)
        await self._notify(buyer, messages.buyer_owner_confirmed(prop, updated))
        await self._notify(buyer, invite)
        await self._notify(owner, invite)
        return [messages.owner_confirm_ack(updated)]

    async def _owner_decline(
        self,
        appointment: ViewingAppointment,
        prop: Property,
        buyer: Optional[Contact],
    ) -> list[str]:
        updated = await self.appointments.transition(
            appointment.id, _PENDING, AppointmentStatus.DECLINED
        )
        if updated is None:
            current = await self.appointments.get(appointment.id) or appointment
            return [messages.appointment_already(current)]

        await self._notify(buyer, messages.buyer_owner_declined(prop, updated))
        return [messages.owner_decline_ack(updated)]

    async def _owner_suggest(
        self,
        appointment: ViewingAppointment,
        prop: Property,
        buyer: Optional[Contact],
        suggestion: str,
    ) -> list[str]:
        if buyer is None:
            log.warning("Buyer %s of appointment %s not found", appointment.user_id, appointment.id)
            return [messages.appointment_not_found(self._short_id(appointment))]

        proposed = await self.parsers.preferences.extract_proposal(
            suggestion, self._today(), self.settings.default_viewing_minutes
        )
        proposal: Optional[ProposedAppointment] = None
        if proposed is not None:
            proposal = ProposedAppointment(
                date=proposed.date,
                start_time=proposed.start_time,
                end_time=proposed.end_time,
                supersedes_appointment_id=appointment.id,
            )
            self.pending.set(
                buyer.phone_number,
                AwaitingBuyerConfirmation(property=prop, proposal=proposal),
            )
        else:
            self.pending.set(
                buyer.phone_number,
                Coordinating(property=prop, preferences=TimePreference(summary=suggestion)),
            )

        await self._notify(buyer, messages.buyer_new_time_suggestion(prop, suggestion, proposal))
        return [messages.owner_suggestion_ack(suggestion)]


def build_service(settings: Settings) -> AppointmentService:
    """Wire the service from configuration.

    PostgREST and Twilio are used when configured; otherwise the in-memory
    store and a logging notifier stand in.
    """
    from viewings.notifications import LogNotifier, TwilioWhatsAppNotifier
    from viewings.parsers import build_parsers
    from viewings.stores import InMemoryAppointmentStore, InMemoryDirectory

    if settings.postgrest_url:
        from viewings.stores.postgrest import (
            PostgrestAppointmentStore,
            PostgrestClient,
            PostgrestDirectory,
        )

        client = PostgrestClient(settings.postgrest_url, settings.postgrest_api_key)
        directory: DirectoryStore = PostgrestDirectory(client)
        appointments: AppointmentStore = PostgrestAppointmentStore(client)
    else:
        directory = InMemoryDirectory()
        appointments = InMemoryAppointmentStore()

    if settings.twilio_account_sid and settings.twilio_auth_token:
        notifier: Notifier = TwilioWhatsAppNotifier(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            settings.twilio_whatsapp_number,
        )
    else:
        notifier = LogNotifier()

    return AppointmentService(
        directory,
        appointments,
        notifier,
        parsers=build_parsers(settings),
        settings=settings,
    )

"""Tests for the rule-based parsers used without an OpenAI key and as fallback."""

from datetime import date, time

import pytest

from conftest import TODAY

from viewings.parsers.rules import (
    RuleConfirmationClassifier,
    RuleIntentDetector,
    RuleOwnerResponseParser,
    RulePreferenceParser,
    extract_proposal,
    find_short_id,
    has_time_reference,
)


class TestConfirmation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", [
        "yes", "Yes!", "yeah", "yep", "ok", "okay", "sure", "sounds good",
        "Sounds good.", "that works", "perfect", "confirmed", "let's do it", "👍", "✅",
    ])
    async def test_confirmations(self, text):
        result = await RuleConfirmationClassifier().classify(text)
        assert result.is_confirmation is True
        assert result.type == "confirmation"
        assert result.confidence == pytest.approx(0.8)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["actually 4pm", "how about Friday", "yes but at 5pm"])
    async def test_negotiations(self, text):
        result = await RuleConfirmationClassifier().classify(text)
        assert result.is_confirmation is False
        assert result.type == "negotiation"

    @pytest.mark.asyncio
    async def test_rejection(self):
        result = await RuleConfirmationClassifier().classify("no, that doesn't work")
        assert result.is_confirmation is False
        assert result.type == "rejection"

    @pytest.mark.asyncio
    async def test_unrelated(self):
        result = await RuleConfirmationClassifier().classify("what is the price?")
        assert result.is_confirmation is False
        assert result.type == "unknown"


class TestIntent:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", [
        "i am interest in number 3",
        "I want to visit it",
        "book a viewing please",
        "can i view this place",
        "I'd like to see property 5",
        "interested in this",
    ])
    async def test_viewing_requests(self, text):
        intent = await RuleIntentDetector().detect(text)
        assert intent.is_appointment_request is True
        assert intent.intent_type == "viewing"
        assert intent.confidence == pytest.approx(0.8)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["tell me about apartments", "what's the price"])
    async def test_inquiries(self, text):
        intent = await RuleIntentDetector().detect(text)
        assert intent.is_appointment_request is False
        assert intent.intent_type == "inquiry"
        assert intent.confidence == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_contextual_reference(self):
        assert (await RuleIntentDetector().detect("can i see it")).has_contextual_reference is True
        assert (await RuleIntentDetector().detect("can i see number 4")).has_contextual_reference is False


class TestPreferences:
    @pytest.mark.asyncio
    async def test_days_and_times(self):
        prefs = await RulePreferenceParser().parse("Tuesday or Wednesday afternoon")

        assert prefs.days == ["tuesday", "wednesday"]
        assert prefs.times == ["afternoon"]
        assert prefs.summary == "Tuesday or Wednesday afternoon"

    @pytest.mark.asyncio
    async def test_nothing_extracted_keeps_message(self):
        prefs = await RulePreferenceParser().parse("whenever suits the owner")

        assert prefs.days == []
        assert prefs.flexibility == "high"
        assert prefs.urgency == "medium"
        assert prefs.summary == "whenever suits the owner"

    @pytest.mark.asyncio
    async def test_urgency(self):
        prefs = await RulePreferenceParser().parse("tomorrow at 2pm, it's urgent")

        assert prefs.urgency == "high"
        assert prefs.days == ["tomorrow"]
        assert "2pm" in prefs.times

    def test_time_reference(self):
        assert has_time_reference("maybe Thursday instead")
        assert has_time_reference("at 4 pm")
        assert has_time_reference("10:30 works")
        assert not has_time_reference("what's the price?")


class TestExtractProposal:
    @pytest.mark.parametrize("text, expected", [
        ("Tuesday 2-4 PM", (date(2025, 3, 11), time(14), time(16))),
        ("tomorrow at 3pm", (date(2025, 3, 8), time(15), time(16))),
        ("2025-03-12 10:30", (date(2025, 3, 12), time(10, 30), time(11, 30))),
        ("Friday at 11am", (date(2025, 3, 14), time(11), time(12))),
        ("11-1pm Monday", (date(2025, 3, 10), time(11), time(13))),
        ("March 20 from 10:00 to 11:30", (date(2025, 3, 20), time(10), time(11, 30))),
        ("Wednesday at noon", (date(2025, 3, 12), time(12), time(13))),
    ])
    def test_concrete(self, text, expected):
        proposal = extract_proposal(text, TODAY)
        assert (proposal.date, proposal.start_time, proposal.end_time) == expected

    @pytest.mark.parametrize("text", ["sometime next week", "at 3pm", "Tuesday afternoon", ""])
    def test_not_concrete(self, text):
        assert extract_proposal(text, TODAY) is None

    def test_custom_duration(self):
        proposal = extract_proposal("Monday 9am", TODAY, duration_minutes=30)
        assert proposal.end_time == time(9, 30)

    def test_past_month_day_rolls_to_next_year(self):
        proposal = extract_proposal("Jan 5 at 10am", TODAY)
        assert proposal.date == date(2026, 1, 5)

    @pytest.mark.asyncio
    async def test_parser_delegates(self):
        proposal = await RulePreferenceParser().extract_proposal("Tuesday 2-4 PM", TODAY)
        assert proposal.start_time == time(14)


class TestOwnerResponse:
    @pytest.mark.asyncio
    async def test_confirm(self):
        reply = await RuleOwnerResponseParser().parse("Confirm ab12")
        assert reply.intent == "confirm"
        assert reply.appointment_id == "ab12"
        assert reply.new_time_suggestion is None

    @pytest.mark.asyncio
    async def test_decline_uppercase_id(self):
        reply = await RuleOwnerResponseParser().parse("Decline AB12")
        assert reply.intent == "decline"
        assert reply.appointment_id == "ab12"

    @pytest.mark.asyncio
    async def test_suggest(self):
        reply = await RuleOwnerResponseParser().parse("Suggest Tuesday at 3pm for ab12")
        assert reply.intent == "suggest_new_time"
        assert reply.appointment_id == "ab12"
        assert reply.new_time_suggestion == "Tuesday at 3pm"

    @pytest.mark.asyncio
    async def test_counter_offer_without_verb(self):
        reply = await RuleOwnerResponseParser().parse("No, how about Friday at 10am for 9f3c")
        assert reply.intent == "suggest_new_time"
        assert reply.appointment_id == "9f3c"

    @pytest.mark.asyncio
    async def test_unclear(self):
        reply = await RuleOwnerResponseParser().parse("hello there")
        assert reply.intent == "unclear"
        assert reply.appointment_id is None

    def test_short_id_needs_digit_and_letter_without_keyword(self):
        assert find_short_id("sure, 3f2a is fine") == "3f2a"
        assert find_short_id("the cafe is nearby") is None
        assert find_short_id("#1234") == "1234"

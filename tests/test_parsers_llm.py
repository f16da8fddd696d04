"""Tests for the OpenAI-backed parsers and their fallback to rules."""

import json
from datetime import date, time
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from conftest import TODAY

from viewings.config import Settings
from viewings.errors import ParserError
from viewings.parsers import Parsers, RuleIntentDetector, build_parsers
from viewings.parsers.llm import (
    OpenAIConfirmationClassifier,
    OpenAIIntentDetector,
    OpenAIJSONClient,
    OpenAIOwnerResponseParser,
    OpenAIPreferenceParser,
)


def _reply(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _client(*contents, error=None):
    """An OpenAIJSONClient over a fake AsyncOpenAI returning ``contents`` in order."""
    create = AsyncMock()
    if error is not None:
        create.side_effect = error
    else:
        create.side_effect = [_reply(c) for c in contents]
    fake = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    return OpenAIJSONClient(model="test-model", client=fake), create


class TestJSONClient:
    @pytest.mark.asyncio
    async def test_plain_json(self):
        llm, create = _client('{"a": 1}')

        assert await llm.complete("system", "user") == {"a": 1}
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["messages"][0] == {"role": "system", "content": "system"}

    @pytest.mark.asyncio
    async def test_code_fence_stripped(self):
        llm, _ = _client('```json\n{"a": 2}\n```')
        assert await llm.complete("s", "u") == {"a": 2}

    @pytest.mark.asyncio
    async def test_not_json(self):
        llm, _ = _client("I think so")
        with pytest.raises(ParserError):
            await llm.complete("s", "u")

    @pytest.mark.asyncio
    async def test_not_an_object(self):
        llm, _ = _client("[1, 2]")
        with pytest.raises(ParserError):
            await llm.complete("s", "u")

    @pytest.mark.asyncio
    async def test_request_failure(self):
        llm, _ = _client(error=TimeoutError("slow"))
        with pytest.raises(ParserError):
            await llm.complete("s", "u")


class TestConfirmation:
    @pytest.mark.asyncio
    async def test_uses_model_answer(self):
        llm, _ = _client(json.dumps({"is_confirmation": True, "confidence": 0.95, "type": "confirmation"}))

        result = await OpenAIConfirmationClassifier(llm).classify("ya that's grand")

        assert result.is_confirmation is True
        assert result.confidence == pytest.approx(0.95)

    @pytest.mark.asyncio
    async def test_invalid_json_falls_back(self):
        llm, _ = _client("not json at all")

        result = await OpenAIConfirmationClassifier(llm).classify("yes")

        assert result.is_confirmation is True
        assert result.confidence == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_contract_violation_falls_back(self):
        llm, _ = _client(json.dumps({"is_confirmation": "definitely", "type": "maybe"}))

        result = await OpenAIConfirmationClassifier(llm).classify("actually 4pm")

        assert result.type == "negotiation"


class TestIntent:
    @pytest.mark.asyncio
    async def test_typo_tolerant_answer_passes_through(self):
        llm, _ = _client(json.dumps({
            "is_appointment_request": True,
            "confidence": 0.9,
            "intent_type": "viewing",
            "has_contextual_reference": False,
            "keywords": ["vist"],
        }))

        intent = await OpenAIIntentDetector(llm).detect("can i vist numbr 2")

        assert intent.is_appointment_request is True
        assert intent.keywords == ["vist"]

    @pytest.mark.asyncio
    async def test_exception_falls_back(self):
        llm, _ = _client(error=RuntimeError("boom"))

        intent = await OpenAIIntentDetector(llm, fallback=RuleIntentDetector()).detect("book a viewing")

        assert intent.is_appointment_request is True
        assert intent.keywords == ["fallback_pattern_match"]


class TestPreferences:
    @pytest.mark.asyncio
    async def test_summary_defaults_to_message(self):
        llm, _ = _client(json.dumps({"days": ["tuesday"], "times": ["afternoon"]}))

        prefs = await OpenAIPreferenceParser(llm).parse("tues arvo")

        assert prefs.days == ["tuesday"]
        assert prefs.summary == "tues arvo"

    @pytest.mark.asyncio
    async def test_proposal_with_end(self):
        llm, create = _client(json.dumps({"date": "2025-03-11", "start_time": "14:00", "end_time": "16:00"}))

        proposal = await OpenAIPreferenceParser(llm).extract_proposal("Tuesday 2-4", TODAY)

        assert proposal.date == date(2025, 3, 11)
        assert (proposal.start_time, proposal.end_time) == (time(14), time(16))
        assert "2025-03-07 (Friday)" in create.call_args.kwargs["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_proposal_without_end_uses_duration(self):
        llm, _ = _client(json.dumps({"date": "2025-03-11", "start_time": "14:00", "end_time": None}))

        proposal = await OpenAIPreferenceParser(llm).extract_proposal("Tuesday 2", TODAY, 45)

        assert proposal.end_time == time(14, 45)

    @pytest.mark.asyncio
    async def test_proposal_nulls_mean_none(self):
        llm, _ = _client(json.dumps({"date": None, "start_time": None, "end_time": None}))

        assert await OpenAIPreferenceParser(llm).extract_proposal("sometime soon", TODAY) is None

    @pytest.mark.asyncio
    async def test_bad_proposal_falls_back_to_rules(self):
        llm, _ = _client(json.dumps({"date": "2025-03-11", "start_time": "16:00", "end_time": "14:00"}))

        proposal = await OpenAIPreferenceParser(llm).extract_proposal("Tuesday at 3pm", TODAY)

        assert (proposal.date, proposal.start_time) == (date(2025, 3, 11), time(15))

    @pytest.mark.asyncio
    async def test_unparseable_date_falls_back_to_rules(self):
        llm, _ = _client(json.dumps({"date": "next tuesday", "start_time": "15:00"}))

        proposal = await OpenAIPreferenceParser(llm).extract_proposal("Tuesday at 3pm", TODAY)

        assert proposal.start_time == time(15)


class TestOwnerResponse:
    @pytest.mark.asyncio
    async def test_id_normalised(self):
        llm, _ = _client(json.dumps({"intent": "confirm", "appointment_id": "#AB12", "new_time_suggestion": None}))

        reply = await OpenAIOwnerResponseParser(llm).parse("yep #AB12 is fine")

        assert reply.intent == "confirm"
        assert reply.appointment_id == "ab12"

    @pytest.mark.asyncio
    async def test_unknown_intent_falls_back(self):
        llm, _ = _client(json.dumps({"intent": "maybe", "appointment_id": "ab12"}))

        reply = await OpenAIOwnerResponseParser(llm).parse("Decline ab12")

        assert reply.intent == "decline"


class TestBuildParsers:
    def test_rules_without_key(self):
        parsers = build_parsers(Settings(_env_file=None, openai_api_key=""))
        assert isinstance(parsers, Parsers)
        assert isinstance(parsers.intent, RuleIntentDetector)

    def test_openai_with_key(self):
        parsers = build_parsers(Settings(_env_file=None, openai_api_key="sk-test"))

        assert isinstance(parsers.intent, OpenAIIntentDetector)
        assert isinstance(parsers.owner, OpenAIOwnerResponseParser)
        assert parsers.intent._llm is parsers.confirmation._llm

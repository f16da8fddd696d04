"""OpenAI-backed parsers.

Each parser sends one chat-completion request with a JSON-only system
prompt. Any failure (network error, timeout, malformed JSON, output outside
the contract) is logged and answered by the rule-based sibling instead.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import date, datetime, time, timedelta
from typing import Any, Optional

from openai import AsyncOpenAI
from pydantic import ValidationError

from viewings.errors import ParserError
from viewings.models import (
    AppointmentIntent,
    ConfirmationResult,
    OwnerResponse,
    ProposedTime,
    TimePreference,
)

from .base import (
    ConfirmationClassifier,
    IntentDetector,
    OwnerResponseParser,
    PreferenceParser,
)
from .rules import (
    RuleConfirmationClassifier,
    RuleIntentDetector,
    RuleOwnerResponseParser,
    RulePreferenceParser,
)

log = logging.getLogger("viewings.parsers.llm")

_FENCE = re.compile(r"```(?:json)?\s*|\s*```")

CONFIRMATION_PROMPT = """\
Analyze if a message is a confirmation/agreement in the context of scheduling a property viewing.

CONFIRMATION INDICATORS: "yes", "yeah", "ok", "sure", "sounds good", "that works",
"perfect", "confirmed", "agreed", "let's do it", "book it", a thumbs-up emoji.

REJECTION / NEGOTIATION INDICATORS: "no", "doesn't work", "actually", "instead",
"how about", "prefer", "different time", any new day or time.

Return only JSON:
{"is_confirmation": boolean, "confidence": 0.0-1.0, "type": "confirmation|rejection|negotiation"}

Examples:
- "yeah" -> {"is_confirmation": true, "confidence": 0.9, "type": "confirmation"}
- "actually 4 PM" -> {"is_confirmation": false, "confidence": 0.8, "type": "negotiation"}"""

PREFERENCE_PROMPT = """\
Parse viewing time preferences from the user's message. Extract preferred days,
preferred times (morning, afternoon, specific times), flexibility and urgency.

Return only JSON:
{"days": ["monday"], "times": ["afternoon", "2pm"], "flexibility": "high|medium|low",
 "urgency": "high|medium|low", "summary": "Monday afternoon"}"""

PROPOSAL_PROMPT = """\
Extract one concrete viewing date and time from the message. Today is {today} ({weekday}).
Resolve relative days ("tomorrow", "Tuesday") to the next matching date after today.
Use 24-hour HH:MM times. If only a start time is given, set end_time to null.
If the message does not name both a day and a time, return nulls.

Return only JSON:
{{"date": "YYYY-MM-DD" or null, "start_time": "HH:MM" or null, "end_time": "HH:MM" or null}}"""

INTENT_PROMPT = """\
You detect appointment intent for a real-estate assistant. Decide whether the
user message asks to view, visit or book a viewing of a property. Treat typos
generously ("intrested", "vist"). "number X" refers to a listing in earlier
search results; "this", "that", "it" are contextual references.

Return only JSON:
{"is_appointment_request": boolean, "confidence": 0.0-1.0,
 "intent_type": "viewing|booking|inquiry", "has_contextual_reference": boolean,
 "keywords": ["..."]}"""

OWNER_PROMPT = """\
A property owner or agent is replying to a viewing request. Requests are
identified by a short hexadecimal ID such as "ab12". Classify the reply:
- "confirm": they accept the requested time
- "decline": they refuse the request
- "suggest_new_time": they propose a different day or time
- "unclear": anything else

Return only JSON:
{"intent": "confirm|decline|suggest_new_time|unclear",
 "appointment_id": "short id as written" or null,
 "new_time_suggestion": "the proposed time in the owner's words" or null}"""


class OpenAIJSONClient:
    """Minimal JSON-mode wrapper around ``AsyncOpenAI`` chat completions."""

    def __init__(
        self,
        api_key: str = "",
        model: str = "gpt-4o-mini",
        timeout: float = 15.0,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self._client = client or AsyncOpenAI(api_key=api_key, timeout=timeout)
        self.model = model

    async def complete(self, system: str, user: str, max_tokens: int = 200) -> dict[str, Any]:
        """Run one completion and decode the reply as a JSON object.

        Raises:
            ParserError: The call failed or the reply is not a JSON object.
        """
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                temperature=0.1,
                max_tokens=max_tokens,
                response_format={"type": "json_object"},
            )
        except Exception as exc:
            raise ParserError(f"OpenAI request failed: {exc}") from exc

        content = (response.choices[0].message.content or "").strip()
        try:
            data = json.loads(_FENCE.sub("", content).strip())
        except json.JSONDecodeError as exc:
            raise ParserError(f"Reply is not JSON: {content[:120]!r}") from exc
        if not isinstance(data, dict):
            raise ParserError(f"Reply is not a JSON object: {content[:120]!r}")
        return data


class OpenAIConfirmationClassifier(ConfirmationClassifier):
    def __init__(
        self,
        llm: OpenAIJSONClient,
        fallback: Optional[ConfirmationClassifier] = None,
    ) -> None:
        self._llm = llm
        self._fallback = fallback or RuleConfirmationClassifier()

    async def classify(self, message: str) -> ConfirmationResult:
        try:
            data = await self._llm.complete(CONFIRMATION_PROMPT, f'Analyze: "{message}"', 150)
            return ConfirmationResult.model_validate(data)
        except (ParserError, ValidationError) as exc:
            log.warning("Confirmation classifier fell back to rules: %s", exc)
            return await self._fallback.classify(message)


class OpenAIIntentDetector(IntentDetector):
    def __init__(
        self,
        llm: OpenAIJSONClient,
        fallback: Optional[IntentDetector] = None,
    ) -> None:
        self._llm = llm
        self._fallback = fallback or RuleIntentDetector()

    async def detect(self, message: str) -> AppointmentIntent:
        try:
            data = await self._llm.complete(
                INTENT_PROMPT, f'Analyze for appointment intent: "{message}"'
            )
            intent = AppointmentIntent.model_validate(data)
        except (ParserError, ValidationError) as exc:
            log.warning("Intent detector fell back to rules: %s", exc)
            return await self._fallback.detect(message)
        log.debug("Intent for %r: %s", message[:60], intent.model_dump())
        return intent


class OpenAIPreferenceParser(PreferenceParser):
    def __init__(
        self,
        llm: OpenAIJSONClient,
        fallback: Optional[PreferenceParser] = None,
    ) -> None:
        self._llm = llm
        self._fallback = fallback or RulePreferenceParser()

    async def parse(self, message: str) -> TimePreference:
        try:
            data = await self._llm.complete(PREFERENCE_PROMPT, message)
            data.setdefault("summary", message)
            return TimePreference.model_validate(data)
        except (ParserError, ValidationError) as exc:
            log.warning("Preference parser fell back to rules: %s", exc)
            return await self._fallback.parse(message)

    async def extract_proposal(
        self, message: str, today: date, duration_minutes: int = 60
    ) -> Optional[ProposedTime]:
        prompt = PROPOSAL_PROMPT.format(today=today.isoformat(), weekday=today.strftime("%A"))
        try:
            data = await self._llm.complete(prompt, message, 100)
            return _proposal_from_json(data, duration_minutes)
        except (ParserError, ValidationError, ValueError) as exc:
            log.warning("Proposal extraction fell back to rules: %s", exc)
            return await self._fallback.extract_proposal(message, today, duration_minutes)


def _proposal_from_json(data: dict[str, Any], duration_minutes: int) -> Optional[ProposedTime]:
    if not data.get("date") or not data.get("start_time"):
        return None
    day = date.fromisoformat(data["date"])
    start = time.fromisoformat(data["start_time"])
    if data.get("end_time"):
        end = time.fromisoformat(data["end_time"])
    else:
        end_dt = datetime.combine(day, start) + timedelta(minutes=duration_minutes)
        if end_dt.date() != day:
            return None
        end = end_dt.time()
    if end <= start:
        raise ParserError(f"End {end} is not after start {start}")
    return ProposedTime(date=day, start_time=start, end_time=end)


class OpenAIOwnerResponseParser(OwnerResponseParser):
    def __init__(
        self,
        llm: OpenAIJSONClient,
        fallback: Optional[OwnerResponseParser] = None,
    ) -> None:
        self._llm = llm
        self._fallback = fallback or RuleOwnerResponseParser()

    async def parse(self, message: str) -> OwnerResponse:
        try:
            data = await self._llm.complete(OWNER_PROMPT, message, 150)
            response = OwnerResponse.model_validate(data)
        except (ParserError, ValidationError) as exc:
            log.warning("Owner-response parser fell back to rules: %s", exc)
            return await self._fallback.parse(message)
        if response.appointment_id:
            response.appointment_id = response.appointment_id.strip().lstrip("#").lower()
        return response

"""Deterministic, regex-based parsers.

Used directly when no OpenAI key is configured, and as the fallback every
OpenAI-backed parser drops to when a call fails or returns malformed JSON.
They cover short canonical phrases only.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta
from typing import Optional

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

_WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
_MONTHS = ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"]

TIME_REFERENCE = re.compile(
    r"\b(monday|tuesday|wednesday|thursday|friday|saturday|sunday|today|tomorrow"
    r"|\d{1,2}\s*(?:am|pm)|\d{1,2}:\d{2}|morning|afternoon|evening|noon)\b",
    re.IGNORECASE,
)

_CONFIRMATION = [
    re.compile(
        r"^(yes|yeah|yep|yup|ok|okay|sure|fine|good|great|perfect|sounds good|that works"
        r"|works for me|confirmed?|agreed?|i agree|let'?s do it|book it)$",
        re.IGNORECASE,
    ),
    re.compile(r"^(👍|✅|👌)+$"),
]
_REJECTION = re.compile(
    r"^(no|nope|nah|not really)\b|\b(can'?t|cannot|doesn'?t work|won'?t work|not available)\b",
    re.IGNORECASE,
)
_NEGOTIATION = re.compile(
    r"\b(actually|instead|how about|what about|prefer|change|different|another|rather)\b",
    re.IGNORECASE,
)

_APPOINTMENT_PATTERNS = [
    re.compile(r"(?:interest|interested)\s+in\s+(?:number\s+\d+|visiting|viewing|seeing)"),
    re.compile(r"(?:want|like|need)\s+to\s+(?:visit|view|see)\s+(?:it|this|that|number\s+\d+)"),
    re.compile(r"(?:book|schedule)\s+(?:a\s+)?(?:viewing|visit|appointment)"),
    re.compile(r"(?:view|visit|see)\s+(?:property|number)\s+\d+"),
    re.compile(r"can\s+i\s+(?:see|visit|view)"),
    re.compile(r"interested\s+in\s+(?:this|that)"),
    re.compile(r"viewing\s+appointment"),
]
_CONTEXTUAL_REFERENCE = re.compile(r"\b(this|that|it)\b", re.IGNORECASE)

_PART_OF_DAY = re.compile(r"\b(morning|afternoon|evening|noon|night)\b", re.IGNORECASE)
_CLOCK = re.compile(r"\b\d{1,2}(?::\d{2})?\s*(?:am|pm)\b|\b\d{1,2}:\d{2}\b", re.IGNORECASE)
_URGENT = re.compile(r"\b(asap|urgent|urgently|as soon as possible|today|tomorrow)\b", re.IGNORECASE)
_FLEXIBLE = re.compile(r"\b(any ?time|anytime|flexible|whenever|any day)\b", re.IGNORECASE)

_ISO_DATE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_MONTH_DAY = re.compile(
    r"\b(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\.?\s+(\d{1,2})(?:st|nd|rd|th)?\b",
    re.IGNORECASE,
)
_DAY_MONTH = re.compile(
    r"\b(\d{1,2})(?:st|nd|rd|th)?\s+(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\b",
    re.IGNORECASE,
)
_RELATIVE_DAY = re.compile(
    r"\b(today|tomorrow|monday|tuesday|wednesday|thursday|friday|saturday|sunday"
    r"|mon|tue|tues|wed|thu|thur|thurs|fri|sat|sun)\b",
    re.IGNORECASE,
)
_TIME_RANGE = re.compile(
    r"\b(\d{1,2})(?::(\d{2}))?\s*(am|pm)?\s*(?:-|–|to|until|till)\s*(\d{1,2})(?::(\d{2}))?\s*(am|pm)?\b",
    re.IGNORECASE,
)
_SINGLE_TIME = re.compile(
    r"\b(\d{1,2})(?::(\d{2}))?\s*(am|pm)\b|\b(\d{1,2}):(\d{2})\b|\b(noon|midday)\b",
    re.IGNORECASE,
)

# Owner replies: "Confirm ab12", "Decline ab12", "Suggest Tuesday at 3pm for ab12"
_ID_AFTER_KEYWORD = re.compile(
    r"(?:\b(?:confirm(?:ed)?|accept(?:ed)?|approve[d]?|decline[d]?|reject(?:ed)?"
    r"|for|id|appointment|booking|ref)\b\s*[:#]?\s*|#)"
    r"([0-9a-f]{4}[0-9a-f-]{0,32})\b",
    re.IGNORECASE,
)
_HEX_TOKEN = re.compile(r"\b([0-9a-f]{4}[0-9a-f-]{0,32})\b", re.IGNORECASE)
_OWNER_CONFIRM = re.compile(r"\b(confirm(?:ed)?|accept(?:ed)?|approve[d]?|yes|ok|okay)\b", re.IGNORECASE)
_OWNER_DECLINE = re.compile(
    r"\b(decline[d]?|reject(?:ed)?|refuse[d]?|deny|no|not available|can'?t|cannot)\b",
    re.IGNORECASE,
)
_OWNER_SUGGEST = re.compile(
    r"\b(suggest(?:ed)?|propose[d]?|how about|what about|instead|reschedule|alternatively"
    r"|move it to|better)\b",
    re.IGNORECASE,
)
_SUGGESTION_NOISE = re.compile(
    r"^\s*(?:i\s+)?(?:suggest(?:ed)?|propose[d]?|how about|what about|reschedule(?:\s+to)?"
    r"|instead|alternatively)[\s,:]*",
    re.IGNORECASE,
)


def has_time_reference(text: str) -> bool:
    """True if ``text`` names a weekday, a clock time or a part of the day."""
    return bool(TIME_REFERENCE.search(text or ""))


def _normalise(text: str) -> str:
    return re.sub(r"[\s!.,]+$", "", (text or "").strip()).strip()


# ── Confirmation ─────────────────────────────────────────────────


class RuleConfirmationClassifier(ConfirmationClassifier):
    async def classify(self, message: str) -> ConfirmationResult:
        text = _normalise(message)
        if any(p.match(text) for p in _CONFIRMATION):
            return ConfirmationResult(is_confirmation=True, confidence=0.8, type="confirmation")
        if _NEGOTIATION.search(text) or has_time_reference(text):
            return ConfirmationResult(is_confirmation=False, confidence=0.2, type="negotiation")
        if _REJECTION.search(text):
            return ConfirmationResult(is_confirmation=False, confidence=0.2, type="rejection")
        return ConfirmationResult(is_confirmation=False, confidence=0.2, type="unknown")


# ── Appointment intent ───────────────────────────────────────────


class RuleIntentDetector(IntentDetector):
    async def detect(self, message: str) -> AppointmentIntent:
        lowered = (message or "").lower()
        matched = any(p.search(lowered) for p in _APPOINTMENT_PATTERNS)
        return AppointmentIntent(
            is_appointment_request=matched,
            confidence=0.8 if matched else 0.1,
            intent_type="viewing" if matched else "inquiry",
            has_contextual_reference=bool(_CONTEXTUAL_REFERENCE.search(message or "")),
            keywords=["fallback_pattern_match"] if matched else [],
        )


# ── Time preferences and proposals ───────────────────────────────


def _to_24h(hour: int, meridiem: Optional[str]) -> int:
    if meridiem is None:
        return hour
    meridiem = meridiem.lower()
    if hour == 12:
        return 0 if meridiem == "am" else 12
    return hour + 12 if meridiem == "pm" else hour


def _make_time(hour: int, minute: int) -> Optional[time]:
    if 0 <= hour <= 23 and 0 <= minute <= 59:
        return time(hour, minute)
    return None


def _find_date(text: str, today: date) -> tuple[Optional[date], str]:
    """Return the first date in ``text`` and the text with that date removed."""
    match = _ISO_DATE.search(text)
    if match:
        try:
            found = date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        except ValueError:
            return None, text
        return found, text[: match.start()] + " " + text[match.end():]

    for pattern, month_group, day_group in ((_MONTH_DAY, 1, 2), (_DAY_MONTH, 2, 1)):
        match = pattern.search(text)
        if not match:
            continue
        month = _MONTHS.index(match.group(month_group).lower()[:3]) + 1
        try:
            found = date(today.year, month, int(match.group(day_group)))
            if found < today:
                found = found.replace(year=today.year + 1)
        except ValueError:
            return None, text
        return found, text[: match.start()] + " " + text[match.end():]

    match = _RELATIVE_DAY.search(text)
    if match:
        word = match.group(1).lower()
        rest = text[: match.start()] + " " + text[match.end():]
        if word == "today":
            return today, rest
        if word == "tomorrow":
            return today + timedelta(days=1), rest
        index = next(i for i, name in enumerate(_WEEKDAYS) if name.startswith(word[:3]))
        ahead = (index - today.weekday()) % 7 or 7
        return today + timedelta(days=ahead), rest

    return None, text


def _find_times(text: str, duration_minutes: int) -> Optional[tuple[time, time]]:
    match = _TIME_RANGE.search(text)
    if match and (match.group(3) or match.group(6) or match.group(2) or match.group(5)):
        start_hour, end_hour = int(match.group(1)), int(match.group(4))
        start_mer, end_mer = match.group(3), match.group(6)
        end_24 = _to_24h(end_hour, end_mer)
        if start_mer is None and end_mer is not None:
            start_24 = _to_24h(start_hour, end_mer)
            if start_24 >= end_24:
                start_24 = start_hour
        else:
            start_24 = _to_24h(start_hour, start_mer)
        start = _make_time(start_24, int(match.group(2) or 0))
        end = _make_time(end_24, int(match.group(5) or 0))
        if start and end and start < end:
            return start, end
        return None

    match = _SINGLE_TIME.search(text)
    if not match:
        return None
    if match.group(6):
        start = time(12, 0)
    elif match.group(3):
        start = _make_time(_to_24h(int(match.group(1)), match.group(3)), int(match.group(2) or 0))
    else:
        start = _make_time(int(match.group(4)), int(match.group(5)))
    if start is None:
        return None
    end_dt = datetime.combine(date.min, start) + timedelta(minutes=duration_minutes)
    if end_dt.date() != date.min:
        return None
    return start, end_dt.time()


def extract_proposal(
    message: str, today: date, duration_minutes: int = 60
) -> Optional[ProposedTime]:
    """Best-effort concrete date and time range from free text."""
    day, rest = _find_date(message or "", today)
    if day is None:
        return None
    times = _find_times(rest, duration_minutes)
    if times is None:
        return None
    return ProposedTime(date=day, start_time=times[0], end_time=times[1])


class RulePreferenceParser(PreferenceParser):
    async def parse(self, message: str) -> TimePreference:
        text = message or ""
        days = []
        for match in _RELATIVE_DAY.finditer(text):
            word = match.group(1).lower()
            if word in ("today", "tomorrow"):
                name = word
            else:
                name = next(n for n in _WEEKDAYS if n.startswith(word[:3]))
            if name not in days:
                days.append(name)
        times = [m.group(0).lower() for m in _PART_OF_DAY.finditer(text)]
        times += [m.group(0).lower().replace(" ", "") for m in _CLOCK.finditer(text)]

        return TimePreference(
            days=days,
            times=list(dict.fromkeys(times)),
            flexibility="high" if _FLEXIBLE.search(text) or not (days or times) else "medium",
            urgency="high" if _URGENT.search(text) else "medium",
            summary=text.strip(),
        )

    async def extract_proposal(
        self, message: str, today: date, duration_minutes: int = 60
    ) -> Optional[ProposedTime]:
        return extract_proposal(message, today, duration_minutes)


# ── Owner replies ────────────────────────────────────────────────


def find_short_id(message: str) -> Optional[str]:
    """The appointment short ID cited in an owner reply, lower-cased."""
    match = _ID_AFTER_KEYWORD.search(message or "")
    if match:
        return match.group(1).lower().rstrip("-")
    for match in _HEX_TOKEN.finditer(message or ""):
        token = match.group(1)
        if any(c.isdigit() for c in token) and any(c.isalpha() for c in token):
            return token.lower().rstrip("-")
    return None


class RuleOwnerResponseParser(OwnerResponseParser):
    async def parse(self, message: str) -> OwnerResponse:
        text = message or ""
        short_id = find_short_id(text)
        first_word = text.strip().split(" ", 1)[0].lower() if text.strip() else ""

        if first_word.startswith(("suggest", "propose", "reschedule")) or _OWNER_SUGGEST.search(text):
            intent = "suggest_new_time"
        elif first_word.startswith(("confirm", "accept", "approve")):
            intent = "confirm"
        elif first_word.startswith(("decline", "reject", "refuse")):
            intent = "decline"
        elif _OWNER_DECLINE.search(text):
            intent = "decline"
        elif _OWNER_CONFIRM.search(text):
            intent = "confirm"
        elif short_id and has_time_reference(text):
            intent = "suggest_new_time"
        else:
            intent = "unclear"

        suggestion = None
        if intent == "suggest_new_time":
            suggestion = _strip_suggestion(text, short_id)

        return OwnerResponse(
            intent=intent,
            appointment_id=short_id,
            new_time_suggestion=suggestion,
        )


def _strip_suggestion(text: str, short_id: Optional[str]) -> Optional[str]:
    cleaned = text
    if short_id:
        cleaned = re.sub(
            rf"\s*(?:\bfor\b\s*)?(?:\b(?:id|appointment|booking|ref)\b\s*)?[:#]?\s*{re.escape(short_id)}\b",
            " ",
            cleaned,
            flags=re.IGNORECASE,
        )
    cleaned = _SUGGESTION_NOISE.sub("", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip(" ,.;:-")
    return cleaned or None

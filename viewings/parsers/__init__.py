"""Natural-language parsers: interfaces, rule-based and OpenAI-backed."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

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
    has_time_reference,
)

log = logging.getLogger("viewings.parsers")


@dataclass
class Parsers:
    """The four parser collaborators the appointment service needs."""

    intent: IntentDetector = field(default_factory=RuleIntentDetector)
    confirmation: ConfirmationClassifier = field(default_factory=RuleConfirmationClassifier)
    preferences: PreferenceParser = field(default_factory=RulePreferenceParser)
    owner: OwnerResponseParser = field(default_factory=RuleOwnerResponseParser)


def build_parsers(settings) -> Parsers:
    """OpenAI-backed parsers when an API key is configured, rules otherwise."""
    if not settings.openai_api_key:
        log.info("No OpenAI key; using rule-based parsers")
        return Parsers()

    from .llm import (
        OpenAIConfirmationClassifier,
        OpenAIIntentDetector,
        OpenAIJSONClient,
        OpenAIOwnerResponseParser,
        OpenAIPreferenceParser,
    )

    llm = OpenAIJSONClient(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        timeout=settings.llm_timeout_seconds,
    )
    log.info("Using OpenAI parsers (model=%s)", settings.openai_model)
    return Parsers(
        intent=OpenAIIntentDetector(llm),
        confirmation=OpenAIConfirmationClassifier(llm),
        preferences=OpenAIPreferenceParser(llm),
        owner=OpenAIOwnerResponseParser(llm),
    )


__all__ = [
    "ConfirmationClassifier",
    "IntentDetector",
    "OwnerResponseParser",
    "Parsers",
    "PreferenceParser",
    "RuleConfirmationClassifier",
    "RuleIntentDetector",
    "RuleOwnerResponseParser",
    "RulePreferenceParser",
    "build_parsers",
    "has_time_reference",
]

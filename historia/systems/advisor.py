"""
Grand advisor consultations.

The player asks a question, the oracle answers in character with a
category and a short list of commands worth issuing. Same decoding as
turns; every field falls back on its own.
"""

import logging
from enum import Enum

from pydantic import BaseModel, Field

from ..llm import OracleDispatcher, ProviderConfig
from ..prompts import ADVISOR_SYSTEM_PROMPT, AdvisorContext, build_advisor_prompt
from .sanitizer import clean_str, decode

logger = logging.getLogger(__name__)


MAX_SUGGESTED_ACTIONS = 5

CONFOUNDED_ADVICE = (
    "My liege, I must confess that the situation confounds even my years of experience. "
    "Allow me a moment to gather my thoughts and consult the archives."
)
DEFAULT_SUGGESTION = "Review the current diplomatic situation"

INTERRUPTED_ADVICE = (
    "Forgive me, my liege. An unforeseen disturbance has interrupted my counsel. "
    "I shall compose my thoughts and return shortly."
)
RETRY_SUGGESTION = "Wait and try consulting the advisor again"


class AdvisorCategory(str, Enum):
    MILITARY = "military"
    DIPLOMACY = "diplomacy"
    ECONOMY = "economy"
    DOMESTIC = "domestic"
    GENERAL = "general"


class AdvisorReply(BaseModel):
    model_config = {"populate_by_name": True}

    advice: str
    category: AdvisorCategory = AdvisorCategory.GENERAL
    suggested_actions: list[str] = Field(alias="suggestedActions", min_length=1)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


def sanitize_advisor_payload(payload: object) -> AdvisorReply:
    """Validate a decoded advisor reply. Never raises."""
    data = payload if isinstance(payload, dict) else {}

    category = data.get("category")
    try:
        category = AdvisorCategory(category) if isinstance(category, str) else AdvisorCategory.GENERAL
    except ValueError:
        category = AdvisorCategory.GENERAL

    actions: list[str] = []
    raw_actions = data.get("suggestedActions")
    if isinstance(raw_actions, list):
        actions = [a for a in (clean_str(item) for item in raw_actions) if a]
    actions = actions[:MAX_SUGGESTED_ACTIONS] or [DEFAULT_SUGGESTION]

    return AdvisorReply(
        advice=clean_str(data.get("advice")) or CONFOUNDED_ADVICE,
        category=category,
        suggested_actions=actions,
    )


def sanitize_advice(raw_text: str) -> AdvisorReply:
    """
    Turn raw oracle text into an advisor reply.

    Raises:
        ParseError: If the text holds no decodable JSON
    """
    return sanitize_advisor_payload(decode(raw_text))


def consult(
    dispatcher: OracleDispatcher,
    provider: ProviderConfig,
    context: AdvisorContext,
) -> AdvisorReply:
    """
    Put one question to the advisor.

    Raises:
        ConfigurationError: Missing credential
        OracleError: Dispatch failure
        ParseError: Reply is not JSON
    """
    prompt = build_advisor_prompt(context)
    raw = dispatcher.dispatch(provider, prompt, system_prompt=ADVISOR_SYSTEM_PROMPT)
    return sanitize_advice(raw)


def interrupted_counsel(error: str) -> dict:
    """Body for a consultation that failed before any advice came back."""
    body = AdvisorReply(
        advice=INTERRUPTED_ADVICE,
        suggested_actions=[RETRY_SUGGESTION],
    ).to_wire()
    body["error"] = error
    return body

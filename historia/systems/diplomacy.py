"""
Diplomacy chat with foreign leaders.

One oracle round trip per player message. The reply is untrusted text
and goes through the same decoding as turns, then each field is checked
on its own: a bad tone or a half-formed relation change never costs the
dialogue line.
"""

import logging
from enum import Enum

from pydantic import BaseModel, Field

from ..llm import OracleDispatcher, ProviderConfig
from ..prompts import DIPLOMACY_SYSTEM_PROMPT, DiplomacyContext, build_diplomacy_prompt
from .sanitizer import clean_str, decode

logger = logging.getLogger(__name__)


UNINTELLIGIBLE_MESSAGE = "... *The envoy delivers an unintelligible response.*"
FAILED_DELIVERY_MESSAGE = (
    "The diplomatic envoy was unable to deliver the message. "
    "A courier returns with troubling news of communication failure."
)


class DiplomacyTone(str, Enum):
    FRIENDLY = "friendly"
    NEUTRAL = "neutral"
    HOSTILE = "hostile"
    THREATENING = "threatening"


class RelationChange(BaseModel):
    """Proposed shift in the relationship; the client decides whether to apply it."""

    model_config = {"populate_by_name": True}

    new_type: str = Field(alias="newType")
    reason: str


class DiplomacyReply(BaseModel):
    model_config = {"populate_by_name": True}

    message: str
    tone: DiplomacyTone = DiplomacyTone.NEUTRAL
    relation_change: RelationChange | None = Field(default=None, alias="relationChange")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


def sanitize_diplomacy_payload(payload: object) -> DiplomacyReply:
    """Validate a decoded diplomacy reply. Never raises."""
    data = payload if isinstance(payload, dict) else {}

    tone = data.get("tone")
    try:
        tone = DiplomacyTone(tone) if isinstance(tone, str) else DiplomacyTone.NEUTRAL
    except ValueError:
        logger.debug("Unknown tone %r, using neutral", tone)
        tone = DiplomacyTone.NEUTRAL

    change = None
    raw_change = data.get("relationChange")
    if isinstance(raw_change, dict):
        new_type = raw_change.get("newType")
        reason = raw_change.get("reason")
        if isinstance(new_type, str) and isinstance(reason, str):
            change = RelationChange(new_type=new_type.strip(), reason=reason.strip())

    return DiplomacyReply(
        message=clean_str(data.get("message")) or UNINTELLIGIBLE_MESSAGE,
        tone=tone,
        relation_change=change,
    )


def sanitize_diplomacy(raw_text: str) -> DiplomacyReply:
    """
    Turn raw oracle text into a diplomacy reply.

    Raises:
        ParseError: If the text holds no decodable JSON
    """
    return sanitize_diplomacy_payload(decode(raw_text))


def negotiate(
    dispatcher: OracleDispatcher,
    provider: ProviderConfig,
    context: DiplomacyContext,
) -> DiplomacyReply:
    """
    Deliver one message to a foreign leader and return their answer.

    Raises:
        ConfigurationError: Missing credential
        OracleError: Dispatch failure
        ParseError: Reply is not JSON
    """
    prompt = build_diplomacy_prompt(context)
    raw = dispatcher.dispatch(provider, prompt, system_prompt=DIPLOMACY_SYSTEM_PROMPT)
    reply = sanitize_diplomacy(raw)
    logger.info("%s answered %s (%s)", context.target_nation, context.player_nation, reply.tone.value)
    return reply


def failed_delivery(error: str) -> dict:
    """Body for a chat that never reached the other side."""
    body = DiplomacyReply(message=FAILED_DELIVERY_MESSAGE).to_wire()
    body["error"] = error
    return body

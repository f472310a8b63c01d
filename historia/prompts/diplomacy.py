"""
Diplomacy chat prompt assembly.

The oracle plays the leader of a foreign nation answering the player's
envoy, and replies with a tone and an optional shift in relations.
"""

from dataclasses import dataclass, field

from ..state.schema import GameEvent
from .game_master import difficulty_profile


SYSTEM_PROMPT = (
    "You are a JSON-only response bot for a grand strategy game's diplomacy system. "
    "Never explain your answer, only return valid JSON."
)


@dataclass
class ChatLine:
    """One prior message in the conversation."""

    sender: str
    content: str
    turn_year: int


@dataclass
class DiplomacyContext:
    """Everything the foreign leader sees for one message."""

    player_nation: str
    target_nation: str
    message: str
    year: int = 2026
    scenario: str = ""
    difficulty: str = "Realistic"
    chat_history: list[ChatLine] = field(default_factory=list)
    relation_type: str | None = None  # None when no relationship is established
    treaties: list[str] = field(default_factory=list)
    events: list[GameEvent] = field(default_factory=list)


def format_conversation(lines: list[ChatLine]) -> str:
    if not lines:
        return "First contact."
    return "\n".join(f"[{line.turn_year}] {line.sender}: {line.content}" for line in lines)


def format_relationship(relation_type: str | None, treaties: list[str]) -> str:
    if relation_type is None:
        return "None established"
    if treaties:
        return f"{relation_type.upper()} | Treaties: {', '.join(treaties)}"
    return relation_type.upper()


def format_recent_events(events: list[GameEvent]) -> str:
    if not events:
        return "None"
    return "; ".join(f"[{e.year}] {e.description}" for e in events)


def build_diplomacy_prompt(context: DiplomacyContext) -> str:
    """Assemble the in-character prompt for one diplomatic message."""
    player = context.player_nation
    target = context.target_nation

    return f"""You ARE the leader of {target} in diplomatic conversation with {player}'s leader. Stay in character -- never acknowledge being AI.

Context: {context.scenario} | Year {context.year} | {difficulty_profile(context.difficulty)}
Relationship: {format_relationship(context.relation_type, context.treaties)}
Recent events: {format_recent_events(context.events)}

Conversation:
{format_conversation(context.chat_history)}

{player}: "{context.message}"

Respond based on {target}'s interests, culture, and strategic position. Protect your interests. Negotiate realistically. Match tone to the period.

OUTPUT: Raw JSON only, no markdown.
{{
  "message": "1-2 sentences of in-character diplomatic dialogue. Brief and natural.",
  "tone": "friendly|neutral|hostile|threatening",
  "relationChange": null
}}
Or if relationship shifts: "relationChange": {{ "newType": "neutral|friendly|allied|hostile|war|vassal", "reason": "Brief reason" }}"""

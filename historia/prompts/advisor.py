"""
Advisor prompt assembly.

The oracle plays the player's own grand advisor: strategic counsel plus
a few concrete commands the player could issue next.
"""

from dataclasses import dataclass, field

from ..state.schema import DiplomaticRelation, GameEvent
from .diplomacy import format_recent_events


SYSTEM_PROMPT = (
    "You are a JSON-only response bot for a grand strategy game's advisor system. "
    "Never explain your answer, only return valid JSON."
)

# Prior exchanges written into the prompt
ADVISOR_HISTORY_LINES = 6


@dataclass
class AdvisorMessage:
    role: str  # "user" for the ruler, anything else for the advisor
    content: str


@dataclass
class AdvisorContext:
    """Everything the advisor sees for one question."""

    question: str
    player_nation: str
    year: int = 2026
    scenario: str = ""
    difficulty: str = "Realistic"
    events: list[GameEvent] = field(default_factory=list)
    relations: list[DiplomaticRelation] = field(default_factory=list)
    history: list[AdvisorMessage] = field(default_factory=list)


def format_advisor_relations(relations: list[DiplomaticRelation]) -> str:
    if not relations:
        return "None"
    return "; ".join(f"{r.nation_a}<->{r.nation_b}: {r.type.value}" for r in relations)


def format_consultation(history: list[AdvisorMessage]) -> str:
    if not history:
        return "New session."
    return "\n".join(
        f"[{'RULER' if m.role == 'user' else 'ADVISOR'}] {m.content}"
        for m in history[-ADVISOR_HISTORY_LINES:]
    )


def build_advisor_prompt(context: AdvisorContext) -> str:
    return f"""You are the Grand Advisor to {context.player_nation}'s ruler. Loyal, blunt, strategically brilliant. Speak in character for the era.

Context: {context.scenario} | Year {context.year} | {context.difficulty}
Relations: {format_advisor_relations(context.relations)}
Events: {format_recent_events(context.events)}

Prior conversation:
{format_consultation(context.history)}

Ruler asks: "{context.question}"

Give concrete, actionable strategic advice. Consider military, diplomatic, economic, and domestic dimensions. Suggest 2-4 specific commands the ruler can issue.

OUTPUT: Raw JSON only, no markdown.
{{
  "advice": "1-3 sentences. Concrete counsel referencing specific nations/events.",
  "category": "military|diplomacy|economy|domestic|general",
  "suggestedActions": ["Specific command 1", "Specific command 2", "Specific command 3"]
}}"""

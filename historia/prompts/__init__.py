"""Prompt assembly for the oracle."""

from .advisor import (
    ADVISOR_HISTORY_LINES,
    AdvisorContext,
    AdvisorMessage,
    SYSTEM_PROMPT as ADVISOR_SYSTEM_PROMPT,
    build_advisor_prompt,
)
from .diplomacy import (
    ChatLine,
    DiplomacyContext,
    SYSTEM_PROMPT as DIPLOMACY_SYSTEM_PROMPT,
    build_diplomacy_prompt,
)
from .game_master import (
    DIFFICULTY_PROFILES,
    EVENTS_WINDOW,
    HISTORY_WINDOW,
    SYSTEM_PROMPT,
    TurnContext,
    build_game_master_prompt,
    difficulty_profile,
    era_context,
)

__all__ = [
    "DIFFICULTY_PROFILES",
    "EVENTS_WINDOW",
    "HISTORY_WINDOW",
    "SYSTEM_PROMPT",
    "TurnContext",
    "build_game_master_prompt",
    "difficulty_profile",
    "era_context",
    # Diplomacy
    "ChatLine",
    "DiplomacyContext",
    "DIPLOMACY_SYSTEM_PROMPT",
    "build_diplomacy_prompt",
    # Advisor
    "ADVISOR_HISTORY_LINES",
    "AdvisorContext",
    "AdvisorMessage",
    "ADVISOR_SYSTEM_PROMPT",
    "build_advisor_prompt",
]

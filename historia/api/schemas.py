"""
Pydantic schemas for the Historia API.

The stateless ``/turn`` models mirror the browser client's request body
field for field, so they are deliberately loose: unknown log or event
types are accepted here and normalized before they reach the prompt.
"""

from typing import Any

from pydantic import BaseModel, Field

from ..state.schema import GameConfig, Province


class _Wire(BaseModel):
    model_config = {"populate_by_name": True}


# -----------------------------------------------------------------------------
# Stateless turn contract
# -----------------------------------------------------------------------------

class PlayerInfo(_Wire):
    name: str


class ProvinceOwnership(_Wire):
    name: str
    owner_id: str | None = Field(default=None, alias="ownerId")


class TurnGameState(_Wire):
    turn: int
    players: dict[str, PlayerInfo] = Field(default_factory=dict)
    provinces: list[ProvinceOwnership] = Field(default_factory=list)


class TurnConfig(_Wire):
    provider: str
    api_key: str | None = Field(default=None, alias="apiKey")
    model: str = ""
    difficulty: str = "Realistic"
    scenario: str = ""


class HistoryItem(_Wire):
    type: str | None = None
    text: str = ""


class EventItem(_Wire):
    year: int
    description: str
    type: str | None = None


class RelationItem(_Wire):
    nation_a: str = Field(alias="nationA")
    nation_b: str = Field(alias="nationB")
    type: str = "neutral"
    treaties: list[str] = Field(default_factory=list)


class TurnRequest(_Wire):
    """Body of POST /turn."""

    command: str
    game_state: TurnGameState = Field(alias="gameState")
    config: TurnConfig
    history: list[HistoryItem] = Field(default_factory=list)
    events: list[EventItem] = Field(default_factory=list)
    relations: list[RelationItem] = Field(default_factory=list)
    province_summary: list[ProvinceOwnership] | None = Field(default=None, alias="provinceSummary")
    story_so_far: str | None = Field(default=None, alias="storySoFar")


class TurnResponse(_Wire):
    """Body of every POST /turn reply, success or failure."""

    message: str
    updates: list[dict[str, Any]] = Field(default_factory=list)
    story_so_far: str | None = Field(default=None, alias="storySoFar")


# -----------------------------------------------------------------------------
# Diplomacy and advisor contract
# -----------------------------------------------------------------------------

class GameContextItem(_Wire):
    year: int = 2026
    scenario: str = ""
    difficulty: str = "Realistic"


class ChatLineItem(_Wire):
    sender: str
    content: str = ""
    turn_year: int = Field(default=0, alias="turnYear")


class RelationshipItem(_Wire):
    type: str = "neutral"
    treaties: list[str] = Field(default_factory=list)


class AdvisorMessageItem(_Wire):
    role: str = "user"
    content: str = ""


class ChatRequest(_Wire):
    """Body of POST /chat. Required strings are checked by the endpoint."""

    message: str = ""
    player_nation: str = Field(default="", alias="playerNation")
    target_nation: str = Field(default="", alias="targetNation")
    chat_history: list[ChatLineItem] = Field(default_factory=list, alias="chatHistory")
    game_context: GameContextItem = Field(default_factory=GameContextItem, alias="gameContext")
    relations: RelationshipItem | None = None
    recent_events: list[EventItem] = Field(default_factory=list, alias="recentEvents")
    config: TurnConfig


class AdvisorRequest(_Wire):
    """Body of POST /advisor."""

    question: str = ""
    player_nation: str = Field(default="", alias="playerNation")
    game_context: GameContextItem = Field(default_factory=GameContextItem, alias="gameContext")
    recent_events: list[EventItem] = Field(default_factory=list, alias="recentEvents")
    relations: list[RelationItem] = Field(default_factory=list)
    history: list[AdvisorMessageItem] = Field(default_factory=list)
    config: TurnConfig


# -----------------------------------------------------------------------------
# Stateful session contract
# -----------------------------------------------------------------------------

class NewSessionRequest(_Wire):
    """Start a game from inline provinces or a province file."""

    config: GameConfig = Field(default_factory=GameConfig)
    provinces: list[Province] | None = None
    world_file: str | None = Field(default=None, alias="worldFile")


class CommandRequest(_Wire):
    command: str = Field(min_length=1)


class AdvanceRequest(_Wire):
    period: str = "1m"


class LoadRequest(_Wire):
    api_key: str | None = Field(default=None, alias="apiKey")

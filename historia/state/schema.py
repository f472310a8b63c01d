"""
Pydantic models for Historia world state.

Wire names are camelCase (the frontend contract); Python attributes are
snake_case. Models accept either form and dump with ``by_alias=True``.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, BeforeValidator, Field, PlainSerializer


# Retention bounds for the rolling lists on WorldState
MAX_EVENTS = 200
MAX_LOGS = 200

PLAYER_ID = "player"


def generate_id() -> str:
    return str(uuid4())[:8]


def _from_epoch_ms(value):
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000)
    return value


# Wall-clock time that travels as epoch milliseconds; ISO strings still load
EpochMillis = Annotated[
    datetime,
    BeforeValidator(_from_epoch_ms),
    PlainSerializer(lambda ts: round(ts.timestamp() * 1000), return_type=int, when_used="json"),
]


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class EventCategory(str, Enum):
    DIPLOMACY = "diplomacy"
    WAR = "war"
    DISCOVERY = "discovery"
    FLAVOR = "flavor"
    ECONOMY = "economy"
    CRISIS = "crisis"


class RelationType(str, Enum):
    NEUTRAL = "neutral"
    FRIENDLY = "friendly"
    ALLIED = "allied"
    HOSTILE = "hostile"
    WAR = "war"
    VASSAL = "vassal"


class LogType(str, Enum):
    COMMAND = "command"
    INFO = "info"
    ERROR = "error"
    SUCCESS = "success"
    CAPTURE = "capture"
    WAR = "war"
    DIPLOMACY = "diplomacy"
    ECONOMY = "economy"
    CRISIS = "crisis"
    EVENT_SUMMARY = "event-summary"


class Difficulty(str, Enum):
    SANDBOX = "Sandbox"
    EASY = "Easy"
    REALISTIC = "Realistic"
    HARDCORE = "Hardcore"
    IMPOSSIBLE = "Impossible"


Provider = Literal["local", "google", "openai", "anthropic", "deepseek"]


class _WireModel(BaseModel):
    model_config = {"populate_by_name": True}


# -----------------------------------------------------------------------------
# World records
# -----------------------------------------------------------------------------

class ProvinceResources(_WireModel):
    population: int = 0
    defense: int = 0
    economy: int = 0
    technology: int = 0


class Province(_WireModel):
    """A map region. Ownership only changes through owner updates."""

    id: str | int
    name: str
    owner_id: str | None = Field(default=None, alias="ownerId")
    parent_country_id: str | None = Field(default=None, alias="parentCountryId")
    parent_country_name: str | None = Field(default=None, alias="parentCountryName")
    is_sub_national: bool = Field(default=False, alias="isSubNational")
    resources: ProvinceResources = Field(default_factory=ProvinceResources)

    @property
    def country_key(self) -> str:
        """Parent country id, or the province's own id for whole countries."""
        return self.parent_country_id or str(self.id)


class Nation(_WireModel):
    id: str
    name: str
    color: str = "#94a3b8"
    treasury: int = 100


class DiplomaticRelation(_WireModel):
    nation_a: str = Field(alias="nationA")
    nation_b: str = Field(alias="nationB")
    type: RelationType = RelationType.NEUTRAL
    treaties: list[str] = Field(default_factory=list)

    def involves_pair(self, a: str, b: str) -> bool:
        """True if this relation covers the unordered pair {a, b}."""
        return (self.nation_a == a and self.nation_b == b) or (
            self.nation_a == b and self.nation_b == a
        )


class GameEvent(_WireModel):
    id: str = Field(default_factory=generate_id)
    year: int
    description: str
    type: EventCategory = EventCategory.FLAVOR


class LogEntry(_WireModel):
    id: str = Field(default_factory=generate_id)
    type: LogType = LogType.INFO
    text: str


# -----------------------------------------------------------------------------
# Oracle update vocabulary
# -----------------------------------------------------------------------------

class OwnerUpdate(_WireModel):
    type: Literal["owner"] = "owner"
    province_name: str = Field(alias="provinceName")
    new_owner_id: str = Field(alias="newOwnerId")


class TimeUpdate(_WireModel):
    type: Literal["time"] = "time"
    amount: int


class EventUpdate(_WireModel):
    type: Literal["event"] = "event"
    description: str
    event_type: EventCategory = Field(default=EventCategory.FLAVOR, alias="eventType")
    year: int


class RelationUpdate(_WireModel):
    type: Literal["relation"] = "relation"
    nation_a: str = Field(alias="nationA")
    nation_b: str = Field(alias="nationB")
    relation_type: str = Field(alias="relationType")
    reason: str = ""


Update = Annotated[
    Union[OwnerUpdate, TimeUpdate, EventUpdate, RelationUpdate],
    Field(discriminator="type"),
]


class OraclePayload(_WireModel):
    """Validated oracle response: narration plus the updates to apply."""

    message: str
    updates: list[Update] = Field(default_factory=list)
    story_so_far: str | None = Field(default=None, alias="storySoFar")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------

class GameConfig(_WireModel):
    """Per-session game settings chosen at setup."""

    provider: Provider = "google"
    api_key: str | None = Field(default=None, alias="apiKey")
    model: str = ""
    difficulty: Difficulty = Difficulty.REALISTIC
    scenario: str = ""
    year: int = 2026
    player_nation_id: str | None = Field(default=None, alias="playerNationId")

    def without_credentials(self) -> "GameConfig":
        return self.model_copy(update={"api_key": None})


# -----------------------------------------------------------------------------
# World State Store
# -----------------------------------------------------------------------------

_TRAILING_PARENTHETICAL = re.compile(r"\s*\(.*\)$")


class WorldState(_WireModel):
    """
    Canonical mutable record of one session's world.

    The turn coordinator is the only writer during play; the timeline
    manager writes only when rewinding.
    """

    turn: int = 2026
    players: dict[str, Nation] = Field(default_factory=dict)
    provinces: list[Province] = Field(default_factory=list)
    events: list[GameEvent] = Field(default_factory=list)
    relations: list[DiplomaticRelation] = Field(default_factory=list)
    logs: list[LogEntry] = Field(default_factory=list)
    story_so_far: str = Field(default="", alias="storySoFar")

    # ----- Bounded lists -----

    def add_event(self, event: GameEvent) -> GameEvent:
        self.events.append(event)
        if len(self.events) > MAX_EVENTS:
            self.events = self.events[-MAX_EVENTS:]
        return event

    def add_log(self, text: str, log_type: LogType | str = LogType.INFO) -> LogEntry:
        entry = LogEntry(type=LogType(log_type), text=text)
        self.logs.append(entry)
        if len(self.logs) > MAX_LOGS:
            self.logs = self.logs[-MAX_LOGS:]
        return entry

    def recent_logs(self, count: int = 15) -> list[LogEntry]:
        return self.logs[-count:] if count > 0 else []

    def recent_events(self, count: int = 10) -> list[GameEvent]:
        return self.events[-count:] if count > 0 else []

    # ----- Relations -----

    def set_relation(self, relation: DiplomaticRelation) -> DiplomaticRelation:
        """Insert a relation, replacing any record for the same unordered pair."""
        self.relations = [
            r for r in self.relations
            if not r.involves_pair(relation.nation_a, relation.nation_b)
        ]
        self.relations.append(relation)
        return relation

    def get_relation(self, a: str, b: str) -> DiplomaticRelation | None:
        for relation in self.relations:
            if relation.involves_pair(a, b):
                return relation
        return None

    # ----- Provinces -----

    def find_province(self, name: str) -> Province | None:
        """
        Resolve an oracle-supplied province name.

        Match order, first hit wins:
        1. exact name, case-insensitive
        2. name starts with "<target> (" (disambiguating suffix)
        3. name with its trailing parenthetical removed equals target
        4. parent country name equals target on a whole-country record
        """
        target = name.lower()
        if not target:
            return None

        for p in self.provinces:
            if p.name.lower() == target:
                return p

        prefix = f"{target} ("
        for p in self.provinces:
            if p.name.lower().startswith(prefix):
                return p

        for p in self.provinces:
            if _TRAILING_PARENTHETICAL.sub("", p.name).lower() == target:
                return p

        for p in self.provinces:
            if (p.parent_country_name or "").lower() == target and not p.is_sub_national:
                return p

        return None

    def get_province(self, province_id: str | int) -> Province | None:
        key = str(province_id)
        for p in self.provinces:
            if str(p.id) == key:
                return p
        return None

    def ownership_summary(self) -> list[dict]:
        """Provinces with an owner, as ``{name, ownerId}`` records."""
        return [
            {"name": p.name, "ownerId": p.owner_id}
            for p in self.provinces
            if p.owner_id is not None
        ]

    def province_owners(self) -> dict[str, str | None]:
        return {str(p.id): p.owner_id for p in self.provinces}

    @property
    def player_name(self) -> str:
        player = self.players.get(PLAYER_ID)
        return player.name if player else "Unknown"


# -----------------------------------------------------------------------------
# Timeline
# -----------------------------------------------------------------------------

class SlimState(_WireModel):
    """Minimal serializable subset of world state kept per snapshot."""

    turn: int
    province_owners: dict[str, str | None] = Field(default_factory=dict, alias="provinceOwners")
    events: list[GameEvent] = Field(default_factory=list)
    relations: list[DiplomaticRelation] = Field(default_factory=list)


class TimelineSnapshot(_WireModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    turn_year: int = Field(alias="turnYear")
    timestamp: EpochMillis = Field(default_factory=datetime.now)
    description: str = ""
    command: str = ""
    slim_state: SlimState = Field(alias="slimState")
    parent_snapshot_id: str | None = Field(default=None, alias="parentSnapshotId")


# -----------------------------------------------------------------------------
# Saves
# -----------------------------------------------------------------------------

SAVE_VERSION = "1.0.0"


class SavedGame(_WireModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = Field(default_factory=datetime.now)
    version: str = SAVE_VERSION
    world: WorldState
    config: GameConfig
    timeline: list[TimelineSnapshot] = Field(default_factory=list)
    current_snapshot_id: str | None = Field(default=None, alias="currentSnapshotId")

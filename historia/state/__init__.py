"""State management for Historia sessions."""

from .schema import (
    MAX_EVENTS,
    MAX_LOGS,
    PLAYER_ID,
    DiplomaticRelation,
    Difficulty,
    EventCategory,
    EventUpdate,
    GameConfig,
    GameEvent,
    LogEntry,
    LogType,
    Nation,
    OraclePayload,
    OwnerUpdate,
    Province,
    ProvinceResources,
    RelationType,
    RelationUpdate,
    SavedGame,
    SlimState,
    TimelineSnapshot,
    TimeUpdate,
    Update,
    WorldState,
)
from .manager import SessionManager
from .store import JsonSaveStore, MemorySaveStore, SaveStore
from .world_loader import JsonWorldLoader, StaticWorldLoader, WorldLoader, create_world
from .event_bus import (
    EventBus,
    Signal,
    SignalType,
    get_event_bus,
    reset_event_bus,
)

__all__ = [
    # Schema
    "MAX_EVENTS",
    "MAX_LOGS",
    "PLAYER_ID",
    "DiplomaticRelation",
    "Difficulty",
    "EventCategory",
    "EventUpdate",
    "GameConfig",
    "GameEvent",
    "LogEntry",
    "LogType",
    "Nation",
    "OraclePayload",
    "OwnerUpdate",
    "Province",
    "ProvinceResources",
    "RelationType",
    "RelationUpdate",
    "SavedGame",
    "SlimState",
    "TimelineSnapshot",
    "TimeUpdate",
    "Update",
    "WorldState",
    # Manager
    "SessionManager",
    # Store
    "SaveStore",
    "JsonSaveStore",
    "MemorySaveStore",
    # World loading
    "WorldLoader",
    "JsonWorldLoader",
    "StaticWorldLoader",
    "create_world",
    # Events
    "EventBus",
    "Signal",
    "SignalType",
    "get_event_bus",
    "reset_event_bus",
]

"""
Pytest fixtures for Historia engine tests.

Provides in-memory stores, a small world, and mock oracle clients for
isolated testing.
"""

import json

import pytest
from pathlib import Path

# Add repo root to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from historia.llm import MockOracleClient, OracleDispatcher
from historia.state import (
    GameConfig,
    MemorySaveStore,
    Nation,
    Province,
    SessionManager,
    WorldState,
    reset_event_bus,
)
from historia.systems import TimelineManager, TurnCoordinator


@pytest.fixture(autouse=True)
def fresh_event_bus():
    """Each test gets its own signal bus."""
    reset_event_bus()
    yield
    reset_event_bus()


@pytest.fixture
def provinces():
    """A handful of provinces covering every name-matching case."""
    return [
        Province(id=1, name="Normandy (France)", owner_id="ai_red",
                 parent_country_id="FR", parent_country_name="France", is_sub_national=True),
        Province(id=2, name="Brittany (France)", owner_id="ai_red",
                 parent_country_id="FR", parent_country_name="France", is_sub_national=True),
        Province(id=3, name="France", owner_id="ai_red",
                 parent_country_id="FR", parent_country_name="France", is_sub_national=False),
        Province(id=4, name="Texas (USA)", owner_id="ai_green",
                 parent_country_id="US", parent_country_name="United States", is_sub_national=True),
        Province(id=5, name="England", owner_id=None,
                 parent_country_id="GB", parent_country_name="United Kingdom", is_sub_national=True),
        Province(id=6, name="Kent", owner_id="player",
                 parent_country_id="GB", parent_country_name="United Kingdom", is_sub_national=True),
    ]


@pytest.fixture
def world(provinces):
    """World in 1805 with the player holding Kent."""
    return WorldState(
        turn=1805,
        players={
            "player": Nation(id="player", name="United Kingdom"),
            "ai_red": Nation(id="ai_red", name="Red Empire"),
        },
        provinces=provinces,
    )


@pytest.fixture
def game_config():
    return GameConfig(provider="local", scenario="Napoleonic Wars", year=1805)


@pytest.fixture
def mock_client():
    """Mock oracle that answers with an empty payload."""
    return MockOracleClient()


@pytest.fixture
def dispatcher(mock_client):
    """Dispatcher whose every provider resolves to the mock client."""
    return OracleDispatcher(client_factory=lambda provider, api_key=None: mock_client)


@pytest.fixture
def coordinator(world, game_config, dispatcher):
    return TurnCoordinator(world, game_config, dispatcher=dispatcher)


@pytest.fixture
def timeline(world):
    return TimelineManager(world)


@pytest.fixture
def memory_store():
    """In-memory save store for testing."""
    return MemorySaveStore()


@pytest.fixture
def session_manager(memory_store, dispatcher):
    """Session manager with in-memory store and mock oracle."""
    return SessionManager(memory_store, dispatcher=dispatcher)


def oracle_reply(message: str = "Time passes.", updates: list | None = None, fenced: bool = False) -> str:
    """Serialize an oracle reply the way a backend would return it."""
    body = json.dumps({"message": message, "updates": updates or []})
    if fenced:
        return f"```json\n{body}\n```"
    return body

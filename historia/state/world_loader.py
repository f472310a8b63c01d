"""
World data loading and new-game setup.

The province dataset itself is produced elsewhere; this module only reads
it and seeds a fresh WorldState from a GameConfig.
"""

import json
from pathlib import Path
from typing import Protocol, runtime_checkable

from .schema import GameConfig, Nation, PLAYER_ID, Province, WorldState


# Starting roster: the human player plus three AI powers
INITIAL_PLAYERS: dict[str, Nation] = {
    PLAYER_ID: Nation(id=PLAYER_ID, name="You", color="#3b82f6"),
    "ai_red": Nation(id="ai_red", name="Red Empire", color="#ef4444"),
    "ai_green": Nation(id="ai_green", name="Green Republic", color="#22c55e"),
    "ai_yellow": Nation(id="ai_yellow", name="Golden Horde", color="#eab308"),
}


@runtime_checkable
class WorldLoader(Protocol):
    """Source of the full province set."""

    def load(self) -> list[Province]:
        ...


class JsonWorldLoader:
    """
    Reads provinces from a JSON file.

    Accepts either a bare list of provinces or ``{"provinces": [...]}``.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._cache: list[Province] | None = None

    def load(self) -> list[Province]:
        if self._cache is None:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(data, dict):
                data = data.get("provinces", [])
            self._cache = [Province.model_validate(p) for p in data]
        return [p.model_copy(deep=True) for p in self._cache]


class StaticWorldLoader:
    """Serves an in-memory province list (API payloads, tests)."""

    def __init__(self, provinces: list[Province]):
        self._provinces = provinces

    def load(self) -> list[Province]:
        return [p.model_copy(deep=True) for p in self._provinces]


def create_world(config: GameConfig, provinces: list[Province]) -> WorldState:
    """
    Seed a new world for the configured player nation.

    Every province sharing the chosen nation's country key starts owned by
    the player, and the player takes that country's display name.
    """
    players = {pid: n.model_copy() for pid, n in INITIAL_PLAYERS.items()}
    provinces = [p.model_copy(deep=True) for p in provinces]

    nation = None
    if config.player_nation_id is not None:
        nation = next(
            (p for p in provinces if str(p.id) == str(config.player_nation_id)),
            None,
        )

    if nation is not None:
        players[PLAYER_ID].name = nation.parent_country_name or nation.name
        for p in provinces:
            if p.country_key == nation.country_key:
                p.owner_id = PLAYER_ID

    return WorldState(turn=config.year, players=players, provinces=provinces)

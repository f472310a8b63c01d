"""
Saved-game storage.

Separates persistence from session logic for testability.
"""

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from .schema import SavedGame

logger = logging.getLogger(__name__)

# Oldest saves are evicted once a store holds this many
MAX_SAVES = 10

# Save ids double as file names
_SAVE_ID = re.compile(r"[A-Za-z0-9_-]+")


def _summary(save: SavedGame) -> dict:
    return {
        "id": save.id,
        "timestamp": save.timestamp,
        "turn": save.world.turn,
        "scenario": save.config.scenario,
        "player": save.world.player_name,
        "version": save.version,
    }


@runtime_checkable
class SaveStore(Protocol):
    """
    Storage interface for saved games.

    Implementations:
    - JsonSaveStore: file-based persistence (production)
    - MemorySaveStore: in-memory storage (testing)
    """

    def save(self, game: SavedGame) -> str:
        """Persist a save and return its id."""
        ...

    def load(self, save_id: str) -> SavedGame | None:
        """Load a save by id. Returns None if not found."""
        ...

    def delete(self, save_id: str) -> bool:
        """Delete a save. Returns True if deleted."""
        ...

    def list_all(self) -> list[dict]:
        """List saves newest first."""
        ...


class JsonSaveStore:
    """
    File-based save storage, one JSON file per save.

    Features:
    - Backup of the previous file on overwrite
    - Eviction of the oldest save past MAX_SAVES
    """

    def __init__(self, saves_dir: Path | str = "saves", max_saves: int = MAX_SAVES):
        self.saves_dir = Path(saves_dir)
        self.saves_dir.mkdir(parents=True, exist_ok=True)
        self.max_saves = max_saves

    def _path(self, save_id: str) -> Path:
        if not _SAVE_ID.fullmatch(save_id):
            raise ValueError(f"Invalid save id: {save_id!r}")
        return self.saves_dir / f"{save_id}.json"

    def _save_files(self) -> list[Path]:
        return [f for f in self.saves_dir.glob("*.json") if not f.name.startswith(".")]

    def save(self, game: SavedGame) -> str:
        path = self._path(game.id)

        if path.exists():
            backup = path.with_suffix(".json.bak")
            backup.write_text(path.read_text(encoding="utf-8"), encoding="utf-8")
        else:
            self._evict_for_new_save()

        path.write_text(
            game.model_dump_json(by_alias=True, indent=2),
            encoding="utf-8",
        )
        logger.info("Saved game %s (turn %s)", game.id, game.world.turn)
        return game.id

    def _evict_for_new_save(self) -> None:
        files = sorted(self._save_files(), key=lambda f: f.stat().st_mtime)
        while len(files) >= self.max_saves:
            oldest = files.pop(0)
            logger.info("Evicting oldest save %s", oldest.stem)
            oldest.unlink()

    def load(self, save_id: str) -> SavedGame | None:
        if not _SAVE_ID.fullmatch(save_id):
            return None
        path = self._path(save_id)
        if not path.exists():
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return SavedGame.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("Unreadable save %s: %s", save_id, e)
            return None

    def delete(self, save_id: str) -> bool:
        if not _SAVE_ID.fullmatch(save_id):
            return False
        path = self._path(save_id)
        if path.exists():
            path.unlink()
            return True
        return False

    def list_all(self) -> list[dict]:
        saves = []
        for f in self._save_files():
            try:
                game = SavedGame.model_validate(json.loads(f.read_text(encoding="utf-8")))
            except (json.JSONDecodeError, ValidationError):
                continue
            saves.append(_summary(game))

        saves.sort(key=lambda s: s["timestamp"], reverse=True)
        return saves


class MemorySaveStore:
    """
    In-memory save storage for testing.

    No file I/O - all data lives in memory.
    """

    def __init__(self, max_saves: int = MAX_SAVES):
        self.saves: dict[str, SavedGame] = {}
        self.max_saves = max_saves

    def save(self, game: SavedGame) -> str:
        if game.id not in self.saves:
            while len(self.saves) >= self.max_saves:
                oldest = min(self.saves.values(), key=lambda s: s.timestamp)
                del self.saves[oldest.id]
        self.saves[game.id] = game.model_copy(deep=True)
        return game.id

    def load(self, save_id: str) -> SavedGame | None:
        game = self.saves.get(save_id)
        return game.model_copy(deep=True) if game else None

    def delete(self, save_id: str) -> bool:
        if save_id in self.saves:
            del self.saves[save_id]
            return True
        return False

    def list_all(self) -> list[dict]:
        saves = [_summary(s) for s in self.saves.values()]
        saves.sort(key=lambda s: s["timestamp"], reverse=True)
        return saves

    def clear(self) -> None:
        self.saves.clear()


def touch_timestamp(game: SavedGame) -> SavedGame:
    """Stamp a save with the current time before writing."""
    game.timestamp = datetime.now()
    return game

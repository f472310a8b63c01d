"""
Session lifecycle management.

Handles new game, load, save, list and delete. One session is active at
a time; loading a save replaces its world wholesale.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from uuid import uuid4

from ..config import api_key_from_env
from .event_bus import SignalType, get_event_bus
from .schema import GameConfig, Province, SavedGame
from .store import JsonSaveStore, SaveStore, touch_timestamp
from .world_loader import create_world

logger = logging.getLogger(__name__)

# Lazy import for systems to avoid circular imports
_systems = None


def _turn_systems():
    global _systems
    if _systems is None:
        from .. import systems
        _systems = systems
    return _systems


class SessionManager:
    """
    Manages the active game session and its saves.

    Storage is delegated to a SaveStore implementation:
    - JsonSaveStore for production (file-based)
    - MemorySaveStore for testing (in-memory)

    Lifecycle:
    - new_game(config, provinces) -> fresh world
    - load_game(id) -> resume existing
    - save_game() -> persist
    - list_saves() / delete_save(id)
    """

    def __init__(
        self,
        store: SaveStore | Path | str = "saves",
        dispatcher=None,
        time_policy: str = "ignore",
        autosave: bool = False,
    ):
        """
        Initialize with a store.

        Args:
            store: SaveStore instance, or path for JsonSaveStore
            dispatcher: OracleDispatcher shared by every session (default: real backends)
            time_policy: "ignore" or "allow" for oracle time updates
            autosave: Save after every applied turn
        """
        if isinstance(store, (Path, str)):
            self.store = JsonSaveStore(Path(store))
        else:
            self.store = store

        self.dispatcher = dispatcher
        self.time_policy = time_policy
        self.autosave = autosave

        self.coordinator = None
        self.save_id: str | None = None
        self._bus = get_event_bus()

    @property
    def active(self) -> bool:
        return self.coordinator is not None

    def require_session(self):
        """The active coordinator; raises LookupError when no game is running."""
        if self.coordinator is None:
            raise LookupError("No active game. Start or load one first.")
        return self.coordinator

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @contextmanager
    def _exclusive(self):
        """Hold the active session's turn lock, if there is one."""
        if self.coordinator is None:
            yield
        else:
            with self.coordinator.exclusive():
                yield

    def _with_credentials(self, config: GameConfig, api_key: str | None = None) -> GameConfig:
        key = api_key or config.api_key or api_key_from_env(config.provider)
        return config.model_copy(update={"api_key": key})

    def _start(self, world, config: GameConfig, save_id: str | None):
        systems = _turn_systems()
        coordinator = systems.TurnCoordinator(
            world,
            config,
            dispatcher=self.dispatcher,
            time_policy=systems.TimePolicy(self.time_policy),
            persist_fn=self._autosave if self.autosave else None,
        )
        self.coordinator = coordinator
        self.save_id = save_id
        return coordinator

    def new_game(self, config: GameConfig, provinces: list[Province]):
        """Seed a new world and make it the active session."""
        config = self._with_credentials(config)
        world = create_world(config, provinces)
        with self._exclusive():
            coordinator = self._start(world, config, save_id=None)
        self._bus.emit(
            SignalType.GAME_STARTED,
            player=world.player_name,
            year=world.turn,
            provinces=len(world.provinces),
        )
        return coordinator

    def load_game(self, save_id: str, api_key: str | None = None):
        """
        Replace the active session with a saved game.

        Returns None if the save does not exist.
        """
        saved = self.store.load(save_id)
        if saved is None:
            return None

        config = self._with_credentials(saved.config, api_key)
        with self._exclusive():
            coordinator = self._start(saved.world, config, save_id=saved.id)
            coordinator.timeline.restore(saved.timeline, saved.current_snapshot_id)
        self._bus.emit(SignalType.GAME_LOADED, save_id=saved.id, year=saved.world.turn)
        return coordinator

    def snapshot_save(self) -> SavedGame:
        """Build a save record of the active session (credentials stripped)."""
        coordinator = self.require_session()
        return SavedGame(
            id=self.save_id or str(uuid4()),
            world=coordinator.world.model_copy(deep=True),
            config=coordinator.config.without_credentials(),
            timeline=coordinator.timeline.export(),
            current_snapshot_id=coordinator.timeline.current_id,
        )

    def save_game(self) -> str:
        """
        Persist the active session and return its save id.

        The world is copied under the turn lock and written after it.

        Raises:
            TurnInProgressError: A turn is running
        """
        with self._exclusive():
            saved = touch_timestamp(self.snapshot_save())
        self.save_id = self.store.save(saved)
        self._bus.emit(SignalType.GAME_SAVED, save_id=self.save_id, year=saved.world.turn)
        return self.save_id

    def _autosave(self, world) -> None:
        try:
            self.save_game()
        except _turn_systems().TurnInProgressError:
            # The next turn saves again
            logger.debug("Auto-save skipped; another turn started")

    # -------------------------------------------------------------------------
    # Save slots
    # -------------------------------------------------------------------------

    def list_saves(self) -> list[dict]:
        return self.store.list_all()

    def get_save(self, save_id: str) -> SavedGame | None:
        return self.store.load(save_id)

    def delete_save(self, save_id: str) -> bool:
        deleted = self.store.delete(save_id)
        if deleted and save_id == self.save_id:
            self.save_id = None
        return deleted

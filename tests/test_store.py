"""Tests for save storage and the session manager."""

import os
from datetime import datetime, timedelta

import pytest

from conftest import oracle_reply
from historia.state import (
    GameConfig,
    JsonSaveStore,
    MemorySaveStore,
    SaveStore,
    SavedGame,
    SessionManager,
    SignalType,
    WorldState,
    get_event_bus,
)
from historia.systems import TurnInProgressError


def make_save(save_id: str, turn: int = 1805, minutes_ago: int = 0) -> SavedGame:
    return SavedGame(
        id=save_id,
        timestamp=datetime.now() - timedelta(minutes=minutes_ago),
        world=WorldState(turn=turn),
        config=GameConfig(scenario="Napoleonic Wars"),
    )


class TestJsonSaveStore:

    def test_satisfies_protocol(self, tmp_path):
        assert isinstance(JsonSaveStore(tmp_path), SaveStore)

    def test_save_and_load(self, tmp_path):
        store = JsonSaveStore(tmp_path)
        store.save(make_save("alpha", turn=1812))

        loaded = store.load("alpha")
        assert loaded.world.turn == 1812
        assert (tmp_path / "alpha.json").exists()

    def test_wire_format_uses_camel_case(self, tmp_path):
        store = JsonSaveStore(tmp_path)
        store.save(make_save("alpha"))
        text = (tmp_path / "alpha.json").read_text(encoding="utf-8")
        assert '"currentSnapshotId"' in text

    def test_overwrite_keeps_backup(self, tmp_path):
        store = JsonSaveStore(tmp_path)
        store.save(make_save("alpha", turn=1805))
        store.save(make_save("alpha", turn=1806))

        assert (tmp_path / "alpha.json.bak").exists()
        assert store.load("alpha").world.turn == 1806
        assert len(store.list_all()) == 1

    def test_oldest_evicted(self, tmp_path):
        store = JsonSaveStore(tmp_path, max_saves=3)
        for i in range(3):
            store.save(make_save(f"s{i}"))
            stamp = 1_000_000 + i
            os.utime(tmp_path / f"s{i}.json", (stamp, stamp))

        store.save(make_save("s3"))

        assert store.load("s0") is None
        assert {s["id"] for s in store.list_all()} == {"s1", "s2", "s3"}

    def test_list_newest_first(self, tmp_path):
        store = JsonSaveStore(tmp_path)
        store.save(make_save("old", minutes_ago=10))
        store.save(make_save("new", minutes_ago=1))

        saves = store.list_all()
        assert [s["id"] for s in saves] == ["new", "old"]
        assert saves[0]["scenario"] == "Napoleonic Wars"

    def test_corrupt_file_skipped(self, tmp_path):
        store = JsonSaveStore(tmp_path)
        (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")

        assert store.load("broken") is None
        assert store.list_all() == []

    @pytest.mark.parametrize("save_id", ["../escape", "a/b", "", "x\n"])
    def test_invalid_ids(self, tmp_path, save_id):
        store = JsonSaveStore(tmp_path)
        assert store.load(save_id) is None
        assert store.delete(save_id) is False

    def test_delete(self, tmp_path):
        store = JsonSaveStore(tmp_path)
        store.save(make_save("alpha"))
        assert store.delete("alpha") is True
        assert store.delete("alpha") is False


class TestMemorySaveStore:

    def test_copies_on_save_and_load(self, memory_store):
        game = make_save("alpha")
        memory_store.save(game)
        game.world.turn = 1900

        loaded = memory_store.load("alpha")
        loaded.world.turn = 2000

        assert memory_store.load("alpha").world.turn == 1805

    def test_evicts_oldest_timestamp(self):
        store = MemorySaveStore(max_saves=2)
        store.save(make_save("a", minutes_ago=30))
        store.save(make_save("b", minutes_ago=20))
        store.save(make_save("c", minutes_ago=10))

        assert [s["id"] for s in store.list_all()] == ["c", "b"]


class TestSessionManager:

    def test_requires_session(self, session_manager):
        assert not session_manager.active
        with pytest.raises(LookupError):
            session_manager.require_session()

    def test_new_game(self, session_manager, game_config, provinces):
        coordinator = session_manager.new_game(game_config, provinces)

        assert session_manager.active
        assert coordinator.world.turn == 1805
        assert get_event_bus().get_history(SignalType.GAME_STARTED)

    def test_save_strips_api_key(self, session_manager, memory_store, provinces):
        session_manager.new_game(GameConfig(provider="google", api_key="secret"), provinces)

        save_id = session_manager.save_game()

        assert memory_store.load(save_id).config.api_key is None
        assert session_manager.coordinator.config.api_key == "secret"

    def test_resave_reuses_id(self, session_manager, game_config, provinces):
        session_manager.new_game(game_config, provinces)
        first = session_manager.save_game()
        second = session_manager.save_game()
        assert first == second

    def test_load_restores_world_and_timeline(self, session_manager, game_config, provinces, mock_client):
        coordinator = session_manager.new_game(game_config, provinces)
        mock_client.set_responses([oracle_reply(updates=[
            {"type": "owner", "provinceName": "Brittany (France)", "newOwnerId": "player"},
        ])])
        result = coordinator.process_command("Take Brittany")
        save_id = session_manager.save_game()

        session_manager.new_game(game_config, provinces)
        loaded = session_manager.load_game(save_id)

        assert loaded.world.find_province("Brittany (France)").owner_id == "player"
        assert loaded.timeline.current_id == result.snapshot_id
        assert session_manager.save_id == save_id

    def test_load_supplies_key(self, session_manager, provinces):
        session_manager.new_game(GameConfig(provider="openai", api_key="k1"), provinces)
        save_id = session_manager.save_game()

        coordinator = session_manager.load_game(save_id, api_key="k2")

        assert coordinator.config.api_key == "k2"

    def test_env_key_fallback(self, session_manager, provinces, monkeypatch):
        monkeypatch.setenv("DEEPSEEK_API_KEY", "from-env")
        coordinator = session_manager.new_game(GameConfig(provider="deepseek"), provinces)
        assert coordinator.config.api_key == "from-env"

    def test_load_missing(self, session_manager):
        assert session_manager.load_game("nope") is None

    def test_autosave_after_turn(self, memory_store, dispatcher, game_config, provinces):
        manager = SessionManager(memory_store, dispatcher=dispatcher, autosave=True)
        coordinator = manager.new_game(game_config, provinces)

        coordinator.process_command("Wait")

        assert len(memory_store.list_all()) == 1
        assert manager.save_id is not None

    def test_session_changes_wait_for_running_turn(self, session_manager, game_config, provinces):
        coordinator = session_manager.new_game(game_config, provinces)
        save_id = session_manager.save_game()

        with coordinator.exclusive():
            with pytest.raises(TurnInProgressError):
                session_manager.save_game()
            with pytest.raises(TurnInProgressError):
                session_manager.new_game(game_config, provinces)
            with pytest.raises(TurnInProgressError):
                session_manager.load_game(save_id)

        assert session_manager.coordinator is coordinator
        assert session_manager.save_game() == save_id

    def test_delete_current_save_forgets_id(self, session_manager, game_config, provinces):
        session_manager.new_game(game_config, provinces)
        save_id = session_manager.save_game()

        assert session_manager.delete_save(save_id)
        assert session_manager.save_id is None

    def test_path_builds_json_store(self, tmp_path):
        manager = SessionManager(tmp_path / "saves")
        assert isinstance(manager.store, JsonSaveStore)

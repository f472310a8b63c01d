"""Tests for timeline snapshots, rewind and branching."""

import pytest

from historia.state import (
    DiplomaticRelation,
    GameEvent,
    LogType,
    Province,
    RelationType,
    SignalType,
    TimelineSnapshot,
    get_event_bus,
)
from historia.systems import SnapshotNotFoundError, TimelineManager
from historia.systems.timeline import MAX_SNAPSHOTS, SNAPSHOT_EVENT_WINDOW


def owner(world, name):
    return world.find_province(name).owner_id


class TestCapture:

    def test_slim_copy_of_world(self, world, timeline):
        world.set_relation(DiplomaticRelation(nation_a="player", nation_b="England", type=RelationType.WAR))
        sid = timeline.capture(world, "Captured Normandy", "invade")

        snapshot = timeline.get(sid)
        assert snapshot.turn_year == 1805
        assert snapshot.slim_state.province_owners["1"] == "ai_red"
        assert snapshot.slim_state.relations[0].type == RelationType.WAR
        assert snapshot.command == "invade"

    def test_snapshot_independent_of_later_mutation(self, world, timeline):
        world.set_relation(DiplomaticRelation(nation_a="a", nation_b="b", type=RelationType.ALLIED))
        sid = timeline.capture(world, "d", "c")

        world.relations[0].type = RelationType.WAR
        world.find_province("Kent").owner_id = "ai_red"

        slim = timeline.get(sid).slim_state
        assert slim.relations[0].type == RelationType.ALLIED
        assert slim.province_owners["6"] == "player"

    def test_only_recent_events_kept(self, world, timeline):
        for i in range(SNAPSHOT_EVENT_WINDOW + 5):
            world.add_event(GameEvent(year=1800 + i, description=f"e{i}"))

        sid = timeline.capture(world, "d", "c")

        events = timeline.get(sid).slim_state.events
        assert len(events) == SNAPSHOT_EVENT_WINDOW
        assert events[0].description == "e5"

    def test_parent_is_previous_current(self, world, timeline):
        first = timeline.capture(world, "one", "c")
        second = timeline.capture(world, "two", "c")

        assert timeline.get(first).parent_snapshot_id is None
        assert timeline.get(second).parent_snapshot_id == first
        assert timeline.current_id == second

    def test_oldest_evicted_past_cap(self, world, timeline):
        ids = [timeline.capture(world, f"s{i}", "c") for i in range(MAX_SNAPSHOTS + 3)]

        assert len(timeline) == MAX_SNAPSHOTS
        with pytest.raises(SnapshotNotFoundError):
            timeline.get(ids[0])
        assert timeline.list_snapshots()[0].id == ids[3]

    def test_capture_emits_signal(self, world, timeline):
        sid = timeline.capture(world, "d", "c")
        signal = get_event_bus().get_history(SignalType.SNAPSHOT_CAPTURED)[0]
        assert signal.data["snapshot_id"] == sid


class TestRewind:

    def test_restores_owners_relations_events_and_year(self, world, timeline):
        sid = timeline.capture(world, "before", "c")

        world.turn = 1810
        world.find_province("Normandy (France)").owner_id = "player"
        world.set_relation(DiplomaticRelation(nation_a="player", nation_b="ai_red", type=RelationType.WAR))
        world.add_event(GameEvent(year=1809, description="Battle"))

        timeline.rewind(sid)

        assert world.turn == 1805
        assert owner(world, "Normandy (France)") == "ai_red"
        assert world.relations == []
        assert world.events == []

    def test_province_missing_from_snapshot_keeps_owner(self, world, timeline):
        sid = timeline.capture(world, "before", "c")
        world.provinces.append(Province(id=99, name="Atlantis", owner_id="player"))

        timeline.rewind(sid)

        assert owner(world, "Atlantis") == "player"

    def test_logs_and_keeps_snapshots(self, world, timeline):
        first = timeline.capture(world, "one", "c")
        timeline.capture(world, "two", "c")

        timeline.rewind(first)

        assert world.logs[-1].type == LogType.SUCCESS
        assert world.logs[-1].text == "Rewound to Year 1805."
        assert len(timeline) == 2
        assert timeline.current_id == first

    def test_next_capture_becomes_sibling(self, world, timeline):
        root = timeline.capture(world, "root", "c")
        original = timeline.capture(world, "original", "c")

        timeline.rewind(root)
        alternate = timeline.capture(world, "alternate", "c")

        assert {s.id for s in timeline.children(root)} == {original, alternate}

    def test_unknown_id(self, timeline):
        with pytest.raises(SnapshotNotFoundError, match="Snapshot not found: nope"):
            timeline.rewind("nope")

    def test_not_found_is_a_key_error(self, timeline):
        with pytest.raises(KeyError):
            timeline.get("nope")


class TestBranch:

    def test_branch_logs_after_rewind(self, world, timeline):
        sid = timeline.capture(world, "root", "c")
        timeline.branch(sid)

        assert [l.type for l in world.logs[-2:]] == [LogType.SUCCESS, LogType.INFO]
        assert world.logs[-1].text == "Created alternate timeline branch."
        assert get_event_bus().get_history(SignalType.TIMELINE_BRANCHED)


class TestLineage:

    def test_newest_first(self, world, timeline):
        a = timeline.capture(world, "a", "c")
        b = timeline.capture(world, "b", "c")
        c = timeline.capture(world, "c", "c")

        assert [s.id for s in timeline.lineage(c)] == [c, b, a]

    def test_stops_at_evicted_parent(self, world):
        timeline = TimelineManager(world, max_snapshots=2)
        timeline.capture(world, "a", "c")
        b = timeline.capture(world, "b", "c")
        c = timeline.capture(world, "c", "c")

        assert [s.id for s in timeline.lineage(c)] == [c, b]

    def test_unknown_is_empty(self, timeline):
        assert timeline.lineage("nope") == []


class TestExportRestore:

    def test_round_trip_keeps_current(self, world, timeline):
        first = timeline.capture(world, "a", "c")
        timeline.capture(world, "b", "c")
        timeline.rewind(first)

        restored = TimelineManager(world)
        restored.restore(timeline.export(), timeline.current_id)

        assert [s.id for s in restored.list_snapshots()] == [s.id for s in timeline.list_snapshots()]
        assert restored.current_id == first

    def test_missing_current_falls_back_to_newest(self, world, timeline):
        timeline.capture(world, "a", "c")
        newest = timeline.capture(world, "b", "c")

        restored = TimelineManager(world)
        restored.restore(timeline.export(), "gone")

        assert restored.current_id == newest

    def test_restore_empty(self, world):
        restored = TimelineManager(world)
        restored.restore([])
        assert restored.current_id is None
        assert len(restored) == 0


class TestSnapshotTimestamp:

    def test_serialized_as_epoch_millis(self, world, timeline):
        timeline.capture(world, "a", "c")

        wire = timeline.list_snapshots()[0].model_dump(by_alias=True, mode="json")

        assert isinstance(wire["timestamp"], int)

    def test_epoch_millis_kept_unchanged(self):
        snapshot = TimelineSnapshot.model_validate({
            "turnYear": 1805,
            "timestamp": 1700000000123,
            "slimState": {"turn": 1805},
        })

        assert snapshot.model_dump(by_alias=True, mode="json")["timestamp"] == 1700000000123

    def test_iso_string_still_loads(self):
        snapshot = TimelineSnapshot.model_validate({
            "turnYear": 1805,
            "timestamp": "2024-05-01T12:00:00",
            "slimState": {"turn": 1805},
        })

        assert snapshot.timestamp.year == 2024

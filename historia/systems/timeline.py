"""
Timeline manager: snapshots of significant turns.

Snapshots live in an insertion-ordered arena keyed by id. Parent ids are
lookup keys only, so evicting an old snapshot may leave a child with an
unresolvable parent but never breaks anything else.

Rewinding marks the target as current; the next capture links to it,
which is how alternate branches grow as siblings.
"""

import logging

from ..state.event_bus import SignalType, get_event_bus
from ..state.schema import LogType, SlimState, TimelineSnapshot, WorldState

logger = logging.getLogger(__name__)


MAX_SNAPSHOTS = 50
SNAPSHOT_EVENT_WINDOW = 20


class SnapshotNotFoundError(KeyError):
    """No snapshot with the requested id."""

    def __init__(self, snapshot_id: str):
        self.snapshot_id = snapshot_id
        super().__init__(snapshot_id)

    def __str__(self) -> str:
        return f"Snapshot not found: {self.snapshot_id}"


class TimelineManager:
    """
    Owns the snapshot arena for one world.

    Usage:
        timeline = TimelineManager(world)
        sid = timeline.capture(world, "Captured Normandy", "invade normandy")
        timeline.rewind(sid)
    """

    def __init__(self, world: WorldState, max_snapshots: int = MAX_SNAPSHOTS):
        self.world = world
        self.max_snapshots = max_snapshots
        self._snapshots: dict[str, TimelineSnapshot] = {}
        self._current_id: str | None = None
        self._bus = get_event_bus()

    @property
    def current_id(self) -> str | None:
        return self._current_id

    def __len__(self) -> int:
        return len(self._snapshots)

    # ─── Capture ────────────────────────────────────────────────

    def capture(self, world: WorldState, description: str, command: str) -> str:
        """Snapshot the world and make the snapshot current."""
        slim = SlimState(
            turn=world.turn,
            province_owners=world.province_owners(),
            events=[e.model_copy(deep=True) for e in world.events[-SNAPSHOT_EVENT_WINDOW:]],
            relations=[r.model_copy(deep=True) for r in world.relations],
        )
        snapshot = TimelineSnapshot(
            turn_year=world.turn,
            description=description,
            command=command,
            slim_state=slim,
            parent_snapshot_id=self._current_id,
        )

        self._snapshots[snapshot.id] = snapshot
        self._current_id = snapshot.id
        self._evict()

        logger.debug("Captured snapshot %s (parent %s)", snapshot.id, snapshot.parent_snapshot_id)
        self._bus.emit(
            SignalType.SNAPSHOT_CAPTURED,
            snapshot_id=snapshot.id,
            parent_id=snapshot.parent_snapshot_id,
            year=snapshot.turn_year,
        )
        return snapshot.id

    def _evict(self) -> None:
        while len(self._snapshots) > self.max_snapshots:
            oldest = next(iter(self._snapshots))
            del self._snapshots[oldest]
            logger.debug("Evicted snapshot %s", oldest)

    # ─── Rewind / branch ────────────────────────────────────────

    def rewind(self, snapshot_id: str) -> TimelineSnapshot:
        """
        Restore the world from a snapshot.

        Provinces missing from the snapshot keep their current owner.
        The snapshot list is left intact.

        Raises:
            SnapshotNotFoundError: Unknown id
        """
        snapshot = self.get(snapshot_id)
        slim = snapshot.slim_state

        self.world.turn = slim.turn
        for province in self.world.provinces:
            key = str(province.id)
            if key in slim.province_owners:
                province.owner_id = slim.province_owners[key]
        self.world.events = [e.model_copy(deep=True) for e in slim.events]
        self.world.relations = [r.model_copy(deep=True) for r in slim.relations]
        self.world.add_log(f"Rewound to Year {snapshot.turn_year}.", LogType.SUCCESS)

        self._current_id = snapshot.id
        self._bus.emit(SignalType.TIMELINE_REWOUND, snapshot_id=snapshot.id, year=snapshot.turn_year)
        return snapshot

    def branch(self, snapshot_id: str) -> TimelineSnapshot:
        """Rewind and announce an alternate branch."""
        snapshot = self.rewind(snapshot_id)
        self.world.add_log("Created alternate timeline branch.", LogType.INFO)
        self._bus.emit(SignalType.TIMELINE_BRANCHED, snapshot_id=snapshot.id)
        return snapshot

    # ─── Queries ────────────────────────────────────────────────

    def get(self, snapshot_id: str) -> TimelineSnapshot:
        try:
            return self._snapshots[snapshot_id]
        except KeyError:
            raise SnapshotNotFoundError(snapshot_id) from None

    def list_snapshots(self) -> list[TimelineSnapshot]:
        """Snapshots oldest first."""
        return list(self._snapshots.values())

    def children(self, snapshot_id: str) -> list[TimelineSnapshot]:
        return [s for s in self._snapshots.values() if s.parent_snapshot_id == snapshot_id]

    def lineage(self, snapshot_id: str) -> list[TimelineSnapshot]:
        """The snapshot and its ancestors, newest first, up to the first evicted parent."""
        chain = []
        node = self._snapshots.get(snapshot_id)
        seen = set()
        while node is not None and node.id not in seen:
            chain.append(node)
            seen.add(node.id)
            node = self._snapshots.get(node.parent_snapshot_id) if node.parent_snapshot_id else None
        return chain

    # ─── Persistence ────────────────────────────────────────────

    def export(self) -> list[TimelineSnapshot]:
        return [s.model_copy(deep=True) for s in self._snapshots.values()]

    def restore(self, snapshots: list[TimelineSnapshot], current_id: str | None = None) -> None:
        """Replace the arena, e.g. after loading a save."""
        self._snapshots = {s.id: s.model_copy(deep=True) for s in snapshots}
        self._evict()
        if current_id is not None and current_id in self._snapshots:
            self._current_id = current_id
        else:
            self._current_id = next(reversed(self._snapshots), None) if self._snapshots else None

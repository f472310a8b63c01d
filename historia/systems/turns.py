"""
Turn coordinator for Historia's adjudication engine.

Owns the phase state machine and sequences the turn pipeline:
    IDLE → DISPATCHING → APPLYING → IDLE

Design principles:
- The coordinator is the only writer of world state during play.
- A turn submitted while another is in flight is rejected, not queued.
- Updates are applied only after the oracle reply fully validates, so a
  failed turn leaves the world untouched.
- Snapshot capture and auto-save run after mutation and can fail without
  undoing it. Auto-save runs once the turn lock is released.
- Timeline moves share the turn lock, so nothing rewrites the world
  while a turn is in flight.

Usage:
    coordinator = TurnCoordinator(world, config)
    result = coordinator.process_command("Invade Normandy")

    coordinator.queue_order("Raise taxes")
    result = coordinator.advance_time("1y")
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from enum import Enum
from typing import Callable

from pydantic import BaseModel, Field

from ..llm import ConfigurationError, OracleDispatcher, OracleError, ProviderConfig
from ..prompts import (
    EVENTS_WINDOW,
    HISTORY_WINDOW,
    SYSTEM_PROMPT,
    TurnContext,
    build_game_master_prompt,
)
from ..state.event_bus import SignalType, get_event_bus
from ..state.schema import (
    EventCategory,
    EventUpdate,
    DiplomaticRelation,
    GameConfig,
    GameEvent,
    LogType,
    OraclePayload,
    OwnerUpdate,
    PLAYER_ID,
    RelationType,
    RelationUpdate,
    TimelineSnapshot,
    TimeUpdate,
    Update,
    WorldState,
)
from .sanitizer import ParseError, sanitize
from .timeline import TimelineManager

logger = logging.getLogger(__name__)


class TurnPhase(str, Enum):
    """Phase state machine for a single turn."""
    IDLE = "idle"                  # No turn in progress
    DISPATCHING = "dispatching"    # Waiting on the oracle
    APPLYING = "applying"          # Writing validated updates to the world


# Valid phase transitions; failures drop straight back to IDLE
VALID_TRANSITIONS: dict[TurnPhase, set[TurnPhase]] = {
    TurnPhase.IDLE: {TurnPhase.DISPATCHING},
    TurnPhase.DISPATCHING: {TurnPhase.APPLYING, TurnPhase.IDLE},
    TurnPhase.APPLYING: {TurnPhase.IDLE},
}


class TimePolicy(str, Enum):
    """What to do with oracle-issued ``time`` updates."""
    IGNORE = "ignore"  # Calendar only moves via advance_time()
    ALLOW = "allow"    # Oracle time updates advance the year


# Whole years added by each advance period
ADVANCE_YEAR_DELTAS: dict[str, int] = {"5d": 0, "1m": 0, "6m": 0, "1y": 1}

# Event categories that land in a same-named log type
_EVENT_LOG_TYPES = {
    EventCategory.WAR: LogType.WAR,
    EventCategory.DIPLOMACY: LogType.DIPLOMACY,
    EventCategory.ECONOMY: LogType.ECONOMY,
    EventCategory.CRISIS: LogType.CRISIS,
}

ERROR_MESSAGE_PREFIX = "The Game Master encountered an error"


class TurnError(Exception):
    """Error during turn processing."""
    pass


class TurnInProgressError(TurnError):
    """A turn was submitted while another is still running."""
    def __init__(self, current: TurnPhase):
        self.current = current
        super().__init__(f"A turn is already in progress ({current.value}).")


class InvalidPhaseError(TurnError):
    """Attempted operation not valid in current phase."""
    def __init__(self, current: TurnPhase, attempted: str):
        self.current = current
        self.attempted = attempted
        super().__init__(
            f"Cannot {attempted} during {current.value} phase."
        )


class TurnResult(BaseModel):
    """Outcome of one processed command."""

    model_config = {"populate_by_name": True}

    ok: bool = True
    command: str
    message: str
    updates: list[Update] = Field(default_factory=list)
    significant: bool = False
    summary: list[str] = Field(default_factory=list)
    snapshot_id: str | None = Field(default=None, alias="snapshotId")
    year: int
    error: str | None = None

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


def adjudicate(
    dispatcher: OracleDispatcher,
    provider: ProviderConfig,
    context: TurnContext,
    allow_time: bool = False,
) -> OraclePayload:
    """
    One oracle round trip: prompt, dispatch, sanitize.

    Raises:
        ConfigurationError: Missing credential
        OracleError: Dispatch failure
        ParseError: Reply is not JSON
    """
    prompt = build_game_master_prompt(context, allow_time=allow_time)
    raw = dispatcher.dispatch(provider, prompt, system_prompt=SYSTEM_PROMPT)
    return sanitize(raw, context.year)


class TurnCoordinator:
    """
    Sequences the turn pipeline for one world.

    Responsibilities:
    - Phase state machine and reentrancy guard
    - Context assembly and oracle round trip
    - Ordered application of validated updates
    - Significance tracking and timeline snapshots
    - Signal emission for observers

    NOT responsible for:
    - Talking to backends (OracleDispatcher)
    - Validating oracle output (sanitizer)
    - Storing saves (SessionManager / SaveStore)
    """

    def __init__(
        self,
        world: WorldState,
        config: GameConfig,
        dispatcher: OracleDispatcher | None = None,
        timeline: TimelineManager | None = None,
        time_policy: TimePolicy = TimePolicy.IGNORE,
        persist_fn: Callable[[WorldState], None] | None = None,
    ):
        self._world = world
        self._config = config
        self._dispatcher = dispatcher or OracleDispatcher()
        self._timeline = timeline or TimelineManager(world)
        self._time_policy = TimePolicy(time_policy)
        self._persist_fn = persist_fn
        self._phase = TurnPhase.IDLE
        self._lock = threading.Lock()
        self._pending_orders: list[str] = []
        self._bus = get_event_bus()

    @property
    def phase(self) -> TurnPhase:
        """Current phase of the turn state machine."""
        return self._phase

    @property
    def world(self) -> WorldState:
        return self._world

    @property
    def config(self) -> GameConfig:
        return self._config

    @property
    def timeline(self) -> TimelineManager:
        return self._timeline

    @property
    def time_policy(self) -> TimePolicy:
        return self._time_policy

    @property
    def pending_orders(self) -> list[str]:
        return list(self._pending_orders)

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def set_persist_fn(self, fn: Callable[[WorldState], None] | None) -> None:
        """Register the persistence function (called after each applied turn)."""
        self._persist_fn = fn

    @contextmanager
    def exclusive(self):
        """
        Hold the turn lock for the duration of the block.

        Raises:
            TurnInProgressError: Another turn or world edit is running
        """
        if not self._lock.acquire(blocking=False):
            raise TurnInProgressError(self._phase)
        try:
            yield self
        finally:
            self._phase = TurnPhase.IDLE
            self._lock.release()

    def _transition(self, to: TurnPhase) -> None:
        """Transition to a new phase, enforcing valid transitions."""
        if to not in VALID_TRANSITIONS.get(self._phase, set()):
            raise InvalidPhaseError(
                self._phase,
                f"transition to {to.value}",
            )
        self._phase = to

    # ─── Context ─────────────────────────────────────────────────

    def build_context(self, command: str) -> TurnContext:
        world = self._world
        return TurnContext(
            command=command,
            year=world.turn,
            player_name=world.player_name,
            scenario=self._config.scenario,
            difficulty=self._config.difficulty.value,
            history=world.recent_logs(HISTORY_WINDOW),
            events=world.recent_events(EVENTS_WINDOW),
            relations=list(world.relations),
            province_summary=world.ownership_summary(),
            story_so_far=world.story_so_far,
        )

    def _provider_config(self) -> ProviderConfig:
        return ProviderConfig(
            provider=self._config.provider,
            api_key=self._config.api_key,
            model=self._config.model,
        )

    # ─── Turn Pipeline ───────────────────────────────────────────

    def process_command(self, command: str, year_delta: int = 0) -> TurnResult:
        """
        Run one command through the oracle and apply the outcome.

        Args:
            command: Free-form player command
            year_delta: Whole years to add once the reply validates

        Returns:
            TurnResult; ``ok`` is False when dispatch or parsing failed

        Raises:
            TurnInProgressError: Another turn is still running
        """
        with self.exclusive():
            result = self._run_turn(command, year_delta)
        return self._finish(result)

    def _finish(self, result: TurnResult) -> TurnResult:
        if result.ok:
            self._persist()
        return result

    def _run_turn(self, command: str, year_delta: int) -> TurnResult:
        world = self._world
        world.add_log(command, LogType.COMMAND)
        context = self.build_context(command)

        self._transition(TurnPhase.DISPATCHING)
        self._bus.emit(SignalType.TURN_STARTED, command=command, year=world.turn)

        try:
            payload = adjudicate(
                self._dispatcher,
                self._provider_config(),
                context,
                allow_time=self._time_policy == TimePolicy.ALLOW,
            )
        except (ConfigurationError, OracleError) as e:
            logger.warning("Oracle dispatch failed: %s", e)
            return self._fail(command, f"{ERROR_MESSAGE_PREFIX}: {e}")
        except ParseError as e:
            logger.warning("Oracle reply rejected: %s", e)
            return self._fail(command, f"{ERROR_MESSAGE_PREFIX}: {e}")

        self._transition(TurnPhase.APPLYING)

        if year_delta:
            world.turn += year_delta

        summary: list[str] = []
        for update in payload.updates:
            item = self._apply(update)
            if item:
                summary.append(item)

        if payload.story_so_far:
            world.story_so_far = payload.story_so_far

        if summary:
            lines = "\n".join(f"  - {item}" for item in summary)
            world.add_log(f"--- Events This Period ---\n{lines}", LogType.EVENT_SUMMARY)

        snapshot_id = None
        if summary:
            description = summary[0] or payload.message[:100] or command[:100]
            snapshot_id = self._capture(description, command)

        world.add_log(payload.message, LogType.INFO)

        result = TurnResult(
            command=command,
            message=payload.message,
            updates=payload.updates,
            significant=bool(summary),
            summary=summary,
            snapshot_id=snapshot_id,
            year=world.turn,
        )
        self._transition(TurnPhase.IDLE)
        self._bus.emit(
            SignalType.TURN_COMPLETED,
            command=command,
            significant=result.significant,
            snapshot_id=snapshot_id,
        )
        return result

    def _fail(self, command: str, message: str) -> TurnResult:
        self._world.add_log(message, LogType.ERROR)
        self._transition(TurnPhase.IDLE)
        self._bus.emit(SignalType.TURN_FAILED, command=command, error=message)
        return TurnResult(
            ok=False,
            command=command,
            message=message,
            year=self._world.turn,
            error=message,
        )

    def _capture(self, description: str, command: str) -> str | None:
        try:
            return self._timeline.capture(self._world, description, command)
        except Exception:
            logger.exception("Snapshot capture failed; turn kept")
            return None

    def _persist(self) -> None:
        if self._persist_fn is None:
            return
        try:
            self._persist_fn(self._world)
        except Exception:
            logger.exception("Auto-save failed; turn kept")

    # ─── Update application ──────────────────────────────────────

    def _apply(self, update: Update) -> str | None:
        """Apply one update; return its summary line if it was significant."""
        if isinstance(update, OwnerUpdate):
            return self._apply_owner(update)
        if isinstance(update, TimeUpdate):
            return self._apply_time(update)
        if isinstance(update, EventUpdate):
            return self._apply_event(update)
        if isinstance(update, RelationUpdate):
            return self._apply_relation(update)
        return None

    def _apply_owner(self, update: OwnerUpdate) -> str | None:
        province = self._world.find_province(update.province_name)
        if province is None:
            logger.debug("No province matches %r", update.province_name)
            return None

        province.owner_id = update.new_owner_id
        self._bus.emit(
            SignalType.PROVINCE_CAPTURED,
            province_id=str(province.id),
            province=province.name,
            owner=update.new_owner_id,
        )

        if update.new_owner_id == PLAYER_ID:
            self._world.add_log(
                f"CAPTURED: {update.province_name} is now under your control!",
                LogType.CAPTURE,
            )
            return f"Captured {update.province_name}"

        self._world.add_log(f"{update.province_name} seized by {update.new_owner_id}", LogType.WAR)
        return f"{update.province_name} fell to {update.new_owner_id}"

    def _apply_time(self, update: TimeUpdate) -> None:
        if self._time_policy == TimePolicy.ALLOW:
            self._world.turn += update.amount
        else:
            logger.debug("Ignoring time update of %d", update.amount)
        return None

    def _apply_event(self, update: EventUpdate) -> str | None:
        self._world.add_event(GameEvent(
            year=update.year,
            description=update.description,
            type=update.event_type,
        ))
        self._world.add_log(
            update.description,
            _EVENT_LOG_TYPES.get(update.event_type, LogType.INFO),
        )
        if update.event_type == EventCategory.FLAVOR:
            return None
        return update.description

    def _apply_relation(self, update: RelationUpdate) -> str:
        try:
            relation_type = RelationType(update.relation_type.lower())
        except ValueError:
            logger.debug("Unknown relation type %r, using neutral", update.relation_type)
            relation_type = RelationType.NEUTRAL

        self._world.set_relation(DiplomaticRelation(
            nation_a=update.nation_a,
            nation_b=update.nation_b,
            type=relation_type,
        ))

        if relation_type == RelationType.WAR:
            log_type = LogType.WAR
        elif relation_type == RelationType.ALLIED:
            log_type = LogType.DIPLOMACY
        else:
            log_type = LogType.INFO
        self._world.add_log(
            f"{update.nation_a} <-> {update.nation_b}: {relation_type.value}",
            log_type,
        )
        self._bus.emit(
            SignalType.RELATION_CHANGED,
            nation_a=update.nation_a,
            nation_b=update.nation_b,
            relation=relation_type.value,
            reason=update.reason,
        )
        return f"{update.nation_a} & {update.nation_b} now {relation_type.value}"

    # ─── Orders ──────────────────────────────────────────────────

    def queue_order(self, command: str) -> list[str]:
        """
        Hold a command for the next advance_time().

        Raises:
            TurnInProgressError: A turn is running
        """
        with self.exclusive():
            self._world.add_log(command, LogType.COMMAND)
            self._pending_orders.append(command)
            self._world.add_log("Order queued. Advance time to execute.", LogType.INFO)
            return self.pending_orders

    def advance_time(self, period: str = "1m") -> TurnResult:
        """
        Fold queued orders into one command and run it.

        Periods ``5d``, ``1m``, ``6m`` and ``1y`` are recognized; any other
        text is passed to the oracle verbatim and adds no years.

        Raises:
            TurnInProgressError: A turn is running
        """
        label = period.strip() or "1 month"
        time_command = f"Advance time by {label}"

        with self.exclusive():
            orders, self._pending_orders = self._pending_orders, []
            if orders:
                numbered = "\n".join(f"{i}. {order}" for i, order in enumerate(orders, 1))
                command = f"ORDERS:\n{numbered}\n\nThen {time_command}."
            else:
                command = f"No new orders. {time_command}. Describe what happens in the world."
            result = self._run_turn(command, ADVANCE_YEAR_DELTAS.get(label, 0))
        return self._finish(result)

    # ─── Timeline ────────────────────────────────────────────────

    def rewind(self, snapshot_id: str) -> TimelineSnapshot:
        """
        Restore a snapshot between turns.

        Raises:
            TurnInProgressError: A turn is running
            SnapshotNotFoundError: Unknown id
        """
        with self.exclusive():
            return self._timeline.rewind(snapshot_id)

    def branch(self, snapshot_id: str) -> TimelineSnapshot:
        """Restore a snapshot as a new alternate branch between turns."""
        with self.exclusive():
            return self._timeline.branch(snapshot_id)

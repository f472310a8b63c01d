"""
Signal bus for Historia state changes.

Lets the API layer (and tests) observe turns, captures and timeline moves
without the coordinator knowing who is listening.

Usage:
    from .event_bus import get_event_bus, SignalType

    bus = get_event_bus()
    bus.on(SignalType.PROVINCE_CAPTURED, handler)

    bus.emit(SignalType.PROVINCE_CAPTURED, province="Normandy", owner="player")
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class SignalType(Enum):
    """Signals published by the engine."""

    # Turn lifecycle
    TURN_STARTED = "turn.started"
    TURN_COMPLETED = "turn.completed"
    TURN_FAILED = "turn.failed"

    # World changes
    PROVINCE_CAPTURED = "province.captured"
    RELATION_CHANGED = "relation.changed"

    # Timeline
    SNAPSHOT_CAPTURED = "timeline.captured"
    TIMELINE_REWOUND = "timeline.rewound"
    TIMELINE_BRANCHED = "timeline.branched"

    # Session
    GAME_STARTED = "session.started"
    GAME_LOADED = "session.loaded"
    GAME_SAVED = "session.saved"


@dataclass
class Signal:
    """Payload delivered to bus listeners."""

    type: SignalType
    data: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        return f"[{self.type.value}] {self.data}"


SignalHandler = Callable[[Signal], None]


class EventBus:
    """
    Synchronous signal bus.

    Listeners run inline on emit(), on the emitting thread. A failing
    listener is logged and skipped; it never interrupts the emitter.
    Safe to emit from several threads. Listeners are called outside the
    bus lock.
    """

    def __init__(self):
        self._listeners: dict[SignalType, list[SignalHandler]] = {}
        self._history: list[Signal] = []
        self._history_limit = 100
        self._lock = threading.Lock()

    def on(self, signal_type: SignalType, handler: SignalHandler) -> None:
        with self._lock:
            handlers = self._listeners.setdefault(signal_type, [])
            if handler not in handlers:
                handlers.append(handler)

    def off(self, signal_type: SignalType, handler: SignalHandler) -> None:
        with self._lock:
            if handler in self._listeners.get(signal_type, []):
                self._listeners[signal_type].remove(handler)

    def emit(self, signal_type: SignalType, **data) -> Signal:
        """Deliver a signal to all subscribers and return it."""
        signal = Signal(type=signal_type, data=data)

        with self._lock:
            self._history.append(signal)
            if len(self._history) > self._history_limit:
                self._history = self._history[-self._history_limit:]
            handlers = list(self._listeners.get(signal_type, []))

        for handler in handlers:
            try:
                handler(signal)
            except Exception:
                logger.exception("Signal handler failed for %s", signal_type.value)

        return signal

    def clear(self) -> None:
        """Drop all listeners. Useful for testing."""
        with self._lock:
            self._listeners.clear()

    def get_history(self, signal_type: SignalType | None = None) -> list[Signal]:
        with self._lock:
            history = list(self._history)
        if signal_type is None:
            return history
        return [s for s in history if s.type == signal_type]

    def listener_count(self, signal_type: SignalType) -> int:
        return len(self._listeners.get(signal_type, []))


_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Process-wide bus instance."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def reset_event_bus() -> None:
    """Forget the global bus. Useful for testing."""
    global _event_bus
    _event_bus = None

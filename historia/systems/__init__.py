"""
Turn systems for Historia.

Sanitizing oracle output, running turns, keeping the timeline, and the
diplomacy and advisor round trips are separate from session persistence
so each can be tested on its own.
"""

from .advisor import AdvisorCategory, AdvisorReply, consult, interrupted_counsel, sanitize_advice
from .diplomacy import (
    DiplomacyReply,
    DiplomacyTone,
    RelationChange,
    failed_delivery,
    negotiate,
    sanitize_diplomacy,
)
from .sanitizer import ParseError, PLACEHOLDER_MESSAGE, extract_json, sanitize, sanitize_payload
from .timeline import MAX_SNAPSHOTS, SnapshotNotFoundError, TimelineManager
from .turns import (
    InvalidPhaseError,
    TimePolicy,
    TurnCoordinator,
    TurnError,
    TurnInProgressError,
    TurnPhase,
    TurnResult,
    adjudicate,
)

__all__ = [
    # Sanitizer
    "ParseError",
    "PLACEHOLDER_MESSAGE",
    "extract_json",
    "sanitize",
    "sanitize_payload",
    # Timeline
    "MAX_SNAPSHOTS",
    "SnapshotNotFoundError",
    "TimelineManager",
    # Turn engine
    "TurnCoordinator",
    "TurnPhase",
    "TurnResult",
    "TimePolicy",
    "TurnError",
    "TurnInProgressError",
    "InvalidPhaseError",
    "adjudicate",
    # Diplomacy
    "DiplomacyReply",
    "DiplomacyTone",
    "RelationChange",
    "failed_delivery",
    "negotiate",
    "sanitize_diplomacy",
    # Advisor
    "AdvisorCategory",
    "AdvisorReply",
    "consult",
    "interrupted_counsel",
    "sanitize_advice",
]

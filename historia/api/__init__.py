"""
Historia API server.

FastAPI-based REST API: stateless turn, diplomacy and advisor endpoints
for clients that keep their own world, plus stateful session endpoints.
"""

from .server import create_app, HistoriaAPI, advisor_context, diplomacy_context, turn_context
from .schemas import (
    TurnRequest,
    TurnResponse,
    ChatRequest,
    AdvisorRequest,
    NewSessionRequest,
    CommandRequest,
    AdvanceRequest,
    LoadRequest,
)

__all__ = [
    "create_app",
    "HistoriaAPI",
    "turn_context",
    "diplomacy_context",
    "advisor_context",
    "TurnRequest",
    "TurnResponse",
    "ChatRequest",
    "AdvisorRequest",
    "NewSessionRequest",
    "CommandRequest",
    "AdvanceRequest",
    "LoadRequest",
]

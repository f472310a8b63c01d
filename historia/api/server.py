"""
Historia FastAPI server.

Two surfaces share one app:
- POST /turn, /chat and /advisor are stateless. The caller ships the
  relevant slice of its own world and gets back a validated payload.
- The session endpoints keep an authoritative world server-side and run
  every turn through the TurnCoordinator.

Endpoints:
- GET  /health                    - Liveness
- POST /turn                      - Stateless adjudication
- POST /chat                      - Stateless diplomacy message
- POST /advisor                   - Stateless advisor consultation
- POST /session                   - Start a new game
- GET  /state                     - Full world snapshot
- POST /command                   - Run one command now
- POST /orders                    - Queue an order for the next advance
- POST /advance                   - Run queued orders and advance time
- GET  /timeline                  - Snapshot tree
- POST /timeline/{id}/rewind      - Restore a snapshot
- POST /timeline/{id}/branch      - Restore a snapshot as a new branch
- GET  /saves, POST /saves        - List / write saves
- GET  /saves/{id}                - Read a save
- POST /saves/{id}/load           - Resume a save
- DELETE /saves/{id}              - Remove a save
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import load_config
from ..llm import ConfigurationError, OracleDispatcher, OracleError, ProviderConfig
from ..prompts import (
    EVENTS_WINDOW,
    HISTORY_WINDOW,
    AdvisorContext,
    AdvisorMessage,
    ChatLine,
    DiplomacyContext,
    TurnContext,
)
from ..state import (
    DiplomaticRelation,
    GameEvent,
    JsonWorldLoader,
    LogEntry,
    LogType,
    RelationType,
    SessionManager,
    StaticWorldLoader,
)
from ..systems import (
    ParseError,
    SnapshotNotFoundError,
    TimePolicy,
    TurnInProgressError,
    adjudicate,
    consult,
    failed_delivery,
    interrupted_counsel,
    negotiate,
)
from ..systems.sanitizer import normalize_event_type
from ..systems.turns import ERROR_MESSAGE_PREFIX
from .schemas import (
    AdvanceRequest,
    AdvisorRequest,
    ChatRequest,
    CommandRequest,
    LoadRequest,
    NewSessionRequest,
    TurnRequest,
    TurnResponse,
)

logger = logging.getLogger(__name__)


def _failure(status: int, detail: str) -> JSONResponse:
    """Narrative-shaped failure body for /turn."""
    body = TurnResponse(message=f"{ERROR_MESSAGE_PREFIX}: {detail}", updates=[])
    return JSONResponse(status_code=status, content=body.model_dump(by_alias=True, exclude_none=True))


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message})


def _log_entry(item) -> LogEntry:
    try:
        log_type = LogType((item.type or "info").lower())
    except ValueError:
        log_type = LogType.INFO
    return LogEntry(type=log_type, text=item.text)


def _relation(item) -> DiplomaticRelation:
    try:
        relation_type = RelationType(item.type.lower())
    except ValueError:
        relation_type = RelationType.NEUTRAL
    return DiplomaticRelation(
        nation_a=item.nation_a,
        nation_b=item.nation_b,
        type=relation_type,
        treaties=item.treaties,
    )


def _game_event(item) -> GameEvent:
    return GameEvent(year=item.year, description=item.description, type=normalize_event_type(item.type))


def turn_context(request: TurnRequest) -> TurnContext:
    """Rebuild prompt context from a stateless turn request."""
    state = request.game_state
    player = state.players.get("player")
    summary = request.province_summary if request.province_summary is not None else state.provinces
    return TurnContext(
        command=request.command,
        year=state.turn,
        player_name=player.name if player else "Unknown",
        scenario=request.config.scenario,
        difficulty=request.config.difficulty,
        history=[_log_entry(h) for h in request.history[-HISTORY_WINDOW:]],
        events=[_game_event(e) for e in request.events[-EVENTS_WINDOW:]],
        relations=[_relation(r) for r in request.relations],
        province_summary=[p.model_dump(by_alias=True) for p in summary if p.owner_id is not None],
        story_so_far=request.story_so_far or "",
    )


def diplomacy_context(request: ChatRequest) -> DiplomacyContext:
    """Rebuild prompt context from a diplomacy request."""
    game = request.game_context
    relationship = request.relations
    return DiplomacyContext(
        player_nation=request.player_nation,
        target_nation=request.target_nation,
        message=request.message,
        year=game.year,
        scenario=game.scenario,
        difficulty=game.difficulty,
        chat_history=[ChatLine(m.sender, m.content, m.turn_year) for m in request.chat_history],
        relation_type=relationship.type if relationship else None,
        treaties=relationship.treaties if relationship else [],
        events=[_game_event(e) for e in request.recent_events],
    )


def advisor_context(request: AdvisorRequest) -> AdvisorContext:
    """Rebuild prompt context from an advisor request."""
    game = request.game_context
    return AdvisorContext(
        question=request.question,
        player_nation=request.player_nation,
        year=game.year,
        scenario=game.scenario,
        difficulty=game.difficulty,
        events=[_game_event(e) for e in request.recent_events],
        relations=[_relation(r) for r in request.relations],
        history=[AdvisorMessage(m.role, m.content) for m in request.history],
    )


def _provider(config) -> ProviderConfig:
    return ProviderConfig(provider=config.provider, api_key=config.api_key, model=config.model)


class HistoriaAPI:
    """
    Historia API backend.

    Wraps the session manager and the oracle dispatcher shared by the
    stateless and stateful surfaces.
    """

    def __init__(
        self,
        saves_dir: Path | str = "saves",
        dispatcher: OracleDispatcher | None = None,
        manager: SessionManager | None = None,
        time_policy: str | None = None,
        world_file: str | None = None,
    ):
        settings = load_config(saves_dir)

        self.saves_dir = Path(saves_dir)
        self.dispatcher = dispatcher or OracleDispatcher()
        self.time_policy = TimePolicy(time_policy or settings.get("time_policy", "ignore"))
        self.world_file = world_file or settings.get("world_file")
        self.manager = manager or SessionManager(
            self.saves_dir,
            dispatcher=self.dispatcher,
            time_policy=self.time_policy.value,
            autosave=settings.get("autosave", False),
        )

    # ─── Stateless ────────────────────────────────────────────────

    def run_stateless_turn(self, request: TurnRequest) -> dict:
        """
        Adjudicate one command without touching server state.

        Raises:
            ConfigurationError, OracleError, ParseError
        """
        payload = adjudicate(
            self.dispatcher,
            _provider(request.config),
            turn_context(request),
            allow_time=self.time_policy == TimePolicy.ALLOW,
        )
        return payload.to_wire()

    def run_diplomacy(self, request: ChatRequest) -> dict:
        """Deliver one diplomatic message. Raises like run_stateless_turn."""
        return negotiate(self.dispatcher, _provider(request.config), diplomacy_context(request)).to_wire()

    def run_advisor(self, request: AdvisorRequest) -> dict:
        """Answer one advisor question. Raises like run_stateless_turn."""
        return consult(self.dispatcher, _provider(request.config), advisor_context(request)).to_wire()

    # ─── Session ─────────────────────────────────────────────────

    def coordinator(self):
        try:
            return self.manager.require_session()
        except LookupError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

    def start_session(self, request: NewSessionRequest) -> dict:
        if request.provinces is not None:
            loader = StaticWorldLoader(request.provinces)
        elif request.world_file or self.world_file:
            loader = JsonWorldLoader(request.world_file or self.world_file)
        else:
            raise HTTPException(status_code=400, detail="Provide provinces or a worldFile.")

        try:
            provinces = loader.load()
        except (OSError, ValueError) as e:
            raise HTTPException(status_code=400, detail=f"Cannot load world: {e}") from e

        try:
            self.manager.new_game(request.config, provinces)
        except TurnInProgressError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        return self.get_state()

    def get_state(self) -> dict:
        coordinator = self.coordinator()
        return {
            "world": coordinator.world.model_dump(by_alias=True, mode="json"),
            "config": coordinator.config.without_credentials().model_dump(by_alias=True, mode="json"),
            "phase": coordinator.phase.value,
            "pendingOrders": coordinator.pending_orders,
            "currentSnapshotId": coordinator.timeline.current_id,
            "saveId": self.manager.save_id,
        }

    def get_timeline(self) -> dict:
        timeline = self.coordinator().timeline
        return {
            "snapshots": [s.model_dump(by_alias=True, mode="json") for s in timeline.list_snapshots()],
            "currentId": timeline.current_id,
        }

    def move_timeline(self, snapshot_id: str, branch: bool) -> dict:
        coordinator = self.coordinator()
        try:
            if branch:
                coordinator.branch(snapshot_id)
            else:
                coordinator.rewind(snapshot_id)
        except TurnInProgressError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        except SnapshotNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        return self.get_state()


def create_app(
    saves_dir: Path | str = "saves",
    dispatcher: OracleDispatcher | None = None,
    manager: SessionManager | None = None,
    time_policy: str | None = None,
    world_file: str | None = None,
) -> FastAPI:
    """
    Create FastAPI application for Historia.

    This is the main entry point for the API server.
    """

    # Initialize API backend
    api = HistoriaAPI(
        saves_dir=saves_dir,
        dispatcher=dispatcher,
        manager=manager,
        time_policy=time_policy,
        world_file=world_file,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        yield
        # Shutdown - save any active session
        if api.manager.active:
            try:
                api.manager.save_game()
            except Exception:
                logger.exception("Final save failed")

    app = FastAPI(
        title="Historia Turn Engine",
        description="Turn adjudication API for Open Historia",
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS middleware for frontend access
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Store API instance for dependency injection
    app.state.api = api

    def get_api() -> HistoriaAPI:
        return app.state.api

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        if request.url.path == "/turn":
            return _failure(422, "Malformed turn request.")
        if request.url.path in ("/chat", "/advisor"):
            return _error(400, "Malformed request body.")
        return JSONResponse(status_code=422, content={"detail": exc.errors()})

    # -------------------------------------------------------------------------
    # Stateless
    # -------------------------------------------------------------------------

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"ok": True, "service": "historia-engine"}

    @app.post("/turn", response_model=TurnResponse, response_model_exclude_none=True)
    async def turn(request: TurnRequest, api: HistoriaAPI = Depends(get_api)):
        """
        Adjudicate one command against caller-supplied state.

        400 for a missing credential, 500 for any other failure; both
        carry a narrative message and no updates.
        """
        try:
            return await run_in_threadpool(api.run_stateless_turn, request)
        except ConfigurationError as e:
            logger.info("Turn rejected: %s", e)
            return _failure(400, str(e))
        except (OracleError, ParseError) as e:
            logger.error("Turn failed: %s", e)
            return _failure(500, str(e))
        except Exception:
            logger.exception("Unexpected turn failure")
            return _failure(500, "Internal Server Error")

    @app.post("/chat")
    async def chat(request: ChatRequest, api: HistoriaAPI = Depends(get_api)):
        """
        One message to a foreign leader.

        400 for a missing credential or field, 500 with an in-character
        fallback for any other failure.
        """
        if not (request.message and request.player_nation and request.target_nation):
            return _error(400, "Missing required fields: message, playerNation, targetNation")
        try:
            return await run_in_threadpool(api.run_diplomacy, request)
        except ConfigurationError as e:
            logger.info("Chat rejected: %s", e)
            return _error(400, str(e))
        except (OracleError, ParseError) as e:
            logger.error("Chat failed: %s", e)
            return JSONResponse(status_code=500, content=failed_delivery(str(e)))
        except Exception:
            logger.exception("Unexpected chat failure")
            return JSONResponse(status_code=500, content=failed_delivery("Internal Server Error"))

    @app.post("/advisor")
    async def advisor(request: AdvisorRequest, api: HistoriaAPI = Depends(get_api)):
        """One question to the grand advisor; same status codes as /chat."""
        if not (request.question and request.player_nation):
            return _error(400, "Missing required fields: question, playerNation")
        try:
            return await run_in_threadpool(api.run_advisor, request)
        except ConfigurationError as e:
            logger.info("Advisor rejected: %s", e)
            return _error(400, str(e))
        except (OracleError, ParseError) as e:
            logger.error("Advisor failed: %s", e)
            return JSONResponse(status_code=500, content=interrupted_counsel(str(e)))
        except Exception:
            logger.exception("Unexpected advisor failure")
            return JSONResponse(status_code=500, content=interrupted_counsel("Internal Server Error"))

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    @app.post("/session")
    async def new_session(request: NewSessionRequest, api: HistoriaAPI = Depends(get_api)):
        """Start a new game; replaces any active session."""
        return api.start_session(request)

    @app.get("/state")
    async def get_state(api: HistoriaAPI = Depends(get_api)):
        """Full world snapshot for rendering."""
        return api.get_state()

    @app.post("/command")
    async def command(request: CommandRequest, api: HistoriaAPI = Depends(get_api)):
        """Run one command immediately."""
        coordinator = api.coordinator()
        try:
            result = await run_in_threadpool(coordinator.process_command, request.command)
        except TurnInProgressError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        return result.to_wire()

    @app.post("/orders")
    async def queue_order(request: CommandRequest, api: HistoriaAPI = Depends(get_api)):
        """Queue an order for the next advance."""
        try:
            pending = api.coordinator().queue_order(request.command)
        except TurnInProgressError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        return {"ok": True, "pendingOrders": pending}

    @app.post("/advance")
    async def advance(request: AdvanceRequest, api: HistoriaAPI = Depends(get_api)):
        """Run queued orders and advance the calendar."""
        coordinator = api.coordinator()
        try:
            result = await run_in_threadpool(coordinator.advance_time, request.period)
        except TurnInProgressError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        return result.to_wire()

    @app.get("/timeline")
    async def timeline(api: HistoriaAPI = Depends(get_api)):
        """All retained snapshots, oldest first."""
        return api.get_timeline()

    @app.post("/timeline/{snapshot_id}/rewind")
    async def rewind(snapshot_id: str, api: HistoriaAPI = Depends(get_api)):
        return api.move_timeline(snapshot_id, branch=False)

    @app.post("/timeline/{snapshot_id}/branch")
    async def branch(snapshot_id: str, api: HistoriaAPI = Depends(get_api)):
        return api.move_timeline(snapshot_id, branch=True)

    # -------------------------------------------------------------------------
    # Saves
    # -------------------------------------------------------------------------

    @app.get("/saves")
    async def list_saves(api: HistoriaAPI = Depends(get_api)):
        """List saves, newest first."""
        return {"ok": True, "saves": api.manager.list_saves()}

    @app.post("/saves")
    async def save_game(api: HistoriaAPI = Depends(get_api)):
        """Save the active session."""
        api.coordinator()
        try:
            save_id = await run_in_threadpool(api.manager.save_game)
        except TurnInProgressError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        return {"ok": True, "saveId": save_id}

    @app.get("/saves/{save_id}")
    async def get_save(save_id: str, api: HistoriaAPI = Depends(get_api)):
        saved = api.manager.get_save(save_id)
        if saved is None:
            raise HTTPException(status_code=404, detail=f"Save not found: {save_id}")
        return saved.model_dump(by_alias=True, mode="json")

    @app.post("/saves/{save_id}/load")
    async def load_save(
        save_id: str,
        request: LoadRequest | None = None,
        api: HistoriaAPI = Depends(get_api),
    ):
        """Resume a save; the API key is not stored, so it may be resupplied."""
        api_key = request.api_key if request else None
        try:
            coordinator = api.manager.load_game(save_id, api_key=api_key)
        except TurnInProgressError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        if coordinator is None:
            raise HTTPException(status_code=404, detail=f"Save not found: {save_id}")
        return api.get_state()

    @app.delete("/saves/{save_id}")
    async def delete_save(save_id: str, api: HistoriaAPI = Depends(get_api)):
        if not api.manager.delete_save(save_id):
            raise HTTPException(status_code=404, detail=f"Save not found: {save_id}")
        return {"ok": True}

    return app

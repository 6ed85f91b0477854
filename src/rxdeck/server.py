import logging
import random
import time
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import Literal

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from rxdeck.application.config import AppConfig, resolve_config
from rxdeck.application.deck_service import DeckService, generate_id
from rxdeck.application.factory import open_store
from rxdeck.application.scheduler import SchedulerSettings, preview_all
from rxdeck.application.session import StudySession
from rxdeck.consts import VERSION
from rxdeck.domain.errors import PersistenceError
from rxdeck.domain.models import Grade, StudyMode
from rxdeck.domain.ports import CardStore

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("rxdeck.server")


class SessionRegistry:
    """
    In-process study sessions keyed by id.

    Holds at most `max_sessions`; adding past the bound evicts the least
    recently used session. Lookups count as use.
    """

    def __init__(self, max_sessions: int):
        self.max_sessions = max_sessions
        self._sessions: OrderedDict[str, StudySession] = OrderedDict()

    def add(self, session_id: str, session: StudySession) -> list[str]:
        """Register a session; returns the ids evicted to make room."""
        self._sessions[session_id] = session
        self._sessions.move_to_end(session_id)
        evicted = []
        while len(self._sessions) > self.max_sessions:
            old_id, _ = self._sessions.popitem(last=False)
            evicted.append(old_id)
            logger.info(f"Session {old_id} evicted (limit {self.max_sessions})")
        return evicted

    def get(self, session_id: str) -> StudySession | None:
        session = self._sessions.get(session_id)
        if session is not None:
            self._sessions.move_to_end(session_id)
        return session

    def remove(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def clear(self) -> None:
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"rxdeck server v{VERSION} starting up...")
    config = resolve_config()
    store = open_store(config)
    app.state.config = config
    app.state.store = store
    app.state.sessions = SessionRegistry(config.max_sessions)
    try:
        report = await DeckService(store, config).sync_preloaded_decks()
        logger.info(f"Preloaded decks ready ({report.cards_created} cards created)")
    except PersistenceError as e:
        logger.error(f"Seeding preloaded decks failed: {e}")
    yield
    # Shutdown
    app.state.sessions.clear()
    store.close()
    logger.info("rxdeck server shutting down...")


app = FastAPI(
    title="rxdeck Server",
    description="Study sessions for generic/brand drug name decks.",
    version=VERSION,
    lifespan=lifespan,
)


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error(f"Store failure on {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": f"Storage unavailable: {exc}"})


def get_store(request: Request) -> CardStore:
    return request.app.state.store


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class DeckSummaryResponse(BaseModel):
    id: str
    name: str
    total: int
    due: int


class CardView(BaseModel):
    card_id: str
    front_label: str
    front_text: str
    back_label: str
    back_text: str
    previews: dict[str, str]  # grade name -> prospective delay, e.g. {"good": "1d"}


class StatsView(BaseModel):
    active: int
    confident: int
    unseen: int


class SessionView(BaseModel):
    session_id: str
    deck_id: str
    complete: bool
    card: CardView | None
    stats: StatsView


class StartSessionRequest(BaseModel):
    deck_id: str
    scope: Literal["all", "due"] = "all"
    mode: StudyMode | None = None
    seed: int | None = None


class GradeRequest(BaseModel):
    grade: int = Field(ge=1, le=4)


class GradeResponse(BaseModel):
    feedback: str
    promoted: list[str]
    rescheduled: bool
    session: SessionView


class PreviewResponse(BaseModel):
    card_id: str
    previews: dict[str, str]


def _previews(card, config: AppConfig) -> dict[str, str]:
    return {
        g.name.lower(): d
        for g, d in preview_all(card, SchedulerSettings.from_config(config)).items()
    }


def _session_view(session_id: str, session: StudySession, config: AppConfig) -> SessionView:
    card = None
    if session.current is not None and session.face is not None:
        face = session.face
        card = CardView(
            card_id=session.current.id,
            front_label=face.front_label,
            front_text=face.front_text,
            back_label=face.back_label,
            back_text=face.back_text,
            previews=_previews(session.current.card, config),
        )
    stats = session.stats
    return SessionView(
        session_id=session_id,
        deck_id=session.deck_id or "",
        complete=session.is_complete,
        card=card,
        stats=StatsView(active=stats.active, confident=stats.confident, unseen=stats.unseen),
    )


def _lookup(sessions: SessionRegistry, session_id: str) -> StudySession:
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return session


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

start_time = time.time()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


@app.get("/decks", response_model=list[DeckSummaryResponse])
async def list_decks(
    store: CardStore = Depends(get_store), config: AppConfig = Depends(get_config)
):
    """Decks with raw due counts (daily limits apply at session start)."""
    summaries = await DeckService(store, config).deck_summaries()
    return [
        DeckSummaryResponse(id=s.deck.id, name=s.deck.name, total=s.total, due=s.due)
        for s in summaries
    ]


@app.post("/sessions", response_model=SessionView)
async def start_session(
    req: StartSessionRequest,
    store: CardStore = Depends(get_store),
    config: AppConfig = Depends(get_config),
    sessions: SessionRegistry = Depends(get_sessions),
):
    """Start a study session for a deck and return its first card."""
    if await store.get_deck(req.deck_id) is None:
        raise HTTPException(status_code=404, detail=f"Deck not found: {req.deck_id}")

    rng = random.Random(req.seed) if req.seed is not None else None
    session = StudySession(store, config, mode=req.mode, rng=rng)
    await session.start(req.deck_id, scope=req.scope)

    session_id = generate_id("session")
    sessions.add(session_id, session)
    logger.info(f"Session {session_id} opened for deck {req.deck_id}")
    return _session_view(session_id, session, config)


@app.get("/sessions/{session_id}", response_model=SessionView)
async def get_session(
    session_id: str,
    config: AppConfig = Depends(get_config),
    sessions: SessionRegistry = Depends(get_sessions),
):
    return _session_view(session_id, _lookup(sessions, session_id), config)


@app.post("/sessions/{session_id}/grade", response_model=GradeResponse)
async def grade_card(
    session_id: str,
    req: GradeRequest,
    config: AppConfig = Depends(get_config),
    sessions: SessionRegistry = Depends(get_sessions),
):
    """
    Grade the current card. On a store failure (503) the session is unchanged
    and the same grade may be retried.
    """
    session = _lookup(sessions, session_id)
    outcome = await session.apply_grade(Grade(req.grade))
    if outcome is None:
        raise HTTPException(status_code=409, detail="Session has no current card")

    return GradeResponse(
        feedback=outcome.feedback,
        promoted=outcome.promoted,
        rescheduled=outcome.schedule is not None,
        session=_session_view(session_id, session, config),
    )


@app.delete("/sessions/{session_id}")
async def abandon_session(
    session_id: str, sessions: SessionRegistry = Depends(get_sessions)
):
    """Discard a session's in-memory state."""
    if not sessions.remove(session_id):
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    logger.info(f"Session {session_id} abandoned")
    return {"ok": True}


@app.get("/cards/{card_id}/preview", response_model=PreviewResponse)
async def preview_card(
    card_id: str,
    store: CardStore = Depends(get_store),
    config: AppConfig = Depends(get_config),
):
    card = await store.get_card(card_id)
    if card is None:
        raise HTTPException(status_code=404, detail=f"Card not found: {card_id}")
    return PreviewResponse(card_id=card_id, previews=_previews(card, config))

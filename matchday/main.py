"""
Matchday Live - Main FastAPI Application
Operator console API for live match updates, plus the public live feed
"""
import json
import logging
from contextlib import asynccontextmanager
from typing import Iterator, Optional

from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.orm import Session

from config.settings import Settings, settings as default_settings
from matchday import crud
from matchday.exceptions import (
    ConflictError,
    FeedConnectionError,
    GenerationError,
    MatchdayError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from matchday.live_match import MatchChange, MatchStatus, PlayerRole, follow_match
from matchday.schemas import (
    EventLog,
    FeedFrame,
    LineupUpdate,
    LiveEventOut,
    LiveEventRequest,
    MatchCreate,
    MatchList,
    MatchOut,
    PlayerCreate,
    PlayerOut,
    PostEventResponse,
    PreviewResponse,
)
from matchday.services import LiveServices, build_services

load_dotenv()

# Version tracking
APP_VERSION = "v1.0.0"
APP_NAME = "Matchday Live"

logger = logging.getLogger("main")

# Most specific first
ERROR_STATUS = [
    (ConflictError, 409),
    (ValidationError, 422),
    (NotFoundError, 404),
    (GenerationError, 502),
    (FeedConnectionError, 503),
    (PersistenceError, 503),
]


def status_for(error: MatchdayError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return 500


def error_body(error: MatchdayError) -> dict:
    body = {"detail": error.message, "category": error.category}
    if isinstance(error, ValidationError):
        body["field"] = error.field
    if isinstance(error, GenerationError) and error.reason:
        body["reason"] = error.reason
    return body


# ===== DEPENDENCIES =====

def get_services(request: Request) -> LiveServices:
    return request.app.state.services


def get_db(services: LiveServices = Depends(get_services)) -> Iterator[Session]:
    """
    Get database session - use in FastAPI dependencies
    Yields a session and closes it when done
    """
    db = services.session_factory()
    try:
        yield db
    finally:
        db.close()


router = APIRouter()


@router.get("/health")
def health_check(services: LiveServices = Depends(get_services)):
    """Health check endpoint."""
    return {
        "status": "ok",
        "generator": services.generator.provider_name,
        "subscribers": services.feed.subscriber_count(),
    }


@router.get("/version")
def version_info():
    """Version information endpoint."""
    return {"name": APP_NAME, "version": APP_VERSION, "full": f"{APP_NAME} {APP_VERSION}"}


# ===== MATCHES =====

@router.post("/api/matches", response_model=MatchOut, status_code=201)
def create_match(
    body: MatchCreate,
    db: Session = Depends(get_db),
    services: LiveServices = Depends(get_services),
):
    """Schedule a match. It starts UPCOMING at 0-0."""
    row = crud.create_match(
        db,
        club_name=services.settings.club_name,
        opponent=body.opponent,
        venue=body.venue,
        competition=body.competition,
        scheduled_at=body.scheduled_at,
        is_home=body.is_home,
        opponent_logo_url=body.opponent_logo_url,
        starting_xi=[p.to_ref() for p in body.starting_xi],
        substitutes=[p.to_ref() for p in body.substitutes],
    )
    return MatchOut.from_projection(crud.to_match_projection(row))


@router.get("/api/matches", response_model=MatchList)
def list_matches(
    status: Optional[str] = Query(None, description="UPCOMING, LIVE or FT"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """List matches, most recently scheduled first."""
    status_filter = None
    if status:
        try:
            status_filter = MatchStatus(status.upper())
        except ValueError:
            raise ValidationError("status", f"unknown status {status!r}")
    rows = crud.get_matches(db, status=status_filter, skip=skip, limit=limit)
    matches = [MatchOut.from_projection(crud.to_match_projection(row)) for row in rows]
    return MatchList(count=len(matches), matches=matches)


@router.get("/api/matches/{match_id}", response_model=MatchOut)
def get_match(match_id: int, db: Session = Depends(get_db)):
    return MatchOut.from_projection(crud.get_match(db, match_id))


@router.put("/api/matches/{match_id}/lineup", response_model=MatchOut)
def update_lineup(
    match_id: int,
    body: LineupUpdate,
    db: Session = Depends(get_db),
    services: LiveServices = Depends(get_services),
):
    """Replace the lineup before kickoff."""
    row = crud.update_lineup(
        db,
        match_id,
        starting_xi=[p.to_ref() for p in body.starting_xi],
        substitutes=[p.to_ref() for p in body.substitutes],
    )
    match = crud.to_match_projection(row)
    services.feed.publish(MatchChange(match=match))
    return MatchOut.from_projection(match)


@router.delete("/api/matches/{match_id}", response_model=MatchOut)
def delete_match(match_id: int, services: LiveServices = Depends(get_services)):
    """Delete a match and its event log. Open feeds for it end."""
    return MatchOut.from_projection(services.updates.delete_match(match_id))


# ===== PLAYERS =====

@router.post("/api/players", response_model=PlayerOut, status_code=201)
def create_player(body: PlayerCreate, db: Session = Depends(get_db)):
    try:
        role = PlayerRole(body.role)
    except ValueError:
        raise ValidationError("role", f"unknown role {body.role!r}")
    return crud.create_player(db, body.name, role=role, position=body.position, number=body.number)


@router.get("/api/players", response_model=list[PlayerOut])
def list_players(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Roster with season stats, top scorers first."""
    return crud.get_players(db, skip=skip, limit=limit)


# ===== LIVE EVENTS =====

@router.post("/api/matches/{match_id}/events", response_model=PostEventResponse, status_code=201)
def post_event(
    match_id: int,
    body: LiveEventRequest,
    response: Response,
    services: LiveServices = Depends(get_services),
):
    """
    Post a live update.

    Validates the selection, generates the commentary line, and commits the
    score/status change with the event in one transaction. A resubmission
    with the same submission_key returns the original event with 200.
    """
    result = services.updates.post_event(
        match_id,
        body.to_selection(),
        expected_version=body.expected_version,
        submission_key=body.submission_key,
    )
    if not result.created:
        response.status_code = 200
    return PostEventResponse(
        created=result.created,
        match=MatchOut.from_projection(result.match),
        event=LiveEventOut.from_event(result.event),
    )


@router.post("/api/matches/{match_id}/events/preview", response_model=PreviewResponse)
def preview_event(
    match_id: int,
    body: LiveEventRequest,
    services: LiveServices = Depends(get_services),
):
    """Generate the commentary line for a selection without publishing it."""
    composed = services.updates.preview(match_id, body.to_selection())
    return PreviewResponse(
        kind=composed.draft.kind.value,
        text=composed.text,
        generated=composed.generated,
        score=composed.draft.score.display,
        status=composed.draft.status.value,
    )


@router.get("/api/matches/{match_id}/events", response_model=EventLog)
def list_events(
    match_id: int,
    limit: Optional[int] = Query(None, ge=1, le=500),
    services: LiveServices = Depends(get_services),
):
    """Event log, newest first."""
    snapshot = services.reader.snapshot(match_id, limit=limit)
    events = [LiveEventOut.from_event(e) for e in snapshot.events]
    return EventLog(match_id=match_id, count=len(events), events=events)


def _sse(event: str, data: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


def stream_feed(services: LiveServices, match_id: int) -> Iterator[str]:
    """Server-sent events: one snapshot frame per change, comments as heartbeats."""
    frames = follow_match(
        services.reader,
        match_id,
        heartbeat_seconds=services.settings.feed_heartbeat_seconds,
        max_attempts=services.settings.feed_reconnect_attempts,
    )
    try:
        for snapshot in frames:
            if snapshot is None:
                yield ": keep-alive\n\n"
                continue
            yield _sse("snapshot", FeedFrame.from_snapshot(snapshot).model_dump(mode="json"))
    except MatchdayError as e:
        logger.warning(f"Live feed for match {match_id} ended: {e.message}")
        yield _sse("error", error_body(e))
        return
    yield _sse("end", {"matchId": match_id})


@router.get("/api/matches/{match_id}/feed")
def live_feed(match_id: int, services: LiveServices = Depends(get_services)):
    """Subscribe to a match: initial snapshot, then one frame per committed change."""
    services.reader.snapshot(match_id, limit=1)
    return StreamingResponse(
        stream_feed(services, match_id),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


# ===== APP =====

def create_app(settings: Optional[Settings] = None, services: Optional[LiveServices] = None) -> FastAPI:
    """
    Build the application.

    Pass ``services`` to run against pre-built pipeline objects (tests do);
    otherwise they are built from ``settings`` at startup and closed at
    shutdown.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = services is None
        app.state.services = services or build_services(settings)
        try:
            yield
        finally:
            if owned:
                app.state.services.close()

    app = FastAPI(
        title=APP_NAME,
        description="Live match updates with generated commentary",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    @app.exception_handler(MatchdayError)
    async def matchday_error_handler(request: Request, exc: MatchdayError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=status_code, content=error_body(exc))

    app.include_router(router)
    return app


logging.basicConfig(
    level=default_settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()

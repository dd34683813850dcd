"""
CRUD operations (Create, Read, Update, Delete)
Match administration, roster, and event-log queries; ORM <-> domain mapping
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from matchday import models
from matchday.exceptions import NotFoundError, PersistenceError, ValidationError
from matchday.live_match.models import (
    EventKind,
    LiveEvent,
    MatchProjection,
    MatchStatus,
    PlayerRef,
    PlayerRole,
    Score,
    payload_from_dict,
)
from matchday.utils.helpers import safe_strip

logger = logging.getLogger("crud")


# ===== MAPPING =====

def refs_from_json(items: Optional[Iterable[Dict[str, Any]]]) -> List[PlayerRef]:
    return [PlayerRef.from_dict(item) for item in (items or [])]


def refs_to_json(refs: Iterable[PlayerRef]) -> List[Dict[str, Any]]:
    return [ref.to_dict() for ref in refs]


def to_match_projection(row: models.Match) -> MatchProjection:
    """
    Build the domain projection from a match row
    """
    return MatchProjection(
        id=row.id,
        opponent=row.opponent,
        home_team=row.home_team,
        away_team=row.away_team,
        venue=row.venue,
        competition=row.competition,
        scheduled_at=row.scheduled_at,
        status=MatchStatus(row.status),
        score=Score(row.home_score, row.away_score),
        version=row.version,
        is_home=row.is_home,
        opponent_logo_url=row.opponent_logo_url,
        starting_xi=refs_from_json(row.starting_xi),
        substitutes=refs_from_json(row.substitutes),
        active_players=refs_from_json(row.active_players),
        used_substitutes=refs_from_json(row.used_substitutes),
        kickoff_time=row.kickoff_time,
        first_half_end_time=row.first_half_end_time,
        second_half_start_time=row.second_half_start_time,
    )


def to_live_event(row: models.LiveEvent) -> LiveEvent:
    """
    Build the immutable domain event from an event row
    """
    kind = EventKind(row.type)
    home, _, away = row.score.partition(" - ")
    return LiveEvent(
        id=row.event_id,
        match_id=row.match_id,
        kind=kind,
        text=row.text,
        score=Score(int(home), int(away)),
        timestamp=row.timestamp,
        sequence=row.id,
        minute=row.minute,
        team_name=row.team_name,
        payload=payload_from_dict(kind, row.payload),
    )


# ===== MATCHES =====

def _check_disjoint(starting_xi: List[PlayerRef], substitutes: List[PlayerRef]):
    starters = {p.id for p in starting_xi}
    if len(starters) != len(starting_xi):
        raise ValidationError("starting_xi", "lists a player twice")
    bench = {p.id for p in substitutes}
    if len(bench) != len(substitutes):
        raise ValidationError("substitutes", "lists a player twice")
    overlap = starters & bench
    if overlap:
        raise ValidationError("substitutes", f"players {sorted(overlap)} are also in the starting XI")


def create_match(
    db: Session,
    club_name: str,
    opponent: str,
    venue: str,
    competition: str,
    scheduled_at: datetime,
    is_home: bool = True,
    opponent_logo_url: Optional[str] = None,
    starting_xi: Optional[List[PlayerRef]] = None,
    substitutes: Optional[List[PlayerRef]] = None,
) -> models.Match:
    """
    Create an UPCOMING match at 0-0; active players start as the starting XI
    """
    opponent = safe_strip(opponent)
    if not opponent:
        raise ValidationError("opponent", "is required")
    starting_xi = starting_xi or []
    substitutes = substitutes or []
    _check_disjoint(starting_xi, substitutes)

    row = models.Match(
        opponent=opponent,
        opponent_logo_url=opponent_logo_url,
        venue=safe_strip(venue),
        competition=safe_strip(competition),
        scheduled_at=scheduled_at,
        is_home=is_home,
        home_team=club_name if is_home else opponent,
        away_team=opponent if is_home else club_name,
        status=MatchStatus.UPCOMING.value,
        home_score=0,
        away_score=0,
        version=1,
        starting_xi=refs_to_json(starting_xi),
        substitutes=refs_to_json(substitutes),
        active_players=refs_to_json(starting_xi),
        used_substitutes=[],
    )
    try:
        db.add(row)
        db.commit()
        db.refresh(row)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to create match against {opponent}: {e}")
        raise PersistenceError("Failed to create match") from e

    logger.info(f"Created match {row.id}: {row.home_team} vs {row.away_team}")
    return row


def get_match_row(db: Session, match_id: int) -> Optional[models.Match]:
    """
    Get a specific match by ID
    """
    return db.query(models.Match).filter(models.Match.id == match_id).first()


def get_match(db: Session, match_id: int) -> MatchProjection:
    """
    Get a match projection, raising NotFoundError if it does not exist
    """
    row = get_match_row(db, match_id)
    if row is None:
        raise NotFoundError(f"Match {match_id} not found")
    return to_match_projection(row)


def get_matches(
    db: Session,
    status: Optional[MatchStatus] = None,
    skip: int = 0,
    limit: int = 100
) -> List[models.Match]:
    """
    Get matches, most recently scheduled first
    - status: filter by UPCOMING / LIVE / FT
    """
    query = db.query(models.Match).order_by(desc(models.Match.scheduled_at))

    if status:
        query = query.filter(models.Match.status == status.value)

    return query.offset(skip).limit(limit).all()


def update_lineup(
    db: Session,
    match_id: int,
    starting_xi: List[PlayerRef],
    substitutes: List[PlayerRef],
) -> models.Match:
    """
    Replace the starting XI and bench of an UPCOMING match
    Active players are reset to the new starting XI
    """
    row = get_match_row(db, match_id)
    if row is None:
        raise NotFoundError(f"Match {match_id} not found")
    if row.status != MatchStatus.UPCOMING.value:
        raise ValidationError("status", "the lineup can only be changed before kickoff")
    _check_disjoint(starting_xi, substitutes)

    row.starting_xi = refs_to_json(starting_xi)
    row.substitutes = refs_to_json(substitutes)
    row.active_players = refs_to_json(starting_xi)
    row.used_substitutes = []
    row.version = row.version + 1
    try:
        db.commit()
        db.refresh(row)
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to update lineup for match {match_id}") from e
    return row


def delete_match(db: Session, match_id: int) -> MatchProjection:
    """
    Delete a match; its event log goes with it
    Returns the projection as it was just before deletion
    """
    row = get_match_row(db, match_id)
    if row is None:
        raise NotFoundError(f"Match {match_id} not found")
    projection = to_match_projection(row)
    try:
        db.delete(row)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to delete match {match_id}") from e
    logger.info(f"Deleted match {match_id} and its event log")
    return projection


# ===== LIVE EVENTS =====

def get_match_events(db: Session, match_id: int, limit: Optional[int] = None) -> List[LiveEvent]:
    """
    Get a match's event log, newest first
    Ties on the timestamp fall back to insertion order
    """
    query = (
        db.query(models.LiveEvent)
        .filter(models.LiveEvent.match_id == match_id)
        .order_by(desc(models.LiveEvent.timestamp), desc(models.LiveEvent.id))
    )
    if limit:
        query = query.limit(limit)
    return [to_live_event(row) for row in query.all()]


def get_event_by_submission_key(
    db: Session,
    match_id: int,
    submission_key: str
) -> Optional[models.LiveEvent]:
    """
    Get the event committed under a client submission key, if any
    """
    return (
        db.query(models.LiveEvent)
        .filter(
            models.LiveEvent.match_id == match_id,
            models.LiveEvent.submission_key == submission_key,
        )
        .first()
    )


# ===== PLAYERS =====

def create_player(
    db: Session,
    name: str,
    role: PlayerRole = PlayerRole.PLAYER,
    position: Optional[str] = None,
    number: Optional[int] = None,
) -> models.Player:
    """
    Add a roster member
    """
    name = safe_strip(name)
    if not name:
        raise ValidationError("name", "is required")
    row = models.Player(name=name, role=role.value, position=position, number=number)
    try:
        db.add(row)
        db.commit()
        db.refresh(row)
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to create player {name}") from e
    return row


def get_players(db: Session, skip: int = 0, limit: int = 100) -> List[models.Player]:
    """
    Get the roster, top scorers first
    """
    return (
        db.query(models.Player)
        .order_by(desc(models.Player.goals), models.Player.name)
        .offset(skip)
        .limit(limit)
        .all()
    )


def get_player_by_id(db: Session, player_id: int) -> Optional[models.Player]:
    """
    Get a specific player by ID
    """
    return db.query(models.Player).filter(models.Player.id == player_id).first()


def player_ref(row: models.Player) -> PlayerRef:
    """
    Capture a roster member by value for lineups and events
    """
    return PlayerRef(id=str(row.id), name=row.name, role=PlayerRole(row.role))

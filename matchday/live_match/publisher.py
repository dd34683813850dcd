"""
Live update publisher: the single write path for match state.

One publish is one store transaction that
  1. compare-and-swaps the match projection (score, status, lineup, clock),
  2. applies roster stat increments,
  3. inserts exactly one LiveEvent with a store-assigned timestamp.
Either all of it commits or none of it does. Subscribers are notified only
after the commit.
"""
import logging
import threading
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from matchday import crud
from matchday import models as orm
from matchday.exceptions import (
    ConflictError,
    InvalidTransitionError,
    MatchdayError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from matchday.utils.helpers import safe_int, safe_strip, utc_now

from .composer import ComposedEvent
from .feed import ChangeFeed, MatchChange
from .models import (
    EventKind,
    EventPayload,
    GoalPayload,
    LiveEvent,
    MatchProjection,
    MatchStatus,
    PlayerRef,
    RedCardPayload,
    Score,
    SubstitutionPayload,
    TeamSide,
)

logger = logging.getLogger("live_match.publisher")


@dataclass(frozen=True)
class PublishRequest:
    """Everything the publisher writes for one event."""
    match_id: int
    kind: EventKind
    text: str
    score: Score
    status: MatchStatus
    payload: Optional[EventPayload] = None
    team_name: Optional[str] = None
    minute: Optional[int] = None
    expected_version: Optional[int] = None
    submission_key: Optional[str] = None

    @classmethod
    def from_composed(
        cls,
        composed: ComposedEvent,
        expected_version: Optional[int] = None,
        submission_key: Optional[str] = None,
    ) -> "PublishRequest":
        draft = composed.draft
        return cls(
            match_id=draft.match_id,
            kind=draft.kind,
            text=composed.text,
            score=draft.score,
            status=draft.status,
            payload=draft.payload,
            team_name=draft.team_name,
            minute=draft.minute,
            expected_version=expected_version,
            submission_key=submission_key,
        )


@dataclass(frozen=True)
class PublishResult:
    match: MatchProjection
    event: LiveEvent
    created: bool = True


class _DuplicateSubmission(Exception):
    """Internal: the submission key already has a committed event."""


class LiveUpdatePublisher:
    """
    Atomic score/status update plus event append.

    Usage:
        publisher = LiveUpdatePublisher(session_factory, feed)
        result = publisher.publish(PublishRequest(...))
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        feed: ChangeFeed,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._session_factory = session_factory
        self._feed = feed
        self._clock = clock
        # Commit and fan-out happen under one lock per match, so feed order is commit order
        self._match_locks: Dict[int, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()

    def publish(self, request: PublishRequest) -> PublishResult:
        """
        Commit one event and its projection change.

        Raises:
            ValidationError: negative score or empty text
            InvalidTransitionError: status backwards, or score down while LIVE
            NotFoundError: the match does not exist
            ConflictError: the match version moved under the caller
            PersistenceError: any storage-layer fault (nothing is committed)
        """
        self._check_request(request)
        with self._lock_for(request.match_id):
            return self._publish_locked(request)

    def _lock_for(self, match_id: int) -> threading.Lock:
        with self._locks_guard:
            return self._match_locks[match_id]

    def _publish_locked(self, request: PublishRequest) -> PublishResult:
        session = self._session_factory()
        try:
            with session.begin():
                match_row, event_row = self._write(session, request)
            match = crud.to_match_projection(match_row)
            event = crud.to_live_event(event_row)
        except _DuplicateSubmission:
            return self.find_submission(request.match_id, request.submission_key)
        except IntegrityError as e:
            if request.submission_key:
                # Lost a race with an identical resubmission
                existing = self.find_submission(request.match_id, request.submission_key)
                if existing is not None:
                    return existing
            logger.error(f"Integrity error publishing to match {request.match_id}: {e}")
            raise PersistenceError("Failed to post live update") from e
        except MatchdayError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Store error publishing to match {request.match_id}: {e}")
            raise PersistenceError("Failed to post live update") from e
        finally:
            session.close()

        logger.info(
            f"Published {event.kind.value} to match {match.id} "
            f"(score {event.score.display}, status {match.status.name}, v{match.version})"
        )
        self._feed.publish(MatchChange(match=match, event=event))
        return PublishResult(match=match, event=event, created=True)

    def find_submission(self, match_id: int, submission_key: str) -> Optional[PublishResult]:
        """The result already committed under ``submission_key``, if any."""
        try:
            with self._session_factory() as session:
                row = crud.get_event_by_submission_key(session, match_id, submission_key)
                if row is None:
                    return None
                event = crud.to_live_event(row)
                match = crud.get_match(session, match_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not read match {match_id}") from e
        logger.info(f"Submission {submission_key!r} already published to match {match_id}; returning event {event.id}")
        return PublishResult(match=match, event=event, created=False)

    # ========================================================================
    # Internal Methods
    # ========================================================================

    def _check_request(self, request: PublishRequest):
        if request.score.home < 0 or request.score.away < 0:
            raise ValidationError("score", "must not be negative")
        if not safe_strip(request.text):
            raise ValidationError("text", "must not be empty")

    def _write(self, session: Session, request: PublishRequest):
        row = session.get(orm.Match, request.match_id)
        if row is None:
            raise NotFoundError(f"Match {request.match_id} not found")

        if request.submission_key:
            existing = crud.get_event_by_submission_key(session, row.id, request.submission_key)
            if existing is not None:
                raise _DuplicateSubmission(request.submission_key)

        if request.expected_version is not None and row.version != request.expected_version:
            raise ConflictError(row.id, request.expected_version, row.version)

        current_status = MatchStatus(row.status)
        current_score = Score(row.home_score, row.away_score)
        self._check_transition(row.id, current_status, current_score, request)

        now = self._clock()
        # Ordering key never regresses within a match
        timestamp = max(now, row.last_event_at) if row.last_event_at else now

        values = {
            "home_score": request.score.home,
            "away_score": request.score.away,
            "status": request.status.value,
            "last_event_at": timestamp,
            "updated_at": now,
            "version": row.version + 1,
        }
        if request.kind is EventKind.MATCH_START:
            values["kickoff_time"] = timestamp
        elif request.kind is EventKind.HALF_TIME:
            values["first_half_end_time"] = timestamp
        elif request.kind is EventKind.SECOND_HALF_START:
            values["second_half_start_time"] = timestamp

        if isinstance(request.payload, SubstitutionPayload):
            values["active_players"] = self._swap_active(row.active_players, request.payload)
            values["used_substitutes"] = self._mark_used(row.used_substitutes, request.payload)

        result = session.execute(
            update(orm.Match)
            .where(orm.Match.id == row.id, orm.Match.version == row.version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError(row.id, row.version, None)

        self._apply_stats(session, row, request)

        event_row = orm.LiveEvent(
            event_id=uuid.uuid4().hex,
            match_id=row.id,
            type=request.kind.value,
            text=safe_strip(request.text),
            score=request.score.display,
            timestamp=timestamp,
            minute=request.minute,
            team_name=request.team_name,
            player_name=self._player_name(request.payload),
            payload=request.payload.to_dict() if request.payload else None,
            submission_key=request.submission_key,
        )
        session.add(event_row)
        session.flush()
        session.refresh(row)
        return row, event_row

    def _check_transition(
        self,
        match_id: int,
        status: MatchStatus,
        score: Score,
        request: PublishRequest,
    ):
        if not status.can_move_to(request.status):
            raise InvalidTransitionError(
                "status", f"match {match_id} cannot move from {status.name} to {request.status.name}"
            )
        if status is MatchStatus.UPCOMING and request.score != score:
            raise InvalidTransitionError("score", f"match {match_id} has not kicked off")
        if status is MatchStatus.LIVE and not request.score.never_below(score):
            raise InvalidTransitionError(
                "score", f"score for match {match_id} cannot go from {score.display} to {request.score.display}"
            )
        if status is MatchStatus.FULL_TIME and request.score != score:
            raise InvalidTransitionError("score", f"match {match_id} is over; the score is final")

    def _swap_active(self, active: Optional[List[Dict]], payload: SubstitutionPayload) -> List[Dict]:
        players = [p for p in (active or []) if str(p.get("id")) != payload.player_off.id]
        if not any(str(p.get("id")) == payload.player_on.id for p in players):
            players.append(payload.player_on.to_dict())
        return players

    def _mark_used(self, used: Optional[List[Dict]], payload: SubstitutionPayload) -> List[Dict]:
        used = list(used or [])
        if not any(str(p.get("id")) == payload.player_on.id for p in used):
            used.append(payload.player_on.to_dict())
        return used

    def _apply_stats(self, session: Session, row: orm.Match, request: PublishRequest):
        """Roster stat increments that ride along in the same transaction."""
        if request.kind is EventKind.MATCH_START:
            starter_ids = [safe_int(p.get("id")) for p in (row.starting_xi or [])]
            starter_ids = [pid for pid in starter_ids if pid is not None]
            if starter_ids:
                session.execute(
                    update(orm.Player)
                    .where(orm.Player.id.in_(starter_ids))
                    .values(appearances=orm.Player.appearances + 1)
                    .execution_options(synchronize_session=False)
                )
            return

        payload = request.payload
        if not isinstance(payload, GoalPayload):
            return
        club_side = TeamSide.HOME if row.is_home else TeamSide.AWAY
        if payload.side is not club_side:
            return
        self._bump(session, payload.scorer, goals=orm.Player.goals + 1)
        if payload.assist:
            self._bump(session, payload.assist, assists=orm.Player.assists + 1)

    def _bump(self, session: Session, ref: PlayerRef, **values):
        player_id = safe_int(ref.id)
        if player_id is None:
            return
        session.execute(
            update(orm.Player)
            .where(orm.Player.id == player_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    def _player_name(self, payload: Optional[EventPayload]) -> Optional[str]:
        if isinstance(payload, GoalPayload):
            return payload.scorer.name
        if isinstance(payload, RedCardPayload):
            return payload.player.name
        return None


"""
Live update service: Composer -> Generation -> Publisher for one submission.

This is what the operator-facing surface calls. It loads the match the
submission is composed against and pins the publish to that version, so a
concurrent update between read and write becomes a ConflictError instead
of a lost update.
"""
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from matchday import crud
from matchday.exceptions import ConflictError, PersistenceError

from .composer import ComposedEvent, EventComposer, EventSelection
from .feed import ChangeFeed, MatchChange
from .models import EventKind, MatchProjection
from .publisher import LiveUpdatePublisher, PublishRequest, PublishResult

logger = logging.getLogger("live_match.service")


class LiveUpdateService:
    """Stateless per submission; safe to share across requests."""

    def __init__(
        self,
        session_factory: sessionmaker,
        composer: EventComposer,
        publisher: LiveUpdatePublisher,
        feed: ChangeFeed,
    ):
        self._session_factory = session_factory
        self._composer = composer
        self._publisher = publisher
        self._feed = feed

    def _load(self, match_id: int, expected_version: Optional[int]) -> MatchProjection:
        try:
            with self._session_factory() as session:
                match = crud.get_match(session, match_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not read match {match_id}") from e
        if expected_version is not None and match.version != expected_version:
            logger.warning(
                f"Stale submission for match {match_id}: form at v{expected_version}, store at v{match.version}"
            )
            raise ConflictError(match_id, expected_version, match.version)
        return match

    def preview(self, match_id: int, selection: EventSelection) -> ComposedEvent:
        """Compose (and generate) without publishing anything."""
        match = self._load(match_id, None)
        return self._composer.compose(match, selection)

    def post_event(
        self,
        match_id: int,
        selection: EventSelection,
        expected_version: Optional[int] = None,
        submission_key: Optional[str] = None,
    ) -> PublishResult:
        """
        Validate, generate text, and publish atomically.

        Args:
            match_id: Target match
            selection: The operator's form values
            expected_version: Version the operator's form was rendered from
            submission_key: Client key that makes resubmission idempotent

        Raises:
            ValidationError, GenerationError, NotFoundError,
            ConflictError, PersistenceError
        """
        if submission_key:
            # A resubmission is answered before validating against the moved-on match
            existing = self._publisher.find_submission(match_id, submission_key)
            if existing is not None:
                return existing

        match = self._load(match_id, expected_version)
        composed = self._composer.compose(match, selection)
        request = PublishRequest.from_composed(
            composed,
            expected_version=match.version,
            submission_key=submission_key,
        )
        return self._publisher.publish(request)

    def start_match(self, match_id: int, minute: Optional[int] = None) -> PublishResult:
        """Kickoff: UPCOMING -> LIVE at 0-0 with a Match Start event."""
        return self.post_event(match_id, EventSelection(kind=EventKind.MATCH_START, minute=minute))

    def delete_match(self, match_id: int) -> MatchProjection:
        """Delete a match and its log, then end every open subscription to it."""
        try:
            with self._session_factory() as session:
                match = crud.delete_match(session, match_id)
        except SQLAlchemyError as e:
            logger.error(f"Store error deleting match {match_id}: {e}")
            raise PersistenceError(f"Failed to delete match {match_id}") from e
        self._feed.publish(MatchChange(match=match, deleted=True))
        return match

"""
Live feed reader: snapshot + change stream for any number of viewers.

A Subscription is an explicit handle. The caller owns its lifetime and
releases it with ``close()`` or by leaving its ``with`` block.
"""
import logging
from typing import Iterator, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from matchday import crud
from matchday.exceptions import FeedConnectionError, PersistenceError

from .feed import ChangeFeed, FeedChannel, MatchChange
from .models import FeedSnapshot, LiveEvent

logger = logging.getLogger("live_match.reader")


class Subscription:
    """
    One viewer's view of a match.

    The first ``next()`` returns the initial snapshot; every later call
    returns the snapshot after the next committed change. Delivery is
    at-least-once across reconnects, so events are de-duplicated by id.
    """

    def __init__(self, feed: ChangeFeed, channel: FeedChannel, initial: FeedSnapshot):
        self._feed = feed
        self._channel = channel
        self._current = initial
        self._seen: Set[str] = {event.id for event in initial.events}
        self._initial_pending = True
        self._closed = False

    @property
    def match_id(self) -> int:
        return self._channel.match_id

    @property
    def current(self) -> FeedSnapshot:
        return self._current

    @property
    def closed(self) -> bool:
        return self._closed or self._channel.closed

    def next(self, timeout: Optional[float] = None) -> Optional[FeedSnapshot]:
        """
        Wait for the next snapshot.

        Returns None on timeout, or once the subscription is closed (the
        match was deleted or ``close()`` was called).

        Raises:
            FeedConnectionError: the subscription was dropped; resubscribe
        """
        if self._initial_pending:
            self._initial_pending = False
            return self._current

        while not self.closed:
            change = self._channel.get(timeout)
            if change is None:
                return None
            if change.deleted:
                self.close()
                return None
            if self._apply(change):
                return self._current
        return None

    def _apply(self, change: MatchChange) -> bool:
        """Fold a change into the current snapshot. False if nothing changed."""
        match = self._current.match
        changed = False
        if change.match.version > match.version:
            match = change.match
            changed = True

        events = self._current.events
        event = change.event
        if event is not None and event.id not in self._seen:
            self._seen.add(event.id)
            events = _insert_newest_first(events, event)
            changed = True

        if changed:
            self._current = FeedSnapshot(match=match, events=events)
        return changed

    def __iter__(self) -> Iterator[FeedSnapshot]:
        while not self.closed:
            snapshot = self.next()
            if snapshot is not None:
                yield snapshot

    def close(self):
        if not self._closed:
            self._closed = True
            self._feed.close_channel(self._channel)
            logger.debug(f"Closed subscription for match {self.match_id}")

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def _insert_newest_first(events: List[LiveEvent], event: LiveEvent) -> List[LiveEvent]:
    key = event.ordering_key
    for index, existing in enumerate(events):
        if key > existing.ordering_key:
            return events[:index] + [event] + events[index:]
    return events + [event]


class LiveFeedReader:
    """
    Read side of the pipeline.

    Usage:
        with reader.subscribe(match_id) as subscription:
            for snapshot in subscription:
                render(snapshot)
    """

    def __init__(self, session_factory: sessionmaker, feed: ChangeFeed):
        self._session_factory = session_factory
        self._feed = feed

    def snapshot(self, match_id: int, limit: Optional[int] = None) -> FeedSnapshot:
        """
        Current projection and event log, newest first.

        Raises:
            NotFoundError: the match does not exist
            PersistenceError: the store could not be read
        """
        try:
            with self._session_factory() as session:
                match = crud.get_match(session, match_id)
                events = crud.get_match_events(session, match_id, limit=limit)
        except SQLAlchemyError as e:
            logger.error(f"Failed to read feed for match {match_id}: {e}")
            raise PersistenceError(f"Could not read match {match_id}") from e
        return FeedSnapshot(match=match, events=events)

    def subscribe(self, match_id: int) -> Subscription:
        """
        Open a subscription. The channel is opened before the snapshot is
        read, so no change committed in between can be missed.

        Raises:
            NotFoundError: the match does not exist
            FeedConnectionError: the feed is not accepting subscribers
        """
        channel = self._feed.open_channel(match_id)
        try:
            initial = self.snapshot(match_id)
        except Exception:
            self._feed.close_channel(channel)
            raise
        logger.info(f"Subscribed to match {match_id} ({len(initial.events)} events in snapshot)")
        return Subscription(self._feed, channel, initial)


def follow_match(
    reader: LiveFeedReader,
    match_id: int,
    heartbeat_seconds: float = 15.0,
    max_attempts: int = 5,
) -> Iterator[Optional[FeedSnapshot]]:
    """
    Follow a match across dropped subscriptions.

    Yields snapshots, and None whenever ``heartbeat_seconds`` pass without a
    change. Opening a subscription is retried with exponential backoff; a
    dropped subscription is reopened, up to ``max_attempts`` drops in a row
    without a delivered update. Ends when the match is deleted.
    """
    open_subscription = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=10),
        retry=retry_if_exception_type(FeedConnectionError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    drops = 0
    while True:
        subscription = open_subscription(reader.subscribe, match_id)
        try:
            with subscription:
                yield subscription.next()
                while not subscription.closed:
                    snapshot = subscription.next(timeout=heartbeat_seconds)
                    if snapshot is not None:
                        drops = 0
                    yield snapshot
            return
        except FeedConnectionError as e:
            drops += 1
            if drops >= max_attempts:
                logger.error(f"Giving up on match {match_id} feed after {drops} drops: {e}")
                raise
            logger.warning(f"Feed for match {match_id} dropped ({e}); resubscribing")

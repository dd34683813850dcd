"""
Push notifications for newly published live events.

The dispatcher listens on the change feed, so it only ever sees committed
events. Delivery goes through a PushSink; which devices receive the
message is the sink's concern.
"""
import logging
from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Dict, Optional, Protocol

import requests

from .feed import MatchChange
from .models import EventKind, LiveEvent

logger = logging.getLogger("live_match.notifications")


@dataclass(frozen=True)
class PushMessage:
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"notification": {"title": self.title, "body": self.body}, "data": self.data}


def build_push_message(match_id: int, event: LiveEvent) -> Optional[PushMessage]:
    """
    Title and body for an event, or None when it should not be pushed.

    Info updates are never pushed; other kinds without a dedicated message
    are pushed as a generic update when they carry text.
    """
    team = event.team_name or "Team"
    score = event.score.display

    if event.kind is EventKind.GOAL:
        title = "⚽ GOAL!"
        body = f"{event.player_name or 'Unknown Player'} scores for {team} - {score}"
    elif event.kind is EventKind.RED_CARD:
        title = "🟥 Red Card"
        body = f"{event.player_name or 'Player'} - {team} down to 10 men"
    elif event.kind is EventKind.MATCH_END:
        title = "✅ Full Time"
        body = score
    elif event.kind is not EventKind.INFO and event.text:
        title = "Match Update"
        body = event.text
    else:
        return None

    data = {"matchId": str(match_id), "eventId": event.id, "url": f"/matches/{match_id}"}
    return PushMessage(title=title, body=body, data=data)


class PushSink(Protocol):
    """Anything that can deliver a push message."""

    def send(self, message: PushMessage) -> None:
        ...


class LoggingPushSink:
    """Writes messages to the log. Used when no delivery endpoint is set."""

    def send(self, message: PushMessage) -> None:
        logger.info(f"Push: {message.title} | {message.body}")


class WebhookPushSink:
    """POSTs each message as JSON to a delivery endpoint."""

    def __init__(self, url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()

    def send(self, message: PushMessage) -> None:
        response = self._session.post(self.url, json=message.to_dict(), timeout=self.timeout)
        response.raise_for_status()


class NotificationDispatcher:
    """
    Feed listener that turns new events into push messages.

    With an executor, delivery runs off the publishing thread.
    """

    def __init__(self, sink: PushSink, enabled: bool = True, executor: Optional[Executor] = None):
        self.sink = sink
        self.enabled = enabled
        self._executor = executor

    def handle(self, change: MatchChange):
        if not self.enabled or change.deleted or change.event is None:
            return
        message = build_push_message(change.match_id, change.event)
        if message is None:
            logger.debug(f"Skipping notification for {change.event.kind.value} on match {change.match_id}")
            return
        if self._executor is not None:
            future = self._executor.submit(self._deliver, change.match_id, message)
            future.add_done_callback(partial(_log_failure, change.match_id))
        else:
            self._deliver(change.match_id, message)

    def _deliver(self, match_id: int, message: PushMessage):
        try:
            self.sink.send(message)
        except requests.RequestException as e:
            logger.error(f"Push delivery failed for match {match_id}: {e}")
            return
        logger.info(f"Live event notification sent for match {match_id}: {message.title}")


def _log_failure(match_id: int, future: Future):
    """Surface sink errors that would otherwise stay on an uncollected future."""
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error(f"Push sink raised for match {match_id}: {error!r}")

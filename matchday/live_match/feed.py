"""
In-process change feed for committed match updates.

The publisher pushes one MatchChange per commit; every open channel for
that match receives it in commit order. Listeners (such as the push
notification trigger) are called once per change.
"""
import logging
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional, Set

from matchday.exceptions import FeedConnectionError

from .models import LiveEvent, MatchProjection

logger = logging.getLogger("live_match.feed")


@dataclass(frozen=True)
class MatchChange:
    """One committed change to a match."""
    match: MatchProjection
    event: Optional[LiveEvent] = None
    deleted: bool = False

    @property
    def match_id(self) -> int:
        return self.match.id


class FeedChannel:
    """
    Bounded per-subscriber queue.

    A channel that falls more than ``maxsize`` changes behind is failed
    rather than silently skipping changes.
    """

    def __init__(self, match_id: int, maxsize: int):
        self.match_id = match_id
        self._maxsize = maxsize
        self._items: Deque[MatchChange] = deque()
        self._cond = threading.Condition()
        self._error: Optional[FeedConnectionError] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def push(self, change: MatchChange) -> bool:
        """Queue a change. Returns False if the channel can no longer accept it."""
        with self._cond:
            if self._closed or self._error is not None:
                return False
            if len(self._items) >= self._maxsize:
                self._error = FeedConnectionError(
                    f"Subscriber for match {self.match_id} fell {self._maxsize} changes behind"
                )
                self._items.clear()
                self._cond.notify_all()
                return False
            self._items.append(change)
            self._cond.notify_all()
            return True

    def fail(self, error: FeedConnectionError):
        with self._cond:
            if self._error is None:
                self._error = error
            self._cond.notify_all()

    def close(self):
        with self._cond:
            self._closed = True
            self._items.clear()
            self._cond.notify_all()

    def get(self, timeout: Optional[float] = None) -> Optional[MatchChange]:
        """
        Wait for the next change.

        Returns None on timeout or once the channel is closed.

        Raises:
            FeedConnectionError: if the channel was dropped
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                if self._error is not None:
                    raise self._error
                if self._closed:
                    return None
                if self._items:
                    return self._items.popleft()
                if deadline is None:
                    self._cond.wait()
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return None
                    self._cond.wait(remaining)


class ChangeFeed:
    """
    Fan-out of committed changes to subscribers and listeners.

    Thread-safe. Delivery order per match equals the order in which the
    publisher calls ``publish``. The publisher holds a per-match lock from
    commit through ``publish``, so that is commit order.
    """

    def __init__(self, queue_size: int = 256):
        self._queue_size = queue_size
        self._lock = threading.Lock()
        self._channels: Dict[int, Set[FeedChannel]] = defaultdict(set)
        self._listeners: List[Callable[[MatchChange], None]] = []
        self._shut_down = False

    def open_channel(self, match_id: int) -> FeedChannel:
        with self._lock:
            if self._shut_down:
                raise FeedConnectionError("Live feed is shut down")
            channel = FeedChannel(match_id, self._queue_size)
            self._channels[match_id].add(channel)
        logger.debug(f"Opened channel for match {match_id}")
        return channel

    def close_channel(self, channel: FeedChannel):
        with self._lock:
            channels = self._channels.get(channel.match_id)
            if channels is not None:
                channels.discard(channel)
                if not channels:
                    del self._channels[channel.match_id]
        channel.close()

    def add_listener(self, listener: Callable[[MatchChange], None]):
        with self._lock:
            self._listeners.append(listener)

    def publish(self, change: MatchChange):
        """Deliver a committed change. Called after the store commit."""
        with self._lock:
            channels = list(self._channels.get(change.match_id, ()))
            listeners = list(self._listeners)

        dropped = [channel for channel in channels if not channel.push(change)]
        for channel in dropped:
            if not channel.closed:
                logger.warning(f"Dropping lagging subscriber for match {change.match_id}")
            self._forget(channel)

        if change.deleted:
            for channel in channels:
                self.close_channel(channel)

        for listener in listeners:
            try:
                listener(change)
            except Exception as e:
                logger.error(f"Feed listener {listener!r} failed for match {change.match_id}: {e}")

    def _forget(self, channel: FeedChannel):
        with self._lock:
            channels = self._channels.get(channel.match_id)
            if channels is not None:
                channels.discard(channel)
                if not channels:
                    del self._channels[channel.match_id]

    def disconnect(self, match_id: Optional[int] = None, reason: str = "Live feed connection lost"):
        """Fail open channels (all, or one match's) as a transport drop would."""
        with self._lock:
            if match_id is None:
                targets = [c for channels in self._channels.values() for c in channels]
                self._channels.clear()
            else:
                targets = list(self._channels.pop(match_id, ()))
        for channel in targets:
            channel.fail(FeedConnectionError(reason))
        if targets:
            logger.warning(f"Disconnected {len(targets)} subscriber(s): {reason}")

    def shutdown(self):
        """Close every channel and refuse new ones."""
        with self._lock:
            self._shut_down = True
            targets = [c for channels in self._channels.values() for c in channels]
            self._channels.clear()
        for channel in targets:
            channel.close()

    def subscriber_count(self, match_id: Optional[int] = None) -> int:
        with self._lock:
            if match_id is None:
                return sum(len(channels) for channels in self._channels.values())
            return len(self._channels.get(match_id, ()))

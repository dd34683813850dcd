"""
Live match pipeline: operator selection -> commentary -> atomic publish -> viewers.

Writes go through LiveUpdateService (composer + publisher); reads go
through LiveFeedReader snapshots and subscriptions.
"""
from .models import (
    EventKind,
    FeedSnapshot,
    GoalPayload,
    LiveEvent,
    MatchProjection,
    MatchStatus,
    PlayerRef,
    PlayerRole,
    RedCardPayload,
    Score,
    SubstitutionPayload,
    TeamSide,
)
from .composer import ComposedEvent, DraftEvent, EventComposer, EventSelection
from .feed import ChangeFeed, FeedChannel, MatchChange
from .publisher import LiveUpdatePublisher, PublishRequest, PublishResult
from .reader import LiveFeedReader, Subscription, follow_match
from .service import LiveUpdateService
from .notifications import (
    LoggingPushSink,
    NotificationDispatcher,
    PushMessage,
    PushSink,
    WebhookPushSink,
    build_push_message,
)

__all__ = [
    # Models
    "EventKind",
    "FeedSnapshot",
    "GoalPayload",
    "LiveEvent",
    "MatchProjection",
    "MatchStatus",
    "PlayerRef",
    "PlayerRole",
    "RedCardPayload",
    "Score",
    "SubstitutionPayload",
    "TeamSide",
    # Write path
    "ComposedEvent",
    "DraftEvent",
    "EventComposer",
    "EventSelection",
    "LiveUpdatePublisher",
    "PublishRequest",
    "PublishResult",
    "LiveUpdateService",
    # Read path
    "ChangeFeed",
    "FeedChannel",
    "MatchChange",
    "LiveFeedReader",
    "Subscription",
    "follow_match",
    # Notifications
    "LoggingPushSink",
    "NotificationDispatcher",
    "PushMessage",
    "PushSink",
    "WebhookPushSink",
    "build_push_message",
]

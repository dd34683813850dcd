"""
Tests for push notifications triggered by new live events.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from unittest.mock import MagicMock

import pytest
import requests

from matchday.exceptions import ValidationError
from matchday.live_match import (
    EventKind,
    EventSelection,
    GoalPayload,
    LiveEvent,
    MatchChange,
    NotificationDispatcher,
    PlayerRef,
    RedCardPayload,
    Score,
    TeamSide,
    WebhookPushSink,
    build_push_message,
)

from conftest import RecordingSink


def make_event(kind, text="Something happened", payload=None, team_name="Capital City FC", score=Score(1, 0)):
    return LiveEvent(
        id="abc123",
        match_id=7,
        kind=kind,
        text=text,
        score=score,
        timestamp=datetime(2026, 5, 2, 15, 30),
        sequence=1,
        team_name=team_name,
        payload=payload,
    )


class TestBuildPushMessage:

    def test_goal(self):
        payload = GoalPayload(side=TeamSide.HOME, scorer=PlayerRef(id="9", name="Starter 9"))
        message = build_push_message(7, make_event(EventKind.GOAL, payload=payload))

        assert message.title == "⚽ GOAL!"
        assert message.body == "Starter 9 scores for Capital City FC - 1 - 0"
        assert message.data == {"matchId": "7", "eventId": "abc123", "url": "/matches/7"}

    def test_red_card(self):
        payload = RedCardPayload(player=PlayerRef(id="4", name="Starter 4"))
        message = build_push_message(7, make_event(EventKind.RED_CARD, payload=payload))

        assert message.title == "🟥 Red Card"
        assert message.body == "Starter 4 - Capital City FC down to 10 men"

    def test_full_time(self):
        message = build_push_message(7, make_event(EventKind.MATCH_END, score=Score(2, 1)))

        assert message.title == "✅ Full Time"
        assert message.body == "2 - 1"

    def test_other_kinds_use_text(self):
        message = build_push_message(7, make_event(EventKind.HALF_TIME, text="Half time at the Park."))

        assert message.title == "Match Update"
        assert message.body == "Half time at the Park."

    def test_info_is_skipped(self):
        assert build_push_message(7, make_event(EventKind.INFO, team_name=None)) is None


class TestDispatcher:

    def test_published_events_are_pushed(self, services, sink, squad, live_match):
        services.updates.post_event(
            live_match.id,
            EventSelection(kind=EventKind.GOAL, team=TeamSide.HOME, scorer_id=squad["starters"][8].id),
        )
        services.updates.post_event(live_match.id, EventSelection(kind=EventKind.INFO, text="Drinks break"))

        titles = [m.title for m in sink.messages]
        # Kickoff, then the goal; the info update is not pushed
        assert titles == ["Match Update", "⚽ GOAL!"]

    def test_rejected_event_is_never_pushed(self, services, sink, live_match):
        sink.messages.clear()
        with pytest.raises(ValidationError):
            services.updates.post_event(live_match.id, EventSelection(kind=EventKind.MATCH_START))

        assert sink.messages == []

    def test_disabled_dispatcher_sends_nothing(self, live_match):
        sink = RecordingSink()
        dispatcher = NotificationDispatcher(sink, enabled=False)
        event = make_event(EventKind.MATCH_END)

        dispatcher.handle(MatchChange(match=live_match, event=event))

        assert sink.messages == []

    def test_delivery_failure_is_logged_not_raised(self, live_match):
        sink = MagicMock()
        sink.send.side_effect = requests.ConnectionError("push service down")
        dispatcher = NotificationDispatcher(sink)

        dispatcher.handle(MatchChange(match=live_match, event=make_event(EventKind.MATCH_END)))

        sink.send.assert_called_once()

    def test_background_sink_errors_are_logged(self, live_match, caplog):
        sink = MagicMock()
        sink.send.side_effect = ValueError("bad payload")

        with ThreadPoolExecutor(max_workers=1) as executor:
            dispatcher = NotificationDispatcher(sink, executor=executor)
            dispatcher.handle(MatchChange(match=live_match, event=make_event(EventKind.MATCH_END)))

        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert any("bad payload" in r.getMessage() for r in errors)


class TestWebhookPushSink:

    def test_posts_json(self):
        session = MagicMock()
        sink = WebhookPushSink("https://push.example.test/send", timeout=3, session=session)
        payload = GoalPayload(side=TeamSide.HOME, scorer=PlayerRef(id="9", name="Starter 9"))

        sink.send(build_push_message(7, make_event(EventKind.GOAL, payload=payload)))

        session.post.assert_called_once()
        args, kwargs = session.post.call_args
        assert args == ("https://push.example.test/send",)
        assert kwargs["timeout"] == 3
        assert kwargs["json"]["notification"]["title"] == "⚽ GOAL!"
        assert kwargs["json"]["data"]["matchId"] == "7"
        session.post.return_value.raise_for_status.assert_called_once()

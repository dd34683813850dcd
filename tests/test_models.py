"""
Unit tests for live match domain models.
"""
from datetime import datetime, timedelta, timezone

import pytest

from matchday.live_match import (
    EventKind,
    GoalPayload,
    LiveEvent,
    MatchStatus,
    PlayerRef,
    Score,
    SubstitutionPayload,
    TeamSide,
)
from matchday.live_match.models import payload_from_dict
from matchday.utils.helpers import utc_now


class TestMatchStatus:

    @pytest.mark.parametrize("current,target,allowed", [
        (MatchStatus.UPCOMING, MatchStatus.UPCOMING, True),
        (MatchStatus.UPCOMING, MatchStatus.LIVE, True),
        (MatchStatus.LIVE, MatchStatus.FULL_TIME, True),
        (MatchStatus.UPCOMING, MatchStatus.FULL_TIME, False),
        (MatchStatus.LIVE, MatchStatus.UPCOMING, False),
        (MatchStatus.FULL_TIME, MatchStatus.LIVE, False),
    ])
    def test_transitions(self, current, target, allowed):
        assert current.can_move_to(target) is allowed


class TestEventKind:

    @pytest.mark.parametrize("raw,kind", [
        ("Red Card", EventKind.RED_CARD),
        ("RED_CARD", EventKind.RED_CARD),
        ("match start", EventKind.MATCH_START),
        ("Goal", EventKind.GOAL),
        ("RedCard", EventKind.RED_CARD),
        ("MatchStart", EventKind.MATCH_START),
        ("MatchEnd", EventKind.MATCH_END),
        ("second_half start", EventKind.SECOND_HALF_START),
    ])
    def test_parse(self, raw, kind):
        assert EventKind.parse(raw) is kind

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            EventKind.parse("Corner")


class TestScore:

    def test_bump_and_display(self):
        assert Score(1, 0).bump(TeamSide.AWAY).display == "1 - 1"

    def test_never_below(self):
        assert Score(2, 1).never_below(Score(2, 0))
        assert not Score(1, 1).never_below(Score(2, 0))


class TestLiveEventDocument:

    def test_goal_document(self):
        event = LiveEvent(
            id="e1",
            match_id=1,
            kind=EventKind.GOAL,
            text="GOAL!",
            score=Score(1, 0),
            timestamp=datetime(2026, 5, 2, 15, 12, 30),
            sequence=4,
            minute=12,
            team_name="Capital City FC",
            payload=GoalPayload(
                side=TeamSide.HOME,
                scorer=PlayerRef(id="9", name="Starter 9"),
                assist=PlayerRef(id="10", name="Starter 10"),
            ),
        )

        doc = event.to_document()

        assert doc["type"] == "Goal"
        assert doc["score"] == "1 - 0"
        assert doc["timestamp"] == "2026-05-02T15:12:30Z"
        assert doc["playerName"] == "Starter 9"
        assert doc["assistPlayer"] == {"id": "10", "name": "Starter 10"}
        assert doc["subOffPlayer"] is None

    def test_info_document_has_no_players(self):
        event = LiveEvent(
            id="e2", match_id=1, kind=EventKind.INFO, text="Drinks break", score=Score(0, 0),
            timestamp=datetime(2026, 5, 2, 15, 30), sequence=5,
        )
        doc = event.to_document()
        assert doc["playerName"] is None
        assert doc["teamName"] is None

    def test_payload_round_trip_for_substitution(self):
        payload = SubstitutionPayload(
            player_off=PlayerRef(id="7", name="Starter 7"),
            player_on=PlayerRef(id="12", name="Sub 12"),
        )
        assert payload_from_dict(EventKind.SUBSTITUTION, payload.to_dict()) == payload


def test_utc_now_is_naive_utc():
    now = utc_now()
    assert now.tzinfo is None
    assert abs(now - datetime.now(timezone.utc).replace(tzinfo=None)) < timedelta(seconds=5)

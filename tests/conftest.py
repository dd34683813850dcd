"""
Shared fixtures: an in-memory store, a scripted text generator and a
recording push sink, wired through build_services.
"""
from datetime import datetime
from typing import List, Optional

import pytest

from config.settings import Settings
from matchday import crud
from matchday.generation import GenerationRequest, TextGenerator
from matchday.live_match import PushMessage
from matchday.services import build_services


class FakeGenerator(TextGenerator):
    """Returns a fixed line (or raises) and records every request."""

    def __init__(self, text: str = "What a moment at the ground!", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.requests: List[GenerationRequest] = []

    def generate(self, request: GenerationRequest) -> str:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.text

    @property
    def provider_name(self) -> str:
        return "fake"


class RecordingSink:
    def __init__(self):
        self.messages: List[PushMessage] = []

    def send(self, message: PushMessage) -> None:
        self.messages.append(message)


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        club_name="Capital City FC",
        database_url="sqlite://",
        anthropic_api_key=None,
        feed_heartbeat_seconds=0.05,
        feed_reconnect_attempts=3,
        push_notifications_enabled=True,
        push_webhook_url=None,
    )


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def services(test_settings, generator, sink):
    services = build_services(test_settings, generator=generator, push_sink=sink, background_push=False)
    yield services
    services.close()


@pytest.fixture
def squad(services):
    """Eleven starters and three substitutes on the roster."""
    with services.session_factory() as db:
        starters = [
            crud.player_ref(crud.create_player(db, f"Starter {n}", number=n)) for n in range(1, 12)
        ]
        subs = [
            crud.player_ref(crud.create_player(db, f"Sub {n}", number=n)) for n in range(12, 15)
        ]
    return {"starters": starters, "subs": subs}


@pytest.fixture
def match(services, squad):
    """An UPCOMING home match with the squad as its lineup."""
    with services.session_factory() as db:
        row = crud.create_match(
            db,
            club_name=services.settings.club_name,
            opponent="Rivals United",
            venue="Capital Park",
            competition="League",
            scheduled_at=datetime(2026, 5, 2, 15, 0),
            is_home=True,
            starting_xi=squad["starters"],
            substitutes=squad["subs"],
        )
        return crud.to_match_projection(row)


@pytest.fixture
def live_match(services, match):
    """The same match after kickoff."""
    return services.updates.start_match(match.id).match

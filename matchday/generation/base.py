"""Base text generator abstraction for live commentary.

A generator turns one structured match event into ONE display sentence.

Generators are ONLY given:
- The event type and the team it concerns
- Player names and scores that the operator already confirmed

Generators must NEVER:
- Invent players, minutes or scores that were not supplied
- Retry on their own (the operator decides whether to resubmit)
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from matchday.exceptions import GenerationError


@dataclass(frozen=True)
class GenerationRequest:
    """Structured event data handed to a generator."""
    event_type: str
    team_name: str
    opponent_name: Optional[str] = None
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    player_name: Optional[str] = None
    assist_player_name: Optional[str] = None
    sub_off_player_name: Optional[str] = None
    sub_on_player_name: Optional[str] = None

    def to_fields(self) -> Dict[str, Any]:
        """Fields in camelCase, dropping the ones not supplied."""
        camel = {
            "eventType": self.event_type,
            "teamName": self.team_name,
            "opponentName": self.opponent_name,
            "homeScore": self.home_score,
            "awayScore": self.away_score,
            "playerName": self.player_name,
            "assistPlayerName": self.assist_player_name,
            "subOffPlayerName": self.sub_off_player_name,
            "subOnPlayerName": self.sub_on_player_name,
        }
        return {k: v for k, v in camel.items() if v is not None}

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


_WHITESPACE = re.compile(r"\s+")
_QUOTES = "\"'“”‘’`"


def clean_sentence(raw: Optional[str]) -> str:
    """
    Reduce model output to a single display line.

    Strips code fences, wrapping quotes and "eventText:" style labels, keeps
    the first non-empty line. Raises GenerationError if nothing usable is left.
    """
    text = (raw or "").strip()

    if text.startswith("```"):
        lines = [line for line in text.split("\n") if not line.strip().startswith("```")]
        text = "\n".join(lines).strip()

    first_line = next((line.strip() for line in text.split("\n") if line.strip()), "")
    first_line = re.sub(r"^(event\s*text|eventText)\s*:\s*", "", first_line, flags=re.IGNORECASE)
    first_line = first_line.strip().strip(_QUOTES).strip()
    first_line = _WHITESPACE.sub(" ", first_line)

    if not first_line:
        raise GenerationError("Generator returned empty text", reason="empty")
    return first_line


class TextGenerator(ABC):
    """
    Abstract base class for commentary generators.

    Calling twice with the same request may return different text.
    """

    @abstractmethod
    def generate(self, request: GenerationRequest) -> str:
        """
        Produce one sentence for the event.

        Args:
            request: Structured event data

        Returns:
            Non-empty single-line text

        Raises:
            GenerationError: on any failure, including timeouts
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of this generator."""
        pass


class TemplateTextGenerator(TextGenerator):
    """
    Deterministic generator built on the commentary examples.

    Used when no model is configured, and in tests.
    """

    TEMPLATES = {
        "Goal": "GOAL for {teamName}! {playerName} finds the back of the net{assist}. The score is now {homeScore}-{awayScore}.",
        "Substitution": "Substitution for {teamName}: {subOnPlayerName} comes on to replace {subOffPlayerName}.",
        "Red Card": "RED CARD! {playerName} has been sent off, leaving {teamName} with 10 players.",
        "Match Start": "The match between {teamName} and {opponentName} has kicked off!",
        "Half Time": "The referee blows for half-time. Score is {teamName} {homeScore} - {awayScore} {opponentName}.",
        "Second Half Start": "The second half is underway!",
        "Match End": "The final whistle has blown! Full time score: {teamName} {homeScore} - {awayScore} {opponentName}.",
    }

    def generate(self, request: GenerationRequest) -> str:
        template = self.TEMPLATES.get(request.event_type)
        if template is None:
            raise GenerationError(
                f"No template for event type {request.event_type!r}", reason="unsupported"
            )

        fields = {
            "teamName": request.team_name,
            "opponentName": request.opponent_name or "the visitors",
            "homeScore": request.home_score if request.home_score is not None else 0,
            "awayScore": request.away_score if request.away_score is not None else 0,
            "playerName": request.player_name or "",
            "subOffPlayerName": request.sub_off_player_name or "",
            "subOnPlayerName": request.sub_on_player_name or "",
            "assist": f", assisted by {request.assist_player_name}" if request.assist_player_name else "",
        }
        return clean_sentence(template.format(**fields))

    @property
    def provider_name(self) -> str:
        return "template"

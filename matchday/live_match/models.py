"""
Data models for the live match pipeline.

These dataclasses are the canonical shape of a match projection and its
event log, independent of how the store persists them.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Union


class MatchStatus(Enum):
    """Lifecycle of a match. Transitions only move forward."""
    UPCOMING = "UPCOMING"
    LIVE = "LIVE"
    FULL_TIME = "FT"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    def can_move_to(self, other: "MatchStatus") -> bool:
        """Stay put or advance exactly one step."""
        return other.rank - self.rank in (0, 1)


_STATUS_RANK = {
    MatchStatus.UPCOMING: 0,
    MatchStatus.LIVE: 1,
    MatchStatus.FULL_TIME: 2,
}


class EventKind(Enum):
    """Types of live events. Values are the persisted ``type`` strings."""
    GOAL = "Goal"
    RED_CARD = "Red Card"
    SUBSTITUTION = "Substitution"
    INFO = "Info"
    MATCH_START = "Match Start"
    HALF_TIME = "Half Time"
    SECOND_HALF_START = "Second Half Start"
    MATCH_END = "Match End"

    @property
    def is_phase_change(self) -> bool:
        return self in (
            EventKind.MATCH_START,
            EventKind.HALF_TIME,
            EventKind.SECOND_HALF_START,
            EventKind.MATCH_END,
        )

    @classmethod
    def parse(cls, value: str) -> "EventKind":
        """
        Accept the persisted value ("Red Card"), the name ("RED_CARD") or
        the compact form ("RedCard"). Case, spaces and underscores are ignored.
        """
        try:
            return cls(value)
        except ValueError:
            pass
        key = _compact(value)
        for kind in cls:
            if key in (_compact(kind.name), _compact(kind.value)):
                return kind
        raise ValueError(f"Unknown event kind: {value!r}")


def _compact(value: str) -> str:
    return value.strip().upper().replace(" ", "").replace("_", "")


class PlayerRole(Enum):
    PLAYER = "Player"
    COACH = "Coach"
    STAFF = "Staff"


class TeamSide(Enum):
    HOME = "home"
    AWAY = "away"


@dataclass(frozen=True)
class PlayerRef:
    """A player captured by value, so old events survive roster edits."""
    id: str
    name: str
    role: PlayerRole = PlayerRole.PLAYER

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "role": self.role.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlayerRef":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            role=PlayerRole(data.get("role", PlayerRole.PLAYER.value)),
        )


@dataclass(frozen=True)
class Score:
    home: int = 0
    away: int = 0

    @property
    def display(self) -> str:
        """Format score as 'H - A'."""
        return f"{self.home} - {self.away}"

    def bump(self, side: TeamSide) -> "Score":
        if side is TeamSide.HOME:
            return Score(self.home + 1, self.away)
        return Score(self.home, self.away + 1)

    def never_below(self, other: "Score") -> bool:
        return self.home >= other.home and self.away >= other.away


# =============================================================================
# Event payloads (one variant per kind that carries structured data)
# =============================================================================

@dataclass(frozen=True)
class GoalPayload:
    kind: ClassVar[EventKind] = EventKind.GOAL
    side: TeamSide
    scorer: PlayerRef
    assist: Optional[PlayerRef] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "side": self.side.value,
            "scorer": self.scorer.to_dict(),
            "assist": self.assist.to_dict() if self.assist else None,
        }


@dataclass(frozen=True)
class SubstitutionPayload:
    kind: ClassVar[EventKind] = EventKind.SUBSTITUTION
    player_off: PlayerRef
    player_on: PlayerRef

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player_off": self.player_off.to_dict(),
            "player_on": self.player_on.to_dict(),
        }


@dataclass(frozen=True)
class RedCardPayload:
    kind: ClassVar[EventKind] = EventKind.RED_CARD
    player: PlayerRef

    def to_dict(self) -> Dict[str, Any]:
        return {"player": self.player.to_dict()}


EventPayload = Union[GoalPayload, SubstitutionPayload, RedCardPayload]


def payload_from_dict(kind: EventKind, data: Optional[Dict[str, Any]]) -> Optional[EventPayload]:
    """Rebuild the payload variant stored for an event of ``kind``."""
    if not data:
        return None
    if kind is EventKind.GOAL:
        assist = data.get("assist")
        return GoalPayload(
            side=TeamSide(data["side"]),
            scorer=PlayerRef.from_dict(data["scorer"]),
            assist=PlayerRef.from_dict(assist) if assist else None,
        )
    if kind is EventKind.SUBSTITUTION:
        return SubstitutionPayload(
            player_off=PlayerRef.from_dict(data["player_off"]),
            player_on=PlayerRef.from_dict(data["player_on"]),
        )
    if kind is EventKind.RED_CARD:
        return RedCardPayload(player=PlayerRef.from_dict(data["player"]))
    return None


# =============================================================================
# Event log and projection
# =============================================================================

@dataclass(frozen=True)
class LiveEvent:
    """One immutable entry in a match's event log."""
    id: str
    match_id: int
    kind: EventKind
    text: str
    score: Score
    timestamp: datetime
    sequence: int
    minute: Optional[int] = None
    team_name: Optional[str] = None
    payload: Optional[EventPayload] = None

    @property
    def ordering_key(self) -> tuple:
        return (self.timestamp, self.sequence)

    @property
    def player_name(self) -> Optional[str]:
        """Primary player involved (scorer or carded player)."""
        if isinstance(self.payload, GoalPayload):
            return self.payload.scorer.name
        if isinstance(self.payload, RedCardPayload):
            return self.payload.player.name
        return None

    def to_document(self) -> Dict[str, Any]:
        """The persisted event shape consumed by downstream triggers."""
        doc: Dict[str, Any] = {
            "id": self.id,
            "type": self.kind.value,
            "text": self.text,
            "score": self.score.display,
            "timestamp": self.timestamp.isoformat() + "Z",
            "minute": self.minute,
            "teamName": self.team_name,
            "playerName": self.player_name,
            "assistPlayer": None,
            "subOffPlayer": None,
            "subOnPlayer": None,
        }
        if isinstance(self.payload, GoalPayload) and self.payload.assist:
            doc["assistPlayer"] = _ref_doc(self.payload.assist)
        if isinstance(self.payload, SubstitutionPayload):
            doc["subOffPlayer"] = _ref_doc(self.payload.player_off)
            doc["subOnPlayer"] = _ref_doc(self.payload.player_on)
        return doc


def _ref_doc(ref: PlayerRef) -> Dict[str, str]:
    return {"id": ref.id, "name": ref.name}


@dataclass(frozen=True)
class MatchProjection:
    """
    Denormalized current state of a match.

    Derived from the event history but stored so reads are O(1).
    """
    id: int
    opponent: str
    home_team: str
    away_team: str
    venue: str
    competition: str
    scheduled_at: datetime
    status: MatchStatus
    score: Score
    version: int
    is_home: bool = True
    opponent_logo_url: Optional[str] = None
    starting_xi: List[PlayerRef] = field(default_factory=list)
    substitutes: List[PlayerRef] = field(default_factory=list)
    active_players: List[PlayerRef] = field(default_factory=list)
    used_substitutes: List[PlayerRef] = field(default_factory=list)
    kickoff_time: Optional[datetime] = None
    first_half_end_time: Optional[datetime] = None
    second_half_start_time: Optional[datetime] = None

    @property
    def is_live(self) -> bool:
        return self.status is MatchStatus.LIVE

    def team_name(self, side: TeamSide) -> str:
        return self.home_team if side is TeamSide.HOME else self.away_team

    @property
    def bench(self) -> List[PlayerRef]:
        """Substitutes still available to come on. A substitute comes on once."""
        taken = {p.id for p in self.active_players} | {p.id for p in self.used_substitutes}
        return [p for p in self.substitutes if p.id not in taken]


@dataclass(frozen=True)
class FeedSnapshot:
    """What a viewer sees: the projection plus the log, newest first."""
    match: MatchProjection
    events: List[LiveEvent]

    @property
    def latest_event(self) -> Optional[LiveEvent]:
        return self.events[0] if self.events else None

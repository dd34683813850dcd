"""
Pydantic schemas for API request/response models
Request bodies map onto pipeline selections; responses are built from domain projections
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from matchday.exceptions import ValidationError
from matchday.live_match.composer import EventSelection
from matchday.live_match.models import (
    EventKind,
    FeedSnapshot,
    LiveEvent,
    MatchProjection,
    PlayerRef,
    PlayerRole,
    TeamSide,
)


# ===== PLAYER SCHEMAS =====

class PlayerRefSchema(BaseModel):
    """A player as listed in a lineup"""
    id: str
    name: str
    role: str = PlayerRole.PLAYER.value

    def to_ref(self) -> PlayerRef:
        try:
            role = PlayerRole(self.role)
        except ValueError:
            raise ValidationError("role", f"unknown role {self.role!r}")
        return PlayerRef(id=self.id, name=self.name, role=role)

    @classmethod
    def from_ref(cls, ref: PlayerRef) -> "PlayerRefSchema":
        return cls(id=ref.id, name=ref.name, role=ref.role.value)


class PlayerCreate(BaseModel):
    """Body for adding a roster member"""
    name: str
    role: str = PlayerRole.PLAYER.value
    position: Optional[str] = None
    number: Optional[int] = Field(default=None, ge=0)


class PlayerOut(BaseModel):
    """Roster member with season stats"""
    id: int
    name: str
    role: str
    position: Optional[str] = None
    number: Optional[int] = None
    appearances: int = 0
    goals: int = 0
    assists: int = 0

    class Config:
        from_attributes = True


# ===== MATCH SCHEMAS =====

class MatchCreate(BaseModel):
    """Body for scheduling a match"""
    opponent: str
    venue: str
    competition: str
    scheduled_at: datetime
    is_home: bool = True
    opponent_logo_url: Optional[str] = None
    starting_xi: List[PlayerRefSchema] = []
    substitutes: List[PlayerRefSchema] = []


class LineupUpdate(BaseModel):
    """Body for replacing the lineup before kickoff"""
    starting_xi: List[PlayerRefSchema]
    substitutes: List[PlayerRefSchema] = []


class MatchOut(BaseModel):
    """Current match projection"""
    id: int
    opponent: str
    home_team: str
    away_team: str
    venue: str
    competition: str
    scheduled_at: datetime
    is_home: bool
    opponent_logo_url: Optional[str] = None
    status: str
    home_score: int
    away_score: int
    score: str
    version: int
    starting_xi: List[PlayerRefSchema] = []
    substitutes: List[PlayerRefSchema] = []
    active_players: List[PlayerRefSchema] = []
    bench: List[PlayerRefSchema] = []
    kickoff_time: Optional[datetime] = None
    first_half_end_time: Optional[datetime] = None
    second_half_start_time: Optional[datetime] = None

    @classmethod
    def from_projection(cls, match: MatchProjection) -> "MatchOut":
        return cls(
            id=match.id,
            opponent=match.opponent,
            home_team=match.home_team,
            away_team=match.away_team,
            venue=match.venue,
            competition=match.competition,
            scheduled_at=match.scheduled_at,
            is_home=match.is_home,
            opponent_logo_url=match.opponent_logo_url,
            status=match.status.value,
            home_score=match.score.home,
            away_score=match.score.away,
            score=match.score.display,
            version=match.version,
            starting_xi=[PlayerRefSchema.from_ref(p) for p in match.starting_xi],
            substitutes=[PlayerRefSchema.from_ref(p) for p in match.substitutes],
            active_players=[PlayerRefSchema.from_ref(p) for p in match.active_players],
            bench=[PlayerRefSchema.from_ref(p) for p in match.bench],
            kickoff_time=match.kickoff_time,
            first_half_end_time=match.first_half_end_time,
            second_half_start_time=match.second_half_start_time,
        )


class MatchList(BaseModel):
    count: int
    matches: List[MatchOut]


# ===== LIVE EVENT SCHEMAS =====

class LiveEventRequest(BaseModel):
    """The operator's live update form"""
    kind: str
    team: Optional[str] = None
    scorer_id: Optional[str] = None
    assist_id: Optional[str] = None
    scorer_name: Optional[str] = None
    assist_name: Optional[str] = None
    sub_off_id: Optional[str] = None
    sub_on_id: Optional[str] = None
    carded_player_id: Optional[str] = None
    text: Optional[str] = None
    minute: Optional[int] = None
    expected_version: Optional[int] = None
    submission_key: Optional[str] = None

    def to_selection(self) -> EventSelection:
        """
        Map the form onto a pipeline selection
        Unknown kinds and sides are validation errors, not 500s
        """
        try:
            kind = EventKind.parse(self.kind)
        except ValueError:
            raise ValidationError("kind", f"unknown event kind {self.kind!r}")

        team = None
        if self.team:
            try:
                team = TeamSide(self.team.strip().lower())
            except ValueError:
                raise ValidationError("team", "must be 'home' or 'away'")

        return EventSelection(
            kind=kind,
            team=team,
            scorer_id=self.scorer_id,
            assist_id=self.assist_id,
            scorer_name=self.scorer_name,
            assist_name=self.assist_name,
            sub_off_id=self.sub_off_id,
            sub_on_id=self.sub_on_id,
            carded_player_id=self.carded_player_id,
            text=self.text,
            minute=self.minute,
        )


class PlayerNameOut(BaseModel):
    id: str
    name: str


class LiveEventOut(BaseModel):
    """One entry of the event log, in its persisted shape"""
    id: str
    type: str
    text: str
    score: str
    timestamp: datetime
    minute: Optional[int] = None
    teamName: Optional[str] = None
    playerName: Optional[str] = None
    assistPlayer: Optional[PlayerNameOut] = None
    subOffPlayer: Optional[PlayerNameOut] = None
    subOnPlayer: Optional[PlayerNameOut] = None

    @classmethod
    def from_event(cls, event: LiveEvent) -> "LiveEventOut":
        doc = event.to_document()
        doc["timestamp"] = event.timestamp
        return cls(**doc)


class PostEventResponse(BaseModel):
    created: bool
    match: MatchOut
    event: LiveEventOut


class PreviewResponse(BaseModel):
    kind: str
    text: str
    generated: bool
    score: str
    status: str


class EventLog(BaseModel):
    match_id: int
    count: int
    events: List[LiveEventOut]


class FeedFrame(BaseModel):
    """One snapshot pushed down the live feed"""
    match: MatchOut
    events: List[LiveEventOut]

    @classmethod
    def from_snapshot(cls, snapshot: FeedSnapshot) -> "FeedFrame":
        return cls(
            match=MatchOut.from_projection(snapshot.match),
            events=[LiveEventOut.from_event(e) for e in snapshot.events],
        )

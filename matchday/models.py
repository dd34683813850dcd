"""
Database models for the matchday service
SQLAlchemy ORM models for matches, their live event log, and the club roster
"""
from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship

from matchday.utils.helpers import utc_now

Base = declarative_base()


class Match(Base):
    """
    Match entity - one fixture between the club and an opponent
    Holds the live score/status projection; mutated only by the publisher
    """
    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    opponent = Column(String, nullable=False)
    opponent_logo_url = Column(String, nullable=True)
    venue = Column(String, nullable=False)
    competition = Column(String, nullable=False)
    scheduled_at = Column(DateTime, nullable=False, index=True)
    is_home = Column(Boolean, nullable=False, default=True)
    home_team = Column(String, nullable=False)
    away_team = Column(String, nullable=False)

    # Live projection
    status = Column(String, nullable=False, default="UPCOMING", index=True)
    home_score = Column(Integer, nullable=False, default=0)
    away_score = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)
    last_event_at = Column(DateTime, nullable=True)

    # Lineups, stored by value as lists of {"id", "name", "role"}
    starting_xi = Column(JSON, nullable=False, default=list)
    substitutes = Column(JSON, nullable=False, default=list)
    active_players = Column(JSON, nullable=False, default=list)
    used_substitutes = Column(JSON, nullable=False, default=list)  # came on, cannot return

    # Match clock
    kickoff_time = Column(DateTime, nullable=True)
    first_half_end_time = Column(DateTime, nullable=True)
    second_half_start_time = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    # Relationships
    events = relationship(
        "LiveEvent",
        back_populates="match",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Match(id={self.id}, opponent='{self.opponent}', status={self.status}, score={self.home_score}-{self.away_score})>"


class LiveEvent(Base):
    """
    LiveEvent entity - one immutable entry in a match's event log
    Ordered by (timestamp, id); the id doubles as the insertion order
    """
    __tablename__ = "live_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(32), unique=True, nullable=False, index=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String, nullable=False)
    text = Column(Text, nullable=False)
    score = Column(String, nullable=False)  # "H - A"
    timestamp = Column(DateTime, nullable=False, index=True)
    minute = Column(Integer, nullable=True)
    team_name = Column(String, nullable=True)
    player_name = Column(String, nullable=True)
    payload = Column(JSON, nullable=True)
    submission_key = Column(String, nullable=True)

    # Relationships
    match = relationship("Match", back_populates="events")

    # Constraints - one event per client submission key
    __table_args__ = (
        UniqueConstraint("match_id", "submission_key", name="uix_event_submission"),
    )

    def __repr__(self):
        return f"<LiveEvent(event_id='{self.event_id}', match_id={self.match_id}, type='{self.type}', score='{self.score}')>"


class Player(Base):
    """
    Player entity - club roster member with running season stats
    Events copy (id, name) by value, so edits here never rewrite history
    """
    __tablename__ = "players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, index=True)
    role = Column(String, nullable=False, default="Player")
    position = Column(String, nullable=True)
    number = Column(Integer, nullable=True)

    appearances = Column(Integer, nullable=False, default=0)
    goals = Column(Integer, nullable=False, default=0)
    assists = Column(Integer, nullable=False, default=0)

    last_updated = Column(DateTime, default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<Player(id={self.id}, name='{self.name}', goals={self.goals})>"

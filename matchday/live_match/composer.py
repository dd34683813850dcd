"""
Event composer: operator selection -> validated event -> commentary text.

The composer is stateless. Validation is local and synchronous; the only
I/O it triggers is the text generation call, and only once the submission
is known to be valid.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from matchday.exceptions import GenerationError, ValidationError
from matchday.generation import GenerationRequest, TextGenerator, clean_sentence
from matchday.utils.helpers import safe_strip

from .models import (
    EventKind,
    EventPayload,
    GoalPayload,
    MatchProjection,
    MatchStatus,
    PlayerRef,
    RedCardPayload,
    Score,
    SubstitutionPayload,
    TeamSide,
)

logger = logging.getLogger("live_match.composer")


@dataclass(frozen=True)
class EventSelection:
    """What the operator picked on the live update form."""
    kind: EventKind
    team: Optional[TeamSide] = None
    scorer_id: Optional[str] = None
    assist_id: Optional[str] = None
    scorer_name: Optional[str] = None  # opponent goals: no roster to resolve against
    assist_name: Optional[str] = None
    sub_off_id: Optional[str] = None
    sub_on_id: Optional[str] = None
    carded_player_id: Optional[str] = None
    text: Optional[str] = None  # Info text, or an override for any other kind
    minute: Optional[int] = None


@dataclass(frozen=True)
class DraftEvent:
    """A validated event that still needs its display text."""
    match_id: int
    kind: EventKind
    score: Score
    status: MatchStatus
    team_name: Optional[str]
    payload: Optional[EventPayload]
    minute: Optional[int]
    generation_request: Optional[GenerationRequest]
    operator_text: Optional[str]


@dataclass(frozen=True)
class ComposedEvent:
    """A draft plus its final text, ready for the publisher."""
    draft: DraftEvent
    text: str
    generated: bool


def _resolve(players: List[PlayerRef], player_id: Optional[str], field: str, pool: str) -> PlayerRef:
    wanted = safe_strip(player_id)
    if not wanted:
        raise ValidationError(field, "is required")
    for player in players:
        if player.id == wanted:
            return player
    raise ValidationError(field, f"player {wanted!r} is not among the {pool} players")


def _opponent_ref(name: Optional[str], field: str) -> PlayerRef:
    name = safe_strip(name)
    if not name:
        raise ValidationError(field, "is required for an opponent goal")
    return PlayerRef(id=f"opponent:{name.lower()}", name=name)


class EventComposer:
    """
    Translate an operator's selection into a publishable event.

    Usage:
        composer = EventComposer(generator)
        composed = composer.compose(match, EventSelection(kind=EventKind.GOAL, ...))
    """

    def __init__(self, generator: TextGenerator):
        self._generator = generator

    @property
    def generator(self) -> TextGenerator:
        return self._generator

    # ========================================================================
    # Validation (no I/O)
    # ========================================================================

    def build(self, match: MatchProjection, selection: EventSelection) -> DraftEvent:
        """
        Validate a selection against the match and assemble the draft.

        Raises:
            ValidationError: naming the first missing or invalid field
        """
        kind = selection.kind
        operator_text = safe_strip(selection.text) or None

        if selection.minute is not None and selection.minute < 0:
            raise ValidationError("minute", "must not be negative")

        self._check_status(match, kind)

        score = match.score
        status = match.status
        team_name: Optional[str] = None
        payload: Optional[EventPayload] = None
        request: Optional[GenerationRequest] = None
        club_side = TeamSide.HOME if match.is_home else TeamSide.AWAY

        if kind is EventKind.GOAL:
            if selection.team is None:
                raise ValidationError("team", "is required for a goal (home or away)")
            if selection.team is club_side:
                scorer = _resolve(match.active_players, selection.scorer_id, "scorer_id", "active")
                assist = None
                if safe_strip(selection.assist_id):
                    assist = _resolve(match.active_players, selection.assist_id, "assist_id", "active")
            else:
                scorer = _opponent_ref(selection.scorer_name, "scorer_name")
                assist = None
                if safe_strip(selection.assist_name):
                    assist = _opponent_ref(selection.assist_name, "assist_name")
            if assist is not None and assist.id == scorer.id:
                raise ValidationError("assist_id", "must differ from the scorer")
            score = match.score.bump(selection.team)
            team_name = match.team_name(selection.team)
            payload = GoalPayload(side=selection.team, scorer=scorer, assist=assist)
            request = GenerationRequest(
                event_type=kind.value,
                team_name=team_name,
                player_name=scorer.name,
                assist_player_name=assist.name if assist else None,
                home_score=score.home,
                away_score=score.away,
            )

        elif kind is EventKind.SUBSTITUTION:
            player_off = _resolve(match.active_players, selection.sub_off_id, "sub_off_id", "active")
            player_on = _resolve(match.bench, selection.sub_on_id, "sub_on_id", "bench")
            if player_off.id == player_on.id:
                raise ValidationError("sub_on_id", "must differ from the player coming off")
            team_name = self._club_team(match, selection, club_side)
            payload = SubstitutionPayload(player_off=player_off, player_on=player_on)
            request = GenerationRequest(
                event_type=kind.value,
                team_name=team_name,
                sub_off_player_name=player_off.name,
                sub_on_player_name=player_on.name,
            )

        elif kind is EventKind.RED_CARD:
            squad = match.active_players + match.bench
            carded = _resolve(squad, selection.carded_player_id, "carded_player_id", "squad")
            team_name = self._club_team(match, selection, club_side)
            payload = RedCardPayload(player=carded)
            request = GenerationRequest(
                event_type=kind.value,
                team_name=team_name,
                player_name=carded.name,
            )

        elif kind is EventKind.INFO:
            if not operator_text:
                raise ValidationError("text", "is required for an info update")

        else:
            if kind is EventKind.MATCH_START:
                status = MatchStatus.LIVE
            elif kind is EventKind.MATCH_END:
                status = MatchStatus.FULL_TIME
            team_name = match.home_team
            request = GenerationRequest(
                event_type=kind.value,
                team_name=match.home_team,
                opponent_name=match.away_team,
                home_score=score.home,
                away_score=score.away,
            )

        return DraftEvent(
            match_id=match.id,
            kind=kind,
            score=score,
            status=status,
            team_name=team_name,
            payload=payload,
            minute=selection.minute,
            generation_request=request,
            operator_text=operator_text,
        )

    def _club_team(self, match: MatchProjection, selection: EventSelection, club_side: TeamSide) -> str:
        # Only the club lineup is tracked
        if selection.team is not None and selection.team is not club_side:
            raise ValidationError(
                "team", f"{selection.kind.value} is only recorded for {match.team_name(club_side)}"
            )
        return match.team_name(club_side)

    def _check_status(self, match: MatchProjection, kind: EventKind):
        if kind is EventKind.INFO:
            return
        if kind is EventKind.MATCH_START:
            if match.status is not MatchStatus.UPCOMING:
                raise ValidationError("kind", f"match {match.id} has already started")
            return
        if match.status is not MatchStatus.LIVE:
            raise ValidationError(
                "kind", f"{kind.value} requires a LIVE match (status is {match.status.name})"
            )

    # ========================================================================
    # Text
    # ========================================================================

    def compose(self, match: MatchProjection, selection: EventSelection) -> ComposedEvent:
        """
        Validate, then obtain the display text.

        Operator text wins when present; otherwise the generator is called
        exactly once. No retry happens here.

        Raises:
            ValidationError: before any generation call
            GenerationError: the generator failed or returned nothing usable
        """
        draft = self.build(match, selection)

        if draft.operator_text:
            return ComposedEvent(draft=draft, text=draft.operator_text, generated=False)

        try:
            text = clean_sentence(self._generator.generate(draft.generation_request))
        except GenerationError as e:
            logger.warning(
                f"Generation failed for {draft.kind.value} on match {draft.match_id}: "
                f"{e.reason or e.message}"
            )
            raise
        except Exception as e:
            logger.error(f"Generator {self._generator.provider_name} raised unexpectedly: {e}")
            raise GenerationError("Text generation failed", reason="unexpected") from e

        return ComposedEvent(draft=draft, text=text, generated=True)

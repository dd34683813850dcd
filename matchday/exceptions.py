"""
Error taxonomy for the live-match pipeline.

Every failure an operator can see maps onto one of these categories.
The HTTP layer turns them into responses; nothing below it retries.
"""
from typing import Optional


class MatchdayError(Exception):
    """Base class for all pipeline errors."""

    category = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MatchdayError):
    """A submission is missing a field or references something invalid.

    Raised before any network call, except for the transition checks the
    publisher repeats against the stored match.
    """

    category = "validation"

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


class InvalidTransitionError(ValidationError):
    """Status moved backwards or the score decreased while LIVE."""

    category = "invalid_transition"


class GenerationError(MatchdayError):
    """Text generation failed, timed out, or returned unusable text."""

    category = "generation"

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason


class NotFoundError(MatchdayError):
    """The target match (or player) does not exist."""

    category = "not_found"


class PersistenceError(MatchdayError):
    """The durable store rejected or failed the write; nothing was committed."""

    category = "persistence"


class ConflictError(PersistenceError):
    """The match changed since the submission was composed."""

    category = "conflict"

    def __init__(self, match_id: int, expected_version: int, actual_version: Optional[int]):
        super().__init__(
            f"Match {match_id} changed (expected version {expected_version}, "
            f"found {actual_version}); refresh and resubmit"
        )
        self.match_id = match_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class FeedConnectionError(MatchdayError, ConnectionError):
    """A live feed subscription was dropped."""

    category = "connection"

"""Claude text generator for live match commentary.

Claude is ONLY used for:
- Turning confirmed event data into one punchy feed sentence

Claude is NEVER used for:
- Deciding scores, scorers or match status
- Filling in details the operator did not supply
"""

import logging
from typing import Optional

import anthropic

from matchday.exceptions import GenerationError
from .base import GenerationRequest, TextGenerator, clean_sentence

logger = logging.getLogger(__name__)


# ============================================================================
# Prompt Template
# ============================================================================

EVENT_TEXT_PROMPT = """You are a live match commentator for a football club.
Your task is to take structured data about a match event and turn it into a single, exciting sentence for a live feed.
Keep it short, punchy, and professional.

Here is the event data. Create a suitable sentence based on the event type.

{event_lines}

Examples:
- Goal: "GOAL for <team>! <player> finds the back of the net, assisted by <assist>. The score is now <home>-<away>."
- Substitution: "Substitution for <team>: <player on> comes on to replace <player off>."
- Red Card: "RED CARD! <player> has been sent off, leaving <team> with 10 players."
- Match Start: "The match between <team> and <opponent> has kicked off!"
- Half Time: "The referee blows for half-time. Score is <team> <home> - <away> <opponent>."
- Second Half Start: "The second half is underway!"
- Match End: "The final whistle has blown! Full time score: <team> <home> - <away> <opponent>."

RULES:
- Respond with ONLY the sentence, no quotes, no labels, no other text
- Use ONLY the names and numbers given above
- DO NOT invent minutes, players or statistics"""

FIELD_LABELS = [
    ("eventType", "Event Type"),
    ("teamName", "Team Name"),
    ("opponentName", "Opponent Name"),
    ("homeScore", "Home Score"),
    ("awayScore", "Away Score"),
    ("playerName", "Player Name"),
    ("assistPlayerName", "Assisting Player"),
    ("subOffPlayerName", "Player Off"),
    ("subOnPlayerName", "Player On"),
]


def build_prompt(request: GenerationRequest) -> str:
    """Render the commentary prompt, listing only the supplied fields."""
    fields = request.to_fields()
    event_lines = "\n".join(
        f"- {label}: {fields[key]}" for key, label in FIELD_LABELS if key in fields
    )
    return EVENT_TEXT_PROMPT.format(event_lines=event_lines)


# ============================================================================
# ClaudeTextGenerator Implementation
# ============================================================================

class ClaudeTextGenerator(TextGenerator):
    """
    Claude-backed commentary generator.

    One request per call with a bounded timeout and SDK retries disabled;
    every failure becomes a GenerationError.
    """

    DEFAULT_MODEL = "claude-3-5-haiku-latest"

    # One sentence needs very few tokens
    DEFAULT_MAX_TOKENS = 120

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        timeout: float = 20.0,
        client: Optional[anthropic.Anthropic] = None,
    ):
        """
        Initialize the Claude generator.

        Args:
            api_key: Anthropic API key
            model: Model name (defaults to DEFAULT_MODEL)
            max_tokens: Response token cap
            timeout: Seconds before the call is abandoned
            client: Pre-built client (tests inject a fake here)
        """
        self.model = model or self.DEFAULT_MODEL
        self.max_tokens = max_tokens or self.DEFAULT_MAX_TOKENS
        self.timeout = timeout
        self._client = client or anthropic.Anthropic(
            api_key=api_key,
            timeout=timeout,
            max_retries=0,
        )
        logger.info(f"Claude generator initialized (model={self.model}, timeout={timeout}s)")

    @property
    def provider_name(self) -> str:
        return "claude"

    def generate(self, request: GenerationRequest) -> str:
        prompt = build_prompt(request)

        try:
            message = self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )

        except anthropic.APITimeoutError as e:
            logger.error(f"Claude timed out after {self.timeout}s: {e}")
            raise GenerationError("Text generation timed out", reason="timeout") from e

        except anthropic.APIConnectionError as e:
            logger.error(f"Claude connection error: {e}")
            raise GenerationError("Could not reach the text generation service", reason="network") from e

        except anthropic.RateLimitError as e:
            logger.warning(f"Claude rate limit hit: {e}")
            raise GenerationError("Text generation is rate limited, try again shortly", reason="rate_limit") from e

        except anthropic.APIStatusError as e:
            logger.error(f"Claude API error: {e.status_code} - {e.message}")
            raise GenerationError(f"Text generation failed ({e.status_code})", reason="api_status") from e

        if getattr(message, "stop_reason", None) == "refusal":
            logger.warning(f"Claude refused to describe {request.event_type} event")
            raise GenerationError("Text generation was refused", reason="refusal")

        text = "".join(
            getattr(block, "text", "") for block in (message.content or [])
            if getattr(block, "type", "text") == "text"
        )
        return clean_sentence(text)

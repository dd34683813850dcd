# Text generation for live event commentary
# The model ONLY phrases confirmed event data - it never decides facts

import logging

from config.settings import Settings
from .base import GenerationRequest, TextGenerator, TemplateTextGenerator, clean_sentence

logger = logging.getLogger(__name__)

__all__ = [
    "GenerationRequest",
    "TextGenerator",
    "TemplateTextGenerator",
    "clean_sentence",
    "get_text_generator",
]


def get_text_generator(settings: Settings) -> TextGenerator:
    """
    Build the configured text generator.

    Returns ClaudeTextGenerator when an Anthropic API key is configured,
    otherwise the deterministic TemplateTextGenerator. The choice is made
    once at startup; a failing Claude call is never swapped for a template.
    """
    if settings.anthropic_api_key:
        from .claude import ClaudeTextGenerator
        logger.info("Using Claude text generator for live commentary")
        return ClaudeTextGenerator(
            api_key=settings.anthropic_api_key,
            model=settings.generation_model,
            max_tokens=settings.generation_max_tokens,
            timeout=settings.generation_timeout_seconds,
        )

    logger.info("No ANTHROPIC_API_KEY configured, using template text generator")
    return TemplateTextGenerator()

"""Gallery tags for a coloring prompt.

Tags are short lowercase Polish words used by gallery search.  Tagging never
fails a generation: any error or unusable answer yields :data:`DEFAULT_TAGS`.
"""

from __future__ import annotations

import logging

from malowanko.core.errors import OpenRouterError
from malowanko.services.openrouter import OpenRouterClient, ResponseSchema

logger = logging.getLogger(__name__)

TAG_PROMPT = (
    "Wygeneruj 3-5 tagów po polsku dla kolorowanki. Tagi to pojedyncze słowa, małe litery."
)

TAGS_SCHEMA = ResponseSchema(
    name="tags",
    properties={"tags": {"type": "array", "items": {"type": "string"}}},
)

DEFAULT_TAGS: tuple[str, ...] = ("kolorowanka", "dla dzieci")

MAX_TAGS = 5


def normalize_tags(raw_tags: object) -> list[str]:
    """Clean a model answer into a usable tag list.

    Non-string and blank entries are dropped, the rest lowercased and
    trimmed, and the list truncated to :data:`MAX_TAGS`.  Anything that
    leaves no tags yields the default set.
    """
    if not isinstance(raw_tags, list) or not raw_tags:
        return list(DEFAULT_TAGS)

    tags = [tag.strip().lower() for tag in raw_tags if isinstance(tag, str)]
    tags = [tag for tag in tags if tag][:MAX_TAGS]
    return tags or list(DEFAULT_TAGS)


class TagSynthesizer:
    """Generate gallery tags with the text model."""

    def __init__(self, client: OpenRouterClient):
        self._client = client

    async def synthesize_tags(self, prompt: str) -> list[str]:
        """Return 1-5 lowercase tags for *prompt*, never an empty list."""
        try:
            answer = await self._client.chat_completion(
                TAG_PROMPT,
                prompt,
                TAGS_SCHEMA,
                temperature=0.3,
                max_tokens=100,
            )
        except OpenRouterError as e:
            logger.error(f"Tag generation failed, using defaults: {e}")
            return list(DEFAULT_TAGS)

        tags = normalize_tags(answer.get("tags"))
        logger.info(f"Generated {len(tags)} tag(s)")
        return tags

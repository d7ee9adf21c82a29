"""Prompt safety screening for a children's audience.

Screening runs in two stages.  A case-insensitive keyword denylist rejects
obvious cases without any network call.  Everything else is judged by the
text model with a fixed moderation instruction.

The filter fails open: when the moderation call fails or times out, the
prompt is treated as safe so an outage doesn't block legitimate use.  The
denylist still applies in that case.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from malowanko.core.errors import OpenRouterError
from malowanko.services.openrouter import OpenRouterClient, ResponseSchema

logger = logging.getLogger(__name__)

# Polish and English terms; matched as substrings of the lowercased prompt
BLOCKED_KEYWORDS: tuple[str, ...] = (
    "przemoc",
    "violence",
    "krew",
    "blood",
    "śmierć",
    "death",
    "zabić",
    "kill",
    "broń",
    "weapon",
    "nóż",
    "knife",
    "pistolet",
    "gun",
    "strach",
    "horror",
    "zombie",
    "demon",
    "diabeł",
    "devil",
    "narkotyki",
    "drugs",
    "alkohol",
    "alcohol",
    "papieros",
    "cigarette",
    "seks",
    "sex",
    "nago",
    "naked",
)

KEYWORD_REJECTION_REASON = "Niedozwolone słowo"

MODERATION_SYSTEM_PROMPT = """Jesteś moderatorem treści dla aplikacji kolorowanek dla dzieci 0-12 lat.
Oceń czy prompt jest BEZPIECZNY.

ODRZUĆ: przemoc, treści dla dorosłych, horror, narkotyki, dyskryminację.
AKCEPTUJ: zwierzęta, pojazdy, fantasy, sport, jedzenie, święta."""

SAFETY_SCHEMA = ResponseSchema(
    name="safety_check",
    properties={
        "safe": {"type": "boolean"},
        "reason": {"type": "string"},
    },
)


@dataclass(frozen=True)
class PromptSafetyResult:
    """Verdict of the safety filter.

    Attributes:
        safe: Whether the prompt may be used to generate a coloring page.
        reason: Why the prompt was rejected, when the filter gave a reason.
    """

    safe: bool
    reason: str | None = None


def find_blocked_keyword(prompt: str) -> str | None:
    """Return the first denylisted keyword contained in *prompt*, if any."""
    lowered = prompt.lower()
    for keyword in BLOCKED_KEYWORDS:
        if keyword in lowered:
            return keyword
    return None


class SafetyFilter:
    """Keyword denylist followed by model moderation."""

    def __init__(self, client: OpenRouterClient):
        self._client = client

    async def check_prompt_safety(self, prompt: str) -> PromptSafetyResult:
        """Judge whether *prompt* is suitable for a children's coloring page.

        Args:
            prompt: The user's prompt.

        Returns:
            The verdict.  Keyword hits are rejected without calling the
            model; model failures yield ``safe=True``.
        """
        keyword = find_blocked_keyword(prompt)
        if keyword is not None:
            logger.warning(
                f"Prompt blocked by keyword filter: keyword={keyword!r}, "
                f"prompt_length={len(prompt)}"
            )
            return PromptSafetyResult(safe=False, reason=KEYWORD_REJECTION_REASON)

        try:
            verdict = await self._client.chat_completion(
                MODERATION_SYSTEM_PROMPT,
                prompt,
                SAFETY_SCHEMA,
                temperature=0.0,
                max_tokens=100,
            )
        except OpenRouterError as e:
            logger.error(f"Content moderation failed, allowing prompt: {e}")
            return PromptSafetyResult(safe=True)

        safe = verdict.get("safe")
        if not isinstance(safe, bool):
            logger.error("Content moderation returned no verdict, allowing prompt")
            return PromptSafetyResult(safe=True)

        reason = verdict.get("reason") if isinstance(verdict.get("reason"), str) else None
        if not safe:
            logger.warning(
                f"Prompt rejected by AI moderation: reason={reason!r}, prompt_length={len(prompt)}"
            )
        return PromptSafetyResult(safe=safe, reason=reason)

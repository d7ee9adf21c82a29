"""Coloring page image synthesis.

This module provides :class:`ImageSynthesizer`, which turns a user prompt,
an age group, and a style into a line-art image.

Key Responsibilities
--------------------
- **Prompt compilation**: the user prompt is wrapped by
  :func:`~malowanko.core.prompt_builder.build_image_prompt`.
- **Model call**: one image request per synthesized page, with the image
  timeout configured on the :class:`OpenRouterClient`.
- **Response normalisation**: the image is extracted from whichever shape
  the model returned, see :mod:`malowanko.services.image_payload`.
- **Error classification**: every failure is raised as
  :class:`~malowanko.core.errors.ImageGenerationError`; timeouts as its
  subtype :class:`~malowanko.core.errors.ImageGenerationTimeoutError`.
  There is no fallback image.

Usage
-----
::

    synthesizer = ImageSynthesizer(OpenRouterClient.from_config(config))
    payload = await synthesizer.synthesize_image("kot grający na gitarze", "4-8", "klasyczny")
    payload.data_url  # "data:image/png;base64,..."
"""

from __future__ import annotations

import logging

from malowanko.core.errors import (
    ImageGenerationError,
    ImageGenerationTimeoutError,
    OpenRouterError,
    OpenRouterTimeoutError,
)
from malowanko.core.prompt_builder import build_image_prompt
from malowanko.services.image_payload import ImagePayload, extract_image
from malowanko.services.openrouter import OpenRouterClient

logger = logging.getLogger(__name__)


class ImageSynthesizer:
    """Generates coloring page images through the image model.

    Attributes:
        model: Image model override, or None for the client's default.
    """

    def __init__(self, client: OpenRouterClient, model: str | None = None) -> None:
        """Initialise the synthesizer.

        Args:
            client: OpenRouter client used for the image calls.
            model: Optional image model override.
        """
        self._client = client
        self.model = model

    async def synthesize_image(self, prompt: str, age_group: str, style: str) -> ImagePayload:
        """Generate one coloring page.

        Args:
            prompt: The user's description of the page.
            age_group: Target age group, one of ``"0-3"``, ``"4-8"``,
                ``"9-12"``.
            style: One of ``"prosty"``, ``"klasyczny"``, ``"szczegolowy"``,
                ``"mandala"``.

        Returns:
            The generated image as base64 data plus MIME type.

        Raises:
            ImageGenerationTimeoutError: If the model did not answer in time.
            ImageGenerationError: If the call failed or the answer contained
                no image.
        """
        full_prompt = build_image_prompt(prompt, age_group, style)
        logger.info(
            f"Generating coloring image: age_group={age_group}, style={style}, "
            f"prompt_length={len(prompt)}"
        )

        try:
            message = await self._client.generate_image(full_prompt, model=self.model)
        except OpenRouterTimeoutError as e:
            raise ImageGenerationTimeoutError(str(e)) from e
        except OpenRouterError as e:
            raise ImageGenerationError(str(e)) from e

        payload = extract_image(message)
        logger.info(
            f"Image generated successfully: mime_type={payload.mime_type}, "
            f"base64_length={len(payload.base64_data)}"
        )
        return payload

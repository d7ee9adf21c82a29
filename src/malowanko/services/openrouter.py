"""OpenRouter client for the text and image models.

This module provides :class:`OpenRouterClient`, the single point of contact
with the OpenRouter chat-completions endpoint.  It is built on the
``openai`` SDK pointed at OpenRouter's base URL.

Key Responsibilities
--------------------
- **Structured text calls**: :meth:`OpenRouterClient.chat_completion` sends
  a system and user message with a strict JSON schema and returns the parsed
  JSON object.  Used by the safety filter and the tag synthesizer.
- **Image calls**: :meth:`OpenRouterClient.generate_image` sends the coloring
  page instruction and returns the raw response message, whose image payload
  is extracted by :mod:`malowanko.services.image_payload`.
- **Timeouts**: every call carries its own timeout (text and image differ)
  and the SDK's automatic retries are disabled, so a timeout is reported
  once, as :class:`~malowanko.core.errors.OpenRouterTimeoutError`.
- **Error classification**: SDK exceptions never leave this module; they are
  re-raised as :class:`~malowanko.core.errors.OpenRouterError`.

Usage
-----
::

    from malowanko.core.config import config
    from malowanko.services.openrouter import OpenRouterClient

    client = OpenRouterClient.from_config(config)
    result = await client.chat_completion(
        system_message="...",
        user_message="...",
        response_schema=schema,
    )
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import openai
from openai import AsyncOpenAI

from malowanko.core.errors import OpenRouterError, OpenRouterTimeoutError

if TYPE_CHECKING:
    from malowanko.core.config import MalowankoConfig

logger = logging.getLogger(__name__)

IMAGE_SYSTEM_PROMPT = """You are an expert illustrator specializing in children's coloring books.
Your task is to create black and white line art coloring pages.

STYLE REQUIREMENTS:
- Pure black outlines on white (#FFFFFF) background
- No shading, gradients, or filled areas
- Clear, well-defined lines suitable for coloring with crayons or markers
- Child-friendly, appealing designs
- Centered composition with good use of space
- No text or letters in the image

OUTPUT:
Generate a single coloring page image based on the user's description."""


@dataclass(frozen=True)
class ResponseSchema:
    """Strict JSON schema the text model must answer with.

    Attributes:
        name: Schema name reported to the model.
        properties: JSON schema ``properties`` of the top-level object.
            Every property is required and no others are allowed.
    """

    name: str
    properties: dict[str, dict[str, Any]]

    def to_response_format(self) -> dict[str, Any]:
        """Return the ``response_format`` payload of a chat completion."""
        return {
            "type": "json_schema",
            "json_schema": {
                "name": self.name,
                "strict": True,
                "schema": {
                    "type": "object",
                    "properties": self.properties,
                    "required": list(self.properties),
                    "additionalProperties": False,
                },
            },
        }


class OpenRouterClient:
    """Async client for OpenRouter text and image models.

    The underlying SDK client is created on first use, so a missing API key
    only fails the calls that need it.

    Attributes:
        text_model: Default model for structured text calls.
        image_model: Default model for image generation.
        image_only_models: Models that only support the image output
            modality.
        text_timeout: Timeout in seconds for text calls.
        image_timeout: Timeout in seconds for image calls.
    """

    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://openrouter.ai/api/v1",
        *,
        text_model: str = "openai/gpt-4o-mini",
        image_model: str = "bytedance-seed/seedream-4.5",
        image_only_models: list[str] | None = None,
        text_timeout: float = 15.0,
        image_timeout: float = 90.0,
        app_url: str = "http://localhost:8000",
        app_title: str = "Malowanko",
        client: AsyncOpenAI | None = None,
    ):
        self._api_key = api_key
        self._base_url = base_url
        self.text_model = text_model
        self.image_model = image_model
        self.image_only_models = (
            list(image_only_models) if image_only_models is not None else [image_model]
        )
        self.text_timeout = text_timeout
        self.image_timeout = image_timeout
        self._headers = {"HTTP-Referer": app_url, "X-Title": app_title}
        self._client = client

    @classmethod
    def from_config(cls, config: MalowankoConfig) -> OpenRouterClient:
        """Create a client from the application configuration."""
        return cls(
            config.openrouter_api_key,
            config.openrouter_base_url,
            text_model=config.text_model,
            image_model=config.image_model,
            image_only_models=config.image_only_models,
            text_timeout=config.text_timeout_seconds,
            image_timeout=config.image_timeout_seconds,
            app_url=config.app_url,
            app_title=config.app_title,
        )

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise OpenRouterError("OpenRouter API key is not configured")
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                base_url=self._base_url,
                default_headers=self._headers,
                max_retries=0,
            )
        return self._client

    def modalities_for(self, model: str) -> list[str]:
        """Return the output modalities to request from an image model."""
        return ["image"] if model in self.image_only_models else ["image", "text"]

    async def chat_completion(
        self,
        system_message: str,
        user_message: str,
        response_schema: ResponseSchema,
        *,
        model: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 200,
    ) -> dict[str, Any]:
        """Run a structured text completion.

        Args:
            system_message: Instruction defining the model's behaviour.
            user_message: The content to process.
            response_schema: Strict schema of the expected JSON answer.
            model: Model to use.  Defaults to :attr:`text_model`.
            temperature: Sampling temperature.
            max_tokens: Maximum tokens in the answer.

        Returns:
            The parsed JSON object returned by the model.

        Raises:
            OpenRouterTimeoutError: If the call exceeded :attr:`text_timeout`.
            OpenRouterError: On any other failure, including an empty or
                non-JSON answer.
        """
        model = model or self.text_model
        logger.info(
            f"OpenRouter chat completion request: model={model}, schema={response_schema.name}"
        )

        client = self._get_client()
        try:
            completion = await client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_message},
                    {"role": "user", "content": user_message},
                ],
                response_format=response_schema.to_response_format(),
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=self.text_timeout,
            )
        except openai.APITimeoutError as e:
            logger.error(f"OpenRouter chat completion timeout after {self.text_timeout}s")
            raise OpenRouterTimeoutError("Timeout") from e
        except openai.OpenAIError as e:
            logger.error(f"OpenRouter chat completion error: {e}")
            raise OpenRouterError(str(e)) from e

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise OpenRouterError("Empty response from model")

        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as e:
            logger.error(f"OpenRouter response parse error: {e}")
            raise OpenRouterError("Invalid response format") from e
        if not isinstance(parsed, dict):
            raise OpenRouterError("Invalid response format")

        if completion.usage is not None:
            logger.info(
                f"OpenRouter chat completion success: "
                f"prompt_tokens={completion.usage.prompt_tokens}, "
                f"completion_tokens={completion.usage.completion_tokens}"
            )
        return parsed

    async def generate_image(self, prompt: str, *, model: str | None = None) -> dict[str, Any]:
        """Request a coloring page image.

        Args:
            prompt: The compiled coloring page prompt.
            model: Model to use.  Defaults to :attr:`image_model`.

        Returns:
            The first response message as a plain dict, including
            provider-specific fields such as ``images``.

        Raises:
            OpenRouterTimeoutError: If the call exceeded :attr:`image_timeout`.
            OpenRouterError: On any other failure.
        """
        model = model or self.image_model
        logger.info(
            f"OpenRouter image generation request: model={model}, prompt_length={len(prompt)}"
        )

        client = self._get_client()
        try:
            completion = await client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": IMAGE_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                extra_body={"modalities": self.modalities_for(model)},
                timeout=self.image_timeout,
            )
        except openai.APITimeoutError as e:
            logger.error(f"OpenRouter image generation timeout after {self.image_timeout}s")
            raise OpenRouterTimeoutError("Image generation timeout") from e
        except openai.OpenAIError as e:
            logger.error(f"OpenRouter image generation error: {e}")
            raise OpenRouterError(str(e)) from e

        # Extra fields (e.g. "images") survive the dump
        choices = completion.model_dump(warnings=False).get("choices") or []
        if not choices or not isinstance(choices[0].get("message"), dict):
            raise OpenRouterError("Response contains no message")
        return choices[0]["message"]

    async def close(self) -> None:
        """Close the underlying HTTP client, if one was created."""
        if self._client is not None:
            await self._client.close()
            self._client = None

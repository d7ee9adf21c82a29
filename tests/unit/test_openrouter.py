"""Tests for malowanko.services.openrouter — the OpenRouter client.

The SDK client is replaced by a mock whose ``chat.completions.create``
returns real ``ChatCompletion`` objects, so parsing is exercised exactly as
in production without network access.
"""

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import openai
import pytest
from openai.types.chat import ChatCompletion

from malowanko.core.errors import OpenRouterError, OpenRouterTimeoutError
from malowanko.services.openrouter import IMAGE_SYSTEM_PROMPT, OpenRouterClient, ResponseSchema

SCHEMA = ResponseSchema(name="safety_check", properties={"safe": {"type": "boolean"}})


def _completion(message: dict) -> ChatCompletion:
    return ChatCompletion.model_validate(
        {
            "id": "gen-1",
            "object": "chat.completion",
            "created": 1760000000,
            "model": "test/model",
            "choices": [
                {"index": 0, "finish_reason": "stop", "message": {"role": "assistant", **message}}
            ],
            "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
        }
    )


def _client_returning(result) -> tuple[OpenRouterClient, AsyncMock]:
    if isinstance(result, Exception):
        create = AsyncMock(side_effect=result)
    else:
        create = AsyncMock(return_value=result)
    sdk = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    client = OpenRouterClient(
        "sk-test",
        text_model="openai/gpt-4o-mini",
        image_model="bytedance-seed/seedream-4.5",
        image_only_models=["bytedance-seed/seedream-4.5"],
        text_timeout=15.0,
        image_timeout=90.0,
        client=sdk,
    )
    return client, create


_REQUEST = httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")


class TestResponseSchema:
    def test_strict_schema_requires_every_property(self):
        fmt = ResponseSchema(
            name="tags",
            properties={"tags": {"type": "array"}, "extra": {"type": "string"}},
        ).to_response_format()

        assert fmt["type"] == "json_schema"
        assert fmt["json_schema"]["name"] == "tags"
        assert fmt["json_schema"]["strict"] is True
        assert fmt["json_schema"]["schema"]["required"] == ["tags", "extra"]
        assert fmt["json_schema"]["schema"]["additionalProperties"] is False


class TestChatCompletion:
    @pytest.mark.asyncio
    async def test_returns_parsed_json(self):
        client, create = _client_returning(_completion({"content": '{"safe": true}'}))

        result = await client.chat_completion("system", "kot", SCHEMA, max_tokens=100)

        assert result == {"safe": True}
        kwargs = create.await_args.kwargs
        assert kwargs["model"] == "openai/gpt-4o-mini"
        assert kwargs["messages"] == [
            {"role": "system", "content": "system"},
            {"role": "user", "content": "kot"},
        ]
        assert kwargs["response_format"] == SCHEMA.to_response_format()
        assert kwargs["temperature"] == 0.0
        assert kwargs["max_tokens"] == 100
        assert kwargs["timeout"] == 15.0

    @pytest.mark.asyncio
    async def test_timeout(self):
        client, _ = _client_returning(openai.APITimeoutError(request=_REQUEST))

        with pytest.raises(OpenRouterTimeoutError, match="Timeout"):
            await client.chat_completion("system", "kot", SCHEMA)

    @pytest.mark.asyncio
    async def test_api_error(self):
        client, _ = _client_returning(openai.APIConnectionError(request=_REQUEST))

        with pytest.raises(OpenRouterError) as excinfo:
            await client.chat_completion("system", "kot", SCHEMA)
        assert not isinstance(excinfo.value, OpenRouterTimeoutError)

    @pytest.mark.asyncio
    async def test_empty_content(self):
        client, _ = _client_returning(_completion({"content": None}))

        with pytest.raises(OpenRouterError, match="Empty response from model"):
            await client.chat_completion("system", "kot", SCHEMA)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["not json", json.dumps([1, 2])])
    async def test_invalid_format(self, content):
        client, _ = _client_returning(_completion({"content": content}))

        with pytest.raises(OpenRouterError, match="Invalid response format"):
            await client.chat_completion("system", "kot", SCHEMA)

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        client = OpenRouterClient(None)

        with pytest.raises(OpenRouterError, match="API key"):
            await client.chat_completion("system", "kot", SCHEMA)


class TestGenerateImage:
    @pytest.mark.asyncio
    async def test_returns_message_with_provider_fields(self):
        images = [{"type": "image_url", "image_url": {"url": "data:image/png;base64,QUJD"}}]
        client, create = _client_returning(_completion({"content": None, "images": images}))

        message = await client.generate_image("compiled prompt")

        assert message["images"] == images
        kwargs = create.await_args.kwargs
        assert kwargs["messages"][0] == {"role": "system", "content": IMAGE_SYSTEM_PROMPT}
        assert kwargs["messages"][1] == {"role": "user", "content": "compiled prompt"}
        assert kwargs["extra_body"] == {"modalities": ["image"]}
        assert kwargs["timeout"] == 90.0

    @pytest.mark.asyncio
    async def test_multimodal_model_requests_text_too(self):
        client, create = _client_returning(_completion({"content": "ok"}))

        await client.generate_image("compiled prompt", model="google/gemini-2.5-flash-image")

        kwargs = create.await_args.kwargs
        assert kwargs["model"] == "google/gemini-2.5-flash-image"
        assert kwargs["extra_body"] == {"modalities": ["image", "text"]}

    @pytest.mark.asyncio
    async def test_timeout(self):
        client, _ = _client_returning(openai.APITimeoutError(request=_REQUEST))

        with pytest.raises(OpenRouterTimeoutError):
            await client.generate_image("compiled prompt")


class TestClientLifecycle:
    def test_image_only_models_default_to_image_model(self):
        client = OpenRouterClient("sk-test", image_model="vendor/painter")
        assert client.image_only_models == ["vendor/painter"]
        assert client.modalities_for("vendor/painter") == ["image"]

    def test_from_config(self, test_config):
        client = OpenRouterClient.from_config(test_config)
        assert client.text_model == test_config.text_model
        assert client.image_timeout == test_config.image_timeout_seconds

    @pytest.mark.asyncio
    async def test_close_is_safe_without_client(self):
        await OpenRouterClient(None).close()

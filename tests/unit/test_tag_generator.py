"""Tests for malowanko.services.tag_generator."""

from __future__ import annotations

import pytest

from malowanko.core.errors import OpenRouterError
from malowanko.services.tag_generator import DEFAULT_TAGS, TagSynthesizer, normalize_tags


class TestNormalizeTags:
    def test_lowercases_and_trims(self):
        assert normalize_tags([" Kot ", "GITARA"]) == ["kot", "gitara"]

    def test_truncates_to_five(self):
        assert normalize_tags(list("abcdefg")) == ["a", "b", "c", "d", "e"]

    def test_drops_non_strings_and_blanks(self):
        assert normalize_tags(["kot", 7, None, "  "]) == ["kot"]

    @pytest.mark.parametrize("raw", [None, [], "kot", {"tags": []}, [1, 2], ["", " "]])
    def test_unusable_answer_yields_defaults(self, raw):
        assert normalize_tags(raw) == list(DEFAULT_TAGS)


class TestTagSynthesizer:
    @pytest.mark.asyncio
    async def test_returns_model_tags(self, fake_openrouter):
        tags = await TagSynthesizer(fake_openrouter).synthesize_tags("kot grający na gitarze")

        assert tags == ["kot", "gitara", "muzyka"]
        call = fake_openrouter.chat_calls[0]
        assert call["schema"] == "tags"
        assert call["temperature"] == 0.3

    @pytest.mark.asyncio
    async def test_failure_yields_defaults(self, fake_openrouter):
        fake_openrouter.tags = OpenRouterError("Invalid response format")

        tags = await TagSynthesizer(fake_openrouter).synthesize_tags("kot")

        assert tags == ["kolorowanka", "dla dzieci"]

    @pytest.mark.asyncio
    async def test_missing_tags_key_yields_defaults(self, fake_openrouter):
        fake_openrouter.tags = {"labels": ["kot"]}
        assert await TagSynthesizer(fake_openrouter).synthesize_tags("kot") == list(DEFAULT_TAGS)

    @pytest.mark.asyncio
    async def test_defaults_are_a_fresh_list(self, fake_openrouter):
        fake_openrouter.tags = OpenRouterError("boom")
        tags = await TagSynthesizer(fake_openrouter).synthesize_tags("kot")
        tags.append("x")
        assert DEFAULT_TAGS == ("kolorowanka", "dla dzieci")

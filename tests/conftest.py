"""Shared pytest fixtures for Malowanko tests."""

from __future__ import annotations

import base64
import io
import itertools
import json
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import Any, Generator

import pytest
from PIL import Image

from malowanko.core.config import MalowankoConfig
from malowanko.core.database import Database
from malowanko.core.favorites_db import FavoritesLedger
from malowanko.core.models import CurrentUser
from malowanko.core.quota import QuotaLedger
from malowanko.services.content_moderation import SafetyFilter
from malowanko.services.generation import GenerationOrchestrator
from malowanko.services.image_generator import ImageSynthesizer
from malowanko.services.tag_generator import TagSynthesizer

TEST_DAILY_LIMIT = 10


def make_png_base64(size: tuple[int, int] = (8, 8)) -> str:
    """Encode a small white PNG as base64."""
    buffer = io.BytesIO()
    Image.new("L", size, color=255).save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


class FakeOpenRouter:
    """Stand-in for :class:`OpenRouterClient` that records every call.

    Attributes:
        moderation: Answer (or exception) for safety checks.
        tags: Answer (or exception) for tag requests.
        images: Image messages (or exceptions), used in call order.  The
            last entry repeats once the list is exhausted.
    """

    def __init__(self, png_base64: str):
        self.moderation: Any = {"safe": True, "reason": ""}
        self.tags: Any = {"tags": ["kot", "gitara", "muzyka"]}
        self.images: list[Any] = [
            {
                "role": "assistant",
                "content": None,
                "images": [
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:image/png;base64,{png_base64}"},
                    }
                ],
            }
        ]
        self.chat_calls: list[dict[str, Any]] = []
        self.image_calls: list[str] = []
        self.closed = False

    @property
    def total_calls(self) -> int:
        return len(self.chat_calls) + len(self.image_calls)

    async def chat_completion(
        self,
        system_message,
        user_message,
        response_schema,
        *,
        model=None,
        temperature=0.0,
        max_tokens=200,
    ):
        self.chat_calls.append(
            {
                "schema": response_schema.name,
                "user_message": user_message,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        answer = self.moderation if response_schema.name == "safety_check" else self.tags
        if isinstance(answer, BaseException):
            raise answer
        return answer

    async def generate_image(self, prompt, *, model=None):
        index = min(len(self.image_calls), len(self.images) - 1)
        self.image_calls.append(prompt)
        outcome = self.images[index]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def close(self):
        self.closed = True


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> MalowankoConfig:
    """Create a test configuration with a temporary data directory.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        MalowankoConfig instance for testing
    """
    return MalowankoConfig(
        openrouter_api_key=None,
        data_dir=temp_dir / "data",
        daily_generation_limit=TEST_DAILY_LIMIT,
        _env_file=None,
    )


@pytest.fixture
def database(temp_dir: Path) -> Database:
    """Create an empty database with the full schema."""
    return Database(temp_dir / "test.db")


@pytest.fixture
def png_base64() -> str:
    return make_png_base64()


@pytest.fixture
def fake_openrouter(png_base64: str) -> FakeOpenRouter:
    """Fake OpenRouter client answering safe, tagged, with one PNG per call."""
    return FakeOpenRouter(png_base64)


@pytest.fixture
def quota(database: Database) -> QuotaLedger:
    return QuotaLedger(database, TEST_DAILY_LIMIT)


@pytest.fixture
def orchestrator(
    database: Database, quota: QuotaLedger, fake_openrouter: FakeOpenRouter
) -> GenerationOrchestrator:
    """Generation orchestrator wired to the fake OpenRouter client."""
    return GenerationOrchestrator(
        database,
        quota,
        SafetyFilter(fake_openrouter),
        ImageSynthesizer(fake_openrouter),
        TagSynthesizer(fake_openrouter),
    )


@pytest.fixture
def favorites(database: Database) -> FavoritesLedger:
    return FavoritesLedger(database)


@pytest.fixture
def alice() -> CurrentUser:
    return CurrentUser(id="user-alice", email="alice@example.com")


@pytest.fixture
def bob() -> CurrentUser:
    return CurrentUser(id="user-bob", email="bob@example.com")


@pytest.fixture
def insert_coloring(database: Database):
    """Factory inserting a coloring directly into the store.

    Each call gets a ``created_at`` one second later than the previous one,
    unless given explicitly.

    Returns:
        A function returning the new coloring id.
    """
    seconds = itertools.count()

    def _insert(
        user_id: str = "user-owner",
        *,
        prompt: str = "kot na drzewie",
        tags: tuple[str, ...] = ("kot", "drzewo"),
        age_group: str = "4-8",
        style: str = "klasyczny",
        created_at: str | None = None,
        favorites_count: int = 0,
        image_url: str = "data:image/png;base64,AAAA",
    ) -> str:
        coloring_id = str(uuid.uuid4())
        if created_at is None:
            n = next(seconds)
            created_at = f"2026-01-01T{n // 3600:02d}:{n // 60 % 60:02d}:{n % 60:02d}+00:00"
        with database.connect() as conn:
            conn.execute(
                "INSERT INTO colorings (id, user_id, image_url, prompt, tags, age_group, style, "
                "created_at, favorites_count) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    coloring_id,
                    user_id,
                    image_url,
                    prompt,
                    json.dumps(list(tags), ensure_ascii=False),
                    age_group,
                    style,
                    created_at,
                    favorites_count,
                ),
            )
        return coloring_id

    return _insert

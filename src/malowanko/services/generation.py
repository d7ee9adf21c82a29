"""Coloring generation pipeline.

:class:`GenerationOrchestrator` runs one generation request end to end:

1. Validate the input (prompt, age group, style, count).
2. Require a signed-in user.
3. Reserve quota for ``count`` generations, before any model call.
4. Screen the prompt with the safety filter.
5. Fan out ``count`` image calls and one tag call in a single task group.
   Any image failure cancels the rest of the batch.
6. Insert every coloring of the batch in one transaction.
7. Report the colorings and the remaining quota.

Failure Policy
--------------
A batch is all or nothing: either every coloring is persisted or none is.
When a reserved batch ends up persisting nothing (generation failure,
timeout, or storage failure) the reservation is refunded.  Safety rejections
are not refunded.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import uuid
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from malowanko.core.database import Database, utc_now
from malowanko.core.errors import ErrorCode, ImageGenerationTimeoutError
from malowanko.core.models import (
    ColoringDTO,
    CurrentUser,
    GenerateColoringInput,
    GenerateColoringResult,
    GenerationLimitResult,
)
from malowanko.core.quota import QuotaLedger, next_reset_time
from malowanko.core.results import ActionResult, action_error, action_success
from malowanko.services.content_moderation import SafetyFilter
from malowanko.services.image_generator import ImageSynthesizer
from malowanko.services.image_payload import ImagePayload
from malowanko.services.tag_generator import TagSynthesizer

logger = logging.getLogger(__name__)

_INSERT_COLORING_SQL = """
INSERT INTO colorings (id, user_id, image_url, prompt, tags, age_group, style, created_at)
VALUES (:id, :user_id, :image_url, :prompt, :tags, :age_group, :style, :created_at)
"""


class GenerationOrchestrator:
    """Validates, gates, generates, and persists coloring pages."""

    def __init__(
        self,
        database: Database,
        quota: QuotaLedger,
        safety: SafetyFilter,
        images: ImageSynthesizer,
        tags: TagSynthesizer,
    ) -> None:
        self._database = database
        self._quota = quota
        self._safety = safety
        self._images = images
        self._tags = tags

    async def generate(
        self,
        user: CurrentUser | None,
        payload: Mapping[str, Any] | GenerateColoringInput,
    ) -> ActionResult[GenerateColoringResult]:
        """Generate ``count`` coloring pages for the signed-in user.

        Args:
            user: The signed-in user, or None.
            payload: Raw request body or an already validated input.

        Returns:
            The persisted colorings (sharing one tag set) and the remaining
            quota, or an error envelope.
        """
        try:
            data = GenerateColoringInput.model_validate(
                payload.model_dump() if isinstance(payload, GenerateColoringInput) else payload
            )
        except ValidationError as e:
            logger.warning(f"Generation input validation failed: {e.error_count()} error(s)")
            return action_error(ErrorCode.VALIDATION_ERROR)

        if user is None:
            logger.warning("Unauthorized coloring generation attempt")
            return action_error(ErrorCode.UNAUTHORIZED)

        reservation = self._quota.reserve(user.id, data.count)
        if not reservation.allowed:
            if reservation.error:
                return action_error(ErrorCode.INTERNAL_ERROR)
            return action_error(ErrorCode.DAILY_LIMIT_EXCEEDED)

        safety = await self._safety.check_prompt_safety(data.prompt)
        if not safety.safe:
            logger.warning(f"Unsafe prompt rejected for user {user.id}: reason={safety.reason!r}")
            return action_error(ErrorCode.UNSAFE_CONTENT)

        logger.info(
            f"Starting generation for user {user.id}: count={data.count}, "
            f"age_group={data.age_group}, style={data.style}, prompt_length={len(data.prompt)}"
        )

        try:
            images, tags = await self._synthesize_batch(data)
        except ExceptionGroup as eg:
            self._quota.refund(user.id, data.count)
            if eg.subgroup(ImageGenerationTimeoutError) is not None:
                logger.error(f"Generation timed out for user {user.id}: {eg.exceptions[0]}")
                return action_error(ErrorCode.GENERATION_TIMEOUT)
            logger.error(f"Generation failed for user {user.id}: {eg.exceptions[0]}")
            return action_error(ErrorCode.GENERATION_FAILED)

        try:
            colorings = self._persist(user.id, data, images, tags)
        except sqlite3.Error as e:
            self._quota.refund(user.id, data.count)
            logger.error(f"Failed to save {len(images)} coloring(s) for user {user.id}: {e}")
            return action_error(ErrorCode.INTERNAL_ERROR)

        remaining = self._quota.remaining(user.id)
        logger.info(
            f"Generation request completed for user {user.id}: "
            f"generated={len(colorings)}, remaining={remaining}"
        )
        return action_success(
            GenerateColoringResult(colorings=colorings, remaining_generations=remaining)
        )

    async def _synthesize_batch(
        self, data: GenerateColoringInput
    ) -> tuple[list[ImagePayload], list[str]]:
        """Run all image calls and the tag call concurrently.

        Raises:
            ExceptionGroup: If any call raised.  Remaining calls are
                cancelled.
        """
        async with asyncio.TaskGroup() as tg:
            image_tasks = [
                tg.create_task(
                    self._images.synthesize_image(data.prompt, data.age_group, data.style)
                )
                for _ in range(data.count)
            ]
            tags_task = tg.create_task(self._tags.synthesize_tags(data.prompt))

        return [task.result() for task in image_tasks], tags_task.result()

    def _persist(
        self,
        user_id: str,
        data: GenerateColoringInput,
        images: list[ImagePayload],
        tags: list[str],
    ) -> list[ColoringDTO]:
        """Insert the batch in a single transaction.

        Raises:
            sqlite3.Error: If any insert fails.  No coloring of the batch is
                persisted in that case.
        """
        created_at = utc_now()
        colorings = [
            ColoringDTO(
                id=str(uuid.uuid4()),
                image_url=image.data_url,
                prompt=data.prompt,
                tags=list(tags),
                age_group=data.age_group,
                style=data.style,
                created_at=created_at,
                favorites_count=0,
            )
            for image in images
        ]

        with self._database.connect() as conn:
            conn.executemany(
                _INSERT_COLORING_SQL,
                [
                    {
                        **coloring.model_dump(
                            exclude={"tags", "favorites_count"}
                        ),
                        "user_id": user_id,
                        "tags": json.dumps(coloring.tags, ensure_ascii=False),
                    }
                    for coloring in colorings
                ],
            )

        for coloring in colorings:
            logger.info(f"Coloring saved: {coloring.id} for user {user_id}")
        return colorings

    def get_remaining_quota(self, user: CurrentUser | None) -> ActionResult[GenerationLimitResult]:
        """Report the user's remaining generations and the next reset time."""
        if user is None:
            logger.warning("Unauthorized generation limit request")
            return action_error(ErrorCode.UNAUTHORIZED)

        return action_success(
            GenerationLimitResult(
                remaining=self._quota.remaining(user.id),
                limit=self._quota.daily_limit,
                resets_at=next_reset_time(self._quota.current_date()),
            )
        )

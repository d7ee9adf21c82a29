"""Success/error envelope returned by every Malowanko action.

Actions never raise past their boundary.  They return either an
:class:`ActionSuccess` carrying ``data`` or an :class:`ActionFailure`
carrying an :class:`ActionError`.  The ``success`` literal is the tag of the
sum type, so callers can branch on it and FastAPI can serialise either
branch directly::

    result = await orchestrator.generate(user, payload)
    if result.success:
        colorings = result.data.colorings
    else:
        logger.warning(result.error.code)
"""

from __future__ import annotations

from typing import Generic, Literal, TypeVar, Union

from pydantic import BaseModel, Field

from malowanko.core.errors import ERROR_MESSAGES, RETRYABLE_CODES, ErrorCode

T = TypeVar("T")


class ActionError(BaseModel):
    """Error details of a failed action.

    Attributes:
        code: Machine-readable error code.
        message: Short user-facing message.
        retryable: Whether the UI may offer "try again".
    """

    code: ErrorCode
    message: str
    retryable: bool = False


class ActionSuccess(BaseModel, Generic[T]):
    """Successful action result."""

    success: Literal[True] = True
    data: T


class ActionFailure(BaseModel):
    """Failed action result."""

    success: Literal[False] = False
    error: ActionError


ActionResult = Union[ActionSuccess[T], ActionFailure]


def action_success(data: T = None) -> ActionSuccess[T]:
    """Wrap *data* in a success envelope."""
    return ActionSuccess(data=data)


def action_error(code: ErrorCode, message: str | None = None) -> ActionFailure:
    """Build an error envelope.

    Args:
        code: Error code from the taxonomy.
        message: Optional message override.  Defaults to the standard
            message registered for *code*.

    Returns:
        An :class:`ActionFailure` with ``success=False``.
    """
    return ActionFailure(
        error=ActionError(
            code=code,
            message=message or ERROR_MESSAGES[code],
            retryable=code in RETRYABLE_CODES,
        ),
    )


class Pagination(BaseModel):
    """Pagination block of a reader response."""

    page: int
    limit: int
    total: int
    total_pages: int = Field(description="ceil(total / limit)")


class PaginatedResponse(BaseModel, Generic[T]):
    """A page of list items plus pagination metadata."""

    items: list[T]
    pagination: Pagination

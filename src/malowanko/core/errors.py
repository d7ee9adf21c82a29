"""Error taxonomy and internal exception types.

Every operation exposed to the HTTP layer reports failures with one of the
:class:`ErrorCode` values and a short user-facing message from
:data:`ERROR_MESSAGES`.  Provider and storage exceptions never leave a
component unclassified: they are caught where the call is made and turned
into one of the exception types below, which the action layer converts into
an error envelope (see :mod:`malowanko.core.results`).
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Machine-readable error codes carried by every error envelope."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    DAILY_LIMIT_EXCEEDED = "DAILY_LIMIT_EXCEEDED"
    UNSAFE_CONTENT = "UNSAFE_CONTENT"
    GENERATION_FAILED = "GENERATION_FAILED"
    GENERATION_TIMEOUT = "GENERATION_TIMEOUT"
    NOT_FOUND = "NOT_FOUND"
    CANNOT_REMOVE_OWN = "CANNOT_REMOVE_OWN"
    ALREADY_IN_LIBRARY = "ALREADY_IN_LIBRARY"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# User-facing messages.  The application UI is Polish, so are these.
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.VALIDATION_ERROR: "Wprowadzone dane są nieprawidłowe.",
    ErrorCode.UNAUTHORIZED: "Musisz być zalogowany, aby wykonać tę akcję.",
    ErrorCode.DAILY_LIMIT_EXCEEDED: "Wykorzystałeś dzienny limit generowań. Wróć jutro!",
    ErrorCode.UNSAFE_CONTENT: (
        "Ups! Ten temat nie nadaje się do kolorowanki. Spróbuj czegoś innego."
    ),
    ErrorCode.GENERATION_FAILED: "Nie udało się wygenerować kolorowanki. Spróbuj ponownie.",
    ErrorCode.GENERATION_TIMEOUT: "Generowanie trwa zbyt długo. Spróbuj ponownie.",
    ErrorCode.NOT_FOUND: "Nie znaleziono zasobu.",
    ErrorCode.CANNOT_REMOVE_OWN: (
        "Nie można usunąć własnej wygenerowanej kolorowanki z biblioteki."
    ),
    ErrorCode.ALREADY_IN_LIBRARY: "Ta kolorowanka jest już w Twojej bibliotece.",
    ErrorCode.INTERNAL_ERROR: "Wystąpił nieoczekiwany błąd. Spróbuj ponownie później.",
}

# Codes for which the UI may offer "try again".
RETRYABLE_CODES = frozenset(
    {
        ErrorCode.GENERATION_FAILED,
        ErrorCode.GENERATION_TIMEOUT,
        ErrorCode.INTERNAL_ERROR,
    }
)


class MalowankoError(Exception):
    """Base class for all internal errors raised by Malowanko components."""


class StorageError(MalowankoError):
    """The SQLite store could not complete an operation."""


class QueryValidationError(MalowankoError):
    """Reader parameters failed validation.

    The message is intended to be displayed directly to the user.
    """


class UnauthorizedError(MalowankoError):
    """A reader that requires an identity was called anonymously."""


class LibraryIntegrityError(StorageError):
    """A library row is missing a field that must never be null."""


class OpenRouterError(MalowankoError):
    """An OpenRouter request failed (HTTP error, bad payload, missing key)."""


class OpenRouterTimeoutError(OpenRouterError):
    """An OpenRouter request exceeded its timeout."""


class ImageGenerationError(MalowankoError):
    """The image model did not produce a usable coloring page."""


class ImageGenerationTimeoutError(ImageGenerationError):
    """The image model did not answer within the image timeout."""

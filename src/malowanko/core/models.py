"""Pydantic models shared by the Malowanko services and the REST API.

These models define the validated inputs of every action and the shapes of
the data returned to callers.  FastAPI uses them for serialisation and
OpenAPI documentation; the services use them for input validation, so a
:class:`pydantic.ValidationError` raised here always maps to
``VALIDATION_ERROR``.

Models
------
GenerateColoringInput
    Input of the generation orchestrator (prompt, age group, style, count).
ColoringDTO
    A full coloring record including its image data URL.
GalleryColoringListItem / LibraryColoringListItem
    List projections without the (large) image payload.
GalleryQueryParams / LibraryQueryParams
    Reader filters, sorting, and pagination.
"""

from __future__ import annotations

import uuid
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator

# ---------------------------------------------------------------------------
# Enumerations.
# ---------------------------------------------------------------------------

AgeGroup = Literal["0-3", "4-8", "9-12"]

# prosty = simple, klasyczny = classic, szczegolowy = detailed.
ColoringStyle = Literal["prosty", "klasyczny", "szczegolowy", "mandala"]

GallerySortOrder = Literal["newest", "popular"]
LibrarySortOrder = Literal["added", "created"]

AGE_GROUPS: tuple[str, ...] = ("0-3", "4-8", "9-12")
COLORING_STYLES: tuple[str, ...] = ("prosty", "klasyczny", "szczegolowy", "mandala")

MAX_PROMPT_LENGTH = 500
MAX_SEARCH_LENGTH = 200
MAX_PAGE_LIMIT = 50
MAX_GENERATION_COUNT = 5

Prompt = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=1, max_length=MAX_PROMPT_LENGTH),
]

SearchText = Annotated[str, StringConstraints(strip_whitespace=True, max_length=MAX_SEARCH_LENGTH)]


# ---------------------------------------------------------------------------
# Identity.
# ---------------------------------------------------------------------------


class CurrentUser(BaseModel):
    """The authenticated caller, as resolved by the identity provider."""

    id: str
    email: str | None = None


# ---------------------------------------------------------------------------
# Generation.
# ---------------------------------------------------------------------------


class GenerateColoringInput(BaseModel):
    """Input of ``POST /api/generate``.

    Attributes:
        prompt: Description of the coloring page, 1-500 characters after
            trimming surrounding whitespace.
        age_group: Target age group, controls complexity.
        style: Artistic style of the page.
        count: Number of images to generate (1-5).  Defaults to 1.
    """

    model_config = ConfigDict(extra="ignore")

    prompt: Prompt = Field(..., description="Description of the coloring page.")
    age_group: AgeGroup = Field(..., description="Target age group: '0-3', '4-8' or '9-12'.")
    style: ColoringStyle = Field(..., description="Style of the coloring page.")
    count: int = Field(
        default=1,
        ge=1,
        le=MAX_GENERATION_COUNT,
        strict=True,
        description="Number of images to generate (1-5).",
    )


class ColoringDTO(BaseModel):
    """A persisted coloring, including the image data URL."""

    id: str
    image_url: str
    prompt: str
    tags: list[str]
    age_group: AgeGroup
    style: ColoringStyle
    created_at: str
    favorites_count: int


class GenerateColoringResult(BaseModel):
    """Result of a successful generation request."""

    colorings: list[ColoringDTO]
    remaining_generations: int


class GenerationLimitResult(BaseModel):
    """Quota status of the current user."""

    remaining: int
    limit: int
    resets_at: str = Field(description="ISO timestamp of the next UTC midnight.")


# ---------------------------------------------------------------------------
# Favorites and library.
# ---------------------------------------------------------------------------


class ToggleGlobalFavoriteResult(BaseModel):
    """New global favorite state and the recomputed favorites count."""

    is_favorite: bool
    favorites_count: int


class ToggleFavoriteResult(BaseModel):
    """New library favorite state."""

    is_favorite: bool


# ---------------------------------------------------------------------------
# Readers.
# ---------------------------------------------------------------------------


class GalleryColoringListItem(BaseModel):
    """Gallery list projection.  The image is fetched separately by id."""

    id: str
    prompt: str
    tags: list[str]
    age_group: AgeGroup
    style: ColoringStyle
    created_at: str
    favorites_count: int
    is_favorited: bool | None = Field(
        default=None,
        description="Favorite status for the caller; omitted for anonymous readers.",
    )


class GalleryColoringDTO(ColoringDTO):
    """A full coloring as shown in the preview, with the caller's favorite status."""

    is_favorited: bool | None = None


class LibraryColoringListItem(BaseModel):
    """Library list projection.  The image is fetched separately by id."""

    id: str
    prompt: str
    tags: list[str]
    age_group: AgeGroup
    style: ColoringStyle
    created_at: str
    favorites_count: int
    added_at: str
    is_library_favorite: bool
    is_global_favorite: bool


class GalleryQueryParams(BaseModel):
    """Filters, sort order, and pagination of the public gallery."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=MAX_PAGE_LIMIT)
    search: SearchText | None = None
    age_groups: list[AgeGroup] | None = Field(default=None, max_length=len(AGE_GROUPS))
    styles: list[ColoringStyle] | None = Field(default=None, max_length=len(COLORING_STYLES))
    sort_by: GallerySortOrder = "newest"

    @field_validator("search", "age_groups", "styles")
    @classmethod
    def _empty_as_unset(cls, value):
        # An empty search box or an empty filter selection means "no filter"
        return value or None


class LibraryQueryParams(BaseModel):
    """Filters, sort order, and pagination of the user library."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=MAX_PAGE_LIMIT)
    favorites_only: bool = False
    sort_by: LibrarySortOrder = "added"


def parse_coloring_id(value: object) -> str | None:
    """Return the canonical form of a coloring UUID, or None if malformed."""
    if not isinstance(value, str):
        return None
    try:
        return str(uuid.UUID(value))
    except ValueError:
        return None

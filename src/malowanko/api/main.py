"""Malowanko — FastAPI Application.

This module is the single entry point for the web application.  It defines
the application factory, all REST API routes, and the ``main()`` CLI
function that launches the uvicorn server.

Architecture
------------
- **Actions** (generation, favorites, library changes) return the uniform
  ``{success, data}`` / ``{success, error: {code, message}}`` envelope.  The
  HTTP status reflects the error code, see :data:`ERROR_STATUS`.
- **Readers** (gallery, library, preview) return plain JSON and report
  invalid parameters, missing sign-in, and storage failures as
  ``HTTPException``.
- **Identity** is a bearer token issued by
  :class:`~malowanko.core.identity.SessionStore` once the external sign-in
  provider has verified the user.  Anonymous callers may read the gallery.

Endpoints
---------
========  ==================================  ==============================
Method    Path                                Purpose
========  ==================================  ==============================
POST      ``/api/generate``                   Generate 1-5 coloring pages
GET       ``/api/generation-limit``           Remaining daily quota
GET       ``/api/gallery``                    Paginated public gallery
GET       ``/api/colorings/{id}``             Full coloring for the preview
GET       ``/api/colorings/{id}/image``       Image data URL
POST      ``/api/colorings/{id}/favorite``    Toggle global favorite
GET       ``/api/library``                    Paginated personal library
POST      ``/api/library/{id}``               Save coloring to the library
POST      ``/api/library/{id}/favorite``      Toggle library favorite
DELETE    ``/api/library/{id}``               Remove from the library
POST      ``/api/auth/logout``                Revoke the current session
GET       ``/api/health``                     Liveness check
========  ==================================  ==============================

Usage
-----
CLI (installed entry point)::

    malowanko

Direct invocation::

    python -m malowanko.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from malowanko import __version__
from malowanko.api.gallery_store import GalleryReader
from malowanko.api.library_store import LibraryReader
from malowanko.core.config import MalowankoConfig, config
from malowanko.core.database import Database
from malowanko.core.errors import ErrorCode, QueryValidationError, StorageError, UnauthorizedError
from malowanko.core.favorites_db import FavoritesLedger
from malowanko.core.identity import SessionStore
from malowanko.core.image_cache import ImageCache
from malowanko.core.models import CurrentUser
from malowanko.core.quota import QuotaLedger
from malowanko.core.results import ActionFailure, ActionSuccess
from malowanko.services.content_moderation import SafetyFilter
from malowanko.services.generation import GenerationOrchestrator
from malowanko.services.image_generator import ImageSynthesizer
from malowanko.services.openrouter import OpenRouterClient
from malowanko.services.tag_generator import TagSynthesizer

logger = logging.getLogger(__name__)

# HTTP status returned with each error envelope.
ERROR_STATUS: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.CANNOT_REMOVE_OWN: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.ALREADY_IN_LIBRARY: 409,
    ErrorCode.UNSAFE_CONTENT: 422,
    ErrorCode.DAILY_LIMIT_EXCEEDED: 429,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.GENERATION_FAILED: 502,
    ErrorCode.GENERATION_TIMEOUT: 504,
}


# ---------------------------------------------------------------------------
# Service wiring.
# ---------------------------------------------------------------------------


@dataclass
class AppServices:
    """Components shared by all request handlers."""

    sessions: SessionStore
    generation: GenerationOrchestrator
    favorites: FavoritesLedger
    gallery: GalleryReader
    library: LibraryReader
    openrouter: OpenRouterClient | None = None


def build_services(settings: MalowankoConfig) -> AppServices:
    """Create every component from the configuration.

    Args:
        settings: Application configuration.

    Returns:
        The wired services, sharing one database and one OpenRouter client.
    """
    database = Database(settings.database_path)
    openrouter = OpenRouterClient.from_config(settings)
    quota = QuotaLedger(database, settings.daily_generation_limit)

    return AppServices(
        sessions=SessionStore(database, settings.session_ttl_hours),
        generation=GenerationOrchestrator(
            database,
            quota,
            SafetyFilter(openrouter),
            ImageSynthesizer(openrouter),
            TagSynthesizer(openrouter),
        ),
        favorites=FavoritesLedger(database),
        gallery=GalleryReader(database, ImageCache(settings.image_cache_size)),
        library=LibraryReader(database),
        openrouter=openrouter,
    )


# ---------------------------------------------------------------------------
# Request helpers.
# ---------------------------------------------------------------------------


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def get_current_user(
    services: AppServices = Depends(get_services),
    authorization: str | None = Header(default=None),
) -> CurrentUser | None:
    """Resolve the ``Authorization: Bearer <token>`` header to a user.

    Missing, malformed, unknown, and expired tokens all resolve to None.
    """
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return services.sessions.get_current_user(token.strip())


def envelope_response(result: ActionSuccess | ActionFailure) -> JSONResponse:
    """Serialise an action envelope with the status matching its error code."""
    status_code = 200 if result.success else ERROR_STATUS[result.error.code]
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@contextmanager
def reader_errors() -> Iterator[None]:
    """Translate reader exceptions into HTTP errors."""
    try:
        yield
    except QueryValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except UnauthorizedError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


def create_app(
    services: AppServices | None = None,
    settings: MalowankoConfig | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        services: Pre-built services (tests inject fakes here).  When
            omitted, services are built from *settings* at startup.
        settings: Configuration used to build services.  Defaults to the
            global :data:`~malowanko.core.config.config`.

    Returns:
        The configured application.
    """
    settings = settings or config

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # --- Startup -------------------------------------------------------
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services(settings)
            logger.info(f"Services initialised (database: {settings.database_path})")

        yield

        # --- Shutdown ------------------------------------------------------
        openrouter = app.state.services.openrouter
        if openrouter is not None:
            await openrouter.close()
            logger.info("OpenRouter client closed on shutdown.")

    app = FastAPI(
        title="Malowanko",
        description="AI coloring page generator for children.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    # Allow cross-origin requests so the frontend can be served from a
    # different port during development.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Generation --------------------------------------------------------

    @app.post("/api/generate")
    async def generate(
        request: Request,
        user: CurrentUser | None = Depends(get_current_user),
        services: AppServices = Depends(get_services),
    ) -> JSONResponse:
        """Generate coloring pages.

        The body is validated by the orchestrator, so a missing, malformed
        or non-object body is reported as a ``VALIDATION_ERROR`` envelope
        rather than a 422.
        """
        try:
            payload = await request.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        result = await services.generation.generate(user, payload)
        return envelope_response(result)

    @app.get("/api/generation-limit")
    async def generation_limit(
        user: CurrentUser | None = Depends(get_current_user),
        services: AppServices = Depends(get_services),
    ) -> JSONResponse:
        """Return ``{remaining, limit, resets_at}`` for the current user."""
        return envelope_response(services.generation.get_remaining_quota(user))

    # --- Gallery -----------------------------------------------------------

    @app.get("/api/gallery")
    async def gallery(
        page: int = 1,
        limit: int = 20,
        search: str | None = None,
        age_groups: list[str] | None = Query(default=None),
        styles: list[str] | None = Query(default=None),
        sort_by: str = "newest",
        user: CurrentUser | None = Depends(get_current_user),
        services: AppServices = Depends(get_services),
    ) -> dict:
        """Return a page of the public gallery without image payloads."""
        params = {
            "page": page,
            "limit": limit,
            "search": search,
            "age_groups": age_groups,
            "styles": styles,
            "sort_by": sort_by,
        }
        with reader_errors():
            response = services.gallery.query_gallery(params, user)
        return response.model_dump(mode="json")

    @app.get("/api/colorings/{coloring_id}")
    async def coloring_preview(
        coloring_id: str,
        user: CurrentUser | None = Depends(get_current_user),
        services: AppServices = Depends(get_services),
    ) -> dict:
        """Return a full coloring, including its image, for the preview."""
        with reader_errors():
            coloring = services.gallery.get_coloring_by_id(coloring_id, user)
        if coloring is None:
            raise HTTPException(status_code=404, detail="Coloring not found")
        return coloring.model_dump(mode="json")

    @app.get("/api/colorings/{coloring_id}/image")
    async def coloring_image(
        coloring_id: str,
        services: AppServices = Depends(get_services),
    ) -> JSONResponse:
        """Return the image data URL of a coloring."""
        return envelope_response(services.gallery.fetch_image_by_id(coloring_id))

    @app.post("/api/colorings/{coloring_id}/favorite")
    async def toggle_global_favorite(
        coloring_id: str,
        user: CurrentUser | None = Depends(get_current_user),
        services: AppServices = Depends(get_services),
    ) -> JSONResponse:
        """Like or unlike a coloring."""
        return envelope_response(services.favorites.toggle_global_favorite(user, coloring_id))

    # --- Library -----------------------------------------------------------

    @app.get("/api/library")
    async def library(
        page: int = 1,
        limit: int = 20,
        favorites_only: bool = False,
        sort_by: str = "added",
        user: CurrentUser | None = Depends(get_current_user),
        services: AppServices = Depends(get_services),
    ) -> dict:
        """Return a page of the current user's library."""
        params = {
            "page": page,
            "limit": limit,
            "favorites_only": favorites_only,
            "sort_by": sort_by,
        }
        with reader_errors():
            response = services.library.query_library(user, params)
        return response.model_dump(mode="json")

    @app.post("/api/library/{coloring_id}")
    async def add_to_library(
        coloring_id: str,
        user: CurrentUser | None = Depends(get_current_user),
        services: AppServices = Depends(get_services),
    ) -> JSONResponse:
        """Save a gallery coloring into the current user's library."""
        return envelope_response(services.favorites.add_to_library(user, coloring_id))

    @app.post("/api/library/{coloring_id}/favorite")
    async def toggle_library_favorite(
        coloring_id: str,
        user: CurrentUser | None = Depends(get_current_user),
        services: AppServices = Depends(get_services),
    ) -> JSONResponse:
        """Flip the library favorite flag of a library entry."""
        return envelope_response(services.favorites.toggle_library_favorite(user, coloring_id))

    @app.delete("/api/library/{coloring_id}")
    async def remove_from_library(
        coloring_id: str,
        user: CurrentUser | None = Depends(get_current_user),
        services: AppServices = Depends(get_services),
    ) -> JSONResponse:
        """Remove a saved coloring from the current user's library."""
        return envelope_response(services.favorites.remove_from_library(user, coloring_id))

    # --- Session and health ------------------------------------------------

    @app.post("/api/auth/logout")
    async def logout(
        authorization: str | None = Header(default=None),
        services: AppServices = Depends(get_services),
    ) -> dict:
        """Revoke the bearer token sent with the request, if any."""
        _, _, token = (authorization or "").partition(" ")
        revoked = services.sessions.revoke_session(token.strip()) if token.strip() else False
        return {"success": True, "revoked": revoked}

    @app.get("/api/health")
    async def health() -> dict:
        return {"status": "ok", "version": __version__}

    return app


app = create_app()


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host and port from :data:`~malowanko.core.config.config` (which
    loads from ``MALOWANKO_SERVER_HOST`` and ``MALOWANKO_SERVER_PORT``
    environment variables).  Defaults to ``0.0.0.0:8000``.

    This function is registered as the ``malowanko`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(
        "malowanko.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()

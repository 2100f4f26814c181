"""Character Studio — FastAPI Application.

This module is the single entry point for the backend.  It defines the
application factory, the module-level ``app`` instance used by uvicorn, all
REST API routes, and the ``main()`` CLI function that launches the server.

Architecture
------------
- **Configuration** comes from :data:`charstudio.core.config.config`
  (``CHARSTUDIO_*`` environment variables).
- **External clients** (identity verifier, blob and profile stores, Gemini
  clients) are built once in the lifespan startup phase and stored on
  ``app.state.backends``.
- **Request handling** is delegated to
  :class:`~charstudio.core.library.CharacterLibrary`; routes only parse the
  request, resolve the caller and serialise the result.
- **Request bodies** are parsed only after the caller is authenticated, so
  an anonymous request is rejected with 401 whatever its payload.
- **Errors** from the client-facing taxonomy are rendered as
  ``{"error": {"code": ..., "message": ...}}`` with a matching HTTP status.

Endpoints
---------
========  ================================  ==================================
Method    Path                              Purpose
========  ================================  ==================================
GET       ``/health``                       Liveness check (no auth)
GET       ``/blobs/{path}``                 Caller's stored image (local storage)
GET       ``/api/characters``               List the caller's characters
GET       ``/api/characters/{id}``          Single character
POST      ``/api/characters/pair``          Analyse and store two images
POST      ``/api/visualizations``           Draw a character in a new scene
========  ================================  ==================================

Usage
-----
CLI (installed entry point)::

    charstudio

Direct invocation::

    python -m charstudio.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from charstudio import __version__
from charstudio.api.models import (
    CharacterPairResponse,
    CreatePairRequest,
    HealthResponse,
    VisualizationRequest,
    VisualizationResponse,
)
from charstudio.api.security import current_user
from charstudio.core.backends import Backends, build_backends
from charstudio.core.blob_store import LOCAL_MOUNT
from charstudio.core.config import CharStudioConfig, config
from charstudio.core.errors import CharacterStudioError, Internal, InvalidArgument
from charstudio.core.library import CharacterLibrary
from charstudio.core.models import CharacterProfile

logger = logging.getLogger(__name__)

router = APIRouter()
blob_router = APIRouter()


def get_library(request: Request) -> CharacterLibrary:
    """Return the :class:`CharacterLibrary` created at startup."""
    return request.app.state.library


# ---------------------------------------------------------------------------
# Request bodies.
# ---------------------------------------------------------------------------


def _invalid_payload(errors: list[dict]) -> InvalidArgument:
    """Build an ``invalid-argument`` error naming the offending fields.

    Only the field locations are reported, never the submitted values
    (which may be large base64 payloads).
    """
    fields = sorted(
        {
            ".".join(p for p in err.get("loc", ()) if isinstance(p, str) and p != "body")
            for err in errors
        }
        - {""}
    )
    if fields:
        return InvalidArgument(f"Invalid request payload: {', '.join(fields)}.")
    return InvalidArgument("Invalid request payload.")


async def _read_body(request: Request, model: type[BaseModel]) -> BaseModel:
    try:
        payload = await request.json()
    except ValueError:
        raise InvalidArgument("The request body must be a JSON object.") from None
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise _invalid_payload(exc.errors()) from None


async def pair_request(request: Request) -> CreatePairRequest:
    return await _read_body(request, CreatePairRequest)


async def visualization_request(request: Request) -> VisualizationRequest:
    return await _read_body(request, VisualizationRequest)


def _body_schema(model: type[BaseModel]) -> dict:
    """OpenAPI ``requestBody`` for a route that reads its body itself."""
    return {
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": model.model_json_schema(by_alias=True)}},
        }
    }


# ---------------------------------------------------------------------------
# Error rendering.
# ---------------------------------------------------------------------------


async def _handle_studio_error(request: Request, exc: CharacterStudioError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render Pydantic request validation failures as ``invalid-argument``."""
    error = _invalid_payload(exc.errors())
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    error = Internal()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Return a fixed success status.  No authentication required."""
    return HealthResponse(status="ok", version=__version__)


@router.get("/api/characters", response_model=list[CharacterProfile])
async def list_characters(
    uid: str = Depends(current_user),
    library: CharacterLibrary = Depends(get_library),
) -> list[CharacterProfile]:
    """Return every character owned by the caller, newest first.

    Returns:
        List of character profiles sorted by ``createdAt`` descending.
    """
    return await library.list_library(uid)


@router.get("/api/characters/{character_id}", response_model=CharacterProfile)
async def get_character(
    character_id: str,
    uid: str = Depends(current_user),
    library: CharacterLibrary = Depends(get_library),
) -> CharacterProfile:
    """Return a single character owned by the caller.

    Args:
        character_id: Profile ID.

    Raises:
        NotFound: 404 if no character has this ID.
        PermissionDenied: 403 if the character belongs to another user.
    """
    return await library.get_character(uid, character_id)


@router.post(
    "/api/characters/pair",
    response_model=CharacterPairResponse,
    openapi_extra=_body_schema(CreatePairRequest),
)
async def create_character_pair(
    uid: str = Depends(current_user),
    req: CreatePairRequest = Depends(pair_request),
    library: CharacterLibrary = Depends(get_library),
) -> CharacterPairResponse:
    """Analyse two uploaded character images and store both profiles.

    This endpoint:

    1. Decodes both base64 images (400 if anything is missing or invalid).
    2. For each image, concurrently: stores the blob, asks the vision model
       for a name, description and keywords, and saves the profile.
    3. Returns both profiles in request order.

    Raises:
        InvalidArgument: 400 for missing or undecodable images.
        FailedPrecondition: 412 if the Gemini API key is not configured.
        Internal: 500 if storage or analysis fails for either image.
    """
    image_a, image_b = req.decode_images()
    pair = await library.create_character_pair(uid, image_a, image_b)
    return CharacterPairResponse.from_pair(pair)


@router.post(
    "/api/visualizations",
    response_model=VisualizationResponse,
    openapi_extra=_body_schema(VisualizationRequest),
)
async def generate_visualization(
    uid: str = Depends(current_user),
    req: VisualizationRequest = Depends(visualization_request),
    library: CharacterLibrary = Depends(get_library),
) -> VisualizationResponse:
    """Generate a new image of a stored character in the requested scene.

    Raises:
        InvalidArgument: 400 if ``characterId`` or ``prompt`` is missing.
        NotFound: 404 if no character has this ID.
        PermissionDenied: 403 if the character belongs to another user.
        FailedPrecondition: 412 if the Gemini API key is not configured.
        Internal: 500 if the reference image cannot be read or the model
            returns no image.
    """
    image = await library.generate_visualization(uid, req.character_id, req.prompt)
    return VisualizationResponse.from_image(image)


@blob_router.get(f"/{LOCAL_MOUNT}/{{blob_path:path}}", include_in_schema=False)
async def get_stored_image(
    blob_path: str,
    uid: str = Depends(current_user),
    library: CharacterLibrary = Depends(get_library),
) -> Response:
    """Serve one of the caller's stored reference images (local storage).

    Raises:
        NotFound: 404 if nothing is stored at this path.
        PermissionDenied: 403 if the image belongs to another user.
    """
    stored = await library.read_image(uid, blob_path)
    return Response(
        content=stored.data,
        media_type=stored.content_type or "application/octet-stream",
    )


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


def create_app(
    app_config: CharStudioConfig | None = None,
    backends: Backends | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        app_config: Configuration to use.  Defaults to the global ``config``.
        backends: Pre-built external clients.  When omitted they are built
            from ``app_config`` during startup.

    Returns:
        The configured application.
    """
    app_config = app_config or config

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Create the external clients before serving any request."""
        app.state.backends = backends or build_backends(app_config)
        app.state.library = CharacterLibrary(app.state.backends)
        logger.info("Character Studio backend started.")

        yield  # Application runs here.

        logger.info("Character Studio backend stopped.")

    app = FastAPI(
        title="Character Studio",
        description="Character analysis and visualization API backed by Gemini and Firebase.",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(CharacterStudioError, _handle_studio_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(Exception, _handle_unexpected_error)

    app.include_router(router)

    # Local durable URLs point back at this app; only their owner may read them.
    if app_config.storage_backend == "local":
        app.include_router(blob_router)

    return app


app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port and log level from :data:`~charstudio.core.config.config`
    (``CHARSTUDIO_SERVER_HOST``, ``CHARSTUDIO_SERVER_PORT``,
    ``CHARSTUDIO_LOG_LEVEL``).  Defaults to ``0.0.0.0:8080``.

    This function is registered as the ``charstudio`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(
        "charstudio.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()

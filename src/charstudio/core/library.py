"""Request handlers for the character library.

:class:`CharacterLibrary` implements the operations exposed by the API,
independent of the HTTP transport: the four library operations plus the
owner-checked download of stored reference images.

=====================  ==================================================
Operation              Method
=====================  ==================================================
listLibrary            :meth:`CharacterLibrary.list_library`
getById                :meth:`CharacterLibrary.get_character`
createCharacterPair    :meth:`CharacterLibrary.create_character_pair`
generateVisualization  :meth:`CharacterLibrary.generate_visualization`
readImage              :meth:`CharacterLibrary.read_image`
=====================  ==================================================

Error Handling
--------------
Each operation validates its input first and raises
:class:`~charstudio.core.errors.InvalidArgument` before touching any backend.
Errors that are already part of the client-facing taxonomy pass through
unchanged.  Anything else raised by a store or AI client is logged with its
full detail and replaced by :class:`~charstudio.core.errors.Internal`
carrying a generic message, so provider error text never reaches the caller.

Concurrency
-----------
The store and AI clients are blocking, so every call into them runs in a
worker thread.  ``create_character_pair`` runs its two analyze-and-save
sequences as two concurrent threads and waits for both.  There is no
rollback: when one side fails, the other side's profile stays persisted and
is logged as orphaned.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import PurePosixPath

from charstudio.core.backends import Backends
from charstudio.core.blob_store import UPLOAD_PREFIX, blob_path_for, blob_path_from_url
from charstudio.core.errors import (
    BlobNotFoundError,
    CharacterStudioError,
    FailedPrecondition,
    Internal,
    InvalidArgument,
    NotFound,
    PermissionDenied,
)
from charstudio.core.models import (
    CharacterPair,
    CharacterProfile,
    GeneratedImage,
    ImageInput,
    StoredBlob,
)
from charstudio.core.prompts import build_visualization_prompt
from charstudio.core.synthesis import ImageSynthesizer
from charstudio.core.vision import VisionAnalyzer

logger = logging.getLogger(__name__)

# Content type assumed for stored blobs that were saved without one.
FALLBACK_CONTENT_TYPE = "image/jpeg"

_AI_NOT_CONFIGURED = (
    "The Gemini API key is not configured for the backend. "
    "Set the GEMINI_API_KEY environment variable on the server."
)


@contextmanager
def _guard(operation: str) -> Iterator[None]:
    """Translate unexpected exceptions raised inside the block into Internal."""
    try:
        yield
    except CharacterStudioError:
        raise
    except Exception as exc:
        logger.exception(f"Error in {operation}: {type(exc).__name__}: {exc}")
        raise Internal(f"An internal server error occurred in {operation}.") from exc


class CharacterLibrary:
    """The character library operations, bound to a set of backends.

    Args:
        backends: External clients created at startup.
    """

    def __init__(self, backends: Backends) -> None:
        self._backends = backends

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_vision(self) -> VisionAnalyzer:
        if self._backends.vision is None:
            raise FailedPrecondition(_AI_NOT_CONFIGURED)
        return self._backends.vision

    def _require_synthesis(self) -> ImageSynthesizer:
        if self._backends.synthesis is None:
            raise FailedPrecondition(_AI_NOT_CONFIGURED)
        return self._backends.synthesis

    async def _load_owned(self, owner_id: str, character_id: str, operation: str) -> CharacterProfile:
        """Fetch a profile and check that ``owner_id`` owns it.

        Raises:
            NotFound: If no profile has this ID.
            PermissionDenied: If the profile belongs to another user.
            Internal: If the store fails.
        """
        with _guard(operation):
            profile = await asyncio.to_thread(self._backends.profiles.get, character_id)

        if profile is None:
            raise NotFound()
        if profile.owner_id != owner_id:
            logger.warning(f"User {owner_id} denied access to profile {character_id}")
            raise PermissionDenied()
        return profile

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def list_library(self, owner_id: str) -> list[CharacterProfile]:
        """Return every profile owned by ``owner_id``, newest first.

        The store's return order is not trusted; results are always sorted
        by ``created_at`` here.
        """
        with _guard("getCharacterLibrary"):
            profiles = await asyncio.to_thread(self._backends.profiles.list_by_owner, owner_id)
        return sorted(profiles, key=lambda p: p.created_at, reverse=True)

    async def get_character(self, owner_id: str, character_id: str | None) -> CharacterProfile:
        """Return one profile owned by ``owner_id``.

        Raises:
            InvalidArgument: If ``character_id`` is missing or blank.
            NotFound: If no profile has this ID.
            PermissionDenied: If the profile belongs to another user.
        """
        if not character_id or not character_id.strip():
            raise InvalidArgument("The request must include a 'characterId'.")
        return await self._load_owned(owner_id, character_id, "getCharacterById")

    async def create_character_pair(
        self,
        owner_id: str,
        image_a: ImageInput | None,
        image_b: ImageInput | None,
    ) -> CharacterPair:
        """Analyse and store two character images.

        Both images are processed concurrently.  The result pairs each
        profile with its input position, whatever order they finish in.

        Args:
            owner_id: Caller's user ID; becomes the owner of both profiles.
            image_a: First uploaded image.
            image_b: Second uploaded image.

        Returns:
            The two created profiles.

        Raises:
            InvalidArgument: If either image or MIME type is missing or empty.
            FailedPrecondition: If no Gemini API key is configured.
            Internal: If either analyze-and-save sequence fails.  The other
                sequence's profile, if created, is left in place.
        """
        for image in (image_a, image_b):
            if image is None or not image.data or not image.mime_type:
                raise InvalidArgument("Missing image data for one or both characters.")

        vision = self._require_vision()

        with _guard("createCharacterPair"):
            results = await asyncio.gather(
                asyncio.to_thread(self._analyze_and_save, owner_id, image_a, vision),
                asyncio.to_thread(self._analyze_and_save, owner_id, image_b, vision),
                return_exceptions=True,
            )

            failures = [r for r in results if isinstance(r, BaseException)]
            if failures:
                for result in results:
                    if isinstance(result, CharacterProfile):
                        logger.warning(
                            f"createCharacterPair partially failed; profile {result.id} "
                            f"for user {owner_id} was kept"
                        )
                raise failures[0]

        character_a, character_b = results
        logger.info(f"Created character pair {character_a.id}, {character_b.id} for user {owner_id}")
        return CharacterPair(character_a=character_a, character_b=character_b)

    def _analyze_and_save(
        self,
        owner_id: str,
        image: ImageInput,
        vision: VisionAnalyzer,
    ) -> CharacterProfile:
        """Store one image, analyse it and persist the resulting profile."""
        profiles = self._backends.profiles
        blobs = self._backends.blobs

        profile_id = profiles.new_id()
        path = blob_path_for(owner_id, profile_id, image.mime_type)
        blobs.upload(path, image.data, image.mime_type)
        image_url = blobs.durable_url(path)

        analysis = vision.analyze(image.data, image.mime_type)

        profile = CharacterProfile(
            id=profile_id,
            owner_id=owner_id,
            name=analysis.name,
            description=analysis.description,
            keywords=analysis.keywords,
            image_url=image_url,
            created_at=datetime.now(timezone.utc),
        )
        profiles.create(profile)
        return profile

    async def generate_visualization(
        self,
        owner_id: str,
        character_id: str | None,
        prompt: str | None,
    ) -> GeneratedImage:
        """Generate a new illustration of a stored character.

        Args:
            owner_id: Caller's user ID.
            character_id: ID of the character to draw.
            prompt: Scene description.

        Returns:
            The generated image.

        Raises:
            InvalidArgument: If the ID or prompt is missing or blank.
            FailedPrecondition: If no Gemini API key is configured.
            NotFound: If no profile has this ID.
            PermissionDenied: If the profile belongs to another user.
            Internal: If the reference image cannot be read or the model
                returns no image.
        """
        if not character_id or not character_id.strip() or not prompt or not prompt.strip():
            raise InvalidArgument("Missing character ID or prompt.")

        synthesizer = self._require_synthesis()
        profile = await self._load_owned(owner_id, character_id, "generateCharacterVisualization")

        with _guard("generateCharacterVisualization"):
            image = await asyncio.to_thread(self._render, profile, prompt, synthesizer)

        logger.info(f"Generated visualization of {profile.id} for user {owner_id}")
        return image

    def _render(
        self,
        profile: CharacterProfile,
        prompt: str,
        synthesizer: ImageSynthesizer,
    ) -> GeneratedImage:
        """Re-read the profile's reference image and run the image model."""
        path = blob_path_from_url(profile.image_url)
        stored = self._backends.blobs.download(path)
        instruction = build_visualization_prompt(profile, prompt)
        return synthesizer.generate(
            stored.data,
            stored.content_type or FALLBACK_CONTENT_TYPE,
            instruction,
        )

    async def read_image(self, owner_id: str, path: str) -> StoredBlob:
        """Return a stored reference image owned by ``owner_id``.

        Images live under ``user_uploads/<owner>/``; the owner segment of
        the path decides who may read them.

        Raises:
            NotFound: If the path is not an upload path or nothing is stored.
            PermissionDenied: If the image belongs to another user.
        """
        parts = PurePosixPath(path).parts
        if len(parts) < 3 or parts[0] != UPLOAD_PREFIX or ".." in parts:
            raise NotFound("Image not found.")
        if parts[1] != owner_id:
            logger.warning(f"User {owner_id} denied access to image {path}")
            raise PermissionDenied("You do not have permission to access this image.")

        with _guard("getCharacterImage"):
            try:
                return await asyncio.to_thread(self._backends.blobs.download, path)
            except BlobNotFoundError:
                raise NotFound("Image not found.") from None

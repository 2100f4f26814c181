"""Pydantic request and response models for the Character Studio API.

FastAPI uses these models for request parsing, response serialisation and
OpenAPI documentation.  All models use camelCase field names on the wire
(``imageABytes``, ``characterId``) and also accept the snake_case Python
names.

Request fields are declared optional so that a missing field is reported
through the handler's own ``invalid-argument`` check rather than as a bare
schema error; mistyped fields are still rejected by Pydantic.

Models
------
CreatePairRequest
    Payload for ``POST /api/characters/pair`` — two base64 images and their
    declared MIME types.
VisualizationRequest
    Payload for ``POST /api/visualizations`` — a character ID and a scene
    prompt.
CharacterPairResponse
    Response of ``POST /api/characters/pair``.
VisualizationResponse
    Response of ``POST /api/visualizations`` — the generated image as base64.
HealthResponse
    Response of ``GET /health``.
"""

from __future__ import annotations

import base64
import binascii

from pydantic import Field

from charstudio.core.errors import InvalidArgument
from charstudio.core.models import CamelModel, CharacterPair, CharacterProfile, GeneratedImage, ImageInput


def _decode_image(encoded: str | None, mime_type: str | None) -> ImageInput | None:
    """Decode one base64 image field, or return ``None`` if anything is missing."""
    if not encoded or not mime_type or not mime_type.strip():
        return None
    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidArgument("Image data must be base64-encoded.") from exc
    if not data:
        return None
    return ImageInput(data=data, mime_type=mime_type.strip())


class CreatePairRequest(CamelModel):
    """Request body for the ``POST /api/characters/pair`` endpoint.

    Attributes:
        image_a_bytes: Base64-encoded first image.
        image_a_mime_type: Declared MIME type of the first image.
        image_b_bytes: Base64-encoded second image.
        image_b_mime_type: Declared MIME type of the second image.
    """

    image_a_bytes: str | None = Field(
        default=None,
        description="Base64-encoded image of the first character.",
    )
    image_a_mime_type: str | None = Field(
        default=None,
        description="MIME type of the first image (e.g. 'image/png').",
    )
    image_b_bytes: str | None = Field(
        default=None,
        description="Base64-encoded image of the second character.",
    )
    image_b_mime_type: str | None = Field(
        default=None,
        description="MIME type of the second image (e.g. 'image/jpeg').",
    )

    def decode_images(self) -> tuple[ImageInput, ImageInput]:
        """Decode both images.

        Returns:
            ``(image_a, image_b)`` in request order.

        Raises:
            InvalidArgument: If any of the four fields is missing or empty,
                or if an image is not valid base64.
        """
        image_a = _decode_image(self.image_a_bytes, self.image_a_mime_type)
        image_b = _decode_image(self.image_b_bytes, self.image_b_mime_type)
        if image_a is None or image_b is None:
            raise InvalidArgument("Missing image data for one or both characters.")
        return image_a, image_b


class VisualizationRequest(CamelModel):
    """Request body for the ``POST /api/visualizations`` endpoint.

    Attributes:
        character_id: ID of the character to draw.
        prompt: Scene description for the new image.
    """

    character_id: str | None = Field(
        default=None,
        description="ID of a character owned by the caller.",
    )
    prompt: str | None = Field(
        default=None,
        description="Scene to draw the character in.",
    )


class CharacterPairResponse(CamelModel):
    """Both profiles created by a create-pair call, in request order."""

    character_a: CharacterProfile
    character_b: CharacterProfile

    @classmethod
    def from_pair(cls, pair: CharacterPair) -> CharacterPairResponse:
        return cls(character_a=pair.character_a, character_b=pair.character_b)


class VisualizationResponse(CamelModel):
    """A generated image.

    Attributes:
        image_bytes: Base64-encoded image data.
        mime_type: Content type reported by the image model.
    """

    image_bytes: str
    mime_type: str

    @classmethod
    def from_image(cls, image: GeneratedImage) -> VisualizationResponse:
        return cls(
            image_bytes=base64.b64encode(image.data).decode("ascii"),
            mime_type=image.mime_type,
        )


class HealthResponse(CamelModel):
    """Response of the unauthenticated health check."""

    status: str = "ok"
    version: str

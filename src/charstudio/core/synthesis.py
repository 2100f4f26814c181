"""Image synthesis client.

Sends a stored character reference image and a composed instruction to a
Gemini image model and returns the first inline image in the reply.
"""

from __future__ import annotations

import logging

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from charstudio.core.errors import SynthesisError
from charstudio.core.models import GeneratedImage

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_MIME_TYPE = "image/png"


def _response_parts(response) -> list:
    """Return the content parts of the first candidate, or an empty list."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    content = getattr(candidates[0], "content", None)
    if content is None:
        return []
    return getattr(content, "parts", None) or []


class ImageSynthesizer:
    """Generate new character illustrations from a reference image.

    Args:
        client: A ``google.genai.Client``.
        model: Gemini image model name (e.g. ``"gemini-2.5-flash-image"``).
    """

    def __init__(self, client: genai.Client, model: str) -> None:
        self._client = client
        self.model = model

    def generate(self, reference: bytes, mime_type: str, instruction: str) -> GeneratedImage:
        """Generate one image.

        Args:
            reference: Reference image bytes.
            mime_type: Content type of ``reference``.
            instruction: Composed text instruction.

        Returns:
            The first inline image returned by the model.

        Raises:
            SynthesisError: If the API call fails or no inline image data is
                present in the reply.
        """
        try:
            response = self._client.models.generate_content(
                model=self.model,
                contents=[
                    types.Part.from_bytes(data=reference, mime_type=mime_type),
                    instruction,
                ],
                config=types.GenerateContentConfig(
                    response_modalities=["IMAGE"],
                ),
            )
        except genai_errors.APIError as exc:
            raise SynthesisError(f"{self.model} request failed: {exc}") from exc

        for part in _response_parts(response):
            inline = getattr(part, "inline_data", None)
            if inline is not None and inline.data:
                mime = inline.mime_type or DEFAULT_OUTPUT_MIME_TYPE
                logger.debug(f"{self.model} returned {len(inline.data)} bytes ({mime})")
                return GeneratedImage(data=inline.data, mime_type=mime)

        raise SynthesisError("No image data returned from AI model.")

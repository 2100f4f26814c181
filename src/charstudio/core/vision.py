"""Vision analysis client.

Sends an uploaded character image to a Gemini model together with the fixed
analysis instruction and parses the structured JSON reply into a
:class:`~charstudio.core.models.CharacterAnalysis`.

The request carries a response schema, so a well-behaved model always
returns ``name``, ``description`` and ``keywords``.  Anything else (empty
text, invalid JSON, missing fields, wrong types) is reported as
:class:`~charstudio.core.errors.AnalysisError`; no defaults are invented.
"""

from __future__ import annotations

import logging

from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from pydantic import ValidationError

from charstudio.core.errors import AnalysisError
from charstudio.core.models import CharacterAnalysis
from charstudio.core.prompts import ANALYSIS_INSTRUCTION

logger = logging.getLogger(__name__)


class VisionAnalyzer:
    """Infer a name, description and keywords from a character image.

    Args:
        client: A ``google.genai.Client``.
        model: Gemini model name (e.g. ``"gemini-2.5-flash"``).
    """

    def __init__(self, client: genai.Client, model: str) -> None:
        self._client = client
        self.model = model

    def analyze(self, image: bytes, mime_type: str) -> CharacterAnalysis:
        """Analyse one character image.

        Args:
            image: Raw image bytes.
            mime_type: Declared MIME type of ``image``.

        Returns:
            The parsed analysis.

        Raises:
            AnalysisError: If the API call fails or the reply does not match
                the expected schema.
        """
        try:
            response = self._client.models.generate_content(
                model=self.model,
                contents=[
                    types.Part.from_bytes(data=image, mime_type=mime_type),
                    ANALYSIS_INSTRUCTION,
                ],
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=CharacterAnalysis,
                ),
            )
        except genai_errors.APIError as exc:
            raise AnalysisError(f"{self.model} request failed: {exc}") from exc

        text = response.text
        if not text:
            raise AnalysisError(f"{self.model} returned no text")

        try:
            analysis = CharacterAnalysis.model_validate_json(text)
        except ValidationError as exc:
            raise AnalysisError(f"{self.model} returned unusable JSON: {exc}") from exc

        logger.debug(f"Analysed character image as {analysis.name!r}")
        return analysis

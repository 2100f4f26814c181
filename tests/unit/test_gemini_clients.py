"""Tests for charstudio.core.vision and charstudio.core.synthesis.

Both clients are exercised against a ``MagicMock`` standing in for
``google.genai.Client``; the request contents and configuration are
inspected and canned responses are fed back.
"""

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from google.genai import errors as genai_errors

from charstudio.core.errors import AnalysisError, SynthesisError
from charstudio.core.models import CharacterAnalysis
from charstudio.core.prompts import ANALYSIS_INSTRUCTION
from charstudio.core.synthesis import ImageSynthesizer
from charstudio.core.vision import VisionAnalyzer


def _api_error() -> genai_errors.APIError:
    return genai_errors.APIError(
        500, {"error": {"code": 500, "message": "backend exploded", "status": "INTERNAL"}}
    )


def _image_response(*parts) -> SimpleNamespace:
    return SimpleNamespace(
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))]
    )


class TestVisionAnalyzer:
    """Test VisionAnalyzer.analyze."""

    def _client(self, text: str | None) -> MagicMock:
        client = MagicMock()
        client.models.generate_content.return_value = SimpleNamespace(text=text)
        return client

    def test_parses_structured_reply(self):
        reply = {"name": "Aria", "description": "A brave wanderer.", "keywords": ["brave", "calm"]}
        client = self._client(json.dumps(reply))

        analysis = VisionAnalyzer(client, "gemini-2.5-flash").analyze(b"img", "image/png")

        assert analysis == CharacterAnalysis(**reply)

    def test_request_contents_and_schema(self):
        reply = {"name": "Aria", "description": "", "keywords": []}
        client = self._client(json.dumps(reply))

        VisionAnalyzer(client, "gemini-2.5-flash").analyze(b"img", "image/png")

        kwargs = client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.5-flash"
        image_part, instruction = kwargs["contents"]
        assert image_part.inline_data.data == b"img"
        assert image_part.inline_data.mime_type == "image/png"
        assert instruction == ANALYSIS_INSTRUCTION
        assert kwargs["config"].response_mime_type == "application/json"
        assert kwargs["config"].response_schema is not None

    def test_keyword_order_preserved(self):
        reply = {"name": "A", "description": "B", "keywords": ["z", "a", "z"]}
        client = self._client(json.dumps(reply))

        analysis = VisionAnalyzer(client, "m").analyze(b"img", "image/png")

        assert analysis.keywords == ["z", "a", "z"]

    @pytest.mark.parametrize(
        "text",
        [
            None,
            "",
            "not json",
            json.dumps({"name": "Aria", "description": "x"}),
            json.dumps({"name": "Aria", "description": "x", "keywords": "brave"}),
        ],
    )
    def test_unusable_reply_raises(self, text):
        with pytest.raises(AnalysisError):
            VisionAnalyzer(self._client(text), "m").analyze(b"img", "image/png")

    def test_api_error_wrapped(self):
        client = MagicMock()
        client.models.generate_content.side_effect = _api_error()

        with pytest.raises(AnalysisError):
            VisionAnalyzer(client, "m").analyze(b"img", "image/png")


class TestImageSynthesizer:
    """Test ImageSynthesizer.generate."""

    def test_returns_first_inline_image(self):
        client = MagicMock()
        client.models.generate_content.return_value = _image_response(
            SimpleNamespace(inline_data=None, text="Here you go"),
            SimpleNamespace(inline_data=SimpleNamespace(data=b"\x89PNG1", mime_type="image/png")),
            SimpleNamespace(inline_data=SimpleNamespace(data=b"\x89PNG2", mime_type="image/png")),
        )

        image = ImageSynthesizer(client, "gemini-2.5-flash-image").generate(
            b"ref", "image/jpeg", "draw it"
        )

        assert image.data == b"\x89PNG1"
        assert image.mime_type == "image/png"

    def test_requests_image_modality(self):
        client = MagicMock()
        client.models.generate_content.return_value = _image_response(
            SimpleNamespace(inline_data=SimpleNamespace(data=b"x", mime_type=None))
        )

        image = ImageSynthesizer(client, "gemini-2.5-flash-image").generate(
            b"ref", "image/jpeg", "draw it"
        )

        kwargs = client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.5-flash-image"
        assert kwargs["config"].response_modalities == ["IMAGE"]
        reference_part, instruction = kwargs["contents"]
        assert reference_part.inline_data.data == b"ref"
        assert reference_part.inline_data.mime_type == "image/jpeg"
        assert instruction == "draw it"
        assert image.mime_type == "image/png"

    @pytest.mark.parametrize(
        "response",
        [
            SimpleNamespace(candidates=None),
            SimpleNamespace(candidates=[]),
            SimpleNamespace(candidates=[SimpleNamespace(content=None)]),
            _image_response(SimpleNamespace(inline_data=None, text="I cannot draw that")),
        ],
    )
    def test_no_image_data_raises(self, response):
        client = MagicMock()
        client.models.generate_content.return_value = response

        with pytest.raises(SynthesisError, match="No image data"):
            ImageSynthesizer(client, "m").generate(b"ref", "image/jpeg", "draw it")

    def test_api_error_wrapped(self):
        client = MagicMock()
        client.models.generate_content.side_effect = _api_error()

        with pytest.raises(SynthesisError):
            ImageSynthesizer(client, "m").generate(b"ref", "image/jpeg", "draw it")

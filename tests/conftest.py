"""Shared pytest fixtures for Character Studio tests.

The fixtures wire a :class:`CharacterLibrary` and a FastAPI ``TestClient``
to the local backends (JSON profile store, directory blob store, static
tokens) plus in-process fakes for the two Gemini clients, so no network
access or cloud credentials are needed.
"""

import io
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from charstudio.api.main import create_app
from charstudio.core.backends import Backends
from charstudio.core.blob_store import LocalBlobStore
from charstudio.core.config import CharStudioConfig
from charstudio.core.errors import AnalysisError, SynthesisError
from charstudio.core.identity import StaticTokenVerifier
from charstudio.core.library import CharacterLibrary
from charstudio.core.models import CharacterAnalysis, GeneratedImage
from charstudio.core.profile_store import JsonProfileStore

ALICE_TOKEN = "token-alice"
BOB_TOKEN = "token-bob"
PNG_BYTES = b"\x89PNG\r\n\x1a\n-generated-image-"


class FakeVisionAnalyzer:
    """Vision client returning a pre-configured analysis per image.

    Analyses are looked up by the exact image bytes; unknown images get a
    generic analysis.  Images listed in ``failing`` raise AnalysisError.
    """

    def __init__(self) -> None:
        self.results: dict[bytes, CharacterAnalysis] = {}
        self.failing: set[bytes] = set()
        self.calls: list[tuple[bytes, str]] = []

    def analyze(self, image: bytes, mime_type: str) -> CharacterAnalysis:
        self.calls.append((image, mime_type))
        if image in self.failing:
            raise AnalysisError("model returned unusable JSON")
        return self.results.get(
            image,
            CharacterAnalysis(name="Unnamed", description="A character.", keywords=["plain"]),
        )


class FakeImageSynthesizer:
    """Image client returning fixed bytes and recording each call."""

    def __init__(self) -> None:
        self.output: GeneratedImage | None = GeneratedImage(data=PNG_BYTES, mime_type="image/png")
        self.calls: list[tuple[bytes, str, str]] = []

    def generate(self, reference: bytes, mime_type: str, instruction: str) -> GeneratedImage:
        self.calls.append((reference, mime_type, instruction))
        if self.output is None:
            raise SynthesisError("No image data returned from AI model.")
        return self.output


def make_jpeg(color: tuple[int, int, int], size: tuple[int, int] = (10, 10)) -> bytes:
    """Encode a solid-colour JPEG image."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color=color).save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> CharStudioConfig:
    """Create a local-storage, static-token configuration in a temp dir."""
    return CharStudioConfig(
        _env_file=None,
        auth_backend="static",
        storage_backend="local",
        static_tokens={ALICE_TOKEN: "alice", BOB_TOKEN: "bob"},
        data_dir=temp_dir / "data",
        blob_dir=temp_dir / "data" / "blobs",
        profile_db=temp_dir / "data" / "user_characters.json",
        public_base_url="http://testserver",
        gemini_api_key="test-key",
    )


@pytest.fixture
def profile_store(test_config: CharStudioConfig) -> JsonProfileStore:
    return JsonProfileStore(test_config.profile_db)


@pytest.fixture
def blob_store(test_config: CharStudioConfig) -> LocalBlobStore:
    return LocalBlobStore(test_config.blob_dir, test_config.public_base_url)


@pytest.fixture
def fake_vision() -> FakeVisionAnalyzer:
    return FakeVisionAnalyzer()


@pytest.fixture
def fake_synthesis() -> FakeImageSynthesizer:
    return FakeImageSynthesizer()


@pytest.fixture
def backends(test_config, profile_store, blob_store, fake_vision, fake_synthesis) -> Backends:
    """Backends with local stores and fake AI clients."""
    return Backends(
        identity=StaticTokenVerifier(test_config.static_tokens),
        profiles=profile_store,
        blobs=blob_store,
        vision=fake_vision,
        synthesis=fake_synthesis,
    )


@pytest.fixture
def library(backends: Backends) -> CharacterLibrary:
    return CharacterLibrary(backends)


@pytest.fixture
def test_client(test_config, backends) -> Generator[TestClient, None, None]:
    """FastAPI TestClient running the full app against the test backends."""
    app = create_app(test_config, backends)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def alice_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {ALICE_TOKEN}"}


@pytest.fixture
def bob_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {BOB_TOKEN}"}


@pytest.fixture
def jpeg_a() -> bytes:
    """10x10 red JPEG."""
    return make_jpeg((255, 0, 0))


@pytest.fixture
def jpeg_b() -> bytes:
    """10x10 blue JPEG."""
    return make_jpeg((0, 0, 255))

"""Domain models shared by the stores, the AI clients and the API layer.

Models
------
CharacterProfile
    One analysed character as stored in the profile store and returned to
    clients.  Serialises to camelCase on the wire.
CharacterAnalysis
    The structured result expected from the vision model.
ImageInput
    A decoded uploaded image and its declared MIME type.
StoredBlob
    Bytes and content type read back from the blob store.
GeneratedImage
    Inline image payload returned by the synthesis model.
CharacterPair
    The two profiles created by one create-pair call.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that uses camelCase aliases and accepts either spelling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CharacterAnalysis(BaseModel):
    """Structured character description produced by the vision model.

    All three fields are required.  A response missing any of them, or with
    the wrong types, fails validation rather than being filled with defaults.
    """

    name: str
    description: str
    keywords: list[str]


class CharacterProfile(CamelModel):
    """A persisted, analysed character.

    Attributes:
        id: Identifier generated by the profile store.
        owner_id: User ID of the creator.  Every read is checked against it.
        name: Creative name suggested by the vision model.
        description: Short description suggested by the vision model.
        keywords: Descriptive keywords in the order the model returned them.
        image_url: Durable URL of the stored reference image.
        created_at: Server-assigned creation time.
    """

    id: str = Field(..., min_length=1)
    owner_id: str = Field(..., min_length=1)
    name: str = ""
    description: str = ""
    keywords: list[str] = Field(default_factory=list)
    image_url: str
    created_at: datetime

    def to_document(self) -> dict:
        """Return the stored document layout (the ID is the document key).

        Field names match the ``user_characters`` collection written by
        earlier releases, so old and new documents stay interchangeable.
        """
        return {
            "userId": self.owner_id,
            "characterName": self.name,
            "description": self.description,
            "keywords": list(self.keywords),
            "imageUrl": self.image_url,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_document(cls, doc_id: str, data: dict) -> CharacterProfile:
        """Build a profile from a stored document.

        Args:
            doc_id: Document key, used as the profile ID.
            data: Document fields in the ``user_characters`` layout.

        Raises:
            pydantic.ValidationError: If required fields are missing.
        """
        return cls(
            id=doc_id,
            owner_id=data.get("userId", ""),
            name=data.get("characterName") or "",
            description=data.get("description") or "",
            keywords=data.get("keywords") or [],
            image_url=data.get("imageUrl", ""),
            created_at=data.get("createdAt"),
        )


@dataclass(frozen=True)
class ImageInput:
    """An uploaded image after base64 decoding."""

    data: bytes
    mime_type: str


@dataclass(frozen=True)
class StoredBlob:
    """Blob bytes and the content type recorded when they were stored."""

    data: bytes
    content_type: str | None


@dataclass(frozen=True)
class GeneratedImage:
    """An image returned inline by the synthesis model."""

    data: bytes
    mime_type: str


@dataclass(frozen=True)
class CharacterPair:
    """The two profiles created by one create-pair call, in input order."""

    character_a: CharacterProfile
    character_b: CharacterProfile

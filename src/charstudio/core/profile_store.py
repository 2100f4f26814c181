"""Profile document storage for analysed characters.

Profiles live in a ``user_characters`` collection keyed by a generated
document ID.  Each document records its owner in ``userId`` and is filtered
on that field when a user's library is listed.

Two implementations share the :class:`ProfileStore` interface:

- :class:`FirestoreProfileStore` — Cloud Firestore through ``firebase-admin``.
- :class:`JsonProfileStore` — a single JSON file for local development.  The
  file holds a list of documents, newest first, each carrying its ``id``.

Ownership checks are not made here.  The stores only answer "which document
has this ID" and "which documents belong to this user"; the request handlers
decide who may see what.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Protocol

from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter
from pydantic import ValidationError

from charstudio.core.errors import StorageError
from charstudio.core.models import CharacterProfile

logger = logging.getLogger(__name__)

COLLECTION = "user_characters"


def _parse_document(doc_id: str, data: dict) -> CharacterProfile:
    """Convert a stored document to a profile, wrapping schema errors."""
    try:
        return CharacterProfile.from_document(doc_id, data)
    except ValidationError as exc:
        raise StorageError(f"Malformed profile document {doc_id}: {exc}") from exc


class ProfileStore(Protocol):
    """Interface shared by the profile storage backends."""

    def new_id(self) -> str: ...

    def create(self, profile: CharacterProfile) -> None: ...

    def get(self, profile_id: str) -> CharacterProfile | None: ...

    def list_by_owner(self, owner_id: str) -> list[CharacterProfile]: ...


class FirestoreProfileStore:
    """Profile store backed by Cloud Firestore.

    Listing does not ask Firestore to order by ``createdAt``: combining that
    with the ``userId`` filter requires a composite index, and the handlers
    sort the result themselves.

    Args:
        client: A ``google.cloud.firestore.Client`` (from
            ``firebase_admin.firestore.client()``).
        collection: Collection name.
    """

    def __init__(self, client, collection: str = COLLECTION) -> None:
        self._collection = client.collection(collection)

    def new_id(self) -> str:
        # Firestore generates the ID client-side; nothing is written yet.
        return self._collection.document().id

    def create(self, profile: CharacterProfile) -> None:
        try:
            self._collection.document(profile.id).set(profile.to_document())
        except google_exceptions.GoogleAPIError as exc:
            raise StorageError(f"Writing profile {profile.id} failed: {exc}") from exc
        logger.info(f"Created profile {profile.id} for user {profile.owner_id}")

    def get(self, profile_id: str) -> CharacterProfile | None:
        # A "/" would address a subcollection path, never a profile.
        if "/" in profile_id:
            return None
        try:
            snapshot = self._collection.document(profile_id).get()
        except google_exceptions.GoogleAPIError as exc:
            raise StorageError(f"Reading profile {profile_id} failed: {exc}") from exc
        if not snapshot.exists:
            return None
        return _parse_document(snapshot.id, snapshot.to_dict() or {})

    def list_by_owner(self, owner_id: str) -> list[CharacterProfile]:
        query = self._collection.where(filter=FieldFilter("userId", "==", owner_id))
        try:
            snapshots = list(query.stream())
        except google_exceptions.GoogleAPIError as exc:
            raise StorageError(f"Listing profiles for {owner_id} failed: {exc}") from exc
        return [_parse_document(s.id, s.to_dict() or {}) for s in snapshots]


class JsonProfileStore:
    """Profile store backed by a single JSON file.

    All reads and writes go through one lock so concurrent requests in the
    same process cannot interleave a read-modify-write cycle.

    Args:
        db_path: Path to the JSON document file.  Created on first write.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _load(self) -> list[dict]:
        """Load all documents, treating a missing file as an empty store."""
        if not self.db_path.exists():
            return []
        try:
            with open(self.db_path, encoding="utf-8") as handle:
                documents = json.load(handle)
        except (OSError, ValueError) as exc:
            raise StorageError(f"Cannot read {self.db_path}: {exc}") from exc
        if not isinstance(documents, list):
            raise StorageError(f"{self.db_path} does not contain a document list")
        return [d for d in documents if isinstance(d, dict) and d.get("id")]

    def _save(self, documents: list[dict]) -> None:
        try:
            with open(self.db_path, "w", encoding="utf-8") as handle:
                json.dump(documents, handle, indent=2, default=_json_default)
        except OSError as exc:
            raise StorageError(f"Cannot write {self.db_path}: {exc}") from exc

    def new_id(self) -> str:
        return uuid.uuid4().hex

    def create(self, profile: CharacterProfile) -> None:
        document = {"id": profile.id, **profile.to_document()}
        with self._lock:
            documents = self._load()
            if any(d["id"] == profile.id for d in documents):
                raise StorageError(f"Profile {profile.id} already exists")
            # Newest first, matching the order libraries are displayed in.
            documents.insert(0, document)
            self._save(documents)
        logger.info(f"Created profile {profile.id} for user {profile.owner_id}")

    def get(self, profile_id: str) -> CharacterProfile | None:
        with self._lock:
            documents = self._load()
        document = next((d for d in documents if d["id"] == profile_id), None)
        if document is None:
            return None
        return _parse_document(document["id"], document)

    def list_by_owner(self, owner_id: str) -> list[CharacterProfile]:
        with self._lock:
            documents = self._load()
        return [_parse_document(d["id"], d) for d in documents if d.get("userId") == owner_id]


def _json_default(value):
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")

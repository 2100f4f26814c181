"""Tests for charstudio.core.profile_store — JSON and Firestore profile stores."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as google_exceptions

from charstudio.core.errors import StorageError
from charstudio.core.models import CharacterProfile
from charstudio.core.profile_store import FirestoreProfileStore, JsonProfileStore

CREATED = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _profile(profile_id: str = "c1", owner_id: str = "alice") -> CharacterProfile:
    return CharacterProfile(
        id=profile_id,
        owner_id=owner_id,
        name="Aria",
        description="A brave wanderer.",
        keywords=["brave", "calm"],
        image_url="https://storage.googleapis.com/b/user_uploads/alice/c1.png",
        created_at=CREATED,
    )


class TestJsonProfileStore:
    """Test JsonProfileStore."""

    def test_new_ids_are_unique(self, profile_store):
        ids = {profile_store.new_id() for _ in range(50)}
        assert len(ids) == 50

    def test_create_and_get(self, profile_store):
        profile_store.create(_profile())

        assert profile_store.get("c1") == _profile()

    def test_get_missing_returns_none(self, profile_store):
        assert profile_store.get("missing") is None

    def test_document_layout(self, profile_store):
        """Documents use the user_characters field names."""
        profile_store.create(_profile())

        documents = json.loads(profile_store.db_path.read_text())

        assert documents == [
            {
                "id": "c1",
                "userId": "alice",
                "characterName": "Aria",
                "description": "A brave wanderer.",
                "keywords": ["brave", "calm"],
                "imageUrl": "https://storage.googleapis.com/b/user_uploads/alice/c1.png",
                "createdAt": "2024-05-01T12:00:00+00:00",
            }
        ]

    def test_duplicate_id_rejected(self, profile_store):
        profile_store.create(_profile())

        with pytest.raises(StorageError):
            profile_store.create(_profile())

    def test_list_by_owner_filters(self, profile_store):
        profile_store.create(_profile("c1", "alice"))
        profile_store.create(_profile("c2", "bob"))
        profile_store.create(_profile("c3", "alice"))

        assert {p.id for p in profile_store.list_by_owner("alice")} == {"c1", "c3"}

    def test_corrupt_file_raises(self, profile_store):
        profile_store.db_path.write_text("{not json")

        with pytest.raises(StorageError):
            profile_store.list_by_owner("alice")

    def test_malformed_document_raises(self, profile_store):
        profile_store.db_path.write_text(json.dumps([{"id": "c1", "userId": "alice"}]))

        with pytest.raises(StorageError):
            profile_store.get("c1")


class TestFirestoreProfileStore:
    """Test FirestoreProfileStore against a mocked Firestore client."""

    @staticmethod
    def _snapshot(doc_id: str, data: dict | None) -> MagicMock:
        snapshot = MagicMock()
        snapshot.id = doc_id
        snapshot.exists = data is not None
        snapshot.to_dict.return_value = data
        return snapshot

    def test_uses_user_characters_collection(self):
        client = MagicMock()
        FirestoreProfileStore(client)
        client.collection.assert_called_once_with("user_characters")

    def test_new_id_from_auto_document(self):
        client = MagicMock()
        client.collection.return_value.document.return_value.id = "auto-id"

        assert FirestoreProfileStore(client).new_id() == "auto-id"

    def test_create_writes_document(self):
        client = MagicMock()
        collection = client.collection.return_value
        store = FirestoreProfileStore(client)

        store.create(_profile())

        collection.document.assert_called_with("c1")
        collection.document.return_value.set.assert_called_once_with(_profile().to_document())

    def test_get_existing(self):
        client = MagicMock()
        collection = client.collection.return_value
        collection.document.return_value.get.return_value = self._snapshot(
            "c1", _profile().to_document()
        )

        assert FirestoreProfileStore(client).get("c1") == _profile()

    def test_get_missing(self):
        client = MagicMock()
        collection = client.collection.return_value
        collection.document.return_value.get.return_value = self._snapshot("c1", None)

        assert FirestoreProfileStore(client).get("c1") is None

    def test_get_slash_id_is_missing(self):
        """IDs containing a slash never address a profile document."""
        client = MagicMock()
        collection = client.collection.return_value
        collection.document.side_effect = ValueError("odd number of path elements")

        assert FirestoreProfileStore(client).get("c1/extra") is None
        collection.document.assert_not_called()

    def test_list_by_owner_filters_on_user_id(self):
        client = MagicMock()
        collection = client.collection.return_value
        query = collection.where.return_value
        query.stream.return_value = [self._snapshot("c1", _profile().to_document())]

        result = FirestoreProfileStore(client).list_by_owner("alice")

        assert [p.id for p in result] == ["c1"]
        field_filter = collection.where.call_args.kwargs["filter"]
        assert field_filter.field_path == "userId"
        assert field_filter.op_string == "=="
        assert field_filter.value == "alice"

    def test_api_error_wrapped(self):
        client = MagicMock()
        collection = client.collection.return_value
        collection.where.return_value.stream.side_effect = google_exceptions.PermissionDenied(
            "Cloud Firestore API has not been used in project"
        )

        with pytest.raises(StorageError):
            FirestoreProfileStore(client).list_by_owner("alice")

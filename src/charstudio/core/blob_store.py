"""Blob storage adapters for uploaded character images.

Every uploaded image is written once under a path scoped to its owner and
profile ID, and the profile keeps a *durable URL* pointing at it.  When a
visualization is requested the URL is mapped back to the storage path with
:func:`blob_path_from_url` and the bytes are downloaded again.

Two implementations share the :class:`BlobStore` interface:

- :class:`FirebaseBlobStore` — Firebase Cloud Storage.  Durable URLs are V2
  signed URLs with a far-future expiry, of the form::

      https://storage.googleapis.com/<bucket>/<path>?GoogleAccessId=...&Signature=...

- :class:`LocalBlobStore` — a plain directory for local development.  The
  API serves it to the owning user at ``/blobs``, so URLs have the form
  ``<public_base_url>/blobs/<path>``.  ``public_base_url`` may carry a path
  prefix (an app behind a reverse proxy at ``/studio``).

Cloud Storage URLs carry the bucket name as their first segment; local URLs
carry everything up to and including the ``blobs`` segment.  The reverse
mapping strips that leading part.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Protocol
from urllib.parse import quote, unquote, urlsplit

from google.api_core import exceptions as google_exceptions

from charstudio.core.errors import BlobNotFoundError, InvalidBlobUrlError, StorageError
from charstudio.core.models import StoredBlob

logger = logging.getLogger(__name__)

UPLOAD_PREFIX = "user_uploads"
LOCAL_MOUNT = "blobs"
CLOUD_STORAGE_HOST = "storage.googleapis.com"


def blob_path_for(owner_id: str, profile_id: str, mime_type: str) -> str:
    """Return the storage path for a character's reference image.

    The file extension is the MIME subtype, so ``image/png`` yields
    ``user_uploads/<owner>/<id>.png``.

    Args:
        owner_id: User ID of the profile owner.
        profile_id: Newly generated profile ID.
        mime_type: Declared MIME type of the upload.

    Returns:
        Bucket-relative object path.
    """
    subtype = mime_type.split("/")[-1].split(";")[0].strip().lower() or "bin"
    return f"{UPLOAD_PREFIX}/{owner_id}/{profile_id}.{subtype}"


def blob_path_from_url(url: str) -> str:
    """Map a durable blob URL back to its bucket-relative storage path.

    Accepted input formats:

    - Path-style Cloud Storage URLs (signed or public)::

          https://storage.googleapis.com/<bucket>/<path>[?query]

    - Local blob URLs served by this application, with an optional base
      path before the mount::

          http://host:port[/prefix]/blobs/<path>

    - Firebase download URLs, where the object path is a single
      percent-encoded segment::

          https://firebasestorage.googleapis.com/v0/b/<bucket>/o/<encoded-path>?alt=media

    Scheme, host, query string and the leading bucket segment (or every
    segment through the ``blobs`` mount) are removed and the remainder is
    percent-decoded.

    Args:
        url: Durable URL stored on a profile.

    Returns:
        The object path, e.g. ``user_uploads/uid/abc.png``.

    Raises:
        InvalidBlobUrlError: If the URL is not an absolute http(s) URL or
            does not contain an object path after the bucket segment.
    """
    if not url:
        raise InvalidBlobUrlError("Empty blob URL")

    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise InvalidBlobUrlError(f"Not an absolute http(s) URL: {url!r}")

    segments = parts.path.split("/")

    # Firebase download URL: /v0/b/<bucket>/o/<encoded path>
    if len(segments) >= 6 and segments[1:3] == ["v0", "b"] and segments[4] == "o":
        object_segments = segments[5:]
    elif parts.hostname != CLOUD_STORAGE_HOST and LOCAL_MOUNT in segments[1:]:
        object_segments = segments[segments.index(LOCAL_MOUNT, 1) + 1 :]
    else:
        # Leading "" (path starts with "/") and the bucket segment.
        object_segments = segments[2:]

    path = unquote("/".join(object_segments))
    if not path or path.endswith("/"):
        raise InvalidBlobUrlError(f"No object path in URL: {url!r}")
    return path


class BlobStore(Protocol):
    """Interface shared by the blob storage backends."""

    def upload(self, path: str, data: bytes, content_type: str) -> None: ...

    def durable_url(self, path: str) -> str: ...

    def download(self, path: str) -> StoredBlob: ...


class FirebaseBlobStore:
    """Blob store backed by a Firebase Cloud Storage bucket.

    Args:
        bucket: A ``google.cloud.storage.Bucket`` (from
            ``firebase_admin.storage.bucket()``).
        signed_url_expiry: Expiry of the generated durable URLs.
    """

    def __init__(self, bucket, signed_url_expiry: datetime) -> None:
        self._bucket = bucket
        self._signed_url_expiry = signed_url_expiry

    def upload(self, path: str, data: bytes, content_type: str) -> None:
        blob = self._bucket.blob(path)
        try:
            blob.upload_from_string(data, content_type=content_type)
        except google_exceptions.GoogleAPIError as exc:
            raise StorageError(f"Upload to {path} failed: {exc}") from exc
        logger.info(f"Stored blob {path} ({len(data)} bytes, {content_type})")

    def durable_url(self, path: str) -> str:
        # V4 signatures are capped at seven days, so V2 is required for a
        # long-lived URL.
        blob = self._bucket.blob(path)
        try:
            return blob.generate_signed_url(
                version="v2",
                expiration=self._signed_url_expiry,
                method="GET",
            )
        except google_exceptions.GoogleAPIError as exc:
            raise StorageError(f"Signing URL for {path} failed: {exc}") from exc

    def download(self, path: str) -> StoredBlob:
        try:
            blob = self._bucket.get_blob(path)
            if blob is None:
                raise BlobNotFoundError(f"No blob at {path}")
            data = blob.download_as_bytes()
        except google_exceptions.NotFound as exc:
            raise BlobNotFoundError(f"No blob at {path}") from exc
        except google_exceptions.GoogleAPIError as exc:
            raise StorageError(f"Download of {path} failed: {exc}") from exc
        return StoredBlob(data=data, content_type=blob.content_type)


class LocalBlobStore:
    """Blob store backed by a local directory.

    Each blob is written as a file under ``root``, with its content type kept
    in a ``<file>.meta.json`` sidecar.

    Args:
        root: Directory holding the blobs.
        public_base_url: Base URL of the API serving ``root`` at ``/blobs``.
            May include a path prefix.
    """

    def __init__(self, root: Path, public_base_url: str) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._base_url = public_base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        """Resolve an object path under ``root``, refusing traversal."""
        full_path = (self.root / path).resolve()
        root = self.root.resolve()
        if root not in full_path.parents:
            raise StorageError(f"Blob path escapes storage root: {path!r}")
        return full_path

    @staticmethod
    def _meta_path(file_path: Path) -> Path:
        return file_path.with_name(file_path.name + ".meta.json")

    def upload(self, path: str, data: bytes, content_type: str) -> None:
        file_path = self._resolve(path)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_bytes(data)
            with open(self._meta_path(file_path), "w", encoding="utf-8") as handle:
                json.dump({"contentType": content_type}, handle)
        except OSError as exc:
            raise StorageError(f"Upload to {path} failed: {exc}") from exc
        logger.info(f"Stored blob {path} ({len(data)} bytes, {content_type})")

    def durable_url(self, path: str) -> str:
        return f"{self._base_url}/{LOCAL_MOUNT}/{quote(path)}"

    def download(self, path: str) -> StoredBlob:
        file_path = self._resolve(path)
        if not file_path.is_file():
            raise BlobNotFoundError(f"No blob at {path}")

        content_type = None
        meta_path = self._meta_path(file_path)
        try:
            data = file_path.read_bytes()
            if meta_path.exists():
                with open(meta_path, encoding="utf-8") as handle:
                    content_type = json.load(handle).get("contentType")
        except (OSError, ValueError) as exc:
            raise StorageError(f"Download of {path} failed: {exc}") from exc
        return StoredBlob(data=data, content_type=content_type)

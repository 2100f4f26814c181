"""Construction of the process-wide external clients.

The identity verifier, the two stores and the two AI clients are created
once, during application startup, and shared read-only by every request.
:func:`build_backends` picks implementations according to
:class:`~charstudio.core.config.CharStudioConfig`.

The Firebase Admin SDK keeps a global default app.  :func:`get_firebase_app`
wraps its initialisation in a lock so that concurrent first callers end up
with the same app instead of racing ``initialize_app``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

import firebase_admin
from firebase_admin import credentials, firestore, storage
from google import genai

from charstudio.core.blob_store import BlobStore, FirebaseBlobStore, LocalBlobStore
from charstudio.core.config import CharStudioConfig
from charstudio.core.identity import (
    FirebaseIdentityVerifier,
    IdentityVerifier,
    StaticTokenVerifier,
)
from charstudio.core.profile_store import FirestoreProfileStore, JsonProfileStore, ProfileStore
from charstudio.core.synthesis import ImageSynthesizer
from charstudio.core.vision import VisionAnalyzer

logger = logging.getLogger(__name__)

_FIREBASE_LOCK = threading.Lock()


@dataclass(frozen=True)
class Backends:
    """The external clients used by the request handlers.

    ``vision`` and ``synthesis`` are ``None`` when no Gemini API key is
    configured; operations that need them fail with ``failed-precondition``.
    """

    identity: IdentityVerifier
    profiles: ProfileStore
    blobs: BlobStore
    vision: VisionAnalyzer | None = None
    synthesis: ImageSynthesizer | None = None


def get_firebase_app(config: CharStudioConfig) -> firebase_admin.App:
    """Return the default Firebase app, initialising it on first call.

    Args:
        config: Application configuration (credentials, project, bucket).

    Returns:
        The default ``firebase_admin.App``.
    """
    with _FIREBASE_LOCK:
        try:
            return firebase_admin.get_app()
        except ValueError:
            pass

        if config.firebase_credentials:
            cred = credentials.Certificate(str(config.firebase_credentials))
        else:
            cred = credentials.ApplicationDefault()

        options: dict[str, str] = {}
        if config.firebase_project_id:
            options["projectId"] = config.firebase_project_id
        if config.firebase_storage_bucket:
            options["storageBucket"] = config.firebase_storage_bucket

        app = firebase_admin.initialize_app(cred, options or None)
        logger.info(f"Initialised Firebase app (project={app.project_id})")
        return app


def build_backends(config: CharStudioConfig) -> Backends:
    """Create every external client for the configured deployment.

    Args:
        config: Application configuration.

    Returns:
        A fully populated :class:`Backends`.
    """
    needs_firebase = config.auth_backend == "firebase" or config.storage_backend == "firebase"
    firebase_app = get_firebase_app(config) if needs_firebase else None

    if config.auth_backend == "firebase":
        identity: IdentityVerifier = FirebaseIdentityVerifier(
            firebase_app,
            check_revoked=config.check_revoked_tokens,
        )
    else:
        if not config.static_tokens:
            logger.warning("Static auth backend has no tokens; every request will be rejected.")
        identity = StaticTokenVerifier(config.static_tokens)

    if config.storage_backend == "firebase":
        profiles: ProfileStore = FirestoreProfileStore(firestore.client(firebase_app))
        blobs: BlobStore = FirebaseBlobStore(
            storage.bucket(config.firebase_storage_bucket, app=firebase_app),
            config.signed_url_expiry,
        )
    else:
        profiles = JsonProfileStore(config.profile_db)
        blobs = LocalBlobStore(config.blob_dir, config.public_base_url)

    vision = None
    synthesis = None
    if config.ai_configured:
        client = genai.Client(api_key=config.gemini_api_key)
        vision = VisionAnalyzer(client, config.vision_model)
        synthesis = ImageSynthesizer(client, config.image_model)
    else:
        logger.error("FATAL: Gemini API key is not set. AI operations will fail.")

    logger.info(
        f"Backends ready (auth={config.auth_backend}, storage={config.storage_backend}, "
        f"ai={'enabled' if config.ai_configured else 'disabled'})"
    )
    return Backends(
        identity=identity,
        profiles=profiles,
        blobs=blobs,
        vision=vision,
        synthesis=synthesis,
    )

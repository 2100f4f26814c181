"""Configuration management for the Character Studio backend.

This module provides centralized configuration management using Pydantic
Settings.  All configuration is loaded from environment variables with the
``CHARSTUDIO_`` prefix, allowing deployment-specific setup without code
changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:

1. Environment variables (``CHARSTUDIO_*`` prefix)
2. ``.env`` file in the working directory
3. Default values defined in :class:`CharStudioConfig`

The Gemini API key is the one exception to the prefix rule: it is also read
from ``GEMINI_API_KEY`` and ``API_KEY`` so that existing deployments keep
working unchanged.

Example ``.env`` file::

    CHARSTUDIO_AUTH_BACKEND=firebase
    CHARSTUDIO_STORAGE_BACKEND=firebase
    CHARSTUDIO_FIREBASE_STORAGE_BUCKET=character-studio.appspot.com
    GEMINI_API_KEY=...

Local Development
-----------------
Setting ``CHARSTUDIO_STORAGE_BACKEND=local`` swaps Firebase Storage and
Firestore for a blob directory and a JSON document file under ``data_dir``.
Setting ``CHARSTUDIO_AUTH_BACKEND=static`` accepts the bearer tokens listed in
``CHARSTUDIO_STATIC_TOKENS`` (a JSON object mapping token to user ID) instead
of Firebase ID tokens.

Global Configuration Instance
------------------------------
A global ``config`` instance is created at module import time and serves as
the single source of truth for the running server.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Expiry used for durable signed URLs.  Far enough in the future to be
# effectively permanent for stored character references.
DEFAULT_SIGNED_URL_EXPIRY = datetime(2491, 3, 9, tzinfo=timezone.utc)


class CharStudioConfig(BaseSettings):
    """Main configuration for the Character Studio backend.

    Attributes
    ----------
    Server Settings:
        server_host : str
            Bind address for uvicorn.
        server_port : int
            Port for uvicorn (1024-65535).
        log_level : str
            Root logging level name.
        cors_origins : list[str]
            Origins allowed by the CORS middleware.

    Backend Selection:
        auth_backend : Literal["firebase", "static"]
            How bearer credentials are verified.
        storage_backend : Literal["firebase", "local"]
            Where blobs and profile documents are persisted.
        static_tokens : dict[str, str]
            Token to user ID mapping for the ``static`` auth backend.

    Firebase Settings:
        firebase_credentials : Path | None
            Service-account JSON file.  ``None`` uses Application Default
            Credentials.
        firebase_project_id : str | None
            Google Cloud project ID override.
        firebase_storage_bucket : str | None
            Cloud Storage bucket holding uploaded images.
        check_revoked_tokens : bool
            Also reject ID tokens that were revoked after issue.
        signed_url_expiry : datetime
            Expiry of the durable signed URLs stored on profiles.

    Local Storage Settings:
        data_dir : Path
            Root directory for local data.
        blob_dir : Path
            Directory holding uploaded images in ``local`` mode.
        profile_db : Path
            JSON file holding profile documents in ``local`` mode.
        public_base_url : str
            Base URL used to build durable blob URLs in ``local`` mode.

    Generative AI Settings:
        gemini_api_key : str | None
            Gemini API key.  When absent every AI-dependent operation fails
            with ``failed-precondition``.
        vision_model : str
            Model used to analyse uploaded character images.
        image_model : str
            Model used to synthesise new character illustrations.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CHARSTUDIO_",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address",
    )
    server_port: int = Field(
        default=8080,
        description="Server port",
        ge=1024,
        le=65535,
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level name (DEBUG, INFO, WARNING, ...)",
    )
    cors_origins: list[str] = Field(
        default=["*"],
        description="Origins allowed to call the API from a browser",
    )

    # Backend selection
    auth_backend: Literal["firebase", "static"] = Field(
        default="firebase",
        description="Bearer credential verifier (firebase ID tokens or static tokens)",
    )
    storage_backend: Literal["firebase", "local"] = Field(
        default="firebase",
        description="Blob and profile persistence (Firebase or local files)",
    )
    static_tokens: dict[str, str] = Field(
        default_factory=dict,
        description="Token -> user ID mapping for the static auth backend",
    )

    # Firebase settings
    firebase_credentials: Path | None = Field(
        default=None,
        description="Service-account JSON path (None = Application Default Credentials)",
    )
    firebase_project_id: str | None = Field(
        default=None,
        description="Google Cloud project ID override",
    )
    firebase_storage_bucket: str | None = Field(
        default=None,
        description="Cloud Storage bucket for uploaded character images",
    )
    check_revoked_tokens: bool = Field(
        default=False,
        description="Reject ID tokens revoked after issue (extra round-trip)",
    )
    signed_url_expiry: datetime = Field(
        default=DEFAULT_SIGNED_URL_EXPIRY,
        description="Expiry of durable signed blob URLs",
    )

    # Local storage settings
    data_dir: Path = Field(
        default=Path("data"),
        description="Root directory for local data",
    )
    blob_dir: Path = Field(
        default=Path("data/blobs"),
        description="Directory for uploaded images (local storage backend)",
    )
    profile_db: Path = Field(
        default=Path("data/user_characters.json"),
        description="JSON file for profile documents (local storage backend)",
    )
    public_base_url: str = Field(
        default="http://localhost:8080",
        description="Base URL for durable blob URLs (local storage backend)",
    )

    # Generative AI settings
    gemini_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "CHARSTUDIO_GEMINI_API_KEY",
            "GEMINI_API_KEY",
            "API_KEY",
        ),
        description="Gemini API key (AI operations are disabled when absent)",
    )
    vision_model: str = Field(
        default="gemini-2.5-flash",
        description="Model used for character image analysis",
    )
    image_model: str = Field(
        default="gemini-2.5-flash-image",
        description="Model used for character visualization",
    )

    def __init__(self, **kwargs):
        """Initialize configuration and create local directories.

        Directories are only created for the ``local`` storage backend; the
        Firebase backend keeps nothing on disk.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        if self.storage_backend == "local":
            self.data_dir.mkdir(parents=True, exist_ok=True)
            self.blob_dir.mkdir(parents=True, exist_ok=True)
            self.profile_db.parent.mkdir(parents=True, exist_ok=True)

    @property
    def ai_configured(self) -> bool:
        """Whether a Gemini API key is available."""
        return bool(self.gemini_api_key)


# Global configuration instance, loaded from CHARSTUDIO_* variables and .env.
config = CharStudioConfig()

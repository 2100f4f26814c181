"""Character Studio error hierarchy.

Two families of exceptions live here:

- **Client-facing taxonomy** — subclasses of :class:`CharacterStudioError`.
  Each carries a stable ``code`` and an HTTP ``status_code``, and its message
  is safe to show to the end user.  The API layer renders these directly.
- **Adapter errors** — subclasses of :class:`BackendError`.  These are raised
  by the storage and AI adapters and may carry provider-specific detail.
  They never reach the client: the request handlers log them and re-raise
  :class:`Internal`.
"""


class CharacterStudioError(Exception):
    """Base exception for all client-facing errors."""

    code = "internal"
    status_code = 500
    default_message = "An internal error occurred."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Return the JSON error body for this error."""
        return {"error": {"code": self.code, "message": self.message}}


class Unauthenticated(CharacterStudioError):
    """Raised when the bearer credential is missing, malformed or invalid."""

    code = "unauthenticated"
    status_code = 401
    default_message = "The request must be made while authenticated."


class InvalidArgument(CharacterStudioError):
    """Raised when required input is missing or malformed."""

    code = "invalid-argument"
    status_code = 400
    default_message = "The request is missing required fields."


class NotFound(CharacterStudioError):
    """Raised when the referenced entity does not exist."""

    code = "not-found"
    status_code = 404
    default_message = "Character not found."


class PermissionDenied(CharacterStudioError):
    """Raised when the entity exists but belongs to another user."""

    code = "permission-denied"
    status_code = 403
    default_message = "You do not have permission to access this character."


class FailedPrecondition(CharacterStudioError):
    """Raised when a required backend is not configured."""

    code = "failed-precondition"
    status_code = 412
    default_message = "The backend is not configured for this operation."


class Internal(CharacterStudioError):
    """Raised for any unexpected downstream failure."""


class BackendError(Exception):
    """Base exception for storage and AI adapter failures."""


class StorageError(BackendError):
    """Raised when a blob or profile store operation fails."""


class BlobNotFoundError(StorageError):
    """Raised when a blob does not exist at the requested path."""


class InvalidBlobUrlError(StorageError, ValueError):
    """Raised when a durable URL cannot be mapped back to a storage path."""


class AnalysisError(BackendError):
    """Raised when vision analysis fails or returns an unusable result."""


class SynthesisError(BackendError):
    """Raised when image synthesis fails or returns no image data."""

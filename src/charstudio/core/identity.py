"""Bearer credential verification.

An identity verifier turns the bearer token sent with a request into the
caller's stable user ID, or raises :class:`~charstudio.core.errors.Unauthenticated`.
Missing, malformed, invalid, expired and revoked credentials are reported
identically so callers cannot tell which of those applies.
"""

from __future__ import annotations

import logging
from typing import Protocol

from firebase_admin import auth

from charstudio.core.errors import Internal, Unauthenticated

logger = logging.getLogger(__name__)


class IdentityVerifier(Protocol):
    """Interface shared by the credential verifiers."""

    def verify(self, token: str) -> str: ...


class FirebaseIdentityVerifier:
    """Verify Firebase Authentication ID tokens.

    Args:
        app: The ``firebase_admin.App`` to verify against.
        check_revoked: Also reject tokens revoked after issue.  This costs an
            extra call to the Firebase Auth backend per request.
    """

    def __init__(self, app=None, check_revoked: bool = False) -> None:
        self._app = app
        self._check_revoked = check_revoked

    def verify(self, token: str) -> str:
        if not token:
            raise Unauthenticated()
        try:
            claims = auth.verify_id_token(
                token,
                app=self._app,
                check_revoked=self._check_revoked,
            )
        except auth.CertificateFetchError as exc:
            logger.error(f"Could not fetch token signing certificates: {exc}")
            raise Internal("Unable to verify credentials right now.") from exc
        except (
            auth.InvalidIdTokenError,
            auth.UserDisabledError,
            ValueError,
        ) as exc:
            # ExpiredIdTokenError and RevokedIdTokenError subclass
            # InvalidIdTokenError.
            logger.info(f"Rejected ID token: {type(exc).__name__}")
            raise Unauthenticated() from exc

        uid = claims.get("uid") or claims.get("sub")
        if not uid:
            raise Unauthenticated()
        return uid


class StaticTokenVerifier:
    """Accept a fixed set of tokens, each mapped to a user ID.

    Intended for local development and tests, where no identity provider is
    available.

    Args:
        tokens: Mapping of bearer token to user ID.
    """

    def __init__(self, tokens: dict[str, str]) -> None:
        self._tokens = dict(tokens)

    def verify(self, token: str) -> str:
        uid = self._tokens.get(token) if token else None
        if not uid:
            raise Unauthenticated()
        return uid

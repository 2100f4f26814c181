"""Bearer credential dependency for authenticated routes."""

from __future__ import annotations

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from charstudio.core.errors import Unauthenticated

# auto_error is off so a missing header raises our Unauthenticated (401 in
# the standard error shape) instead of FastAPI's 403.
bearer_scheme = HTTPBearer(auto_error=False)


def current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    """Return the caller's user ID from the ``Authorization`` header.

    Declared as a plain function so FastAPI runs it in the threadpool; token
    verification may fetch signing certificates over the network.

    Raises:
        Unauthenticated: If the header is missing, not a bearer token, or
            the token is rejected by the identity verifier.
    """
    if credentials is None or not credentials.credentials:
        raise Unauthenticated()
    return request.app.state.backends.identity.verify(credentials.credentials)

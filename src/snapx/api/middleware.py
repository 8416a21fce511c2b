"""Middleware: bearer-token authentication of the acting principal.

Tokens have the form ``<principal_id>.<hex hmac-sha256(secret, principal_id)>``.
Issuing them (registration, login) happens elsewhere; this module only
verifies a token and yields the principal id it was signed for.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

if TYPE_CHECKING:
    from snapx.config import Settings

_bearer_scheme = HTTPBearer(auto_error=False)


def _get_settings_from_request(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _signature(principal_id: str, secret: str) -> str:
    return hmac.new(secret.encode(), principal_id.encode(), hashlib.sha256).hexdigest()


def sign_principal(principal_id: str, secret: str) -> str:
    """Build the bearer token for ``principal_id``."""
    return f"{principal_id}.{_signature(principal_id, secret)}"


async def get_principal(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> str:
    """Return the verified principal id of the request.

    If no secret is configured (SNAPX_AUTH_SECRET not set), no token can be
    valid and every protected request is rejected.
    """
    settings = _get_settings_from_request(request)
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Access denied. Invalid or missing token.",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if settings.auth_secret is None or credentials is None:
        raise unauthorized

    principal_id, sep, signature = credentials.credentials.rpartition(".")
    if not sep or not principal_id:
        raise unauthorized
    expected = _signature(principal_id, settings.auth_secret)
    if not secrets.compare_digest(signature.encode(), expected.encode()):
        raise unauthorized
    return principal_id


Principal = Annotated[str, Depends(get_principal)]

"""API key authentication for the REST endpoints.

Keys are accepted in the X-API-Key header or as "Authorization: Bearer
<key>". The last_used_at update runs as a background task after the
response is sent.

Provides:
- get_api_key(): FastAPI dependency returning the authenticated APIKey
- require_permission(): dependency factory adding a permission check
"""

from __future__ import annotations

from typing import Callable

from fastapi import BackgroundTasks, Depends, Header

from wabridge.domain.api_keys import ApiKeyAuthenticator
from wabridge.domain.api_keys import require_permission as check_permission
from wabridge.domain.models import APIKey
from wabridge.infra.store import Store

from .deps import get_store

API_KEY_HEADER = "X-API-Key"


def _extract_key(x_api_key: str | None, authorization: str | None) -> str | None:
    if x_api_key:
        return x_api_key.strip()
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
    return None


def get_api_key(
    background_tasks: BackgroundTasks,
    store: Store = Depends(get_store),
    x_api_key: str | None = Header(None, alias=API_KEY_HEADER),
    authorization: str | None = Header(None),
) -> APIKey:
    """Authenticate the caller's API key.

    Raises:
        UnauthorizedError: 401 if the key is missing, unknown or expired.
    """
    authenticator = ApiKeyAuthenticator(store, schedule=background_tasks.add_task)
    return authenticator.authenticate(_extract_key(x_api_key, authorization))


def require_permission(permission: str) -> Callable[..., APIKey]:
    """Build a dependency that authenticates and requires permission.

    Raises:
        UnauthorizedError: 401 on bad credentials.
        ForbiddenError: 403 if the key lacks the permission.
    """

    def _dependency(api_key: APIKey = Depends(get_api_key)) -> APIKey:
        check_permission(api_key, permission)
        return api_key

    return _dependency

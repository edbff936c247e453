"""Shared FastAPI dependencies."""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from agora.auth.jwt import Authenticator
from agora.auth.roles import Actor, RoleResolver
from agora.config import get_settings
from agora.database import get_session_factory
from agora.email.service import Notifier, create_notifier
from agora.errors import NotFoundError
from agora.storage import Storage
from agora.users.invitation import InvitationWorkflow

_bearer = HTTPBearer()
_storage: Storage | None = None


def get_storage() -> Storage:
    """Process-wide stores over the initialized session factory."""
    global _storage  # noqa: PLW0603
    if _storage is None:
        _storage = Storage(get_session_factory(), get_settings().db_query_timeout_seconds)
    return _storage


def reset_storage() -> None:
    global _storage  # noqa: PLW0603
    _storage = None


async def get_roles(storage: Storage = Depends(get_storage)) -> RoleResolver:  # noqa: B008
    return storage.roles or await storage.load_roles()


@lru_cache
def get_authenticator() -> Authenticator:
    return Authenticator.from_settings(get_settings())


@lru_cache
def get_notifier() -> Notifier:
    return create_notifier()


def get_invitation_workflow(
    storage: Storage = Depends(get_storage),  # noqa: B008
    notifier: Notifier = Depends(get_notifier),  # noqa: B008
) -> InvitationWorkflow:
    settings = get_settings()
    return InvitationWorkflow(
        storage.users,
        notifier,
        token_ttl=timedelta(hours=settings.activation_token_ttl_hours),
        activation_url_base=settings.activation_url_base,
    )


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),  # noqa: B008
    authenticator: Authenticator = Depends(get_authenticator),  # noqa: B008
    storage: Storage = Depends(get_storage),  # noqa: B008
) -> Actor:
    """
    Verify the bearer token and resolve it to an active user.

    Raises 401 for a bad token or a user that is gone or not yet activated.
    """
    try:
        payload = authenticator.verify(credentials.credentials)
        user_id = int(payload["sub"])
    except (jwt.InvalidTokenError, ValueError) as e:
        raise HTTPException(status_code=401, detail="Invalid token") from e

    try:
        user = await storage.users.get_active_by_id(user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=401, detail="User not found") from e
    return Actor(id=user.id, name=user.name, role_level=user.role_level)

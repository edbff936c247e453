"""Credential checks for the token endpoint."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from agora.auth.password import check_needs_rehash, hash_password, verify_password
from agora.errors import NotFoundError

if TYPE_CHECKING:
    from agora.db.models import User
    from agora.users.store import UserStore

logger = structlog.get_logger()

# Verified against when the email is unknown so both paths cost one argon2 check.
_DUMMY_HASH = hash_password("agora-dummy-password")


async def authenticate(users: UserStore, email: str, password: str) -> User:
    """
    Return the active user owning these credentials.

    Unknown email, inactive account and wrong password all raise the same
    NotFoundError.
    """
    try:
        user = await users.get_active_by_email(email)
    except NotFoundError:
        verify_password(password, _DUMMY_HASH)
        raise NotFoundError("invalid email or password") from None

    if not verify_password(password, user.password_hash):
        logger.info("login_failed", user_id=user.id)
        raise NotFoundError("invalid email or password")

    if check_needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
        await users.set_password_hash(user.id, user.password_hash)
        logger.info("password_rehashed", user_id=user.id)

    return user

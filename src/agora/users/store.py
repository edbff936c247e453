"""
Identity store: user records, activation tokens and activation state.

Every public method is one transactional unit opened from the session
factory, bounded by a deadline, and returns detached ORM instances.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import delete, exists, func, select, update

from agora.database import transaction
from agora.db.models import ActivationToken, User
from agora.errors import (
    AgoraError,
    DuplicateEmailError,
    DuplicateNameError,
    IntegrityViolationError,
    NotFoundError,
    StorageError,
    TokenInvalidOrExpiredError,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = structlog.get_logger()

_DUPLICATE_BY_CONSTRAINT: dict[str, type[AgoraError]] = {
    "uq_users_name": DuplicateNameError,
    "uq_users_email": DuplicateEmailError,
}


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserStore:
    """Users and their activation tokens."""

    def __init__(self, factory: async_sessionmaker[AsyncSession], timeout: float | None = None) -> None:
        self._factory = factory
        self._timeout = timeout

    def _tx(self, timeout: float | None):  # noqa: ANN202
        return transaction(self._factory, timeout if timeout is not None else self._timeout)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def create_with_invite(
        self,
        user: User,
        token_hash: str,
        ttl: timedelta,
        *,
        timeout: float | None = None,
    ) -> User:
        """
        Insert an inactive user and its activation token as one unit.

        Raises:
            DuplicateNameError / DuplicateEmailError: uniqueness violated.
            StorageUnavailableError: transport failure or deadline exceeded.
        Nothing is persisted on any failure.
        """
        now = datetime.now(timezone.utc)
        user.email = normalize_email(user.email)
        user.is_active = False
        user.created_at = now
        name, email = user.name, user.email
        try:
            async with self._tx(timeout) as db:
                await self._insert_user(db, user)
                await self._insert_token(db, user.id, token_hash, now + ttl)
        except IntegrityViolationError as exc:
            raise await self._classify_duplicate(exc, name, email) from exc

        logger.info("user_created", user_id=user.id, name=user.name)
        return user

    async def _insert_user(self, db: AsyncSession, user: User) -> None:
        db.add(user)
        await db.flush()

    async def _insert_token(self, db: AsyncSession, user_id: int, token_hash: str, expires_at: datetime) -> None:
        db.add(ActivationToken(
            user_id=user_id,
            token_hash=token_hash,
            expires_at=expires_at,
            created_at=datetime.now(timezone.utc),
        ))
        await db.flush()

    async def _classify_duplicate(self, exc: IntegrityViolationError, name: str, email: str) -> Exception:
        """Turn a failed insert into DuplicateName/DuplicateEmail."""
        if exc.constraint is not None:
            return _DUPLICATE_BY_CONSTRAINT.get(exc.constraint, StorageError)()
        # Driver gave no constraint name: probe the unique columns instead.
        async with self._tx(None) as db:
            if await db.scalar(select(exists().where(User.name == name))):
                return DuplicateNameError()
            if await db.scalar(select(exists().where(User.email == email))):
                return DuplicateEmailError()
        return StorageError()

    async def reissue_token(
        self,
        user_id: int,
        token_hash: str,
        ttl: timedelta,
        *,
        timeout: float | None = None,
    ) -> None:
        """Replace the user's activation token with a new one."""
        now = datetime.now(timezone.utc)
        try:
            async with self._tx(timeout) as db:
                await db.execute(delete(ActivationToken).where(ActivationToken.user_id == user_id))
                await self._insert_token(db, user_id, token_hash, now + ttl)
        except IntegrityViolationError as exc:
            raise NotFoundError("user not found") from exc
        logger.info("activation_token_reissued", user_id=user_id)

    async def redeem(
        self,
        token_hash: str,
        now: datetime | None = None,
        *,
        timeout: float | None = None,
    ) -> User:
        """
        Consume a live token and activate its owner.

        Wrong, expired and already-used tokens all raise
        TokenInvalidOrExpiredError; the caller cannot tell them apart.
        """
        now = now or datetime.now(timezone.utc)
        async with self._tx(timeout) as db:
            user_id = await db.scalar(
                delete(ActivationToken)
                .where(ActivationToken.token_hash == token_hash)
                .where(ActivationToken.expires_at > now)
                .returning(ActivationToken.user_id)
                .execution_options(synchronize_session=False)
            )
            if user_id is None:
                raise TokenInvalidOrExpiredError()
            await db.execute(
                update(User)
                .where(User.id == user_id)
                .values(is_active=True)
                .execution_options(synchronize_session=False)
            )
            user = await db.get(User, user_id)
            if user is None:
                raise TokenInvalidOrExpiredError()

        logger.info("user_activated", user_id=user.id)
        return user

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _get_one(self, *criteria: Any, active_only: bool, timeout: float | None) -> User:
        stmt = select(User).where(*criteria)
        if active_only:
            stmt = stmt.where(User.is_active.is_(True))
        async with self._tx(timeout) as db:
            user = (await db.execute(stmt)).scalar_one_or_none()
        if user is None:
            raise NotFoundError("user not found")
        return user

    async def get_by_id(self, user_id: int, *, timeout: float | None = None) -> User:
        """Fetch a user in any activation state (auth/authz flows)."""
        return await self._get_one(User.id == user_id, active_only=False, timeout=timeout)

    async def get_active_by_id(self, user_id: int, *, timeout: float | None = None) -> User:
        """Fetch an activated user (user-facing lookups)."""
        return await self._get_one(User.id == user_id, active_only=True, timeout=timeout)

    async def get_by_email(self, email: str, *, timeout: float | None = None) -> User:
        """Fetch a user by email (case-insensitive), any activation state."""
        return await self._get_one(
            func.lower(User.email) == normalize_email(email), active_only=False, timeout=timeout
        )

    async def get_active_by_email(self, email: str, *, timeout: float | None = None) -> User:
        """Fetch an activated user by email (case-insensitive)."""
        return await self._get_one(
            func.lower(User.email) == normalize_email(email), active_only=True, timeout=timeout
        )

    async def set_password_hash(self, user_id: int, password_hash: str, *, timeout: float | None = None) -> None:
        async with self._tx(timeout) as db:
            result = await db.execute(
                update(User)
                .where(User.id == user_id)
                .values(password_hash=password_hash)
                .execution_options(synchronize_session=False)
            )
        if not result.rowcount:  # type: ignore[attr-defined]
            raise NotFoundError("user not found")

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def delete_user(self, user_id: int, *, timeout: float | None = None) -> None:
        """Hard delete. Deleting a user that no longer exists is not an error."""
        async with self._tx(timeout) as db:
            result = await db.execute(delete(User).where(User.id == user_id))
        logger.info("user_deleted", user_id=user_id, existed=bool(result.rowcount))  # type: ignore[attr-defined]

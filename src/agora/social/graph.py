"""Follow / unfollow edges between users."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import delete, select

from agora.database import insert_ignoring_conflicts, transaction
from agora.db.models import Follower
from agora.errors import InputValidationError, IntegrityViolationError, NotFoundError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = structlog.get_logger()


class SocialGraph:
    """
    Edges are unique per (follower, target): following twice is a no-op,
    unfollowing someone you don't follow is a no-op, following yourself is
    rejected.
    """

    def __init__(self, factory: async_sessionmaker[AsyncSession], timeout: float | None = None) -> None:
        self._factory = factory
        self._timeout = timeout

    def _tx(self, timeout: float | None):  # noqa: ANN202
        return transaction(self._factory, timeout if timeout is not None else self._timeout)

    async def follow(self, target_id: int, follower_id: int, *, timeout: float | None = None) -> bool:
        """Add the edge. Returns False when it already existed."""
        if target_id == follower_id:
            raise InputValidationError("users cannot follow themselves")
        try:
            async with self._tx(timeout) as db:
                inserted = await insert_ignoring_conflicts(
                    db,
                    Follower,
                    {
                        "follower_id": follower_id,
                        "target_id": target_id,
                        "created_at": datetime.now(timezone.utc),
                    },
                )
        except IntegrityViolationError as exc:
            raise NotFoundError("user not found") from exc

        if inserted:
            logger.info("user_followed", follower_id=follower_id, target_id=target_id)
        return bool(inserted)

    async def unfollow(self, target_id: int, follower_id: int, *, timeout: float | None = None) -> bool:
        """Remove the edge. Returns False when there was nothing to remove."""
        async with self._tx(timeout) as db:
            result = await db.execute(
                delete(Follower).where(
                    Follower.follower_id == follower_id,
                    Follower.target_id == target_id,
                )
            )
        removed = bool(result.rowcount)  # type: ignore[attr-defined]
        if removed:
            logger.info("user_unfollowed", follower_id=follower_id, target_id=target_id)
        return removed

    async def is_following(self, target_id: int, follower_id: int, *, timeout: float | None = None) -> bool:
        async with self._tx(timeout) as db:
            edge = await db.scalar(
                select(Follower.target_id).where(
                    Follower.follower_id == follower_id,
                    Follower.target_id == target_id,
                )
            )
        return edge is not None

"""Comments on posts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select

from agora.database import transaction
from agora.db.models import Comment, User
from agora.errors import IntegrityViolationError, NotFoundError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = structlog.get_logger()


@dataclass(frozen=True)
class CommentView:
    """A comment annotated with its author's display name."""

    id: int
    content: str
    author_id: int
    author_name: str
    post_id: int
    created_at: datetime


class CommentStore:
    def __init__(self, factory: async_sessionmaker[AsyncSession], timeout: float | None = None) -> None:
        self._factory = factory
        self._timeout = timeout

    def _tx(self, timeout: float | None):  # noqa: ANN202
        return transaction(self._factory, timeout if timeout is not None else self._timeout)

    async def create(
        self,
        *,
        post_id: int,
        author_id: int,
        content: str,
        timeout: float | None = None,
    ) -> Comment:
        """Add a comment. Raises NotFoundError if the post (or author) is gone."""
        comment = Comment(
            post_id=post_id,
            author_id=author_id,
            content=content,
            created_at=datetime.now(timezone.utc),
        )
        try:
            async with self._tx(timeout) as db:
                db.add(comment)
                await db.flush()
        except IntegrityViolationError as exc:
            raise NotFoundError("post not found") from exc

        logger.info("comment_created", comment_id=comment.id, post_id=post_id)
        return comment

    async def list_for_post(self, post_id: int, *, timeout: float | None = None) -> list[CommentView]:
        """Comments of a post, newest first."""
        stmt = (
            select(Comment, User.name)
            .join(User, User.id == Comment.author_id)
            .where(Comment.post_id == post_id)
            .order_by(Comment.created_at.desc(), Comment.id.desc())
        )
        async with self._tx(timeout) as db:
            rows = (await db.execute(stmt)).all()
        return [
            CommentView(
                id=comment.id,
                content=comment.content,
                author_id=comment.author_id,
                author_name=author_name,
                post_id=comment.post_id,
                created_at=comment.created_at,
            )
            for comment, author_name in rows
        ]

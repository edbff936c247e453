"""
Content store for posts.

Updates use optimistic concurrency: each write is a single conditional
UPDATE on (id, version). A caller that lost the race gets
VersionConflictError and must re-read before deciding to retry.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import delete, update

from agora.database import transaction
from agora.db.models import Comment, Post, PostTag
from agora.errors import InputValidationError, IntegrityViolationError, NotFoundError, VersionConflictError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = structlog.get_logger()

INITIAL_VERSION = 1
TAG_MAX_LENGTH = 64  # post_tags.tag column width


def normalize_tags(tags: Iterable[str] | None) -> list[str]:
    """
    Trim, drop empties and de-duplicate; sorted for stable output.

    Raises InputValidationError for a tag longer than TAG_MAX_LENGTH.
    """
    if not tags:
        return []
    cleaned = {tag.strip() for tag in tags if tag and tag.strip()}
    if any(len(tag) > TAG_MAX_LENGTH for tag in cleaned):
        raise InputValidationError(f"tags must be at most {TAG_MAX_LENGTH} characters")
    return sorted(cleaned)


class PostStore:
    """Posts and their tag sets."""

    def __init__(self, factory: async_sessionmaker[AsyncSession], timeout: float | None = None) -> None:
        self._factory = factory
        self._timeout = timeout

    def _tx(self, timeout: float | None):  # noqa: ANN202
        return transaction(self._factory, timeout if timeout is not None else self._timeout)

    async def create(
        self,
        *,
        title: str,
        content: str,
        author_id: int,
        tags: Iterable[str] | None = None,
        timeout: float | None = None,
    ) -> Post:
        """Insert a new post at version 1. Raises NotFoundError for an unknown author."""
        now = datetime.now(timezone.utc)
        post = Post(
            title=title,
            content=content,
            author_id=author_id,
            version=INITIAL_VERSION,
            created_at=now,
            updated_at=now,
            tag_rows=[PostTag(tag=tag) for tag in normalize_tags(tags)],
        )
        try:
            async with self._tx(timeout) as db:
                db.add(post)
                await db.flush()
        except IntegrityViolationError as exc:
            raise NotFoundError("author not found") from exc

        logger.info("post_created", post_id=post.id, author_id=author_id)
        return post

    async def get_by_id(self, post_id: int, *, timeout: float | None = None) -> Post:
        async with self._tx(timeout) as db:
            post = await db.get(Post, post_id)
        if post is None:
            raise NotFoundError("post not found")
        return post

    async def update_with_version(
        self,
        post_id: int,
        expected_version: int,
        *,
        title: str | None = None,
        content: str | None = None,
        tags: Iterable[str] | None = None,
        timeout: float | None = None,
    ) -> Post:
        """
        Apply the changes only if the stored version still equals ``expected_version``.

        Returns the post at its new version (``expected_version + 1``).

        Raises:
            InputValidationError: a tag is too long. Checked before any write.
            VersionConflictError: no row matched (id, expected_version).
        """
        new_tags = normalize_tags(tags) if tags is not None else None
        values: dict[str, Any] = {
            "version": Post.version + 1,
            "updated_at": datetime.now(timezone.utc),
        }
        if title is not None:
            values["title"] = title
        if content is not None:
            values["content"] = content

        async with self._tx(timeout) as db:
            new_version = await db.scalar(
                update(Post)
                .where(Post.id == post_id, Post.version == expected_version)
                .values(**values)
                .returning(Post.version)
                .execution_options(synchronize_session=False)
            )
            if new_version is None:
                logger.info("post_version_conflict", post_id=post_id, expected_version=expected_version)
                raise VersionConflictError(expected_version=expected_version)

            if new_tags is not None:
                await self._replace_tags(db, post_id, new_tags)

            post = await db.get(Post, post_id)

        logger.info("post_updated", post_id=post_id, version=new_version)
        return post  # type: ignore[return-value]

    async def _replace_tags(self, db: AsyncSession, post_id: int, tags: list[str]) -> None:
        await db.execute(delete(PostTag).where(PostTag.post_id == post_id))
        if tags:
            db.add_all(PostTag(post_id=post_id, tag=tag) for tag in tags)
            await db.flush()

    async def delete(self, post_id: int, *, timeout: float | None = None) -> None:
        """Delete a post together with its comments and tags."""
        async with self._tx(timeout) as db:
            await db.execute(delete(Comment).where(Comment.post_id == post_id))
            await db.execute(delete(PostTag).where(PostTag.post_id == post_id))
            deleted = await db.scalar(
                delete(Post)
                .where(Post.id == post_id)
                .returning(Post.id)
                .execution_options(synchronize_session=False)
            )
            if deleted is None:
                raise NotFoundError("post not found")

        logger.info("post_deleted", post_id=post_id)

"""
Personalized feed: posts by followed authors, filtered and paginated.

Filters are validated before any SQL is built. The sort direction only ever
selects one of two prebuilt ordering functions; it never reaches the query
as text.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import and_, asc, desc, func, or_, select

from agora.database import transaction
from agora.db.models import Comment, Follower, Post, PostTag, User
from agora.errors import InputValidationError
from agora.posts.store import normalize_tags

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

FEED_MAX_LIMIT = 20
SEARCH_MAX_LENGTH = 100

_ORDERINGS = {"asc": asc, "desc": desc}


class FeedFilter(BaseModel):
    """Search, tag, pagination and ordering options for a feed request."""

    model_config = ConfigDict(frozen=True)

    search: str = Field("", max_length=SEARCH_MAX_LENGTH)
    tags: tuple[str, ...] = ()
    limit: int = Field(FEED_MAX_LIMIT, ge=1, le=FEED_MAX_LIMIT)
    offset: int = Field(0, ge=0)
    sort: Literal["asc", "desc"] = "desc"

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_tags(value)
        return value

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(normalize_tags(value))

    @classmethod
    def parse(cls, **raw: Any) -> FeedFilter:
        """Validate raw options. Raises InputValidationError instead of clamping."""
        try:
            return cls.model_validate({key: val for key, val in raw.items() if val is not None})
        except pydantic.ValidationError as exc:
            fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in exc.errors())
            raise InputValidationError(f"invalid feed filter: {fields}") from exc


def parse_tags(raw: str | None) -> list[str]:
    """Split the comma-separated query-string form of a tag list."""
    if not raw:
        return []
    return [tag for tag in (part.strip() for part in raw.split(",")) if tag]


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass(frozen=True)
class FeedItem:
    post: Post
    author_name: str
    comment_count: int


class FeedQuery:
    def __init__(self, factory: async_sessionmaker[AsyncSession], timeout: float | None = None) -> None:
        self._factory = factory
        self._timeout = timeout

    async def get_feed(
        self,
        requester_id: int,
        feed_filter: FeedFilter,
        *,
        timeout: float | None = None,
    ) -> list[FeedItem]:
        """
        Posts authored by accounts ``requester_id`` follows.

        When ``search`` is set, title or content must contain it
        (case-insensitive). When ``tags`` is set, the post's tag set must
        contain every one of them. Ordered by creation time in the requested
        direction. An empty list is a normal result.
        """
        order = _ORDERINGS.get(feed_filter.sort)
        if order is None:
            raise InputValidationError("sort must be 'asc' or 'desc'")
        if not 1 <= feed_filter.limit <= FEED_MAX_LIMIT or feed_filter.offset < 0:
            raise InputValidationError("limit or offset out of range")

        comment_count = (
            select(func.count(Comment.id))
            .where(Comment.post_id == Post.id)
            .correlate(Post)
            .scalar_subquery()
        )
        stmt = (
            select(Post, User.name, comment_count.label("comment_count"))
            .join(User, User.id == Post.author_id)
            .join(
                Follower,
                and_(Follower.target_id == Post.author_id, Follower.follower_id == requester_id),
            )
        )

        if feed_filter.search:
            pattern = f"%{_escape_like(feed_filter.search)}%"
            stmt = stmt.where(
                or_(
                    Post.title.ilike(pattern, escape="\\"),
                    Post.content.ilike(pattern, escape="\\"),
                )
            )

        if feed_filter.tags:
            wanted = list(feed_filter.tags)
            tagged = (
                select(PostTag.post_id)
                .where(PostTag.tag.in_(wanted))
                .group_by(PostTag.post_id)
                .having(func.count(PostTag.tag) == len(wanted))
            )
            stmt = stmt.where(Post.id.in_(tagged))

        stmt = (
            stmt.order_by(order(Post.created_at), order(Post.id))
            .limit(feed_filter.limit)
            .offset(feed_filter.offset)
        )

        timeout = timeout if timeout is not None else self._timeout
        async with transaction(self._factory, timeout) as db:
            rows = (await db.execute(stmt)).all()

        return [
            FeedItem(post=post, author_name=author_name, comment_count=count)
            for post, author_name, count in rows
        ]

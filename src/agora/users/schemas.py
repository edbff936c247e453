"""Request/response schemas for user, follow and feed endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from agora.social.feed import FeedItem


class UserResponse(BaseModel):
    """Public profile of an activated user."""

    id: int
    name: str
    age: int
    gender: int
    role_level: int
    created_at: datetime

    model_config = {"from_attributes": True}


class FeedItemResponse(BaseModel):
    id: int
    title: str
    content: str
    author_id: int
    author_name: str
    tags: list[str]
    version: int
    comment_count: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_item(cls, item: FeedItem) -> FeedItemResponse:
        post = item.post
        return cls(
            id=post.id,
            title=post.title,
            content=post.content,
            author_id=post.author_id,
            author_name=item.author_name,
            tags=post.tags,
            version=post.version,
            comment_count=item.comment_count,
            created_at=post.created_at,
            updated_at=post.updated_at,
        )

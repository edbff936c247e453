"""Request/response schemas for post and comment endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, Field

from agora.posts.store import TAG_MAX_LENGTH

Tag = Annotated[str, Field(min_length=1, max_length=TAG_MAX_LENGTH)]


class PostCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    content: str = Field(..., min_length=1, max_length=1000)
    tags: list[Tag] = Field(default_factory=list, max_length=20)


class PostUpdateRequest(BaseModel):
    """
    Partial update. ``version`` must be the version the client last read;
    a stale version is rejected with 409 and nothing is written.
    """

    version: int = Field(..., ge=1)
    title: str | None = Field(None, min_length=1, max_length=100)
    content: str | None = Field(None, min_length=1, max_length=1000)
    tags: list[Tag] | None = Field(None, max_length=20)


class PostResponse(BaseModel):
    id: int
    title: str
    content: str
    author_id: int
    tags: list[str]
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CommentCreateRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=1000)


class CommentResponse(BaseModel):
    id: int
    post_id: int
    author_id: int
    author_name: str | None = None
    content: str
    created_at: datetime

    model_config = {"from_attributes": True}


class PostDetailResponse(PostResponse):
    """A post with its comments, newest first."""

    comments: list[CommentResponse] = []

"""Post router: all /api/v1/posts/* endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from agora.auth.roles import Actor, RoleResolver
from agora.config import get_settings
from agora.dependencies import get_current_actor, get_roles, get_storage
from agora.posts.schemas import (
    CommentCreateRequest,
    CommentResponse,
    PostCreateRequest,
    PostDetailResponse,
    PostResponse,
    PostUpdateRequest,
)
from agora.storage import Storage

router = APIRouter(prefix="/api/v1/posts", tags=["Posts"])


@router.post("", response_model=PostResponse, status_code=201)
async def create_post(
    body: PostCreateRequest,
    actor: Actor = Depends(get_current_actor),  # noqa: B008
    storage: Storage = Depends(get_storage),  # noqa: B008
) -> PostResponse:
    post = await storage.posts.create(
        title=body.title,
        content=body.content,
        author_id=actor.id,
        tags=body.tags,
    )
    return PostResponse.model_validate(post)


@router.get("/{post_id}", response_model=PostDetailResponse)
async def get_post(
    post_id: int,
    _actor: Actor = Depends(get_current_actor),  # noqa: B008
    storage: Storage = Depends(get_storage),  # noqa: B008
) -> PostDetailResponse:
    """A post and its comments, newest comment first."""
    post = await storage.posts.get_by_id(post_id)
    comments = await storage.comments.list_for_post(post_id)
    return PostDetailResponse(
        **PostResponse.model_validate(post).model_dump(),
        comments=[CommentResponse.model_validate(comment) for comment in comments],
    )


@router.patch("/{post_id}", response_model=PostResponse)
async def update_post(
    post_id: int,
    body: PostUpdateRequest,
    actor: Actor = Depends(get_current_actor),  # noqa: B008
    storage: Storage = Depends(get_storage),  # noqa: B008
    roles: RoleResolver = Depends(get_roles),  # noqa: B008
) -> PostResponse:
    """
    Versioned partial update.

    Returns 409 when ``version`` no longer matches; the client should
    re-read the post before trying again.
    """
    post = await storage.posts.get_by_id(post_id)
    roles.authorize(actor, post.author_id, get_settings().post_update_role)
    updated = await storage.posts.update_with_version(
        post_id,
        body.version,
        title=body.title,
        content=body.content,
        tags=body.tags,
    )
    return PostResponse.model_validate(updated)


@router.delete("/{post_id}", status_code=204)
async def delete_post(
    post_id: int,
    actor: Actor = Depends(get_current_actor),  # noqa: B008
    storage: Storage = Depends(get_storage),  # noqa: B008
    roles: RoleResolver = Depends(get_roles),  # noqa: B008
) -> Response:
    post = await storage.posts.get_by_id(post_id)
    roles.authorize(actor, post.author_id, get_settings().post_delete_role)
    await storage.posts.delete(post_id)
    return Response(status_code=204)


@router.post("/{post_id}/comments", response_model=CommentResponse, status_code=201)
async def create_comment(
    post_id: int,
    body: CommentCreateRequest,
    actor: Actor = Depends(get_current_actor),  # noqa: B008
    storage: Storage = Depends(get_storage),  # noqa: B008
) -> CommentResponse:
    comment = await storage.comments.create(post_id=post_id, author_id=actor.id, content=body.content)
    response = CommentResponse.model_validate(comment)
    response.author_name = actor.name
    return response

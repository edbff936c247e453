"""User router: profiles, account deletion, follow edges and the feed."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response

from agora.auth.roles import Actor
from agora.dependencies import get_current_actor, get_storage
from agora.social.feed import FeedFilter
from agora.storage import Storage
from agora.users.schemas import FeedItemResponse, UserResponse

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.get("/feed", response_model=list[FeedItemResponse])
async def get_feed(
    search: str | None = Query(None),
    tags: str | None = Query(None, description="Comma-separated; posts must carry all of them"),
    limit: int | None = Query(None),
    offset: int | None = Query(None),
    sort: str | None = Query(None, description="'asc' or 'desc' by creation time"),
    actor: Actor = Depends(get_current_actor),  # noqa: B008
    storage: Storage = Depends(get_storage),  # noqa: B008
) -> list[FeedItemResponse]:
    """Posts of the accounts the caller follows. Out-of-range options answer 400."""
    feed_filter = FeedFilter.parse(search=search, tags=tags, limit=limit, offset=offset, sort=sort)
    items = await storage.feed.get_feed(actor.id, feed_filter)
    return [FeedItemResponse.from_item(item) for item in items]


@router.delete("/me", status_code=204)
async def delete_me(
    actor: Actor = Depends(get_current_actor),  # noqa: B008
    storage: Storage = Depends(get_storage),  # noqa: B008
) -> Response:
    """Delete the caller's account along with their posts, comments and follow edges."""
    await storage.users.delete_user(actor.id)
    return Response(status_code=204)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    _actor: Actor = Depends(get_current_actor),  # noqa: B008
    storage: Storage = Depends(get_storage),  # noqa: B008
) -> UserResponse:
    user = await storage.users.get_active_by_id(user_id)
    return UserResponse.model_validate(user)


@router.put("/{user_id}/follow", status_code=204)
async def follow(
    user_id: int,
    actor: Actor = Depends(get_current_actor),  # noqa: B008
    storage: Storage = Depends(get_storage),  # noqa: B008
) -> Response:
    await storage.users.get_active_by_id(user_id)
    await storage.graph.follow(user_id, actor.id)
    return Response(status_code=204)


@router.delete("/{user_id}/follow", status_code=204)
async def unfollow(
    user_id: int,
    actor: Actor = Depends(get_current_actor),  # noqa: B008
    storage: Storage = Depends(get_storage),  # noqa: B008
) -> Response:
    await storage.graph.unfollow(user_id, actor.id)
    return Response(status_code=204)

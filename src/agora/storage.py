"""Single entry point grouping every store over one session factory."""

from __future__ import annotations

from typing import TYPE_CHECKING

from agora.auth.roles import RoleResolver
from agora.posts.comments import CommentStore
from agora.posts.store import PostStore
from agora.social.feed import FeedQuery
from agora.social.graph import SocialGraph
from agora.users.store import UserStore

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


class Storage:
    """
    Stores sharing one connection pool and one default deadline.

    ``roles`` stays None until ``load_roles()`` has read the roles table.
    """

    def __init__(
        self,
        factory: async_sessionmaker[AsyncSession],
        timeout: float | None = None,
        roles: RoleResolver | None = None,
    ) -> None:
        self.factory = factory
        self.timeout = timeout
        self.users = UserStore(factory, timeout)
        self.posts = PostStore(factory, timeout)
        self.comments = CommentStore(factory, timeout)
        self.graph = SocialGraph(factory, timeout)
        self.feed = FeedQuery(factory, timeout)
        self.roles = roles

    async def load_roles(self) -> RoleResolver:
        self.roles = await RoleResolver.load(self.factory, self.timeout)
        return self.roles

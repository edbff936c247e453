"""
Role tiers and owner-scoped authorization.

Roles form a numeric ordering: a higher tier satisfies any lower
requirement. The table is seeded once and read-only at runtime, so the
resolver loads it a single time and then answers from memory.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select

from agora.database import insert_ignoring_conflicts, transaction
from agora.db.models import Role
from agora.errors import ForbiddenError, RoleNotFoundError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from agora.config import Settings

logger = structlog.get_logger()

ROLE_SEED: dict[str, int] = {
    "user": 1,
    "moderator": 2,
    "admin": 3,
}


@dataclass(frozen=True)
class Actor:
    """The already-authenticated caller of an operation."""

    id: int
    name: str
    role_level: int


def authorize(actor: Actor, owner_id: int, required_level: int) -> None:
    """Allow only the owner, and only at or above the required tier."""
    if actor.id != owner_id or actor.role_level < required_level:
        raise ForbiddenError()


class RoleResolver:
    """Name -> tier lookup over the roles table."""

    def __init__(self, levels: Mapping[str, int]) -> None:
        self._levels = dict(levels)

    @classmethod
    async def load(
        cls,
        factory: async_sessionmaker[AsyncSession],
        timeout: float | None = None,
    ) -> RoleResolver:
        async with transaction(factory, timeout) as db:
            result = await db.execute(select(Role.name, Role.level))
            levels = {name: level for name, level in result.all()}
        logger.info("roles_loaded", count=len(levels))
        return cls(levels)

    @property
    def names(self) -> list[str]:
        """Role names ordered by tier."""
        return sorted(self._levels, key=self._levels.__getitem__)

    def resolve(self, role_name: str) -> int:
        try:
            return self._levels[role_name]
        except KeyError:
            raise RoleNotFoundError(f"unknown role: {role_name}") from None

    def authorize(self, actor: Actor, owner_id: int, role_name: str) -> None:
        authorize(actor, owner_id, self.resolve(role_name))


def check_role_settings(roles: RoleResolver, settings: Settings) -> None:
    """Fail fast when a configured role name is missing from the roles table."""
    configured = {
        "default_role": settings.default_role,
        "post_update_role": settings.post_update_role,
        "post_delete_role": settings.post_delete_role,
    }
    unknown = {key: name for key, name in configured.items() if name not in roles.names}
    if unknown:
        logger.error("role_config_invalid", unknown=unknown, known=roles.names)
        raise RoleNotFoundError(f"unknown roles configured: {', '.join(sorted(unknown))}")


async def seed_roles(
    factory: async_sessionmaker[AsyncSession],
    timeout: float | None = None,
) -> int:
    """Insert the default role tiers (idempotent). Returns the number of rows added."""
    async with transaction(factory, timeout) as db:
        inserted = await insert_ignoring_conflicts(
            db, Role, [{"name": name, "level": level} for name, level in ROLE_SEED.items()]
        )
    if inserted:
        logger.info("roles_seeded", count=inserted)
    return inserted

"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from agora.auth.roles import check_role_settings
from agora.auth.router import router as auth_router
from agora.config import get_settings
from agora.database import close_db, init_db
from agora.dependencies import get_storage, reset_storage
from agora.health.router import router as health_router
from agora.middleware import setup_middleware
from agora.posts.router import router as posts_router
from agora.users.router import router as users_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the pool, load the role table and check the configured role names; close the pool on shutdown."""
    settings = get_settings()
    await init_db(settings.database_url, settings)
    roles = await get_storage().load_roles()
    check_role_settings(roles, settings)
    logger.info("startup_complete", environment=settings.environment, roles=roles.names)

    yield

    reset_storage()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Agora API",
        description="Social content backend: users, posts, comments, follow graph and feed",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(posts_router)

    return app


app = create_app()

"""Async SQLAlchemy engine, session management and transactional units."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from sqlalchemy import event
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from agora.config import Settings, get_settings
from agora.errors import IntegrityViolationError, StorageError, StorageUnavailableError

logger = structlog.get_logger()

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


async def init_db(url: str, settings: Settings | None = None) -> None:
    """Initialize the database engine and session factory."""
    global _engine, _session_factory  # noqa: PLW0603
    settings = settings or get_settings()
    is_sqlite = url.startswith("sqlite")
    _engine = create_async_engine(
        url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout_seconds,
        pool_recycle=settings.db_pool_recycle_seconds,
        pool_pre_ping=True,
        echo=False,
        connect_args={} if is_sqlite else {"statement_cache_size": 0},
    )
    if is_sqlite:
        event.listen(_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def close_db() -> None:
    """Dispose of the database engine."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_engine() -> AsyncEngine:
    """Get the async engine instance."""
    if _engine is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the session factory the stores open their units of work from."""
    if _session_factory is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session (FastAPI dependency)."""
    async with get_session_factory()() as session:
        yield session


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------


def constraint_name(exc: DBAPIError) -> str | None:
    """
    Pull the violated constraint name out of the driver's diagnostics.

    asyncpg exposes ``constraint_name`` on the exception chained behind
    SQLAlchemy's adapter, psycopg exposes ``diag.constraint_name``. SQLite
    reports no name at all, in which case callers fall back to probing.
    """
    orig = getattr(exc, "orig", None)
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        name = getattr(candidate, "constraint_name", None)
        if name:
            return str(name)
        diag = getattr(candidate, "diag", None)
        name = getattr(diag, "constraint_name", None)
        if name:
            return str(name)
    return None


def classify_db_error(exc: BaseException) -> Exception:
    """Map a backend exception onto the error taxonomy."""
    if isinstance(exc, (TimeoutError, PoolTimeoutError)):
        return StorageUnavailableError("database operation timed out")
    if isinstance(exc, IntegrityError):
        return IntegrityViolationError(constraint_name(exc))
    if isinstance(exc, (OperationalError, InterfaceError)) or (
        isinstance(exc, DBAPIError) and exc.connection_invalidated
    ):
        return StorageUnavailableError()
    return StorageError()


@asynccontextmanager
async def transaction(
    factory: async_sessionmaker[AsyncSession],
    timeout: float | None,
) -> AsyncIterator[AsyncSession]:
    """
    Run one atomic unit of work.

    Commits when the block exits cleanly and rolls back on any exception,
    including cancellation and the deadline expiring. The connection goes
    back to the pool on every exit path. Backend exceptions leave this
    block already translated into the error taxonomy.
    """
    try:
        async with asyncio.timeout(timeout):
            async with factory() as session, session.begin():
                yield session
    except (DBAPIError, TimeoutError, PoolTimeoutError) as exc:
        classified = classify_db_error(exc)
        logger.warning(
            "storage_error",
            error_type=type(classified).__name__,
            constraint=getattr(classified, "constraint", None),
            backend_error=type(exc).__name__,
        )
        raise classified from exc


async def insert_ignoring_conflicts(
    session: AsyncSession,
    model: type[Any],
    values: dict[str, Any] | list[dict[str, Any]],
) -> int:
    """INSERT ... ON CONFLICT DO NOTHING for PostgreSQL and SQLite. Returns rows inserted."""
    dialect = session.bind.dialect.name if session.bind is not None else "postgresql"
    insert_fn = sqlite_insert if dialect == "sqlite" else pg_insert
    stmt = insert_fn(model).values(values).on_conflict_do_nothing()
    result = await session.execute(stmt)
    return result.rowcount or 0  # type: ignore[attr-defined]

"""Tests for backend error classification at the store boundary."""

import asyncio

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from agora.database import classify_db_error, constraint_name, transaction
from agora.errors import (
    AgoraError,
    IntegrityViolationError,
    StorageError,
    StorageUnavailableError,
)


class _AsyncpgLikeError(Exception):
    constraint_name = "uq_users_email"


class _Diag:
    constraint_name = "uq_users_name"


class _PsycopgLikeError(Exception):
    diag = _Diag()


class _AdapterError(Exception):
    """Stand-in for SQLAlchemy's asyncpg adapter, which chains the driver error."""


def _integrity(orig: BaseException) -> IntegrityError:
    return IntegrityError("INSERT INTO users ...", {}, orig)


class TestConstraintName:
    def test_direct_attribute(self):
        assert constraint_name(_integrity(_AsyncpgLikeError())) == "uq_users_email"

    def test_chained_driver_error(self):
        adapter = _AdapterError()
        adapter.__cause__ = _AsyncpgLikeError()
        assert constraint_name(_integrity(adapter)) == "uq_users_email"

    def test_diag_attribute(self):
        assert constraint_name(_integrity(_PsycopgLikeError())) == "uq_users_name"

    def test_no_name_reported(self):
        assert constraint_name(_integrity(Exception("UNIQUE constraint failed: users.email"))) is None


class TestClassifyDbError:
    def test_timeout_is_unavailable(self):
        classified = classify_db_error(TimeoutError())
        assert isinstance(classified, StorageUnavailableError)
        assert classified.retriable is True

    def test_integrity_carries_constraint(self):
        classified = classify_db_error(_integrity(_AsyncpgLikeError()))
        assert isinstance(classified, IntegrityViolationError)
        assert classified.constraint == "uq_users_email"
        assert classified.retriable is False

    def test_operational_is_unavailable(self):
        classified = classify_db_error(OperationalError("SELECT 1", {}, Exception("connection refused")))
        assert isinstance(classified, StorageUnavailableError)

    def test_other_dbapi_error_is_generic(self):
        classified = classify_db_error(ProgrammingError("SELECT nope", {}, Exception("syntax error")))
        assert type(classified) is StorageError

    def test_classified_messages_hide_backend_text(self):
        classified = classify_db_error(OperationalError("SELECT 1", {}, Exception("password=hunter2")))
        assert "hunter2" not in str(classified)


class TestTransaction:
    @pytest.mark.asyncio
    async def test_commits_on_success(self, session_factory):
        async with transaction(session_factory, 5.0) as db:
            await db.execute(text("INSERT INTO roles (level, name) VALUES (9, 'owner')"))
        async with transaction(session_factory, 5.0) as db:
            assert await db.scalar(text("SELECT name FROM roles WHERE level = 9")) == "owner"

    @pytest.mark.asyncio
    async def test_rolls_back_on_domain_error(self, session_factory):
        with pytest.raises(AgoraError):
            async with transaction(session_factory, 5.0) as db:
                await db.execute(text("INSERT INTO roles (level, name) VALUES (9, 'owner')"))
                raise AgoraError("abort")
        async with transaction(session_factory, 5.0) as db:
            assert await db.scalar(text("SELECT count(*) FROM roles WHERE level = 9")) == 0

    @pytest.mark.asyncio
    async def test_integrity_error_classified(self, session_factory):
        with pytest.raises(IntegrityViolationError):
            async with transaction(session_factory, 5.0) as db:
                await db.execute(text("INSERT INTO roles (level, name) VALUES (1, 'duplicate')"))

    @pytest.mark.asyncio
    async def test_deadline_becomes_unavailable(self, session_factory):
        with pytest.raises(StorageUnavailableError):
            async with transaction(session_factory, 0.05) as db:
                await db.execute(text("INSERT INTO roles (level, name) VALUES (9, 'owner')"))
                await asyncio.sleep(1)
        async with transaction(session_factory, 5.0) as db:
            assert await db.scalar(text("SELECT count(*) FROM roles WHERE level = 9")) == 0

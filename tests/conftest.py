"""Shared test fixtures.

Every test that touches storage gets its own SQLite file with the schema
created from the ORM metadata and the role tiers seeded.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable, Iterator
from datetime import timedelta
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agora.auth.password import hash_password
from agora.auth.roles import ROLE_SEED, seed_roles
from agora.config import get_settings
from agora.database import close_db, get_engine, get_session_factory, init_db
from agora.db.base import Base
from agora.db.models import User
from agora.dependencies import get_authenticator, get_notifier, get_storage, reset_storage
from agora.errors import NotificationError
from agora.main import create_app
from agora.storage import Storage
from agora.users.invitation import InvitationWorkflow, generate_activation_secret, hash_activation_secret

TEST_PASSWORD = "SecureP@ss1"
TOKEN_TTL = timedelta(hours=72)
# Argon2 hashing is slow on purpose; users created by helpers share one hash.
_TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


class FakeNotifier:
    """Records every message instead of sending it. Set ``fail`` to simulate an outage."""

    def __init__(self) -> None:
        self.sent: list[dict[str, str | None]] = []
        self.fail = False

    async def send(self, to: str, subject: str, body: str, html_body: str | None = None) -> None:
        if self.fail:
            raise NotificationError("smtp unreachable")
        self.sent.append({"to": to, "subject": subject, "body": body, "html_body": html_body})

    def last_secret(self) -> str:
        """The activation secret from the most recent message (last path segment of the link)."""
        body = self.sent[-1]["body"] or ""
        link = next(word for word in body.split() if "/activate/" in word)
        return link.rstrip("/").rsplit("/", 1)[-1]


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setenv("AGORA_JWT_SECRET", "test-secret-key-that-is-long-enough-for-hs256")
    monkeypatch.setenv("AGORA_LOG_FORMAT", "console")
    monkeypatch.setenv("AGORA_ACTIVATION_URL_BASE", "http://test/api/v1/auth/activate")
    get_settings.cache_clear()
    get_authenticator.cache_clear()
    get_notifier.cache_clear()
    yield
    get_settings.cache_clear()
    get_authenticator.cache_clear()
    get_notifier.cache_clear()


@pytest_asyncio.fixture
async def session_factory(tmp_path: Path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'agora.db'}", get_settings())
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = get_session_factory()
    await seed_roles(factory)
    yield factory
    reset_storage()
    await close_db()


@pytest_asyncio.fixture
async def storage(session_factory: async_sessionmaker[AsyncSession]) -> Storage:
    store = Storage(session_factory, timeout=10.0)
    await store.load_roles()
    return store


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def workflow(storage: Storage, notifier: FakeNotifier) -> InvitationWorkflow:
    return InvitationWorkflow(
        storage.users,
        notifier,
        token_ttl=TOKEN_TTL,
        activation_url_base=get_settings().activation_url_base,
    )


@pytest.fixture
def make_user(storage: Storage) -> Callable[..., Awaitable[User]]:
    """Create a user directly through the store; activated unless ``active=False``."""

    async def _make(
        name: str,
        email: str | None = None,
        *,
        active: bool = True,
        age: int = 30,
        role: str = "user",
    ) -> User:
        secret = generate_activation_secret()
        user = User(
            name=name,
            email=email or f"{name}@example.com",
            password_hash=_TEST_PASSWORD_HASH,
            age=age,
            gender=0,
            role_level=ROLE_SEED[role],
        )
        user = await storage.users.create_with_invite(user, hash_activation_secret(secret), TOKEN_TTL)
        if active:
            user = await storage.users.redeem(hash_activation_secret(secret))
        return user

    return _make


@pytest.fixture
def auth_headers() -> Callable[[int], dict[str, str]]:
    """Build the Authorization header for a user id."""

    def _headers(user_id: int) -> dict[str, str]:
        return {"Authorization": f"Bearer {get_authenticator().issue_access_token(user_id)}"}

    return _headers


@pytest_asyncio.fixture
async def client(storage: Storage, notifier: FakeNotifier) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the app, wired to the per-test storage and the fake notifier."""
    app = create_app()
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

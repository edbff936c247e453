"""Identity store: creation with invite, lookups, redemption and deletion."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from agora.auth.roles import ROLE_SEED
from agora.database import transaction
from agora.db.models import ActivationToken, User
from agora.errors import (
    DuplicateEmailError,
    DuplicateNameError,
    NotFoundError,
    StorageUnavailableError,
    TokenInvalidOrExpiredError,
)
from agora.users.invitation import generate_activation_secret, hash_activation_secret

TTL = timedelta(hours=72)


def _user(name: str = "alice", email: str = "a@x.io") -> User:
    return User(
        name=name,
        email=email,
        password_hash="$argon2id$placeholder",
        age=30,
        gender=1,
        role_level=ROLE_SEED["user"],
    )


async def _count(factory, model) -> int:
    async with transaction(factory, 5.0) as db:
        return await db.scalar(select(func.count()).select_from(model))


class TestCreateWithInvite:
    @pytest.mark.asyncio
    async def test_creates_inactive_user_and_token(self, storage, session_factory):
        user = await storage.users.create_with_invite(_user(), hash_activation_secret("s1"), TTL)

        assert user.id is not None
        assert user.is_active is False
        assert await _count(session_factory, User) == 1
        assert await _count(session_factory, ActivationToken) == 1

        with pytest.raises(NotFoundError):
            await storage.users.get_active_by_id(user.id)
        assert (await storage.users.get_by_id(user.id)).name == "alice"

    @pytest.mark.asyncio
    async def test_email_is_normalized(self, storage):
        await storage.users.create_with_invite(_user(email="  Alice@X.IO "), hash_activation_secret("s1"), TTL)
        user = await storage.users.get_by_email("ALICE@x.io")
        assert user.email == "alice@x.io"

    @pytest.mark.asyncio
    async def test_duplicate_name(self, storage, session_factory):
        await storage.users.create_with_invite(_user(), hash_activation_secret("s1"), TTL)
        with pytest.raises(DuplicateNameError):
            await storage.users.create_with_invite(_user(email="b@x.io"), hash_activation_secret("s2"), TTL)
        assert await _count(session_factory, User) == 1
        assert await _count(session_factory, ActivationToken) == 1

    @pytest.mark.asyncio
    async def test_duplicate_email(self, storage, session_factory):
        await storage.users.create_with_invite(_user(), hash_activation_secret("s1"), TTL)
        with pytest.raises(DuplicateEmailError):
            await storage.users.create_with_invite(_user(name="bob"), hash_activation_secret("s2"), TTL)
        assert await _count(session_factory, User) == 1

    @pytest.mark.asyncio
    async def test_failure_after_user_insert_leaves_nothing(self, storage, session_factory, monkeypatch):
        async def _crash(*_args, **_kwargs):
            raise TimeoutError

        monkeypatch.setattr(storage.users, "_insert_token", _crash)
        with pytest.raises(StorageUnavailableError):
            await storage.users.create_with_invite(_user(), hash_activation_secret("s1"), TTL)

        assert await _count(session_factory, User) == 0
        assert await _count(session_factory, ActivationToken) == 0


class TestRedeem:
    @pytest.mark.asyncio
    async def test_redeem_activates_once(self, storage, session_factory):
        secret = generate_activation_secret()
        user = await storage.users.create_with_invite(_user(), hash_activation_secret(secret), TTL)

        activated = await storage.users.redeem(hash_activation_secret(secret))
        assert activated.id == user.id
        assert activated.is_active is True
        assert (await storage.users.get_active_by_id(user.id)).is_active is True
        assert await _count(session_factory, ActivationToken) == 0

        with pytest.raises(TokenInvalidOrExpiredError):
            await storage.users.redeem(hash_activation_secret(secret))

    @pytest.mark.asyncio
    async def test_unknown_token(self, storage):
        with pytest.raises(TokenInvalidOrExpiredError):
            await storage.users.redeem(hash_activation_secret("never-issued"))

    @pytest.mark.asyncio
    async def test_expired_token(self, storage):
        secret = generate_activation_secret()
        user = await storage.users.create_with_invite(_user(), hash_activation_secret(secret), TTL)

        later = datetime.now(timezone.utc) + TTL + timedelta(minutes=1)
        with pytest.raises(TokenInvalidOrExpiredError):
            await storage.users.redeem(hash_activation_secret(secret), later)

        assert (await storage.users.get_by_id(user.id)).is_active is False

    @pytest.mark.asyncio
    async def test_reissue_replaces_token(self, storage):
        user = await storage.users.create_with_invite(_user(), hash_activation_secret("old"), TTL)
        await storage.users.reissue_token(user.id, hash_activation_secret("new"), TTL)

        with pytest.raises(TokenInvalidOrExpiredError):
            await storage.users.redeem(hash_activation_secret("old"))
        assert (await storage.users.redeem(hash_activation_secret("new"))).id == user.id

    @pytest.mark.asyncio
    async def test_reissue_for_unknown_user(self, storage):
        with pytest.raises(NotFoundError):
            await storage.users.reissue_token(9999, hash_activation_secret("x"), TTL)


class TestLookupsAndDeletion:
    @pytest.mark.asyncio
    async def test_missing_user(self, storage):
        with pytest.raises(NotFoundError):
            await storage.users.get_by_id(12345)
        with pytest.raises(NotFoundError):
            await storage.users.get_by_email("nobody@x.io")

    @pytest.mark.asyncio
    async def test_active_email_lookup(self, storage, make_user):
        await make_user("carol", "carol@x.io")
        await make_user("dave", "dave@x.io", active=False)

        assert (await storage.users.get_active_by_email("CAROL@x.io")).name == "carol"
        with pytest.raises(NotFoundError):
            await storage.users.get_active_by_email("dave@x.io")

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, storage, make_user):
        user = await make_user("erin")
        await storage.users.delete_user(user.id)
        await storage.users.delete_user(user.id)
        with pytest.raises(NotFoundError):
            await storage.users.get_by_id(user.id)

    @pytest.mark.asyncio
    async def test_delete_cascades_to_content(self, storage, make_user, session_factory):
        author = await make_user("frank")
        reader = await make_user("gina")
        post = await storage.posts.create(title="t", content="c", author_id=author.id, tags=["x"])
        await storage.comments.create(post_id=post.id, author_id=reader.id, content="hi")
        await storage.graph.follow(author.id, reader.id)

        await storage.users.delete_user(author.id)

        with pytest.raises(NotFoundError):
            await storage.posts.get_by_id(post.id)
        assert await storage.graph.is_following(author.id, reader.id) is False

    @pytest.mark.asyncio
    async def test_set_password_hash(self, storage, make_user):
        user = await make_user("hank")
        await storage.users.set_password_hash(user.id, "$argon2id$new")
        assert (await storage.users.get_by_id(user.id)).password_hash == "$argon2id$new"
        with pytest.raises(NotFoundError):
            await storage.users.set_password_hash(9999, "$argon2id$new")

"""Credential checks used by the token endpoint."""

import pytest

from agora.auth.service import authenticate
from agora.errors import NotFoundError

from conftest import TEST_PASSWORD


class TestAuthenticate:
    @pytest.mark.asyncio
    async def test_valid_credentials(self, storage, make_user):
        user = await make_user("alice", "alice@x.io")
        assert (await authenticate(storage.users, "ALICE@x.io", TEST_PASSWORD)).id == user.id

    @pytest.mark.asyncio
    async def test_wrong_password_unknown_email_and_inactive_look_alike(self, storage, make_user):
        await make_user("alice", "alice@x.io")
        await make_user("bob", "bob@x.io", active=False)

        messages = set()
        for email, password in [
            ("alice@x.io", "WrongP@ss1"),
            ("nobody@x.io", TEST_PASSWORD),
            ("bob@x.io", TEST_PASSWORD),
        ]:
            with pytest.raises(NotFoundError) as exc_info:
                await authenticate(storage.users, email, password)
            messages.add(str(exc_info.value))
        assert messages == {"invalid email or password"}

"""
Registration by invitation.

A registration runs as a three-phase saga rather than one transaction:

1. commit the inactive user and its hashed activation token atomically;
2. deliver the plaintext secret out-of-band through the notifier;
3. if delivery fails for any reason, compensate by deleting the user.

Compensation is best-effort. If the delete fails too, the account is left
orphaned but inactive (inactive accounts cannot authenticate), the second
failure is logged and recorded on the ``Registration``, and the caller
still receives the original delivery failure.
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

import structlog

from agora.auth.password import PasswordStrengthError, hash_password, validate_password_strength
from agora.db.models import User
from agora.email.templates import activation_email
from agora.errors import InputValidationError, InvitationDeliveryError

if TYPE_CHECKING:
    from agora.email.service import Notifier
    from agora.users.store import UserStore

logger = structlog.get_logger()

ACTIVATION_SECRET_BYTES = 32  # 256 bits


def generate_activation_secret() -> str:
    """Opaque URL-safe secret with 256 bits of entropy."""
    return secrets.token_urlsafe(ACTIVATION_SECRET_BYTES)


def hash_activation_secret(secret: str) -> str:
    """One-way hash stored in place of the secret."""
    return hashlib.sha256(secret.encode()).hexdigest()


class RegistrationState(str, Enum):
    PENDING = "pending"
    INVITED = "invited"
    ACTIVE = "active"
    ABANDONED = "abandoned"


@dataclass
class Registration:
    """Progress of one account through the invitation saga."""

    email: str
    state: RegistrationState = RegistrationState.PENDING
    user: User | None = None
    compensation_error: Exception | None = field(default=None, repr=False)

    @property
    def orphaned(self) -> bool:
        """Abandoned, but the compensating delete did not go through."""
        return self.state is RegistrationState.ABANDONED and self.compensation_error is not None


class InvitationWorkflow:
    """Create accounts, deliver activation secrets and redeem them."""

    def __init__(
        self,
        users: UserStore,
        notifier: Notifier,
        *,
        token_ttl: timedelta,
        activation_url_base: str,
    ) -> None:
        self._users = users
        self._notifier = notifier
        self._token_ttl = token_ttl
        self._activation_url_base = activation_url_base.rstrip("/")

    async def register(
        self,
        *,
        name: str,
        email: str,
        password: str,
        age: int,
        gender: int,
        role_level: int,
    ) -> Registration:
        """
        Create an inactive account and send its activation secret.

        Raises:
            InputValidationError: weak password.
            DuplicateNameError / DuplicateEmailError: identity already taken.
            InvitationDeliveryError: the account was rolled back (or orphaned)
                because the activation message could not be delivered.
        """
        try:
            validate_password_strength(password)
        except PasswordStrengthError as exc:
            raise InputValidationError(str(exc)) from exc

        registration = Registration(email=email)
        secret = generate_activation_secret()
        user = User(
            name=name,
            email=email,
            password_hash=hash_password(password),
            age=age,
            gender=gender,
            role_level=role_level,
        )

        registration.user = await self._users.create_with_invite(
            user, hash_activation_secret(secret), self._token_ttl
        )
        registration.state = RegistrationState.INVITED

        try:
            await self._deliver(registration.user, secret)
        except Exception as exc:
            await self._compensate(registration, registration.user.id)
            raise InvitationDeliveryError(registration) from exc

        logger.info("invitation_sent", user_id=registration.user.id)
        return registration

    async def resend(self, email: str) -> Registration:
        """Replace the activation secret of an inactive account and deliver it again."""
        user = await self._users.get_by_email(email)
        if user.is_active:
            raise InputValidationError("account is already active")

        secret = generate_activation_secret()
        await self._users.reissue_token(user.id, hash_activation_secret(secret), self._token_ttl)
        await self._deliver(user, secret)
        logger.info("invitation_resent", user_id=user.id)
        return Registration(email=user.email, state=RegistrationState.INVITED, user=user)

    async def activate(self, secret: str, now: datetime | None = None) -> Registration:
        """Redeem an activation secret. Raises TokenInvalidOrExpiredError on any mismatch."""
        user = await self._users.redeem(hash_activation_secret(secret), now)
        return Registration(email=user.email, state=RegistrationState.ACTIVE, user=user)

    async def _deliver(self, user: User, secret: str) -> None:
        subject, html, text = activation_email(
            user.name,
            f"{self._activation_url_base}/{secret}",
            int(self._token_ttl.total_seconds() // 3600),
        )
        await self._notifier.send(user.email, subject, text, html)

    async def _compensate(self, registration: Registration, user_id: int) -> None:
        registration.state = RegistrationState.ABANDONED
        try:
            await self._users.delete_user(user_id)
        except Exception as exc:
            registration.compensation_error = exc
            logger.error(
                "invitation_compensation_failed",
                user_id=user_id,
                error_type=type(exc).__name__,
                orphaned_inactive=True,
            )
        else:
            logger.warning("invitation_abandoned", user_id=user_id)

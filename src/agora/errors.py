"""
Typed error taxonomy shared by every store and workflow.

Backend failures are translated into these classes once, at the store
boundary (see ``agora.database.transaction``). Callers never see driver
exceptions or vendor error text.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agora.users.invitation import Registration


class AgoraError(Exception):
    """Base class for all domain errors."""

    default_message = "operation failed"
    retriable = False

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class NotFoundError(AgoraError):
    default_message = "not found"


class DuplicateNameError(AgoraError):
    default_message = "name already taken"


class DuplicateEmailError(AgoraError):
    default_message = "email already registered"


class TokenInvalidOrExpiredError(AgoraError):
    default_message = "invalid or expired token"


class VersionConflictError(AgoraError):
    """The stored version moved on since the caller last read it."""

    default_message = "resource was modified by someone else"

    def __init__(self, message: str | None = None, *, expected_version: int | None = None) -> None:
        super().__init__(message)
        self.expected_version = expected_version


class ForbiddenError(AgoraError):
    default_message = "restricted"


class RoleNotFoundError(AgoraError):
    default_message = "role not found"


class InputValidationError(AgoraError, ValueError):
    """Bad filter, pagination or payload input."""

    default_message = "invalid input"


class StorageUnavailableError(AgoraError):
    """Transient backend failure (timeout, lost connection). Safe to retry."""

    default_message = "storage temporarily unavailable"
    retriable = True


class StorageError(AgoraError):
    """Unclassified backend failure. Retrying with the same input will not help."""

    default_message = "storage error"


class IntegrityViolationError(StorageError):
    """A constraint rejected the write. ``constraint`` is None when the driver did not report it."""

    default_message = "constraint violated"

    def __init__(self, constraint: str | None = None) -> None:
        super().__init__()
        self.constraint = constraint


class NotificationError(AgoraError):
    default_message = "notification could not be delivered"


class InvitationDeliveryError(NotificationError):
    """
    The account was committed but the activation message never went out.

    ``registration`` carries the final workflow state; when the compensating
    delete also failed, ``registration.compensation_error`` holds that
    second failure while this error still reports the original one.
    """

    default_message = "activation message could not be delivered"

    def __init__(self, registration: Registration) -> None:
        super().__init__()
        self.registration = registration

"""
Chat error taxonomy.

Exception Hierarchy (all extend core.exceptions):
    InvalidArgumentError (ValidationError) - malformed input, self-chat
    UnauthorizedError (PermissionDeniedError) - caller may not touch the room
    └── SessionExpiredError - the ChatSession was signed out
    NotFoundError - room, message or identity does not exist
    ConflictError - invariant violation (e.g. backward status change)
    └── InvalidStatusTransitionError
    StorageError (ExternalServiceError) - persistence failed, retryable
    TransportError (ExternalServiceError) - realtime delivery failed, retryable

Services return ServiceResult with a ChatErrorCode; raise_for_result() turns
a failed result into the matching exception for in-process callers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core import exceptions as core_exceptions

if TYPE_CHECKING:
    from core.services import ServiceResult


class ChatErrorCode:
    """Machine-readable error codes used by chat services."""

    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    UNAUTHORIZED = "UNAUTHORIZED"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    STORAGE_ERROR = "STORAGE_ERROR"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"


class InvalidArgumentError(core_exceptions.ValidationError):
    """Raised for empty/oversized content, self-chat and malformed ids."""

    default_error_code = ChatErrorCode.INVALID_ARGUMENT


class UnauthorizedError(core_exceptions.PermissionDeniedError):
    """
    Raised when the caller is not allowed to read or write a room.

    The message never names the room or its members.
    """

    default_error_code = ChatErrorCode.UNAUTHORIZED


class SessionExpiredError(UnauthorizedError):
    """Raised by every ChatSession call after sign_out()."""

    default_error_code = ChatErrorCode.SESSION_EXPIRED


class NotFoundError(core_exceptions.NotFoundError):
    default_error_code = ChatErrorCode.NOT_FOUND


class ConflictError(core_exceptions.ConflictError):
    default_error_code = ChatErrorCode.CONFLICT


class InvalidStatusTransitionError(ConflictError):
    """Raised when a message status would move backward."""


class StorageError(core_exceptions.ExternalServiceError):
    """Raised when the database rejected or lost a write."""

    default_error_code = ChatErrorCode.STORAGE_ERROR


class TransportError(core_exceptions.ExternalServiceError):
    """Raised when the channel layer could not deliver an event."""

    default_error_code = ChatErrorCode.TRANSPORT_ERROR


ERROR_CLASSES: dict[str, type[core_exceptions.BaseApplicationError]] = {
    ChatErrorCode.INVALID_ARGUMENT: InvalidArgumentError,
    ChatErrorCode.UNAUTHORIZED: UnauthorizedError,
    ChatErrorCode.SESSION_EXPIRED: SessionExpiredError,
    ChatErrorCode.NOT_FOUND: NotFoundError,
    ChatErrorCode.CONFLICT: ConflictError,
    ChatErrorCode.STORAGE_ERROR: StorageError,
    ChatErrorCode.TRANSPORT_ERROR: TransportError,
}


def raise_for_result(result: ServiceResult):
    """
    Return result.data, or raise the exception matching result.error_code.

    Unknown codes raise StorageError, since the only failures services do
    not classify come from handle_exception().

    Example:
        room, created = raise_for_result(RoomService.get_or_create_direct(a, b))
    """
    if result.success:
        return result.data

    error_class = ERROR_CLASSES.get(result.error_code, StorageError)
    raise error_class(result.error or "Request failed", error_code=result.error_code)

"""
Service layer building blocks.

This module provides:
- ServiceResult: Result wrapper for expected success/failure outcomes
- BaseService: Base class with logging and transaction helpers

Service Layer Philosophy:
    Views and consumers handle transport concerns, models hold data,
    services hold the business rules. A service never returns a bare
    boolean for a failure; callers get a machine-readable error_code so they
    can tell a rejected request from a retryable outage.

Pattern Comparison:
    - ServiceResult: expected failures (validation, authorization, conflicts)
    - Exceptions: unexpected failures (bugs); database outages are caught at
      the service boundary and converted with handle_exception()

Usage:
    from core.services import BaseService, ServiceResult

    class RoomService(BaseService):
        @classmethod
        def rename(cls, room, name: str) -> ServiceResult[Room]:
            if not name.strip():
                return ServiceResult.failure(
                    "Name cannot be empty",
                    error_code="INVALID_ARGUMENT",
                )
            with cls.atomic():
                room.name = name
                room.save(update_fields=["name", "updated_at"])
            return ServiceResult.success(room)

    # In a view
    result = RoomService.rename(room, name)
    if result:
        return Response(RoomSerializer(result.data).data)
    return Response(result.to_response(), status=400)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Human-readable error message if failed
        error_code: Machine-readable error code for client handling
        errors: Field-level errors for validation failures

    Usage:
        result = MessageService.append(room_id, sender=user, content="Hi")
        if result.success:
            message = result.data
        else:
            logger.info("send failed: %s (%s)", result.error, result.error_code)
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """Create a successful result carrying data."""
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code for client handling
            errors: Field-level errors (for validation failures)

        Example:
            return ServiceResult.failure("Room not found", "NOT_FOUND")
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    @classmethod
    def from_exception(
        cls, exc: Exception, error_code: str | None = None
    ) -> ServiceResult[T]:
        """
        Create a failed result from an exception.

        Args:
            exc: The caught exception
            error_code: Optional error code (defaults to exception class name)
        """
        return cls(
            success=False,
            error=str(exc),
            error_code=error_code or exc.__class__.__name__.upper(),
        )

    def to_response(self) -> dict[str, Any]:
        """
        Convert to API response format.

        Returns:
            {"success": True, "data": ...} or
            {"success": False, "error": ..., "error_code": ..., "errors": ...}
        """
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {
            "success": False,
            "error": self.error,
        }
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        return response

    def map(self, func) -> ServiceResult:
        """
        Transform the data if successful; failures pass through unchanged.

        Example:
            result = RoomService.get_room(room_id, user).map(lambda r: r.id)
        """
        if self.success and self.data is not None:
            return ServiceResult.success(func(self.data))
        return self  # type: ignore

    def __bool__(self) -> bool:
        """Truthiness mirrors success."""
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Provides:
    - A logger per service class
    - Explicit transaction boundaries
    - Consistent conversion of unexpected exceptions into results

    Design Notes:
        - Use @classmethod (no instance state)
        - Use ServiceResult for expected failures
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Named "<module>.<ClassName>" so LOGGING can filter per service.
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute the block in a database transaction.

        Nested use creates a savepoint, so an IntegrityError caught around an
        inner block leaves the outer transaction usable.

        Example:
            with cls.atomic():
                room = Room.objects.create(...)
                Membership.objects.bulk_create([...])
        """
        with transaction.atomic():
            yield

    @classmethod
    def handle_exception(
        cls,
        exc: Exception,
        context: str = "",
        error_code: str | None = None,
        log_level: int = logging.ERROR,
    ) -> ServiceResult:
        """
        Log an exception and convert it to a failed ServiceResult.

        Args:
            exc: The caught exception
            context: Operation description for the log line
            error_code: Error code for the result (defaults to class name)
            log_level: Logging level (default ERROR)

        Example:
            try:
                ...
            except DatabaseError as e:
                return cls.handle_exception(e, "appending message", "STORAGE_ERROR")
        """
        message = f"{context}: {exc}" if context else str(exc)
        cls.get_logger().log(log_level, message, exc_info=True)
        return ServiceResult.from_exception(exc, error_code)

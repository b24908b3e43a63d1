"""
Service-level authorization for chat operations.

This module provides the access control checks every chat read, write and
subscription goes through. It is distinct from the DRF permission classes
(in permissions.py), which call into it at the HTTP layer.

Key Components:
    ChatAuthorizationService: Stateless predicates over room membership
    require_room_member: Decorator for service classmethods

Design:
    is_member() is the single authorization primitive. It is one direct
    query against chat_membership and never calls anything that itself
    checks membership. Every other predicate is built on top of it.

Usage:
    if ChatAuthorizationService.is_member(user, room_id):
        ...

    class MembershipService(BaseService):
        @classmethod
        @require_room_member()
        def list_members(cls, room_id, user):
            ...
"""

from __future__ import annotations

from functools import wraps
from typing import TYPE_CHECKING, Callable, TypeVar
from uuid import UUID

from core.services import ServiceResult

from chat.exceptions import ChatErrorCode

if TYPE_CHECKING:
    from authentication.models import User


T = TypeVar("T")

NOT_AUTHORIZED_MESSAGE = "Not authorized for this room"


def _user_id(user: User | UUID | str | None):
    return getattr(user, "pk", user)


def _is_uuid(value) -> bool:
    if isinstance(value, UUID):
        return True
    try:
        UUID(str(value))
    except (TypeError, ValueError):
        return False
    return True


class ChatAuthorizationService:
    """
    Stateless authorization checks for chat operations.

    All methods are classmethods returning booleans, so they compose in
    views, consumers and services alike. Results are not cached: a member
    removed mid-session loses access on the very next check.
    """

    @classmethod
    def is_member(cls, user: User | UUID | str | None, room_id) -> bool:
        """
        Check whether user has a membership row in the room.

        Args:
            user: User instance or user id
            room_id: Room id

        Returns:
            True if a Membership exists, False otherwise (including for
            anonymous users, unknown rooms and ids that are not UUIDs)
        """
        from chat.models import Membership

        user_id = _user_id(user)
        if user_id is None or room_id is None:
            return False
        if not (_is_uuid(user_id) and _is_uuid(room_id)):
            return False

        return Membership.objects.filter(room_id=room_id, user_id=user_id).exists()

    @classmethod
    def can_read_room(cls, user, room_id) -> bool:
        """Members may read messages, members and events of a room."""
        if not getattr(user, "is_authenticated", True):
            return False
        return cls.is_member(user, room_id)

    @classmethod
    def can_write_message(cls, caller, declared_user, room_id) -> bool:
        """
        A message may only be written as oneself, into a room one belongs to.

        Args:
            caller: Authenticated user making the request
            declared_user: User (or id) the message claims to be from
            room_id: Target room
        """
        if str(_user_id(caller)) != str(_user_id(declared_user)):
            return False
        return cls.is_member(caller, room_id)

    @classmethod
    def can_write_membership(cls, caller, declared_user) -> bool:
        """Membership state (typing) may only be changed by its owner."""
        return str(_user_id(caller)) == str(_user_id(declared_user))

    @classmethod
    def can_create_room(cls, caller, created_by) -> bool:
        """Rooms are created on behalf of the caller only."""
        return str(_user_id(caller)) == str(_user_id(created_by))

    @classmethod
    def get_user_room_ids(cls, user) -> list:
        """Get ids of all rooms the user is a member of."""
        from chat.models import Membership

        return list(
            Membership.objects.filter(user_id=_user_id(user)).values_list(
                "room_id", flat=True
            )
        )


def require_room_member(
    room_id_param: str = "room_id",
    user_param: str = "user",
) -> Callable:
    """
    Decorator that requires the user to be a member of the room.

    Extracts user and room id from the method kwargs and checks membership
    before the body runs.

    Returns:
        ServiceResult.failure with UNAUTHORIZED if the check fails
        ServiceResult.failure with INVALID_ARGUMENT if required params missing

    Example:
        class MessageService(BaseService):
            @classmethod
            @require_room_member()
            def list_messages(cls, room_id, user):
                ...
    """

    def decorator(
        func: Callable[..., ServiceResult[T]],
    ) -> Callable[..., ServiceResult[T]]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> ServiceResult[T]:
            user = kwargs.get(user_param)
            room_id = kwargs.get(room_id_param)

            if user is None or room_id is None:
                return ServiceResult.failure(
                    "Missing required parameters",
                    error_code=ChatErrorCode.INVALID_ARGUMENT,
                )

            if not ChatAuthorizationService.is_member(user, room_id):
                return ServiceResult.failure(
                    NOT_AUTHORIZED_MESSAGE,
                    error_code=ChatErrorCode.UNAUTHORIZED,
                )

            return func(*args, **kwargs)

        return wrapper

    return decorator

"""
Permission classes for chat API.

This module provides DRF permission classes for the chat system:
- IsRoomMember: User is a member of the room in the URL

Design Decisions:
    - Membership is checked through ChatAuthorizationService.is_member, the
      same primitive the services and consumers use
    - Unknown rooms and rooms the user is not in are indistinguishable
      (both 403), so room ids cannot be probed
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

from chat.authorization import NOT_AUTHORIZED_MESSAGE, ChatAuthorizationService

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


class IsRoomMember(permissions.BasePermission):
    """
    Allows access only to members of the room.

    The room id is read from the "room_pk" URL kwarg (nested routes) or
    "pk" (room detail routes). Views without a room in the URL pass.
    """

    message = NOT_AUTHORIZED_MESSAGE

    def has_permission(self, request: Request, view: APIView) -> bool:
        """Check membership in the room named by the URL."""
        room_id = view.kwargs.get("room_pk") or view.kwargs.get("pk")
        if room_id is None:
            return True
        return ChatAuthorizationService.can_read_room(request.user, room_id)

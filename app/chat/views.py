"""
Views for chat API.

This module provides REST API endpoints for the chat system:
- RoomViewSet: Direct rooms and room-level actions
- MessageViewSet: Messages in a room (nested under room)
- MessageStatusView: Advance a single message's status

URL Structure:
    /api/v1/chat/rooms/                      GET, POST
    /api/v1/chat/rooms/{id}/                 GET
    /api/v1/chat/rooms/{id}/members/         GET
    /api/v1/chat/rooms/{id}/read/            POST
    /api/v1/chat/rooms/{id}/delivered/       POST
    /api/v1/chat/rooms/{id}/typing/          POST
    /api/v1/chat/rooms/{id}/sync/            GET
    /api/v1/chat/rooms/{id}/messages/        GET, POST
    /api/v1/chat/messages/{id}/status/       POST

Design Decisions:
    - All writes go through the service layer
    - Membership is enforced by IsRoomMember and again in the services
    - Failures use {"error", "error_code"} with the status from ERROR_STATUS
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.utils.dateparse import parse_datetime
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
    extend_schema_view,
)
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from chat.exceptions import ChatErrorCode
from chat.models import Message
from chat.pagination import MessageCursorPagination
from chat.permissions import IsRoomMember
from chat.serializers import (
    DeliveredSerializer,
    DirectRoomCreateSerializer,
    MembershipSerializer,
    MessageCreateSerializer,
    MessageSerializer,
    MessageStatusSerializer,
    RoomSerializer,
    SyncSnapshotSerializer,
    TypingSerializer,
)
from chat.services import (
    MembershipService,
    MessageService,
    ReceiptService,
    RoomService,
    SyncService,
)

if TYPE_CHECKING:
    from core.services import ServiceResult


ERROR_STATUS = {
    ChatErrorCode.INVALID_ARGUMENT: status.HTTP_400_BAD_REQUEST,
    ChatErrorCode.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    ChatErrorCode.SESSION_EXPIRED: status.HTTP_403_FORBIDDEN,
    ChatErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ChatErrorCode.CONFLICT: status.HTTP_409_CONFLICT,
    ChatErrorCode.STORAGE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ChatErrorCode.TRANSPORT_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def error_response(result: ServiceResult) -> Response:
    """Build the error response for a failed ServiceResult."""
    return Response(
        {"error": result.error, "error_code": result.error_code},
        status=ERROR_STATUS.get(result.error_code, status.HTTP_400_BAD_REQUEST),
    )


@extend_schema_view(
    list=extend_schema(
        operation_id="list_rooms",
        summary="List rooms",
        tags=["Chat - Rooms"],
        responses={200: RoomSerializer(many=True)},
    ),
    retrieve=extend_schema(
        operation_id="get_room",
        summary="Get room",
        tags=["Chat - Rooms"],
        responses={200: RoomSerializer},
    ),
)
class RoomViewSet(viewsets.GenericViewSet):
    """
    ViewSet for room operations.

    list:
        Rooms the current user belongs to, most recent activity first.

    create:
        Open the direct room with another user. Returns the existing room
        (200) or the newly created one (201).

    retrieve:
        Room details including members.

    members / read / delivered / typing / sync:
        Room-level actions for members.
    """

    permission_classes = [IsAuthenticated, IsRoomMember]
    serializer_class = RoomSerializer
    lookup_value_regex = (
        "[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
    )

    def list(self, request):
        """List the user's rooms."""
        result = RoomService.list_rooms(request.user)
        if not result.success:
            return error_response(result)
        return Response(RoomSerializer(result.data, many=True).data)

    @extend_schema(
        operation_id="open_direct_room",
        summary="Open direct room",
        tags=["Chat - Rooms"],
        request=DirectRoomCreateSerializer,
        responses={200: RoomSerializer, 201: RoomSerializer},
    )
    def create(self, request):
        """Get or create the direct room with user_id."""
        serializer = DirectRoomCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = RoomService.get_or_create_direct(
            request.user, serializer.validated_data["user_id"]
        )
        if not result.success:
            return error_response(result)

        room, created = result.data
        room = RoomService.get_room(room_id=room.id, user=request.user).data
        return Response(
            RoomSerializer(room).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    def retrieve(self, request, pk=None):
        """Get a room."""
        result = RoomService.get_room(room_id=pk, user=request.user)
        if not result.success:
            return error_response(result)
        return Response(RoomSerializer(result.data).data)

    @extend_schema(
        operation_id="list_room_members",
        summary="List room members",
        tags=["Chat - Rooms"],
        responses={200: MembershipSerializer(many=True)},
    )
    @action(detail=True, methods=["get"])
    def members(self, request, pk=None):
        """List members with their typing flags."""
        result = MembershipService.list_members(room_id=pk, user=request.user)
        if not result.success:
            return error_response(result)
        return Response(MembershipSerializer(result.data, many=True).data)

    @extend_schema(
        operation_id="mark_room_read",
        summary="Mark room as read",
        tags=["Chat - Rooms"],
        request=None,
        responses={200: OpenApiResponse(description="Number of messages marked read")},
    )
    @action(detail=True, methods=["post"])
    def read(self, request, pk=None):
        """Mark every message from others as read."""
        result = ReceiptService.mark_read(room_id=pk, reader=request.user)
        if not result.success:
            return error_response(result)
        return Response({"updated": result.data})

    @extend_schema(
        operation_id="mark_room_delivered",
        summary="Acknowledge delivery",
        tags=["Chat - Rooms"],
        request=DeliveredSerializer,
        responses={200: OpenApiResponse(description="Number of messages marked delivered")},
    )
    @action(detail=True, methods=["post"])
    def delivered(self, request, pk=None):
        """Mark messages from others as delivered."""
        serializer = DeliveredSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ReceiptService.mark_delivered(
            room_id=pk,
            recipient=request.user,
            message_ids=serializer.validated_data.get("message_ids"),
        )
        if not result.success:
            return error_response(result)
        return Response({"updated": result.data})

    @extend_schema(
        operation_id="set_room_typing",
        summary="Set typing indicator",
        tags=["Chat - Rooms"],
        request=TypingSerializer,
        responses={200: OpenApiResponse(description="Whether the flag changed")},
    )
    @action(detail=True, methods=["post"])
    def typing(self, request, pk=None):
        """Set the caller's typing flag."""
        serializer = TypingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = MembershipService.set_typing(
            pk,
            request.user.pk,
            serializer.validated_data["is_typing"],
            caller=request.user,
        )
        if not result.success:
            return error_response(result)
        return Response({"changed": result.data})

    @extend_schema(
        operation_id="sync_room",
        summary="Catch up after reconnect",
        description=(
            "Messages created or updated since the cursor (with a small overlap), "
            "plus current members. Omit `since` for a full snapshot."
        ),
        tags=["Chat - Rooms"],
        parameters=[
            OpenApiParameter(
                name="since",
                type=OpenApiTypes.DATETIME,
                location=OpenApiParameter.QUERY,
                description="server_time from the previous sync",
            )
        ],
        responses={200: SyncSnapshotSerializer},
    )
    @action(detail=True, methods=["get"])
    def sync(self, request, pk=None):
        """Return the catch-up snapshot."""
        since = None
        raw_since = request.query_params.get("since")
        if raw_since:
            try:
                since = parse_datetime(raw_since)
            except ValueError:
                since = None
            if since is None:
                return Response(
                    {
                        "error": "since must be an ISO 8601 datetime",
                        "error_code": ChatErrorCode.INVALID_ARGUMENT,
                    },
                    status=status.HTTP_400_BAD_REQUEST,
                )

        result = SyncService.catch_up(room_id=pk, user=request.user, since=since)
        if not result.success:
            return error_response(result)
        return Response(SyncSnapshotSerializer(result.data).data)


@extend_schema_view(
    list=extend_schema(
        operation_id="list_messages",
        summary="List messages",
        tags=["Chat - Messages"],
    ),
    create=extend_schema(
        operation_id="send_message",
        summary="Send message",
        tags=["Chat - Messages"],
        request=MessageCreateSerializer,
        responses={201: MessageSerializer},
    ),
)
class MessageViewSet(viewsets.GenericViewSet):
    """
    ViewSet for messages within a room.

    list:
        Messages oldest first, cursor paginated.

    create:
        Send a message. Resending with the same client_id returns the
        stored message instead of creating a duplicate.
    """

    permission_classes = [IsAuthenticated, IsRoomMember]
    pagination_class = MessageCursorPagination
    serializer_class = MessageSerializer

    def get_queryset(self):
        """Messages in the room from the URL."""
        return Message.objects.filter(room_id=self.kwargs["room_pk"]).order_by(
            "created_at", "id"
        )

    def list(self, request, room_pk=None):
        """List messages."""
        queryset = self.get_queryset()
        page = self.paginate_queryset(queryset)
        if page is not None:
            serializer = MessageSerializer(page, many=True)
            return self.get_paginated_response(serializer.data)

        return Response(MessageSerializer(queryset, many=True).data)

    def create(self, request, room_pk=None):
        """Send a message."""
        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = MessageService.append(
            room_id=room_pk,
            sender=request.user,
            content=serializer.validated_data["content"],
            client_id=serializer.validated_data.get("client_id"),
        )
        if not result.success:
            return error_response(result)

        return Response(MessageSerializer(result.data).data, status=status.HTTP_201_CREATED)


class MessageStatusView(APIView):
    """
    Advance one message's status (delivered or read).

    URL: /api/v1/chat/messages/{id}/status/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="update_message_status",
        summary="Update message status",
        description="Status only moves forward; a backward change returns 409.",
        tags=["Chat - Messages"],
        request=MessageStatusSerializer,
        responses={
            200: MessageSerializer,
            403: OpenApiResponse(description="Not a member, or the sender"),
            404: OpenApiResponse(description="Message not found"),
            409: OpenApiResponse(description="Backward status change"),
        },
    )
    def post(self, request, message_id):
        """Advance the message status."""
        serializer = MessageStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ReceiptService.advance_status(
            message_id, request.user, serializer.validated_data["status"]
        )
        if not result.success:
            return error_response(result)
        return Response(MessageSerializer(result.data).data)

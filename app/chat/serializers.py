"""
Serializers for the chat API.

This module provides serializers for the chat system:
- Room serializers (read, direct-room create)
- Membership serializer (read)
- Message serializers (read, create, status change)
- SyncSnapshot serializer (reconnect catch-up)

Serializer Hierarchy:
    RoomSerializer: Room with its members
    DirectRoomCreateSerializer: Open a direct room with another user

    MembershipSerializer: Member with display data and typing flag

    MessageSerializer: Message as sent to clients (also the realtime payload)
    MessageCreateSerializer: Send a new message
    MessageStatusSerializer: Advance one message's status
    DeliveredSerializer: Acknowledge delivery of messages

Design Decisions:
    - Read and write serializers are separate
    - Ids and timestamps render as strings so the same output is used for
      REST responses, WebSocket frames and channel-layer events
"""

from __future__ import annotations

from rest_framework import serializers

from chat.constants import MESSAGE_CONFIG
from chat.models import Membership, Message, MessageStatus, Room


# =============================================================================
# Message Serializers
# =============================================================================


class MessageSerializer(serializers.ModelSerializer):
    """
    Full message serializer.

    Used for REST responses and realtime event payloads. Clients
    reconcile with (created_at, id) and match optimistic sends by client_id.
    """

    room_id = serializers.UUIDField(read_only=True)
    sender_id = serializers.UUIDField(read_only=True, allow_null=True)

    class Meta:
        model = Message
        fields = [
            "id",
            "room_id",
            "sender_id",
            "content",
            "message_type",
            "status",
            "read_at",
            "client_id",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class MessageCreateSerializer(serializers.Serializer):
    """
    Serializer for sending a message.

    Content is stripped; emptiness and length are re-checked by
    MessageService.append so every entry point enforces the same rules.
    """

    content = serializers.CharField(
        max_length=MESSAGE_CONFIG.MAX_CONTENT_LENGTH,
        trim_whitespace=True,
        help_text="Message text",
    )
    client_id = serializers.CharField(
        required=False,
        allow_null=True,
        max_length=MESSAGE_CONFIG.MAX_CLIENT_ID_LENGTH,
        help_text="Client-generated correlation id for optimistic sends",
    )


class MessageStatusSerializer(serializers.Serializer):
    """Request body for advancing a single message's status."""

    status = serializers.ChoiceField(
        choices=[MessageStatus.DELIVERED, MessageStatus.READ],
        help_text="Target status (delivered or read)",
    )


class DeliveredSerializer(serializers.Serializer):
    """Request body for delivery acknowledgements."""

    message_ids = serializers.ListField(
        child=serializers.IntegerField(min_value=1),
        required=False,
        allow_empty=False,
        max_length=MESSAGE_CONFIG.MAX_PAGE_SIZE,
        help_text="Messages to acknowledge (all pending when omitted)",
    )


# =============================================================================
# Membership Serializers
# =============================================================================


class MembershipSerializer(serializers.ModelSerializer):
    """Membership with the member's display data."""

    room_id = serializers.UUIDField(read_only=True)
    user_id = serializers.UUIDField(read_only=True)
    display_name = serializers.SerializerMethodField()
    avatar_url = serializers.SerializerMethodField()

    class Meta:
        model = Membership
        fields = [
            "room_id",
            "user_id",
            "display_name",
            "avatar_url",
            "is_typing",
            "typing_updated_at",
            "joined_at",
        ]
        read_only_fields = fields

    def get_display_name(self, obj: Membership) -> str:
        profile = getattr(obj.user, "profile", None)
        if profile is not None and profile.display_name:
            return profile.display_name
        return obj.user.get_short_name()

    def get_avatar_url(self, obj: Membership) -> str:
        profile = getattr(obj.user, "profile", None)
        return profile.avatar_url if profile is not None else ""


class TypingSerializer(serializers.Serializer):
    """Request body for the typing indicator."""

    is_typing = serializers.BooleanField()


# =============================================================================
# Room Serializers
# =============================================================================


class RoomSerializer(serializers.ModelSerializer):
    """Room with its members, newest activity first in lists."""

    created_by_id = serializers.UUIDField(read_only=True, allow_null=True)
    members = MembershipSerializer(source="memberships", many=True, read_only=True)

    class Meta:
        model = Room
        fields = [
            "id",
            "name",
            "is_group",
            "created_by_id",
            "last_message_at",
            "created_at",
            "members",
        ]
        read_only_fields = fields


class DirectRoomCreateSerializer(serializers.Serializer):
    """Request body for opening a direct room."""

    user_id = serializers.UUIDField(help_text="The other member of the room")


# =============================================================================
# Sync Serializers
# =============================================================================


class SyncSnapshotSerializer(serializers.Serializer):
    """Reconnect catch-up for one room (see SyncService.catch_up)."""

    room_id = serializers.UUIDField()
    messages = MessageSerializer(many=True)
    members = MembershipSerializer(many=True)
    server_time = serializers.DateTimeField()
    full = serializers.BooleanField()

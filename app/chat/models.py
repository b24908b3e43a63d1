"""
Chat system models.

This module defines the data models for the 1:1 chat core:

Models:
    Room: Container for messages between members
    DirectRoomPair: Storage-level uniqueness key for direct rooms
    Membership: A user's presence in a room, including the typing flag
    Message: Individual message within a room, with delivery/read status

Design Decisions:
    - Direct rooms are deduplicated per unordered user pair by a unique
      constraint on DirectRoomPair, never by a check-then-insert
    - Message content is immutable once stored; only status moves
    - Status only moves forward: sending -> sent -> delivered -> read
    - Rooms are never hard-deleted by the chat core
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from datetime import datetime


class MessageType(models.TextChoices):
    """
    Type of message content.

    TEXT: User-authored text message
    SYSTEM: Auto-generated event message
    """

    TEXT = "text", "Text"
    SYSTEM = "system", "System"


class MessageStatus(models.TextChoices):
    """
    Delivery state of a message, from the sender's point of view.

    SENDING: Client-side only; the message has not reached the server yet
    SENT: Stored on the server
    DELIVERED: Reached a recipient's connected client
    READ: Seen by the recipient (read_at is set)
    """

    SENDING = "sending", "Sending"
    SENT = "sent", "Sent"
    DELIVERED = "delivered", "Delivered"
    READ = "read", "Read"


STATUS_ORDER = (
    MessageStatus.SENDING,
    MessageStatus.SENT,
    MessageStatus.DELIVERED,
    MessageStatus.READ,
)


def status_rank(status: str) -> int:
    """
    Position of a status in the forward-only lifecycle.

    Raises:
        ValueError: If status is not a MessageStatus value
    """
    return STATUS_ORDER.index(MessageStatus(status))


class Room(UUIDPrimaryKeyMixin, BaseModel):
    """
    A chat room.

    Only direct rooms (is_group=False) are created by the chat core. A direct
    room has exactly two distinct members and at most one direct room exists
    per unordered pair of users.

    Fields:
        name: Optional display name (empty for direct rooms)
        is_group: Whether this is a group room
        created_by: User who opened the room
        last_message_at: created_at of the newest message (for sorting)

    Relationships:
        memberships: Membership rows for this room
        messages: Message rows for this room
        direct_pair: DirectRoomPair if the room is direct
    """

    name = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Display name (empty for direct rooms)",
    )

    is_group = models.BooleanField(
        default=False,
        help_text="Whether this room is a group room",
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_rooms",
        help_text="User who created this room",
    )

    last_message_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Timestamp of most recent message (for sorting room lists)",
    )

    class Meta:
        db_table = "chat_room"
        ordering = ["-last_message_at", "-created_at"]

    def __str__(self) -> str:
        """Return human-readable representation."""
        if self.is_group:
            return f"Group: {self.name}" if self.name else f"Group({self.pk})"
        return f"Direct({self.pk})"

    @property
    def is_direct(self) -> bool:
        """Check if this is a direct (1:1) room."""
        return not self.is_group

    def member_ids(self) -> list:
        """Return the user ids of all members."""
        return list(self.memberships.values_list("user_id", flat=True))


class DirectRoomPair(models.Model):
    """
    Enforces uniqueness of direct rooms between two users.

    Stores the pair in canonical order (lower user id first) so the same two
    users always map to the same row regardless of who opened the room.

    Constraints:
        - UniqueConstraint(user_lower, user_higher): One room per pair
        - CheckConstraint(user_lower_id < user_higher_id): Canonical order
    """

    room = models.OneToOneField(
        Room,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="direct_pair",
        help_text="The direct room this pair represents",
    )

    user_lower = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="+",
        help_text="User with lower ID in this pair",
    )

    user_higher = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="+",
        help_text="User with higher ID in this pair",
    )

    class Meta:
        db_table = "chat_direct_room_pair"
        constraints = [
            models.UniqueConstraint(
                fields=["user_lower", "user_higher"],
                name="unique_direct_room_pair",
            ),
            models.CheckConstraint(
                condition=Q(user_lower_id__lt=F("user_higher_id")),
                name="direct_pair_lower_less_than_higher",
            ),
        ]

    def __str__(self) -> str:
        """Return human-readable representation."""
        return f"DirectPair({self.user_lower_id}, {self.user_higher_id})"


class Membership(models.Model):
    """
    A user's membership in a room.

    The typing flag is lossy last-write-wins state; stale flags are cleared
    by the clear_stale_typing_flags task.

    Fields:
        room: Room this membership belongs to
        user: Member
        joined_at: When the user joined
        is_typing: Whether the member is currently typing
        typing_updated_at: When is_typing last changed

    Constraints:
        - UniqueConstraint(room, user): One membership per user per room
    """

    room = models.ForeignKey(
        Room,
        on_delete=models.CASCADE,
        related_name="memberships",
        help_text="Room this membership belongs to",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="room_memberships",
        help_text="Member of the room",
    )

    joined_at = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user joined this room",
    )

    is_typing = models.BooleanField(
        default=False,
        help_text="Whether the member is currently typing",
    )

    typing_updated_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the typing flag last changed",
    )

    class Meta:
        db_table = "chat_membership"
        ordering = ["joined_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["room", "user"],
                name="unique_room_membership",
            ),
        ]
        indexes = [
            models.Index(
                fields=["user", "room"],
                name="chat_member_user_room_idx",
            ),
            models.Index(
                fields=["typing_updated_at"],
                name="chat_member_typing_idx",
                condition=Q(is_typing=True),
            ),
        ]

    def __str__(self) -> str:
        """Return human-readable representation."""
        typing = " [typing]" if self.is_typing else ""
        return f"Membership: {self.user_id} in {self.room_id}{typing}"


class Message(BaseModel):
    """
    A message within a room.

    Status Flow:
        SENT -> DELIVERED -> READ
        SENT -> READ (a recipient can read before delivery is acknowledged)

    The transitions are django-fsm methods; bulk status changes in
    ReceiptService use conditional UPDATEs with the same source states.

    Fields:
        room: Room this message belongs to
        sender: User who sent the message
        message_type: text or system
        content: Message text (immutable)
        status: Delivery state (managed by FSM)
        read_at: When the recipient read the message
        client_id: Client-generated correlation id used for optimistic
            reconciliation and idempotent retries
    """

    id = models.BigAutoField(primary_key=True)

    room = models.ForeignKey(
        Room,
        on_delete=models.CASCADE,
        related_name="messages",
        help_text="Room this message belongs to",
    )

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sent_messages",
        help_text="User who sent this message",
    )

    message_type = models.CharField(
        max_length=10,
        choices=MessageType.choices,
        default=MessageType.TEXT,
        help_text="Type of message (text or system)",
    )

    content = models.TextField(
        help_text="Message content",
    )

    status = FSMField(
        default=MessageStatus.SENT,
        choices=MessageStatus.choices,
        db_index=True,
        protected=False,
        help_text="Delivery state (forward-only, managed by FSM)",
    )

    read_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the recipient read this message",
    )

    client_id = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        help_text="Client-generated correlation id",
    )

    class Meta:
        db_table = "chat_message"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(
                fields=["room", "created_at", "id"],
                name="chat_msg_room_cursor_idx",
            ),
            models.Index(
                fields=["room", "updated_at"],
                name="chat_msg_room_updated_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["sender", "client_id"],
                condition=Q(client_id__isnull=False),
                name="unique_sender_client_id",
            ),
        ]

    def __str__(self) -> str:
        """Return human-readable representation."""
        preview = self.content[:50] + "..." if len(self.content) > 50 else self.content
        return f"User {self.sender_id}: {preview} [{self.status}]"

    @property
    def is_read(self) -> bool:
        return self.status == MessageStatus.READ

    @transition(
        field=status,
        source=MessageStatus.SENT,
        target=MessageStatus.DELIVERED,
    )
    def deliver(self):
        """Recipient's client received the message."""

    @transition(
        field=status,
        source=[MessageStatus.SENT, MessageStatus.DELIVERED],
        target=MessageStatus.READ,
    )
    def mark_read(self, now: datetime):
        """
        Recipient saw the message.

        Args:
            now: Read timestamp
        """
        self.read_at = now

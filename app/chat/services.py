"""
Chat services.

This module contains the business logic of the chat core:

    RoomService: Direct room lookup/creation (deduplicated per user pair)
    MembershipService: Room members and the typing flag
    MessageService: Appending and listing messages
    ReceiptService: Forward-only delivery/read status
    SyncService: Catch-up snapshot for reconnecting clients

All services are stateless classmethod collections built on BaseService.
Expected failures come back as ServiceResult.failure with a ChatErrorCode;
database failures are logged and returned as STORAGE_ERROR. Every change
that clients must see is published through chat.realtime.notifier after
the surrounding transaction commits.

Usage:
    result = RoomService.get_or_create_direct(ana, bao)
    room, created = result.data

    result = MessageService.append(room_id=room.id, sender=ana, content="Hi")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import UUID

from django.contrib.auth import get_user_model
from django.db import DatabaseError, IntegrityError
from django.db.models import F, Q
from django.utils import timezone
from django_fsm import TransitionNotAllowed

from core.services import BaseService, ServiceResult

from chat.authorization import (
    NOT_AUTHORIZED_MESSAGE,
    ChatAuthorizationService,
    require_room_member,
)
from chat.constants import MESSAGE_CONFIG, REALTIME_CONFIG, TYPING_CONFIG
from chat.exceptions import ChatErrorCode
from chat.models import (
    DirectRoomPair,
    Membership,
    Message,
    MessageStatus,
    Room,
    status_rank,
)
from chat.realtime import (
    MembershipUpdated,
    MessageInserted,
    MessageUpdated,
    notifier,
)

if TYPE_CHECKING:
    from datetime import datetime, timedelta

    from authentication.models import User


def _as_uuid(value) -> UUID | None:
    """Normalise a User, UUID or string to a UUID (None if malformed)."""
    value = getattr(value, "pk", value)
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


# =============================================================================
# Room Directory
# =============================================================================


class RoomService(BaseService):
    """
    Direct room lookup and creation.

    A direct room exists at most once per unordered pair of users. The pair
    is stored in canonical order on DirectRoomPair, whose unique constraint
    decides races between concurrent creators.
    """

    @classmethod
    def get_or_create_direct(cls, creator: User, other) -> ServiceResult[tuple[Room, bool]]:
        """
        Return the direct room between creator and other, creating it if needed.

        Args:
            creator: User opening the room (becomes created_by)
            other: The other user (User instance or id)

        Returns:
            ServiceResult with (room, created)

        Error codes:
            INVALID_ARGUMENT: Malformed id, or creator == other
            NOT_FOUND: Either user does not exist or is inactive
            STORAGE_ERROR: Database failure
        """
        creator_id = _as_uuid(creator)
        other_id = _as_uuid(other)
        if creator_id is None or other_id is None:
            return ServiceResult.failure(
                "User ids must be UUIDs",
                error_code=ChatErrorCode.INVALID_ARGUMENT,
            )

        if creator_id == other_id:
            return ServiceResult.failure(
                "Cannot open a chat with yourself",
                error_code=ChatErrorCode.INVALID_ARGUMENT,
            )

        lower, higher = sorted((creator_id, other_id))
        logger = cls.get_logger()

        try:
            active_users = get_user_model().objects.filter(
                id__in=(lower, higher), is_active=True
            )
            if active_users.count() != 2:
                return ServiceResult.failure(
                    "User not found",
                    error_code=ChatErrorCode.NOT_FOUND,
                )

            existing = cls._find_direct(lower, higher)
            if existing is not None:
                logger.debug(f"Reusing direct room {existing.id} for {lower}/{higher}")
                return ServiceResult.success((existing, False))

            try:
                with cls.atomic():
                    room = Room.objects.create(is_group=False, created_by_id=creator_id)
                    DirectRoomPair.objects.create(
                        room=room, user_lower_id=lower, user_higher_id=higher
                    )
                    Membership.objects.bulk_create(
                        [
                            Membership(room=room, user_id=creator_id),
                            Membership(room=room, user_id=other_id),
                        ]
                    )
            except IntegrityError:
                winner = cls._find_direct(lower, higher)
                if winner is None:
                    raise
                logger.info(f"Lost direct room race for {lower}/{higher}; using {winner.id}")
                return ServiceResult.success((winner, False))

        except DatabaseError as e:
            return cls.handle_exception(
                e, "Opening direct room", error_code=ChatErrorCode.STORAGE_ERROR
            )

        logger.info(f"Created direct room {room.id} between {creator_id} and {other_id}")
        return ServiceResult.success((room, True))

    @classmethod
    def _find_direct(cls, lower: UUID, higher: UUID) -> Room | None:
        pair = (
            DirectRoomPair.objects.select_related("room")
            .filter(user_lower_id=lower, user_higher_id=higher)
            .first()
        )
        return pair.room if pair is not None else None

    @classmethod
    def list_rooms(cls, user: User) -> ServiceResult[list[Room]]:
        """
        Rooms the user belongs to, most recent activity first.

        Rooms without messages sort after rooms with messages, newest first.
        """
        try:
            rooms = (
                Room.objects.filter(memberships__user=user)
                .order_by(F("last_message_at").desc(nulls_last=True), "-created_at")
                .prefetch_related("memberships__user__profile")
            )
            return ServiceResult.success(list(rooms))
        except DatabaseError as e:
            return cls.handle_exception(
                e, "Listing rooms", error_code=ChatErrorCode.STORAGE_ERROR
            )

    @classmethod
    @require_room_member()
    def get_room(cls, room_id, user: User) -> ServiceResult[Room]:
        """Get a room the user is a member of."""
        room = Room.objects.prefetch_related("memberships__user__profile").get(pk=room_id)
        return ServiceResult.success(room)


# =============================================================================
# Membership Registry
# =============================================================================


class MembershipService(BaseService):
    """Room members and their typing flags."""

    @classmethod
    @require_room_member()
    def list_members(cls, room_id, user: User) -> ServiceResult[list[Membership]]:
        """List the members of a room the user belongs to."""
        members = Membership.objects.filter(room_id=room_id).select_related("user__profile")
        return ServiceResult.success(list(members))

    @classmethod
    def is_member(cls, room_id, user_id) -> bool:
        return ChatAuthorizationService.is_member(user_id, room_id)

    @classmethod
    def set_typing(cls, room_id, user_id, is_typing: bool, caller: User) -> ServiceResult[bool]:
        """
        Set the caller's typing flag in a room.

        Last write wins. A repeated state writes and publishes nothing.

        Args:
            room_id: Room the caller is typing in
            user_id: Membership owner (must be the caller)
            is_typing: New flag value
            caller: Authenticated user

        Returns:
            ServiceResult with True if the stored flag changed

        Error codes:
            UNAUTHORIZED: Caller is not user_id or not a member
        """
        if not ChatAuthorizationService.can_write_membership(
            caller, user_id
        ) or not ChatAuthorizationService.is_member(caller, room_id):
            return ServiceResult.failure(
                NOT_AUTHORIZED_MESSAGE,
                error_code=ChatErrorCode.UNAUTHORIZED,
            )

        now = timezone.now()
        try:
            with cls.atomic():
                changed = (
                    Membership.objects.filter(room_id=room_id, user_id=caller.pk)
                    .exclude(is_typing=bool(is_typing))
                    .update(is_typing=bool(is_typing), typing_updated_at=now)
                )
                if changed:
                    membership = Membership.objects.select_related("user__profile").get(
                        room_id=room_id, user_id=caller.pk
                    )
                    notifier.publish(MembershipUpdated.for_membership(membership))
        except DatabaseError as e:
            return cls.handle_exception(
                e, "Updating typing flag", error_code=ChatErrorCode.STORAGE_ERROR
            )

        return ServiceResult.success(bool(changed))

    @classmethod
    def clear_stale_typing(
        cls, older_than: timedelta | None = None, now: datetime | None = None
    ) -> ServiceResult[int]:
        """
        Reset typing flags that have not changed for a while.

        A client that disconnects mid-typing never sends is_typing=False;
        this clears the flag and tells the room.

        Args:
            older_than: Staleness threshold (default TYPING_CONFIG.STALE_AFTER)
            now: Current time (default timezone.now())

        Returns:
            ServiceResult with the number of flags cleared
        """
        now = now or timezone.now()
        cutoff = now - (older_than or TYPING_CONFIG.STALE_AFTER)

        cleared = 0
        try:
            stale = list(
                Membership.objects.filter(is_typing=True)
                .filter(Q(typing_updated_at__lt=cutoff) | Q(typing_updated_at__isnull=True))
                .select_related("user__profile")
            )
            for membership in stale:
                with cls.atomic():
                    # Skip rows whose owner changed the flag since we read them
                    updated = Membership.objects.filter(
                        pk=membership.pk,
                        is_typing=True,
                        typing_updated_at=membership.typing_updated_at,
                    ).update(is_typing=False, typing_updated_at=now)
                    if updated:
                        membership.is_typing = False
                        membership.typing_updated_at = now
                        notifier.publish(MembershipUpdated.for_membership(membership))
                        cleared += 1
        except DatabaseError as e:
            return cls.handle_exception(
                e, "Clearing stale typing flags", error_code=ChatErrorCode.STORAGE_ERROR
            )

        if cleared:
            cls.get_logger().info(f"Cleared {cleared} stale typing flags")
        return ServiceResult.success(cleared)


# =============================================================================
# Message Log
# =============================================================================


class MessageService(BaseService):
    """Appending to and reading from a room's message log."""

    @classmethod
    @require_room_member(user_param="sender")
    def append(
        cls,
        room_id,
        sender: User,
        content: str,
        client_id: str | None = None,
    ) -> ServiceResult[Message]:
        """
        Append a message to a room.

        The insert and the room's last_message_at bump happen in one
        transaction; MessageInserted is published after commit. Retrying
        with the same client_id returns the stored message unchanged.

        Args:
            room_id: Target room
            sender: Authenticated member sending the message
            content: Message text (stripped)
            client_id: Optional client correlation id

        Error codes:
            UNAUTHORIZED: Sender is not a member
            INVALID_ARGUMENT: Empty or too long content, malformed client_id
            CONFLICT: client_id already used in another room
            STORAGE_ERROR: Database failure
        """
        if not isinstance(content, str):
            return ServiceResult.failure(
                "Message content must be text",
                error_code=ChatErrorCode.INVALID_ARGUMENT,
            )

        content = content.strip()
        if len(content) < MESSAGE_CONFIG.MIN_CONTENT_LENGTH:
            return ServiceResult.failure(
                "Message content cannot be empty",
                error_code=ChatErrorCode.INVALID_ARGUMENT,
            )
        if len(content) > MESSAGE_CONFIG.MAX_CONTENT_LENGTH:
            return ServiceResult.failure(
                f"Message content cannot exceed {MESSAGE_CONFIG.MAX_CONTENT_LENGTH} characters",
                error_code=ChatErrorCode.INVALID_ARGUMENT,
            )

        if client_id is not None and (
            not isinstance(client_id, str)
            or not client_id
            or len(client_id) > MESSAGE_CONFIG.MAX_CLIENT_ID_LENGTH
        ):
            return ServiceResult.failure(
                "client_id must be a non-empty string of at most "
                f"{MESSAGE_CONFIG.MAX_CLIENT_ID_LENGTH} characters",
                error_code=ChatErrorCode.INVALID_ARGUMENT,
            )

        logger = cls.get_logger()
        try:
            if client_id is not None:
                existing = cls._find_by_client_id(sender, client_id)
                if existing is not None:
                    return cls._replay(existing, room_id)

            try:
                with cls.atomic():
                    message = Message.objects.create(
                        room_id=room_id,
                        sender=sender,
                        content=content,
                        client_id=client_id,
                        status=MessageStatus.SENT,
                    )
                    # Forward-only: a slower concurrent insert never moves it back
                    Room.objects.filter(pk=room_id).filter(
                        Q(last_message_at__isnull=True)
                        | Q(last_message_at__lt=message.created_at)
                    ).update(last_message_at=message.created_at, updated_at=message.created_at)
                    notifier.publish(MessageInserted.for_message(message))
            except IntegrityError:
                existing = (
                    cls._find_by_client_id(sender, client_id) if client_id is not None else None
                )
                if existing is None:
                    raise
                return cls._replay(existing, room_id)

        except DatabaseError as e:
            return cls.handle_exception(
                e, "Appending message", error_code=ChatErrorCode.STORAGE_ERROR
            )

        logger.debug(f"Message {message.id} appended to room {room_id} by {sender.pk}")
        return ServiceResult.success(message)

    @classmethod
    def _find_by_client_id(cls, sender: User, client_id: str) -> Message | None:
        return Message.objects.filter(sender=sender, client_id=client_id).first()

    @classmethod
    def _replay(cls, existing: Message, room_id) -> ServiceResult[Message]:
        if str(existing.room_id) != str(room_id):
            return ServiceResult.failure(
                "client_id was already used for another message",
                error_code=ChatErrorCode.CONFLICT,
            )
        cls.get_logger().debug(f"Duplicate send of message {existing.id}; returning stored copy")
        return ServiceResult.success(existing)

    @classmethod
    @require_room_member()
    def list_messages(
        cls,
        room_id,
        user: User,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> ServiceResult[list[Message]]:
        """
        Messages in a room in ascending (created_at, id) order.

        Args:
            room_id: Room to read
            user: Member reading
            since: Only messages created after this time
            limit: Return only the newest `limit` messages (still ascending)

        Error codes:
            UNAUTHORIZED: User is not a member
            INVALID_ARGUMENT: limit is not a positive integer
        """
        if limit is not None and (not isinstance(limit, int) or limit < 1):
            return ServiceResult.failure(
                "limit must be a positive integer",
                error_code=ChatErrorCode.INVALID_ARGUMENT,
            )

        try:
            messages = Message.objects.filter(room_id=room_id)
            if since is not None:
                messages = messages.filter(created_at__gt=since)

            if limit is None:
                return ServiceResult.success(list(messages.order_by("created_at", "id")))

            limit = min(limit, MESSAGE_CONFIG.MAX_PAGE_SIZE)
            newest = list(messages.order_by("-created_at", "-id")[:limit])
            return ServiceResult.success(newest[::-1])
        except DatabaseError as e:
            return cls.handle_exception(
                e, "Listing messages", error_code=ChatErrorCode.STORAGE_ERROR
            )


# =============================================================================
# Delivery/Read Tracker
# =============================================================================


class ReceiptService(BaseService):
    """
    Forward-only message status.

    Status Flow:
        sending -> sent -> delivered -> read

    Status is owned by the recipient side: a sender never advances its own
    messages. Bulk operations lock the affected rows so concurrent calls
    change (and publish) each message at most once.
    """

    @classmethod
    @require_room_member(user_param="reader")
    def mark_read(cls, room_id, reader: User, now: datetime | None = None) -> ServiceResult[int]:
        """
        Mark every unread message from others in the room as read.

        Idempotent: a second call changes nothing and returns 0.

        Returns:
            ServiceResult with the number of messages changed
        """
        now = now or timezone.now()
        try:
            with cls.atomic():
                pending = list(
                    Message.objects.select_for_update()
                    .filter(
                        room_id=room_id,
                        status__in=[MessageStatus.SENT, MessageStatus.DELIVERED],
                    )
                    .exclude(sender_id=reader.pk)
                    .order_by("created_at", "id")
                )
                for message in pending:
                    message.mark_read(now)
                    message.updated_at = now
                if pending:
                    Message.objects.bulk_update(pending, ["status", "read_at", "updated_at"])
                for message in pending:
                    notifier.publish(MessageUpdated.for_message(message))
        except DatabaseError as e:
            return cls.handle_exception(
                e, "Marking messages read", error_code=ChatErrorCode.STORAGE_ERROR
            )

        if pending:
            cls.get_logger().debug(f"{reader.pk} read {len(pending)} messages in room {room_id}")
        return ServiceResult.success(len(pending))

    @classmethod
    @require_room_member(user_param="recipient")
    def mark_delivered(
        cls, room_id, recipient: User, message_ids: list[int] | None = None
    ) -> ServiceResult[int]:
        """
        Mark sent messages from others as delivered to the recipient.

        Args:
            room_id: Room the messages belong to
            recipient: Member whose client received them
            message_ids: Limit to these messages (default: all pending)

        Returns:
            ServiceResult with the number of messages changed
        """
        now = timezone.now()
        try:
            with cls.atomic():
                messages = (
                    Message.objects.select_for_update()
                    .filter(room_id=room_id, status=MessageStatus.SENT)
                    .exclude(sender_id=recipient.pk)
                    .order_by("created_at", "id")
                )
                if message_ids is not None:
                    messages = messages.filter(pk__in=message_ids)
                pending = list(messages)
                for message in pending:
                    message.deliver()
                    message.updated_at = now
                if pending:
                    Message.objects.bulk_update(pending, ["status", "updated_at"])
                for message in pending:
                    notifier.publish(MessageUpdated.for_message(message))
        except DatabaseError as e:
            return cls.handle_exception(
                e, "Marking messages delivered", error_code=ChatErrorCode.STORAGE_ERROR
            )

        return ServiceResult.success(len(pending))

    @classmethod
    def advance_status(cls, message_id: int, actor: User, target: str) -> ServiceResult[Message]:
        """
        Move one message's status forward.

        Repeating the current status is a successful no-op. A backward move
        is rejected, never applied.

        Error codes:
            INVALID_ARGUMENT: Unknown target status
            NOT_FOUND: Message does not exist
            UNAUTHORIZED: Actor is not a member, or is the sender
            CONFLICT: Target is behind the current status
        """
        try:
            target = MessageStatus(target)
        except ValueError:
            return ServiceResult.failure(
                f"Unknown status: {target}",
                error_code=ChatErrorCode.INVALID_ARGUMENT,
            )

        try:
            with cls.atomic():
                message = Message.objects.select_for_update().filter(pk=message_id).first()
                if message is None:
                    return ServiceResult.failure(
                        "Message not found",
                        error_code=ChatErrorCode.NOT_FOUND,
                    )

                if not ChatAuthorizationService.is_member(actor, message.room_id) or (
                    message.sender_id == actor.pk
                ):
                    return ServiceResult.failure(
                        NOT_AUTHORIZED_MESSAGE,
                        error_code=ChatErrorCode.UNAUTHORIZED,
                    )

                if target == message.status:
                    return ServiceResult.success(message)

                if status_rank(target) < status_rank(message.status):
                    return ServiceResult.failure(
                        f"Message status cannot move from {message.status} to {target}",
                        error_code=ChatErrorCode.CONFLICT,
                    )

                if target == MessageStatus.DELIVERED:
                    message.deliver()
                elif target == MessageStatus.READ:
                    message.mark_read(timezone.now())
                else:
                    raise TransitionNotAllowed(f"No transition to {target}")

                message.save(update_fields=["status", "read_at", "updated_at"])
                notifier.publish(MessageUpdated.for_message(message))
        except TransitionNotAllowed as e:
            return ServiceResult.failure(str(e), error_code=ChatErrorCode.CONFLICT)
        except DatabaseError as e:
            return cls.handle_exception(
                e, "Advancing message status", error_code=ChatErrorCode.STORAGE_ERROR
            )

        return ServiceResult.success(message)


# =============================================================================
# Reconnect re-sync
# =============================================================================


@dataclass
class SyncSnapshot:
    """
    Everything a reconnecting client needs to catch up on one room.

    Attributes:
        room_id: Room the snapshot belongs to
        messages: Messages created or updated since the cursor (all if full)
        members: Current memberships
        server_time: Cursor to pass as `since` next time
        full: Whether this is a full snapshot rather than a delta
    """

    room_id: UUID
    messages: list[Message]
    members: list[Membership]
    server_time: datetime
    full: bool

    def to_payload(self) -> dict:
        from chat.serializers import SyncSnapshotSerializer

        return {"type": "sync", **SyncSnapshotSerializer(self).data}


class SyncService(BaseService):
    """Catch-up for clients that were disconnected."""

    @classmethod
    @require_room_member()
    def catch_up(cls, room_id, user: User, since: datetime | None = None) -> ServiceResult[SyncSnapshot]:
        """
        Return what changed in a room since the client's cursor.

        With a cursor, messages created or updated at or after
        since - REALTIME_CONFIG.SYNC_OVERLAP are returned, which also picks
        up status changes. Without a cursor the whole room is returned.
        """
        server_time = timezone.now()
        try:
            messages = Message.objects.filter(room_id=room_id)
            if since is not None:
                cutoff = since - REALTIME_CONFIG.SYNC_OVERLAP
                messages = messages.filter(Q(created_at__gte=cutoff) | Q(updated_at__gte=cutoff))
            members = Membership.objects.filter(room_id=room_id).select_related("user__profile")

            snapshot = SyncSnapshot(
                room_id=_as_uuid(room_id),
                messages=list(messages.order_by("created_at", "id")),
                members=list(members),
                server_time=server_time,
                full=since is None,
            )
        except DatabaseError as e:
            return cls.handle_exception(
                e, "Building sync snapshot", error_code=ChatErrorCode.STORAGE_ERROR
            )

        cls.get_logger().debug(
            f"Sync for {user.pk} in room {room_id}: {len(snapshot.messages)} messages"
            f" (full={snapshot.full})"
        )
        return ServiceResult.success(snapshot)

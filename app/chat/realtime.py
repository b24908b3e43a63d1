"""
Realtime change notification for chat rooms.

This module provides:
- Event types pushed to subscribers (MessageInserted, MessageUpdated,
  MembershipUpdated)
- RealtimeNotifier: in-process subscriptions plus Channels group fan-out
- notifier: the process-wide RealtimeNotifier instance

Delivery semantics:
    Events are published only after the transaction that produced them
    commits. Delivery is at-least-once with best-effort ordering; clients
    reconcile by (created_at, id) and apply events idempotently.

Access control:
    Membership is checked when subscribing and again for every subscriber
    at fan-out time. A subscriber that is no longer a member is dropped.
    WebSocket consumers re-check membership for every group event they
    forward (see consumers.py).

Usage:
    subscription = notifier.subscribe(room_id, user, on_event)
    ...
    notifier.unsubscribe(subscription)
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, ClassVar

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction

from chat.authorization import NOT_AUTHORIZED_MESSAGE, ChatAuthorizationService
from chat.constants import room_group_name
from chat.exceptions import TransportError, UnauthorizedError

if TYPE_CHECKING:
    from chat.models import Membership, Message

logger = logging.getLogger(__name__)


# =============================================================================
# Events
# =============================================================================


@dataclass(frozen=True)
class MessageInserted:
    """A message was appended to the room."""

    type: ClassVar[str] = "message.inserted"

    room_id: str
    message: dict[str, Any]

    @classmethod
    def for_message(cls, message: Message) -> MessageInserted:
        from chat.serializers import MessageSerializer

        return cls(room_id=str(message.room_id), message=dict(MessageSerializer(message).data))

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "room_id": self.room_id, "message": self.message}


@dataclass(frozen=True)
class MessageUpdated:
    """A message's status (and read_at) changed."""

    type: ClassVar[str] = "message.updated"

    room_id: str
    message: dict[str, Any]

    @classmethod
    def for_message(cls, message: Message) -> MessageUpdated:
        from chat.serializers import MessageSerializer

        return cls(room_id=str(message.room_id), message=dict(MessageSerializer(message).data))

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "room_id": self.room_id, "message": self.message}


@dataclass(frozen=True)
class MembershipUpdated:
    """A member's typing flag changed."""

    type: ClassVar[str] = "membership.updated"

    room_id: str
    membership: dict[str, Any]

    @classmethod
    def for_membership(cls, membership: Membership) -> MembershipUpdated:
        from chat.serializers import MembershipSerializer

        return cls(
            room_id=str(membership.room_id),
            membership=dict(MembershipSerializer(membership).data),
        )

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "room_id": self.room_id, "membership": self.membership}


RoomEvent = MessageInserted | MessageUpdated | MembershipUpdated


# =============================================================================
# Subscriptions
# =============================================================================


@dataclass
class Subscription:
    """Handle returned by RealtimeNotifier.subscribe()."""

    room_id: str
    user_id: str
    callback: Callable[[RoomEvent], None] = field(repr=False)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    active: bool = True


class RealtimeNotifier:
    """
    Fans out room events to in-process subscribers and the channel layer.

    Thread-safe: subscriptions may be added or removed from any thread while
    another thread is publishing.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: dict[str, dict[str, Subscription]] = defaultdict(dict)

    def subscribe(self, room_id, user, on_event: Callable[[RoomEvent], None]) -> Subscription:
        """
        Register a callback for events in a room.

        Raises:
            UnauthorizedError: If user is not a member of the room
        """
        if not ChatAuthorizationService.can_read_room(user, room_id):
            logger.warning(f"Rejected subscription by {getattr(user, 'pk', user)} to room {room_id}")
            raise UnauthorizedError(NOT_AUTHORIZED_MESSAGE)

        subscription = Subscription(
            room_id=str(room_id),
            user_id=str(getattr(user, "pk", user)),
            callback=on_event,
        )
        with self._lock:
            self._subscriptions[subscription.room_id][subscription.id] = subscription

        logger.debug(f"User {subscription.user_id} subscribed to room {room_id}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription. Unknown or already removed handles are ignored."""
        with self._lock:
            room_subscriptions = self._subscriptions.get(subscription.room_id)
            if room_subscriptions is not None:
                room_subscriptions.pop(subscription.id, None)
                if not room_subscriptions:
                    del self._subscriptions[subscription.room_id]
        subscription.active = False

    def subscriber_count(self, room_id) -> int:
        with self._lock:
            return len(self._subscriptions.get(str(room_id), {}))

    def publish(self, event: RoomEvent) -> None:
        """
        Schedule an event for delivery once the current transaction commits.

        Outside a transaction (autocommit) the event is dispatched immediately.
        """
        transaction.on_commit(lambda: self.dispatch(event), robust=True)

    def dispatch(self, event: RoomEvent) -> None:
        """Deliver an event now: local subscribers first, then the channel layer."""
        self._fan_out(event)
        try:
            self._send_to_group(event)
        except TransportError as e:
            # The change is already durable; clients recover it on re-sync
            logger.error(f"Realtime delivery failed for room {event.room_id}: {e}")

    def _fan_out(self, event: RoomEvent) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions.get(event.room_id, {}).values())

        for subscription in subscriptions:
            if not ChatAuthorizationService.is_member(subscription.user_id, event.room_id):
                logger.warning(
                    f"Dropping subscription of {subscription.user_id} to room "
                    f"{event.room_id}: no longer a member"
                )
                self.unsubscribe(subscription)
                continue

            try:
                subscription.callback(event)
            except Exception:
                logger.exception(
                    f"Subscriber {subscription.id} failed handling {event.type} "
                    f"in room {event.room_id}"
                )

    def _send_to_group(self, event: RoomEvent) -> None:
        """
        Broadcast the event to the room's Channels group.

        Raises:
            TransportError: If the channel layer rejected the event
        """
        channel_layer = get_channel_layer()
        if channel_layer is None:
            return

        try:
            async_to_sync(channel_layer.group_send)(
                room_group_name(event.room_id),
                {"type": "chat.event", "event": event.to_payload()},
            )
        except Exception as e:
            raise TransportError(
                "Could not deliver realtime event",
                details={"room_id": event.room_id, "event": event.type},
            ) from e

    def clear(self) -> None:
        """Drop every subscription (used on shutdown and in tests)."""
        with self._lock:
            subscriptions = [
                subscription
                for room_subscriptions in self._subscriptions.values()
                for subscription in room_subscriptions.values()
            ]
            self._subscriptions.clear()
        for subscription in subscriptions:
            subscription.active = False


notifier = RealtimeNotifier()

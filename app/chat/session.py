"""
In-process chat API bound to one signed-in user.

ChatSession is the client-facing surface of the chat core. It wraps the
services with the caller's identity, raises typed exceptions instead of
returning ServiceResults, and owns everything that must end when the user
signs out: realtime subscriptions, open room timelines and typing
debouncers.

Usage:
    session = ChatSession(request.user)
    room_id = session.get_or_create_room(me.pk, other.pk)
    timeline = session.open_room(room_id)
    session.post(room_id, "Hi!")
    ...
    session.sign_out()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable
from uuid import UUID

from core.exceptions import BaseApplicationError

from chat.authorization import NOT_AUTHORIZED_MESSAGE, ChatAuthorizationService
from chat.debounce import TypingDebouncer
from chat.exceptions import (
    InvalidArgumentError,
    SessionExpiredError,
    UnauthorizedError,
    raise_for_result,
)
from chat.realtime import MessageInserted, notifier
from chat.services import (
    MembershipService,
    MessageService,
    ReceiptService,
    RoomService,
    SyncService,
)
from chat.timeline import RoomTimeline

if TYPE_CHECKING:
    from datetime import datetime

    from authentication.models import User
    from chat.models import Membership, Message, Room
    from chat.realtime import RoomEvent, Subscription
    from chat.services import SyncSnapshot
    from chat.timeline import TimelineEntry

logger = logging.getLogger(__name__)


class ChatSession:
    """
    Chat operations on behalf of one authenticated user.

    A session starts in the foreground; read receipts are only sent while it
    is. After sign_out() every method raises SessionExpiredError.

    Raises (from any operation):
        InvalidArgumentError, UnauthorizedError, NotFoundError,
        ConflictError, StorageError, TransportError
    """

    def __init__(self, user: User, foreground: bool = True):
        if user is None or not getattr(user, "is_authenticated", False):
            raise UnauthorizedError("Sign in to use chat")

        self.user = user
        self._active = True
        self._foreground = foreground
        self._subscriptions: dict[str, Subscription] = {}
        self._timelines: dict[str, RoomTimeline] = {}
        self._timeline_subscriptions: dict[str, Subscription] = {}
        self._debouncers: dict[str, TypingDebouncer] = {}

    def __repr__(self) -> str:
        state = "active" if self._active else "signed out"
        return f"ChatSession(user={self.user.pk}, {state})"

    # -------------------------------------------------------------------------
    # Lifetime
    # -------------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_foreground(self) -> bool:
        return self._foreground

    def sign_out(self) -> None:
        """
        End the session.

        Clears any typing flag this session turned on, drops every
        subscription and open room. Calling it twice is harmless.
        """
        if not self._active:
            return

        for room_id, debouncer in self._debouncers.items():
            if debouncer.last_sent:
                try:
                    self.set_typing(room_id, self.user.pk, False)
                except BaseApplicationError as e:
                    logger.warning(f"Could not clear typing flag in room {room_id}: {e}")

        for subscription in self._subscriptions.values():
            notifier.unsubscribe(subscription)

        self._subscriptions.clear()
        self._timelines.clear()
        self._timeline_subscriptions.clear()
        self._debouncers.clear()
        self._active = False
        logger.info(f"Chat session for {self.user.pk} signed out")

    def _ensure_active(self) -> None:
        if not self._active:
            raise SessionExpiredError("Chat session has been signed out")

    @staticmethod
    def _room_key(room_id) -> str:
        try:
            return str(UUID(str(room_id)))
        except ValueError:
            raise InvalidArgumentError("room_id must be a UUID") from None

    def _ensure_self(self, user_id) -> None:
        if not ChatAuthorizationService.can_write_membership(self.user, user_id):
            raise UnauthorizedError(NOT_AUTHORIZED_MESSAGE)

    # -------------------------------------------------------------------------
    # Rooms, members, messages
    # -------------------------------------------------------------------------

    def get_or_create_room(self, user_a, user_b) -> UUID:
        """
        Return the id of the direct room between user_a and user_b.

        user_a must be the signed-in user.
        """
        self._ensure_active()
        if not ChatAuthorizationService.can_create_room(self.user, user_a):
            raise UnauthorizedError(NOT_AUTHORIZED_MESSAGE)

        room, _created = raise_for_result(RoomService.get_or_create_direct(self.user, user_b))
        return room.id

    def list_rooms(self) -> list[Room]:
        self._ensure_active()
        return raise_for_result(RoomService.list_rooms(self.user))

    def list_members(self, room_id) -> list[Membership]:
        self._ensure_active()
        return raise_for_result(
            MembershipService.list_members(room_id=self._room_key(room_id), user=self.user)
        )

    def list_messages(
        self, room_id, since: datetime | None = None, limit: int | None = None
    ) -> list[Message]:
        self._ensure_active()
        return raise_for_result(
            MessageService.list_messages(
                room_id=self._room_key(room_id), user=self.user, since=since, limit=limit
            )
        )

    def send_message(self, room_id, user_id, content: str, client_id: str | None = None) -> Message:
        """Append a message as user_id, which must be the signed-in user."""
        self._ensure_active()
        self._ensure_self(user_id)
        return raise_for_result(
            MessageService.append(
                room_id=self._room_key(room_id),
                sender=self.user,
                content=content,
                client_id=client_id,
            )
        )

    def mark_read(self, room_id, user_id) -> int:
        """Mark the room read for user_id (the signed-in user). Returns the count changed."""
        self._ensure_active()
        self._ensure_self(user_id)
        return raise_for_result(
            ReceiptService.mark_read(room_id=self._room_key(room_id), reader=self.user)
        )

    def mark_delivered(self, room_id, message_ids: list[int] | None = None) -> int:
        self._ensure_active()
        return raise_for_result(
            ReceiptService.mark_delivered(
                room_id=self._room_key(room_id), recipient=self.user, message_ids=message_ids
            )
        )

    def set_typing(self, room_id, user_id, is_typing: bool) -> bool:
        self._ensure_active()
        return raise_for_result(
            MembershipService.set_typing(
                self._room_key(room_id), user_id, is_typing, caller=self.user
            )
        )

    def catch_up(self, room_id, since: datetime | None = None) -> SyncSnapshot:
        self._ensure_active()
        return raise_for_result(
            SyncService.catch_up(room_id=self._room_key(room_id), user=self.user, since=since)
        )

    # -------------------------------------------------------------------------
    # Realtime
    # -------------------------------------------------------------------------

    def subscribe(self, room_id, handler: Callable[[RoomEvent], None]) -> Subscription:
        """
        Receive the room's events until unsubscribe() or sign_out().

        Raises:
            UnauthorizedError: If the user is not a member
        """
        self._ensure_active()
        subscription = notifier.subscribe(self._room_key(room_id), self.user, handler)
        self._subscriptions[subscription.id] = subscription
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self._ensure_active()
        notifier.unsubscribe(subscription)
        self._subscriptions.pop(subscription.id, None)

    # -------------------------------------------------------------------------
    # Room view
    # -------------------------------------------------------------------------

    def open_room(self, room_id) -> RoomTimeline:
        """
        Load a room into a live timeline.

        Subscribes the timeline to the room's events and, while in the
        foreground, marks the room read, both now and whenever the other
        member's messages arrive. Opening an open room returns the existing
        timeline.
        """
        self._ensure_active()
        key = self._room_key(room_id)
        if key in self._timelines:
            return self._timelines[key]

        timeline = RoomTimeline(key, self.user.pk)
        timeline.resync(self.catch_up(key))
        self._timeline_subscriptions[key] = self.subscribe(key, self._room_view_handler(timeline))
        self._timelines[key] = timeline

        if self._foreground:
            self.mark_read(key, self.user.pk)
        return timeline

    def _room_view_handler(self, timeline: RoomTimeline) -> Callable[[RoomEvent], None]:
        """Apply events to the timeline and read incoming messages while visible."""

        def handle(event: RoomEvent) -> None:
            timeline.apply(event)
            if not (self._active and self._foreground):
                return
            if isinstance(event, MessageInserted):
                sender_id = event.message.get("sender_id")
                if sender_id is not None and str(sender_id) != str(self.user.pk):
                    self.mark_read(timeline.room_id, self.user.pk)

        return handle

    def close_room(self, room_id) -> None:
        self._ensure_active()
        key = self._room_key(room_id)
        self._timelines.pop(key, None)
        subscription = self._timeline_subscriptions.pop(key, None)
        if subscription is not None:
            self.unsubscribe(subscription)

    def set_foreground(self, foreground: bool) -> None:
        """
        Record whether the app is visible.

        Returning to the foreground marks every open room read; while in
        the background nothing is marked read.
        """
        self._ensure_active()
        self._foreground = bool(foreground)
        if self._foreground:
            for key in list(self._timelines):
                self.mark_read(key, self.user.pk)

    def post(self, room_id, content: str) -> TimelineEntry:
        """
        Optimistically send a message from the room view.

        The message shows up as pending right away and is replaced by the
        stored message on success. On failure the pending entry is removed
        and the raised exception carries the text as `draft`.
        """
        self._ensure_active()
        timeline = self.open_room(room_id)
        pending = timeline.add_pending(self.user.pk, content)

        debouncer = self._debouncers.get(timeline.room_id)
        if debouncer is not None and debouncer.last_sent:
            debouncer.push(False)

        try:
            message = self.send_message(
                timeline.room_id, self.user.pk, content, client_id=pending.client_id
            )
        except BaseApplicationError as e:
            e.draft = timeline.fail_pending(pending.client_id)
            raise

        timeline.apply(MessageInserted.for_message(message))
        return timeline.get(message.id)

    def typing(self, room_id) -> TypingDebouncer:
        """Debounced typing indicator for a room."""
        self._ensure_active()
        key = self._room_key(room_id)
        if key not in self._debouncers:
            self._debouncers[key] = TypingDebouncer(
                lambda is_typing: self.set_typing(key, self.user.pk, is_typing)
            )
        return self._debouncers[key]

    def reconnect(self) -> dict[str, SyncSnapshot]:
        """
        Catch up every open room after a lost connection.

        Each timeline is re-synced from its own cursor, and subscriptions
        dropped in the meantime are re-established. In the foreground the
        recovered messages are marked read.
        """
        self._ensure_active()
        snapshots = {}
        for key, timeline in list(self._timelines.items()):
            snapshot = self.catch_up(key, since=timeline.cursor)
            timeline.resync(snapshot)
            snapshots[key] = snapshot
            if self._foreground:
                self.mark_read(key, self.user.pk)

            subscription = self._timeline_subscriptions.get(key)
            if subscription is None or not subscription.active:
                self._subscriptions.pop(getattr(subscription, "id", None), None)
                self._timeline_subscriptions[key] = self.subscribe(
                    key, self._room_view_handler(timeline)
                )

        logger.debug(f"Session for {self.user.pk} re-synced {len(snapshots)} rooms")
        return snapshots

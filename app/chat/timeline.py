"""
Client-side view of one room.

RoomTimeline keeps the ordered message list a chat screen renders and
reconciles it with what the server says:

- Optimistic sends are shown immediately as pending entries (status
  "sending") carrying a client_id, and are replaced by the stored message
  when the ack or the message.inserted event arrives.
- Events are applied idempotently; status only moves forward.
- Typing indicators expire on their own after TYPING_CONFIG.DISPLAY_TTL.
- A reconnect catch-up (SyncService.catch_up) is merged with resync().

Usage:
    timeline = RoomTimeline(room_id, user_id=me.pk)
    timeline.resync(snapshot)
    entry = timeline.add_pending(me.pk, "On my way")
    timeline.apply(event)
    for entry in timeline.entries:
        ...
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from chat.constants import REALTIME_CONFIG, TYPING_CONFIG
from chat.models import MessageStatus, status_rank

if TYPE_CHECKING:
    from datetime import timedelta


def _as_datetime(value) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return parse_datetime(value)


@dataclass(frozen=True)
class TimelineEntry:
    """One rendered message. id is None while the send is pending."""

    content: str
    sender_id: str
    status: str
    created_at: datetime
    id: int | None = None
    client_id: str | None = None
    read_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.id is None

    @property
    def sort_key(self) -> tuple:
        return (self.created_at, self.id or 0)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> TimelineEntry:
        return cls(
            id=int(data["id"]),
            content=data["content"],
            sender_id=str(data["sender_id"]),
            status=data["status"],
            created_at=_as_datetime(data["created_at"]),
            client_id=data.get("client_id"),
            read_at=_as_datetime(data.get("read_at")),
        )


class RoomTimeline:
    """
    Ordered, reconciled message list for one room.

    Thread-safe: realtime callbacks may apply events from another thread
    while the UI thread reads entries.
    """

    def __init__(
        self,
        room_id,
        user_id,
        match_window: timedelta = REALTIME_CONFIG.TIMELINE_MATCH_WINDOW,
        typing_ttl: timedelta = TYPING_CONFIG.DISPLAY_TTL,
    ):
        self.room_id = str(room_id)
        self.user_id = str(user_id)
        self.match_window = match_window
        self.typing_ttl = typing_ttl
        self.cursor: datetime | None = None

        self._lock = threading.RLock()
        self._confirmed: dict[int, TimelineEntry] = {}
        self._pending: dict[str, TimelineEntry] = {}
        self._typing: dict[str, datetime] = {}

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    @property
    def entries(self) -> list[TimelineEntry]:
        """Confirmed messages by (created_at, id), then pending sends."""
        with self._lock:
            confirmed = sorted(self._confirmed.values(), key=lambda entry: entry.sort_key)
            pending = sorted(self._pending.values(), key=lambda entry: entry.created_at)
        return confirmed + pending

    @property
    def pending(self) -> list[TimelineEntry]:
        with self._lock:
            return sorted(self._pending.values(), key=lambda entry: entry.created_at)

    def get(self, message_id: int) -> TimelineEntry | None:
        with self._lock:
            return self._confirmed.get(int(message_id))

    def typing_users(self, now: datetime | None = None) -> list[str]:
        """Other members whose typing indicator has not expired."""
        now = now or timezone.now()
        with self._lock:
            return sorted(
                user_id
                for user_id, seen_at in self._typing.items()
                if now - seen_at <= self.typing_ttl
            )

    # -------------------------------------------------------------------------
    # Optimistic sends
    # -------------------------------------------------------------------------

    def add_pending(self, sender_id, content: str, now: datetime | None = None) -> TimelineEntry:
        """Show an outgoing message before the server has stored it."""
        entry = TimelineEntry(
            content=content,
            sender_id=str(sender_id),
            status=MessageStatus.SENDING,
            created_at=now or timezone.now(),
            client_id=uuid.uuid4().hex,
        )
        with self._lock:
            self._pending[entry.client_id] = entry
        return entry

    def fail_pending(self, client_id: str) -> str:
        """
        Remove a pending send and return its text so it can be restored.

        Raises:
            KeyError: If no pending send has this client_id
        """
        with self._lock:
            return self._pending.pop(client_id).content

    # -------------------------------------------------------------------------
    # Server updates
    # -------------------------------------------------------------------------

    def apply(self, event, now: datetime | None = None) -> bool:
        """
        Apply a realtime event (event object or wire payload).

        Returns:
            True if the visible state changed
        """
        payload = event.to_payload() if hasattr(event, "to_payload") else event
        kind = payload.get("type")

        if payload.get("room_id") is not None and str(payload["room_id"]) != self.room_id:
            return False

        if kind in ("message.inserted", "message.updated"):
            return self._merge_message(payload["message"])
        if kind == "membership.updated":
            return self._merge_membership(payload["membership"], now or timezone.now())
        if kind == "sync":
            self.resync(payload)
            return True
        return False

    def resync(self, snapshot) -> None:
        """Merge a catch-up snapshot (SyncSnapshot or its payload)."""
        payload = snapshot.to_payload() if hasattr(snapshot, "to_payload") else snapshot
        now = timezone.now()
        with self._lock:
            for message in payload.get("messages", []):
                self._merge_message(message)
            self._typing.clear()
            for membership in payload.get("members", []):
                self._merge_membership(membership, now)
            server_time = _as_datetime(payload.get("server_time"))
            if server_time is not None and (self.cursor is None or server_time > self.cursor):
                self.cursor = server_time

    def _merge_message(self, data: dict[str, Any]) -> bool:
        incoming = TimelineEntry.from_payload(data)
        with self._lock:
            known = self._confirmed.get(incoming.id)
            if known is not None:
                if status_rank(incoming.status) <= status_rank(known.status):
                    return False
                self._confirmed[incoming.id] = replace(
                    known,
                    status=incoming.status,
                    read_at=incoming.read_at or known.read_at,
                )
                return True

            self._take_pending_match(incoming)
            self._confirmed[incoming.id] = incoming
            self._typing.pop(incoming.sender_id, None)
            return True

    def _take_pending_match(self, incoming: TimelineEntry) -> TimelineEntry | None:
        if incoming.client_id and incoming.client_id in self._pending:
            return self._pending.pop(incoming.client_id)

        # Fallback for servers or paths that dropped the correlation id
        candidates = [
            entry
            for entry in self._pending.values()
            if entry.sender_id == incoming.sender_id
            and entry.content == incoming.content
            and abs(incoming.created_at - entry.created_at) <= self.match_window
        ]
        if not candidates:
            return None
        match = min(candidates, key=lambda entry: entry.created_at)
        return self._pending.pop(match.client_id)

    def _merge_membership(self, data: dict[str, Any], now: datetime) -> bool:
        user_id = str(data["user_id"])
        if user_id == self.user_id:
            return False
        with self._lock:
            if data.get("is_typing"):
                self._typing[user_id] = now
                return True
            return self._typing.pop(user_id, None) is not None

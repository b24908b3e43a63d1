"""
Tests for the client-side room timeline.

This module tests:
- Optimistic sends: pending entries and their replacement by the ack
- Idempotent, forward-only application of message events
- Ordering by (created_at, id)
- Typing indicators with expiry
- Re-sync merging and cursor handling

Testing Philosophy:
    A timeline fed any interleaving of acks, duplicate events and re-syncs
    must converge on the same list the server would return.
"""

from datetime import datetime, timedelta, timezone as dt_timezone

import pytest

from chat.timeline import RoomTimeline, TimelineEntry

ROOM_ID = "5f0c6a4e-8d7e-4d0b-9a47-0a3f8e1b2c01"
OTHER_ROOM_ID = "5f0c6a4e-8d7e-4d0b-9a47-0a3f8e1b2c02"
ANA = "0b6f3a52-1d2c-4e7a-9d36-3f7f1b9e6a11"
BAO = "0b6f3a52-1d2c-4e7a-9d36-3f7f1b9e6a22"

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=dt_timezone.utc)


def _message(message_id, sender=BAO, content="hi", status="sent", created_at=None, **extra):
    return {
        "id": message_id,
        "room_id": ROOM_ID,
        "sender_id": sender,
        "content": content,
        "status": status,
        "created_at": created_at or T0 + timedelta(seconds=message_id),
        "read_at": extra.pop("read_at", None),
        "client_id": extra.pop("client_id", None),
        **extra,
    }


def _inserted(message, room_id=ROOM_ID):
    return {"type": "message.inserted", "room_id": room_id, "message": message}


def _updated(message):
    return {"type": "message.updated", "room_id": ROOM_ID, "message": message}


def _typing(user_id, is_typing):
    return {
        "type": "membership.updated",
        "room_id": ROOM_ID,
        "membership": {"room_id": ROOM_ID, "user_id": user_id, "is_typing": is_typing},
    }


@pytest.fixture
def timeline():
    """Ana's view of the test room."""
    return RoomTimeline(ROOM_ID, ANA)


class TestTimelineEntry:
    """Tests for TimelineEntry."""

    def test_from_payload_parses_iso_timestamps(self):
        entry = TimelineEntry.from_payload(
            _message(1, created_at="2026-01-02T03:04:05Z", read_at="2026-01-02T03:05:00Z")
        )

        assert entry.created_at.year == 2026
        assert entry.read_at.minute == 5
        assert entry.is_pending is False

    def test_pending_entry_sorts_with_zero_id(self):
        pending = TimelineEntry(content="x", sender_id=ANA, status="sending", created_at=T0)

        assert pending.is_pending is True
        assert pending.sort_key == (T0, 0)


class TestOptimisticSend:
    """Tests for pending entries and their reconciliation."""

    def test_pending_is_shown_immediately(self, timeline):
        entry = timeline.add_pending(ANA, "On my way", now=T0)

        assert timeline.entries == [entry]
        assert entry.status == "sending"
        assert entry.client_id

    def test_ack_replaces_pending_by_client_id(self, timeline):
        """
        The stored message takes the pending entry's place.

        Why it matters: The sender must never see their message twice.
        """
        pending = timeline.add_pending(ANA, "On my way", now=T0)

        changed = timeline.apply(
            _inserted(_message(7, sender=ANA, content="On my way", client_id=pending.client_id))
        )

        assert changed is True
        assert timeline.pending == []
        assert [entry.id for entry in timeline.entries] == [7]

    def test_ack_without_client_id_matches_sender_and_content(self, timeline):
        timeline.add_pending(ANA, "On my way", now=T0)

        timeline.apply(_inserted(_message(7, sender=ANA, content="On my way", created_at=T0)))

        assert timeline.pending == []
        assert len(timeline.entries) == 1

    def test_fallback_match_respects_window(self, timeline):
        """An identical message sent long after is a different message."""
        timeline.add_pending(ANA, "ok", now=T0)

        timeline.apply(
            _inserted(_message(7, sender=ANA, content="ok", created_at=T0 + timedelta(hours=1)))
        )

        assert len(timeline.pending) == 1
        assert len(timeline.entries) == 2

    def test_fail_pending_returns_draft(self, timeline):
        pending = timeline.add_pending(ANA, "Lost in the tunnel", now=T0)

        draft = timeline.fail_pending(pending.client_id)

        assert draft == "Lost in the tunnel"
        assert timeline.entries == []

    def test_fail_unknown_pending(self, timeline):
        with pytest.raises(KeyError):
            timeline.fail_pending("missing")

    def test_pending_entries_follow_confirmed(self, timeline):
        timeline.apply(_inserted(_message(1)))
        pending = timeline.add_pending(ANA, "later", now=T0 - timedelta(minutes=1))

        assert timeline.entries[-1] == pending


class TestApplyMessages:
    """Tests for applying message events."""

    def test_duplicate_insert_is_ignored(self, timeline):
        timeline.apply(_inserted(_message(1)))

        assert timeline.apply(_inserted(_message(1))) is False
        assert len(timeline.entries) == 1

    def test_entries_ordered_by_created_at_then_id(self, timeline):
        """
        Arrival order does not decide display order.

        Why it matters: Events from different members can arrive out of
        order; every client must render the same sequence.
        """
        timeline.apply(_inserted(_message(3, created_at=T0)))
        timeline.apply(_inserted(_message(2, created_at=T0)))
        timeline.apply(_inserted(_message(1, created_at=T0 + timedelta(seconds=5))))

        assert [entry.id for entry in timeline.entries] == [2, 3, 1]

    def test_status_moves_forward(self, timeline):
        timeline.apply(_inserted(_message(1)))

        changed = timeline.apply(_updated(_message(1, status="read", read_at=T0)))

        assert changed is True
        assert timeline.get(1).status == "read"
        assert timeline.get(1).read_at == T0

    def test_late_update_never_moves_status_back(self, timeline):
        """
        A stale "delivered" after "read" is ignored.

        Why it matters: Events can be delivered out of order after a
        reconnect; status must stay monotonic on the client too.
        """
        timeline.apply(_inserted(_message(1, status="read", read_at=T0)))

        changed = timeline.apply(_updated(_message(1, status="delivered")))

        assert changed is False
        assert timeline.get(1).status == "read"

    def test_update_for_unknown_message_adds_it(self, timeline):
        timeline.apply(_updated(_message(4, status="delivered")))

        assert timeline.get(4).status == "delivered"

    def test_events_for_other_rooms_are_ignored(self, timeline):
        assert timeline.apply(_inserted(_message(1), room_id=OTHER_ROOM_ID)) is False
        assert timeline.entries == []

    def test_unknown_event_type(self, timeline):
        assert timeline.apply({"type": "room.renamed", "room_id": ROOM_ID}) is False


class TestTyping:
    """Tests for typing indicators."""

    def test_other_member_typing_is_shown(self, timeline):
        timeline.apply(_typing(BAO, True), now=T0)

        assert timeline.typing_users(now=T0) == [BAO]

    def test_own_typing_is_not_shown(self, timeline):
        assert timeline.apply(_typing(ANA, True), now=T0) is False
        assert timeline.typing_users(now=T0) == []

    def test_typing_stopped(self, timeline):
        timeline.apply(_typing(BAO, True), now=T0)

        assert timeline.apply(_typing(BAO, False), now=T0) is True
        assert timeline.typing_users(now=T0) == []

    def test_indicator_expires_without_refresh(self, timeline):
        """
        A lost "stopped typing" event does not leave the indicator on.

        Why it matters: Clients that drop offline mid-typing never send it.
        """
        timeline.apply(_typing(BAO, True), now=T0)

        assert timeline.typing_users(now=T0 + timeline.typing_ttl + timedelta(seconds=1)) == []

    def test_message_from_typer_clears_indicator(self, timeline):
        timeline.apply(_typing(BAO, True), now=T0)

        timeline.apply(_inserted(_message(1, sender=BAO)))

        assert timeline.typing_users(now=T0) == []


class TestResync:
    """Tests for merging reconnect snapshots."""

    def _snapshot(self, messages=(), members=(), server_time=None):
        return {
            "type": "sync",
            "room_id": ROOM_ID,
            "messages": list(messages),
            "members": list(members),
            "server_time": server_time or T0,
            "full": False,
        }

    def test_merges_missed_messages_and_sets_cursor(self, timeline):
        timeline.apply(_inserted(_message(1)))

        timeline.resync(self._snapshot(messages=[_message(1), _message(2)], server_time=T0))

        assert [entry.id for entry in timeline.entries] == [1, 2]
        assert timeline.cursor == T0

    def test_cursor_never_moves_back(self, timeline):
        timeline.resync(self._snapshot(server_time=T0))

        timeline.resync(self._snapshot(server_time=T0 - timedelta(minutes=1)))

        assert timeline.cursor == T0

    def test_accepts_iso_server_time(self, timeline):
        timeline.resync(self._snapshot(server_time="2026-01-02T03:04:05Z"))

        assert timeline.cursor.year == 2026

    def test_resync_reconciles_pending(self, timeline):
        """A send acked while offline is matched on re-sync."""
        pending = timeline.add_pending(ANA, "sent offline", now=T0)

        timeline.resync(
            self._snapshot(
                messages=[
                    _message(9, sender=ANA, content="sent offline", client_id=pending.client_id)
                ]
            )
        )

        assert timeline.pending == []
        assert timeline.get(9) is not None

    def test_resync_replaces_typing_state(self, timeline):
        timeline.apply(_typing(BAO, True))

        timeline.resync(
            self._snapshot(
                members=[
                    {"user_id": ANA, "is_typing": False},
                    {"user_id": BAO, "is_typing": False},
                ]
            )
        )

        assert timeline.typing_users() == []

    def test_sync_event_is_applied(self, timeline):
        assert timeline.apply(self._snapshot(messages=[_message(1)])) is True
        assert timeline.get(1) is not None

"""
End-to-end chat workflows.

This module walks two users through a complete conversation using the
client-facing ChatSession, with realtime events delivered after each commit:

- First contact: room creation, deduplication from the other side
- Send, open in foreground, read receipt reaching the sender live
- Ordering, forward-only status and read idempotence over a conversation
- An outsider failing at every step

Testing Philosophy:
    These tests assert what each user would see, not how the services get
    there.
"""

import pytest

from authentication.tests.factories import UserFactory
from chat.exceptions import UnauthorizedError
from chat.models import Message, MessageStatus, Room, status_rank
from chat.services import ReceiptService
from chat.session import ChatSession


@pytest.fixture
def user_a(db):
    return UserFactory(display_name="A")


@pytest.fixture
def user_b(db):
    return UserFactory(display_name="B")


@pytest.fixture
def session_a(user_a):
    session = ChatSession(user_a)
    yield session
    session.sign_out()


@pytest.fixture
def session_b(user_b):
    session = ChatSession(user_b)
    yield session
    session.sign_out()


class TestFirstConversation:
    """
    A and B have never talked. A opens a room, says "Hi", B reads it.

    Why it matters: This is the minimal flow every chat client depends on;
    each step's side effect is checked as the users would observe it.
    """

    def test_full_flow(
        self,
        user_a,
        user_b,
        session_a,
        session_b,
        recorder,
        django_capture_on_commit_callbacks,
    ):
        # A opens the room; both become members
        room_id = session_a.get_or_create_room(user_a.pk, user_b.pk)
        members = {membership.user_id for membership in session_a.list_members(room_id)}
        assert members == {user_a.pk, user_b.pk}

        # B opening from the other side gets the same room
        assert session_b.get_or_create_room(user_b.pk, user_a.pk) == room_id
        assert Room.objects.count() == 1

        # A watches the room and sends "Hi"
        session_a.subscribe(room_id, recorder)
        with django_capture_on_commit_callbacks(execute=True):
            message = session_a.send_message(room_id, user_a.pk, "Hi")

        assert message.status == MessageStatus.SENT
        room = Room.objects.get(pk=room_id)
        assert room.last_message_at == message.created_at
        assert recorder.types == ["message.inserted"]

        # B opens the room in the foreground, which reads it
        with django_capture_on_commit_callbacks(execute=True):
            timeline_b = session_b.open_room(room_id)

        message.refresh_from_db()
        assert message.status == MessageStatus.READ
        assert message.read_at is not None
        assert [entry.content for entry in timeline_b.entries] == ["Hi"]

        # A's subscription saw the read receipt
        updates = recorder.of_type("message.updated")
        assert len(updates) == 1
        assert updates[0].message["id"] == message.id
        assert updates[0].message["status"] == "read"

    def test_sender_timeline_shows_seen(
        self, user_a, user_b, session_a, session_b, django_capture_on_commit_callbacks
    ):
        """A's open room view turns the optimistic send into "read" live."""
        room_id = session_a.get_or_create_room(user_a.pk, user_b.pk)
        timeline_a = session_a.open_room(room_id)

        with django_capture_on_commit_callbacks(execute=True):
            entry = session_a.post(room_id, "Hi")
        assert timeline_a.pending == []
        assert timeline_a.get(entry.id).status == "sent"

        with django_capture_on_commit_callbacks(execute=True):
            session_b.open_room(room_id)

        assert timeline_a.get(entry.id).status == "read"
        assert [e.content for e in timeline_a.entries] == ["Hi"]


class TestConversationProperties:
    """Ordering, monotonic status and idempotent reads over a conversation."""

    def test_messages_stay_in_send_order(self, user_a, user_b, session_a, session_b):
        room_id = session_a.get_or_create_room(user_a.pk, user_b.pk)

        for index in range(5):
            sender, session = (user_a, session_a) if index % 2 == 0 else (user_b, session_b)
            session.send_message(room_id, sender.pk, f"message {index}")

        listed = session_b.list_messages(room_id)

        assert [m.content for m in listed] == [f"message {i}" for i in range(5)]
        assert all(
            (earlier.created_at, earlier.id) < (later.created_at, later.id)
            for earlier, later in zip(listed, listed[1:])
        )

    def test_observed_status_never_reverts(
        self,
        user_a,
        user_b,
        session_a,
        session_b,
        recorder,
        django_capture_on_commit_callbacks,
    ):
        """
        Every status A observes for a message moves forward.

        Why it matters: Late or duplicate receipts must not flip "Seen"
        back to "Delivered".
        """
        room_id = session_a.get_or_create_room(user_a.pk, user_b.pk)
        session_a.subscribe(room_id, recorder)

        with django_capture_on_commit_callbacks(execute=True):
            message = session_a.send_message(room_id, user_a.pk, "Hi")
            session_b.mark_delivered(room_id)
            session_b.mark_read(room_id, user_b.pk)
            late = ReceiptService.advance_status(message.id, user_b, MessageStatus.DELIVERED)
            session_b.mark_delivered(room_id)

        assert late.success is False
        observed = [event.message["status"] for event in recorder.events]
        assert observed == ["sent", "delivered", "read"]
        ranks = [status_rank(value) for value in observed]
        assert ranks == sorted(ranks)

    def test_mark_read_twice_matches_once(self, user_a, user_b, session_a, session_b):
        room_id = session_a.get_or_create_room(user_a.pk, user_b.pk)
        session_a.send_message(room_id, user_a.pk, "one")
        session_a.send_message(room_id, user_a.pk, "two")

        session_b.mark_read(room_id, user_b.pk)
        after_once = list(Message.objects.values_list("id", "status", "read_at"))
        session_b.mark_read(room_id, user_b.pk)
        after_twice = list(Message.objects.values_list("id", "status", "read_at"))

        assert after_once == after_twice


class TestOutsider:
    """A third user is refused everywhere in someone else's room."""

    def test_outsider_sees_nothing(self, user_a, user_b, session_a, recorder):
        room_id = session_a.get_or_create_room(user_a.pk, user_b.pk)
        session_a.send_message(room_id, user_a.pk, "private")
        outsider = UserFactory()
        session = ChatSession(outsider)

        for attempt in (
            lambda: session.list_messages(room_id),
            lambda: session.send_message(room_id, outsider.pk, "let me in"),
            lambda: session.subscribe(room_id, recorder),
        ):
            with pytest.raises(UnauthorizedError) as exc_info:
                attempt()
            assert "private" not in str(exc_info.value)
            assert str(room_id) not in str(exc_info.value)

        assert session.list_rooms() == []
        assert Message.objects.count() == 1

"""
Tests for chat models.

This module tests:
- Room: string representation, direct/group helpers
- DirectRoomPair: storage-level uniqueness and canonical order
- Membership: one row per user per room
- Message: forward-only status transitions, client_id uniqueness, ordering

Testing Philosophy:
    Model tests cover invariants the database or the model itself enforces,
    independent of the service layer.
"""

from datetime import timedelta

import pytest
from django.db import IntegrityError, transaction
from django.utils import timezone
from django_fsm import TransitionNotAllowed

from authentication.tests.factories import UserFactory
from chat.models import (
    DirectRoomPair,
    Membership,
    Message,
    MessageStatus,
    status_rank,
)
from chat.tests.factories import (
    DirectRoomFactory,
    MembershipFactory,
    MessageFactory,
    RoomFactory,
)


class TestStatusRank:
    """Tests for the forward-only status order."""

    def test_order_is_sending_sent_delivered_read(self):
        """
        Ranks increase along the lifecycle.

        Why it matters: Every monotonicity check compares ranks.
        """
        assert (
            status_rank(MessageStatus.SENDING)
            < status_rank(MessageStatus.SENT)
            < status_rank(MessageStatus.DELIVERED)
            < status_rank(MessageStatus.READ)
        )

    def test_accepts_plain_strings(self):
        """Wire payloads carry plain strings, not enum members."""
        assert status_rank("read") == 3

    def test_rejects_unknown_status(self):
        """Unknown statuses are not silently ranked."""
        with pytest.raises(ValueError):
            status_rank("archived")


class TestRoom:
    """Tests for Room model."""

    def test_direct_room_str(self, db):
        room = RoomFactory()

        assert str(room) == f"Direct({room.pk})"
        assert room.is_direct is True

    def test_group_room_str_uses_name(self, db):
        room = RoomFactory(is_group=True, name="Ops")

        assert str(room) == "Group: Ops"
        assert room.is_direct is False

    def test_member_ids(self, db):
        """member_ids returns both members of a direct room."""
        ana = UserFactory()
        bao = UserFactory()
        room = DirectRoomFactory(user1=ana, user2=bao)

        assert set(room.member_ids()) == {ana.pk, bao.pk}

    def test_primary_key_is_uuid(self, db):
        """
        Room ids are UUIDs.

        Why it matters: Room ids appear in URLs and channel group names;
        sequential ids would leak room counts and be guessable.
        """
        room = RoomFactory()

        assert len(str(room.pk)) == 36


class TestDirectRoomPair:
    """Tests for storage-level direct room uniqueness."""

    def test_second_pair_for_same_users_is_rejected(self, db):
        """
        The unique constraint rejects a second room for the same pair.

        Why it matters: This constraint is what makes concurrent
        getOrCreate calls converge on one room.
        """
        room = DirectRoomFactory()
        pair = DirectRoomPair.objects.get(room=room)
        other_room = RoomFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            DirectRoomPair.objects.create(
                room=other_room,
                user_lower=pair.user_lower,
                user_higher=pair.user_higher,
            )

    def test_pair_must_be_in_canonical_order(self, db):
        """
        user_lower must sort before user_higher.

        Why it matters: Without canonical order (A, B) and (B, A) would be
        different rows and the unique constraint would not deduplicate.
        """
        lower, higher = sorted((UserFactory(), UserFactory()), key=lambda user: user.pk)

        with pytest.raises(IntegrityError), transaction.atomic():
            DirectRoomPair.objects.create(
                room=RoomFactory(), user_lower=higher, user_higher=lower
            )

    def test_same_user_twice_is_rejected(self, db):
        """A pair of one user with itself violates the strict order check."""
        user = UserFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            DirectRoomPair.objects.create(room=RoomFactory(), user_lower=user, user_higher=user)


class TestMembership:
    """Tests for Membership model."""

    def test_one_membership_per_user_per_room(self, db):
        """Duplicate membership rows are rejected by the database."""
        membership = MembershipFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            Membership.objects.create(room=membership.room, user=membership.user)

    def test_defaults_to_not_typing(self, db):
        membership = MembershipFactory()

        assert membership.is_typing is False
        assert membership.typing_updated_at is None
        assert "[typing]" not in str(membership)


class TestMessageTransitions:
    """
    Tests for Message FSM transitions.

    Verifies:
    - sent -> delivered -> read
    - sent -> read directly
    - no transition backward
    """

    def test_new_message_is_sent(self, db):
        message = MessageFactory()

        assert message.status == MessageStatus.SENT
        assert message.read_at is None

    def test_deliver_moves_sent_to_delivered(self, db):
        message = MessageFactory()

        message.deliver()

        assert message.status == MessageStatus.DELIVERED

    def test_mark_read_sets_read_at(self, db):
        """
        Reading sets status and read_at together.

        Why it matters: read_at is what clients show as "Seen at".
        """
        message = MessageFactory()
        now = timezone.now()

        message.mark_read(now)

        assert message.status == MessageStatus.READ
        assert message.read_at == now
        assert message.is_read is True

    def test_read_can_skip_delivered(self, db):
        """A recipient can open the room before the delivery ack lands."""
        message = MessageFactory()

        message.mark_read(timezone.now())

        assert message.status == MessageStatus.READ

    def test_cannot_deliver_read_message(self, db):
        """
        delivered after read is a backward move.

        Why it matters: Late delivery acks must never downgrade a message.
        """
        message = MessageFactory(status=MessageStatus.READ)

        with pytest.raises(TransitionNotAllowed):
            message.deliver()

        assert message.status == MessageStatus.READ

    def test_cannot_read_twice(self, db):
        """A second read would overwrite read_at; it is not allowed."""
        read_at = timezone.now() - timedelta(minutes=5)
        message = MessageFactory(status=MessageStatus.READ, read_at=read_at)

        with pytest.raises(TransitionNotAllowed):
            message.mark_read(timezone.now())

        assert message.read_at == read_at


class TestMessageConstraints:
    """Tests for Message database constraints and ordering."""

    def test_client_id_unique_per_sender(self, db):
        """
        A sender cannot store two messages with the same client_id.

        Why it matters: This backs idempotent retries of optimistic sends.
        """
        message = MessageFactory(client_id="c-1")

        with pytest.raises(IntegrityError), transaction.atomic():
            MessageFactory(room=message.room, sender=message.sender, client_id="c-1")

    def test_same_client_id_allowed_for_different_senders(self, db):
        message = MessageFactory(client_id="c-1")

        other = MessageFactory(room=message.room, client_id="c-1")

        assert other.pk != message.pk

    def test_many_messages_without_client_id(self, db):
        """NULL client_ids never collide."""
        message = MessageFactory()

        MessageFactory(room=message.room, sender=message.sender)

        assert Message.objects.filter(sender=message.sender).count() == 2

    def test_default_ordering_is_created_at_then_id(self, db):
        """
        Messages with identical timestamps fall back to id order.

        Why it matters: Clients render by (created_at, id); the server must
        return the same order.
        """
        room = DirectRoomFactory()
        first = MessageFactory(room=room)
        second = MessageFactory(room=room)
        same_time = timezone.now()
        Message.objects.filter(pk__in=[first.pk, second.pk]).update(created_at=same_time)

        assert list(Message.objects.filter(room=room)) == [first, second]

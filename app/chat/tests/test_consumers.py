"""
Tests for the chat WebSocket consumer.

This module tests:
- Connection: JWT authentication and membership (close codes 4001/4003/4004)
- Sending messages: ack to the sender, broadcast to the other member
- Delivery receipts on receipt of a broadcast
- Typing indicators, sync and frame validation

Testing Philosophy:
    The socket is just another entry point to the services; it must reject
    exactly what the services reject and relay only committed changes.
"""

import pytest
from channels.db import database_sync_to_async
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator
from rest_framework_simplejwt.tokens import AccessToken

from chat.middleware import JWTAuthMiddleware
from chat.models import Membership, Message, MessageStatus
from chat.routing import websocket_urlpatterns

application = JWTAuthMiddleware(URLRouter(websocket_urlpatterns))

pytestmark = [pytest.mark.asyncio, pytest.mark.django_db(transaction=True)]


def _communicator(room_id, token=None):
    path = f"/ws/chat/{room_id}/"
    if token is not None:
        path += f"?token={token}"
    return WebsocketCommunicator(application, path)


async def _receive_type(communicator, event_type, attempts=5):
    """Read frames until one of the given type arrives."""
    for _ in range(attempts):
        frame = await communicator.receive_json_from(timeout=2)
        if frame.get("type") == event_type:
            return frame
    raise AssertionError(f"No {event_type} frame received")


@pytest.fixture
def ana_token(ana):
    return str(AccessToken.for_user(ana))


@pytest.fixture
def bao_token(bao):
    return str(AccessToken.for_user(bao))


@pytest.fixture
def outsider_token(outsider):
    return str(AccessToken.for_user(outsider))


class TestConnect:
    """Tests for connection authentication and authorization."""

    async def test_member_connects(self, direct_room, ana_token):
        communicator = _communicator(direct_room.id, ana_token)

        connected, _ = await communicator.connect()

        assert connected is True
        await communicator.disconnect()

    async def test_missing_token_is_rejected(self, direct_room):
        communicator = _communicator(direct_room.id)

        connected, code = await communicator.connect()

        assert connected is False
        assert code == 4001

    async def test_invalid_token_is_rejected(self, direct_room):
        communicator = _communicator(direct_room.id, "not-a-jwt")

        connected, code = await communicator.connect()

        assert connected is False
        assert code == 4001

    async def test_non_member_is_rejected(self, direct_room, outsider_token):
        """
        Outsiders cannot open a room's stream.

        Why it matters: The stream carries every message in the room.
        """
        communicator = _communicator(direct_room.id, outsider_token)

        connected, code = await communicator.connect()

        assert connected is False
        assert code == 4003

    async def test_unknown_room(self, ana_token):
        communicator = _communicator("00000000-0000-4000-8000-000000000000", ana_token)

        connected, code = await communicator.connect()

        assert connected is False
        assert code == 4004

    async def test_connect_marks_pending_messages_delivered(
        self, message_from_ana, bao_token
    ):
        """A recipient coming online acknowledges delivery of what it missed."""
        communicator = _communicator(message_from_ana.room_id, bao_token)

        await communicator.connect()
        await communicator.disconnect()

        status = await database_sync_to_async(
            lambda: Message.objects.get(pk=message_from_ana.pk).status
        )()
        assert status == MessageStatus.DELIVERED


class TestMessages:
    """Tests for sending and receiving messages."""

    async def test_sender_gets_ack(self, direct_room, ana_token):
        communicator = _communicator(direct_room.id, ana_token)
        await communicator.connect()

        await communicator.send_json_to({"type": "message", "content": "Hi", "client_id": "c-1"})
        ack = await _receive_type(communicator, "message.ack")

        assert ack["client_id"] == "c-1"
        assert ack["message"]["content"] == "Hi"
        assert ack["message"]["status"] == "sent"
        await communicator.disconnect()

    async def test_other_member_receives_message(self, direct_room, ana_token, bao_token):
        """
        A message sent by one member reaches the other in real time.

        Why it matters: This is the core realtime path; the receiving
        client also confirms delivery.
        """
        ana_socket = _communicator(direct_room.id, ana_token)
        bao_socket = _communicator(direct_room.id, bao_token)
        await ana_socket.connect()
        await bao_socket.connect()

        await ana_socket.send_json_to({"type": "message", "content": "Hi Bao"})
        inserted = await _receive_type(bao_socket, "message.inserted")
        updated = await _receive_type(bao_socket, "message.updated")

        assert inserted["message"]["content"] == "Hi Bao"
        assert updated["message"]["id"] == inserted["message"]["id"]
        assert updated["message"]["status"] == "delivered"
        await ana_socket.disconnect()
        await bao_socket.disconnect()

    async def test_invalid_content_returns_error(self, direct_room, ana_token):
        communicator = _communicator(direct_room.id, ana_token)
        await communicator.connect()

        await communicator.send_json_to({"type": "message", "content": "   ", "client_id": "c-2"})
        error = await _receive_type(communicator, "error")

        assert error["error_code"] == "INVALID_ARGUMENT"
        assert error["client_id"] == "c-2"
        assert await database_sync_to_async(Message.objects.count)() == 0
        await communicator.disconnect()

    async def test_read_frame_marks_room_read(self, message_from_ana, bao_token):
        communicator = _communicator(message_from_ana.room_id, bao_token)
        await communicator.connect()

        await communicator.send_json_to({"type": "read"})
        updated = await _receive_type(communicator, "message.updated")

        assert updated["message"]["status"] in ("delivered", "read")
        await communicator.disconnect()
        status = await database_sync_to_async(
            lambda: Message.objects.get(pk=message_from_ana.pk).status
        )()
        assert status == MessageStatus.READ


class TestTypingAndSync:
    """Tests for typing frames, sync and frame validation."""

    async def test_typing_reaches_other_member(self, direct_room, ana, ana_token, bao_token):
        ana_socket = _communicator(direct_room.id, ana_token)
        bao_socket = _communicator(direct_room.id, bao_token)
        await ana_socket.connect()
        await bao_socket.connect()

        await ana_socket.send_json_to({"type": "typing", "is_typing": True})
        event = await _receive_type(bao_socket, "membership.updated")

        assert event["membership"]["user_id"] == str(ana.pk)
        assert event["membership"]["is_typing"] is True
        await ana_socket.disconnect()
        await bao_socket.disconnect()

    async def test_disconnect_clears_typing(self, direct_room, ana, ana_token):
        """
        Closing the socket mid-typing clears the flag.

        Why it matters: Otherwise the other member sees "typing..." until
        the stale-flag task runs.
        """
        communicator = _communicator(direct_room.id, ana_token)
        await communicator.connect()
        await communicator.send_json_to({"type": "typing", "is_typing": True})
        await _receive_type(communicator, "membership.updated")

        await communicator.disconnect()

        is_typing = await database_sync_to_async(
            lambda: Membership.objects.get(room=direct_room, user=ana).is_typing
        )()
        assert is_typing is False

    async def test_sync_returns_snapshot(self, message_from_ana, ana_token):
        communicator = _communicator(message_from_ana.room_id, ana_token)
        await communicator.connect()

        await communicator.send_json_to({"type": "sync"})
        snapshot = await _receive_type(communicator, "sync")

        assert snapshot["full"] is True
        assert [m["id"] for m in snapshot["messages"]] == [message_from_ana.id]
        assert len(snapshot["members"]) == 2
        await communicator.disconnect()

    async def test_sync_with_bad_cursor(self, direct_room, ana_token):
        communicator = _communicator(direct_room.id, ana_token)
        await communicator.connect()

        await communicator.send_json_to({"type": "sync", "since": "yesterday"})
        error = await _receive_type(communicator, "error")

        assert error["error_code"] == "INVALID_ARGUMENT"
        await communicator.disconnect()

    async def test_unknown_frame_type(self, direct_room, ana_token):
        communicator = _communicator(direct_room.id, ana_token)
        await communicator.connect()

        await communicator.send_json_to({"type": "edit", "message_id": 1})
        error = await _receive_type(communicator, "error")

        assert error["error_code"] == "INVALID_ARGUMENT"
        await communicator.disconnect()

    async def test_delivered_requires_integer_ids(self, direct_room, ana_token):
        communicator = _communicator(direct_room.id, ana_token)
        await communicator.connect()

        await communicator.send_json_to({"type": "delivered", "message_ids": ["1"]})
        error = await _receive_type(communicator, "error")

        assert error["error_code"] == "INVALID_ARGUMENT"
        await communicator.disconnect()

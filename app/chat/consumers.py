"""
WebSocket consumers for the chat application.

Consumers:
    ChatConsumer: Realtime stream and command channel for one room

Authentication:
    JWTAuthMiddleware attaches the user to self.scope["user"].

Close Codes:
    4001: Not authenticated
    4003: Not a member (at connect, or membership lost later)
    4004: Room does not exist

Channel Groups:
    Each room has a channel group named "chat_{room_id}". The services
    publish committed changes to it (see realtime.py); the consumer
    re-checks membership before forwarding each one.

Message Types (from client):
    - message: {"type": "message", "content": "Hi", "client_id": "c-1"}
    - typing: {"type": "typing", "is_typing": true}
    - read: {"type": "read"}
    - delivered: {"type": "delivered", "message_ids": [1, 2]}
    - sync: {"type": "sync", "since": "2024-05-01T10:00:00Z"}

Message Types (to client):
    - message.ack: The sender's message was stored
    - message.inserted / message.updated / membership.updated: Room events
    - sync: Catch-up snapshot
    - error: {"type": "error", "error": ..., "error_code": ..., "client_id": ...}
"""

from __future__ import annotations

import logging
from uuid import UUID

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.utils.dateparse import parse_datetime

from chat.authorization import ChatAuthorizationService
from chat.constants import REALTIME_CONFIG, room_group_name
from chat.exceptions import ChatErrorCode
from chat.models import Room
from chat.serializers import MessageSerializer
from chat.services import MembershipService, MessageService, ReceiptService, SyncService

logger = logging.getLogger(__name__)


class ChatConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer for one chat room.

    Handles:
        - Connection authentication and authorization
        - Joining/leaving the room's channel group
        - Sending messages with acknowledgement
        - Typing indicators, read and delivery receipts
        - Catch-up after reconnect

    Attributes:
        room_id: UUID of the connected room
        room_group_name: Channel layer group name for the room
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.room_id: UUID | None = None
        self.room_group_name: str | None = None
        self.is_typing = False

    @property
    def user(self):
        return self.scope.get("user")

    async def connect(self):
        """
        Handle WebSocket connection.

        Validates:
            1. User is authenticated
            2. Room exists
            3. User is a member of the room

        On success, joins the channel group, accepts the connection and
        marks pending messages from others as delivered.
        """
        self.room_id = self.scope["url_route"]["kwargs"]["room_id"]

        user = self.user
        if not user or not user.is_authenticated:
            logger.warning(f"Rejected unauthenticated connection to room {self.room_id}")
            await self.close(code=REALTIME_CONFIG.CLOSE_UNAUTHENTICATED)
            return

        if not await self._room_exists():
            logger.warning(f"User {user.pk} tried to connect to non-existent room {self.room_id}")
            await self.close(code=REALTIME_CONFIG.CLOSE_NOT_FOUND)
            return

        if not await self._is_member():
            logger.warning(f"User {user.pk} is not a member of room {self.room_id}")
            await self.close(code=REALTIME_CONFIG.CLOSE_FORBIDDEN)
            return

        self.room_group_name = room_group_name(self.room_id)
        await self.channel_layer.group_add(self.room_group_name, self.channel_name)

        subprotocol = "jwt" if "jwt" in self.scope.get("subprotocols", []) else None
        await self.accept(subprotocol=subprotocol)
        logger.info(f"User {user.pk} connected to room {self.room_id}")

        await self._mark_delivered(None)

    async def disconnect(self, close_code):
        """
        Handle WebSocket disconnection.

        Leaves the channel group and clears a typing flag this socket set.
        """
        if not self.room_group_name:
            return

        await self.channel_layer.group_discard(self.room_group_name, self.channel_name)
        if self.is_typing:
            await self._set_typing(False)
        logger.info(f"User {self.user.pk} disconnected from room {self.room_id} ({close_code})")

    async def receive_json(self, content, **kwargs):
        """Dispatch a client frame by its "type"."""
        if not isinstance(content, dict):
            await self._send_error("Frames must be JSON objects", ChatErrorCode.INVALID_ARGUMENT)
            return

        handlers = {
            "message": self._handle_message,
            "typing": self._handle_typing,
            "read": self._handle_read,
            "delivered": self._handle_delivered,
            "sync": self._handle_sync,
        }
        frame_type = content.get("type")
        handler = handlers.get(frame_type)
        if handler is None:
            await self._send_error(
                f"Unknown message type: {frame_type}", ChatErrorCode.INVALID_ARGUMENT
            )
            return

        await handler(content)

    # -------------------------------------------------------------------------
    # Client frames
    # -------------------------------------------------------------------------

    async def _handle_message(self, content):
        client_id = content.get("client_id")
        result = await self._append(content.get("content", ""), client_id)
        if not result["success"]:
            await self._send_error(result["error"], result["error_code"], client_id=client_id)
            return

        await self.send_json(
            {"type": "message.ack", "client_id": client_id, "message": result["data"]}
        )
        if self.is_typing:
            await self._set_typing(False)

    async def _handle_typing(self, content):
        is_typing = bool(content.get("is_typing", False))
        result = await self._set_typing(is_typing)
        if not result.success:
            await self._send_error(result.error, result.error_code)

    async def _handle_read(self, content):
        result = await database_sync_to_async(ReceiptService.mark_read)(
            room_id=self.room_id, reader=self.user
        )
        if not result.success:
            await self._send_error(result.error, result.error_code)

    async def _handle_delivered(self, content):
        message_ids = content.get("message_ids")
        if message_ids is not None and (
            not isinstance(message_ids, list)
            or not all(isinstance(message_id, int) for message_id in message_ids)
        ):
            await self._send_error(
                "message_ids must be a list of integers", ChatErrorCode.INVALID_ARGUMENT
            )
            return

        result = await self._mark_delivered(message_ids)
        if not result.success:
            await self._send_error(result.error, result.error_code)

    async def _handle_sync(self, content):
        since = None
        raw_since = content.get("since")
        if raw_since:
            try:
                since = parse_datetime(raw_since)
            except (TypeError, ValueError):
                since = None
            if since is None:
                await self._send_error(
                    "since must be an ISO 8601 datetime", ChatErrorCode.INVALID_ARGUMENT
                )
                return

        result = await self._catch_up(since)
        if not result["success"]:
            await self._send_error(result["error"], result["error_code"])
            return
        await self.send_json(result["data"])

    # -------------------------------------------------------------------------
    # Group events
    # -------------------------------------------------------------------------

    async def chat_event(self, event):
        """
        Forward a room event published by the services.

        Membership is re-checked for every event; a member who lost access
        is disconnected instead of receiving it.
        """
        if not await self._is_member():
            logger.warning(f"User {self.user.pk} lost access to room {self.room_id}; closing")
            await self.close(code=REALTIME_CONFIG.CLOSE_FORBIDDEN)
            return

        payload = event["event"]
        await self.send_json(payload)

        if payload.get("type") == "message.inserted":
            message = payload["message"]
            if message.get("sender_id") != str(self.user.pk):
                await self._mark_delivered([message["id"]])

    async def _send_error(self, error: str, error_code: str | None, client_id=None):
        frame = {"type": "error", "error": error, "error_code": error_code}
        if client_id is not None:
            frame["client_id"] = client_id
        await self.send_json(frame)

    # -------------------------------------------------------------------------
    # Database access
    # -------------------------------------------------------------------------

    @database_sync_to_async
    def _room_exists(self) -> bool:
        return Room.objects.filter(pk=self.room_id).exists()

    @database_sync_to_async
    def _is_member(self) -> bool:
        return ChatAuthorizationService.is_member(self.user, self.room_id)

    @database_sync_to_async
    def _append(self, content, client_id) -> dict:
        """
        Send a message using MessageService.

        Returns dict with success status and either data or error.
        """
        result = MessageService.append(
            room_id=self.room_id,
            sender=self.user,
            content=content,
            client_id=client_id,
        )
        if result.success:
            return {"success": True, "data": dict(MessageSerializer(result.data).data)}
        return {"success": False, "error": result.error, "error_code": result.error_code}

    @database_sync_to_async
    def _set_typing(self, is_typing: bool):
        result = MembershipService.set_typing(
            self.room_id, self.user.pk, is_typing, caller=self.user
        )
        if result.success:
            self.is_typing = is_typing
        return result

    @database_sync_to_async
    def _mark_delivered(self, message_ids):
        return ReceiptService.mark_delivered(
            room_id=self.room_id, recipient=self.user, message_ids=message_ids
        )

    @database_sync_to_async
    def _catch_up(self, since) -> dict:
        result = SyncService.catch_up(room_id=self.room_id, user=self.user, since=since)
        if result.success:
            return {"success": True, "data": result.data.to_payload()}
        return {"success": False, "error": result.error, "error_code": result.error_code}

"""
WebSocket URL routing for the chat application.

URL Patterns:
    ws/chat/<room_id>/ - Connect to a room's realtime stream

Authentication:
    JWTAuthMiddleware (config/asgi.py) validates the access token passed as
    ?token=<jwt> or via the "jwt, <token>" subprotocol and attaches the user
    to the consumer's scope.
"""

from django.urls import path

from chat import consumers

websocket_urlpatterns = [
    path(
        "ws/chat/<uuid:room_id>/",
        consumers.ChatConsumer.as_asgi(),
    ),
]

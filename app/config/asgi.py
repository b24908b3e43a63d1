"""
ASGI config for the Django application.

This file exposes the ASGI callable as a module-level variable named
`application`. It serves two protocols from one process:

- HTTP: the REST API (auth, rooms, messages) via Django
- WebSocket: ws/chat/<room_id>/ via Django Channels (chat.consumers.ChatConsumer)

WebSocket clients authenticate with the same JWT access token the REST API
uses, passed as ?token=<access> or as the "jwt, <access>" subprotocol pair.

Run with any ASGI server, e.g.:
    daphne config.asgi:application
    uvicorn config.asgi:application

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/asgi/
"""

import os

from django.core.asgi import get_asgi_application

# Set the default Django settings module for the ASGI application
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Initialize Django before importing consumers, which import models
django_asgi_app = get_asgi_application()

from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402
from channels.security.websocket import AllowedHostsOriginValidator  # noqa: E402

from chat.middleware import JWTAuthMiddleware  # noqa: E402
from chat.routing import websocket_urlpatterns  # noqa: E402

application = ProtocolTypeRouter(
    {
        "http": django_asgi_app,
        # Origin check, then JWT -> scope["user"], then room routing
        "websocket": AllowedHostsOriginValidator(
            JWTAuthMiddleware(URLRouter(websocket_urlpatterns))
        ),
    }
)

"""
URL configuration for chat API.

URL Structure:
    Rooms:
        /rooms/                          GET, POST
        /rooms/{id}/                     GET
        /rooms/{id}/members/             GET
        /rooms/{id}/read/                POST
        /rooms/{id}/delivered/           POST
        /rooms/{id}/typing/              POST
        /rooms/{id}/sync/                GET

    Messages:
        /rooms/{id}/messages/            GET, POST
        /messages/{id}/status/           POST

All URLs are prefixed with /api/v1/chat/ in the main URL configuration.
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from chat.views import MessageStatusView, MessageViewSet, RoomViewSet

router = DefaultRouter()
router.register(r"rooms", RoomViewSet, basename="room")

app_name = "chat"

urlpatterns = [
    path("", include(router.urls)),
    # Nested routes for messages
    path(
        "rooms/<uuid:room_pk>/messages/",
        MessageViewSet.as_view({"get": "list", "post": "create"}),
        name="room-message-list",
    ),
    path(
        "messages/<int:message_id>/status/",
        MessageStatusView.as_view(),
        name="message-status",
    ),
]

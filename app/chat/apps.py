"""
Chat application configuration.

This app provides the 1:1 chat core with:
- Direct rooms deduplicated per user pair
- Append-only message log with forward-only delivery/read status
- Typing indicators
- Realtime fan-out over Django Channels with membership re-checks
"""

from django.apps import AppConfig


class ChatConfig(AppConfig):
    """Configuration for the chat application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "chat"
    verbose_name = "Chat"

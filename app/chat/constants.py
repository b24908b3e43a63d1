"""
Constants and configuration for chat module features.

This module centralizes configuration values for:
- Message operations (content limits, page sizes)
- Typing indicators (debounce, staleness)
- Realtime delivery (group names, close codes, re-sync overlap)

Values marked as settings-backed can be overridden from the environment
(see config/settings.py).

Import example:
    from chat.constants import MESSAGE_CONFIG, TYPING_CONFIG
"""

from datetime import timedelta
from typing import Final

from django.conf import settings


# =============================================================================
# Message Configuration
# =============================================================================


class MESSAGE_CONFIG:
    """Configuration for message operations."""

    # Content limits (characters, after stripping)
    MAX_CONTENT_LENGTH: Final[int] = getattr(settings, "CHAT_MAX_MESSAGE_LENGTH", 4000)
    MIN_CONTENT_LENGTH: Final[int] = 1

    # Correlation id supplied by clients for optimistic sends
    MAX_CLIENT_ID_LENGTH: Final[int] = 64

    # Listing
    DEFAULT_PAGE_SIZE: Final[int] = 50
    MAX_PAGE_SIZE: Final[int] = 100


# =============================================================================
# Typing Configuration
# =============================================================================


class TYPING_CONFIG:
    """Configuration for typing indicators."""

    # Client-side debounce before a typing state is sent
    DEBOUNCE_SECONDS: Final[float] = 0.3

    # How long a client keeps showing "typing..." without a refresh
    DISPLAY_TTL: Final[timedelta] = timedelta(seconds=3)

    # Server-side: flags older than this are cleared by the beat task
    STALE_AFTER: Final[timedelta] = timedelta(
        seconds=getattr(settings, "CHAT_TYPING_STALE_SECONDS", 30)
    )


# =============================================================================
# Realtime Configuration
# =============================================================================


class REALTIME_CONFIG:
    """Configuration for realtime fan-out and reconnect."""

    GROUP_PREFIX: Final[str] = "chat_"

    # Re-sync re-reads this much history before the client's cursor to cover
    # commits that landed out of timestamp order
    SYNC_OVERLAP: Final[timedelta] = timedelta(
        seconds=getattr(settings, "CHAT_SYNC_OVERLAP_SECONDS", 5)
    )

    # Optimistic sends fall back to sender + content matching within this window
    TIMELINE_MATCH_WINDOW: Final[timedelta] = timedelta(seconds=30)

    # WebSocket close codes
    CLOSE_UNAUTHENTICATED: Final[int] = 4001
    CLOSE_FORBIDDEN: Final[int] = 4003
    CLOSE_NOT_FOUND: Final[int] = 4004


def room_group_name(room_id) -> str:
    """Channels group name for a room."""
    return f"{REALTIME_CONFIG.GROUP_PREFIX}{room_id}"

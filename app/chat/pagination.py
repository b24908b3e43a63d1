"""
Pagination classes for chat API.

- MessageCursorPagination: For message lists (oldest first)

Cursor-based pagination keeps pages stable while new messages arrive and
encodes (created_at, id), the same order clients reconcile with.
"""

from rest_framework.pagination import CursorPagination

from chat.constants import MESSAGE_CONFIG


class MessageCursorPagination(CursorPagination):
    """
    Cursor pagination for message lists.

    Orders messages oldest-first for natural chat reading experience.

    Query parameters:
        cursor: Encoded cursor for position
        page_size: Number of messages (optional override)
    """

    page_size = MESSAGE_CONFIG.DEFAULT_PAGE_SIZE
    max_page_size = MESSAGE_CONFIG.MAX_PAGE_SIZE
    page_size_query_param = "page_size"
    ordering = ("created_at", "id")
    cursor_query_param = "cursor"

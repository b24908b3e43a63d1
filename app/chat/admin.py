"""
Django admin configuration for chat models.

Provides admin interfaces for:
- Room management with inline memberships
- Direct pair viewing
- Message moderation
"""

from django.contrib import admin

from chat.models import DirectRoomPair, Membership, Message, Room


class MembershipInline(admin.TabularInline):
    """Inline display of memberships in room admin."""

    model = Membership
    extra = 0
    readonly_fields = ["joined_at", "is_typing", "typing_updated_at"]
    raw_id_fields = ["user"]


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    """Admin interface for Room model."""

    list_display = [
        "id",
        "name",
        "is_group",
        "created_by",
        "created_at",
        "last_message_at",
    ]
    list_filter = ["is_group", "created_at"]
    search_fields = ["name", "id"]
    readonly_fields = ["created_at", "updated_at", "last_message_at"]
    raw_id_fields = ["created_by"]
    inlines = [MembershipInline]
    ordering = ["-created_at"]


@admin.register(DirectRoomPair)
class DirectRoomPairAdmin(admin.ModelAdmin):
    """Admin interface for DirectRoomPair model."""

    list_display = ["room", "user_lower", "user_higher"]
    search_fields = ["user_lower__email", "user_higher__email"]
    raw_id_fields = ["room", "user_lower", "user_higher"]


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    """Admin interface for Message model."""

    list_display = [
        "id",
        "room",
        "sender",
        "message_type",
        "status",
        "content_preview",
        "created_at",
    ]
    list_filter = ["message_type", "status", "created_at"]
    search_fields = ["content", "sender__email", "client_id"]
    readonly_fields = ["created_at", "updated_at", "read_at", "client_id"]
    raw_id_fields = ["room", "sender"]
    ordering = ["-created_at"]

    @admin.display(description="Content")
    def content_preview(self, obj):
        """Show truncated content preview."""
        if len(obj.content) > 50:
            return obj.content[:50] + "..."
        return obj.content

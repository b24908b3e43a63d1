"""
Django admin configuration for identity models.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from authentication.models import Profile, User


class ProfileInline(admin.StackedInline):
    """Inline profile editing on the user page."""

    model = Profile
    can_delete = False
    fields = ("display_name", "avatar_url", "phone")


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Admin configuration for the email-based User model.
    """

    list_display = ("email", "id", "is_active", "is_staff", "date_joined")
    list_filter = ("is_active", "is_staff", "is_superuser", "date_joined")
    search_fields = ("email", "id")
    ordering = ("-date_joined",)
    readonly_fields = ("id", "date_joined", "last_login")
    inlines = [ProfileInline]

    fieldsets = (
        (None, {"fields": ("id", "email", "password")}),
        ("Status", {"fields": ("is_active", "is_staff", "is_superuser")}),
        ("Permissions", {"fields": ("groups", "user_permissions")}),
        ("Important dates", {"fields": ("date_joined", "last_login")}),
    )

    add_fieldsets = (
        (
            None,
            {
                "classes": ("wide",),
                "fields": ("email", "password1", "password2"),
            },
        ),
    )


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    """Admin interface for Profile model."""

    list_display = ("user", "display_name", "phone", "updated_at")
    search_fields = ("user__email", "display_name", "phone")
    raw_id_fields = ("user",)
    readonly_fields = ("created_at", "updated_at")

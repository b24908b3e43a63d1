"""
Identity models.

This module defines:
- User: Email-based identity with a UUID primary key (the opaque identity
  reference every other app stores)
- Profile: Display data used when rendering chats (OneToOne with User)

Related files:
    - managers.py: UserManager for email-based creation
    - signals.py: Auto-create Profile on User creation
    - services.py: ProfileService lookups for the chat UI

Note:
    The chat core never reads Profile content; it only stores and compares
    User ids. Profiles are joined in at the serializer layer for rendering.
"""

from django.conf import settings
from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.core.validators import RegexValidator
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from authentication.managers import UserManager


validate_phone = RegexValidator(
    regex=r"^\+?[0-9 ()-]{6,20}$",
    message="Phone number may contain digits, spaces, parentheses, dashes and a leading +.",
)


class User(UUIDPrimaryKeyMixin, AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the login identifier.

    Slim and auth-focused; display data lives on Profile.

    Fields:
        id: UUID identity reference (immutable)
        email: Login identifier, unique
        is_active: Inactive identities cannot open or be added to rooms
        is_staff: Whether the user can access Django admin
        date_joined: When the account was provisioned
        updated_at: When the user record was last modified

    Usage:
        user = User.objects.create_user(email="ana@example.com", password="...")
    """

    email = models.EmailField(
        unique=True,
        max_length=254,
        help_text="User's email address (login identifier)",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        """Return the user's email as string representation."""
        return self.email

    def get_full_name(self):
        """Return the profile display name, falling back to email."""
        try:
            return self.profile.display_name or self.email
        except Profile.DoesNotExist:
            return self.email

    def get_short_name(self):
        """Return the email local part."""
        return self.email.split("@")[0]


class Profile(BaseModel):
    """
    Display data for an identity.

    Fields:
        user: OneToOne link to User (also serves as primary key)
        display_name: Name shown in chat lists and headers
        avatar_url: Remote avatar image URL
        phone: Optional contact number shown on the chat header

    Note:
        Profile is created automatically via signals when a User is created.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="profile",
        primary_key=True,
        help_text="User this profile belongs to",
    )

    display_name = models.CharField(
        max_length=150,
        blank=True,
        help_text="Name shown to other users",
    )

    avatar_url = models.URLField(
        max_length=500,
        blank=True,
        help_text="Avatar image URL",
    )

    phone = models.CharField(
        max_length=20,
        blank=True,
        validators=[validate_phone],
        help_text="Contact phone number",
    )

    class Meta:
        db_table = "authentication_profile"
        verbose_name = "profile"
        verbose_name_plural = "profiles"

    def __str__(self):
        """Return display name or user email."""
        return self.display_name or str(self.user)

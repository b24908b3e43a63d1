"""
Serializers for identity models.

This module provides DRF serializers for:
- User model (read operations, with profile display data)
- Profile model (read and update)
- ProfileCard (compact identity used inside chat payloads)

Related files:
    - models.py: User and Profile models
    - views.py: Views that use these serializers
"""

from rest_framework import serializers

from authentication.models import Profile, User


class UserSerializer(serializers.ModelSerializer):
    """
    Serializer for User model (read operations).

    Includes profile display fields so a chat client can render a member
    without a second request.
    """

    display_name = serializers.SerializerMethodField()
    avatar_url = serializers.CharField(source="profile.avatar_url", read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "email",
            "display_name",
            "avatar_url",
            "date_joined",
        ]
        read_only_fields = fields

    def get_display_name(self, obj) -> str:
        """Return the profile display name (email local part if unset)."""
        try:
            return obj.profile.display_name or obj.get_short_name()
        except Profile.DoesNotExist:
            return obj.get_short_name()


class ProfileSerializer(serializers.ModelSerializer):
    """Serializer for Profile model (read operations)."""

    user_id = serializers.UUIDField(source="user.id", read_only=True)
    user_email = serializers.EmailField(source="user.email", read_only=True)

    class Meta:
        model = Profile
        fields = [
            "user_id",
            "user_email",
            "display_name",
            "avatar_url",
            "phone",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ProfileUpdateSerializer(serializers.ModelSerializer):
    """
    Serializer for updating profile information.

    All fields are optional; model validators (phone format, URL) apply.
    """

    class Meta:
        model = Profile
        fields = ["display_name", "avatar_url", "phone"]
        extra_kwargs = {
            "display_name": {"required": False},
            "avatar_url": {"required": False},
            "phone": {"required": False},
        }

    def validate_display_name(self, value: str) -> str:
        """Strip surrounding whitespace."""
        return value.strip()


class ProfileCardSerializer(serializers.Serializer):
    """Compact identity summary (see ProfileService.get_profiles)."""

    user_id = serializers.UUIDField()
    display_name = serializers.CharField()
    avatar_url = serializers.CharField(allow_blank=True)
    phone = serializers.CharField(allow_blank=True)

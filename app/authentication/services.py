"""
Identity/Profile services.

This module provides ProfileService, the lookup interface the chat layer
uses to render identities (display name, avatar, phone). The chat core only
stores and compares user ids; profile content is resolved here.

Related files:
    - models.py: User, Profile
    - signals.py: Profile auto-creation
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import UUID

from core.services import BaseService, ServiceResult

from authentication.models import Profile, User

if TYPE_CHECKING:
    from collections.abc import Iterable


@dataclass(frozen=True)
class ProfileCard:
    """Render-ready identity summary."""

    user_id: UUID
    display_name: str
    avatar_url: str
    phone: str

    @classmethod
    def from_profile(cls, profile: Profile) -> ProfileCard:
        return cls(
            user_id=profile.user_id,
            display_name=profile.display_name or profile.user.email.split("@")[0],
            avatar_url=profile.avatar_url,
            phone=profile.phone,
        )


class ProfileService(BaseService):
    """
    Profile lookups and updates.

    Usage:
        cards = ProfileService.get_profiles([room_member.user_id, ...])
        cards[user_id].display_name
    """

    EDITABLE_FIELDS = ("display_name", "avatar_url", "phone")

    @classmethod
    def get_or_create_profile(cls, user: User) -> Profile:
        """Return the user's profile, creating it for legacy rows."""
        profile, created = Profile.objects.get_or_create(user=user)
        if created:
            cls.get_logger().info(f"Backfilled missing profile for user {user.id}")
        return profile

    @classmethod
    def get_profiles(cls, user_ids: Iterable[UUID | str]) -> dict[UUID, ProfileCard]:
        """
        Batch-resolve identities to profile cards.

        Unknown ids are simply absent from the result.

        Args:
            user_ids: Identity references

        Returns:
            Mapping of user id to ProfileCard
        """
        ids = {UUID(str(user_id)) for user_id in user_ids}
        if not ids:
            return {}

        profiles = Profile.objects.select_related("user").filter(user_id__in=ids)
        return {profile.user_id: ProfileCard.from_profile(profile) for profile in profiles}

    @classmethod
    def update_profile(cls, user: User, **fields) -> ServiceResult[Profile]:
        """
        Update display fields on the user's profile.

        Error codes:
            INVALID_ARGUMENT: Unknown field name
        """
        unknown = sorted(set(fields) - set(cls.EDITABLE_FIELDS))
        if unknown:
            return ServiceResult.failure(
                f"Unknown profile fields: {', '.join(unknown)}",
                error_code="INVALID_ARGUMENT",
            )

        profile = cls.get_or_create_profile(user)
        for name, value in fields.items():
            setattr(profile, name, value)
        profile.save(update_fields=[*fields, "updated_at"])

        cls.get_logger().debug(f"Updated profile fields {sorted(fields)} for {user.id}")
        return ServiceResult.success(profile)

"""
Tests for ProfileService.

ProfileService is the lookup interface chat clients use to turn member
ids into display data.
"""

import uuid

import pytest

from authentication.models import Profile
from authentication.services import ProfileCard, ProfileService
from authentication.tests.factories import UserFactory


@pytest.mark.django_db
class TestGetOrCreateProfile:
    """Tests for ProfileService.get_or_create_profile()."""

    def test_returns_existing_profile(self, user):
        """The signal-created profile is returned."""
        profile = ProfileService.get_or_create_profile(user)

        assert profile.pk == user.profile.pk

    def test_backfills_missing_profile(self, user):
        """
        A missing profile is created on demand.

        Why it matters: Rows created before the signal existed must still
        render in chat.
        """
        Profile.objects.filter(user=user).delete()

        profile = ProfileService.get_or_create_profile(user)

        assert profile.user_id == user.id
        assert Profile.objects.filter(user=user).count() == 1


@pytest.mark.django_db
class TestGetProfiles:
    """Tests for ProfileService.get_profiles()."""

    def test_returns_cards_keyed_by_user_id(self):
        """Each requested id maps to a ProfileCard."""
        ana = UserFactory(display_name="Ana")
        bao = UserFactory(display_name="Bao")

        cards = ProfileService.get_profiles([ana.id, str(bao.id)])

        assert set(cards) == {ana.id, bao.id}
        assert isinstance(cards[ana.id], ProfileCard)
        assert cards[ana.id].display_name == "Ana"
        assert cards[bao.id].display_name == "Bao"

    def test_display_name_falls_back_to_email_local_part(self):
        """Cards always carry a non-empty display name."""
        user = UserFactory(email="chi@example.com")

        cards = ProfileService.get_profiles([user.id])

        assert cards[user.id].display_name == "chi"

    def test_unknown_ids_are_absent(self, user):
        """Ids with no user are silently omitted."""
        cards = ProfileService.get_profiles([user.id, uuid.uuid4()])

        assert list(cards) == [user.id]

    def test_empty_input_returns_empty_mapping(self):
        """No ids, no query, empty result."""
        assert ProfileService.get_profiles([]) == {}

    def test_invalid_id_raises_value_error(self):
        """Malformed ids are a caller error."""
        with pytest.raises(ValueError):
            ProfileService.get_profiles(["not-a-uuid"])


@pytest.mark.django_db
class TestUpdateProfile:
    """Tests for ProfileService.update_profile()."""

    def test_updates_fields(self, user):
        """Editable fields are persisted."""
        result = ProfileService.update_profile(
            user, display_name="Ana", phone="+84 90 000 0000"
        )

        assert result.success is True
        user.profile.refresh_from_db()
        assert user.profile.display_name == "Ana"
        assert user.profile.phone == "+84 90 000 0000"

    def test_rejects_unknown_fields(self, user):
        """
        Unknown fields fail with INVALID_ARGUMENT.

        Why it matters: Silently ignoring a typo would look like a
        successful update to the caller.
        """
        result = ProfileService.update_profile(user, nickname="ana")

        assert result.success is False
        assert result.error_code == "INVALID_ARGUMENT"
        assert "nickname" in result.error

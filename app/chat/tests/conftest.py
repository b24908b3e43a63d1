"""
Test configuration and fixtures for chat tests.

This module provides:
- User fixtures for the two members of a direct room and an outsider
- Direct room and message fixtures
- API client helpers for authenticated requests
- A recorder for realtime events

Usage:
    def test_example(direct_room, ana_client):
        response = ana_client.get(f"/api/v1/chat/rooms/{direct_room.id}/")
        assert response.status_code == 200
"""

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from authentication.tests.factories import UserFactory
from chat.realtime import notifier
from chat.tests.factories import DirectRoomFactory, MessageFactory


# =============================================================================
# Realtime isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_notifier():
    """Drop subscriptions left behind by a previous test."""
    notifier.clear()
    yield
    notifier.clear()


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def ana(db):
    """First member of the direct room."""
    return UserFactory(display_name="Ana")


@pytest.fixture
def bao(db):
    """Second member of the direct room."""
    return UserFactory(display_name="Bao")


@pytest.fixture
def outsider(db):
    """A user who is not a member of any test room."""
    return UserFactory(display_name="Chi")


# =============================================================================
# Room Fixtures
# =============================================================================


@pytest.fixture
def direct_room(db, ana, bao):
    """Direct room between ana and bao, opened by ana."""
    return DirectRoomFactory(user1=ana, user2=bao)


@pytest.fixture
def message_from_ana(db, direct_room, ana):
    """A sent message from ana in the direct room."""
    return MessageFactory(room=direct_room, sender=ana, content="Hi Bao")


# =============================================================================
# API Client Fixtures
# =============================================================================


def _client_for(user):
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
    return client


@pytest.fixture
def api_client():
    """Unauthenticated API client."""
    return APIClient()


@pytest.fixture
def ana_client(ana):
    """API client authenticated as ana."""
    return _client_for(ana)


@pytest.fixture
def bao_client(bao):
    """API client authenticated as bao."""
    return _client_for(bao)


@pytest.fixture
def outsider_client(outsider):
    """API client authenticated as a non-member."""
    return _client_for(outsider)


# =============================================================================
# Realtime Fixtures
# =============================================================================


class EventRecorder:
    """Callable subscriber that keeps every event it receives."""

    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    @property
    def types(self):
        return [event.type for event in self.events]

    def of_type(self, event_type):
        return [event for event in self.events if event.type == event_type]


@pytest.fixture
def recorder():
    """Fresh EventRecorder for subscribing to a room."""
    return EventRecorder()

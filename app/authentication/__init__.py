"""
Authentication application.

Provides the identities the chat core refers to and the profile data used to
render them.

Key components:
    - User model: Email-based identity with UUID primary key
    - Profile model: display_name, avatar_url, phone
    - ProfileService: Batch profile lookups for chat rendering
    - JWT endpoints (simplejwt) for API and WebSocket authentication

Usage:
    from authentication.models import User, Profile
    from authentication.services import ProfileService
"""

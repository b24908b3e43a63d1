"""
URL configuration for the identity app.

URL structure:
    /api/v1/auth/token/           - Obtain JWT pair (email + password)
    /api/v1/auth/token/refresh/   - Refresh access token
    /api/v1/auth/profile/         - Current user's profile (GET/PATCH)
    /api/v1/auth/profiles/        - Batch profile lookup (?ids=)

The access token is also what WebSocket clients pass to ws/chat/<room_id>/.
"""

from django.urls import path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from authentication.views import ProfileLookupView, ProfileView

app_name = "authentication"

urlpatterns = [
    path("token/", TokenObtainPairView.as_view(), name="token-obtain"),
    path("token/refresh/", TokenRefreshView.as_view(), name="token-refresh"),
    path("profile/", ProfileView.as_view(), name="profile"),
    path("profiles/", ProfileLookupView.as_view(), name="profile-lookup"),
]

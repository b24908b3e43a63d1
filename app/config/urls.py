"""
URL configuration for the Django application.

The `urlpatterns` list routes URLs to views. This is the root URL configuration
that includes all app-specific routes.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/                  - Authentication endpoints
        token/                     - Obtain JWT pair
        token/refresh/             - Refresh access token
        profile/                   - Current user's profile (GET/PATCH)
        profiles/                  - Batch profile lookup
    /api/v1/chat/                  - Chat endpoints
        rooms/                     - Room list / open direct room
        rooms/{id}/                - Room detail
        rooms/{id}/members/        - Members and typing flags
        rooms/{id}/read/           - Mark room as read
        rooms/{id}/delivered/      - Acknowledge delivery
        rooms/{id}/typing/         - Set typing flag
        rooms/{id}/sync/           - Reconnect catch-up
        rooms/{id}/messages/       - Message list/send
        messages/{id}/status/      - Advance one message's status

WebSocket routes are in chat/routing.py (ws/chat/{room_id}/).

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    # Authentication (JWT tokens, profiles)
    path("auth/", include("authentication.urls")),
    # Chat
    path("chat/", include("chat.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "CityLink Admin"
admin.site.site_title = "CityLink Admin Portal"
admin.site.index_title = "Chat administration"

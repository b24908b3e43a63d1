"""
Identity views.

This module provides API views for:
- Profile management for the current user
- Batch profile lookup used by chat clients to render members

Related files:
    - serializers.py: Request/response serialization
    - services.py: ProfileService
    - urls.py: URL routing (token endpoints come from simplejwt)
"""

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.serializers import (
    ProfileCardSerializer,
    ProfileSerializer,
    ProfileUpdateSerializer,
)
from authentication.services import ProfileService

MAX_LOOKUP_IDS = 100


class ProfileView(APIView):
    """
    API view for the current user's profile.

    GET: Retrieve profile
    PATCH: Update display_name / avatar_url / phone

    URL: /api/v1/auth/profile/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="auth_profile_retrieve",
        summary="Get current user's profile",
        tags=["Auth - Profile"],
        responses={200: ProfileSerializer},
    )
    def get(self, request):
        """Retrieve the current user's profile."""
        profile = ProfileService.get_or_create_profile(request.user)
        return Response(ProfileSerializer(profile).data)

    @extend_schema(
        operation_id="auth_profile_partial_update",
        summary="Update profile",
        tags=["Auth - Profile"],
        request=ProfileUpdateSerializer,
        responses={200: ProfileSerializer},
    )
    def patch(self, request):
        """
        Partially update the current user's profile.

        Request body:
            {"display_name": "Ana", "avatar_url": "https://...", "phone": "+84 90 000 0000"}
        """
        profile = ProfileService.get_or_create_profile(request.user)
        serializer = ProfileUpdateSerializer(profile, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        result = ProfileService.update_profile(request.user, **serializer.validated_data)
        if not result.success:
            return Response(
                {"error": result.error, "error_code": result.error_code},
                status=status.HTTP_400_BAD_REQUEST,
            )

        return Response(ProfileSerializer(result.data).data)


class ProfileLookupView(APIView):
    """
    Batch identity lookup.

    URL: /api/v1/auth/profiles/?ids=<uuid>,<uuid>
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="auth_profile_lookup",
        summary="Look up profiles",
        description="Resolve up to 100 identity ids to display data.",
        tags=["Auth - Profile"],
        parameters=[
            OpenApiParameter(
                name="ids",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                description="Comma-separated user ids",
            )
        ],
        responses={200: ProfileCardSerializer(many=True)},
    )
    def get(self, request):
        """Return profile cards for the requested ids."""
        raw_ids = [value for value in request.query_params.get("ids", "").split(",") if value]
        if len(raw_ids) > MAX_LOOKUP_IDS:
            return Response(
                {
                    "error": f"At most {MAX_LOOKUP_IDS} ids per request",
                    "error_code": "INVALID_ARGUMENT",
                },
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            cards = ProfileService.get_profiles(raw_ids)
        except ValueError:
            return Response(
                {"error": "ids must be UUIDs", "error_code": "INVALID_ARGUMENT"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        return Response(ProfileCardSerializer(list(cards.values()), many=True).data)

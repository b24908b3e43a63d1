"""
OpenAPI schema customizations for drf-spectacular.

Tag naming follows the pattern: [App Name] - [Group Name]
Examples:
- Auth (JWT token endpoints)
- Auth - Profile (profile retrieve/update, profile lookup)
- Chat - Rooms (room directory, receipts, typing, sync)
- Chat - Messages (message log)
"""

# Natural language summaries for simplejwt endpoints
# Maps operation_id to (summary, description)
TOKEN_ENDPOINT_SUMMARIES = {
    "auth_token_create": (
        "Obtain tokens",
        "Authenticate with email and password to receive an access/refresh JWT pair.",
    ),
    "auth_token_refresh_create": (
        "Refresh access token",
        "Get a new access token using a valid refresh token.",
    ),
}


def group_api_endpoints(result, generator, request, public):
    """
    Postprocessing hook to group API endpoints by function.

    Auth groups:
        - Auth - Profile: profile endpoints
        - Auth: token endpoints (with natural language summaries)

    Chat groups are set via tags= in @extend_schema; this hook only adds
    their descriptions.
    """
    paths = result.get("paths", {})

    for path, methods in paths.items():
        for method, operation in methods.items():
            if not isinstance(operation, dict):
                continue

            operation_id = operation.get("operationId", "")

            if operation_id in TOKEN_ENDPOINT_SUMMARIES:
                summary, description = TOKEN_ENDPOINT_SUMMARIES[operation_id]
                operation["summary"] = summary
                operation["description"] = description

            if operation_id.startswith("auth_profile"):
                operation["tags"] = ["Auth - Profile"]
            elif operation_id.startswith("auth_"):
                operation["tags"] = ["Auth"]

    result["tags"] = [
        {
            "name": "Auth",
            "description": "JWT access/refresh token management.",
        },
        {
            "name": "Auth - Profile",
            "description": "Display name, avatar and phone used when rendering chats.",
        },
        {
            "name": "Chat - Rooms",
            "description": (
                "1:1 room directory, membership, read/delivery receipts, "
                "typing flags and reconnect re-sync."
            ),
        },
        {
            "name": "Chat - Messages",
            "description": "Ordered, append-only message log per room.",
        },
    ]

    return result

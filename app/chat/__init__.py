"""
Chat app for real-time 1:1 messaging.

This app handles:
- Direct rooms between two users
- Message sending and history
- Delivery and read receipts
- Typing indicators
- WebSocket real-time updates and reconnect catch-up

Related apps:
    - authentication: User model and profiles shown for members

WebSocket Support:
    Uses Django Channels for real-time communication.
    See consumers.py for WebSocket handlers.
    See routing.py for WebSocket URL patterns.

Usage:
    from chat.session import ChatSession

    session = ChatSession(user)
    room_id = session.get_or_create_room(user.pk, other_user.pk)
    session.send_message(room_id, user.pk, "Hello!")
"""

"""
Realtime app for WebSocket communication in ride rooms.

This app provides:
- The ride room consumer (group chat, typing, live ride events)
- Notification helpers the ride services use to push events
- JWT/Cookie authentication middleware for WebSocket connections

Usage:
    from realtime.consumers import RideChatConsumer
    from realtime.notifications import notify_ride_group, notify_user_event
"""

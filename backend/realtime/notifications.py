"""
Notification helpers for sending ride room events to connected clients.

Every ride has a Channels group ``ride_<ride_id>``. Delivery is best effort:
failures are logged and never propagate into the caller's transaction.
"""

from __future__ import annotations

import logging
from typing import Dict, Any, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)


def ride_group_name(ride_id: int) -> str:
    return f"ride_{ride_id}"


def notify_ride_group(
    ride_id: int,
    event_type: str,
    message: str = "",
    extra: Optional[Dict[str, Any]] = None,
) -> bool:
    """
    Send an event to everyone connected to a ride room.

    Args:
        ride_id: Target ride
        event_type: Handler name in RideChatConsumer (user_joined, user_left,
            owner_changed, ride_completed, ride_cancelled, ride_deleted, new_message)
        message: Optional human readable message
        extra: Additional payload data

    Returns:
        True if sent, False if no channel layer or the send failed
    """
    try:
        channel_layer = get_channel_layer()
        if channel_layer is None:
            logger.warning("No channel layer available for ride %s event %s", ride_id, event_type)
            return False

        payload = {
            "type": event_type,
            "ride_id": ride_id,
            **(extra or {}),
        }
        if message:
            payload["message"] = message

        logger.debug("WS -> ride_%s: %s", ride_id, payload)
        async_to_sync(channel_layer.group_send)(ride_group_name(ride_id), payload)
        return True
    except Exception:
        logger.exception("Failed to notify ride group for ride %s", ride_id)
        return False


def notify_user_event(user_id: int, event_type: str, extra: Optional[Dict[str, Any]] = None) -> bool:
    """Send an event to a single user's personal group ``user_<id>``."""
    try:
        channel_layer = get_channel_layer()
        if channel_layer is None:
            return False
        async_to_sync(channel_layer.group_send)(
            f"user_{user_id}",
            {"type": event_type, **(extra or {})},
        )
        return True
    except Exception:
        logger.exception("Failed to notify user_%s of %s", user_id, event_type)
        return False

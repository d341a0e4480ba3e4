"""Ride room WebSocket consumer: group chat and live ride events."""

import logging
from typing import Dict, Any, Optional

from channels.db import database_sync_to_async

from realtime.notifications import ride_group_name
from .base import BaseConsumer

logger = logging.getLogger(__name__)


class RideChatConsumer(BaseConsumer):
    """
    WebSocket consumer for ride rooms.

    Members (the creator and seated riders) join ``ride_<ride_id>`` to:
        - Exchange chat messages
        - See typing indicators and who is online
        - Receive join/leave/ownership/completion events pushed by the
          ride lifecycle service
    """

    greeting = "Ride chat connection established"
    message_handlers = {
        "join_ride": "handle_join_ride",
        "leave_ride": "handle_leave_ride",
        "send_message": "handle_send_message",
        "typing": "handle_typing",
    }

    async def on_connect(self):
        self.rooms = set()

    async def on_disconnect(self, close_code):
        for ride_id in list(self.rooms):
            await self._room_presence(ride_id, "member_offline")

    # ---------------------- Client Messages ----------------------

    async def handle_join_ride(self, data: Dict[str, Any]):
        ride_id = await self._ride_id(data)
        if ride_id is None:
            return

        if not await self._is_ride_member(ride_id):
            await self.send_error("You are not a member of this ride")
            return

        await self._join_group(ride_group_name(ride_id))
        self.rooms.add(ride_id)
        await self.send_success("ride_joined", ride_id=ride_id)
        await self._room_presence(ride_id, "member_online")

    async def handle_leave_ride(self, data: Dict[str, Any]):
        ride_id = await self._ride_id(data)
        if ride_id not in self.rooms:
            return

        await self._room_presence(ride_id, "member_offline")
        await self._drop_room(ride_id)
        await self.send_success("ride_left", ride_id=ride_id)

    async def handle_send_message(self, data: Dict[str, Any]):
        ride_id = await self._ride_id(data)
        if ride_id is None:
            return
        text = data.get("message")
        if not text:
            await self.send_error("send_message requires a message")
            return

        # The stored message reaches the room through the post-commit broadcast
        error = await self._store_message(ride_id, text)
        if error:
            await self.send_error(error)

    async def handle_typing(self, data: Dict[str, Any]):
        ride_id = await self._ride_id(data)
        if ride_id not in self.rooms:
            return

        await self.channel_layer.group_send(ride_group_name(ride_id), {
            "type": "user_typing",
            "ride_id": ride_id,
            "user_id": self.user_id,
            "is_typing": bool(data.get("is_typing")),
        })

    async def _ride_id(self, data: Dict[str, Any]) -> Optional[int]:
        """``ride_id`` of a client message as an int, or None after an error reply."""
        try:
            return int(data["ride_id"])
        except (KeyError, TypeError, ValueError):
            await self.send_error("ride_id must be an integer")
            return None

    async def _drop_room(self, ride_id: int):
        await self._leave_group(ride_group_name(ride_id))
        self.rooms.discard(ride_id)

    # ---------------------- Room Events (from group_send) ----------------------

    async def new_message(self, event):
        await self.send_json({"type": "new_message", **event.get("data", {})})

    async def user_typing(self, event):
        await self._forward_from_others(event, "user_id", "is_typing")

    async def member_online(self, event):
        await self._forward_from_others(event, "user_id")

    async def member_offline(self, event):
        await self._forward_from_others(event, "user_id")

    async def user_joined(self, event):
        await self._forward(event, "user_id", "user_name", "seat_count", "status")

    async def user_left(self, event):
        await self._forward(event, "user_id", "user_name", "seat_count", "status")
        # Left through the API: stop receiving this room's events
        if event.get("user_id") == self.user_id and event.get("ride_id") in self.rooms:
            await self._drop_room(event["ride_id"])

    async def owner_changed(self, event):
        await self._forward(event, "creator_id", "creator_name")

    async def ride_completed(self, event):
        await self._forward(event, "completed_by")

    async def ride_cancelled(self, event):
        await self._forward(event)

    async def ride_deleted(self, event):
        await self._forward(event)
        if event.get("ride_id") in self.rooms:
            await self._drop_room(event["ride_id"])

    async def _forward(self, event, *keys):
        payload = {
            "type": event["type"],
            "ride_id": event.get("ride_id"),
            "message": event.get("message", ""),
        }
        for key in keys:
            payload[key] = event.get(key)
        await self.send_json(payload)

    async def _forward_from_others(self, event, *keys):
        if event.get("user_id") == self.user_id:
            return
        payload = {"type": event["type"], "ride_id": event.get("ride_id")}
        for key in keys:
            payload[key] = event.get(key)
        await self.send_json(payload)

    async def _room_presence(self, ride_id, event_type: str):
        await self.channel_layer.group_send(ride_group_name(ride_id), {
            "type": event_type,
            "ride_id": ride_id,
            "user_id": self.user_id,
        })

    # ---------------------- Database Helpers ----------------------

    @database_sync_to_async
    def _is_ride_member(self, ride_id) -> bool:
        from rides.models import Ride
        from services.ride_management import is_ride_member

        ride = Ride.objects.filter(id=ride_id).first()
        return ride is not None and is_ride_member(ride, self.user_id)

    @database_sync_to_async
    def _store_message(self, ride_id, text) -> Optional[str]:
        """Persist a message; returns an error string on failure."""
        from services.ride_management import post_message, RideError

        try:
            post_message(self.user, ride_id, text)
        except RideError as exc:
            return str(exc)
        return None

"""Base WebSocket consumer: authentication, personal group and message dispatch."""

import logging
from typing import Dict, Any, Set

from channels.generic.websocket import AsyncJsonWebsocketConsumer

logger = logging.getLogger(__name__)


class BaseConsumer(AsyncJsonWebsocketConsumer):
    """
    Authenticated JSON consumer.

    Anonymous connections are closed. Every connection joins ``user_<id>`` so
    server code can reach one user directly. Incoming ``{"type": ...}``
    messages are dispatched through ``message_handlers``, a mapping of
    message type to method name declared by subclasses.
    """

    message_handlers: Dict[str, str] = {}
    greeting = "Connection established"

    async def connect(self):
        self.user = self.scope.get("user")

        if self.user is None or self.user.is_anonymous:
            await self.close()
            return

        self.user_id = self.user.id
        self.role = getattr(self.user, "role", None)
        self.joined_groups: Set[str] = set()

        self.user_group = f"user_{self.user_id}"
        await self._join_group(self.user_group)

        await self.accept()
        await self.on_connect()
        await self.send_success(
            "connection_established",
            user_id=self.user_id,
            role=self.role,
            message=self.greeting,
        )

    async def on_connect(self):
        pass

    async def disconnect(self, close_code):
        if not hasattr(self, "joined_groups"):
            return
        try:
            await self.on_disconnect(close_code)
        except Exception:
            logger.exception("Error during disconnect for user %s", self.user_id)
        for group in list(self.joined_groups):
            await self._leave_group(group)

    async def on_disconnect(self, close_code):
        pass

    async def receive_json(self, content: Dict[str, Any], **kwargs):
        msg_type = content.get("type") if isinstance(content, dict) else None
        if not msg_type:
            await self.send_error("Message type is required")
            return

        handler_name = self.message_handlers.get(msg_type)
        if handler_name is None:
            await self.send_error(f"Unknown message type: {msg_type}")
            return

        try:
            await getattr(self, handler_name)(content)
        except Exception:
            logger.exception("Error handling %s from user %s", msg_type, self.user_id)
            await self.send_error(f"Error processing {msg_type}")

    # ---------------------- Group Management Helpers ----------------------

    async def _join_group(self, group_name: str):
        await self.channel_layer.group_add(group_name, self.channel_name)
        self.joined_groups.add(group_name)

    async def _leave_group(self, group_name: str):
        await self.channel_layer.group_discard(group_name, self.channel_name)
        self.joined_groups.discard(group_name)

    # ---------------------- Response Helpers ----------------------

    async def send_error(self, message: str):
        await self.send_json({"type": "error", "message": message})

    async def send_success(self, event_type: str, **kwargs):
        await self.send_json({"type": event_type, **kwargs})

    # ---------------------- Personal Events ----------------------

    async def ride_ownership_transferred(self, event):
        """Sent to a rider who just became the owner of a ride."""
        await self.send_success(
            "ride_ownership_transferred",
            ride_id=event.get("ride_id"),
            message=event.get("message", ""),
        )

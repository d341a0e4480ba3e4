"""Realtime consumers for WebSocket communication."""

from .base import BaseConsumer
from .ride_consumer import RideChatConsumer

__all__ = [
    "BaseConsumer",
    "RideChatConsumer",
]

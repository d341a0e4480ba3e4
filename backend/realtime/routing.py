"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers.ride_consumer import RideChatConsumer

websocket_urlpatterns = [
    # Ride room chat and live ride events
    # URL: ws://localhost:8000/ws/ride/
    re_path(
        r"ws/ride/$",
        RideChatConsumer.as_asgi(),
        name="ride-ws"
    ),
]

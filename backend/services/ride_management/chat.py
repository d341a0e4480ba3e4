"""Ride room chat: membership checks and message persistence."""

import logging

from django.db import transaction

from rides.models import Ride, ChatMessage
from realtime.notifications import notify_ride_group
from .exceptions import (
    RideNotFoundError,
    RideForbiddenError,
    RideValidationError,
    RideClosedError,
)

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 1000


def is_ride_member(ride: Ride, user_id: int) -> bool:
    """The creator and every seated rider may use the ride room."""
    return ride.creator_id == user_id or ride.is_occupant(user_id)


def _get_member_ride(user, ride_id: int) -> Ride:
    ride = Ride.objects.filter(id=ride_id).first()
    if ride is None:
        raise RideNotFoundError("Ride not found")
    if not is_ride_member(ride, user.id):
        raise RideForbiddenError("You are not in this ride")
    return ride


def list_messages(user, ride_id: int):
    ride = _get_member_ride(user, ride_id)
    return ride.messages.select_related('user').order_by('created_at', 'id')


@transaction.atomic
def post_message(user, ride_id: int, text: str) -> ChatMessage:
    """Store a chat message and broadcast it to the ride room."""
    ride = _get_member_ride(user, ride_id)

    text = (text or "").strip()
    if not text:
        raise RideValidationError("Message cannot be empty")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise RideValidationError(f"Message is longer than {MAX_MESSAGE_LENGTH} characters")
    if ride.status == 'cancelled':
        raise RideClosedError("This ride was cancelled")

    message = ChatMessage.objects.create(ride=ride, user=user, message=text)

    payload = serialize_message(message)
    transaction.on_commit(
        lambda: notify_ride_group(ride.id, 'new_message', extra={"data": payload})
    )
    return message


def serialize_message(message: ChatMessage):
    return {
        "id": message.id,
        "ride_id": message.ride_id,
        "message": message.message,
        "user_id": message.user_id,
        "user_name": message.user.display_name,
        "created_at": message.created_at.isoformat(),
    }

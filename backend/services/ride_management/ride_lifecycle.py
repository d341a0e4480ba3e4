"""
Core ride lifecycle operations.

Every mutation runs in one transaction with the ride row locked
(``select_for_update``), so operations on the same ride are linearised and
two joins racing for the last seat cannot both succeed. Room notifications
are queued with ``transaction.on_commit`` and never roll back a change.

State machine::

    waiting -> active -> full -> completed
    waiting/active/full -> cancelled
"""

import logging
from dataclasses import dataclass, field
from datetime import date as date_type, time
from typing import Optional, Dict, Any, List

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from rides.models import Ride, RideParticipant, PopularDestination
from realtime.notifications import notify_ride_group, notify_user_event
from .exceptions import (
    RideNotFoundError,
    NotInRideError,
    SelfJoinRejectedError,
    AlreadyJoinedError,
    RideFullError,
    RideAlreadyCompletedError,
    RideClosedError,
    RideHasParticipantsError,
    RideForbiddenError,
    RideValidationError,
)

logger = logging.getLogger(__name__)


@dataclass
class RideResult:
    """Result object for ride operations."""
    success: bool
    ride: Optional[Ride] = None
    message: str = ""
    matches: List[Ride] = field(default_factory=list)
    extra: Optional[Dict[str, Any]] = None


# ===================== Request / Create =====================

def validate_ride_request(destination: str, date: date_type, time_window_start: time, time_window_end: time):
    """Raise RideValidationError for an unusable request."""
    if not destination or not destination.strip():
        raise RideValidationError("Destination is required")
    if date is None or time_window_start is None or time_window_end is None:
        raise RideValidationError("Date and time window are required")
    if time_window_end <= time_window_start:
        raise RideValidationError("Time window end must be after its start")


def request_ride(
    user,
    destination: str,
    date: date_type,
    time_window_start: time,
    time_window_end: time,
    pickup_location: str = None,
    notes: str = None,
    force: bool = False,
) -> RideResult:
    """
    Match a ride request against existing rides, creating a new ride if none fit.

    Args:
        user: Requesting user
        destination: Where the rider is going
        date: Travel date
        time_window_start: Earliest departure
        time_window_end: Latest departure
        pickup_location: Optional pickup point
        notes: Optional free text for other riders
        force: Skip matching and always create

    Returns:
        RideResult with ``matches`` populated (and ``ride`` None) when
        compatible rides exist, otherwise with the newly created ride
    """
    validate_ride_request(destination, date, time_window_start, time_window_end)

    if not force:
        from services.matching import find_matches

        matches = find_matches(
            destination.strip(),
            time_window_start,
            time_window_end,
            date,
            requester_id=user.id,
        )
        if matches:
            return RideResult(
                success=True,
                matches=matches,
                message=f"Found {len(matches)} matching ride(s). Join one or create your own.",
            )

    return create_ride(
        creator=user,
        destination=destination,
        date=date,
        time_window_start=time_window_start,
        time_window_end=time_window_end,
        pickup_location=pickup_location,
        notes=notes,
    )


@transaction.atomic
def create_ride(
    creator,
    destination: str,
    date: date_type,
    time_window_start: time,
    time_window_end: time,
    pickup_location: str = None,
    notes: str = None,
) -> RideResult:
    """
    Persist a new ride in ``waiting``.

    The creator is not seated yet: they take a seat together with the
    first rider who joins.
    """
    validate_ride_request(destination, date, time_window_start, time_window_end)

    ride = Ride.objects.create(
        creator=creator,
        destination=destination.strip(),
        pickup_location=pickup_location or None,
        date=date,
        time_window_start=time_window_start,
        time_window_end=time_window_end,
        max_seats=getattr(settings, "RIDE_MAX_SEATS", 6),
        current_seat_count=0,
        creator_seated=False,
        status='waiting',
        notes=notes or None,
    )
    _bump_popular_destination(ride.destination)

    logger.info("Ride %s created by user %s for %s on %s", ride.id, creator.id, ride.destination, ride.date)
    return RideResult(success=True, ride=ride, message="Ride created successfully")


# ===================== Seat Operations =====================

@transaction.atomic
def join_ride(user, ride_id: int) -> RideResult:
    """
    Take a seat in a ride.

    The first rider to join an unseated creator's ride brings the creator in
    with them, so the seat count goes from 0 to 2.

    Raises:
        RideNotFoundError: ride missing, completed or cancelled
        SelfJoinRejectedError: user created the ride
        AlreadyJoinedError: user already holds a seat
        RideFullError: not enough free seats
    """
    ride = _lock_ride(ride_id)

    if ride.status not in Ride.LIVE_STATUSES:
        raise RideNotFoundError("Ride not found or no longer open")
    if ride.creator_id == user.id:
        raise SelfJoinRejectedError("You cannot join your own ride")

    occupants = ride.occupant_ids()
    if user.id in occupants:
        raise AlreadyJoinedError("You are already in this ride")

    first_join = not ride.creator_seated
    seats_needed = 2 if first_join else 1
    if ride.status == 'full' or len(occupants) + seats_needed > ride.max_seats:
        raise RideFullError("Ride is full")

    try:
        with transaction.atomic():
            if first_join:
                RideParticipant.objects.create(ride=ride, user_id=ride.creator_id)
            RideParticipant.objects.create(ride=ride, user=user)
    except IntegrityError:
        raise AlreadyJoinedError("You are already in this ride")

    ride.creator_seated = True
    count = _recount_seats(ride)
    ride.status = 'full' if count >= ride.max_seats else 'active'
    ride.save(update_fields=['creator_seated', 'current_seat_count', 'status', 'updated_at'])

    logger.info("User %s joined ride %s (%s/%s)", user.id, ride.id, count, ride.max_seats)
    _notify_after_commit(
        ride.id,
        'user_joined',
        f"{user.display_name} joined the ride",
        {
            "user_id": user.id,
            "user_name": user.display_name,
            "seat_count": count,
            "status": ride.status,
        },
    )

    return RideResult(
        success=True,
        ride=ride,
        message="Successfully joined the ride",
        extra={"first_join": first_join},
    )


@transaction.atomic
def leave_ride(user, ride_id: int) -> RideResult:
    """
    Give up a seat.

    When the creator leaves, the earliest-joined rider becomes the creator
    (keeping their seat but losing their participant row). A creator who
    leaves alone cancels the ride.

    Raises:
        RideNotFoundError: ride missing
        RideClosedError: ride completed or cancelled
        NotInRideError: user holds no seat
    """
    ride = _lock_ride(ride_id)

    if ride.status in Ride.TERMINAL_STATUSES:
        raise RideClosedError(f"Cannot leave a {ride.status} ride")

    occupants = ride.occupant_ids()
    if user.id not in occupants:
        raise NotInRideError("You are not in this ride")

    ride.participants.filter(user_id=user.id).delete()

    if ride.creator_id != user.id:
        count = _recount_seats(ride)
        ride.status = 'active'
        ride.save(update_fields=['current_seat_count', 'status', 'updated_at'])

        logger.info("User %s left ride %s (%s/%s)", user.id, ride.id, count, ride.max_seats)
        _notify_left(ride, user, count)
        return RideResult(success=True, ride=ride, message="Successfully left the ride")

    successor = (
        ride.participants
        .exclude(user_id=user.id)
        .select_related('user')
        .order_by('joined_at', 'id')
        .first()
    )

    if successor is None:
        ride.participants.all().delete()
        ride.status = 'cancelled'
        ride.creator_seated = False
        ride.current_seat_count = 0
        ride.save(update_fields=['status', 'creator_seated', 'current_seat_count', 'updated_at'])

        logger.info("Creator %s left ride %s alone; ride cancelled", user.id, ride.id)
        _notify_after_commit(ride.id, 'ride_cancelled', "The creator left and the ride was cancelled.")
        return RideResult(
            success=True,
            ride=ride,
            message="You left the ride and it was cancelled",
            extra={"cancelled": True},
        )

    # A creator is never also a participant row
    successor.delete()
    ride.creator_id = successor.user_id
    ride.creator_seated = True
    count = _recount_seats(ride)
    if ride.status == 'full' and count < ride.max_seats:
        ride.status = 'active'
    ride.save(update_fields=['creator', 'creator_seated', 'current_seat_count', 'status', 'updated_at'])

    logger.info("Ride %s ownership moved from user %s to user %s", ride.id, user.id, successor.user_id)
    _notify_left(ride, user, count)
    _notify_after_commit(
        ride.id,
        'owner_changed',
        f"{successor.user.display_name} is now the ride owner",
        {"creator_id": successor.user_id, "creator_name": successor.user.display_name},
    )
    transaction.on_commit(
        lambda: notify_user_event(
            successor.user_id,
            'ride_ownership_transferred',
            {"ride_id": ride.id, "message": "You are now the owner of this ride."},
        )
    )

    return RideResult(
        success=True,
        ride=ride,
        message="Successfully left the ride",
        extra={"new_creator_id": successor.user_id},
    )


# ===================== Terminal Operations =====================

@transaction.atomic
def complete_ride(user, ride_id: int) -> RideResult:
    """Mark a ride completed. Only its creator or a seated rider may do this."""
    ride = _lock_ride(ride_id)

    if ride.creator_id != user.id and not ride.is_occupant(user.id):
        raise RideForbiddenError("Only the creator or a participant can complete this ride")
    if ride.status == 'completed':
        raise RideAlreadyCompletedError("Ride is already completed")
    if ride.status == 'cancelled':
        raise RideClosedError("Cannot complete a cancelled ride")

    ride.status = 'completed'
    ride.completed_by = user
    ride.completed_at = timezone.now()
    ride.save(update_fields=['status', 'completed_by', 'completed_at', 'updated_at'])

    logger.info("Ride %s completed by user %s", ride.id, user.id)
    _notify_after_commit(
        ride.id,
        'ride_completed',
        f"Ride completed by {user.display_name}",
        {"completed_by": user.id},
    )

    return RideResult(success=True, ride=ride, message="Ride marked as completed")


@transaction.atomic
def delete_ride(user, ride_id: int) -> RideResult:
    """
    Hard-delete a ride nobody else has joined.

    Raises:
        RideNotFoundError: ride missing
        RideForbiddenError: user is not the creator
        RideAlreadyCompletedError: completed rides are kept as history
        RideHasParticipantsError: other riders hold seats
    """
    ride = _lock_ride(ride_id)

    if ride.creator_id != user.id:
        raise RideForbiddenError("Only the ride creator can delete this ride")
    if ride.status == 'completed':
        raise RideAlreadyCompletedError("Completed rides cannot be deleted")
    if any(uid != ride.creator_id for uid in ride.occupant_ids()):
        raise RideHasParticipantsError("Cannot delete a ride other riders have joined. Leave it instead.")

    deleted_id = ride.id
    ride.delete()

    logger.info("Ride %s deleted by creator %s", deleted_id, user.id)
    _notify_after_commit(deleted_id, 'ride_deleted', "This ride was deleted by its creator.")

    return RideResult(success=True, message="Ride deleted successfully", extra={"ride_id": deleted_id})


# ===================== Helper Functions =====================

def _lock_ride(ride_id: int) -> Ride:
    """Fetch and row-lock a ride for the rest of the transaction."""
    try:
        return Ride.objects.select_for_update().get(id=ride_id)
    except Ride.DoesNotExist:
        raise RideNotFoundError("Ride not found")


def _recount_seats(ride: Ride) -> int:
    """Recompute the cached seat count from live rows."""
    ride.current_seat_count = ride.occupancy()
    return ride.current_seat_count


def _bump_popular_destination(destination: str):
    entry, _ = PopularDestination.objects.get_or_create(destination=destination)
    PopularDestination.objects.filter(pk=entry.pk).update(
        count=F('count') + 1,
        last_used=timezone.now(),
    )


def _notify_left(ride: Ride, user, count: int):
    _notify_after_commit(
        ride.id,
        'user_left',
        f"{user.display_name} left the ride",
        {
            "user_id": user.id,
            "user_name": user.display_name,
            "seat_count": count,
            "status": ride.status,
        },
    )


def _notify_after_commit(ride_id: int, event_type: str, message: str, extra: Dict[str, Any] = None):
    """Queue a ride room event for after the surrounding transaction commits."""
    transaction.on_commit(
        lambda: notify_ride_group(ride_id, event_type, message, extra)
    )

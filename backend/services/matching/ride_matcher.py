"""
Find existing rides a new ride request can join.

Candidates share the date, overlap the requested time window, go to a
compatible destination and still have a free seat. Results are a snapshot:
join re-validates capacity under the ride lock.
"""

import logging
from datetime import date as date_type, time
from typing import List, Optional

from django.conf import settings
from django.db import DatabaseError

from common.utils import DestinationGroups, get_destination_groups
from rides.models import Ride

logger = logging.getLogger(__name__)


def _seconds(value: time) -> int:
    return value.hour * 3600 + value.minute * 60 + value.second


def find_matches(
    destination: str,
    time_start: time,
    time_end: time,
    date: date_type,
    requester_id: int,
    groups: Optional[DestinationGroups] = None,
    limit: Optional[int] = None,
) -> List[Ride]:
    """
    Return the best joinable rides for a request, closest match first.

    Args:
        destination: Requested destination
        time_start: Start of the requested window
        time_end: End of the requested window
        date: Requested travel date
        requester_id: User asking; their own rides are never returned
        groups: Destination grouping table (defaults to settings)
        limit: Maximum number of rides (defaults to RIDE_MATCH_LIMIT)

    Returns:
        Rides ordered exact destination first, then by start-time distance.
        An empty list when storage fails.
    """
    groups = groups or get_destination_groups()
    if limit is None:
        limit = getattr(settings, "RIDE_MATCH_LIMIT", 5)

    try:
        rides = list(
            Ride.objects.open()
            .with_occupancy()
            .filter(
                date=date,
                time_window_start__lte=time_end,
                time_window_end__gte=time_start,
            )
            .exclude(creator_id=requester_id)
            .exclude(participants__user_id=requester_id)
            .select_related('creator')
        )
    except DatabaseError:
        logger.exception("Ride match query failed for requester %s", requester_id)
        return []

    requested_start = _seconds(time_start)
    ranked = []
    for ride in rides:
        if ride.occupancy >= ride.max_seats:
            continue
        tier = groups.match_tier(destination, ride.destination)
        if tier is None:
            continue
        distance = abs(_seconds(ride.time_window_start) - requested_start)
        ranked.append((tier, distance, ride.id, ride))

    ranked.sort(key=lambda item: item[:3])

    matches = [ride for (_, _, _, ride) in ranked[:limit]]
    logger.info(
        "Found %d match(es) for %r on %s %s-%s (requester=%s)",
        len(matches), destination, date, time_start, time_end, requester_id
    )
    return matches

"""
Retire rides whose time window has elapsed.

Expiry is judged against campus civil time (a fixed UTC offset from
settings), not the server's clock zone. A stale ride somebody rode is kept
as ``completed`` history; a stale ride nobody joined is deleted. Each ride
is retired in its own transaction so one bad row cannot stop the sweep.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import List, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from rides.models import Ride

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    completed: List[int] = field(default_factory=list)
    deleted: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.completed) + len(self.deleted)


def civil_timezone() -> dt_timezone:
    offset = getattr(settings, "RIDE_CIVIL_UTC_OFFSET_MINUTES", 330)
    return dt_timezone(timedelta(minutes=offset))


def civil_now(now: Optional[datetime] = None) -> datetime:
    """Current time on the campus clock."""
    return (now or timezone.now()).astimezone(civil_timezone())


def expired_rides_query(now: Optional[datetime] = None) -> Q:
    """Filter for rides that ended before ``now`` (campus time)."""
    local = civil_now(now)
    today = local.date()
    return (
        Q(date__lt=today)
        | Q(date=today, time_window_end__lt=local.time())
    )


def find_expired_ride_ids(now: Optional[datetime] = None) -> List[int]:
    statuses = getattr(settings, "RIDE_SWEEP_STATUSES", Ride.LIVE_STATUSES)
    return list(
        Ride.objects.filter(status__in=statuses)
        .filter(expired_rides_query(now))
        .order_by('date', 'time_window_end', 'id')
        .values_list('id', flat=True)
    )


def retire_ride(ride_id: int, now: Optional[datetime] = None) -> Optional[str]:
    """
    Retire one expired ride.

    Returns:
        "completed", "deleted", or None when the ride no longer qualifies
        (already gone, changed status, or not actually expired)
    """
    statuses = getattr(settings, "RIDE_SWEEP_STATUSES", Ride.LIVE_STATUSES)

    with transaction.atomic():
        ride = (
            Ride.objects.select_for_update()
            .filter(id=ride_id, status__in=statuses)
            .filter(expired_rides_query(now))
            .first()
        )
        if ride is None:
            return None

        if ride.occupancy() > 0:
            ride.status = 'completed'
            ride.completed_at = now or timezone.now()
            ride.save(update_fields=['status', 'completed_at', 'updated_at'])
            return "completed"

        ride.delete()
        return "deleted"


def sweep_expired_rides(now: Optional[datetime] = None) -> SweepResult:
    """
    Retire every expired ride.

    Returns a SweepResult listing completed, deleted and failed ride ids.
    """
    result = SweepResult()

    for ride_id in find_expired_ride_ids(now):
        try:
            outcome = retire_ride(ride_id, now)
        except Exception:
            logger.exception("Failed to retire expired ride %s", ride_id)
            result.failed.append(ride_id)
            continue

        if outcome == "completed":
            result.completed.append(ride_id)
        elif outcome == "deleted":
            result.deleted.append(ride_id)

    if result.total or result.failed:
        logger.info(
            "Ride sweep completed %s, deleted %s, failed %s",
            len(result.completed), len(result.deleted), len(result.failed),
        )

    return result

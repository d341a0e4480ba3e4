"""Read-only ride queries for listings, profiles and the admin dashboard."""

from datetime import timedelta
from typing import Optional, Dict, Any, List

from django.contrib.auth import get_user_model
from django.db.models import Count, Q
from django.db.models.functions import TruncDate
from django.utils import timezone

from rides.models import Ride, RideParticipant, PopularDestination
from .exceptions import RideNotFoundError

User = get_user_model()


def list_rides(destination: Optional[str] = None, date=None, status: Optional[str] = None):
    """
    Rides for the browse page.

    With no ``status`` only joinable rides (waiting or active) are listed.
    ``status`` may also name a single status, or "all" for every status.
    """
    rides = (
        Ride.objects.with_occupancy()
        .select_related('creator')
        .prefetch_related('participants__user')
    )
    if not status:
        rides = rides.filter(status__in=Ride.JOINABLE_STATUSES)
    elif status != 'all':
        rides = rides.filter(status=status)
    if destination:
        rides = rides.filter(destination__icontains=destination.strip())
    if date:
        rides = rides.filter(date=date)
    return rides.order_by('date', 'time_window_start', 'id')


def get_ride(ride_id: int) -> Ride:
    try:
        return (
            Ride.objects.with_occupancy()
            .select_related('creator', 'completed_by')
            .prefetch_related('participants__user')
            .get(id=ride_id)
        )
    except Ride.DoesNotExist:
        raise RideNotFoundError("Ride not found")


def get_user_ride_history(user, limit: int = 20) -> List[Dict[str, Any]]:
    """Rides the user created or joined, newest first."""
    from rides.serializers import RideSerializer

    rides = (
        Ride.objects.with_occupancy()
        .filter(Q(creator=user) | Q(participants__user=user))
        .select_related('creator')
        .prefetch_related('participants__user')
        .distinct()
        .order_by('-created_at')[:limit]
    )

    history = []
    for ride in rides:
        data = RideSerializer(ride).data
        data["participation_type"] = "created" if ride.creator_id == user.id else "joined"
        history.append(data)
    return history


def get_user_stats(user) -> Dict[str, int]:
    created = Ride.objects.filter(creator=user).count()
    joined = (
        RideParticipant.objects.filter(user=user)
        .exclude(ride__creator=user)
        .count()
    )
    completed = (
        Ride.objects.filter(status='completed')
        .filter(Q(creator=user) | Q(participants__user=user))
        .distinct()
        .count()
    )
    return {
        "created_rides": created,
        "joined_rides": joined,
        "completed_rides": completed,
        "total_rides": created + joined,
    }


def get_popular_destinations(limit: int = 10) -> List[Dict[str, Any]]:
    return list(
        PopularDestination.objects.order_by('-count', 'destination')
        .values('destination', 'count')[:limit]
    )


def get_admin_stats(days: int = 7) -> Dict[str, Any]:
    """Aggregate counts for the admin dashboard, including rides per day."""
    today = timezone.localdate()
    since = today - timedelta(days=days - 1)

    per_day = {
        row["day"]: row["count"]
        for row in (
            Ride.objects.filter(created_at__date__gte=since)
            .annotate(day=TruncDate('created_at'))
            .values('day')
            .annotate(count=Count('id'))
        )
    }
    rides_per_day = []
    for offset in range(days):
        day = since + timedelta(days=offset)
        rides_per_day.append({"date": day.isoformat(), "count": per_day.get(day, 0)})

    top_destinations = list(
        Ride.objects.values('destination')
        .annotate(count=Count('id'))
        .order_by('-count', 'destination')[:5]
    )

    return {
        "total_users": User.objects.filter(role='user').count(),
        "total_rides": Ride.objects.count(),
        "active_rides": Ride.objects.filter(status__in=Ride.LIVE_STATUSES).count(),
        "completed_rides": Ride.objects.filter(status='completed').count(),
        "top_destinations": top_destinations,
        "rides_per_day": rides_per_day,
    }

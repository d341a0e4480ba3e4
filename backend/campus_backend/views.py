import logging

import redis
from django.conf import settings
from django.db import connection
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework import status
from channels.layers import get_channel_layer

from campus_backend.celery import app as celery_app
from rides.models import Ride

logger = logging.getLogger(__name__)

SWEEP_TASK = "rides.tasks.sweep_expired_rides_task"


def _check_database():
    with connection.cursor() as cursor:
        cursor.execute("SELECT 1")
    return {"open_rides": Ride.objects.filter(status__in=Ride.LIVE_STATUSES).count()}


def _check_redis():
    client = redis.Redis.from_url(settings.CELERY_BROKER_URL, socket_timeout=3)
    client.ping()
    return {}


def _check_channels():
    layer = get_channel_layer()
    if layer is None:
        raise RuntimeError("no channel layer configured")
    return {"backend": type(layer).__name__}


def _check_celery():
    if SWEEP_TASK not in celery_app.tasks:
        raise RuntimeError("ride sweep task not registered")
    return {"sweep_interval_seconds": getattr(settings, "RIDE_SWEEP_INTERVAL_SECONDS", 300)}


HEALTH_CHECKS = (
    ("database", _check_database),
    ("redis", _check_redis),
    ("channels", _check_channels),
    ("celery", _check_celery),
)


@api_view(["GET"])
@permission_classes([AllowAny])
def health_check(request):
    """Report database, broker, channel layer and sweeper task status."""
    health_status = {
        "status": "healthy",
        "timestamp": timezone.now().isoformat(),
        "services": {},
    }

    for name, check in HEALTH_CHECKS:
        try:
            health_status["services"][name] = {"status": "healthy", **check()}
        except Exception as e:
            logger.warning("Health check %s failed: %s", name, e)
            health_status["services"][name] = {"status": f"unhealthy: {e}"}
            health_status["status"] = "unhealthy"

    status_code = (
        status.HTTP_200_OK
        if health_status["status"] == "healthy"
        else status.HTTP_503_SERVICE_UNAVAILABLE
    )
    return Response(health_status, status=status_code)

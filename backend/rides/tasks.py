"""Celery tasks for ride-related background processing."""

from celery import shared_task
from django.db import close_old_connections
import logging

logger = logging.getLogger(__name__)


@shared_task
def sweep_expired_rides_task():
    """
    Periodic task retiring rides whose time window has passed.

    Scheduled by Celery beat every RIDE_SWEEP_INTERVAL_SECONDS and once
    when a worker starts. Per-ride failures are logged by the sweeper and
    never fail the task.
    """
    from services.expiration import sweep_expired_rides

    try:
        result = sweep_expired_rides()
    finally:
        # Close stale DB connections for long-running workers
        close_old_connections()

    logger.info(
        "Expired ride sweep: %s completed, %s deleted, %s failed",
        len(result.completed), len(result.deleted), len(result.failed),
    )
    return {
        "completed": result.completed,
        "deleted": result.deleted,
        "failed": result.failed,
    }

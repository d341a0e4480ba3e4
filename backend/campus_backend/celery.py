"""Celery application for background ride maintenance."""

import logging
import os

from celery import Celery
from celery.signals import worker_ready

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "campus_backend.settings")

logger = logging.getLogger(__name__)

app = Celery("campus_backend")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


@worker_ready.connect
def sweep_on_startup(sender=None, **kwargs):
    """Run one expiration sweep as soon as a worker comes up."""
    logger.info("Worker ready, scheduling startup ride sweep")
    app.send_task("rides.tasks.sweep_expired_rides_task")

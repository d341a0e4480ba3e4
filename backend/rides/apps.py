"""Rides app configuration."""

from django.apps import AppConfig


class RidesConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'rides'

    def ready(self):
        # Register the sweep task with the celery app in web processes too
        from . import tasks  # noqa: F401

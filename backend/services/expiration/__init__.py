"""
Expiration sweeper.

Periodically retires rides whose time window has passed: rides with riders
become ``completed`` history, empty rides are deleted.
"""

from .sweeper import (
    SweepResult,
    civil_now,
    find_expired_ride_ids,
    retire_ride,
    sweep_expired_rides,
)

__all__ = [
    "SweepResult",
    "civil_now",
    "find_expired_ride_ids",
    "retire_ride",
    "sweep_expired_rides",
]

"""
Ride matching service.

This module handles:
    - Finding joinable rides compatible with a new ride request
    - Ranking candidates (exact destination first, closest start time next)
"""

from .ride_matcher import find_matches

__all__ = [
    "find_matches",
]

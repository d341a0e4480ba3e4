"""Common utility functions."""

from .destinations import (
    DestinationGroups,
    compatible,
    get_destination_groups,
    normalize_destination,
)

__all__ = [
    "DestinationGroups",
    "compatible",
    "get_destination_groups",
    "normalize_destination",
]

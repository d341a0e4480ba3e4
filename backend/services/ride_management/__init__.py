"""
Ride management service - Core ride lifecycle operations.

This module handles:
    - Matching-or-creating ride requests
    - Joining and leaving rides (including ownership transfer)
    - Completing and deleting rides
    - Ride room chat
    - Querying rides, history and statistics
"""

from .ride_lifecycle import (
    RideResult,
    validate_ride_request,
    request_ride,
    create_ride,
    join_ride,
    leave_ride,
    complete_ride,
    delete_ride,
)

from .ride_queries import (
    list_rides,
    get_ride,
    get_user_ride_history,
    get_user_stats,
    get_popular_destinations,
    get_admin_stats,
)

from .chat import (
    is_ride_member,
    list_messages,
    post_message,
    serialize_message,
)

from .exceptions import (
    RideError,
    RideNotFoundError,
    NotInRideError,
    RideConflictError,
    SelfJoinRejectedError,
    AlreadyJoinedError,
    RideFullError,
    RideAlreadyCompletedError,
    RideClosedError,
    RideHasParticipantsError,
    RideForbiddenError,
    RideValidationError,
)

__all__ = [
    # Lifecycle operations
    "RideResult",
    "validate_ride_request",
    "request_ride",
    "create_ride",
    "join_ride",
    "leave_ride",
    "complete_ride",
    "delete_ride",
    # Queries
    "list_rides",
    "get_ride",
    "get_user_ride_history",
    "get_user_stats",
    "get_popular_destinations",
    "get_admin_stats",
    # Chat
    "is_ride_member",
    "list_messages",
    "post_message",
    "serialize_message",
    # Exceptions
    "RideError",
    "RideNotFoundError",
    "NotInRideError",
    "RideConflictError",
    "SelfJoinRejectedError",
    "AlreadyJoinedError",
    "RideFullError",
    "RideAlreadyCompletedError",
    "RideClosedError",
    "RideHasParticipantsError",
    "RideForbiddenError",
    "RideValidationError",
]

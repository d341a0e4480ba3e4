"""Custom exceptions for ride management."""


class RideError(Exception):
    """Base class for every ride lifecycle failure."""
    pass


# ---------------------- Not found ----------------------

class RideNotFoundError(RideError):
    """Raised when a ride does not exist or is not in an eligible status."""
    pass


class NotInRideError(RideNotFoundError):
    """Raised when the user holds no seat in the ride."""
    pass


# ---------------------- Conflict ----------------------

class RideConflictError(RideError):
    """Raised when the ride's current state does not allow the operation."""
    pass


class SelfJoinRejectedError(RideConflictError):
    """Raised when a creator tries to join their own ride."""
    pass


class AlreadyJoinedError(RideConflictError):
    """Raised when the user already holds a seat in the ride."""
    pass


class RideFullError(RideConflictError):
    """Raised when there are not enough free seats for the join."""
    pass


class RideAlreadyCompletedError(RideConflictError):
    """Raised when completing or deleting a ride that is already completed."""
    pass


class RideClosedError(RideConflictError):
    """Raised when a cancelled or completed ride is mutated."""
    pass


class RideHasParticipantsError(RideConflictError):
    """Raised when deleting a ride other riders have joined."""
    pass


# ---------------------- Forbidden ----------------------

class RideForbiddenError(RideError):
    """Raised when the user may not perform the operation on this ride."""
    pass


# ---------------------- Validation ----------------------

class RideValidationError(RideError):
    """Raised for malformed ride requests (empty destination, bad time window)."""
    pass

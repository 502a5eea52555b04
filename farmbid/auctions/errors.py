"""Error taxonomy for the auction engine.

Each error carries the HTTP status the API layer reports it with.
"""


class AuctionError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AuctionError):
    """Bad input shape or value."""
    status_code = 400


class ForbiddenError(AuctionError):
    """Role, ownership or eligibility violation."""
    status_code = 403


class NotFoundError(AuctionError):
    status_code = 404


class ConflictError(AuctionError):
    """Transition not permitted from the auction's current state."""
    status_code = 409


class InfrastructureError(AuctionError):
    status_code = 500


class ConcurrentUpdateError(InfrastructureError):
    """Raised by a store when a CAS-guarded replace lost the race."""

from typing import Optional


class MarketplaceError(Exception):
    """Base class for errors raised by the core operations.

    The HTTP layer turns these into a JSON body of the form
    ``{"error_code": ..., "message": ...}`` with ``status_code``.
    """
    status_code = 500
    error_code = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.__class__.__name__
        super().__init__(self.message)


class Unauthorized(MarketplaceError):
    status_code = 401
    error_code = "UNAUTHORIZED"


class Forbidden(MarketplaceError):
    status_code = 403
    error_code = "FORBIDDEN"


class NotFound(MarketplaceError):
    status_code = 404
    error_code = "NOT_FOUND"


class BadRequest(MarketplaceError):
    status_code = 400
    error_code = "VALIDATION_ERROR"


class Conflict(MarketplaceError):
    status_code = 409
    error_code = "CONFLICT"


class InvalidTransition(MarketplaceError):
    status_code = 409
    error_code = "INVALID_TRANSITION"

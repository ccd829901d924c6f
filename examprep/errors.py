"""
Domain errors raised by services and rendered by the API layer
"""


class ServiceError(Exception):
    """Base class for errors surfaced to API callers"""

    status_code = 500
    error = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ServiceError):
    """Entity does not exist (or is not visible to the caller)"""

    status_code = 404
    error = "not_found"


class ForbiddenError(ServiceError):
    """Entity exists but belongs to someone else"""

    status_code = 403
    error = "forbidden"


class BadRequestError(ServiceError):
    """Well-formed request that violates a business rule"""

    status_code = 400
    error = "bad_request"


class InvalidStateError(BadRequestError):
    """Requested transition is not allowed from the current state"""

    error = "invalid_state"


class InsufficientQuestionsError(BadRequestError):
    """Question pool is smaller than the requested exam size"""

    error = "insufficient_questions"

    def __init__(self, message: str = "not enough questions for requested filters"):
        super().__init__(message)


class InternalError(ServiceError):
    """Unexpected dependency failure; message stays generic"""

    status_code = 500
    error = "internal_error"

"""Custom exceptions for the proposal engine."""


class ProposalDeskError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['error'] = self.message
        rv['success'] = False
        return rv


class ValidationError(ProposalDeskError):
    """Raised when required input is missing or malformed."""
    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)


class BusinessLogicError(ProposalDeskError):
    """Exception raised for business rule violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class InvalidTransitionError(BusinessLogicError):
    """Raised when a status change would move a proposal backwards."""
    def __init__(self, current_status, requested_status):
        message = f"Cannot move proposal from '{current_status}' to '{requested_status}'"
        super().__init__(message, status_code=409)
        self.current_status = current_status
        self.requested_status = requested_status


class NotFoundError(ProposalDeskError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class TransientIOError(ProposalDeskError):
    """Database or network temporarily unavailable; safe to retry later."""
    def __init__(self, message="Service temporarily unavailable", payload=None):
        super().__init__(message, 503, payload)


class UnauthorizedError(ProposalDeskError):
    """Raised when no authenticated actor is present."""
    def __init__(self, message="Not authenticated"):
        super().__init__(message, 401)

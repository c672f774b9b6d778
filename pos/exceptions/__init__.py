"""Custom exceptions for the POS application."""

class PosError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv

class ValidationError(PosError):
    """Raised when a request or backend record fails boundary validation."""
    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)

class BusinessLogicError(PosError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class NotFoundError(PosError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class ConflictError(PosError):
    """Raised when the operation clashes with current state (busy checkout, unresolved outcome)."""
    def __init__(self, message, payload=None):
        super().__init__(message, 409, payload)

class UnauthorizedError(PosError):
    """Raised when a user lacks permission for an action."""
    def __init__(self, message="Unauthorized access", status_code=403):
        super().__init__(message, status_code)

class BackendUnavailableError(PosError):
    """Raised when the backend could not be reached or the result could not be confirmed."""
    def __init__(self, message="Could not reach the backend", payload=None):
        super().__init__(message, 503, payload)

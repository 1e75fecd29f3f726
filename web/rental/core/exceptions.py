from typing import Any, Optional, Dict


class BaseError(Exception):
    """Base exception class for the application"""

    def __init__(
        self,
        message: str = "An error occurred",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(BaseError):
    """Exception raised when an entity is not found"""

    def __init__(self, entity: str, id: Any):
        super().__init__(
            message=f"{entity} with id {id} not found",
            status_code=404,
            details={"entity": entity, "id": id}
        )


class ValidationError(BaseError):
    """Exception raised for validation errors"""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message=message,
            status_code=400,
            details=details
        )


class AuthenticationError(BaseError):
    """Exception raised for authentication errors"""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message=message, status_code=401)


class AuthorizationError(BaseError):
    """Exception raised for authorization errors"""

    def __init__(self, message: str = "Access denied"):
        super().__init__(message=message, status_code=403)


class PreconditionFailedError(BaseError):
    """Raised when a booking is not in a status that allows the operation"""

    def __init__(self, message: str, status: Optional[str] = None):
        details = {"status": status} if status else {}
        super().__init__(message=message, status_code=409, details=details)


class CapacityExceededError(BaseError):
    """Raised when a reservation does not fit into the item's quantity pool"""

    def __init__(self, requested: int, used: int, total: int):
        super().__init__(
            message="Not enough units available for that time.",
            status_code=409,
            details={"requested": requested, "used": used, "total": total}
        )


class AuditError(BaseError):
    """Raised when a transition was written but its audit entry was not"""

    def __init__(self, booking_id: Any, action: str):
        super().__init__(
            message=f"Failed to record audit entry '{action}' for booking {booking_id}",
            status_code=500,
            details={"booking_id": booking_id, "action": action}
        )


class ConfigurationError(BaseError):
    """Exception raised when the server is missing required configuration"""

    def __init__(self, message: str = "Server misconfigured"):
        super().__init__(message=message, status_code=500)


class TransientJobFailure(BaseError):
    """Wraps any exception raised inside a single reconciliation job"""

    def __init__(self, job: str, cause: BaseException):
        self.job = job
        self.cause = cause
        super().__init__(
            message=str(cause) or cause.__class__.__name__,
            status_code=500,
            details={"job": job}
        )

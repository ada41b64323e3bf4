"""
Typed errors raised by the controllers.

Expected outcomes (missing code, expired resource, lost optimistic race,
bad password) are AppError subclasses carrying the HTTP status the API
layer answers with. Anything else that escapes a controller is treated as
a fault and reported as a generic 500.
"""
from typing import Any, Dict, Optional


class AppError(Exception):
    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message}


class ValidationError(AppError):
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class NotFoundError(AppError):
    status_code = 404

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message)


class ExpiredError(AppError):
    status_code = 410


class ConflictError(AppError):
    status_code = 409


class ResourceExhaustedError(ConflictError):
    """No free code was found within the retry limit."""

    def __init__(self, message: str = "Failed to generate unique code"):
        super().__init__(message)


class UnauthorizedError(AppError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized", **extra: Any):
        super().__init__(message)
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(self.extra)
        return data


class ForbiddenError(AppError):
    status_code = 403


class RateLimitedError(AppError):
    status_code = 429

    def __init__(self, retry_after: int, message: str = "Too many requests, please try again later"):
        super().__init__(message)
        self.retry_after = retry_after


class StorageUnavailableError(AppError):
    status_code = 503

    def __init__(self, message: str = "Storage not configured"):
        super().__init__(message)

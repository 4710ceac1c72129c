# app/core/exceptions.py
"""
Error taxonomy shared by the OTP state machines.

Services raise these; the application registers a single handler that renders
them as ``{"success": false, "message": ..., "data": {"error": CODE, ...}}``.
"""
from typing import Any, Dict, Optional


class ServiceError(Exception):
    status_code = 500
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.data = data or {}

    def to_data(self) -> Dict[str, Any]:
        return {"error": self.error_code, **self.data}


class ValidationError(ServiceError):
    status_code = 400
    error_code = "VALIDATION_ERROR"


class NotFoundError(ServiceError):
    status_code = 404
    error_code = "NOT_FOUND"


class AuthorizationError(ServiceError):
    status_code = 403
    error_code = "ACCESS_DENIED"

    def __init__(self, message: str = "Access denied", data: Optional[Dict[str, Any]] = None):
        super().__init__(message, data)


class StatusConflictError(ServiceError):
    status_code = 409
    error_code = "STATUS_CONFLICT"


class RateLimitError(ServiceError):
    status_code = 429
    error_code = "RATE_LIMITED"

    def __init__(self, retry_after: int):
        super().__init__(
            f"Please wait {retry_after} seconds before requesting a new OTP",
            {"retry_after": retry_after},
        )
        self.retry_after = retry_after


class OTPExpiredError(ServiceError):
    status_code = 400
    error_code = "OTP_EXPIRED"


class OTPMismatchError(ServiceError):
    status_code = 400
    error_code = "INVALID_OTP"

    def __init__(self, attempts_remaining: Optional[int] = None):
        data = {} if attempts_remaining is None else {"attempts_remaining": attempts_remaining}
        super().__init__("Invalid OTP", data)
        self.attempts_remaining = attempts_remaining


class OTPAttemptsExceededError(ServiceError):
    status_code = 400
    error_code = "OTP_ATTEMPTS_EXCEEDED"

    def __init__(self):
        super().__init__(
            "Maximum OTP attempts exceeded. Please request a new OTP.",
            {"attempts_remaining": 0},
        )
        self.attempts_remaining = 0


class DeliveryFailureError(ServiceError):
    status_code = 502
    error_code = "DELIVERY_FAILED"

    def __init__(self, message: str, details: Optional[str] = None, data: Optional[Dict[str, Any]] = None):
        payload = dict(data or {})
        if details:
            payload["details"] = details
        super().__init__(message, payload)
        self.details = details


class ExternalVerificationError(ServiceError):
    status_code = 400
    error_code = "OTP_VERIFICATION_FAILED"

    def __init__(self, details: str):
        super().__init__("OTP verification failed", {"details": details})
        self.details = details

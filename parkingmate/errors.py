# parkingmate/errors.py
"""
Domain error codes for the reconciliation engine and guest confirmation flow.
Every business outcome the caller can act on is a DomainError subclass;
the API layer renders them as {"success": false, "error": {...}}.
"""

from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """Error codes exposed to API callers."""

    RECAPTCHA_FAILED = "RECAPTCHA_FAILED"
    INVALID_LICENSE_PLATE = "INVALID_LICENSE_PLATE"
    REGISTERED_VEHICLE = "REGISTERED_VEHICLE"
    ALREADY_CONFIRMED = "ALREADY_CONFIRMED"
    NO_ENTRY_DETECTED = "NO_ENTRY_DETECTED"
    CONFIRMATION_WINDOW_EXPIRED = "CONFIRMATION_WINDOW_EXPIRED"
    GUEST_NOT_FOUND = "GUEST_NOT_FOUND"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    VERIFICATION_UNAVAILABLE = "VERIFICATION_UNAVAILABLE"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"


class DomainError(Exception):
    """Base domain error with code, user-safe message and HTTP status."""

    status_code = 400

    def __init__(self, code: ErrorCode, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict:
        error = {"code": self.code.value, "message": self.message}
        if self.details:
            error["details"] = self.details
        return error


# ── Input errors ─────────────────────────────────────────────────────────────

class InvalidLicensePlateError(DomainError):
    def __init__(self, plate: str, reason: str = "Invalid license plate format"):
        super().__init__(ErrorCode.INVALID_LICENSE_PLATE, reason)
        self.plate = plate


class RecaptchaFailedError(DomainError):
    def __init__(self, reason: Optional[str] = None):
        super().__init__(ErrorCode.RECAPTCHA_FAILED, reason or "reCAPTCHA validation failed")


# ── Conflict errors ──────────────────────────────────────────────────────────

class RegisteredVehicleError(DomainError):
    status_code = 409

    def __init__(self):
        super().__init__(
            ErrorCode.REGISTERED_VEHICLE,
            "This vehicle is already registered. Please use the customer login.",
        )


class AlreadyConfirmedError(DomainError):
    status_code = 409

    def __init__(self, valid_until=None):
        details = {"validUntil": valid_until.isoformat()} if valid_until else None
        super().__init__(
            ErrorCode.ALREADY_CONFIRMED,
            "This vehicle has already been confirmed as a guest",
            details,
        )
        self.valid_until = valid_until


class NoEntryDetectedError(DomainError):
    status_code = 404

    def __init__(self):
        super().__init__(
            ErrorCode.NO_ENTRY_DETECTED,
            "No recent entry detected for this license plate. Please contact parking staff.",
        )


class ConfirmationWindowExpiredError(DomainError):
    def __init__(self, window_minutes: Optional[int] = None):
        message = "The confirmation window has expired."
        if window_minutes is not None:
            message = f"No recent entry detected. The confirmation window is {window_minutes} minutes."
        super().__init__(ErrorCode.CONFIRMATION_WINDOW_EXPIRED, message)


class GuestNotFoundError(DomainError):
    status_code = 404

    def __init__(self, guest_id):
        super().__init__(ErrorCode.GUEST_NOT_FOUND, "Guest not found")
        self.guest_id = guest_id


class RateLimitExceededError(DomainError):
    status_code = 429

    def __init__(self, retry_after: int):
        super().__init__(
            ErrorCode.RATE_LIMIT_EXCEEDED,
            "Too many requests. Please try again later.",
            {"retryAfterSeconds": retry_after},
        )


# ── Collaborator errors ──────────────────────────────────────────────────────

class StorageUnavailableError(DomainError):
    status_code = 503

    def __init__(self, operation: str):
        super().__init__(ErrorCode.STORAGE_UNAVAILABLE, "Storage is temporarily unavailable")
        self.operation = operation


class VerificationUnavailableError(DomainError):
    status_code = 503

    def __init__(self, reason: str = "Bot verification is not configured"):
        super().__init__(ErrorCode.VERIFICATION_UNAVAILABLE, reason)

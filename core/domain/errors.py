"""
Error taxonomy for the health tracking core.

Services raise these internally; public operations translate them into
structured results at their boundary so callers never see a raw fault.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Machine-readable failure categories carried on operation results."""

    VALIDATION = "validation"
    AUTH = "auth"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    INVALID_CREDENTIALS = "invalid_credentials"
    TRANSPORT = "transport"
    DATA_INTEGRITY = "data_integrity"
    INTERNAL = "internal"


class HealthTrackerError(Exception):
    """Base class for expected, user-facing failures."""

    code: ErrorCode = ErrorCode.INTERNAL

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(HealthTrackerError):
    """Bad input; no I/O was attempted."""

    code = ErrorCode.VALIDATION


class AuthError(HealthTrackerError):
    """The operation needs an active session."""

    code = ErrorCode.AUTH

    def __init__(self, message: str = "User not authenticated") -> None:
        super().__init__(message)


class ConflictError(HealthTrackerError):
    code = ErrorCode.CONFLICT


class NotFoundError(HealthTrackerError):
    code = ErrorCode.NOT_FOUND


class InvalidCredentialsError(HealthTrackerError):
    """Unknown account or wrong password, deliberately indistinguishable."""

    code = ErrorCode.INVALID_CREDENTIALS

    def __init__(self, message: str = "Invalid email or password") -> None:
        super().__init__(message)


class TransportError(HealthTrackerError):
    """A remote collaborator was unavailable or answered with a failure."""

    code = ErrorCode.TRANSPORT


class DataIntegrityError(HealthTrackerError):
    """Decryption, parsing or schema validation failed."""

    code = ErrorCode.DATA_INTEGRITY

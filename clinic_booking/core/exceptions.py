"""
Error taxonomy for the booking core.

Everything except NotificationFailure is an HTTPException so routes can let
service errors propagate unchanged. Policy violations are never retried;
TransientStorageError is safe to retry by the caller.
"""
from typing import Optional

from fastapi import HTTPException, status


class InvalidInput(HTTPException):
    default_detail = "Invalid request data"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail or self.default_detail,
        )


class PolicyViolation(HTTPException):
    default_detail = "Request violates booking policy"
    status_code_for_kind = status.HTTP_409_CONFLICT

    def __init__(self, detail: Optional[str] = None):
        super().__init__(
            status_code=self.status_code_for_kind,
            detail=detail or self.default_detail,
        )


class OutOfWindow(PolicyViolation):
    default_detail = "Appointment date is outside the booking window"
    status_code_for_kind = status.HTTP_400_BAD_REQUEST


class DuplicateBooking(PolicyViolation):
    default_detail = "You already have an appointment scheduled at this time"


class DoctorUnavailable(PolicyViolation):
    default_detail = "Doctor Not Available"


class SlotUnavailable(PolicyViolation):
    default_detail = "Slot Not Available"


class InvalidTransition(PolicyViolation):
    default_detail = "Invalid appointment status transition"


class PreconditionFailed(PolicyViolation):
    default_detail = "Appointment is not in the required state"


class NotFoundError(HTTPException):
    default_detail = "Resource not found"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail or self.default_detail,
        )


class AppointmentNotFound(NotFoundError):
    default_detail = "Appointment not found"


class DoctorNotFound(NotFoundError):
    default_detail = "Doctor not found"


class UserNotFound(NotFoundError):
    default_detail = "User not found"


class TransientStorageError(HTTPException):
    default_detail = "Storage temporarily unavailable, please retry"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail or self.default_detail,
        )


class SlotReleaseFailed(TransientStorageError):
    """Appointment was cancelled but its slot is still held in the ledger."""

    default_detail = "Appointment cancelled but the slot could not be released"


class PaymentGatewayError(HTTPException):
    default_detail = "Payment gateway request failed"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=detail or self.default_detail,
        )


class NotificationFailure(Exception):
    """Raised by notification transports. Never escapes the sink."""

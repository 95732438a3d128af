"""API request/response models."""

from .bookings import BookingCancelRequest, BookingStatusUpdate
from .common import ValidationErrorDetail, ValidationErrorResponse, format_validation_errors
from .payments import (
    PaymentSessionRequest,
    PaymentSessionResponse,
    RefundRequest,
    WebhookResponse,
)

__all__ = [
    "BookingCancelRequest",
    "BookingStatusUpdate",
    "PaymentSessionRequest",
    "PaymentSessionResponse",
    "RefundRequest",
    "ValidationErrorDetail",
    "ValidationErrorResponse",
    "WebhookResponse",
    "format_validation_errors",
]

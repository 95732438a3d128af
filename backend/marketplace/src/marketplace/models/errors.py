"""Standard error codes and exception taxonomy for the booking core.

Every failure the core reports belongs to exactly one of five kinds:
validation, authorization, not-found, conflict and gateway. Each kind is an
exception class so callers can catch by kind, and each carries a stable
ErrorCode so API clients can tell failures apart without parsing messages.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Stable error codes returned to API clients."""

    # Validation (ERR_VAL_xxx)
    INVALID_REQUEST = "ERR_VAL_000"
    LISTING_UNAVAILABLE = "ERR_VAL_001"
    GUIDE_UNAVAILABLE = "ERR_VAL_002"
    BOOKING_DATE_IN_PAST = "ERR_VAL_003"
    GROUP_SIZE_EXCEEDED = "ERR_VAL_004"
    CANCELLATION_REASON_REQUIRED = "ERR_VAL_005"
    REFUND_EXCEEDS_PAYMENT = "ERR_VAL_006"
    INVALID_STATUS_UPDATE = "ERR_VAL_007"

    # Authorization (ERR_AUTH_xxx)
    AUTH_REQUIRED = "ERR_AUTH_001"
    UNAUTHORIZED = "ERR_AUTH_002"

    # Not found (ERR_NF_xxx)
    BOOKING_NOT_FOUND = "ERR_NF_001"
    PAYMENT_NOT_FOUND = "ERR_NF_002"
    LISTING_NOT_FOUND = "ERR_NF_003"

    # Conflict (ERR_CONFLICT_xxx)
    INVALID_TRANSITION = "ERR_CONFLICT_001"
    TERMINAL_STATE = "ERR_CONFLICT_002"
    ALREADY_PAID = "ERR_CONFLICT_003"
    PAYMENT_NOT_REFUNDABLE = "ERR_CONFLICT_004"
    BOOKING_NOT_PAYABLE = "ERR_CONFLICT_005"
    PAYMENT_INTENT_MISSING = "ERR_CONFLICT_006"

    # Gateway (ERR_STRIPE_xxx)
    INVALID_WEBHOOK = "ERR_STRIPE_001"
    STRIPE_API_ERROR = "ERR_STRIPE_002"


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.INVALID_REQUEST: "The request is invalid",
    ErrorCode.LISTING_UNAVAILABLE: "The listing is not available for booking",
    ErrorCode.GUIDE_UNAVAILABLE: "The guide for this listing is not available",
    ErrorCode.BOOKING_DATE_IN_PAST: "Booking date must be in the future",
    ErrorCode.GROUP_SIZE_EXCEEDED: "Number of people exceeds the listing's maximum group size",
    ErrorCode.CANCELLATION_REASON_REQUIRED: "A cancellation reason is required",
    ErrorCode.REFUND_EXCEEDS_PAYMENT: "Refund amount cannot exceed the payment amount",
    ErrorCode.INVALID_STATUS_UPDATE: "Pending bookings can only be accepted or declined",
    ErrorCode.AUTH_REQUIRED: "Authentication required to perform this action",
    ErrorCode.UNAUTHORIZED: "You are not authorized to perform this action",
    ErrorCode.BOOKING_NOT_FOUND: "Booking not found",
    ErrorCode.PAYMENT_NOT_FOUND: "Payment not found",
    ErrorCode.LISTING_NOT_FOUND: "Listing not found",
    ErrorCode.INVALID_TRANSITION: "The booking cannot move to the requested status",
    ErrorCode.TERMINAL_STATE: "The booking is in a terminal state",
    ErrorCode.ALREADY_PAID: "This booking has already been paid",
    ErrorCode.PAYMENT_NOT_REFUNDABLE: "Only completed payments can be refunded",
    ErrorCode.BOOKING_NOT_PAYABLE: "Only accepted bookings can be paid for",
    ErrorCode.INVALID_WEBHOOK: "Invalid webhook request",
    ErrorCode.STRIPE_API_ERROR: "Payment provider error occurred",
    ErrorCode.PAYMENT_INTENT_MISSING: "Payment has no payment intent to refund",
}

ERROR_RECOVERY: dict[ErrorCode, str] = {
    ErrorCode.INVALID_REQUEST: "Check the request parameters and try again",
    ErrorCode.LISTING_UNAVAILABLE: "Choose another listing",
    ErrorCode.GUIDE_UNAVAILABLE: "Choose a listing from another guide",
    ErrorCode.BOOKING_DATE_IN_PAST: "Pick a date in the future",
    ErrorCode.GROUP_SIZE_EXCEEDED: "Reduce the number of people",
    ErrorCode.CANCELLATION_REASON_REQUIRED: "Provide a cancellation reason",
    ErrorCode.REFUND_EXCEEDS_PAYMENT: "Request an amount up to the original payment",
    ErrorCode.INVALID_STATUS_UPDATE: "Use 'accepted' or 'declined'",
    ErrorCode.AUTH_REQUIRED: "Sign in and try again",
    ErrorCode.UNAUTHORIZED: "Only participants of the booking can do this",
    ErrorCode.BOOKING_NOT_FOUND: "Verify the booking ID",
    ErrorCode.PAYMENT_NOT_FOUND: "Verify the payment ID",
    ErrorCode.LISTING_NOT_FOUND: "Verify the listing ID",
    ErrorCode.INVALID_TRANSITION: "Reload the booking to see its current status",
    ErrorCode.TERMINAL_STATE: "No further changes are possible for this booking",
    ErrorCode.ALREADY_PAID: "No action needed",
    ErrorCode.PAYMENT_NOT_REFUNDABLE: "Wait until the payment has completed",
    ErrorCode.BOOKING_NOT_PAYABLE: "Wait for the guide to accept the booking",
    ErrorCode.INVALID_WEBHOOK: "Verify webhook secret configuration",
    ErrorCode.STRIPE_API_ERROR: "Try again or contact support",
    ErrorCode.PAYMENT_INTENT_MISSING: "Wait for the payment provider to confirm the payment",
}


class ErrorResponse(BaseModel):
    """Error body returned by the API for every MarketplaceError."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    error_code: ErrorCode
    message: str
    recovery: str
    details: Optional[dict[str, Any]] = None

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        details: Optional[dict[str, Any]] = None,
        message: Optional[str] = None,
    ) -> "ErrorResponse":
        """Create an ErrorResponse from an error code."""
        return cls(
            error_code=code,
            message=message or ERROR_MESSAGES[code],
            recovery=ERROR_RECOVERY[code],
            details=details,
        )


class MarketplaceError(Exception):
    """Base exception raised by booking and payment operations.

    Can be caught and converted to an ErrorResponse for API responses.
    """

    default_code: ErrorCode = ErrorCode.INVALID_REQUEST

    def __init__(
        self,
        code: Optional[ErrorCode] = None,
        details: Optional[dict[str, Any]] = None,
        message: Optional[str] = None,
    ):
        self.code = code or self.default_code
        self.message = message or ERROR_MESSAGES[self.code]
        self.recovery = ERROR_RECOVERY[self.code]
        self.details = details
        super().__init__(self.message)

    def to_error_response(self) -> ErrorResponse:
        """Convert this exception to an ErrorResponse."""
        return ErrorResponse.from_code(self.code, self.details, self.message)


class ValidationError(MarketplaceError):
    """Bad input or a failed creation guard. Not retried."""

    default_code = ErrorCode.INVALID_REQUEST


class AuthorizationError(MarketplaceError):
    """The actor lacks permission for the operation. Not retried."""

    default_code = ErrorCode.UNAUTHORIZED


class NotFoundError(MarketplaceError):
    """A referenced booking, payment or listing does not exist."""

    default_code = ErrorCode.BOOKING_NOT_FOUND


class ConflictError(MarketplaceError):
    """Illegal state transition, duplicate payment or double refund.

    Carries the current and requested state for diagnosis.
    """

    default_code = ErrorCode.INVALID_TRANSITION

    def __init__(
        self,
        code: Optional[ErrorCode] = None,
        *,
        current_state: Optional[str] = None,
        requested_state: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        message: Optional[str] = None,
    ):
        self.current_state = current_state
        self.requested_state = requested_state
        merged = dict(details or {})
        if current_state is not None:
            merged["current_state"] = current_state
        if requested_state is not None:
            merged["requested_state"] = requested_state
        if message is None and current_state is not None and requested_state is not None:
            base = ERROR_MESSAGES[code or self.default_code]
            message = f"{base}: {current_state} -> {requested_state}"
        super().__init__(code, merged or None, message)


class GatewayError(MarketplaceError):
    """Signature failure, network failure or provider rejection.

    Surfaced synchronously to the caller; never retried internally.
    """

    default_code = ErrorCode.STRIPE_API_ERROR

    def __init__(
        self,
        code: Optional[ErrorCode] = None,
        details: Optional[dict[str, Any]] = None,
        message: Optional[str] = None,
        stripe_error_code: Optional[str] = None,
    ):
        self.stripe_error_code = stripe_error_code
        self.retryable = is_stripe_error_retryable(stripe_error_code)
        super().__init__(code, details, message)

    def to_error_response(self) -> ErrorResponse:
        details = dict(self.details or {})
        details["retryable"] = self.retryable
        if self.stripe_error_code:
            details["stripe_error_code"] = self.stripe_error_code
        return ErrorResponse.from_code(
            self.code,
            details,
            get_user_friendly_stripe_message(self.stripe_error_code, self.message),
        )


# Stripe error code to user-friendly message mapping
STRIPE_ERROR_MESSAGES: dict[str, str] = {
    # Card errors - user can fix
    "card_declined": "Your card was declined. Please try a different card.",
    "expired_card": "Your card has expired. Please use a different card.",
    "insufficient_funds": "Your card has insufficient funds. Please try a different card.",
    "incorrect_cvc": "The security code (CVC) is incorrect. Please check and try again.",
    "incorrect_number": "The card number is incorrect. Please check and try again.",
    "card_velocity_exceeded": "Too many card transactions. Please wait and try again later.",
    # Refund errors
    "charge_already_refunded": "This payment has already been refunded.",
    "amount_too_large": "The refund amount is larger than the remaining charge.",
    # Processing errors - may be retryable
    "processing_error": "A processing error occurred. Please try again.",
    "rate_limit": "Too many requests. Please wait a moment and try again.",
    # Generic fallback
    "generic_decline": "Your card was declined. Please try a different card.",
}

# Stripe error codes that indicate the caller may retry
STRIPE_RETRYABLE_ERRORS: set[str] = {
    "processing_error",
    "rate_limit",
    "lock_timeout",
    "api_connection_error",
}


def get_user_friendly_stripe_message(
    stripe_error_code: Optional[str],
    default_message: str = "Payment could not be processed. Please try again.",
) -> str:
    """Get a user-friendly message for a Stripe error code.

    Args:
        stripe_error_code: The Stripe error code (e.g., 'card_declined').
        default_message: Message to use if error code is unknown.

    Returns:
        User-friendly error message.
    """
    if stripe_error_code and stripe_error_code in STRIPE_ERROR_MESSAGES:
        return STRIPE_ERROR_MESSAGES[stripe_error_code]
    return default_message


def is_stripe_error_retryable(stripe_error_code: Optional[str]) -> bool:
    """Check if a Stripe error is likely transient and retryable."""
    return stripe_error_code in STRIPE_RETRYABLE_ERRORS if stripe_error_code else False

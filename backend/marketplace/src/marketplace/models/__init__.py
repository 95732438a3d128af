"""Pydantic models for the marketplace booking core."""

from .booking import Booking, BookingCreate, BookingFilters, BookingPage, PageMeta
from .enums import (
    BookingAction,
    BookingStatus,
    GatewayEventKind,
    PaymentStatus,
    ProcessingResult,
    UserRole,
)
from .errors import (
    ERROR_MESSAGES,
    ERROR_RECOVERY,
    STRIPE_ERROR_MESSAGES,
    STRIPE_RETRYABLE_ERRORS,
    AuthorizationError,
    ConflictError,
    ErrorCode,
    ErrorResponse,
    GatewayError,
    MarketplaceError,
    NotFoundError,
    ValidationError,
    get_user_friendly_stripe_message,
    is_stripe_error_retryable,
)
from .events import BookingCompleted, DomainEvent, PaymentCompleted
from .gateway_event import (
    GatewayEvent,
    GatewayEventData,
    ReconcileOutcome,
    WebhookLedgerEntry,
)
from .payment import (
    Payment,
    PaymentFilters,
    PaymentPage,
    PaymentSession,
    to_minor_units,
)
from .profile import Actor, GuideProfile, Listing, TouristProfile

__all__ = [
    # Enums
    "BookingAction",
    "BookingStatus",
    "GatewayEventKind",
    "PaymentStatus",
    "ProcessingResult",
    "UserRole",
    # Booking
    "Booking",
    "BookingCreate",
    "BookingFilters",
    "BookingPage",
    "PageMeta",
    # Payment
    "Payment",
    "PaymentFilters",
    "PaymentPage",
    "PaymentSession",
    "to_minor_units",
    # Profiles
    "Actor",
    "GuideProfile",
    "Listing",
    "TouristProfile",
    # Gateway events
    "GatewayEvent",
    "GatewayEventData",
    "ReconcileOutcome",
    "WebhookLedgerEntry",
    # Published facts
    "BookingCompleted",
    "DomainEvent",
    "PaymentCompleted",
    # Errors
    "AuthorizationError",
    "ConflictError",
    "ErrorCode",
    "ErrorResponse",
    "ERROR_MESSAGES",
    "ERROR_RECOVERY",
    "GatewayError",
    "MarketplaceError",
    "NotFoundError",
    "STRIPE_ERROR_MESSAGES",
    "STRIPE_RETRYABLE_ERRORS",
    "ValidationError",
    "get_user_friendly_stripe_message",
    "is_stripe_error_retryable",
]

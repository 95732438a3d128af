"""Enumeration types for marketplace data models."""

from enum import Enum


class BookingStatus(str, Enum):
    """Lifecycle status of a booking."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingAction(str, Enum):
    """Actor-driven events that move a booking between statuses."""

    ACCEPT = "accept"
    DECLINE = "decline"
    COMPLETE = "complete"
    CANCEL = "cancel"


class PaymentStatus(str, Enum):
    """Status of a payment, mirrored on the booking as payment_status."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class UserRole(str, Enum):
    """Roles an authenticated actor can hold."""

    TOURIST = "tourist"
    GUIDE = "guide"
    ADMIN = "admin"


class GatewayEventKind(str, Enum):
    """Stripe webhook event types consumed by the reconciler."""

    SESSION_COMPLETED = "checkout.session.completed"
    INTENT_SUCCEEDED = "payment_intent.succeeded"
    INTENT_FAILED = "payment_intent.payment_failed"
    UNKNOWN = "unknown"

    @classmethod
    def from_type(cls, event_type: str | None) -> "GatewayEventKind":
        """Map a raw Stripe event type to a kind, UNKNOWN if unhandled."""
        for kind in cls:
            if kind.value == event_type:
                return kind
        return cls.UNKNOWN


class ProcessingResult(str, Enum):
    """Outcome of applying one webhook event."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"
    DROPPED = "dropped"
    IGNORED = "ignored"
    ERROR = "error"

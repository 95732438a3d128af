"""Payment model for booking transactions."""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, Field

from .booking import PageMeta
from .enums import PaymentStatus


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount to the gateway's minor units (cents)."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class Payment(BaseModel):
    """The single payment record of a booking.

    Created by the payment session manager; mutated only by the webhook
    reconciler and the refund processor. Amounts are in major units.
    """

    payment_id: str = Field(..., description="Unique payment ID")
    booking_id: str = Field(..., description="Reference to Booking (one payment per booking)")
    amount: Decimal = Field(..., ge=0, description="Amount in major currency units")
    currency: str = Field(default="usd", description="ISO currency code")
    status: PaymentStatus = Field(..., description="Payment status")
    stripe_checkout_session_id: str = Field(
        ...,
        description="Stripe Checkout Session ID (cs_xxx)",
        examples=["cs_test_abc123def456"],
    )
    checkout_url: str | None = Field(
        default=None,
        description="Stripe Checkout URL returned on session creation",
    )
    stripe_payment_intent_id: str | None = Field(
        default=None,
        description="Stripe PaymentIntent ID (pi_xxx), set by the first session-completed event",
        examples=["pi_3ABC123DEF456"],
    )
    stripe_refund_id: str | None = Field(
        default=None,
        description="Stripe Refund ID (re_xxx) if refunded",
    )
    refund_amount: Decimal | None = Field(
        default=None,
        ge=0,
        description="Refunded amount in major currency units",
    )
    refund_reason: str | None = Field(default=None)
    paid_at: datetime | None = Field(default=None)
    refunded_at: datetime | None = Field(default=None)
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")

    @property
    def amount_minor(self) -> int:
        return to_minor_units(self.amount)


class PaymentSession(BaseModel):
    """Result of a payment session request.

    For a repeated request on a booking whose payment is still unresolved,
    this carries the existing payment and its original checkout URL.
    """

    payment: Payment
    checkout_url: str | None = Field(
        default=None,
        description="Stripe Checkout URL for payment redirect",
        examples=["https://checkout.stripe.com/c/pay/cs_test_abc123"],
    )
    created: bool = Field(
        ...,
        description="False when an existing session was returned",
    )


class PaymentFilters(BaseModel):
    """Filters and pagination for payment listings."""

    status: PaymentStatus | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)


class PaymentPage(BaseModel):
    """One page of payments."""

    data: list[Payment]
    meta: PageMeta

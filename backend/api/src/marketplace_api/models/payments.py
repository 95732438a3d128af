"""API models for payment endpoints.

The amount to pay always comes from the booking, never from the request.
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from marketplace.models import Payment, ProcessingResult


class PaymentSessionRequest(BaseModel):
    """Request to start paying for an accepted booking."""

    model_config = ConfigDict(
        strict=True,
        json_schema_extra={"examples": [{"booking_id": "BKG-7F3A9C21D0E4"}]},
    )

    booking_id: str = Field(..., min_length=1, description="Booking to pay for")
    success_url: str | None = Field(
        default=None,
        description="Redirect after payment (defaults to the frontend success page)",
    )
    cancel_url: str | None = Field(
        default=None,
        description="Redirect when checkout is abandoned",
    )


class PaymentSessionResponse(BaseModel):
    """Checkout reference for a booking's payment."""

    payment: Payment
    checkout_url: str | None = Field(
        default=None,
        examples=["https://checkout.stripe.com/c/pay/cs_test_abc123"],
    )
    created: bool = Field(..., description="False when an existing session was returned")


class RefundRequest(BaseModel):
    """Refund a completed payment, fully or partially."""

    model_config = ConfigDict(
        json_schema_extra={"examples": [{}, {"amount": "50.00", "reason": "Tour shortened"}]}
    )

    amount: Decimal | None = Field(
        default=None,
        gt=0,
        decimal_places=2,
        description="Amount in major units; omit for a full refund",
    )
    reason: str | None = Field(default=None, max_length=500)


class WebhookResponse(BaseModel):
    """Acknowledgement returned to Stripe for every verified delivery."""

    received: bool = True
    event_id: str
    event_type: str
    processing_result: ProcessingResult
    message: str | None = None

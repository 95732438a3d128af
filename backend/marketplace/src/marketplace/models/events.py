"""Facts the booking core publishes to outside subscribers."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class DomainEvent(BaseModel):
    """Base class for published facts."""

    occurred_at: datetime = Field(..., description="When the fact was committed")

    @property
    def event_type(self) -> str:
        return type(self).__name__


class BookingCompleted(DomainEvent):
    """A booking reached COMPLETED and its stats were applied."""

    booking_id: str
    tourist_id: str
    guide_id: str
    listing_id: str
    total_amount: Decimal


class PaymentCompleted(DomainEvent):
    """A payment was confirmed by the gateway."""

    payment_id: str
    booking_id: str
    amount: Decimal
    currency: str

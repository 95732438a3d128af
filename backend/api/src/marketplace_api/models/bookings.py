"""API models for booking endpoints."""

from pydantic import BaseModel, ConfigDict, Field

from marketplace.models import BookingStatus


class BookingStatusUpdate(BaseModel):
    """Guide response to a pending booking."""

    model_config = ConfigDict(
        json_schema_extra={"examples": [{"status": "accepted"}, {"status": "declined"}]}
    )

    status: BookingStatus = Field(
        ...,
        description="New status: 'accepted' or 'declined'",
    )


class BookingCancelRequest(BaseModel):
    """Body of a cancellation request."""

    model_config = ConfigDict(strict=True)

    cancellation_reason: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="Why the booking is cancelled",
        examples=["Change of travel plans"],
    )

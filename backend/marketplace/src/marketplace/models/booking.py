"""Booking model for tour reservations."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from .enums import BookingStatus, PaymentStatus, UserRole


class Booking(BaseModel):
    """A tourist's reservation of a guide's listing.

    total_amount is fixed at creation from price_per_person x number_of_people
    and is never recalculated, even if the listing price changes later.
    """

    booking_id: str = Field(..., description="Unique booking ID")
    tourist_id: str = Field(..., description="Tourist profile that made the booking")
    guide_id: str = Field(..., description="Guide profile that owns the listing")
    listing_id: str = Field(..., description="Booked listing")
    booking_date: datetime = Field(..., description="Date and time of the tour")
    number_of_people: int = Field(..., ge=1, description="Group size")
    total_amount: Decimal = Field(..., ge=0, description="Total price in major currency units")
    status: BookingStatus = Field(default=BookingStatus.PENDING)
    payment_status: PaymentStatus = Field(default=PaymentStatus.PENDING)
    special_requests: str | None = Field(default=None)
    cancellation_reason: str | None = Field(default=None)
    cancelled_by: UserRole | None = Field(
        default=None,
        description="Role of the party that cancelled the booking",
    )
    payment_id: str | None = Field(
        default=None,
        description="The booking's single Payment, once a session exists",
    )
    is_deleted: bool = Field(default=False, description="Soft-delete flag")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


class BookingCreate(BaseModel):
    """Data required to create a booking."""

    listing_id: str = Field(..., min_length=1, examples=["LST-7F3A9C21"])
    booking_date: datetime = Field(..., examples=["2026-07-15T09:00:00Z"])
    number_of_people: int = Field(..., ge=1, examples=[3])
    special_requests: str | None = Field(default=None, max_length=1000)


class BookingFilters(BaseModel):
    """Filters and pagination for booking listings."""

    status: BookingStatus | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)


class PageMeta(BaseModel):
    """Pagination metadata."""

    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PageMeta":
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=(total + limit - 1) // limit,
        )


class BookingPage(BaseModel):
    """One page of bookings."""

    data: list[Booking]
    meta: PageMeta

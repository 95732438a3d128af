"""Booking endpoints.

Provides REST endpoints for:
- Creating bookings (tourist)
- Listing the caller's bookings, or a listing's bookings (guide)
- Accepting, declining, completing and cancelling bookings

All endpoints require an authenticated user (x-user-sub header).
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from starlette.status import HTTP_201_CREATED

from marketplace.models import (
    Actor,
    Booking,
    BookingCreate,
    BookingFilters,
    BookingPage,
    BookingStatus,
    ErrorResponse,
    UserRole,
)
from marketplace.services import BookingService
from marketplace_api.dependencies import get_booking_service
from marketplace_api.models.bookings import BookingCancelRequest, BookingStatusUpdate
from marketplace_api.security import get_current_actor, require_role

router = APIRouter(tags=["bookings"])

ERROR_RESPONSES: dict[int | str, dict] = {
    400: {"description": "Validation failed", "model": ErrorResponse},
    401: {"description": "Authentication required", "model": ErrorResponse},
    403: {"description": "Not allowed for this user", "model": ErrorResponse},
    404: {"description": "Booking or listing not found", "model": ErrorResponse},
    409: {"description": "Booking is not in a state that allows this", "model": ErrorResponse},
}


def booking_filters(
    status: BookingStatus | None = Query(default=None, description="Filter by booking status"),
    start_date: datetime | None = Query(default=None, description="Earliest booking date"),
    end_date: datetime | None = Query(default=None, description="Latest booking date"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
) -> BookingFilters:
    return BookingFilters(
        status=status, start_date=start_date, end_date=end_date, page=page, limit=limit
    )


@router.post(
    "/bookings",
    summary="Create booking",
    description="""
Book a listing for a date and group size.

**Tourists only.** The total is fixed at creation from the listing's price
per person and never changes afterwards.
""",
    response_model=Booking,
    status_code=HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def create_booking(
    body: BookingCreate,
    actor: Actor = Depends(require_role(UserRole.TOURIST)),
    bookings: BookingService = Depends(get_booking_service),
) -> Booking:
    return bookings.create_booking(actor, body)


@router.get(
    "/bookings/my",
    summary="List my bookings",
    description="Tourists get the bookings they made; guides get bookings on their listings.",
    response_model=BookingPage,
    responses=ERROR_RESPONSES,
)
async def list_my_bookings(
    filters: BookingFilters = Depends(booking_filters),
    actor: Actor = Depends(get_current_actor),
    bookings: BookingService = Depends(get_booking_service),
) -> BookingPage:
    return bookings.list_my_bookings(actor, filters)


@router.get(
    "/bookings/listing/{listing_id}",
    summary="List bookings for a listing",
    description="**Guides only**, and only for their own listings.",
    response_model=BookingPage,
    responses=ERROR_RESPONSES,
)
async def list_listing_bookings(
    listing_id: str,
    filters: BookingFilters = Depends(booking_filters),
    actor: Actor = Depends(require_role(UserRole.GUIDE)),
    bookings: BookingService = Depends(get_booking_service),
) -> BookingPage:
    return bookings.list_listing_bookings(actor, listing_id, filters)


@router.get(
    "/bookings/{booking_id}",
    summary="Get booking",
    description="Visible to the booking's tourist and guide.",
    response_model=Booking,
    responses=ERROR_RESPONSES,
)
async def get_booking(
    booking_id: str,
    actor: Actor = Depends(get_current_actor),
    bookings: BookingService = Depends(get_booking_service),
) -> Booking:
    return bookings.get_booking(actor, booking_id)


@router.patch(
    "/bookings/{booking_id}/status",
    summary="Accept or decline booking",
    description="**Guide of the booking only.** Only PENDING bookings can be answered.",
    response_model=Booking,
    responses=ERROR_RESPONSES,
)
async def update_booking_status(
    booking_id: str,
    body: BookingStatusUpdate,
    actor: Actor = Depends(require_role(UserRole.GUIDE)),
    bookings: BookingService = Depends(get_booking_service),
) -> Booking:
    return bookings.update_status(actor, booking_id, body.status)


@router.patch(
    "/bookings/{booking_id}/complete",
    summary="Complete booking",
    description="""
Mark an ACCEPTED booking as COMPLETED.

**Guide of the booking only.** The guide's and tourist's lifetime counters
are updated in the same transaction.
""",
    response_model=Booking,
    responses=ERROR_RESPONSES,
)
async def complete_booking(
    booking_id: str,
    actor: Actor = Depends(require_role(UserRole.GUIDE)),
    bookings: BookingService = Depends(get_booking_service),
) -> Booking:
    return bookings.complete(actor, booking_id)


@router.delete(
    "/bookings/{booking_id}",
    summary="Cancel booking",
    description="""
Cancel a PENDING or ACCEPTED booking.

**Tourist or guide of the booking.** A cancellation reason is required.
""",
    response_model=Booking,
    responses=ERROR_RESPONSES,
)
async def cancel_booking(
    booking_id: str,
    body: BookingCancelRequest,
    actor: Actor = Depends(get_current_actor),
    bookings: BookingService = Depends(get_booking_service),
) -> Booking:
    return bookings.cancel(actor, booking_id, body.cancellation_reason)

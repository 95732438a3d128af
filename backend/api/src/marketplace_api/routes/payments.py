"""Payment endpoints.

Provides REST endpoints for:
- Starting a Stripe Checkout session for an accepted booking (tourist)
- Reading payments
- Refunding completed payments (guide of the booking, or admin)

The amount charged always comes from the booking.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response
from starlette.status import HTTP_200_OK, HTTP_201_CREATED

from marketplace.models import (
    Actor,
    ErrorResponse,
    Payment,
    PaymentFilters,
    PaymentPage,
    PaymentStatus,
    UserRole,
)
from marketplace.services import PaymentService, RefundService
from marketplace_api.dependencies import get_payment_service, get_refund_service
from marketplace_api.models.payments import (
    PaymentSessionRequest,
    PaymentSessionResponse,
    RefundRequest,
)
from marketplace_api.security import get_current_actor, require_role

router = APIRouter(tags=["payments"])

ERROR_RESPONSES: dict[int | str, dict] = {
    400: {"description": "Validation failed", "model": ErrorResponse},
    401: {"description": "Authentication required", "model": ErrorResponse},
    403: {"description": "Not allowed for this user", "model": ErrorResponse},
    404: {"description": "Booking or payment not found", "model": ErrorResponse},
    409: {"description": "Payment state does not allow this", "model": ErrorResponse},
    502: {"description": "Stripe rejected the request", "model": ErrorResponse},
}


def payment_filters(
    status: PaymentStatus | None = Query(default=None, description="Filter by payment status"),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
) -> PaymentFilters:
    return PaymentFilters(
        status=status, start_date=start_date, end_date=end_date, page=page, limit=limit
    )


@router.post(
    "/payments",
    summary="Create checkout session",
    description="""
Start paying for an ACCEPTED booking.

**Tourist of the booking only.**

Returns 201 with a new Stripe Checkout URL, or 200 with the existing
payment when one is already open for the booking. A booking that is
already paid is rejected with 409.
""",
    response_model=PaymentSessionResponse,
    status_code=HTTP_201_CREATED,
    responses={200: {"description": "Existing session returned"}, **ERROR_RESPONSES},
)
async def create_payment_session(
    body: PaymentSessionRequest,
    response: Response,
    actor: Actor = Depends(require_role(UserRole.TOURIST)),
    payments: PaymentService = Depends(get_payment_service),
) -> PaymentSessionResponse:
    session = payments.create_session(
        actor,
        body.booking_id,
        success_url=body.success_url,
        cancel_url=body.cancel_url,
    )
    if not session.created:
        response.status_code = HTTP_200_OK
    return PaymentSessionResponse(
        payment=session.payment,
        checkout_url=session.checkout_url,
        created=session.created,
    )


@router.get(
    "/payments/my",
    summary="List my payments",
    description="Payments of the caller's bookings, newest first.",
    response_model=PaymentPage,
    responses=ERROR_RESPONSES,
)
async def list_my_payments(
    filters: PaymentFilters = Depends(payment_filters),
    actor: Actor = Depends(get_current_actor),
    payments: PaymentService = Depends(get_payment_service),
) -> PaymentPage:
    return payments.list_my_payments(actor, filters)


@router.get(
    "/payments/{payment_id}",
    summary="Get payment",
    description="Visible to the booking's tourist and guide, and to admins.",
    response_model=Payment,
    responses=ERROR_RESPONSES,
)
async def get_payment(
    payment_id: str,
    actor: Actor = Depends(get_current_actor),
    payments: PaymentService = Depends(get_payment_service),
) -> Payment:
    return payments.get_payment(actor, payment_id)


@router.post(
    "/payments/{payment_id}/refund",
    summary="Refund payment",
    description="""
Refund a COMPLETED payment.

**Guide of the booking or admin.** Omit `amount` for a full refund. A
payment is refunded at most once.
""",
    response_model=Payment,
    responses=ERROR_RESPONSES,
)
async def refund_payment(
    payment_id: str,
    body: RefundRequest,
    actor: Actor = Depends(get_current_actor),
    refunds: RefundService = Depends(get_refund_service),
) -> Payment:
    return refunds.refund(actor, payment_id, amount=body.amount, reason=body.reason)

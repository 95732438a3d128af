"""Stripe webhook endpoint.

Does NOT require user authentication: deliveries are authenticated by the
Stripe-Signature header over the raw request body.

Every verified delivery is acknowledged with 200, including events that
were ignored, duplicated or dropped, so Stripe stops redelivering them.
Only a bad signature or an unparseable body is answered with 400.
"""

from fastapi import APIRouter, Depends, Header, Request

from marketplace.models import ErrorResponse
from marketplace.services import WebhookReconciler
from marketplace_api.dependencies import get_webhook_reconciler
from marketplace_api.models.payments import WebhookResponse

router = APIRouter(tags=["webhooks"])


@router.post(
    "/payments/webhook",
    summary="Receive Stripe webhook",
    description="""
Apply a Stripe event to the stored payment and booking.

Handled events:
- `checkout.session.completed`: links the PaymentIntent to the payment
- `payment_intent.succeeded`: marks the payment COMPLETED
- `payment_intent.payment_failed`: marks the payment FAILED

Other event types are acknowledged and ignored.
""",
    response_model=WebhookResponse,
    responses={400: {"description": "Invalid signature or payload", "model": ErrorResponse}},
)
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
) -> WebhookResponse:
    payload = await request.body()
    outcome = reconciler.handle_delivery(payload, stripe_signature)
    return WebhookResponse(
        event_id=outcome.event_id,
        event_type=outcome.event_type,
        processing_result=outcome.result,
        message=outcome.message,
    )

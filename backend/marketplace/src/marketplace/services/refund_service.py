"""Refund processor for completed payments."""

from decimal import Decimal

from marketplace.models import (
    Actor,
    AuthorizationError,
    ConflictError,
    ErrorCode,
    NotFoundError,
    Payment,
    PaymentStatus,
    UserRole,
    ValidationError,
    to_minor_units,
)
from marketplace.utils.logging import get_logger, log_payment_operation

from .booking_store import BookingStore, iso, utc_now
from .stripe_service import StripeService

logger = get_logger(__name__)


class RefundService:
    """Reverses a completed payment, fully or partially.

    All checks run before Stripe is called, so a rejected request never
    reaches the gateway. The booking's status is left as it is; only its
    payment_status moves to REFUNDED.
    """

    def __init__(self, store: BookingStore, gateway: StripeService) -> None:
        self.store = store
        self.gateway = gateway

    def refund(
        self,
        actor: Actor,
        payment_id: str,
        amount: Decimal | None = None,
        reason: str | None = None,
    ) -> Payment:
        """Refund a completed payment.

        Args:
            actor: Guide of the booking or an admin
            payment_id: Payment to refund
            amount: Amount in major units; defaults to the full payment
            reason: Optional reason, forwarded to Stripe

        Returns:
            The REFUNDED payment

        Raises:
            NotFoundError: If the payment does not exist
            AuthorizationError: If the actor may not refund it
            ConflictError: If the payment is not COMPLETED
            ValidationError: If the amount is not positive or exceeds the payment
            GatewayError: If Stripe rejects the refund (not retried)
        """
        payment = self.store.get_payment(payment_id)
        if payment is None:
            raise NotFoundError(ErrorCode.PAYMENT_NOT_FOUND, {"payment_id": payment_id})

        if not actor.is_admin:
            booking = self.store.get_booking(payment.booking_id)
            if (
                booking is None
                or actor.role != UserRole.GUIDE
                or actor.guide_id != booking.guide_id
            ):
                raise AuthorizationError(
                    message="Only the booking's guide or an admin can refund this payment"
                )

        if payment.status != PaymentStatus.COMPLETED:
            raise ConflictError(
                ErrorCode.PAYMENT_NOT_REFUNDABLE,
                current_state=payment.status.value,
                requested_state=PaymentStatus.REFUNDED.value,
            )

        refund_amount = payment.amount if amount is None else amount
        if to_minor_units(refund_amount) <= 0:
            raise ValidationError(message="Refund amount must be at least 0.01")
        if refund_amount > payment.amount:
            raise ValidationError(
                ErrorCode.REFUND_EXCEEDS_PAYMENT,
                {"requested": str(refund_amount), "paid": str(payment.amount)},
            )
        if not payment.stripe_payment_intent_id:
            raise ConflictError(
                ErrorCode.PAYMENT_INTENT_MISSING, details={"payment_id": payment_id}
            )

        refund = self.gateway.create_refund(
            payment_intent_id=payment.stripe_payment_intent_id,
            amount_minor=to_minor_units(refund_amount),
            reason=reason,
            idempotency_key=f"refund_{payment_id}",
        )

        now = utc_now()
        fields = {
            "status": PaymentStatus.REFUNDED.value,
            "refund_amount": refund_amount,
            "refunded_at": iso(now),
            "stripe_refund_id": refund["refund_id"],
            "updated_at": iso(now),
        }
        if reason:
            fields["refund_reason"] = reason

        uow = self.store.unit_of_work()
        self.store.stage_payment_update(
            uow,
            payment_id,
            fields,
            condition="#cs = :completed",
            names={"#cs": "status"},
            values={":completed": PaymentStatus.COMPLETED.value},
        )
        self.store.stage_booking_update(
            uow,
            payment.booking_id,
            {"payment_status": PaymentStatus.REFUNDED.value, "updated_at": iso(now)},
        )
        if not uow.commit():
            current = self.store.get_payment(payment_id)
            state = current.status.value if current else "missing"
            log_payment_operation(
                logger,
                "refund",
                payment_id=payment_id,
                booking_id=payment.booking_id,
                error=f"record update lost to concurrent change ({state})",
                stripe_refund_id=refund["refund_id"],
            )
            raise ConflictError(
                ErrorCode.PAYMENT_NOT_REFUNDABLE,
                current_state=state,
                requested_state=PaymentStatus.REFUNDED.value,
            )

        log_payment_operation(
            logger,
            "refund",
            payment_id=payment_id,
            booking_id=payment.booking_id,
            amount=refund_amount,
            status=PaymentStatus.REFUNDED.value,
            stripe_refund_id=refund["refund_id"],
        )
        return payment.model_copy(
            update={
                "status": PaymentStatus.REFUNDED,
                "refund_amount": refund_amount,
                "refunded_at": now,
                "stripe_refund_id": refund["refund_id"],
                "refund_reason": reason or payment.refund_reason,
                "updated_at": now,
            }
        )

"""Webhook reconciler for Stripe payment events.

Applies gateway notifications to stored Payment and Booking state. Delivery
is at-least-once and unordered, so every handler is a conditional write
computed from (event, current stored state) alone: replaying an event, or
receiving events out of order, converges to the same final state.

Only a bad signature or an unparseable body fails a delivery. Events that
reference unknown bookings or payments are logged and dropped; they never
raise.
"""

import datetime as dt
from typing import Any

import pydantic

from marketplace.models import (
    ErrorCode,
    GatewayError,
    GatewayEvent,
    GatewayEventKind,
    Payment,
    PaymentCompleted,
    PaymentStatus,
    ProcessingResult,
    ReconcileOutcome,
    WebhookLedgerEntry,
)
from marketplace.utils.logging import get_logger, log_webhook_event

from .booking_store import BookingStore, iso, utc_now
from .dynamodb import DynamoDBService
from .events import EventPublisher
from .stripe_service import StripeService
from .tables import WEBHOOK_EVENTS

logger = get_logger(__name__)

UNRESOLVED = (PaymentStatus.PENDING, PaymentStatus.FAILED)
SETTLED = (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED)


def _intent_id(value: Any) -> str | None:
    """A payment_intent field is either an ID or an expanded object."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        return value.get("id")
    return None


def _required_intent_id(event: GatewayEvent) -> str:
    """The PaymentIntent ID of a payment_intent.* event."""
    intent_id = _intent_id(event.payload["id"])
    if intent_id is None:
        raise ValueError("payment intent id is not a string")
    return intent_id


class WebhookLedger:
    """Audit trail of received webhook deliveries.

    Written after each delivery is processed; never read by the reconciler.
    """

    def __init__(self, db: DynamoDBService) -> None:
        self.db = db

    def record(
        self, event: GatewayEvent, payload_hash: str, outcome: ReconcileOutcome
    ) -> None:
        now = iso(utc_now())
        fields: dict[str, Any] = {
            "event_type": event.type,
            "payload_hash": payload_hash,
            "last_result": outcome.result.value,
            "last_received_at": now,
        }
        if outcome.booking_id:
            fields["booking_id"] = outcome.booking_id
        if outcome.payment_id:
            fields["payment_id"] = outcome.payment_id
        if outcome.result == ProcessingResult.ERROR and outcome.message:
            fields["error_message"] = outcome.message

        names = {f"#f{i}": name for i, name in enumerate(fields)}
        values: dict[str, Any] = {f":f{i}": value for i, value in enumerate(fields.values())}
        assignments = [f"#f{i} = :f{i}" for i in range(len(fields))]
        assignments.append("first_received_at = if_not_exists(first_received_at, :now)")
        values[":now"] = now
        values[":one"] = 1

        self.db.update_item(
            WEBHOOK_EVENTS,
            {"event_id": event.id},
            "SET " + ", ".join(assignments) + " ADD delivery_count :one",
            values,
            names,
        )

    def get(self, event_id: str) -> WebhookLedgerEntry | None:
        item = self.db.get_item(WEBHOOK_EVENTS, {"event_id": event_id})
        if not item:
            return None
        return WebhookLedgerEntry(
            event_id=item["event_id"],
            event_type=item["event_type"],
            payload_hash=item["payload_hash"],
            last_result=ProcessingResult(item["last_result"]),
            delivery_count=int(item.get("delivery_count", 1)),
            booking_id=item.get("booking_id"),
            payment_id=item.get("payment_id"),
            error_message=item.get("error_message"),
            first_received_at=dt.datetime.fromisoformat(item["first_received_at"]),
            last_received_at=dt.datetime.fromisoformat(item["last_received_at"]),
        )


class WebhookReconciler:
    """Applies Stripe events to payments and their bookings."""

    def __init__(
        self,
        store: BookingStore,
        gateway: StripeService,
        publisher: EventPublisher,
        ledger: WebhookLedger | None = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.publisher = publisher
        self.ledger = ledger

    # =========================================================================
    # Entry points
    # =========================================================================

    def handle_delivery(self, payload: bytes, signature: str | None) -> ReconcileOutcome:
        """Verify and apply one webhook delivery.

        Args:
            payload: Raw request body, exactly as received
            signature: Stripe-Signature header value

        Raises:
            GatewayError: INVALID_WEBHOOK when the signature does not verify
                or the body is not a Stripe event. Both cases raise the
                same error.
        """
        if not self.gateway.verify_webhook_signature(payload, signature):
            logger.warning("Rejected webhook delivery: signature verification failed")
            raise GatewayError(ErrorCode.INVALID_WEBHOOK)
        try:
            event = GatewayEvent.model_validate_json(payload)
        except pydantic.ValidationError as e:
            logger.warning("Rejected webhook delivery: unparseable body (%d errors)", e.error_count())
            raise GatewayError(ErrorCode.INVALID_WEBHOOK) from e

        outcome = self.process_event(event)
        if self.ledger is not None:
            self.ledger.record(event, StripeService.compute_payload_hash(payload), outcome)
        return outcome

    def process_event(self, event: GatewayEvent) -> ReconcileOutcome:
        """Apply one verified event. Never raises on data problems."""
        handlers = {
            GatewayEventKind.SESSION_COMPLETED: self._on_session_completed,
            GatewayEventKind.INTENT_SUCCEEDED: self._on_intent_succeeded,
            GatewayEventKind.INTENT_FAILED: self._on_intent_failed,
        }
        handler = handlers.get(event.kind)
        if handler is None:
            outcome = self._outcome(event, ProcessingResult.IGNORED, message="Unhandled event type")
        else:
            try:
                outcome = handler(event)
            except (KeyError, TypeError, ValueError) as e:
                outcome = self._outcome(
                    event, ProcessingResult.ERROR, message=f"Malformed event payload: {e}"
                )

        log_webhook_event(
            logger,
            event.type,
            event.id,
            booking_id=outcome.booking_id,
            payment_id=outcome.payment_id,
            result=outcome.result.value,
            error=outcome.message if outcome.result == ProcessingResult.ERROR else None,
        )
        return outcome

    def process_batch(self, events: list[GatewayEvent]) -> list[ReconcileOutcome]:
        """Apply events in order; one failing event never stops the rest."""
        outcomes = []
        for event in events:
            try:
                outcomes.append(self.process_event(event))
            except Exception as e:
                logger.exception("Failed to process webhook event %s", event.id)
                outcomes.append(self._outcome(event, ProcessingResult.ERROR, message=str(e)))
        return outcomes

    def sweep_pending_payments(
        self, older_than: dt.timedelta = dt.timedelta(minutes=30)
    ) -> list[ReconcileOutcome]:
        """Resolve unresolved payments by asking Stripe for their session state.

        Covers deliveries that were dropped because intent-succeeded arrived
        before session-completed and was never redelivered. Links a missing
        intent ID and, when Stripe reports the session paid, applies the same
        transition an intent-succeeded event would.
        """
        cutoff = utc_now() - older_than
        outcomes = []
        for status in UNRESOLVED:
            for payment in self.store.list_payments_by_status(status, created_before=cutoff):
                try:
                    outcomes.append(self._sweep_one(payment))
                except GatewayError as e:
                    logger.error(
                        "Sweep could not check payment %s: %s", payment.payment_id, e.message
                    )
                    outcomes.append(
                        ReconcileOutcome(
                            event_id=f"sweep:{payment.payment_id}",
                            event_type="sweep",
                            result=ProcessingResult.ERROR,
                            booking_id=payment.booking_id,
                            payment_id=payment.payment_id,
                            message=e.message,
                        )
                    )
        return outcomes

    def _sweep_one(self, payment: Payment) -> ReconcileOutcome:
        session = self.gateway.retrieve_checkout_session(payment.stripe_checkout_session_id)
        intent_id = session.get("payment_intent_id")
        event_id = f"sweep:{payment.payment_id}"

        def outcome(result: ProcessingResult, message: str) -> ReconcileOutcome:
            return ReconcileOutcome(
                event_id=event_id,
                event_type="sweep",
                result=result,
                booking_id=payment.booking_id,
                payment_id=payment.payment_id,
                message=message,
            )

        if not intent_id:
            return outcome(ProcessingResult.IGNORED, "Session has no payment intent yet")
        if payment.stripe_payment_intent_id != intent_id:
            linked = self._link_intent(payment, intent_id)
            if linked is None:
                return outcome(ProcessingResult.IGNORED, "Payment changed during sweep")
            payment = linked
        if session.get("payment_status") != "paid":
            return outcome(ProcessingResult.IGNORED, "Session not paid")

        result = self._apply_success(payment, intent_id)
        logger.info("Sweep resolved payment %s: %s", payment.payment_id, result.value)
        return outcome(result, "Session paid")

    # =========================================================================
    # Event handlers
    # =========================================================================

    def _on_session_completed(self, event: GatewayEvent) -> ReconcileOutcome:
        """Link the PaymentIntent to the booking's payment.

        May arrive before or after intent-succeeded. The intent ID is only
        written while the payment is unresolved or has no intent yet.
        """
        booking_id = event.metadata.get("booking_id")
        if not booking_id:
            logger.warning("Session-completed event %s has no booking_id metadata", event.id)
            return self._outcome(event, ProcessingResult.DROPPED, message="Missing booking_id metadata")

        booking = self.store.get_booking(booking_id)
        payment = self.store.get_payment_for_booking(booking) if booking else None
        if payment is None:
            logger.warning("No payment found for booking %s (event %s)", booking_id, event.id)
            return self._outcome(
                event, ProcessingResult.DROPPED, booking_id=booking_id, message="Payment not found"
            )

        intent_id = _intent_id(event.payload.get("payment_intent"))
        if intent_id is None:
            logger.warning("Session-completed event %s carries no payment intent", event.id)
            return self._outcome(
                event,
                ProcessingResult.DROPPED,
                booking_id=booking_id,
                payment_id=payment.payment_id,
                message="Missing payment_intent",
            )

        if payment.stripe_payment_intent_id == intent_id:
            return self._outcome(
                event, ProcessingResult.DUPLICATE, booking_id=booking_id, payment_id=payment.payment_id
            )

        linked = self._link_intent(payment, intent_id)
        result = ProcessingResult.APPLIED if linked else ProcessingResult.IGNORED
        return self._outcome(
            event,
            result,
            booking_id=booking_id,
            payment_id=payment.payment_id,
            message=None if linked else "Payment already settled with another intent",
        )

    def _on_intent_succeeded(self, event: GatewayEvent) -> ReconcileOutcome:
        intent_id = _required_intent_id(event)
        payment = self.store.get_payment_by_intent(intent_id)
        if payment is None:
            # Session-completed may not have linked the intent yet; Stripe
            # redelivers, and the pending-payment sweep covers the rest.
            logger.warning("No payment linked to PaymentIntent %s (event %s)", intent_id, event.id)
            return self._outcome(event, ProcessingResult.DROPPED, message="Payment not found")

        if payment.status in SETTLED:
            return self._outcome(
                event,
                ProcessingResult.DUPLICATE,
                booking_id=payment.booking_id,
                payment_id=payment.payment_id,
            )

        result = self._apply_success(payment, intent_id)
        return self._outcome(
            event, result, booking_id=payment.booking_id, payment_id=payment.payment_id
        )

    def _on_intent_failed(self, event: GatewayEvent) -> ReconcileOutcome:
        """Mark a pending payment failed. The booking stays ACCEPTED for a retry."""
        intent_id = _required_intent_id(event)
        payment = self.store.get_payment_by_intent(intent_id)
        if payment is None:
            logger.warning("No payment linked to PaymentIntent %s (event %s)", intent_id, event.id)
            return self._outcome(event, ProcessingResult.DROPPED, message="Payment not found")

        ids = {"booking_id": payment.booking_id, "payment_id": payment.payment_id}
        if payment.status == PaymentStatus.FAILED:
            return self._outcome(event, ProcessingResult.DUPLICATE, **ids)
        if payment.status in SETTLED:
            return self._outcome(
                event, ProcessingResult.IGNORED, message="Payment already settled", **ids
            )

        now = iso(utc_now())
        uow = self.store.unit_of_work()
        self.store.stage_payment_update(
            uow,
            payment.payment_id,
            {"status": PaymentStatus.FAILED.value, "updated_at": now},
            condition="#cs = :pending",
            names={"#cs": "status"},
            values={":pending": PaymentStatus.PENDING.value},
        )
        self.store.stage_booking_update(
            uow,
            payment.booking_id,
            {"payment_status": PaymentStatus.FAILED.value, "updated_at": now},
        )
        if uow.commit():
            return self._outcome(event, ProcessingResult.APPLIED, **ids)

        current = self.store.get_payment(payment.payment_id)
        if current is not None and current.status == PaymentStatus.FAILED:
            return self._outcome(event, ProcessingResult.DUPLICATE, **ids)
        if current is not None and current.status in SETTLED:
            return self._outcome(
                event, ProcessingResult.IGNORED, message="Payment already settled", **ids
            )
        logger.warning("Booking %s missing while failing payment %s", payment.booking_id, payment.payment_id)
        return self._outcome(event, ProcessingResult.DROPPED, message="Booking not found", **ids)

    # =========================================================================
    # Shared transitions
    # =========================================================================

    def _link_intent(self, payment: Payment, intent_id: str) -> Payment | None:
        """Set the intent ID unless the payment already settled with another one."""
        return self.store.update_payment(
            payment.payment_id,
            {"stripe_payment_intent_id": intent_id, "updated_at": iso(utc_now())},
            condition="attribute_not_exists(stripe_payment_intent_id) OR #cs IN (:pending, :failed)",
            names={"#cs": "status"},
            values={
                ":pending": PaymentStatus.PENDING.value,
                ":failed": PaymentStatus.FAILED.value,
            },
        )

    def _apply_success(self, payment: Payment, intent_id: str) -> ProcessingResult:
        """PENDING/FAILED -> COMPLETED, cascaded to the booking in one transaction."""
        now = utc_now()
        uow = self.store.unit_of_work()
        self.store.stage_payment_update(
            uow,
            payment.payment_id,
            {
                "status": PaymentStatus.COMPLETED.value,
                "paid_at": iso(now),
                "updated_at": iso(now),
            },
            condition="#cs IN (:pending, :failed) AND #ci = :intent",
            names={"#cs": "status", "#ci": "stripe_payment_intent_id"},
            values={
                ":pending": PaymentStatus.PENDING.value,
                ":failed": PaymentStatus.FAILED.value,
                ":intent": intent_id,
            },
        )
        self.store.stage_booking_update(
            uow,
            payment.booking_id,
            {"payment_status": PaymentStatus.COMPLETED.value, "updated_at": iso(now)},
        )
        if not uow.commit():
            current = self.store.get_payment(payment.payment_id)
            if current is not None and current.status in SETTLED:
                return ProcessingResult.DUPLICATE
            logger.warning(
                "Could not complete payment %s (booking %s missing or intent changed)",
                payment.payment_id,
                payment.booking_id,
            )
            return ProcessingResult.DROPPED

        self.publisher.publish(
            PaymentCompleted(
                occurred_at=now,
                payment_id=payment.payment_id,
                booking_id=payment.booking_id,
                amount=payment.amount,
                currency=payment.currency,
            )
        )
        return ProcessingResult.APPLIED

    @staticmethod
    def _outcome(
        event: GatewayEvent,
        result: ProcessingResult,
        *,
        booking_id: str | None = None,
        payment_id: str | None = None,
        message: str | None = None,
    ) -> ReconcileOutcome:
        return ReconcileOutcome(
            event_id=event.id,
            event_type=event.type,
            result=result,
            booking_id=booking_id,
            payment_id=payment_id,
            message=message,
        )

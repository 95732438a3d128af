"""Unit tests for the Stripe webhook reconciler.

Deliveries are signed with a real HMAC signature and applied against moto
DynamoDB. Covers redelivery, out-of-order arrival, unknown references,
the audit ledger and the pending-payment sweep.
"""

import json
import time
from collections.abc import Callable
from datetime import timedelta
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from marketplace.models import (
    Booking,
    BookingStatus,
    ErrorCode,
    GatewayError,
    GatewayEvent,
    Payment,
    PaymentCompleted,
    PaymentStatus,
    ProcessingResult,
)
from marketplace.services import (
    BookingStore,
    DynamoDBService,
    StripeServiceError,
    WebhookLedger,
    WebhookReconciler,
)

SESSION_COMPLETED = "checkout.session.completed"
INTENT_SUCCEEDED = "payment_intent.succeeded"
INTENT_FAILED = "payment_intent.payment_failed"
INTENT_ID = "pi_test_intent_xyz"


def session_object(booking_id: str | None, intent: Any = INTENT_ID) -> dict[str, Any]:
    obj: dict[str, Any] = {
        "id": "cs_test_abc123",
        "object": "checkout.session",
        "payment_intent": intent,
        "payment_status": "paid",
        "amount_total": 15000,
        "metadata": {"booking_id": booking_id} if booking_id else {},
    }
    return obj


def intent_object(intent_id: str = INTENT_ID) -> dict[str, Any]:
    return {"id": intent_id, "object": "payment_intent", "amount": 15000, "metadata": {}}


@pytest.fixture
def payment(
    make_booking: Callable[..., Booking], make_payment: Callable[..., Payment]
) -> Payment:
    """A PENDING payment for an ACCEPTED booking, no intent linked yet."""
    return make_payment(make_booking(BookingStatus.ACCEPTED))


# === Signature and parsing ===


class TestDeliveryVerification:
    """Only a bad signature or an unparseable body fails a delivery."""

    def test_wrong_secret_is_rejected(
        self,
        reconciler: WebhookReconciler,
        make_event: Callable[..., dict[str, Any]],
        sign_payload: Callable[..., str],
    ) -> None:
        payload = json.dumps(make_event("customer.created", {"id": "cus_1"})).encode()

        with pytest.raises(GatewayError) as exc_info:
            reconciler.handle_delivery(payload, sign_payload(payload, secret="whsec_other"))

        assert exc_info.value.code == ErrorCode.INVALID_WEBHOOK

    def test_stale_timestamp_is_rejected(
        self,
        reconciler: WebhookReconciler,
        make_event: Callable[..., dict[str, Any]],
        sign_payload: Callable[..., str],
    ) -> None:
        payload = json.dumps(make_event("customer.created", {"id": "cus_1"})).encode()
        header = sign_payload(payload, timestamp=int(time.time()) - 3600)

        with pytest.raises(GatewayError):
            reconciler.handle_delivery(payload, header)

    def test_tampered_body_is_rejected(
        self,
        reconciler: WebhookReconciler,
        make_event: Callable[..., dict[str, Any]],
        sign_payload: Callable[..., str],
    ) -> None:
        payload = json.dumps(make_event("customer.created", {"id": "cus_1"})).encode()
        header = sign_payload(payload)

        with pytest.raises(GatewayError):
            reconciler.handle_delivery(payload.replace(b"cus_1", b"cus_2"), header)

    def test_missing_header_is_rejected(self, reconciler: WebhookReconciler) -> None:
        with pytest.raises(GatewayError) as exc_info:
            reconciler.handle_delivery(b"{}", None)

        assert exc_info.value.code == ErrorCode.INVALID_WEBHOOK

    @pytest.mark.parametrize("body", [b"not json", b'{"type": "x"}', b"[]"])
    def test_signed_but_unparseable_body_is_rejected(
        self,
        reconciler: WebhookReconciler,
        sign_payload: Callable[..., str],
        body: bytes,
    ) -> None:
        with pytest.raises(GatewayError) as exc_info:
            reconciler.handle_delivery(body, sign_payload(body))

        assert exc_info.value.code == ErrorCode.INVALID_WEBHOOK

    def test_unknown_event_type_is_acknowledged(
        self, deliver: Callable[..., Any], ledger: WebhookLedger
    ) -> None:
        outcome = deliver("customer.created", {"id": "cus_1"}, event_id="evt_unknown_1")

        assert outcome.result == ProcessingResult.IGNORED
        assert ledger.get("evt_unknown_1").last_result == ProcessingResult.IGNORED


# === Event handling ===


class TestSessionCompleted:
    """checkout.session.completed links the PaymentIntent."""

    def test_links_intent(
        self, deliver: Callable[..., Any], store: BookingStore, payment: Payment
    ) -> None:
        outcome = deliver(SESSION_COMPLETED, session_object(payment.booking_id))

        assert outcome.result == ProcessingResult.APPLIED
        assert outcome.payment_id == payment.payment_id
        stored = store.get_payment(payment.payment_id)
        assert stored.stripe_payment_intent_id == INTENT_ID
        assert stored.status == PaymentStatus.PENDING

    def test_expanded_intent_object(
        self, deliver: Callable[..., Any], store: BookingStore, payment: Payment
    ) -> None:
        deliver(SESSION_COMPLETED, session_object(payment.booking_id, {"id": INTENT_ID}))

        assert store.get_payment(payment.payment_id).stripe_payment_intent_id == INTENT_ID

    def test_redelivery_is_duplicate(
        self,
        deliver: Callable[..., Any],
        ledger: WebhookLedger,
        payment: Payment,
    ) -> None:
        deliver(SESSION_COMPLETED, session_object(payment.booking_id), event_id="evt_sess_1")
        outcome = deliver(
            SESSION_COMPLETED, session_object(payment.booking_id), event_id="evt_sess_1"
        )

        assert outcome.result == ProcessingResult.DUPLICATE
        entry = ledger.get("evt_sess_1")
        assert entry.delivery_count == 2
        assert entry.last_result == ProcessingResult.DUPLICATE
        assert entry.payment_id == payment.payment_id
        assert entry.first_received_at <= entry.last_received_at

    def test_settled_payment_keeps_its_intent(
        self,
        deliver: Callable[..., Any],
        make_booking: Callable[..., Booking],
        make_payment: Callable[..., Payment],
        store: BookingStore,
    ) -> None:
        paid = make_payment(
            make_booking(BookingStatus.ACCEPTED), PaymentStatus.COMPLETED, intent_id="pi_original"
        )

        outcome = deliver(SESSION_COMPLETED, session_object(paid.booking_id, "pi_other"))

        assert outcome.result == ProcessingResult.IGNORED
        assert store.get_payment(paid.payment_id).stripe_payment_intent_id == "pi_original"

    def test_missing_booking_metadata_is_dropped(self, deliver: Callable[..., Any]) -> None:
        outcome = deliver(SESSION_COMPLETED, session_object(None))

        assert outcome.result == ProcessingResult.DROPPED

    def test_unknown_booking_is_dropped(self, deliver: Callable[..., Any]) -> None:
        outcome = deliver(SESSION_COMPLETED, session_object("BKG-UNKNOWN"))

        assert outcome.result == ProcessingResult.DROPPED
        assert outcome.booking_id == "BKG-UNKNOWN"

    def test_booking_without_payment_is_dropped(
        self, deliver: Callable[..., Any], make_booking: Callable[..., Booking]
    ) -> None:
        booking = make_booking(BookingStatus.ACCEPTED)

        outcome = deliver(SESSION_COMPLETED, session_object(booking.booking_id))

        assert outcome.result == ProcessingResult.DROPPED

    def test_missing_intent_is_dropped(
        self, deliver: Callable[..., Any], payment: Payment
    ) -> None:
        outcome = deliver(SESSION_COMPLETED, session_object(payment.booking_id, None))

        assert outcome.result == ProcessingResult.DROPPED


class TestIntentSucceeded:
    """payment_intent.succeeded completes the payment and cascades to the booking."""

    def test_completes_linked_payment(
        self,
        deliver: Callable[..., Any],
        store: BookingStore,
        payment: Payment,
        published: list,
    ) -> None:
        deliver(SESSION_COMPLETED, session_object(payment.booking_id))

        outcome = deliver(INTENT_SUCCEEDED, intent_object())

        assert outcome.result == ProcessingResult.APPLIED
        stored = store.get_payment(payment.payment_id)
        assert stored.status == PaymentStatus.COMPLETED
        assert stored.paid_at is not None
        booking = store.get_booking(payment.booking_id)
        assert booking.payment_status == PaymentStatus.COMPLETED
        assert booking.status == BookingStatus.ACCEPTED
        assert len(published) == 1
        assert isinstance(published[0], PaymentCompleted)
        assert published[0].payment_id == payment.payment_id

    def test_redelivery_is_duplicate_and_publishes_once(
        self,
        deliver: Callable[..., Any],
        payment: Payment,
        published: list,
    ) -> None:
        deliver(SESSION_COMPLETED, session_object(payment.booking_id))
        deliver(INTENT_SUCCEEDED, intent_object(), event_id="evt_ok_1")

        outcome = deliver(INTENT_SUCCEEDED, intent_object(), event_id="evt_ok_1")

        assert outcome.result == ProcessingResult.DUPLICATE
        assert len(published) == 1

    def test_arriving_before_session_is_dropped_then_converges(
        self,
        deliver: Callable[..., Any],
        store: BookingStore,
        payment: Payment,
    ) -> None:
        early = deliver(INTENT_SUCCEEDED, intent_object(), event_id="evt_early")
        assert early.result == ProcessingResult.DROPPED
        assert store.get_payment(payment.payment_id).status == PaymentStatus.PENDING

        deliver(SESSION_COMPLETED, session_object(payment.booking_id))
        retried = deliver(INTENT_SUCCEEDED, intent_object(), event_id="evt_early")

        assert retried.result == ProcessingResult.APPLIED
        assert store.get_payment(payment.payment_id).status == PaymentStatus.COMPLETED

    def test_failed_then_succeeded_completes(
        self,
        deliver: Callable[..., Any],
        store: BookingStore,
        payment: Payment,
    ) -> None:
        deliver(SESSION_COMPLETED, session_object(payment.booking_id))
        deliver(INTENT_FAILED, intent_object())

        outcome = deliver(INTENT_SUCCEEDED, intent_object())

        assert outcome.result == ProcessingResult.APPLIED
        assert store.get_payment(payment.payment_id).status == PaymentStatus.COMPLETED
        assert store.get_booking(payment.booking_id).payment_status == PaymentStatus.COMPLETED

    def test_write_conflict_fails_delivery_so_redelivery_applies(
        self,
        deliver: Callable[..., Any],
        seeded: DynamoDBService,
        store: BookingStore,
        payment: Payment,
        ledger: WebhookLedger,
    ) -> None:
        deliver(SESSION_COMPLETED, session_object(payment.booking_id))
        conflict = ClientError(
            {
                "Error": {"Code": "TransactionCanceledException", "Message": "cancelled"},
                "CancellationReasons": [{"Code": "TransactionConflict"}, {"Code": "None"}],
            },
            "TransactWriteItems",
        )

        with patch.object(seeded._client, "transact_write_items", side_effect=conflict):
            with pytest.raises(ClientError):
                deliver(INTENT_SUCCEEDED, intent_object(), event_id="evt_conflict")

        assert store.get_payment(payment.payment_id).status == PaymentStatus.PENDING
        assert ledger.get("evt_conflict") is None

        redelivered = deliver(INTENT_SUCCEEDED, intent_object(), event_id="evt_conflict")

        assert redelivered.result == ProcessingResult.APPLIED
        assert store.get_payment(payment.payment_id).status == PaymentStatus.COMPLETED

    def test_malformed_payload_is_reported_not_raised(
        self, deliver: Callable[..., Any], ledger: WebhookLedger
    ) -> None:
        outcome = deliver(INTENT_SUCCEEDED, {"object": "payment_intent"}, event_id="evt_bad")

        assert outcome.result == ProcessingResult.ERROR
        entry = ledger.get("evt_bad")
        assert entry.last_result == ProcessingResult.ERROR
        assert entry.error_message


class TestIntentFailed:
    """payment_intent.payment_failed fails a pending payment only."""

    def test_fails_pending_payment_and_keeps_booking_accepted(
        self,
        deliver: Callable[..., Any],
        store: BookingStore,
        payment: Payment,
    ) -> None:
        deliver(SESSION_COMPLETED, session_object(payment.booking_id))

        outcome = deliver(INTENT_FAILED, intent_object())

        assert outcome.result == ProcessingResult.APPLIED
        assert store.get_payment(payment.payment_id).status == PaymentStatus.FAILED
        booking = store.get_booking(payment.booking_id)
        assert booking.payment_status == PaymentStatus.FAILED
        assert booking.status == BookingStatus.ACCEPTED

    def test_redelivery_is_duplicate(
        self, deliver: Callable[..., Any], payment: Payment
    ) -> None:
        deliver(SESSION_COMPLETED, session_object(payment.booking_id))
        deliver(INTENT_FAILED, intent_object())

        assert deliver(INTENT_FAILED, intent_object()).result == ProcessingResult.DUPLICATE

    def test_succeeded_then_failed_stays_completed(
        self,
        deliver: Callable[..., Any],
        store: BookingStore,
        payment: Payment,
    ) -> None:
        deliver(SESSION_COMPLETED, session_object(payment.booking_id))
        deliver(INTENT_SUCCEEDED, intent_object())

        outcome = deliver(INTENT_FAILED, intent_object())

        assert outcome.result == ProcessingResult.IGNORED
        assert store.get_payment(payment.payment_id).status == PaymentStatus.COMPLETED

    def test_unknown_intent_is_dropped(self, deliver: Callable[..., Any]) -> None:
        assert deliver(INTENT_FAILED, intent_object("pi_nobody")).result == ProcessingResult.DROPPED


# === Batch and sweep ===


class TestProcessBatch:
    """Events are applied in order; one failure never stops the rest."""

    def test_failure_is_isolated(
        self,
        reconciler: WebhookReconciler,
        store: BookingStore,
        make_event: Callable[..., dict[str, Any]],
    ) -> None:
        events = [
            GatewayEvent.model_validate(make_event(INTENT_SUCCEEDED, intent_object())),
            GatewayEvent.model_validate(make_event("invoice.paid", {"id": "in_1"})),
        ]

        with patch.object(store, "get_payment_by_intent", side_effect=RuntimeError("boom")):
            outcomes = reconciler.process_batch(events)

        assert [o.result for o in outcomes] == [ProcessingResult.ERROR, ProcessingResult.IGNORED]
        assert outcomes[0].message == "boom"

    def test_applies_in_order(
        self,
        reconciler: WebhookReconciler,
        store: BookingStore,
        make_event: Callable[..., dict[str, Any]],
        payment: Payment,
    ) -> None:
        events = [
            GatewayEvent.model_validate(
                make_event(SESSION_COMPLETED, session_object(payment.booking_id))
            ),
            GatewayEvent.model_validate(make_event(INTENT_SUCCEEDED, intent_object())),
        ]

        outcomes = reconciler.process_batch(events)

        assert [o.result for o in outcomes] == [ProcessingResult.APPLIED] * 2
        assert store.get_payment(payment.payment_id).status == PaymentStatus.COMPLETED


class TestSweepPendingPayments:
    """Unresolved payments are checked against their Stripe session."""

    def test_paid_session_completes_payment(
        self,
        reconciler: WebhookReconciler,
        store: BookingStore,
        gateway: MagicMock,
        payment: Payment,
        published: list,
    ) -> None:
        gateway.retrieve_checkout_session.return_value = {
            "session_id": payment.stripe_checkout_session_id,
            "status": "complete",
            "payment_status": "paid",
            "payment_intent_id": INTENT_ID,
        }

        outcomes = reconciler.sweep_pending_payments(older_than=timedelta(0))

        assert [o.result for o in outcomes] == [ProcessingResult.APPLIED]
        stored = store.get_payment(payment.payment_id)
        assert stored.status == PaymentStatus.COMPLETED
        assert stored.stripe_payment_intent_id == INTENT_ID
        assert len(published) == 1
        gateway.retrieve_checkout_session.assert_called_once_with(
            payment.stripe_checkout_session_id
        )

    def test_open_session_is_left_alone(
        self,
        reconciler: WebhookReconciler,
        store: BookingStore,
        payment: Payment,
    ) -> None:
        outcomes = reconciler.sweep_pending_payments(older_than=timedelta(0))

        assert [o.result for o in outcomes] == [ProcessingResult.IGNORED]
        assert store.get_payment(payment.payment_id).status == PaymentStatus.PENDING

    def test_recent_payments_are_skipped(
        self,
        reconciler: WebhookReconciler,
        gateway: MagicMock,
        payment: Payment,
    ) -> None:
        assert reconciler.sweep_pending_payments() == []
        gateway.retrieve_checkout_session.assert_not_called()

    def test_gateway_failure_is_reported(
        self,
        reconciler: WebhookReconciler,
        gateway: MagicMock,
        payment: Payment,
    ) -> None:
        gateway.retrieve_checkout_session.side_effect = StripeServiceError("timeout")

        outcomes = reconciler.sweep_pending_payments(older_than=timedelta(0))

        assert outcomes[0].result == ProcessingResult.ERROR
        assert outcomes[0].payment_id == payment.payment_id

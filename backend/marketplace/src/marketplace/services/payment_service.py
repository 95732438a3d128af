"""Payment session manager.

Creates the single Payment of an accepted booking and the Stripe Checkout
session that collects it. Payment rows are only ever changed afterwards by
the webhook reconciler and the refund processor.
"""

import os

from marketplace.models import (
    Actor,
    Booking,
    BookingStatus,
    Payment,
    PaymentFilters,
    PaymentPage,
    PaymentSession,
    PaymentStatus,
    AuthorizationError,
    ConflictError,
    ErrorCode,
    NotFoundError,
    UserRole,
    to_minor_units,
)
from marketplace.utils.logging import get_logger, log_payment_operation

from .booking_store import BookingStore, generate_id, utc_now
from .catalog import CatalogReader, ProfileDirectory
from .stripe_service import StripeService

logger = get_logger(__name__)

DEFAULT_FRONTEND_URL = "http://localhost:3000"


class PaymentService:
    """Issues checkout sessions and serves payment reads."""

    def __init__(
        self,
        store: BookingStore,
        gateway: StripeService,
        catalog: CatalogReader,
        directory: ProfileDirectory,
        frontend_url: str | None = None,
        currency: str | None = None,
    ) -> None:
        """Initialize payment service.

        Args:
            store: Booking and payment store
            gateway: Stripe adapter
            catalog: Listing reader, for the line item description
            directory: Profile reader, for the receipt email
            frontend_url: Base URL for redirect defaults. Defaults to FRONTEND_URL env var.
            currency: ISO currency code. Defaults to PAYMENT_CURRENCY env var.
        """
        self.store = store
        self.gateway = gateway
        self.catalog = catalog
        self.directory = directory
        self.frontend_url = (
            frontend_url or os.environ.get("FRONTEND_URL", DEFAULT_FRONTEND_URL)
        ).rstrip("/")
        self.currency = (currency or os.environ.get("PAYMENT_CURRENCY", "usd")).lower()

    def create_session(
        self,
        actor: Actor,
        booking_id: str,
        success_url: str | None = None,
        cancel_url: str | None = None,
    ) -> PaymentSession:
        """Start (or resume) payment of an accepted booking.

        A booking has at most one Payment. While that payment is unresolved a
        repeated request returns it unchanged instead of opening a second
        Stripe session.

        Raises:
            NotFoundError: If the booking does not exist
            AuthorizationError: If the actor is not the booking's tourist
            ConflictError: If the booking is already paid or not accepted
            GatewayError: If Stripe rejects the session
        """
        booking = self._load_booking(booking_id)
        if actor.role != UserRole.TOURIST or actor.tourist_id != booking.tourist_id:
            raise AuthorizationError(message="Only the booking's tourist can pay for it")

        existing = self.store.get_payment_for_booking(booking)
        if existing and existing.status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
            raise ConflictError(
                ErrorCode.ALREADY_PAID,
                current_state=existing.status.value,
                requested_state=PaymentStatus.PENDING.value,
                details={"payment_id": existing.payment_id},
            )
        if booking.status != BookingStatus.ACCEPTED:
            raise ConflictError(
                ErrorCode.BOOKING_NOT_PAYABLE,
                current_state=booking.status.value,
                requested_state=BookingStatus.ACCEPTED.value,
            )
        if existing:
            log_payment_operation(
                logger,
                "create_session",
                payment_id=existing.payment_id,
                booking_id=booking_id,
                status=existing.status.value,
                reused=True,
            )
            return PaymentSession(
                payment=existing, checkout_url=existing.checkout_url, created=False
            )

        session = self.gateway.create_checkout_session(
            booking_id=booking_id,
            amount_minor=to_minor_units(booking.total_amount),
            currency=self.currency,
            description=self._describe(booking),
            success_url=success_url
            or f"{self.frontend_url}/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=cancel_url or f"{self.frontend_url}/payment/cancel?booking_id={booking_id}",
            customer_email=self._customer_email(actor, booking),
            metadata={"tourist_id": booking.tourist_id, "guide_id": booking.guide_id},
        )

        now = utc_now()
        payment = Payment(
            payment_id=generate_id("PAY"),
            booking_id=booking_id,
            amount=booking.total_amount,
            currency=self.currency,
            status=PaymentStatus.PENDING,
            stripe_checkout_session_id=session["session_id"],
            checkout_url=session.get("checkout_url"),
            stripe_payment_intent_id=session.get("payment_intent_id"),
            created_at=now,
            updated_at=now,
        )

        uow = self.store.unit_of_work()
        self.store.stage_payment_insert(uow, payment)
        if not uow.commit():
            return self._resolve_lost_insert(booking_id)

        log_payment_operation(
            logger,
            "create_session",
            payment_id=payment.payment_id,
            booking_id=booking_id,
            amount=payment.amount,
            status=payment.status.value,
            session_id=payment.stripe_checkout_session_id,
        )
        return PaymentSession(payment=payment, checkout_url=payment.checkout_url, created=True)

    def _resolve_lost_insert(self, booking_id: str) -> PaymentSession:
        """A concurrent request linked a payment first, or the booking moved on."""
        booking = self._load_booking(booking_id)
        winner = self.store.get_payment(booking.payment_id) if booking.payment_id else None
        if winner is not None:
            logger.info(
                "Payment %s already created for booking %s by a concurrent request",
                winner.payment_id,
                booking_id,
            )
            return PaymentSession(payment=winner, checkout_url=winner.checkout_url, created=False)
        raise ConflictError(
            ErrorCode.BOOKING_NOT_PAYABLE,
            current_state=booking.status.value,
            requested_state=BookingStatus.ACCEPTED.value,
        )

    def get_payment(self, actor: Actor, payment_id: str) -> Payment:
        """Get a payment visible to the booking's tourist or guide, or an admin."""
        payment = self.store.get_payment(payment_id)
        if payment is None:
            raise NotFoundError(ErrorCode.PAYMENT_NOT_FOUND, {"payment_id": payment_id})
        if actor.is_admin:
            return payment

        booking = self.store.get_booking(payment.booking_id)
        allowed = booking is not None and (
            (actor.role == UserRole.TOURIST and actor.tourist_id == booking.tourist_id)
            or (actor.role == UserRole.GUIDE and actor.guide_id == booking.guide_id)
        )
        if not allowed:
            raise AuthorizationError(message="You are not authorized to view this payment")
        return payment

    def list_my_payments(self, actor: Actor, filters: PaymentFilters) -> PaymentPage:
        """Payments of the actor's bookings, newest first."""
        if actor.role == UserRole.TOURIST and actor.tourist_id:
            bookings = self.store.query_bookings(
                index_name="tourist_id-index",
                key_name="tourist_id",
                key_value=actor.tourist_id,
            )
        elif actor.role == UserRole.GUIDE and actor.guide_id:
            bookings = self.store.query_bookings(
                index_name="guide_id-index",
                key_name="guide_id",
                key_value=actor.guide_id,
            )
        else:
            raise AuthorizationError(message="Only tourists and guides have payments")

        payment_ids = [b.payment_id for b in bookings if b.payment_id]
        return self.store.list_payments(payment_ids, filters)

    def _load_booking(self, booking_id: str) -> Booking:
        booking = self.store.get_booking(booking_id)
        if booking is None or booking.is_deleted:
            raise NotFoundError(ErrorCode.BOOKING_NOT_FOUND, {"booking_id": booking_id})
        return booking

    def _describe(self, booking: Booking) -> str:
        listing = self.catalog.get_listing(booking.listing_id)
        title = listing.title if listing and listing.title else "Guided tour"
        return (
            f"{title} on {booking.booking_date:%Y-%m-%d} "
            f"for {booking.number_of_people} people"
        )

    def _customer_email(self, actor: Actor, booking: Booking) -> str | None:
        if actor.email:
            return actor.email
        tourist = self.directory.get_tourist(booking.tourist_id)
        return tourist.email if tourist else None

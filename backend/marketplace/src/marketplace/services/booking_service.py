"""Booking lifecycle: creation guards, transitions and completion.

Every status change is a compare-and-swap on the booking row: the write
carries the expected prior status, so of two racing requests exactly one
wins and the other observes a ConflictError. Completion also applies the
guide and tourist counters in the same transaction.
"""

from typing import NoReturn

from marketplace.models import (
    Actor,
    Booking,
    BookingAction,
    BookingCompleted,
    BookingCreate,
    BookingFilters,
    BookingPage,
    BookingStatus,
    PaymentStatus,
    AuthorizationError,
    ConflictError,
    ErrorCode,
    NotFoundError,
    UserRole,
    ValidationError,
)
from marketplace.utils.logging import get_logger

from .booking_store import BookingStore, generate_id, iso, to_utc, utc_now
from .catalog import CatalogReader, ProfileDirectory
from .events import EventPublisher
from .stats_service import StatsService
from .transitions import TERMINAL_STATES, TRANSITIONS, Transition, get_transition

logger = get_logger(__name__)


class BookingService:
    """Drives bookings through the lifecycle on behalf of tourists and guides."""

    def __init__(
        self,
        store: BookingStore,
        catalog: CatalogReader,
        directory: ProfileDirectory,
        stats: StatsService,
        publisher: EventPublisher,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.directory = directory
        self.stats = stats
        self.publisher = publisher

    # =========================================================================
    # Creation and reads
    # =========================================================================

    def create_booking(self, actor: Actor, data: BookingCreate) -> Booking:
        """Create a PENDING booking for a tourist.

        The total is fixed here from the listing's current price and is never
        recalculated afterwards.

        Raises:
            AuthorizationError: If the actor has no tourist profile
            NotFoundError: If the listing does not exist
            ValidationError: If a creation guard fails
        """
        if actor.role != UserRole.TOURIST or not actor.tourist_id:
            raise AuthorizationError(message="Only tourists can create bookings")

        listing = self.catalog.get_listing(data.listing_id)
        if listing is None:
            raise NotFoundError(ErrorCode.LISTING_NOT_FOUND, {"listing_id": data.listing_id})
        if not listing.is_bookable:
            raise ValidationError(ErrorCode.LISTING_UNAVAILABLE, {"listing_id": listing.listing_id})

        guide = self.directory.get_guide(listing.guide_id)
        if guide is None or guide.is_deleted:
            raise ValidationError(ErrorCode.GUIDE_UNAVAILABLE, {"guide_id": listing.guide_id})

        now = utc_now()
        booking_date = to_utc(data.booking_date)
        if booking_date <= now:
            raise ValidationError(ErrorCode.BOOKING_DATE_IN_PAST)

        if data.number_of_people > listing.max_group_size:
            raise ValidationError(
                ErrorCode.GROUP_SIZE_EXCEEDED,
                {
                    "number_of_people": data.number_of_people,
                    "max_group_size": listing.max_group_size,
                },
            )

        booking = Booking(
            booking_id=generate_id("BKG"),
            tourist_id=actor.tourist_id,
            guide_id=listing.guide_id,
            listing_id=listing.listing_id,
            booking_date=booking_date,
            number_of_people=data.number_of_people,
            total_amount=listing.price_per_person * data.number_of_people,
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            special_requests=data.special_requests,
            created_at=now,
            updated_at=now,
        )
        if not self.store.create_booking(booking):
            raise ConflictError(message="Booking ID collision, please retry")

        logger.info(
            "Booking %s created for listing %s (%d people, total %s)",
            booking.booking_id,
            listing.listing_id,
            booking.number_of_people,
            booking.total_amount,
        )
        return booking

    def get_booking(self, actor: Actor, booking_id: str) -> Booking:
        """Get a booking visible to its tourist or guide.

        Raises:
            NotFoundError: If the booking does not exist or was deleted
            AuthorizationError: If the actor is not a party to the booking
        """
        booking = self._load(booking_id)
        if self._party_role(actor, booking) is None:
            raise AuthorizationError(message="You are not authorized to view this booking")
        return booking

    def list_my_bookings(self, actor: Actor, filters: BookingFilters) -> BookingPage:
        """Tourists see the bookings they made; guides see bookings on their listings."""
        if actor.role == UserRole.TOURIST and actor.tourist_id:
            return self.store.list_bookings(
                index_name="tourist_id-index",
                key_name="tourist_id",
                key_value=actor.tourist_id,
                filters=filters,
            )
        if actor.role == UserRole.GUIDE and actor.guide_id:
            return self.store.list_bookings(
                index_name="guide_id-index",
                key_name="guide_id",
                key_value=actor.guide_id,
                filters=filters,
            )
        raise AuthorizationError(message="Only tourists and guides have bookings")

    def list_listing_bookings(
        self, actor: Actor, listing_id: str, filters: BookingFilters
    ) -> BookingPage:
        """Bookings on one listing, for the guide who owns it."""
        listing = self.catalog.get_listing(listing_id)
        if listing is None:
            raise NotFoundError(ErrorCode.LISTING_NOT_FOUND, {"listing_id": listing_id})
        if actor.guide_id is None or actor.guide_id != listing.guide_id:
            raise AuthorizationError(
                message="You are not authorized to view bookings for this listing"
            )
        return self.store.list_bookings(
            index_name="listing_id-index",
            key_name="listing_id",
            key_value=listing_id,
            filters=filters,
        )

    # =========================================================================
    # Transitions
    # =========================================================================

    def update_status(self, actor: Actor, booking_id: str, status: BookingStatus) -> Booking:
        """Guide response to a pending booking: accept or decline."""
        actions = {
            BookingStatus.ACCEPTED: BookingAction.ACCEPT,
            BookingStatus.DECLINED: BookingAction.DECLINE,
        }
        if status not in actions:
            raise ValidationError(ErrorCode.INVALID_STATUS_UPDATE, {"status": status.value})
        return self._transition(actor, booking_id, actions[status])

    def cancel(self, actor: Actor, booking_id: str, reason: str | None) -> Booking:
        """Cancel a pending or accepted booking as its tourist or guide.

        Raises:
            ValidationError: If no cancellation reason is given
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError(ErrorCode.CANCELLATION_REASON_REQUIRED)
        return self._transition(actor, booking_id, BookingAction.CANCEL, reason=reason)

    def complete(self, actor: Actor, booking_id: str) -> Booking:
        """Mark an accepted booking completed and apply the lifetime counters.

        The status change and both counter increments commit as one
        transaction, so a second completion fails with ConflictError and the
        counters move exactly once.
        """
        booking = self._load(booking_id)
        self._authorize(actor, booking, TRANSITIONS[BookingAction.COMPLETE])
        transition = get_transition(booking.status, BookingAction.COMPLETE)

        now = utc_now()
        uow = self.store.unit_of_work()
        self.store.stage_booking_update(
            uow,
            booking_id,
            {"status": BookingStatus.COMPLETED.value, "updated_at": iso(now)},
            expected_status=BookingStatus.ACCEPTED,
            owner=("guide_id", booking.guide_id),
        )
        self.stats.stage_booking_completion(uow, booking)

        if not uow.commit():
            self._raise_stale(booking_id, transition, booking)

        completed = booking.model_copy(
            update={"status": BookingStatus.COMPLETED, "updated_at": now}
        )
        logger.info("Booking %s completed by guide %s", booking_id, actor.guide_id)
        self.publisher.publish(
            BookingCompleted(
                occurred_at=now,
                booking_id=completed.booking_id,
                tourist_id=completed.tourist_id,
                guide_id=completed.guide_id,
                listing_id=completed.listing_id,
                total_amount=completed.total_amount,
            )
        )
        return completed

    def _transition(
        self,
        actor: Actor,
        booking_id: str,
        action: BookingAction,
        reason: str | None = None,
    ) -> Booking:
        """Load, authorize, check the edge, then compare-and-swap the status."""
        booking = self._load(booking_id)
        party = self._authorize(actor, booking, TRANSITIONS[action])
        transition = get_transition(booking.status, action)

        fields = {
            "status": transition.target.value,
            "updated_at": iso(utc_now()),
        }
        if transition.requires_reason:
            fields["cancellation_reason"] = reason
            fields["cancelled_by"] = party.value

        updated = self.store.update_booking(
            booking_id,
            fields,
            expected_status=booking.status,
        )
        if updated is None:
            self._raise_stale(booking_id, transition, booking)

        logger.info(
            "Booking %s: %s -> %s by %s",
            booking_id,
            booking.status.value,
            transition.target.value,
            party.value,
        )
        return updated

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load(self, booking_id: str) -> Booking:
        booking = self.store.get_booking(booking_id)
        if booking is None or booking.is_deleted:
            raise NotFoundError(ErrorCode.BOOKING_NOT_FOUND, {"booking_id": booking_id})
        return booking

    @staticmethod
    def _party_role(actor: Actor, booking: Booking) -> UserRole | None:
        """The role in which the actor takes part in the booking, if any."""
        if actor.role == UserRole.TOURIST and actor.tourist_id == booking.tourist_id:
            return UserRole.TOURIST
        if actor.role == UserRole.GUIDE and actor.guide_id == booking.guide_id:
            return UserRole.GUIDE
        return None

    def _authorize(self, actor: Actor, booking: Booking, transition: Transition) -> UserRole:
        party = self._party_role(actor, booking)
        if party is None or party not in transition.roles:
            raise AuthorizationError(
                details={"booking_id": booking.booking_id},
                message=f"You are not authorized to move this booking to {transition.target.value}",
            )
        return party

    def _raise_stale(
        self, booking_id: str, transition: Transition, seen: Booking
    ) -> NoReturn:
        """Report a lost compare-and-swap using the row's current state."""
        current = self._load(booking_id)
        logger.warning(
            "Booking %s changed concurrently: expected %s, found %s",
            booking_id,
            seen.status.value,
            current.status.value,
        )
        if current.status == seen.status:
            # Status unchanged, so a related row rejected the write
            raise ConflictError(
                ErrorCode.INVALID_TRANSITION,
                current_state=current.status.value,
                requested_state=transition.target.value,
                message="Booking could not be updated because a related profile is missing",
            )
        raise ConflictError(
            (
                ErrorCode.TERMINAL_STATE
                if current.status in TERMINAL_STATES
                else ErrorCode.INVALID_TRANSITION
            ),
            current_state=current.status.value,
            requested_state=transition.target.value,
        )


"""Lifetime booking counters for guides and tourists."""

from marketplace.models import Booking

from .tables import GUIDES, TOURISTS
from .unit_of_work import UnitOfWork


class StatsService:
    """Applies completion counters as part of the caller's unit of work.

    Counters are only ever touched here, and only from booking completion,
    so they move exactly when the booking's COMPLETED write commits.
    """

    def stage_booking_completion(self, uow: UnitOfWork, booking: Booking) -> None:
        """Stage guide and tourist counter increments for a completed booking.

        Both profiles must exist; a missing profile cancels the whole unit
        of work rather than leaving the counters half-applied.
        """
        uow.update(
            GUIDES,
            {"guide_id": booking.guide_id},
            "ADD total_bookings :one, total_revenue :amount",
            {":one": 1, ":amount": booking.total_amount},
            condition="attribute_exists(guide_id)",
        )
        uow.update(
            TOURISTS,
            {"tourist_id": booking.tourist_id},
            "ADD total_tours_booked :one",
            {":one": 1},
            condition="attribute_exists(tourist_id)",
        )

"""Durable store for bookings and their payments.

Owns the item <-> model mapping for the bookings and payments tables and
the conditional writes every state change goes through.
"""

import datetime as dt
import uuid
from decimal import Decimal
from typing import Any

from boto3.dynamodb.conditions import Attr, Key

from marketplace.models import (
    Booking,
    BookingFilters,
    BookingPage,
    BookingStatus,
    PageMeta,
    Payment,
    PaymentFilters,
    PaymentPage,
    PaymentStatus,
    UserRole,
)

from .dynamodb import DynamoDBService
from .tables import BOOKINGS, PAYMENTS
from .unit_of_work import UnitOfWork


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


def to_utc(value: dt.datetime) -> dt.datetime:
    """Normalize a datetime to aware UTC (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.UTC)
    return value.astimezone(dt.UTC)


def iso(value: dt.datetime) -> str:
    return to_utc(value).isoformat()


def _parse(value: str | None) -> dt.datetime | None:
    return dt.datetime.fromisoformat(value) if value else None


def generate_id(prefix: str) -> str:
    """Generate a unique ID like BKG-ABC123DEF456."""
    return f"{prefix}-{uuid.uuid4().hex[:12].upper()}"


def set_expression(
    fields: dict[str, Any],
) -> tuple[str, dict[str, str], dict[str, Any]]:
    """Build a SET update expression with placeholder names.

    Every attribute goes through a #name placeholder so reserved words such
    as ``status`` need no special casing at call sites.
    """
    names: dict[str, str] = {}
    values: dict[str, Any] = {}
    assignments = []
    for index, (field, value) in enumerate(fields.items()):
        names[f"#u{index}"] = field
        values[f":u{index}"] = value
        assignments.append(f"#u{index} = :u{index}")
    return "SET " + ", ".join(assignments), names, values


def _paginate(items: list[Any], page: int, limit: int) -> tuple[list[Any], PageMeta]:
    start = (page - 1) * limit
    return items[start : start + limit], PageMeta.build(page, limit, len(items))


class BookingStore:
    """Repository for Booking and Payment records."""

    BOOKINGS_TABLE = BOOKINGS
    PAYMENTS_TABLE = PAYMENTS

    def __init__(self, db: DynamoDBService) -> None:
        """Initialize booking store.

        Args:
            db: DynamoDB service instance
        """
        self.db = db

    def unit_of_work(self) -> UnitOfWork:
        return UnitOfWork(self.db)

    # =========================================================================
    # Bookings
    # =========================================================================

    def get_booking(self, booking_id: str) -> Booking | None:
        """Get a booking by ID, soft-deleted ones included."""
        item = self.db.get_item(self.BOOKINGS_TABLE, {"booking_id": booking_id})
        return self._item_to_booking(item) if item else None

    def create_booking(self, booking: Booking) -> bool:
        """Insert a new booking.

        Returns:
            False if a booking with the same ID already exists
        """
        return self.db.put_item(
            self.BOOKINGS_TABLE,
            self._booking_to_item(booking),
            condition_expression="attribute_not_exists(booking_id)",
        )

    def update_booking(
        self,
        booking_id: str,
        fields: dict[str, Any],
        *,
        expected_status: BookingStatus | tuple[BookingStatus, ...],
        owner: tuple[str, str] | None = None,
    ) -> Booking | None:
        """Compare-and-swap update of a booking row.

        Args:
            booking_id: Booking to update
            fields: Attributes to SET (already in storage form)
            expected_status: Status (or statuses) the row must currently hold
            owner: Optional (attribute, value) ownership precondition

        Returns:
            The updated booking, or None if the precondition failed
        """
        expression, names, values = set_expression(fields)
        condition, cond_names, cond_values = self._booking_condition(
            expected_status, owner
        )
        attrs = self.db.update_item(
            self.BOOKINGS_TABLE,
            {"booking_id": booking_id},
            expression,
            {**values, **cond_values},
            {**names, **cond_names},
            condition_expression=condition,
        )
        return self._item_to_booking(attrs) if attrs else None

    def stage_booking_update(
        self,
        uow: UnitOfWork,
        booking_id: str,
        fields: dict[str, Any],
        *,
        expected_status: BookingStatus | tuple[BookingStatus, ...] | None = None,
        owner: tuple[str, str] | None = None,
        extra_condition: str | None = None,
    ) -> None:
        """Stage a conditional booking update inside a unit of work."""
        expression, names, values = set_expression(fields)
        if expected_status is None:
            condition, cond_names, cond_values = "attribute_exists(booking_id)", {}, {}
        else:
            condition, cond_names, cond_values = self._booking_condition(
                expected_status, owner
            )
        if extra_condition:
            condition = f"{condition} AND {extra_condition}"
        uow.update(
            self.BOOKINGS_TABLE,
            {"booking_id": booking_id},
            expression,
            {**values, **cond_values},
            names={**names, **cond_names},
            condition=condition,
        )

    @staticmethod
    def _booking_condition(
        expected_status: BookingStatus | tuple[BookingStatus, ...],
        owner: tuple[str, str] | None,
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        statuses = (
            expected_status
            if isinstance(expected_status, tuple)
            else (expected_status,)
        )
        names = {"#cs": "status", "#cd": "is_deleted"}
        values: dict[str, Any] = {":cfalse": False}
        placeholders = []
        for index, status in enumerate(statuses):
            values[f":cs{index}"] = status.value
            placeholders.append(f":cs{index}")
        condition = f"#cs IN ({', '.join(placeholders)}) AND #cd = :cfalse"
        if owner:
            names["#co"] = owner[0]
            values[":co"] = owner[1]
            condition += " AND #co = :co"
        return condition, names, values

    def query_bookings(
        self,
        *,
        index_name: str,
        key_name: str,
        key_value: str,
        filters: BookingFilters | None = None,
    ) -> list[Booking]:
        """Non-deleted bookings on one GSI, newest booking date first."""
        filters = filters or BookingFilters()
        sort_condition = None
        if filters.start_date and filters.end_date:
            sort_condition = Key("booking_date").between(
                iso(filters.start_date), iso(filters.end_date)
            )
        elif filters.start_date:
            sort_condition = Key("booking_date").gte(iso(filters.start_date))
        elif filters.end_date:
            sort_condition = Key("booking_date").lte(iso(filters.end_date))

        filter_expression = Attr("is_deleted").eq(False)
        if filters.status:
            filter_expression = filter_expression & Attr("status").eq(filters.status.value)

        items = self.db.query_by_gsi(
            self.BOOKINGS_TABLE,
            index_name=index_name,
            partition_key_name=key_name,
            partition_key_value=key_value,
            sort_key_condition=sort_condition,
            filter_expression=filter_expression,
            scan_index_forward=False,
        )
        return [self._item_to_booking(item) for item in items]

    def list_bookings(
        self,
        *,
        index_name: str,
        key_name: str,
        key_value: str,
        filters: BookingFilters,
    ) -> BookingPage:
        """One page of non-deleted bookings on a GSI."""
        bookings = self.query_bookings(
            index_name=index_name,
            key_name=key_name,
            key_value=key_value,
            filters=filters,
        )
        data, meta = _paginate(bookings, filters.page, filters.limit)
        return BookingPage(data=data, meta=meta)

    def _booking_to_item(self, booking: Booking) -> dict[str, Any]:
        """Convert Booking model to DynamoDB item."""
        item: dict[str, Any] = {
            "booking_id": booking.booking_id,
            "tourist_id": booking.tourist_id,
            "guide_id": booking.guide_id,
            "listing_id": booking.listing_id,
            "booking_date": iso(booking.booking_date),
            "number_of_people": booking.number_of_people,
            "total_amount": booking.total_amount,
            "status": booking.status.value,
            "payment_status": booking.payment_status.value,
            "is_deleted": booking.is_deleted,
            "created_at": iso(booking.created_at),
            "updated_at": iso(booking.updated_at),
        }
        if booking.special_requests:
            item["special_requests"] = booking.special_requests
        if booking.cancellation_reason:
            item["cancellation_reason"] = booking.cancellation_reason
        if booking.cancelled_by:
            item["cancelled_by"] = booking.cancelled_by.value
        if booking.payment_id:
            item["payment_id"] = booking.payment_id
        return item

    def _item_to_booking(self, item: dict[str, Any]) -> Booking:
        """Convert DynamoDB item to Booking model."""
        return Booking(
            booking_id=item["booking_id"],
            tourist_id=item["tourist_id"],
            guide_id=item["guide_id"],
            listing_id=item["listing_id"],
            booking_date=dt.datetime.fromisoformat(item["booking_date"]),
            number_of_people=int(item["number_of_people"]),
            total_amount=Decimal(str(item["total_amount"])),
            status=BookingStatus(item["status"]),
            payment_status=PaymentStatus(item.get("payment_status", "pending")),
            special_requests=item.get("special_requests"),
            cancellation_reason=item.get("cancellation_reason"),
            cancelled_by=(
                UserRole(item["cancelled_by"]) if item.get("cancelled_by") else None
            ),
            payment_id=item.get("payment_id"),
            is_deleted=bool(item.get("is_deleted", False)),
            created_at=dt.datetime.fromisoformat(item["created_at"]),
            updated_at=dt.datetime.fromisoformat(item["updated_at"]),
        )

    # =========================================================================
    # Payments
    # =========================================================================

    def get_payment(self, payment_id: str) -> Payment | None:
        item = self.db.get_item(self.PAYMENTS_TABLE, {"payment_id": payment_id})
        return self._item_to_payment(item) if item else None

    def get_payment_by_intent(self, payment_intent_id: str) -> Payment | None:
        """Find the payment linked to a Stripe PaymentIntent."""
        items = self.db.query_by_gsi(
            self.PAYMENTS_TABLE,
            index_name="payment_intent-index",
            partition_key_name="stripe_payment_intent_id",
            partition_key_value=payment_intent_id,
        )
        return self._item_to_payment(items[0]) if items else None

    def get_payment_for_booking(self, booking: Booking) -> Payment | None:
        """Get the single payment of a booking, if one was created."""
        if booking.payment_id:
            return self.get_payment(booking.payment_id)
        items = self.db.query_by_gsi(
            self.PAYMENTS_TABLE,
            index_name="booking_id-index",
            partition_key_name="booking_id",
            partition_key_value=booking.booking_id,
        )
        return self._item_to_payment(items[0]) if items else None

    def get_payments(self, payment_ids: list[str]) -> list[Payment]:
        keys = [{"payment_id": pid} for pid in dict.fromkeys(payment_ids)]
        return [self._item_to_payment(item) for item in self.db.batch_get(self.PAYMENTS_TABLE, keys)]

    def list_payments(self, payment_ids: list[str], filters: PaymentFilters) -> PaymentPage:
        """Filter and page a set of payments, newest first."""
        payments = self.get_payments(payment_ids)
        if filters.status:
            payments = [p for p in payments if p.status == filters.status]
        if filters.start_date:
            start = to_utc(filters.start_date)
            payments = [p for p in payments if p.created_at >= start]
        if filters.end_date:
            end = to_utc(filters.end_date)
            payments = [p for p in payments if p.created_at <= end]
        payments.sort(key=lambda p: p.created_at, reverse=True)
        data, meta = _paginate(payments, filters.page, filters.limit)
        return PaymentPage(data=data, meta=meta)

    def list_payments_by_status(
        self, status: PaymentStatus, created_before: dt.datetime | None = None
    ) -> list[Payment]:
        """Payments in one status, oldest first, optionally created before a cutoff."""
        sort_condition = Key("created_at").lt(iso(created_before)) if created_before else None
        items = self.db.query_by_gsi(
            self.PAYMENTS_TABLE,
            index_name="status-index",
            partition_key_name="status",
            partition_key_value=status.value,
            sort_key_condition=sort_condition,
        )
        return [self._item_to_payment(item) for item in items]

    def stage_payment_insert(self, uow: UnitOfWork, payment: Payment) -> None:
        """Stage the payment row and its one-per-booking link on the booking.

        The booking row must be ACCEPTED and must not reference a payment yet.
        """
        uow.put(
            self.PAYMENTS_TABLE,
            self._payment_to_item(payment),
            condition="attribute_not_exists(payment_id)",
        )
        self.stage_booking_update(
            uow,
            payment.booking_id,
            {"payment_id": payment.payment_id, "updated_at": iso(payment.created_at)},
            expected_status=BookingStatus.ACCEPTED,
            extra_condition="attribute_not_exists(payment_id)",
        )

    def stage_payment_update(
        self,
        uow: UnitOfWork,
        payment_id: str,
        fields: dict[str, Any],
        *,
        condition: str,
        names: dict[str, str] | None = None,
        values: dict[str, Any] | None = None,
    ) -> None:
        """Stage a conditional payment update inside a unit of work."""
        expression, set_names, set_values = set_expression(fields)
        uow.update(
            self.PAYMENTS_TABLE,
            {"payment_id": payment_id},
            expression,
            {**set_values, **(values or {})},
            names={**set_names, **(names or {})},
            condition=condition,
        )

    def update_payment(
        self,
        payment_id: str,
        fields: dict[str, Any],
        *,
        condition: str,
        names: dict[str, str] | None = None,
        values: dict[str, Any] | None = None,
    ) -> Payment | None:
        """Compare-and-swap update of a single payment row."""
        expression, set_names, set_values = set_expression(fields)
        attrs = self.db.update_item(
            self.PAYMENTS_TABLE,
            {"payment_id": payment_id},
            expression,
            {**set_values, **(values or {})},
            {**set_names, **(names or {})},
            condition_expression=condition,
        )
        return self._item_to_payment(attrs) if attrs else None

    def _payment_to_item(self, payment: Payment) -> dict[str, Any]:
        """Convert Payment model to DynamoDB item."""
        item: dict[str, Any] = {
            "payment_id": payment.payment_id,
            "booking_id": payment.booking_id,
            "amount": payment.amount,
            "currency": payment.currency,
            "status": payment.status.value,
            "stripe_checkout_session_id": payment.stripe_checkout_session_id,
            "created_at": iso(payment.created_at),
            "updated_at": iso(payment.updated_at),
        }
        if payment.checkout_url:
            item["checkout_url"] = payment.checkout_url
        if payment.stripe_payment_intent_id:
            item["stripe_payment_intent_id"] = payment.stripe_payment_intent_id
        if payment.stripe_refund_id:
            item["stripe_refund_id"] = payment.stripe_refund_id
        if payment.refund_amount is not None:
            item["refund_amount"] = payment.refund_amount
        if payment.refund_reason:
            item["refund_reason"] = payment.refund_reason
        if payment.paid_at:
            item["paid_at"] = iso(payment.paid_at)
        if payment.refunded_at:
            item["refunded_at"] = iso(payment.refunded_at)
        return item

    def _item_to_payment(self, item: dict[str, Any]) -> Payment:
        """Convert DynamoDB item to Payment model."""
        return Payment(
            payment_id=item["payment_id"],
            booking_id=item["booking_id"],
            amount=Decimal(str(item["amount"])),
            currency=item.get("currency", "usd"),
            status=PaymentStatus(item["status"]),
            stripe_checkout_session_id=item["stripe_checkout_session_id"],
            checkout_url=item.get("checkout_url"),
            stripe_payment_intent_id=item.get("stripe_payment_intent_id"),
            stripe_refund_id=item.get("stripe_refund_id"),
            refund_amount=(
                Decimal(str(item["refund_amount"]))
                if item.get("refund_amount") is not None
                else None
            ),
            refund_reason=item.get("refund_reason"),
            paid_at=_parse(item.get("paid_at")),
            refunded_at=_parse(item.get("refunded_at")),
            created_at=dt.datetime.fromisoformat(item["created_at"]),
            updated_at=dt.datetime.fromisoformat(item["updated_at"]),
        )

"""Pytest configuration and fixtures for the marketplace booking core tests.

This module provides reusable fixtures for testing:
- DynamoDB mocking with moto (tables created from the shared schema)
- Seeded listings, guide/tourist profiles and users
- Actors for each role
- A mocked Stripe gateway that verifies real webhook signatures
- Factories for bookings, payments and signed webhook deliveries
"""

import hashlib
import hmac
import json
import os
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any, Generator
from unittest.mock import MagicMock

import boto3
import pytest
from moto import mock_aws

# === Environment Setup ===

# Set environment variables for testing before imports
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("DYNAMODB_TABLE_PREFIX", "test-marketplace")
os.environ.setdefault("ENVIRONMENT", "test")

# Only set fake credentials for moto if no real credentials are present
if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

from marketplace.models import (  # noqa: E402
    Actor,
    Booking,
    BookingStatus,
    DomainEvent,
    Listing,
    Payment,
    PaymentStatus,
    UserRole,
)
from marketplace.services import (  # noqa: E402
    BookingService,
    BookingStore,
    CatalogReader,
    DynamoDBService,
    EventPublisher,
    PaymentService,
    ProfileDirectory,
    RefundService,
    StatsService,
    StripeService,
    WebhookLedger,
    WebhookReconciler,
    get_ssm_service,
    get_stripe_service,
    is_valid_webhook_signature,
    reset_dynamodb_service,
)
from marketplace.services.booking_store import generate_id, iso  # noqa: E402
from marketplace.services.tables import (  # noqa: E402
    BOOKINGS,
    GUIDES,
    LISTINGS,
    PAYMENTS,
    TOURISTS,
    USERS,
    create_tables,
)

TABLE_PREFIX = os.environ["DYNAMODB_TABLE_PREFIX"]
TEST_WEBHOOK_SECRET = "whsec_test_secret123"
TEST_SESSION_ID = "cs_test_abc123"
TEST_CHECKOUT_URL = "https://checkout.stripe.com/c/pay/cs_test_abc123"

GUIDE_ID = "GDE-ATHENS01"
OTHER_GUIDE_ID = "GDE-CRETE01"
TOURIST_ID = "TRS-MARIA01"
OTHER_TOURIST_ID = "TRS-OSKAR01"
LISTING_ID = "LST-ACROPOLIS"
INACTIVE_LISTING_ID = "LST-CLOSED"
ORPHAN_LISTING_ID = "LST-ORPHAN"


# === Singleton Reset ===


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Reset cached service singletons before and after each test.

    Tests using mock_aws need fresh boto3 clients created inside the mock
    context rather than ones left over from a previous test.
    """
    reset_dynamodb_service()
    get_stripe_service.cache_clear()
    get_ssm_service.cache_clear()
    yield
    reset_dynamodb_service()
    get_stripe_service.cache_clear()
    get_ssm_service.cache_clear()


# === DynamoDB Fixtures ===


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS Credentials for moto."""
    if not os.environ.get("AWS_PROFILE"):
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "eu-west-1"


@pytest.fixture
def dynamodb(aws_credentials: None) -> Generator[DynamoDBService, None, None]:
    """DynamoDBService over moto tables created from the shared schema."""
    with mock_aws():
        client = boto3.client("dynamodb", region_name="eu-west-1")
        create_tables(client, TABLE_PREFIX)
        yield DynamoDBService()


@pytest.fixture
def seeded(dynamodb: DynamoDBService) -> DynamoDBService:
    """Two guides, two tourists, their users, an admin and three listings.

    - LST-ACROPOLIS: 50.00 per person, max 8 people, guide GDE-ATHENS01
    - LST-CLOSED: inactive
    - LST-ORPHAN: owned by a guide with no profile
    """
    now = datetime.now(UTC).isoformat()
    for guide_id, name in ((GUIDE_ID, "Eleni Papadaki"), (OTHER_GUIDE_ID, "Nikos Stavrakis")):
        dynamodb.put_item(
            GUIDES,
            {
                "guide_id": guide_id,
                "name": name,
                "email": f"{guide_id.lower()}@example.com",
                "is_deleted": False,
                "total_bookings": 0,
                "total_revenue": Decimal("0"),
                "created_at": now,
            },
        )
    for tourist_id, name, email in (
        (TOURIST_ID, "Maria Jensen", "maria.jensen@example.com"),
        (OTHER_TOURIST_ID, "Oskar Lindqvist", "oskar@example.com"),
    ):
        dynamodb.put_item(
            TOURISTS,
            {
                "tourist_id": tourist_id,
                "name": name,
                "email": email,
                "total_tours_booked": 0,
                "created_at": now,
            },
        )
    listings = [
        (LISTING_ID, GUIDE_ID, True),
        (INACTIVE_LISTING_ID, GUIDE_ID, False),
        (ORPHAN_LISTING_ID, "GDE-MISSING", True),
    ]
    for listing_id, guide_id, active in listings:
        dynamodb.put_item(
            LISTINGS,
            {
                "listing_id": listing_id,
                "guide_id": guide_id,
                "title": "Acropolis sunrise walk",
                "price_per_person": Decimal("50.00"),
                "max_group_size": 8,
                "is_active": active,
                "is_deleted": False,
            },
        )
    users = [
        {"user_id": "USR-MARIA", "cognito_sub": "sub-maria", "role": "tourist",
         "email": "maria.jensen@example.com", "tourist_id": TOURIST_ID},
        {"user_id": "USR-OSKAR", "cognito_sub": "sub-oskar", "role": "tourist",
         "email": "oskar@example.com", "tourist_id": OTHER_TOURIST_ID},
        {"user_id": "USR-ELENI", "cognito_sub": "sub-eleni", "role": "guide",
         "email": "eleni@example.com", "guide_id": GUIDE_ID},
        {"user_id": "USR-NIKOS", "cognito_sub": "sub-nikos", "role": "guide",
         "email": "nikos@example.com", "guide_id": OTHER_GUIDE_ID},
        {"user_id": "USR-ADMIN", "cognito_sub": "sub-admin", "role": "admin",
         "email": "ops@example.com"},
    ]
    for user in users:
        dynamodb.put_item(USERS, user)
    return dynamodb


# === Actors ===


@pytest.fixture
def tourist() -> Actor:
    return Actor(
        user_id="USR-MARIA",
        role=UserRole.TOURIST,
        email="maria.jensen@example.com",
        tourist_id=TOURIST_ID,
    )


@pytest.fixture
def other_tourist() -> Actor:
    return Actor(
        user_id="USR-OSKAR",
        role=UserRole.TOURIST,
        email="oskar@example.com",
        tourist_id=OTHER_TOURIST_ID,
    )


@pytest.fixture
def guide() -> Actor:
    return Actor(user_id="USR-ELENI", role=UserRole.GUIDE, guide_id=GUIDE_ID)


@pytest.fixture
def other_guide() -> Actor:
    return Actor(user_id="USR-NIKOS", role=UserRole.GUIDE, guide_id=OTHER_GUIDE_ID)


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id="USR-ADMIN", role=UserRole.ADMIN, email="ops@example.com")


# === Services ===


@pytest.fixture
def store(seeded: DynamoDBService) -> BookingStore:
    return BookingStore(seeded)


@pytest.fixture
def catalog(seeded: DynamoDBService) -> CatalogReader:
    return CatalogReader(seeded)


@pytest.fixture
def directory(seeded: DynamoDBService) -> ProfileDirectory:
    return ProfileDirectory(seeded)


@pytest.fixture
def published() -> list[DomainEvent]:
    """Events received by the test publisher, in order."""
    return []


@pytest.fixture
def publisher(published: list[DomainEvent]) -> EventPublisher:
    publisher = EventPublisher()
    publisher.subscribe("BookingCompleted", published.append)
    publisher.subscribe("PaymentCompleted", published.append)
    return publisher


@pytest.fixture
def gateway() -> MagicMock:
    """Mocked Stripe gateway.

    Webhook signatures are checked for real against TEST_WEBHOOK_SECRET.
    """
    mock = MagicMock(spec=StripeService)
    mock.create_checkout_session.return_value = {
        "session_id": TEST_SESSION_ID,
        "checkout_url": TEST_CHECKOUT_URL,
        "payment_intent_id": None,
    }
    mock.retrieve_checkout_session.return_value = {
        "session_id": TEST_SESSION_ID,
        "status": "open",
        "payment_status": "unpaid",
        "payment_intent_id": None,
    }
    mock.create_refund.return_value = {
        "refund_id": "re_test_123",
        "amount": 15000,
        "status": "succeeded",
    }
    mock.verify_webhook_signature.side_effect = (
        lambda payload, signature: is_valid_webhook_signature(
            payload, signature, TEST_WEBHOOK_SECRET
        )
    )
    return mock


@pytest.fixture
def booking_service(
    store: BookingStore,
    catalog: CatalogReader,
    directory: ProfileDirectory,
    publisher: EventPublisher,
) -> BookingService:
    return BookingService(
        store=store,
        catalog=catalog,
        directory=directory,
        stats=StatsService(),
        publisher=publisher,
    )


@pytest.fixture
def payment_service(
    store: BookingStore,
    gateway: MagicMock,
    catalog: CatalogReader,
    directory: ProfileDirectory,
) -> PaymentService:
    return PaymentService(
        store=store,
        gateway=gateway,
        catalog=catalog,
        directory=directory,
        frontend_url="https://tours.example.com",
        currency="usd",
    )


@pytest.fixture
def refund_service(store: BookingStore, gateway: MagicMock) -> RefundService:
    return RefundService(store=store, gateway=gateway)


@pytest.fixture
def ledger(seeded: DynamoDBService) -> WebhookLedger:
    return WebhookLedger(seeded)


@pytest.fixture
def reconciler(
    store: BookingStore,
    gateway: MagicMock,
    publisher: EventPublisher,
    ledger: WebhookLedger,
) -> WebhookReconciler:
    return WebhookReconciler(store=store, gateway=gateway, publisher=publisher, ledger=ledger)


@pytest.fixture
def listing(catalog: CatalogReader) -> Listing:
    listing = catalog.get_listing(LISTING_ID)
    assert listing is not None
    return listing


# === Factories ===


@pytest.fixture
def make_booking(store: BookingStore) -> Callable[..., Booking]:
    """Store a booking directly, in any status."""

    def factory(
        status: BookingStatus = BookingStatus.PENDING,
        *,
        tourist_id: str = TOURIST_ID,
        guide_id: str = GUIDE_ID,
        listing_id: str = LISTING_ID,
        number_of_people: int = 3,
        days_ahead: int = 14,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
    ) -> Booking:
        now = datetime.now(UTC)
        booking = Booking(
            booking_id=generate_id("BKG"),
            tourist_id=tourist_id,
            guide_id=guide_id,
            listing_id=listing_id,
            booking_date=now + timedelta(days=days_ahead),
            number_of_people=number_of_people,
            total_amount=Decimal("50.00") * number_of_people,
            status=status,
            payment_status=payment_status,
            created_at=now,
            updated_at=now,
        )
        assert store.create_booking(booking)
        return booking

    return factory


@pytest.fixture
def make_payment(store: BookingStore, seeded: DynamoDBService) -> Callable[..., Payment]:
    """Store a payment for a booking, in any status, and link it to the booking."""

    def factory(
        booking: Booking,
        status: PaymentStatus = PaymentStatus.PENDING,
        *,
        intent_id: str | None = None,
        session_id: str | None = None,
    ) -> Payment:
        now = datetime.now(UTC)
        payment = Payment(
            payment_id=generate_id("PAY"),
            booking_id=booking.booking_id,
            amount=booking.total_amount,
            currency="usd",
            status=status,
            stripe_checkout_session_id=session_id or f"cs_test_{booking.booking_id.lower()}",
            checkout_url=TEST_CHECKOUT_URL,
            stripe_payment_intent_id=intent_id,
            paid_at=now if status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED) else None,
            created_at=now,
            updated_at=now,
        )
        seeded.put_item(PAYMENTS, store._payment_to_item(payment))
        seeded.update_item(
            BOOKINGS,
            {"booking_id": booking.booking_id},
            "SET payment_id = :pid, payment_status = :ps, updated_at = :now",
            {":pid": payment.payment_id, ":ps": status.value, ":now": iso(now)},
        )
        return payment

    return factory


@pytest.fixture
def make_event() -> Callable[..., dict[str, Any]]:
    """Build a Stripe event body."""

    def factory(event_type: str, obj: dict[str, Any], event_id: str | None = None) -> dict[str, Any]:
        return {
            "id": event_id or f"evt_test_{generate_id('E')[2:].lower()}",
            "object": "event",
            "type": event_type,
            "created": int(time.time()),
            "data": {"object": obj},
        }

    return factory


@pytest.fixture
def sign_payload() -> Callable[..., str]:
    """Generate a real Stripe-Signature header for a payload."""

    def factory(
        payload: bytes,
        secret: str = TEST_WEBHOOK_SECRET,
        timestamp: int | None = None,
    ) -> str:
        ts = int(time.time()) if timestamp is None else timestamp
        signed = f"{ts}.{payload.decode('utf-8')}".encode("utf-8")
        signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        return f"t={ts},v1={signature}"

    return factory


@pytest.fixture
def deliver(
    reconciler: WebhookReconciler,
    make_event: Callable[..., dict[str, Any]],
    sign_payload: Callable[..., str],
) -> Callable[..., Any]:
    """Sign and hand a Stripe event to the reconciler, as the webhook route does."""

    def factory(event_type: str, obj: dict[str, Any], event_id: str | None = None) -> Any:
        payload = json.dumps(make_event(event_type, obj, event_id)).encode("utf-8")
        return reconciler.handle_delivery(payload, sign_payload(payload))

    return factory

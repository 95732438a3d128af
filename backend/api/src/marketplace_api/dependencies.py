"""FastAPI dependency injection providers for the booking core services.

Services are created lazily and cached with @lru_cache, so each process
holds one instance of each.

Usage in routes:
    from marketplace_api.dependencies import get_booking_service

    @router.get("/bookings/{booking_id}")
    async def get_booking(
        booking_id: str,
        bookings: BookingService = Depends(get_booking_service),
    ):
        ...

Service Dependency Graph:
    DynamoDBService (singleton via get_dynamodb_service)
        ├── BookingStore
        │       ├── BookingService (+ CatalogReader, ProfileDirectory, StatsService, EventPublisher)
        │       ├── PaymentService (+ StripeService, CatalogReader, ProfileDirectory)
        │       ├── RefundService (+ StripeService)
        │       └── WebhookReconciler (+ StripeService, EventPublisher, WebhookLedger)
        ├── CatalogReader
        └── ProfileDirectory

Testing:
    Use reset_services() to clear cached instances between tests.
"""

from functools import lru_cache

from marketplace.services import (
    BookingService,
    BookingStore,
    CatalogReader,
    EventPublisher,
    PaymentService,
    ProfileDirectory,
    RefundService,
    StatsService,
    StripeService,
    WebhookLedger,
    WebhookReconciler,
    create_default_publisher,
    get_dynamodb_service,
    get_stripe_service,
    reset_dynamodb_service,
)


@lru_cache
def get_booking_store() -> BookingStore:
    return BookingStore(db=get_dynamodb_service())


@lru_cache
def get_catalog_reader() -> CatalogReader:
    return CatalogReader(db=get_dynamodb_service())


@lru_cache
def get_profile_directory() -> ProfileDirectory:
    return ProfileDirectory(db=get_dynamodb_service())


@lru_cache
def get_event_publisher() -> EventPublisher:
    return create_default_publisher()


def get_gateway() -> StripeService:
    """Stripe adapter (its own lru_cache singleton)."""
    return get_stripe_service()


@lru_cache
def get_booking_service() -> BookingService:
    """Get cached BookingService instance."""
    return BookingService(
        store=get_booking_store(),
        catalog=get_catalog_reader(),
        directory=get_profile_directory(),
        stats=StatsService(),
        publisher=get_event_publisher(),
    )


@lru_cache
def get_payment_service() -> PaymentService:
    """Get cached PaymentService instance."""
    return PaymentService(
        store=get_booking_store(),
        gateway=get_gateway(),
        catalog=get_catalog_reader(),
        directory=get_profile_directory(),
    )


@lru_cache
def get_refund_service() -> RefundService:
    return RefundService(store=get_booking_store(), gateway=get_gateway())


@lru_cache
def get_webhook_reconciler() -> WebhookReconciler:
    """Get cached WebhookReconciler instance, with the audit ledger attached."""
    return WebhookReconciler(
        store=get_booking_store(),
        gateway=get_gateway(),
        publisher=get_event_publisher(),
        ledger=WebhookLedger(db=get_dynamodb_service()),
    )


def reset_services() -> None:
    """Clear all cached service instances.

    Call this in test fixtures to ensure clean state between tests.
    Also resets the underlying DynamoDB and Stripe singletons.
    """
    get_booking_store.cache_clear()
    get_catalog_reader.cache_clear()
    get_profile_directory.cache_clear()
    get_event_publisher.cache_clear()
    get_booking_service.cache_clear()
    get_payment_service.cache_clear()
    get_refund_service.cache_clear()
    get_webhook_reconciler.cache_clear()
    get_stripe_service.cache_clear()
    reset_dynamodb_service()

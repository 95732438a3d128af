"""Fixtures for API route tests.

Routes run against the same moto-backed services as the service tests, with
the Stripe gateway mocked. Callers authenticate with the x-user-sub header
the API Gateway authorizer would inject.
"""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from marketplace.services import (
    BookingService,
    PaymentService,
    ProfileDirectory,
    RefundService,
    WebhookReconciler,
)
from marketplace_api.dependencies import (
    get_booking_service,
    get_payment_service,
    get_profile_directory,
    get_refund_service,
    get_webhook_reconciler,
    reset_services,
)
from marketplace_api.main import app

TOURIST_HEADERS = {"x-user-sub": "sub-maria"}
OTHER_TOURIST_HEADERS = {"x-user-sub": "sub-oskar"}
GUIDE_HEADERS = {"x-user-sub": "sub-eleni"}
OTHER_GUIDE_HEADERS = {"x-user-sub": "sub-nikos"}
ADMIN_HEADERS = {"x-user-sub": "sub-admin"}


@pytest.fixture
def client(
    booking_service: BookingService,
    payment_service: PaymentService,
    refund_service: RefundService,
    reconciler: WebhookReconciler,
    directory: ProfileDirectory,
) -> Generator[TestClient, None, None]:
    """TestClient with every service dependency bound to the test services."""
    app.dependency_overrides[get_booking_service] = lambda: booking_service
    app.dependency_overrides[get_payment_service] = lambda: payment_service
    app.dependency_overrides[get_refund_service] = lambda: refund_service
    app.dependency_overrides[get_webhook_reconciler] = lambda: reconciler
    app.dependency_overrides[get_profile_directory] = lambda: directory
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    reset_services()


@pytest.fixture
def as_tourist() -> dict[str, str]:
    return dict(TOURIST_HEADERS)


@pytest.fixture
def as_other_tourist() -> dict[str, str]:
    return dict(OTHER_TOURIST_HEADERS)


@pytest.fixture
def as_guide() -> dict[str, str]:
    return dict(GUIDE_HEADERS)


@pytest.fixture
def as_other_guide() -> dict[str, str]:
    return dict(OTHER_GUIDE_HEADERS)


@pytest.fixture
def as_admin() -> dict[str, str]:
    return dict(ADMIN_HEADERS)

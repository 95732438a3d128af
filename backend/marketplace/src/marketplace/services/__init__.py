"""Services for the marketplace booking core."""

from .booking_service import BookingService
from .booking_store import BookingStore
from .catalog import CatalogReader, ProfileDirectory
from .dynamodb import DynamoDBService, get_dynamodb_service, reset_dynamodb_service
from .events import EventPublisher, create_default_publisher
from .payment_service import PaymentService
from .refund_service import RefundService
from .ssm_service import SSMService, SSMServiceError, get_ssm_service
from .stats_service import StatsService
from .stripe_service import StripeService, StripeServiceError, get_stripe_service
from .unit_of_work import UnitOfWork
from .webhook_handler import WebhookLedger, WebhookReconciler
from .webhook_signature import is_valid_webhook_signature

__all__ = [
    "BookingService",
    "BookingStore",
    "CatalogReader",
    "DynamoDBService",
    "EventPublisher",
    "PaymentService",
    "ProfileDirectory",
    "RefundService",
    "SSMService",
    "SSMServiceError",
    "StatsService",
    "StripeService",
    "StripeServiceError",
    "UnitOfWork",
    "WebhookLedger",
    "WebhookReconciler",
    "create_default_publisher",
    "get_dynamodb_service",
    "get_ssm_service",
    "get_stripe_service",
    "is_valid_webhook_signature",
    "reset_dynamodb_service",
]

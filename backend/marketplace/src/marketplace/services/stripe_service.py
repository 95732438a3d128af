"""Stripe gateway adapter for checkout sessions and refunds.

Uses the v8+ StripeClient pattern. API keys and the webhook signing secret
come from SSM Parameter Store.
"""

import hashlib
import os
from functools import lru_cache
from typing import Any

import stripe
from stripe import StripeClient

from marketplace.models import ErrorCode, GatewayError
from marketplace.utils.logging import get_logger

from .ssm_service import SSMServiceError, get_ssm_service, parameter_path
from .webhook_signature import is_valid_webhook_signature

logger = get_logger(__name__)


class StripeServiceError(GatewayError):
    """Raised when a Stripe operation fails."""

    def __init__(
        self,
        message: str,
        stripe_error_code: str | None = None,
        code: ErrorCode = ErrorCode.STRIPE_API_ERROR,
    ) -> None:
        super().__init__(code, None, message, stripe_error_code)


def _error_code(error: "stripe.StripeError") -> str | None:
    """Stripe's error code, or a synthetic one for transport failures."""
    code = getattr(error, "code", None)
    if code:
        return code
    if isinstance(error, stripe.RateLimitError):
        return "rate_limit"
    if isinstance(error, stripe.APIConnectionError):
        return "api_connection_error"
    return None


class StripeService:
    """Service for Stripe payment operations.

    Handles:
    - Checkout session creation and lookup
    - Webhook signature validation
    - Refund processing

    Usage:
        stripe_svc = get_stripe_service()
        session = stripe_svc.create_checkout_session(
            booking_id="BKG-ABC123DEF456",
            amount_minor=15000,
            currency="usd",
            description="City walking tour for 3",
            success_url="https://example.com/success",
            cancel_url="https://example.com/cancel",
        )
    """

    def __init__(self, environment: str | None = None) -> None:
        """Initialize Stripe service with credentials from SSM.

        Args:
            environment: Environment name (dev, prod). Defaults to ENVIRONMENT env var.
        """
        self._environment = environment or os.environ.get("ENVIRONMENT", "dev")
        self._ssm = get_ssm_service()
        self._client: StripeClient | None = None
        self._webhook_secret: str | None = None

    def _get_client(self) -> StripeClient:
        """Get or create the Stripe client (lazy initialization).

        Raises:
            StripeServiceError: If credentials cannot be retrieved.
        """
        if self._client is None:
            try:
                secret_key = self._ssm.get_parameter(
                    parameter_path("stripe/secret_key", self._environment)
                )
            except SSMServiceError as e:
                raise StripeServiceError(f"Failed to initialize Stripe client: {e}") from e
            self._client = StripeClient(secret_key)
            logger.info("Stripe client initialized for environment: %s", self._environment)
        return self._client

    def get_webhook_secret(self) -> str:
        """Get the webhook signing secret.

        Raises:
            StripeServiceError: If secret cannot be retrieved.
        """
        if self._webhook_secret is None:
            try:
                self._webhook_secret = self._ssm.get_parameter(
                    parameter_path("stripe/webhook_secret", self._environment)
                )
            except SSMServiceError as e:
                raise StripeServiceError(f"Failed to get webhook secret: {e}") from e
        return self._webhook_secret

    def verify_webhook_signature(self, payload: bytes, signature: str | None) -> bool:
        """Check a webhook delivery's signature with the configured secret."""
        return is_valid_webhook_signature(payload, signature, self.get_webhook_secret())

    def create_checkout_session(
        self,
        *,
        booking_id: str,
        amount_minor: int,
        currency: str,
        description: str,
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Create a Stripe Checkout session for a booking.

        The booking ID is the idempotency key, so a retried request for the
        same booking returns Stripe's original session instead of a new one.

        Args:
            booking_id: Booking being paid for.
            amount_minor: Amount in minor currency units (cents).
            currency: ISO currency code.
            description: Line item description.
            success_url: URL to redirect on success.
            cancel_url: URL to redirect on cancel.
            customer_email: Optional customer email for the Stripe receipt.
            metadata: Additional metadata to include.

        Returns:
            Dict with session_id, checkout_url and payment_intent_id.

        Raises:
            StripeServiceError: If session creation fails.
        """
        client = self._get_client()

        session_metadata = {"booking_id": booking_id}
        if metadata:
            session_metadata.update(metadata)

        params: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": currency,
                        "unit_amount": amount_minor,
                        "product_data": {
                            "name": "Tour Booking",
                            "description": description,
                        },
                    },
                    "quantity": 1,
                }
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": session_metadata,
            "payment_intent_data": {"metadata": session_metadata},
        }
        if customer_email:
            params["customer_email"] = customer_email

        try:
            logger.info(
                "Creating Stripe checkout session for booking %s, amount %d",
                booking_id,
                amount_minor,
            )
            session = client.checkout.sessions.create(
                params=params,
                options={"idempotency_key": f"checkout_{booking_id}"},
            )
        except stripe.StripeError as e:
            error_code = _error_code(e)
            logger.error(
                "Stripe checkout session creation failed: %s (code: %s)",
                str(e),
                error_code,
            )
            raise StripeServiceError(
                f"Failed to create checkout session: {e}",
                stripe_error_code=error_code,
            ) from e

        logger.info("Checkout session created: %s for booking %s", session.id, booking_id)
        return {
            "session_id": session.id,
            "checkout_url": session.url,
            "payment_intent_id": session.payment_intent,
        }

    def retrieve_checkout_session(self, session_id: str) -> dict[str, Any]:
        """Fetch the current state of a checkout session.

        Returns:
            Dict with session_id, status, payment_status and payment_intent_id.

        Raises:
            StripeServiceError: If the lookup fails.
        """
        client = self._get_client()
        try:
            session = client.checkout.sessions.retrieve(session_id)
        except stripe.StripeError as e:
            error_code = _error_code(e)
            logger.error("Stripe session lookup failed: %s (code: %s)", str(e), error_code)
            raise StripeServiceError(
                f"Failed to retrieve checkout session: {e}",
                stripe_error_code=error_code,
            ) from e

        intent = session.payment_intent
        if intent is not None and not isinstance(intent, str):
            intent = intent.id
        return {
            "session_id": session.id,
            "status": session.status,
            "payment_status": session.payment_status,
            "payment_intent_id": intent,
        }

    def create_refund(
        self,
        *,
        payment_intent_id: str,
        amount_minor: int | None = None,
        reason: str | None = None,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        """Create a refund for a payment.

        Args:
            payment_intent_id: Stripe PaymentIntent ID (pi_xxx).
            amount_minor: Refund amount in minor units. If None, full refund.
            reason: Reason for refund, stored in refund metadata.
            idempotency_key: Key that makes a retried request safe.

        Returns:
            Dict with refund_id, amount (minor units) and status.

        Raises:
            StripeServiceError: If refund creation fails.
        """
        client = self._get_client()

        params: dict[str, Any] = {"payment_intent": payment_intent_id}
        if amount_minor is not None:
            params["amount"] = amount_minor
        if reason:
            params["metadata"] = {"reason": reason}
        options: dict[str, Any] = {}
        if idempotency_key:
            options["idempotency_key"] = idempotency_key

        try:
            logger.info(
                "Creating refund for PaymentIntent %s, amount %s",
                payment_intent_id,
                amount_minor if amount_minor is not None else "full",
            )
            refund = client.refunds.create(params=params, options=options)
        except stripe.StripeError as e:
            error_code = _error_code(e)
            logger.error(
                "Stripe refund creation failed: %s (code: %s)",
                str(e),
                error_code,
            )
            raise StripeServiceError(
                f"Failed to create refund: {e}",
                stripe_error_code=error_code,
            ) from e

        logger.info("Refund created: %s for PaymentIntent %s", refund.id, payment_intent_id)
        return {
            "refund_id": refund.id,
            "amount": refund.amount,
            "status": refund.status,
        }

    @staticmethod
    def compute_payload_hash(payload: bytes) -> str:
        """Compute the SHA-256 hash of a webhook payload for the audit ledger."""
        return hashlib.sha256(payload).hexdigest()


@lru_cache(maxsize=1)
def get_stripe_service() -> StripeService:
    """Get the shared StripeService instance."""
    return StripeService()

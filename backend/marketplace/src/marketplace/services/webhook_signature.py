"""Stripe webhook signature verification.

A pure function of (raw body, Stripe-Signature header, signing secret).
No network access and no state, so it can be tested with locally generated
signatures.
"""

import stripe

DEFAULT_TOLERANCE_SECONDS = 300


def is_valid_webhook_signature(
    raw_body: bytes,
    signature_header: str | None,
    secret: str,
    tolerance: int | None = DEFAULT_TOLERANCE_SECONDS,
) -> bool:
    """Check a Stripe-Signature header against the exact raw request body.

    Args:
        raw_body: Request body bytes exactly as received.
        signature_header: Stripe-Signature header value (t=...,v1=...).
        secret: Webhook signing secret (whsec_...).
        tolerance: Maximum age of the signature timestamp in seconds,
            or None to skip the timestamp check.

    Returns:
        True only if a v1 signature matches and the timestamp is fresh.
    """
    if not signature_header or not secret:
        return False
    try:
        payload = raw_body.decode("utf-8")
    except UnicodeDecodeError:
        return False
    try:
        stripe.WebhookSignature.verify_header(
            payload, signature_header, secret, tolerance
        )
    except stripe.SignatureVerificationError:
        return False
    return True

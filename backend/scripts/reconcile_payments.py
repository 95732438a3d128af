#!/usr/bin/env python3
"""Resolve payments whose webhook deliveries never settled them.

Asks Stripe for the checkout session of every PENDING or FAILED payment
older than the cutoff and applies what it reports. Meant to run on a
schedule next to the webhook endpoint.

Usage:
    python scripts/reconcile_payments.py --env dev
    python scripts/reconcile_payments.py --env dev --older-than-minutes 120
"""

import argparse
import os
import sys
from collections import Counter
from datetime import timedelta

from marketplace.models import ProcessingResult
from marketplace.services import (
    BookingStore,
    StripeService,
    WebhookReconciler,
    create_default_publisher,
    get_dynamodb_service,
)
from marketplace.utils.logging import configure_logging


def main() -> int:
    parser = argparse.ArgumentParser(description="Reconcile unresolved payments with Stripe")
    parser.add_argument(
        "--env",
        choices=["dev", "staging", "prod"],
        default=os.environ.get("ENVIRONMENT", "dev"),
        help="Target environment (default: ENVIRONMENT env var or dev)",
    )
    parser.add_argument(
        "--older-than-minutes",
        type=int,
        default=30,
        help="Only check payments created before this many minutes ago (default: 30)",
    )
    args = parser.parse_args()

    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

    db = get_dynamodb_service(args.env)
    reconciler = WebhookReconciler(
        store=BookingStore(db),
        gateway=StripeService(args.env),
        publisher=create_default_publisher(),
    )
    outcomes = reconciler.sweep_pending_payments(timedelta(minutes=args.older_than_minutes))

    counts = Counter(outcome.result for outcome in outcomes)
    print(f"Checked {len(outcomes)} payments")
    for result in ProcessingResult:
        if counts[result]:
            print(f"  {result.value}: {counts[result]}")
    for outcome in outcomes:
        if outcome.result == ProcessingResult.ERROR:
            print(f"  ❌ {outcome.payment_id}: {outcome.message}")

    return 1 if counts[ProcessingResult.ERROR] else 0


if __name__ == "__main__":
    sys.exit(main())

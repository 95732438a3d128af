#!/usr/bin/env python3
"""Create the marketplace tables and seed them with development data.

Seeds:
- Two guides with one listing each
- Two tourists
- Users binding a Cognito subject to each profile, plus an admin

Usage:
    python scripts/seed_data.py --env dev
    python scripts/seed_data.py --env dev --tables-only
    python scripts/seed_data.py --env dev --clear-first
"""

import argparse
import os
import sys
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import boto3

from marketplace.services.tables import (
    GUIDES,
    LISTINGS,
    TABLE_SCHEMAS,
    TOURISTS,
    USERS,
    create_tables,
)

# Global region setting (set by main() from args)
_AWS_REGION: str | None = None


def get_dynamodb_resource() -> Any:
    """Get DynamoDB resource with configured region."""
    if _AWS_REGION:
        return boto3.resource("dynamodb", region_name=_AWS_REGION)
    return boto3.resource("dynamodb")


def get_table_prefix(env: str) -> str:
    return os.environ.get("DYNAMODB_TABLE_PREFIX", f"marketplace-{env}")


def sample_data() -> dict[str, list[dict[str, Any]]]:
    now = datetime.now(UTC).isoformat()
    return {
        GUIDES: [
            {
                "guide_id": "GDE-ATHENS01",
                "name": "Eleni Papadaki",
                "email": "eleni@example.com",
                "is_deleted": False,
                "total_bookings": 0,
                "total_revenue": Decimal("0"),
                "created_at": now,
            },
            {
                "guide_id": "GDE-CRETE01",
                "name": "Nikos Stavrakis",
                "email": "nikos@example.com",
                "is_deleted": False,
                "total_bookings": 0,
                "total_revenue": Decimal("0"),
                "created_at": now,
            },
        ],
        LISTINGS: [
            {
                "listing_id": "LST-ACROPOLIS",
                "guide_id": "GDE-ATHENS01",
                "title": "Acropolis sunrise walk",
                "price_per_person": Decimal("50.00"),
                "max_group_size": 8,
                "is_active": True,
                "is_deleted": False,
                "created_at": now,
            },
            {
                "listing_id": "LST-SAMARIA",
                "guide_id": "GDE-CRETE01",
                "title": "Samaria gorge hike",
                "price_per_person": Decimal("85.00"),
                "max_group_size": 12,
                "is_active": True,
                "is_deleted": False,
                "created_at": now,
            },
        ],
        TOURISTS: [
            {
                "tourist_id": "TRS-MARIA01",
                "name": "Maria Jensen",
                "email": "maria.jensen@example.com",
                "total_tours_booked": 0,
                "created_at": now,
            },
            {
                "tourist_id": "TRS-OSKAR01",
                "name": "Oskar Lindqvist",
                "email": "oskar@example.com",
                "total_tours_booked": 0,
                "created_at": now,
            },
        ],
        USERS: [
            {
                "user_id": "USR-ELENI",
                "cognito_sub": "dev-sub-guide-eleni",
                "role": "guide",
                "email": "eleni@example.com",
                "guide_id": "GDE-ATHENS01",
            },
            {
                "user_id": "USR-NIKOS",
                "cognito_sub": "dev-sub-guide-nikos",
                "role": "guide",
                "email": "nikos@example.com",
                "guide_id": "GDE-CRETE01",
            },
            {
                "user_id": "USR-MARIA",
                "cognito_sub": "dev-sub-tourist-maria",
                "role": "tourist",
                "email": "maria.jensen@example.com",
                "tourist_id": "TRS-MARIA01",
            },
            {
                "user_id": "USR-OSKAR",
                "cognito_sub": "dev-sub-tourist-oskar",
                "role": "tourist",
                "email": "oskar@example.com",
                "tourist_id": "TRS-OSKAR01",
            },
            {
                "user_id": "USR-ADMIN",
                "cognito_sub": "dev-sub-admin",
                "role": "admin",
                "email": "ops@example.com",
            },
        ],
    }


def seed_table(prefix: str, table: str, items: list[dict[str, Any]]) -> None:
    dynamodb = get_dynamodb_resource()
    target = dynamodb.Table(f"{prefix}-{table}")
    print(f"Seeding {target.name}")
    with target.batch_writer() as batch:
        for item in items:
            batch.put_item(Item=item)
    print(f"  ✓ {len(items)} items")


def clear_table(prefix: str, table: str) -> int:
    """Delete every item from a table.

    Returns:
        Number of items deleted
    """
    dynamodb = get_dynamodb_resource()
    target = dynamodb.Table(f"{prefix}-{table}")
    key_attrs = [k["AttributeName"] for k in TABLE_SCHEMAS[table]["KeySchema"]]

    deleted = 0
    scan_kwargs: dict[str, Any] = {}
    while True:
        response = target.scan(**scan_kwargs)
        with target.batch_writer() as batch:
            for item in response.get("Items", []):
                batch.delete_item(Key={k: item[k] for k in key_attrs})
                deleted += 1
        if "LastEvaluatedKey" not in response:
            return deleted
        scan_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]


def main() -> int:
    """Run the seed script."""
    global _AWS_REGION

    parser = argparse.ArgumentParser(description="Seed development database with test data")
    parser.add_argument(
        "--env",
        choices=["dev", "staging", "prod"],
        default="dev",
        help="Target environment (default: dev)",
    )
    parser.add_argument(
        "--region",
        default=os.environ.get("AWS_DEFAULT_REGION", "eu-west-1"),
        help="AWS region (default: eu-west-1 or AWS_DEFAULT_REGION env var)",
    )
    parser.add_argument(
        "--tables-only",
        action="store_true",
        help="Only create missing tables",
    )
    parser.add_argument(
        "--clear-first",
        action="store_true",
        help="Clear seeded tables before seeding",
    )
    args = parser.parse_args()

    _AWS_REGION = args.region
    prefix = get_table_prefix(args.env)

    if args.env == "prod":
        confirm = input("⚠️  WARNING: You are about to modify PRODUCTION data. Type 'yes' to continue: ")
        if confirm.lower() != "yes":
            print("Aborted.")
            return 1

    print(f"\n🌱 Seeding {args.env} environment (region: {args.region}, prefix: {prefix})\n")

    client = boto3.client("dynamodb", region_name=args.region)
    created = create_tables(client, prefix)
    for name in created:
        print(f"  Created table {name}")
    if created:
        waiter = client.get_waiter("table_exists")
        for name in created:
            waiter.wait(TableName=name)

    if args.tables_only:
        print("\n✅ Tables ready")
        return 0

    data = sample_data()
    if args.clear_first:
        print("Clearing existing data...")
        for table in data:
            print(f"  Cleared {clear_table(prefix, table)} items from {table}")
        print()

    for table, items in data.items():
        try:
            seed_table(prefix, table, items)
        except Exception as e:
            print(f"  ❌ Failed to seed {table}: {e}")
            return 1

    print("\n✅ Seed completed successfully!")
    return 0


if __name__ == "__main__":
    sys.exit(main())

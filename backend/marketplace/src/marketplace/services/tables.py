"""DynamoDB table definitions for the marketplace booking core.

Shared by the provisioning script and the test fixtures so both always
create the same keys and indexes.
"""

from typing import Any

BOOKINGS = "bookings"
PAYMENTS = "payments"
LISTINGS = "listings"
GUIDES = "guides"
TOURISTS = "tourists"
USERS = "users"
WEBHOOK_EVENTS = "webhook-events"


def _gsi(name: str, hash_key: str, range_key: str | None = None) -> dict[str, Any]:
    key_schema = [{"AttributeName": hash_key, "KeyType": "HASH"}]
    if range_key:
        key_schema.append({"AttributeName": range_key, "KeyType": "RANGE"})
    return {
        "IndexName": name,
        "KeySchema": key_schema,
        "Projection": {"ProjectionType": "ALL"},
    }


def _attrs(*names: str) -> list[dict[str, str]]:
    return [{"AttributeName": name, "AttributeType": "S"} for name in names]


TABLE_SCHEMAS: dict[str, dict[str, Any]] = {
    BOOKINGS: {
        "KeySchema": [{"AttributeName": "booking_id", "KeyType": "HASH"}],
        "AttributeDefinitions": _attrs(
            "booking_id", "tourist_id", "guide_id", "listing_id", "booking_date"
        ),
        "GlobalSecondaryIndexes": [
            _gsi("tourist_id-index", "tourist_id", "booking_date"),
            _gsi("guide_id-index", "guide_id", "booking_date"),
            _gsi("listing_id-index", "listing_id", "booking_date"),
        ],
    },
    PAYMENTS: {
        "KeySchema": [{"AttributeName": "payment_id", "KeyType": "HASH"}],
        "AttributeDefinitions": _attrs(
            "payment_id", "booking_id", "stripe_payment_intent_id", "status", "created_at"
        ),
        "GlobalSecondaryIndexes": [
            _gsi("booking_id-index", "booking_id"),
            _gsi("payment_intent-index", "stripe_payment_intent_id"),
            _gsi("status-index", "status", "created_at"),
        ],
    },
    LISTINGS: {
        "KeySchema": [{"AttributeName": "listing_id", "KeyType": "HASH"}],
        "AttributeDefinitions": _attrs("listing_id"),
    },
    GUIDES: {
        "KeySchema": [{"AttributeName": "guide_id", "KeyType": "HASH"}],
        "AttributeDefinitions": _attrs("guide_id"),
    },
    TOURISTS: {
        "KeySchema": [{"AttributeName": "tourist_id", "KeyType": "HASH"}],
        "AttributeDefinitions": _attrs("tourist_id"),
    },
    USERS: {
        "KeySchema": [{"AttributeName": "user_id", "KeyType": "HASH"}],
        "AttributeDefinitions": _attrs("user_id", "cognito_sub"),
        "GlobalSecondaryIndexes": [_gsi("cognito_sub-index", "cognito_sub")],
    },
    WEBHOOK_EVENTS: {
        "KeySchema": [{"AttributeName": "event_id", "KeyType": "HASH"}],
        "AttributeDefinitions": _attrs("event_id"),
    },
}


def create_tables(client: Any, prefix: str) -> list[str]:
    """Create every marketplace table that does not exist yet.

    Args:
        client: boto3 DynamoDB client
        prefix: Table name prefix (e.g. "marketplace-dev")

    Returns:
        Names of the tables that were created
    """
    existing = set(client.list_tables().get("TableNames", []))
    created = []
    for table, schema in TABLE_SCHEMAS.items():
        name = f"{prefix}-{table}"
        if name in existing:
            continue
        client.create_table(
            TableName=name,
            BillingMode="PAY_PER_REQUEST",
            **schema,
        )
        created.append(name)
    return created

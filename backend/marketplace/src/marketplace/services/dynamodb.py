"""Thin DynamoDB wrapper shared by the stores, the ledger and the unit of work.

Table names are ``{prefix}-{table}``, where the prefix is
``DYNAMODB_TABLE_PREFIX`` or ``marketplace-{ENVIRONMENT}``. Conditional
writes report a failed condition as a return value (False / None) instead
of raising, because for the booking core a failed condition means "someone
else changed the row first".
"""

import os
from typing import Any

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

BATCH_GET_LIMIT = 100

_dynamodb_service_instance: "DynamoDBService | None" = None


def get_dynamodb_service(environment: str | None = None) -> "DynamoDBService":
    """Process-wide DynamoDBService; ``environment`` only applies on first call."""
    global _dynamodb_service_instance
    if _dynamodb_service_instance is None:
        _dynamodb_service_instance = DynamoDBService(environment)
    return _dynamodb_service_instance


def reset_dynamodb_service() -> None:
    """Drop the shared instance so the next caller builds fresh boto3 clients."""
    global _dynamodb_service_instance
    _dynamodb_service_instance = None


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def _cancelled_by_condition(error: ClientError) -> bool:
    """True when a cancelled transaction lost on a ConditionExpression.

    Other cancellation reasons (TransactionConflict, ThrottlingError, ...)
    are transient and must reach the caller as errors.
    """
    reasons = error.response.get("CancellationReasons")
    if reasons:
        return any(r.get("Code") == "ConditionalCheckFailed" for r in reasons)
    return "ConditionalCheckFailed" in error.response.get("Error", {}).get("Message", "")


class DynamoDBService:
    """Environment-aware access to the marketplace tables."""

    def __init__(self, environment: str | None = None) -> None:
        self.environment = environment or os.getenv("ENVIRONMENT", "dev")
        self.name_prefix = os.getenv(
            "DYNAMODB_TABLE_PREFIX", f"marketplace-{self.environment}"
        )
        self._resource = boto3.resource("dynamodb")
        self._client = boto3.client("dynamodb")

    def table_name(self, table: str) -> str:
        return f"{self.name_prefix}-{table}"

    def _table(self, table: str) -> Any:
        return self._resource.Table(self.table_name(table))

    # =========================================================================
    # Single-item operations
    # =========================================================================

    def get_item(
        self,
        table: str,
        key: dict[str, Any],
        consistent_read: bool = True,
    ) -> dict[str, Any] | None:
        """Read one row; strongly consistent unless told otherwise."""
        response = self._table(table).get_item(Key=key, ConsistentRead=consistent_read)
        item: dict[str, Any] | None = response.get("Item")
        return item

    def put_item(
        self,
        table: str,
        item: dict[str, Any],
        condition_expression: str | None = None,
    ) -> bool:
        """Write a row.

        Returns:
            False if ``condition_expression`` did not hold
        """
        kwargs: dict[str, Any] = {"Item": item}
        if condition_expression:
            kwargs["ConditionExpression"] = condition_expression
        try:
            self._table(table).put_item(**kwargs)
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                return False
            raise
        return True

    def update_item(
        self,
        table: str,
        key: dict[str, Any],
        update_expression: str,
        expression_attribute_values: dict[str, Any],
        expression_attribute_names: dict[str, str] | None = None,
        condition_expression: str | None = None,
    ) -> dict[str, Any] | None:
        """Apply an update expression and return the row as it is afterwards.

        Returns:
            All attributes after the update, or None if the condition failed
        """
        kwargs: dict[str, Any] = {
            "Key": key,
            "UpdateExpression": update_expression,
            "ExpressionAttributeValues": expression_attribute_values,
            "ReturnValues": "ALL_NEW",
        }
        if expression_attribute_names:
            kwargs["ExpressionAttributeNames"] = expression_attribute_names
        if condition_expression:
            kwargs["ConditionExpression"] = condition_expression
        try:
            response = self._table(table).update_item(**kwargs)
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                return None
            raise
        attrs: dict[str, Any] | None = response.get("Attributes")
        return attrs

    # =========================================================================
    # Multi-item operations
    # =========================================================================

    def query(
        self,
        table: str,
        key_condition: Any,
        index_name: str | None = None,
        filter_expression: Any | None = None,
        scan_index_forward: bool = True,
    ) -> list[dict[str, Any]]:
        """Query a table or index and return every page of results."""
        kwargs: dict[str, Any] = {
            "KeyConditionExpression": key_condition,
            "ScanIndexForward": scan_index_forward,
        }
        if index_name:
            kwargs["IndexName"] = index_name
        if filter_expression is not None:
            kwargs["FilterExpression"] = filter_expression

        resource = self._table(table)
        items: list[dict[str, Any]] = []
        while True:
            response = resource.query(**kwargs)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key

    def query_by_gsi(
        self,
        table: str,
        index_name: str,
        partition_key_name: str,
        partition_key_value: str,
        sort_key_condition: Any | None = None,
        filter_expression: Any | None = None,
        scan_index_forward: bool = True,
    ) -> list[dict[str, Any]]:
        """Query a secondary index by its partition key, optionally narrowed by sort key."""
        key_condition = Key(partition_key_name).eq(partition_key_value)
        if sort_key_condition is not None:
            key_condition = key_condition & sort_key_condition
        return self.query(
            table,
            key_condition,
            index_name=index_name,
            filter_expression=filter_expression,
            scan_index_forward=scan_index_forward,
        )

    def batch_get(self, table: str, keys: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Fetch rows by key, retrying unprocessed keys. Result order is arbitrary."""
        name = self.table_name(table)
        items: list[dict[str, Any]] = []
        for start in range(0, len(keys), BATCH_GET_LIMIT):
            request: dict[str, Any] = {name: {"Keys": keys[start : start + BATCH_GET_LIMIT]}}
            while request:
                response = self._resource.batch_get_item(RequestItems=request)
                items.extend(response.get("Responses", {}).get(name, []))
                request = response.get("UnprocessedKeys") or {}
        return items

    def transact_write(self, items: list[dict[str, Any]]) -> bool:
        """Run TransactWriteItems (low-level attribute format).

        Returns:
            False if a condition failed and the transaction was cancelled,
            in which case nothing was written

        Raises:
            ClientError: If the transaction was cancelled for any other reason
        """
        try:
            self._client.transact_write_items(TransactItems=items)
        except ClientError as e:
            if _error_code(e) == "TransactionCanceledException" and _cancelled_by_condition(e):
                return False
            raise
        return True

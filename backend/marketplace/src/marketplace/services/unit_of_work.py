"""All-or-nothing multi-row writes over DynamoDB transactions."""

from typing import Any

from boto3.dynamodb.types import TypeSerializer

from .dynamodb import DynamoDBService

_serializer = TypeSerializer()


def _serialize(values: dict[str, Any]) -> dict[str, Any]:
    return {name: _serializer.serialize(value) for name, value in values.items()}


class UnitOfWork:
    """Collects conditional writes and commits them in one transaction.

    Each staged write carries its own condition. If any condition fails the
    whole transaction is cancelled and nothing is written, so a failed commit
    is always a stale-state signal, never a partial write.

    Usage:
        uow = UnitOfWork(db)
        uow.update("bookings", {"booking_id": bid}, "SET #status = :s", {...},
                   condition="#status = :expected")
        uow.update("guides", {"guide_id": gid}, "ADD total_bookings :one", {...})
        if not uow.commit():
            ...  # re-read and report the conflict
    """

    def __init__(self, db: DynamoDBService) -> None:
        self._db = db
        self._items: list[dict[str, Any]] = []

    def __len__(self) -> int:
        return len(self._items)

    def put(
        self,
        table: str,
        item: dict[str, Any],
        condition: str | None = None,
        names: dict[str, str] | None = None,
        values: dict[str, Any] | None = None,
    ) -> None:
        """Stage a conditional Put."""
        put: dict[str, Any] = {
            "TableName": self._db.table_name(table),
            "Item": _serialize(item),
        }
        self._add_condition(put, condition, names, values)
        self._items.append({"Put": put})

    def update(
        self,
        table: str,
        key: dict[str, Any],
        update_expression: str,
        values: dict[str, Any],
        names: dict[str, str] | None = None,
        condition: str | None = None,
    ) -> None:
        """Stage a conditional Update."""
        update: dict[str, Any] = {
            "TableName": self._db.table_name(table),
            "Key": _serialize(key),
            "UpdateExpression": update_expression,
        }
        self._add_condition(update, condition, names, values)
        self._items.append({"Update": update})

    @staticmethod
    def _add_condition(
        operation: dict[str, Any],
        condition: str | None,
        names: dict[str, str] | None,
        values: dict[str, Any] | None,
    ) -> None:
        if condition:
            operation["ConditionExpression"] = condition
        if names:
            operation["ExpressionAttributeNames"] = names
        if values:
            operation["ExpressionAttributeValues"] = _serialize(values)

    def commit(self) -> bool:
        """Write every staged operation atomically.

        Returns:
            True if committed, False if any condition failed (nothing written)
        """
        if not self._items:
            return True
        committed = self._db.transact_write(self._items)
        self._items = []
        return committed

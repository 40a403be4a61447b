"""DynamoDB service wrapper for clinic billing tables."""

import logging
import os
import time
from decimal import Decimal
from typing import Any

import boto3
from boto3.dynamodb.conditions import Key
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

# Pause before retrying a transaction that collided with another in flight
TRANSACTION_CONFLICT_DELAY = 0.05

# Module-level singleton for connection reuse
_dynamodb_service_instance: "DynamoDBService | None" = None


def get_dynamodb_service(environment: str | None = None) -> "DynamoDBService":
    """Get or create the singleton DynamoDB service instance.

    Args:
        environment: Environment name. Only used on first call.

    Returns:
        Shared DynamoDBService instance
    """
    global _dynamodb_service_instance
    if _dynamodb_service_instance is None:
        _dynamodb_service_instance = DynamoDBService(environment)
    return _dynamodb_service_instance


def reset_dynamodb_service() -> None:
    """Reset the singleton instance (for testing only).

    This allows tests to create a fresh DynamoDBService inside
    a mock_aws context.
    """
    global _dynamodb_service_instance
    _dynamodb_service_instance = None


def to_dynamo(value: Any) -> Any:
    """Convert a Python value into something boto3 can store.

    Floats become Decimals (DynamoDB rejects floats); containers are
    converted recursively.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_dynamo(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_dynamo(v) for v in value]
    return value


def from_dynamo(value: Any) -> Any:
    """Convert DynamoDB Decimals back to int/float recursively."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_dynamo(v) for v in value]
    return value


class DynamoDBService:
    """Service for DynamoDB operations with environment-aware table names."""

    def __init__(self, environment: str | None = None) -> None:
        """Initialize DynamoDB service.

        Args:
            environment: Environment name (dev/prod). Defaults to ENVIRONMENT env var.
        """
        self.environment = environment or os.getenv("ENVIRONMENT", "dev")
        # Allow override via DYNAMODB_TABLE_PREFIX for testing
        self.name_prefix = os.getenv(
            "DYNAMODB_TABLE_PREFIX", f"clinic-{self.environment}"
        )
        self._dynamodb = boto3.resource("dynamodb")
        self._client = boto3.client("dynamodb")
        self._serializer = TypeSerializer()

    def _table_name(self, table: str) -> str:
        """Get full table name with prefix."""
        return f"{self.name_prefix}-{table}"

    def _get_table(self, table: str) -> Any:
        """Get DynamoDB table resource."""
        return self._dynamodb.Table(self._table_name(table))

    # Generic CRUD operations

    def get_item(
        self,
        table: str,
        key: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Get a single item by key.

        Args:
            table: Table name without prefix
            key: Primary key dict

        Returns:
            Item dict or None if not found
        """
        response = self._get_table(table).get_item(Key=key)
        item: dict[str, Any] | None = response.get("Item")
        return item

    def put_item(
        self,
        table: str,
        item: dict[str, Any],
        condition_expression: str | None = None,
    ) -> bool:
        """Put an item into the table.

        Args:
            table: Table name without prefix
            item: Item to store
            condition_expression: Optional condition for write

        Returns:
            True if successful, False if condition failed
        """
        try:
            kwargs: dict[str, Any] = {"Item": to_dynamo(item)}
            if condition_expression:
                kwargs["ConditionExpression"] = condition_expression

            self._get_table(table).put_item(**kwargs)
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return False
            raise

    def update_item(
        self,
        table: str,
        key: dict[str, Any],
        update_expression: str,
        expression_attribute_values: dict[str, Any],
        expression_attribute_names: dict[str, str] | None = None,
        condition_expression: str | None = None,
    ) -> dict[str, Any] | None:
        """Update an item with expressions.

        Args:
            table: Table name without prefix
            key: Primary key dict
            update_expression: DynamoDB update expression
            expression_attribute_values: Values for expression
            expression_attribute_names: Names for expression (for reserved words)
            condition_expression: Optional condition for update

        Returns:
            Updated attributes or None if condition failed
        """
        try:
            kwargs: dict[str, Any] = {
                "Key": key,
                "UpdateExpression": update_expression,
                "ExpressionAttributeValues": to_dynamo(expression_attribute_values),
                "ReturnValues": "ALL_NEW",
            }
            if expression_attribute_names:
                kwargs["ExpressionAttributeNames"] = expression_attribute_names
            if condition_expression:
                kwargs["ConditionExpression"] = condition_expression

            response = self._get_table(table).update_item(**kwargs)
            attrs: dict[str, Any] | None = response.get("Attributes")
            return attrs
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return None
            raise

    def query(
        self,
        table: str,
        key_condition: Any,
        index_name: str | None = None,
        filter_expression: Any | None = None,
        limit: int | None = None,
        scan_index_forward: bool = True,
    ) -> list[dict[str, Any]]:
        """Query table or GSI, following pagination until done or ``limit`` is hit.

        Args:
            table: Table name without prefix
            key_condition: Boto3 Key condition
            index_name: GSI name (optional)
            filter_expression: Additional filter (optional)
            limit: Max items to return
            scan_index_forward: Sort order (True=ascending)

        Returns:
            List of items
        """
        kwargs: dict[str, Any] = {
            "KeyConditionExpression": key_condition,
            "ScanIndexForward": scan_index_forward,
        }
        if index_name:
            kwargs["IndexName"] = index_name
        if filter_expression:
            kwargs["FilterExpression"] = filter_expression
        if limit:
            kwargs["Limit"] = limit

        items: list[dict[str, Any]] = []
        table_resource = self._get_table(table)
        while True:
            response = table_resource.query(**kwargs)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key or (limit and len(items) >= limit):
                break
            kwargs["ExclusiveStartKey"] = last_key

        return items[:limit] if limit else items

    def put_items_atomically(
        self,
        puts: list[tuple[str, dict[str, Any], str | None]],
        conflict_retries: int = 1,
    ) -> bool:
        """Write several items in one transaction.

        A cancellation caused only by a concurrent transaction on the same
        items is retried; the retry then sees the other write's outcome.

        Args:
            puts: (table, item, condition_expression) tuples
            conflict_retries: Retries after a TransactionConflict

        Returns:
            True if committed, False if any condition failed

        Raises:
            ClientError: Any other failure, or conflicts beyond the retries
        """
        transact_items = []
        for table, item, condition in puts:
            put: dict[str, Any] = {
                "TableName": self._table_name(table),
                "Item": {
                    k: self._serializer.serialize(v) for k, v in to_dynamo(item).items()
                },
            }
            if condition:
                put["ConditionExpression"] = condition
            transact_items.append({"Put": put})

        attempt = 0
        while True:
            try:
                self._client.transact_write_items(TransactItems=transact_items)  # type: ignore[arg-type]
                return True
            except ClientError as e:
                if e.response["Error"]["Code"] != "TransactionCanceledException":
                    raise
                reasons = {r.get("Code") for r in e.response.get("CancellationReasons", [])}
                if "ConditionalCheckFailed" in reasons:
                    return False
                if "TransactionConflict" not in reasons or attempt >= conflict_retries:
                    raise
            attempt += 1
            logger.info("Transaction conflict, retrying (attempt %d)", attempt)
            time.sleep(TRANSACTION_CONFLICT_DELAY)

    # Convenience methods for common patterns

    def query_by_gsi(
        self,
        table: str,
        index_name: str,
        partition_key_name: str,
        partition_key_value: str,
        sort_key_condition: Any | None = None,
        scan_index_forward: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Query a GSI by partition key.

        Args:
            table: Table name without prefix
            index_name: GSI name
            partition_key_name: Name of partition key attribute
            partition_key_value: Value to query
            sort_key_condition: Optional sort key condition
            scan_index_forward: Sort order (True=ascending)
            limit: Max items to return

        Returns:
            List of items
        """
        key_condition = Key(partition_key_name).eq(partition_key_value)
        if sort_key_condition:
            key_condition = key_condition & sort_key_condition

        return self.query(
            table,
            key_condition,
            index_name=index_name,
            scan_index_forward=scan_index_forward,
            limit=limit,
        )

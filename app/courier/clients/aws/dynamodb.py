"""DynamoDB client for AWS operations.

Thin wrapper over a boto3 DynamoDB client exposing get_item, put_item,
update_item, delete_item, query and scan. Every method returns an
OperationResult so the store never handles botocore exceptions directly.
"""

from typing import Any, Dict, Optional

import structlog
from botocore.client import BaseClient  # type: ignore

from courier.clients.aws.client import execute_aws_api_call, get_boto3_client
from courier.operations.result import OperationResult

logger = structlog.get_logger()


class DynamoDBClient:
    """Client for DynamoDB operations.

    Args:
        region_name: AWS region
        endpoint_url: Optional endpoint override for local development
        client: Pre-built botocore client, mainly for tests
        max_retries: Retries for transient AWS errors
    """

    def __init__(
        self,
        region_name: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        client: Optional[BaseClient] = None,
        max_retries: int = 3,
    ) -> None:
        self._client = client or get_boto3_client(
            "dynamodb", region_name=region_name, endpoint_url=endpoint_url
        )
        self._max_retries = max_retries
        self._logger = logger.bind(component="dynamodb_client")

    def _call(self, method: str, **kwargs) -> OperationResult:
        return execute_aws_api_call(
            self._client, method, max_retries=self._max_retries, **kwargs
        )

    def get_item(
        self, table_name: str, Key: Dict[str, Any], **kwargs
    ) -> OperationResult:
        """Get an item from DynamoDB.

        Args:
            table_name: Name of the DynamoDB table
            Key: Primary key of the item (e.g., {"id": {"S": "123"}})
            **kwargs: Additional get_item parameters

        Returns:
            OperationResult with the raw response
        """
        return self._call("get_item", TableName=table_name, Key=Key, **kwargs)

    def put_item(
        self, table_name: str, Item: Dict[str, Any], **kwargs
    ) -> OperationResult:
        """Put an item into DynamoDB."""
        return self._call("put_item", TableName=table_name, Item=Item, **kwargs)

    def update_item(
        self, table_name: str, Key: Dict[str, Any], **kwargs
    ) -> OperationResult:
        """Update an item in DynamoDB.

        ConditionExpression failures come back as a PERMANENT_ERROR result with
        error_code "ConditionalCheckFailedException".
        """
        return self._call("update_item", TableName=table_name, Key=Key, **kwargs)

    def delete_item(
        self, table_name: str, Key: Dict[str, Any], **kwargs
    ) -> OperationResult:
        """Delete an item from DynamoDB."""
        return self._call("delete_item", TableName=table_name, Key=Key, **kwargs)

    def query(
        self, table_name: str, max_items: Optional[int] = None, **kwargs
    ) -> OperationResult:
        """Query items, following LastEvaluatedKey.

        Args:
            table_name: Name of the DynamoDB table
            max_items: Stop paginating once this many items are collected
            **kwargs: Additional query parameters (IndexName, KeyConditionExpression...)

        Returns:
            OperationResult whose data is the list of raw items
        """
        return self._paginate("query", table_name, max_items, **kwargs)

    def scan(self, table_name: str, **kwargs) -> OperationResult:
        """Scan all items from a table, following pagination."""
        return self._paginate("scan", table_name, None, **kwargs)

    def _paginate(
        self, method: str, table_name: str, max_items: Optional[int], **kwargs
    ) -> OperationResult:
        items = []
        start_key = None
        while True:
            call_kwargs = dict(kwargs)
            if start_key:
                call_kwargs["ExclusiveStartKey"] = start_key
            result = self._call(method, TableName=table_name, **call_kwargs)
            if not result.is_success:
                return result
            page = result.data or {}
            items.extend(page.get("Items", []))
            start_key = page.get("LastEvaluatedKey")
            if not start_key or (max_items is not None and len(items) >= max_items):
                break
        return OperationResult.success(data=items, message=f"dynamodb.{method} ok")

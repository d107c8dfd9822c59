"""Base AWS client utilities.

Provides `get_boto3_client` and `execute_aws_api_call` with the
OperationResult pattern. Settings are never read at import time; callers
pass region and endpoint explicitly.
"""

import time
from typing import Any, Dict, Optional

import boto3  # type: ignore
from botocore.client import BaseClient  # type: ignore
from botocore.exceptions import BotoCoreError, ClientError  # type: ignore
import structlog

from courier.operations.classifiers import classify_aws_error
from courier.operations.result import OperationResult
from courier.operations.status import OperationStatus

logger = structlog.get_logger()


def get_boto3_client(
    service_name: str,
    region_name: Optional[str] = None,
    endpoint_url: Optional[str] = None,
) -> BaseClient:
    """Create a boto3 client for the given service.

    Args:
        service_name: AWS service name (e.g., 'dynamodb')
        region_name: AWS region
        endpoint_url: Optional endpoint override (DynamoDB Local, LocalStack)

    Returns:
        botocore client instance
    """
    session_config: Dict[str, Any] = {}
    if region_name:
        session_config["region_name"] = region_name
    client_config: Dict[str, Any] = {}
    if endpoint_url:
        client_config["endpoint_url"] = endpoint_url
    session = boto3.Session(**session_config)
    return session.client(service_name, **client_config)


def _calculate_retry_delay(attempt: int, backoff_factor: float = 0.5) -> float:
    return backoff_factor * (2**attempt)


def execute_aws_api_call(
    client: BaseClient,
    method: str,
    max_retries: int = 3,
    backoff_factor: float = 0.5,
    **kwargs,
) -> OperationResult:
    """Execute an AWS API call with retries and standardized results.

    Transient errors (throttling, connection problems) are retried with
    exponential backoff. Conditional check failures are returned at once with
    their error code intact so callers can detect a lost race.

    Args:
        client: botocore client to call
        method: client method name (e.g., 'update_item')
        max_retries: retries for transient errors
        backoff_factor: base delay for retry backoff
        **kwargs: parameters forwarded to the API call

    Returns:
        OperationResult with the raw response in `data` on success
    """
    service_name = getattr(getattr(client, "meta", None), "service_model", None)
    service_name = getattr(service_name, "service_name", "aws")
    mapped: Optional[OperationResult] = None

    for attempt in range(max_retries + 1):
        try:
            response = getattr(client, method)(**kwargs)
            return OperationResult.success(
                data=response, message=f"{service_name}.{method} succeeded"
            )
        except (ClientError, BotoCoreError) as e:
            mapped = classify_aws_error(e)

            if (
                mapped.status == OperationStatus.TRANSIENT_ERROR
                and attempt < max_retries
            ):
                delay = _calculate_retry_delay(attempt, backoff_factor)
                logger.warning(
                    "aws_api_retry",
                    service=service_name,
                    method=method,
                    attempt=attempt + 1,
                    error=str(e),
                    delay=delay,
                )
                time.sleep(delay)
                continue

            if mapped.error_code != "ConditionalCheckFailedException":
                logger.error(
                    "aws_api_error_final",
                    service=service_name,
                    method=method,
                    error=str(e),
                )
            return mapped

    return mapped or OperationResult.permanent_error(message="unknown_error")

"""Error classifiers for transport and storage exceptions.

Converts `requests` failures and botocore errors into OperationResult objects
so adapters and stores can decide between retrying and giving up.

Usage:
    from courier.operations.classifiers import classify_http_error

    try:
        response = requests.post(url, json=payload, timeout=10)
        response.raise_for_status()
    except requests.RequestException as exc:
        return classify_http_error(exc)
"""

from typing import Optional

import requests
from botocore.exceptions import ClientError

from courier.operations.result import OperationResult
from courier.operations.status import OperationStatus

DEFAULT_RETRY_AFTER_SECONDS = 60


def _parse_retry_after(response: Optional[requests.Response]) -> int:
    if response is None:
        return DEFAULT_RETRY_AFTER_SECONDS
    header_value = response.headers.get("Retry-After")
    if header_value:
        try:
            return int(float(header_value))
        except (TypeError, ValueError):
            pass
    return DEFAULT_RETRY_AFTER_SECONDS


def classify_http_status(
    status_code: int,
    provider: str,
    response: Optional[requests.Response] = None,
) -> OperationResult:
    """Classify an unsuccessful HTTP status code.

    Status Code Mapping:
    - 429: Rate limiting -> TRANSIENT_ERROR with retry_after
    - 401/403: Credentials rejected -> UNAUTHORIZED
    - 404: Not found -> NOT_FOUND
    - 408: Request timeout -> TRANSIENT_ERROR
    - other 4xx: Rejected request -> PERMANENT_ERROR
    - 5xx: Provider error -> TRANSIENT_ERROR

    Args:
        status_code: HTTP status returned by the provider
        provider: Provider name used in the message
        response: Optional response, used for Retry-After and error text

    Returns:
        OperationResult describing the failure
    """
    detail = ""
    if response is not None:
        detail = (response.text or "")[:200]

    if status_code == 429:
        return OperationResult.error(
            OperationStatus.TRANSIENT_ERROR,
            f"{provider} rate limited",
            error_code="RATE_LIMITED",
            retry_after=_parse_retry_after(response),
        )

    if status_code in (401, 403):
        return OperationResult.error(
            OperationStatus.UNAUTHORIZED,
            f"{provider} rejected credentials ({status_code})",
            error_code="UNAUTHORIZED",
        )

    if status_code == 404:
        return OperationResult.error(
            OperationStatus.NOT_FOUND,
            f"{provider} resource not found",
            error_code="NOT_FOUND",
        )

    if status_code == 408 or 500 <= status_code < 600:
        return OperationResult.transient_error(
            f"{provider} server error ({status_code})",
            error_code=f"HTTP_{status_code}",
        )

    return OperationResult.permanent_error(
        f"{provider} rejected request ({status_code}): {detail}".rstrip(": "),
        error_code=f"HTTP_{status_code}",
    )


def classify_http_error(exc: Exception, provider: str = "provider") -> OperationResult:
    """Classify `requests` exceptions into OperationResult.

    Timeouts and connection errors are transient. HTTPError is classified by
    status code. Anything else raised by requests is treated as transient.

    Args:
        exc: Exception raised while calling the provider
        provider: Provider name used in the message

    Returns:
        OperationResult with appropriate status
    """
    if isinstance(exc, requests.Timeout):
        return OperationResult.transient_error(
            f"{provider} request timed out",
            error_code="TIMEOUT",
        )

    if isinstance(exc, requests.ConnectionError):
        return OperationResult.transient_error(
            f"{provider} connection error: {exc}",
            error_code="CONNECTION_ERROR",
        )

    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return classify_http_status(exc.response.status_code, provider, exc.response)

    return OperationResult.transient_error(
        f"{provider} error: {type(exc).__name__}: {exc}",
        error_code="REQUEST_ERROR",
    )


def classify_aws_error(exc: Exception) -> OperationResult:
    """Classify AWS SDK errors into OperationResult.

    Error Code Mapping:
    - ConditionalCheckFailedException: PERMANENT_ERROR, code preserved so
      stores can tell a lost race from a real failure
    - ThrottlingException / ProvisionedThroughputExceededException: TRANSIENT_ERROR
    - AccessDeniedException: UNAUTHORIZED
    - ResourceNotFoundException: NOT_FOUND
    - ValidationException: PERMANENT_ERROR
    - Other: TRANSIENT_ERROR (AWS convention)

    Args:
        exc: Exception raised by boto3/botocore

    Returns:
        OperationResult with appropriate status
    """
    if not isinstance(exc, ClientError):
        return OperationResult.transient_error(
            f"AWS connection error: {type(exc).__name__}: {exc}",
            error_code="CONNECTION_ERROR",
        )

    error_code = exc.response.get("Error", {}).get("Code", "Unknown")

    if error_code == "ConditionalCheckFailedException":
        return OperationResult.permanent_error(
            "Conditional check failed",
            error_code="ConditionalCheckFailedException",
        )

    if error_code in (
        "ThrottlingException",
        "ProvisionedThroughputExceededException",
        "RequestLimitExceeded",
    ):
        return OperationResult.error(
            OperationStatus.TRANSIENT_ERROR,
            "AWS API throttled",
            error_code="RATE_LIMITED",
            retry_after=DEFAULT_RETRY_AFTER_SECONDS,
        )

    if error_code == "AccessDeniedException":
        return OperationResult.error(
            OperationStatus.UNAUTHORIZED,
            "AWS API access denied",
            error_code="FORBIDDEN",
        )

    if error_code == "ResourceNotFoundException":
        return OperationResult.error(
            OperationStatus.NOT_FOUND,
            "AWS resource not found",
            error_code="NOT_FOUND",
        )

    if error_code in ("ValidationException", "SerializationException"):
        return OperationResult.permanent_error(
            f"AWS validation error: {error_code}",
            error_code="INVALID_REQUEST",
        )

    return OperationResult.transient_error(
        f"AWS error: {error_code}",
        error_code=error_code,
    )

"""HTTP helper for provider transports.

Wraps `requests` so every provider call returns an OperationResult and
shares the same timeout and error classification.
"""

from typing import Any, Dict, Optional

import requests
import structlog

from courier.operations.classifiers import classify_http_error, classify_http_status
from courier.operations.result import OperationResult

logger = structlog.get_logger()

DEFAULT_TIMEOUT_SECONDS = 10.0


def send_request(
    method: str,
    url: str,
    provider: str,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    **kwargs: Any,
) -> OperationResult:
    """Send an HTTP request and classify the outcome.

    Args:
        method: HTTP verb ("GET", "POST")
        url: Target URL
        provider: Provider name used in log events and error messages
        timeout: Request timeout in seconds
        **kwargs: Forwarded to `requests.request` (json, data, headers, auth)

    Returns:
        OperationResult whose data is the decoded JSON body (or text) on success
    """
    try:
        response = requests.request(method, url, timeout=timeout, **kwargs)
    except requests.RequestException as exc:
        logger.warning("http_request_failed", provider=provider, error=str(exc))
        return classify_http_error(exc, provider)

    if not response.ok:
        logger.warning(
            "http_request_rejected",
            provider=provider,
            status_code=response.status_code,
        )
        return classify_http_status(response.status_code, provider, response)

    return OperationResult.success(data=_decode_body(response))


def _decode_body(response: requests.Response) -> Optional[Any]:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def bearer_headers(token: str, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
    if extra:
        headers.update(extra)
    return headers

"""Generic webhook channel adapter.

Posts a JSON document to the recipient URL (or the configured URL). When a
signing secret is configured, the raw body is signed with HMAC-SHA256 and
sent in the `X-Courier-Signature` header as `sha256=<hex>`.
"""

import hashlib
import hmac
import json
from typing import Optional
from urllib.parse import urlparse

from courier.clients.http import send_request
from courier.notifications.channels.base import ChannelAdapter, outcome_from_result
from courier.notifications.models import ChannelType, DeliveryOutcome, utc_now
from courier.operations import OperationResult

SIGNATURE_HEADER = "X-Courier-Signature"


def sign_payload(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class WebhookAdapter(ChannelAdapter):
    """JSON POST to an HTTP endpoint.

    Config keys: url (optional default target), signing_secret (optional),
    headers (optional extra headers), health_url (optional probe target)
    """

    channel_type = ChannelType.WEBHOOK
    provider = "webhook"

    def _target(self, recipient: str) -> Optional[str]:
        if _is_http_url(recipient):
            return recipient
        return self.config.get("url")

    def validate_recipient(self, recipient: str) -> OperationResult:
        base = super().validate_recipient(recipient)
        if not base.is_success:
            return base
        target = self._target(recipient.strip())
        if not target or not _is_http_url(target):
            return OperationResult.permanent_error(
                "webhook recipient must be an http(s) URL", error_code="INVALID_URL"
            )
        return base

    def _send(self, recipient: str, subject: str, body: str) -> DeliveryOutcome:
        document = {
            "recipient": recipient,
            "subject": subject,
            "message": body,
            "sent_at": utc_now().isoformat(),
        }
        raw = json.dumps(document, sort_keys=True).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        headers.update(self.config.get("headers") or {})
        if self.config.get("signing_secret"):
            headers[SIGNATURE_HEADER] = sign_payload(self.config["signing_secret"], raw)

        result = send_request(
            "POST",
            self._target(recipient),
            self.provider,
            timeout=self.timeout,
            data=raw,
            headers=headers,
        )
        return outcome_from_result(result)

    def health_check(self) -> OperationResult:
        """GET `health_url` when configured. Without one there is nothing to probe."""
        health_url = self.config.get("health_url")
        if not health_url:
            return OperationResult.success(message="no health probe configured")
        result = send_request("GET", health_url, self.provider, timeout=self.timeout)
        if result.is_success:
            return OperationResult.success(message="webhook endpoint reachable")
        return result

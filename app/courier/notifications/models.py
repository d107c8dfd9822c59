"""Notification pipeline models.

Pydantic models for queue items, channel records, templates, delivery logs
and adapter outcomes. Stores persist these models; the queue, registry and
worker own every rule about how they change.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class ChannelType(str, Enum):
    """Delivery transport types."""

    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"
    TELEGRAM = "telegram"
    DISCORD = "discord"
    WEBHOOK = "webhook"


class NotificationStatus(str, Enum):
    """Queue item lifecycle states.

    pending -> processing -> sent
    processing -> pending (retryable failure)
    processing -> failed (retries exhausted or permanent failure)
    pending|processing -> cancelled
    """

    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {NotificationStatus.SENT, NotificationStatus.FAILED, NotificationStatus.CANCELLED}
)


class LogStatus(str, Enum):
    """Outcome recorded for one delivery attempt."""

    SENT = "sent"
    FAILED = "failed"


class NotificationPriority(int, Enum):
    """Symbolic priority names. Lower numbers are dispatched first."""

    URGENT = 1
    HIGH = 3
    NORMAL = 5
    LOW = 8


MIN_PRIORITY = 1
MAX_PRIORITY = 10


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class NotificationItem(BaseModel):
    """One unit of enqueued notification work.

    An item carries either a literal `message` or a template reference
    (`template_id` or `template_type`) plus `variables` rendered at dispatch
    time.

    Attributes:
        id: Unique item id
        user_id: Owning user, None for system broadcasts
        channel: Channel type the item is delivered through
        recipient: Channel-specific address (email, E.164 phone, chat id, URL)
        subject: Subject line (ignored by channels without one)
        message: Literal body, when no template is referenced
        template_id: Template record id to render
        template_type: Logical template type to render (e.g. "buy_signal")
        variables: Values substituted into the template
        priority: 1..10, lower is more urgent
        status: Lifecycle state
        scheduled_for: Item is not eligible for dispatch before this time
        retry_count: Retries scheduled so far, never above max_retries
        max_retries: Retry budget
        last_error: Error from the most recent failed attempt
        metadata: Opaque producer data
        channel_id: Channel record used on the last attempt
        last_attempt_at: When the last attempt finished
        sent_at: When the item was delivered
    """

    id: str = Field(default_factory=new_id)
    user_id: Optional[str] = None
    channel: ChannelType
    recipient: str
    subject: str = ""
    message: Optional[str] = None
    template_id: Optional[str] = None
    template_type: Optional[str] = None
    variables: Dict[str, Any] = Field(default_factory=dict)
    priority: int = Field(default=NotificationPriority.NORMAL.value)
    status: NotificationStatus = NotificationStatus.PENDING
    scheduled_for: datetime = Field(default_factory=utc_now)
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=3, ge=0)
    last_error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    channel_id: Optional[str] = None
    last_attempt_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("recipient")
    @classmethod
    def validate_recipient(cls, v: str) -> str:
        """Ensure recipient is not empty."""
        if not v or not v.strip():
            raise ValueError("recipient cannot be empty")
        return v.strip()

    @field_validator("priority", mode="before")
    @classmethod
    def validate_priority(cls, v: Any) -> int:
        """Accept 1..10 or a symbolic name (urgent, high, normal, low)."""
        if v is None:
            return NotificationPriority.NORMAL.value
        if isinstance(v, NotificationPriority):
            return v.value
        if isinstance(v, str) and not v.strip().isdigit():
            try:
                return NotificationPriority[v.strip().upper()].value
            except KeyError as exc:
                raise ValueError(f"unknown priority name: {v}") from exc
        priority = int(v)
        if priority < MIN_PRIORITY or priority > MAX_PRIORITY:
            raise ValueError(
                f"priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}"
            )
        return priority

    @field_validator(
        "scheduled_for", "last_attempt_at", "sent_at", "created_at", "updated_at"
    )
    @classmethod
    def ensure_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Naive timestamps are taken as UTC."""
        return _aware(v)

    @model_validator(mode="after")
    def validate_content(self) -> "NotificationItem":
        """Require a literal message or a template reference."""
        has_message = bool(self.message and self.message.strip())
        if not has_message and not (self.template_id or self.template_type):
            raise ValueError("either message or a template reference is required")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def uses_template(self) -> bool:
        return bool(self.template_id or self.template_type)


class NotificationChannel(BaseModel):
    """Configured delivery transport with health state.

    Attributes:
        id: Unique channel id
        name: Display name
        type: Channel type served
        provider: Adapter implementation ("smtp", "sendgrid", "twilio"...)
        config: Provider credentials and endpoints
        is_enabled: Admin switch
        is_healthy: False after `failure_threshold` consecutive errors
        error_count: Lifetime failed deliveries
        success_count: Lifetime successful deliveries
        consecutive_errors: Retryable failures since the last success
        last_error: Most recent delivery or probe error
        last_health_check: When the last probe ran
        health_check_interval: Seconds between probes
    """

    id: str = Field(default_factory=new_id)
    name: str
    type: ChannelType
    provider: str
    description: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    is_enabled: bool = True
    is_healthy: bool = True
    error_count: int = 0
    success_count: int = 0
    consecutive_errors: int = 0
    last_error: Optional[str] = None
    last_health_check: Optional[datetime] = None
    health_check_interval: int = Field(default=300, ge=1)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("name", "provider")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("value cannot be empty")
        return v.strip()

    @field_validator("last_health_check", "created_at", "updated_at")
    @classmethod
    def ensure_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _aware(v)

    @property
    def is_available(self) -> bool:
        return self.is_enabled and self.is_healthy


class NotificationTemplate(BaseModel):
    """Reusable subject/body shape with `{{name}}` placeholders."""

    id: str = Field(default_factory=new_id)
    name: str
    type: str
    subject: str = ""
    content: str
    variables: List[str] = Field(default_factory=list)
    is_active: bool = True
    is_system: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("name", "type", "content")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("value cannot be empty")
        return v

    @field_validator("created_at", "updated_at")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        return _aware(v)


class NotificationLog(BaseModel):
    """Append-only record of one delivery attempt."""

    id: str = Field(default_factory=new_id)
    notification_item_id: Optional[str] = None
    user_id: Optional[str] = None
    channel: ChannelType
    channel_id: Optional[str] = None
    provider: Optional[str] = None
    recipient: str
    subject: Optional[str] = None
    status: LogStatus
    error_message: Optional[str] = None
    attempt: int = 1
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("created_at")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        return _aware(v)


class DeliveryOutcome(BaseModel):
    """Uniform result of `ChannelAdapter.deliver()`.

    Attributes:
        success: True when the provider accepted the message
        error: Failure description
        retryable: False for failures that will repeat on every attempt
        retry_after: Provider-requested wait in seconds (rate limiting)
        external_id: Provider message id, when returned
    """

    success: bool
    error: Optional[str] = None
    retryable: bool = True
    retry_after: Optional[int] = None
    external_id: Optional[str] = None

    @classmethod
    def ok(cls, external_id: Optional[str] = None) -> "DeliveryOutcome":
        return cls(success=True, external_id=external_id)

    @classmethod
    def failed(
        cls,
        error: str,
        retryable: bool = True,
        retry_after: Optional[int] = None,
    ) -> "DeliveryOutcome":
        return cls(
            success=False, error=error, retryable=retryable, retry_after=retry_after
        )

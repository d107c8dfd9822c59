"""Notification pipeline exceptions.

Admin and producer calls raise ValidationError, InvalidStateError and
NotFoundError synchronously. DeliveryError subclasses are raised during
dispatch and are always converted by the worker into a queue transition
plus a log row.
"""

from typing import Iterable, Optional


class NotificationError(Exception):
    """Base class for notification pipeline errors."""


class ValidationError(NotificationError):
    """Rejected input. The item, channel or template is never created."""


class InvalidStateError(NotificationError):
    """Illegal lifecycle transition, e.g. cancelling a sent item."""


class NotFoundError(NotificationError):
    """Unknown item, channel or template id."""


class StoreError(NotificationError):
    """The durable store failed."""


class DeliveryError(NotificationError):
    """Failure while dispatching one item.

    Attributes:
        retryable: Whether the item should be rescheduled
        retry_after: Provider-requested delay in seconds, if any
    """

    def __init__(
        self,
        message: str,
        retryable: bool = True,
        retry_after: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.retry_after = retry_after


class TemplateNotFoundError(DeliveryError):
    """No active template matches the requested type or id."""


class MissingVariableError(DeliveryError):
    """A template placeholder has no supplied value."""

    def __init__(self, missing: Iterable[str], template: str = "") -> None:
        self.missing = sorted(set(missing))
        label = f" for template '{template}'" if template else ""
        super().__init__(f"missing template variables{label}: {', '.join(self.missing)}")


class NoHealthyChannelError(DeliveryError):
    """No enabled and healthy channel exists for the requested type."""


class AdapterTransportError(DeliveryError):
    """Network, auth or provider failure reported by a channel adapter."""


class ChannelBusyError(DeliveryError):
    """The channel's transport slots stayed occupied past the delivery deadline.

    The adapter was never called, so the attempt is not charged to the channel.
    """

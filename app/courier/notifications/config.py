"""Queue and worker configuration.

Dataclasses validated at construction; a malformed value raises ValueError,
which is the only error allowed to stop the worker process.
"""

from dataclasses import dataclass, field
import socket
from typing import Optional


@dataclass
class QueueConfig:
    """Configuration for queue retry behavior.

    Attributes:
        default_max_retries: Retry budget for items that do not set one
        default_priority: Priority for items that do not set one
        base_delay_seconds: Delay before the first retry
        max_delay_seconds: Cap for exponential backoff
        retention_days: Terminal items older than this are purged
        stale_processing_seconds: Claims untouched this long are released

    Example:
        config = QueueConfig(base_delay_seconds=10, max_delay_seconds=600)
        config.calculate_backoff_delay(3)  # 40
    """

    default_max_retries: int = 3
    default_priority: int = 5
    base_delay_seconds: int = 30
    max_delay_seconds: int = 3600  # 1 hour
    retention_days: int = 30
    stale_processing_seconds: int = 900  # 15 minutes

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.default_max_retries < 0:
            raise ValueError("default_max_retries must be >= 0")
        if not 1 <= self.default_priority <= 10:
            raise ValueError("default_priority must be between 1 and 10")
        if self.base_delay_seconds < 1:
            raise ValueError("base_delay_seconds must be at least 1")
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("max_delay_seconds must be >= base_delay_seconds")
        if self.retention_days < 1:
            raise ValueError("retention_days must be at least 1")
        if self.stale_processing_seconds < 1:
            raise ValueError("stale_processing_seconds must be at least 1")

    @classmethod
    def from_settings(cls, queue_settings) -> "QueueConfig":
        return cls(
            default_max_retries=queue_settings.default_max_retries,
            default_priority=queue_settings.default_priority,
            base_delay_seconds=queue_settings.base_delay_seconds,
            max_delay_seconds=queue_settings.max_delay_seconds,
            retention_days=queue_settings.retention_days,
            stale_processing_seconds=queue_settings.stale_processing_seconds,
        )

    def calculate_backoff_delay(
        self, retry_count: int, retry_after: Optional[int] = None
    ) -> int:
        """Exponential backoff delay in seconds.

        Args:
            retry_count: Retry number being scheduled (1 for the first retry)
            retry_after: Provider-requested minimum delay

        Returns:
            min(base * 2 ** (retry_count - 1), max), raised to retry_after
            but never above max
        """
        exponent = max(retry_count - 1, 0)
        # Avoid huge ints for large retry counts
        if exponent >= 32:
            delay = self.max_delay_seconds
        else:
            delay = min(self.base_delay_seconds * (2**exponent), self.max_delay_seconds)
        if retry_after:
            delay = min(max(delay, int(retry_after)), self.max_delay_seconds)
        return delay


@dataclass
class WorkerConfig:
    """Configuration for the delivery worker.

    Attributes:
        batch_size: Items claimed per polling cycle
        max_concurrency: Deliveries dispatched in parallel
        delivery_timeout_seconds: Caller-enforced limit for one adapter call
        failure_threshold: Consecutive errors before a channel is unhealthy
        poll_interval_seconds: Seconds between polling cycles
        worker_id: Identifier bound to every log event of this worker
    """

    batch_size: int = 50
    max_concurrency: int = 10
    delivery_timeout_seconds: float = 30.0
    failure_threshold: int = 5
    poll_interval_seconds: int = 5
    worker_id: str = field(default_factory=socket.gethostname)

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if self.delivery_timeout_seconds <= 0:
            raise ValueError("delivery_timeout_seconds must be positive")
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if self.poll_interval_seconds < 1:
            raise ValueError("poll_interval_seconds must be at least 1")

    @classmethod
    def from_settings(cls, worker_settings) -> "WorkerConfig":
        return cls(
            batch_size=worker_settings.batch_size,
            max_concurrency=worker_settings.max_concurrency,
            delivery_timeout_seconds=worker_settings.delivery_timeout_seconds,
            failure_threshold=worker_settings.failure_threshold,
            poll_interval_seconds=worker_settings.poll_interval_seconds,
            worker_id=worker_settings.worker_id,
        )

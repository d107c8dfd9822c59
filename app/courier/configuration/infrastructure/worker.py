"""Delivery worker settings."""

import socket

from pydantic import Field

from courier.configuration.base import InfrastructureSettings


class WorkerSettings(InfrastructureSettings):
    """Delivery worker configuration.

    Environment Variables:
        WORKER_ID: Identifier used in logs (default: hostname)
        WORKER_BATCH_SIZE: Items claimed per polling cycle (default: 50)
        WORKER_MAX_CONCURRENCY: Parallel deliveries per worker (default: 10)
        WORKER_DELIVERY_TIMEOUT_SECONDS: Caller-enforced adapter timeout (default: 30)
        WORKER_POLL_INTERVAL_SECONDS: Seconds between polling cycles (default: 5)
        WORKER_FAILURE_THRESHOLD: Consecutive errors before a channel is unhealthy (default: 5)
        WORKER_HEALTH_CHECK_INTERVAL_SECONDS: Default probe interval for new channels (default: 300)
    """

    worker_id: str = Field(default_factory=socket.gethostname, alias="WORKER_ID")
    batch_size: int = Field(default=50, alias="WORKER_BATCH_SIZE")
    max_concurrency: int = Field(default=10, alias="WORKER_MAX_CONCURRENCY")
    delivery_timeout_seconds: float = Field(
        default=30.0, alias="WORKER_DELIVERY_TIMEOUT_SECONDS"
    )
    poll_interval_seconds: int = Field(default=5, alias="WORKER_POLL_INTERVAL_SECONDS")
    failure_threshold: int = Field(default=5, alias="WORKER_FAILURE_THRESHOLD")
    health_check_interval_seconds: int = Field(
        default=300, alias="WORKER_HEALTH_CHECK_INTERVAL_SECONDS"
    )

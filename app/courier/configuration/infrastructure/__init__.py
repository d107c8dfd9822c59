"""Infrastructure settings __init__ - exports all infrastructure settings."""

from courier.configuration.infrastructure.queue import QueueSettings
from courier.configuration.infrastructure.storage import StorageSettings
from courier.configuration.infrastructure.worker import WorkerSettings

__all__ = [
    "QueueSettings",
    "StorageSettings",
    "WorkerSettings",
]

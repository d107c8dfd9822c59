"""Context binding for structured logging.

Binds correlation ids and worker/notification metadata to every log entry
emitted inside a block.

Usage:
    from courier.logging import bind_request_context

    with bind_request_context(worker_id="worker-1", notification_id="abc"):
        logger.info("delivering_notification")
"""

import uuid
from contextlib import contextmanager
from typing import Any, Generator, Optional

import structlog


@contextmanager
def bind_request_context(
    correlation_id: Optional[str] = None,
    **extra_context: Any,
) -> Generator[None, None, None]:
    """Bind context to all logs within the context manager.

    Args:
        correlation_id: Unique identifier. Auto-generated if not provided.
        **extra_context: Additional key-value pairs to include in logs.
            None values are skipped.

    Yields:
        None - context is bound to structlog's context vars.
    """
    context: dict[str, Any] = {"correlation_id": correlation_id or str(uuid.uuid4())}
    context.update({k: v for k, v in extra_context.items() if v is not None})

    structlog.contextvars.bind_contextvars(**context)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*context.keys())


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID from the logging context."""
    ctx = structlog.contextvars.get_contextvars()
    return ctx.get("correlation_id")


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID in the current logging context."""
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def clear_request_context() -> None:
    """Clear all bound context from the logging context."""
    structlog.contextvars.clear_contextvars()

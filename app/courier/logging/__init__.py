"""Structured logging infrastructure.

Public API:
    - configure_logging(): Initialize logging for the worker process
    - get_logger(): Get a logger instance with a specific name
    - get_module_logger(): Get a logger for the calling module
    - bind_request_context(): Context manager for scoped logging context
    - get_correlation_id() / set_correlation_id() / clear_request_context()
"""

from courier.logging.setup import (
    configure_logging,
    get_logger,
    get_module_logger,
)

from courier.logging.context import (
    bind_request_context,
    clear_request_context,
    get_correlation_id,
    set_correlation_id,
)

from courier.logging.formatters import (
    SENSITIVE_PATTERNS,
    add_app_info,
    mask_sensitive_data,
    truncate_large_values,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "get_module_logger",
    "bind_request_context",
    "get_correlation_id",
    "set_correlation_id",
    "clear_request_context",
    "add_app_info",
    "mask_sensitive_data",
    "truncate_large_values",
    "SENSITIVE_PATTERNS",
]

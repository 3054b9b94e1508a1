"""Structured logging infrastructure.

Centralized structlog configuration for the delivery service.

Public API:
    - configure_logging(): Initialize logging for the application
    - get_logger(): Get a logger instance with a specific name
    - get_module_logger(): Get a logger for the calling module
    - bind_cycle_context(): Context manager binding a delivery cycle ID
    - bind_request_context(): Context manager for request-scoped logging
    - get_cycle_id() / get_correlation_id(): Read bound identifiers
    - clear_logging_context(): Clear all bound context

Example:
    from infrastructure.logging import get_module_logger, bind_cycle_context

    logger = get_module_logger()

    with bind_cycle_context(trigger="scheduled"):
        logger.info("delivery_cycle_started")
"""

from infrastructure.logging.setup import (
    configure_logging,
    get_logger,
    get_module_logger,
)
from infrastructure.logging.context import (
    bind_cycle_context,
    bind_request_context,
    clear_logging_context,
    get_correlation_id,
    get_cycle_id,
)
from infrastructure.logging.formatters import (
    SENSITIVE_PATTERNS,
    add_app_info,
    mask_sensitive_data,
    truncate_large_values,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "get_module_logger",
    "bind_cycle_context",
    "bind_request_context",
    "clear_logging_context",
    "get_correlation_id",
    "get_cycle_id",
    "SENSITIVE_PATTERNS",
    "add_app_info",
    "mask_sensitive_data",
    "truncate_large_values",
]

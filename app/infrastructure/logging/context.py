"""Context binding for structured logging.

Delivery cycles and API requests bind a small set of identifiers into
structlog's context variables so every log entry emitted while the work is
in progress carries them.

Usage:
    from infrastructure.logging import bind_cycle_context

    with bind_cycle_context(trigger="scheduled") as cycle_id:
        logger.info("delivery_cycle_started")

Dependencies:
    - structlog.contextvars
"""

import uuid
from contextlib import contextmanager
from typing import Any, Generator, Optional

import structlog


@contextmanager
def _bound(context: dict[str, Any]) -> Generator[None, None, None]:
    structlog.contextvars.bind_contextvars(**context)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*context.keys())


@contextmanager
def bind_cycle_context(
    cycle_id: Optional[str] = None,
    trigger: Optional[str] = None,
    **extra_context: Any,
) -> Generator[str, None, None]:
    """Bind a delivery cycle identifier to all logs within the block.

    Args:
        cycle_id: Identifier for the cycle. Auto-generated if not provided.
        trigger: What started the cycle ("scheduled", "manual", ...).
        **extra_context: Additional key-value pairs to include in logs.

    Yields:
        The cycle identifier in effect for the block.
    """
    context: dict[str, Any] = {"cycle_id": cycle_id or uuid.uuid4().hex}
    if trigger is not None:
        context["trigger"] = trigger
    context.update(extra_context)

    with _bound(context):
        yield context["cycle_id"]


@contextmanager
def bind_request_context(
    correlation_id: Optional[str] = None,
    request_path: Optional[str] = None,
    request_method: Optional[str] = None,
    **extra_context: Any,
) -> Generator[str, None, None]:
    """Bind request-scoped context to all logs within the block.

    Yields the correlation id in effect so callers can echo it back.

    Args:
        correlation_id: Unique request identifier. Auto-generated if not provided.
        request_path: HTTP request path (e.g., "/api/v1/deliveries").
        request_method: HTTP method (e.g., "GET", "POST").
        **extra_context: Additional key-value pairs to include in logs.
    """
    context: dict[str, Any] = {"correlation_id": correlation_id or str(uuid.uuid4())}
    if request_path is not None:
        context["request_path"] = request_path
    if request_method is not None:
        context["request_method"] = request_method
    context.update(extra_context)

    with _bound(context):
        yield context["correlation_id"]


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID from the logging context."""
    return structlog.contextvars.get_contextvars().get("correlation_id")


def get_cycle_id() -> Optional[str]:
    """Get the identifier of the delivery cycle currently in progress, if any."""
    return structlog.contextvars.get_contextvars().get("cycle_id")


def clear_logging_context() -> None:
    """Clear all bound logging context.

    Worker threads call this before picking up new work so identifiers from a
    previous cycle never leak into unrelated log entries.
    """
    structlog.contextvars.clear_contextvars()

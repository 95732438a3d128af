"""Structured logging utilities with correlation ID support.

Usage:
    from marketplace.utils.logging import get_logger, set_correlation_id

    # In middleware/request handler:
    set_correlation_id(request.headers.get("X-Correlation-ID"))

    # In service code:
    logger = get_logger(__name__)
    logger.info("Booking %s accepted", booking_id)
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Any

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

NO_CORRELATION_ID = "no-correlation-id"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set the correlation ID for the current context, generating one if absent."""
    cid = correlation_id or str(uuid.uuid4())
    _correlation_id.set(cid)
    return cid


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def clear_correlation_id() -> None:
    _correlation_id.set(None)


class CorrelationIdFilter(logging.Filter):
    """Logging filter that adds correlation_id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return True


class StructuredFormatter(logging.Formatter):
    """Formatter that prefixes every line with the correlation ID."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return f"[{record.correlation_id}] {super().format(record)}"


def configure_logging(level: int | str = logging.INFO) -> None:
    """Install the structured formatter on the root logger.

    Safe to call more than once; existing handlers are reformatted rather
    than duplicated.
    """
    root = logging.getLogger()
    if not root.handlers:
        root.addHandler(logging.StreamHandler())
    for handler in root.handlers:
        handler.setFormatter(StructuredFormatter(LOG_FORMAT))
    root.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with correlation ID support.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())
    return logger


def _join(head: str, context: dict[str, Any]) -> str:
    parts = [head]
    parts.extend(f"{key}={value}" for key, value in context.items())
    return " | ".join(parts)


def log_payment_operation(
    logger: logging.Logger,
    operation: str,
    *,
    payment_id: str | None = None,
    booking_id: str | None = None,
    amount: Any = None,
    status: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a payment operation with structured context.

    Args:
        logger: Logger instance
        operation: Operation name (e.g., "create_session", "refund")
        payment_id: Payment ID if available
        booking_id: Booking ID if available
        amount: Amount if relevant
        status: Payment status after the operation
        error: Error message if the operation failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {}
    if payment_id:
        context["payment_id"] = payment_id
    if booking_id:
        context["booking_id"] = booking_id
    if amount is not None:
        context["amount"] = amount
    if status:
        context["status"] = status
    if error:
        context["error"] = error
    context.update(extra)

    message = _join(f"Payment operation: {operation}", context)
    record_extra = {"operation": operation, **context}
    if error:
        logger.error(message, extra=record_extra)
    else:
        logger.info(message, extra=record_extra)


def log_webhook_event(
    logger: logging.Logger,
    event_type: str,
    event_id: str,
    *,
    booking_id: str | None = None,
    payment_id: str | None = None,
    result: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a webhook event with structured context.

    Dropped and duplicate deliveries are warnings, errors are errors,
    everything else is info.
    """
    context: dict[str, Any] = {}
    if result:
        context["result"] = result
    if booking_id:
        context["booking"] = booking_id
    if payment_id:
        context["payment"] = payment_id
    if error:
        context["error"] = error
    context.update(extra)

    message = _join(f"Webhook event: {event_type} ({event_id})", context)
    record_extra = {"event_type": event_type, "event_id": event_id, **context}
    if result == "error":
        logger.error(message, extra=record_extra)
    elif result in ("duplicate", "dropped"):
        logger.warning(message, extra=record_extra)
    else:
        logger.info(message, extra=record_extra)

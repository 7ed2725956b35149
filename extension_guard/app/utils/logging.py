"""
Structured logging system for the extension guard service.

This module provides:
- Structured key-value logging via structlog
- Correlation IDs scoped to the current request/task
- Performance context for timing service and storage operations
- Console-friendly rich output for development, JSON for production
- Business event logging for administrative actions
"""

import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from rich.console import Console
from rich.text import Text
from rich.traceback import install as install_rich_traceback

from extension_guard.config.settings import get_settings


# Correlation ID and performance context for the current task
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
_performance_context: ContextVar[Optional[Dict[str, Any]]] = ContextVar("performance_context", default=None)

# Rich console for enhanced output
console = Console()


class CorrelationIDProcessor:
    """Structlog processor to add correlation IDs to log records."""

    def __call__(self, logger, method_name, event_dict):
        """Add correlation ID to the log event."""
        correlation_id = get_correlation_id()
        if correlation_id and "correlation_id" not in event_dict:
            event_dict["correlation_id"] = correlation_id
        return event_dict


class TimestampProcessor:
    """Structlog processor to add ISO timestamps to log records."""

    def __call__(self, logger, method_name, event_dict):
        """Add ISO timestamp to the log event."""
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
        return event_dict


class PerformanceProcessor:
    """Structlog processor to add performance metrics to log records."""

    def __call__(self, logger, method_name, event_dict):
        """Add performance context if available."""
        context = _performance_context.get()
        if context:
            for key, value in context.items():
                event_dict.setdefault(key, value)
        return event_dict


class ConsoleLogFormatter:
    """
    Human-readable console renderer with rich colors.

    Renders the event, logger name and correlation ID first, followed by
    the remaining context as key=value pairs.
    """

    LEVEL_COLORS = {
        "DEBUG": "dim white",
        "INFO": "blue",
        "WARNING": "yellow",
        "ERROR": "red",
        "CRITICAL": "bold red"
    }

    STANDARD_FIELDS = {"timestamp", "level", "logger", "correlation_id", "event"}

    def __init__(self, use_colors: bool = True):
        self.console = Console(force_terminal=use_colors, color_system="auto" if use_colors else None)

    def __call__(self, _, __, event_dict):
        """Format the log event for output."""
        text = self._build_text(event_dict)
        with self.console.capture() as capture:
            self.console.print(text, end="", soft_wrap=True)
        return capture.get()

    def _build_text(self, event_dict: Dict[str, Any]) -> Text:
        level = str(event_dict.get("level", "info")).upper()
        text = Text()

        timestamp = event_dict.get("timestamp", "")
        if timestamp:
            text.append(f"{timestamp[:19]} ", style="dim")

        text.append(f"{level:8} ", style=self.LEVEL_COLORS.get(level, "white"))

        logger_name = event_dict.get("logger")
        if logger_name:
            text.append(f"{logger_name} ", style="cyan")

        correlation_id = event_dict.get("correlation_id")
        if correlation_id:
            text.append(f"{str(correlation_id)[:8]} ", style="magenta")

        text.append(str(event_dict.get("event", "")))

        context = {
            k: v for k, v in event_dict.items()
            if k not in self.STANDARD_FIELDS
        }
        if context:
            text.append(" " + " ".join(f"{k}={v}" for k, v in context.items()), style="dim")

        return text


def setup_logging(
    level: str = "INFO",
    use_json: bool = False,
    enable_correlation_ids: bool = True
) -> None:
    """
    Setup structured logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: Output structured JSON logs
        enable_correlation_ids: Enable correlation ID tracking
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        TimestampProcessor(),
    ]

    if enable_correlation_ids:
        processors.append(CorrelationIDProcessor())

    processors.append(PerformanceProcessor())

    if use_json:
        processors.append(structlog.processors.JSONRenderer(default=str))
    else:
        processors.append(ConsoleLogFormatter(use_colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=False,
    )

    # Standard logging receives the already rendered structlog lines
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    root_logger.addHandler(handler)

    # Uncaught exceptions render through rich in text mode
    if not use_json:
        install_rich_traceback(console=console, show_locals=False)


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog bound logger
    """
    return structlog.get_logger(name)


def get_correlation_id() -> Optional[str]:
    """Get the correlation ID for the current request/task."""
    return _correlation_id.get()


@contextmanager
def correlation_context(correlation_id: Optional[str] = None):
    """
    Context manager for correlation ID scoping.

    Usage:
        with correlation_context("req-123"):
            logger.info("This log will have correlation_id=req-123")
    """
    token = _correlation_id.set(correlation_id or str(uuid.uuid4()))
    try:
        yield _correlation_id.get()
    finally:
        _correlation_id.reset(token)


@contextmanager
def performance_context(
    operation: str,
    **context: Any
):
    """
    Context manager for performance monitoring.

    Args:
        operation: Name of the operation being measured
        **context: Additional context to include in logs

    Usage:
        with performance_context("custom_extension_add", requested=3):
            ...
    """
    start_time = time.perf_counter()
    logger = get_logger("performance")

    perf_context = {"operation": operation, **context}
    token = _performance_context.set(perf_context)

    logger.debug("Operation started", **perf_context)

    try:
        yield perf_context
    except Exception as e:
        duration = time.perf_counter() - start_time
        logger.debug(
            "Operation failed",
            operation=operation,
            duration=round(duration, 6),
            error=str(e),
            **context
        )
        raise
    else:
        duration = time.perf_counter() - start_time
        logger.debug(
            "Operation completed",
            operation=operation,
            duration=round(duration, 6),
            **context
        )
    finally:
        _performance_context.reset(token)


class DatabaseLogger:
    """Specialized logger for database operations."""

    def __init__(self):
        self.logger = get_logger("database")

    def query_executed(
        self,
        database_type: str,
        operation: str,
        collection: Optional[str] = None,
        result_count: Optional[int] = None
    ):
        """Log database query execution."""
        self.logger.debug(
            "Database query executed",
            database_type=database_type,
            operation=operation,
            collection=collection,
            result_count=result_count,
            event_type="query_executed"
        )

    def connection_established(self, database_type: str, database_name: str):
        """Log database connection establishment."""
        self.logger.info(
            "Database connection established",
            database_type=database_type,
            database_name=database_name,
            event_type="connection_established"
        )

    def connection_failed(self, database_type: str, error: str):
        """Log database connection failures."""
        self.logger.error(
            "Database connection failed",
            database_type=database_type,
            error=error,
            event_type="connection_failed"
        )

    def transaction_rolled_back(self, database_type: str, actions: int, error: str):
        """Log a rolled back repository transaction."""
        self.logger.warning(
            "Transaction rolled back",
            database_type=database_type,
            compensating_actions=actions,
            error=error,
            event_type="transaction_rolled_back"
        )


database_logger = DatabaseLogger()


def initialize_logging_from_settings() -> None:
    """Initialize logging using application settings."""
    settings = get_settings()

    setup_logging(
        level=settings.logging.level,
        use_json=settings.logging.format == "json",
        enable_correlation_ids=settings.logging.enable_correlation_ids
    )

    logger = get_logger(__name__)
    logger.info(
        "Logging system initialized",
        level=settings.logging.level,
        format=settings.logging.format,
        correlation_ids_enabled=settings.logging.enable_correlation_ids
    )


def log_business_event(
    event_type: str,
    request: Optional[Any] = None,
    **context: Any
) -> None:
    """
    Log an administrative/business event with structured context.

    Args:
        event_type: Type of business event (e.g., "custom_extensions_added")
        request: Optional FastAPI Request object for automatic context extraction
        **context: Additional context data for the event

    Usage:
        log_business_event("fixed_extension_updated", request, extension="exe")
    """
    business_logger = get_logger("business")

    event_context: Dict[str, Any] = {"event_type": event_type}

    if request is not None:
        url = getattr(request, "url", None)
        if url is not None:
            event_context["request_path"] = str(url.path)
            event_context["request_method"] = getattr(request, "method", "UNKNOWN")
        client = getattr(request, "client", None)
        if client is not None:
            event_context["client_ip"] = getattr(client, "host", "unknown")

    event_context.update(context)

    business_logger.info(f"Business event: {event_type}", **event_context)


def log_route_entry(request: Any, endpoint_name: Optional[str] = None, **context: Any) -> None:
    """
    Log API route entry with request context.

    Args:
        request: FastAPI Request object
        endpoint_name: Optional endpoint name override
        **context: Additional context for the log entry
    """
    route_logger = get_logger("routes")

    route_context: Dict[str, Any] = {"route_event": "entry"}
    url = getattr(request, "url", None)
    if url is not None:
        route_context["path"] = str(url.path)
    if hasattr(request, "method"):
        route_context["method"] = request.method
    if endpoint_name:
        route_context["endpoint"] = endpoint_name

    route_context.update(context)
    route_logger.debug("Route handler entered", **route_context)

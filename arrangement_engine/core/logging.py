"""
Structured logging configuration with correlation IDs and arrangement context.
"""
import logging
import random
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog

from arrangement_engine.config import settings

# Context variables for call-scoped data
correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)
arrangement_id_var: ContextVar[Optional[str]] = ContextVar('arrangement_id', default=None)
agent_id_var: ContextVar[Optional[str]] = ContextVar('agent_id', default=None)


def add_correlation_id(
    logger, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Add correlation ID to log events."""
    correlation_id = correlation_id_var.get()
    if not correlation_id:
        correlation_id = str(uuid.uuid4())[:8]
        correlation_id_var.set(correlation_id)

    event_dict["correlation_id"] = correlation_id
    return event_dict


def add_arrangement_context(
    logger, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Add arrangement and agent context to log events."""
    arrangement_id = arrangement_id_var.get()
    if arrangement_id and "arrangement_id" not in event_dict:
        event_dict["arrangement_id"] = arrangement_id

    agent_id = agent_id_var.get()
    if agent_id:
        event_dict["agent_id"] = agent_id

    return event_dict


def add_service_context(
    logger, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Add service context to log events."""
    event_dict["service"] = settings.service_name
    event_dict["version"] = settings.service_version
    return event_dict


class LogSampler:
    """Log sampler for high-volume scenarios such as bulk reminder evaluation."""

    def __init__(self, sample_rate: float = 1.0):
        """
        Initialize sampler.

        Args:
            sample_rate: Rate between 0.0 and 1.0 for sampling logs
        """
        self.sample_rate = max(0.0, min(1.0, sample_rate))

    def should_log(self, level: str = "info") -> bool:
        """Determine if a log event should be sampled."""
        # Always log errors and warnings
        if level.upper() in ["ERROR", "WARNING", "CRITICAL"]:
            return True

        if self.sample_rate >= 1.0:
            return True
        elif self.sample_rate <= 0.0:
            return False
        else:
            return random.random() < self.sample_rate


_log_sampler = LogSampler()


def add_sampling_filter(
    logger, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Drop events that fall outside the sample."""
    if not _log_sampler.should_log(method_name):
        raise structlog.DropEvent
    return event_dict


def setup_logging(
    sample_rate: Optional[float] = None,
    log_level: Optional[str] = None,
    json_output: Optional[bool] = None,
) -> None:
    """
    Configure structured logging.

    Args:
        sample_rate: Sampling rate for high-volume logs (0.0-1.0)
        log_level: Minimum level for the standard library root logger
        json_output: Render JSON lines instead of the console format
    """
    global _log_sampler
    _log_sampler = LogSampler(settings.log_sample_rate if sample_rate is None else sample_rate)

    level = (log_level or settings.log_level).upper()
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    logging.getLogger().setLevel(level)

    renderer = (
        structlog.processors.JSONRenderer()
        if (settings.log_json if json_output is None else json_output)
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            add_service_context,
            add_arrangement_context,
            add_correlation_id,
            add_sampling_filter,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def get_business_logger() -> structlog.stdlib.BoundLogger:
    """Get a business event logger instance."""
    return structlog.get_logger("business")


def get_performance_logger() -> structlog.stdlib.BoundLogger:
    """Get a performance logger instance."""
    return structlog.get_logger("performance")


def set_correlation_id(correlation_id: str) -> None:
    """Set correlation ID in the current context."""
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    """Get correlation ID from current context."""
    return correlation_id_var.get()


@contextmanager
def correlation_context(
    correlation_id: Optional[str] = None,
    arrangement_id: Optional[str] = None,
    agent_id: Optional[str] = None,
):
    """
    Context manager for setting correlation context.

    Args:
        correlation_id: Correlation ID for the call
        arrangement_id: Arrangement being worked on
        agent_id: Collection agent performing the action
    """
    tokens = []
    if correlation_id:
        tokens.append((correlation_id_var, correlation_id_var.set(correlation_id)))
    if arrangement_id:
        tokens.append((arrangement_id_var, arrangement_id_var.set(arrangement_id)))
    if agent_id:
        tokens.append((agent_id_var, agent_id_var.set(agent_id)))

    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


@contextmanager
def performance_timing(operation_name: str):
    """
    Context manager for timing operations.

    Args:
        operation_name: Name of the operation being timed
    """
    start_time = time.perf_counter()
    logger = get_performance_logger()

    try:
        yield
    finally:
        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        logger.debug("Operation completed", operation=operation_name, duration_ms=duration_ms)


def log_business_event(event_type: str, **kwargs):
    """
    Log a structured business event.

    Args:
        event_type: Type of business event
        **kwargs: Additional event data
    """
    logger = get_business_logger()
    logger.info("Business event", event_type=event_type, **kwargs)


def log_error_with_context(logger, error: Exception, context: Optional[Dict[str, Any]] = None):
    """Log an error with additional context information."""
    logger.error(
        "Error occurred",
        error_type=type(error).__name__,
        error_message=str(error),
        error_code=getattr(error, "error_code", None),
        context=context or {},
    )

"""
Module: logger.py
Description: Structured logging configuration for the webhook service.

Configures structlog for JSON output. Provides consistent logging
across all modules with proper context and structured data.

Key Components:
- JSON output with UTC timestamps
- Level filtering driven by settings.log_level
- get_logger() helper function

Dependencies: structlog, logging, datetime
"""

import logging
import structlog
from datetime import datetime, timezone

from formhooks.config.settings import settings


def _add_timestamp(logger, method_name, event_dict):
    """
    Add ISO 8601 timestamp to log entries.

    Args:
        logger: Logger instance
        method_name: Log method name (info, error, etc.)
        event_dict: Current log event dictionary

    Returns:
        Updated event dictionary with timestamp
    """
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    return event_dict


def _add_log_level(logger, method_name, event_dict):
    """Add log level to event dictionary."""
    event_dict["level"] = method_name.upper()
    return event_dict


structlog.configure(
    processors=[
        _add_timestamp,
        _add_log_level,
        # Add exception information
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    logger_factory=structlog.WriteLoggerFactory(),
    # Drop records below the configured level before any processing
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(settings.log_level)
    ),
    cache_logger_on_first_use=True,
)


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a configured structlog logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Delivery scheduled", delivery_id="dlv_123", delay_ms=1000)
        {"delivery_id": "dlv_123", "delay_ms": 1000, "event": "Delivery scheduled", "timestamp": "...", "level": "INFO"}
    """
    return structlog.get_logger(name)

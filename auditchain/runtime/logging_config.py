"""
Structured logging configuration for auditchain.

Provides JSON-formatted logs with correlation_id support so audit failures
can be traced back to the request that produced the event.

Environment Variables:
    AUDITCHAIN_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR) - default: INFO
    AUDITCHAIN_LOG_FORMAT: Log format (json, text) - default: json

Usage:
    from auditchain.runtime.logging_config import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__, correlation_id="order-12345")
    logger.info("Appending audit entry", extra={"event_type": "execution.order.filled"})
"""

import logging
import os
import sys
from typing import Optional

from pythonjsonlogger import jsonlogger


def setup_logging() -> None:
    """
    Configure root logger with structured logging.

    Reads configuration from environment variables:
    - AUDITCHAIN_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    - AUDITCHAIN_LOG_FORMAT: json, text (default: json)
    """
    log_level = os.getenv("AUDITCHAIN_LOG_LEVEL", "INFO").upper()
    log_format = os.getenv("AUDITCHAIN_LOG_FORMAT", "json").lower()

    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    level = level_map.get(log_level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationIdFilter())

    if log_format == "json":
        formatter: logging.Formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s %(correlation_id)s",
            rename_fields={
                "asctime": "timestamp",
                "name": "logger",
                "levelname": "level",
            },
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s [correlation_id=%(correlation_id)s]",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # Silence noisy libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("boto3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_logger(name: str, correlation_id: Optional[str] = None) -> logging.LoggerAdapter:
    """
    Get a logger with optional correlation_id.

    Args:
        name: Logger name (typically __name__)
        correlation_id: Correlation id of the request/transaction being audited

    Returns:
        CorrelationIdAdapter with correlation_id in extra fields
    """
    logger = logging.getLogger(name)
    return CorrelationIdAdapter(logger, {"correlation_id": correlation_id or "N/A"})


class CorrelationIdAdapter(logging.LoggerAdapter):
    """
    LoggerAdapter that keeps per-call extra fields.

    The stock adapter replaces a call's extra with its own dict, dropping
    fields like event_type. Per-call fields win over the adapter's.
    """

    def process(self, msg, kwargs):
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


class CorrelationIdFilter(logging.Filter):
    """
    Logging filter that adds correlation_id to all log records.

    Ensures every record has the field, even if not set via LoggerAdapter.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = "N/A"  # type: ignore
        return True

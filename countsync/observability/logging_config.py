"""
Structured logging configuration for countsync.

Provides JSON-formatted logs with trace_id support; the trace_id is the
category a log line is about, so one category's call history can be followed
across dispatch iterations.

Environment Variables:
    COUNTSYNC_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR) - default: INFO
    COUNTSYNC_LOG_FORMAT: Log format (json, text) - default: json

Usage:
    from countsync.observability.logging_config import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__, trace_id="A")
    logger.info("Confirmed delta", extra={"amount": 12})
"""

import logging
import os
import sys
from typing import Optional

from pythonjsonlogger.json import JsonFormatter


def setup_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """
    Configure root logger with structured logging.

    Arguments override the environment:
    - COUNTSYNC_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    - COUNTSYNC_LOG_FORMAT: json, text (default: json)
    """
    log_level = (level or os.getenv("COUNTSYNC_LOG_LEVEL", "INFO")).upper()
    fmt = (log_format or os.getenv("COUNTSYNC_LOG_FORMAT", "json")).lower()

    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    resolved = level_map.get(log_level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(resolved)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # stderr keeps stdout free for CLI tables and --json output
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(resolved)

    if fmt == "json":
        formatter: logging.Formatter = JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s %(trace_id)s",
            rename_fields={
                "asctime": "timestamp",
                "name": "logger",
                "levelname": "level",
            },
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s [trace_id=%(trace_id)s]",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    handler.addFilter(TraceIDFilter())
    root_logger.addHandler(handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str, trace_id: Optional[str] = None) -> logging.LoggerAdapter:
    """
    Get a logger with optional trace_id for correlation.

    Args:
        name: Logger name (typically __name__)
        trace_id: Trace ID for correlating logs (typically the category)

    Returns:
        LoggerAdapter with trace_id in extra fields
    """
    logger = logging.getLogger(name)
    return logging.LoggerAdapter(logger, {"trace_id": trace_id or "N/A"})


class TraceIDFilter(logging.Filter):
    """
    Logging filter that adds trace_id to all log records.

    Ensures all logs have a trace_id field, even if not set via LoggerAdapter.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "trace_id"):
            record.trace_id = "N/A"  # type: ignore
        return True


def add_trace_id_filter() -> None:
    """Add TraceIDFilter to root logger (ensures all logs have trace_id field)."""
    root_logger = logging.getLogger()
    root_logger.addFilter(TraceIDFilter())

"""
Structured logging for the API and the generation worker.

Every line is JSON. Fields bound with ``log_context`` (user_id, batch_id) are
merged into each line emitted by the current task, so concurrent per-user
units in the generation job stay distinguishable.
"""

import logging
import sys
from contextlib import AbstractContextManager

import structlog
from structlog.stdlib import LoggerFactory

QUIET_LOGGERS = ("psycopg.pool", "uvicorn.access")


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)
    """
    return structlog.get_logger(name)


def log_context(**values) -> AbstractContextManager:
    """Bind fields to every log line of the current task until the block exits."""
    return structlog.contextvars.bound_contextvars(**values)


def log_request(method: str, path: str, status_code: int, duration_ms: float, user_id: str = None):
    """Log one HTTP request; 4xx/5xx responses log at warning."""
    logger = get_logger("http")

    log_data = {
        "method": method,
        "path": path,
        "status_code": status_code,
        "duration_ms": duration_ms,
    }
    if user_id:
        log_data["user_id"] = user_id

    if status_code >= 400:
        logger.warning("HTTP request failed", **log_data)
    else:
        logger.info("HTTP request completed", **log_data)

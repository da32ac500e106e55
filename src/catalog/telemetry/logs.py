"""
The log signal: catalog log records on stderr and through the LoggerProvider.

LoggingHandler turns each record into an OpenTelemetry log record. It reads
the current context, so a record logged inside a request carries that
request's trace_id and span_id without any formatting on our side.
"""

import logging
import sys

from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler

LOGGER_NAME = "catalog"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def attach_log_handler(
    logger_provider: LoggerProvider, level: int = logging.NOTSET
) -> LoggingHandler:
    """Send catalog log records to logger_provider; returns the handler to detach later."""
    handler = LoggingHandler(level=level, logger_provider=logger_provider)
    logging.getLogger(LOGGER_NAME).addHandler(handler)
    return handler


def detach_log_handler(handler: LoggingHandler) -> None:
    logging.getLogger(LOGGER_NAME).removeHandler(handler)


def configure_logging(level: int = logging.INFO) -> logging.Handler:
    """Set the catalog logger's level and add a plain stderr handler."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.addHandler(handler)
    return handler

"""Centralized logging setup with Logfire integration.

Logfire is configured via environment variables (LOGFIRE_TOKEN and friends);
without a token the processor stays local and only the console renderer is
visible.
"""

import logging
import sys

import logfire
import structlog
from structlog.processors import CallsiteParameter, CallsiteParameterAdder
from structlog.types import EventDict, Processor, WrappedLogger
from structlog.typing import FilteringBoundLogger


def add_error_context(
    _logger: WrappedLogger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add the error type name next to any logged ``error`` value.

    Args:
        _logger: The wrapped logger instance
        _method_name: The name of the logging method
        event_dict: The event dictionary

    Returns:
        The event dictionary with added context
    """
    if "error" in event_dict:
        event_dict["error_type"] = type(event_dict["error"]).__name__

    return event_dict


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Set up application-wide logging with Logfire and structlog integration.

    Args:
        level: Root log level name
        json_output: Render JSON lines instead of the coloured console format
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    renderer: Processor = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=True)
    )

    processors: list[Processor] = [
        # Merge context from contextvars
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        CallsiteParameterAdder(
            parameters=[
                CallsiteParameter.FILENAME,
                CallsiteParameter.LINENO,
                CallsiteParameter.FUNC_NAME,
            ]
        ),
        add_error_context,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        # MUST come before the final renderer
        logfire.StructlogProcessor(),
        renderer,
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        # Use PrintLogger to avoid double logging with standard library
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Standard library logs (aiohttp, asyncio) go through the same processors
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=processors[:-2],  # Exclude the Logfire processor and final renderer
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(log_level)


def get_logger(name: str | None = None) -> FilteringBoundLogger:
    """Get a structured logger instance.

    Args:
        name: The name of the logger (usually __name__)

    Returns:
        A configured structlog logger instance
    """
    return structlog.get_logger(name)

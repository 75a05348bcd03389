"""Logging context utilities for structured logging.

Keys bound here (for example the active session id) are merged into every
log event by ``structlog.contextvars.merge_contextvars``.
"""

from typing import Any

import structlog


def get_log_context() -> dict[str, Any]:
    """Get the current logging context.

    Returns:
        Dict containing the current logging context
    """
    return dict(structlog.contextvars.get_contextvars())


def set_log_context(context: dict[str, Any]) -> None:
    """Replace the logging context.

    Args:
        context: Dictionary with logging context data
    """
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**context)


def update_log_context(key: str, value: Any) -> None:
    """Update a single key in the logging context.

    Args:
        key: Context key to update
        value: Value to set
    """
    structlog.contextvars.bind_contextvars(**{key: value})


def clear_log_context() -> None:
    """Clear the current logging context."""
    structlog.contextvars.clear_contextvars()

"""
Utility modules for the webhook receiver.
"""

from giteahook.utils.logging import (
    get_logger,
    setup_logging,
    JSONFormatter,
    ContextLoggerAdapter,
    log_push_event,
    log_command_execution,
    log_error_with_context,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "JSONFormatter",
    "ContextLoggerAdapter",
    "log_push_event",
    "log_command_execution",
    "log_error_with_context",
]

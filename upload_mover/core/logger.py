"""
Centralized logger configuration for the upload mover.

By default, uses Python's standard logging with the 'upload_mover'
namespace. A different logger (structlog, loguru, ...) can be installed
for all components with set_logger().

Usage:
    from upload_mover.core.logger import get_logger
    logger = get_logger(__name__)
    logger.info("Message")
"""

import logging
from typing import Any

# Global logger instance - defaults to standard logging
_custom_logger: Any = None


def set_logger(logger: Any) -> None:
    """
    Set a custom logger for all mover components.

    Args:
        logger: A logger instance supporting debug/info/warning/error/exception.
                Pass None to go back to standard logging.
    """
    global _custom_logger
    _custom_logger = logger


def get_logger(name: str = "upload_mover") -> Any:
    """
    Get a logger instance.

    If a custom logger was set via set_logger(), returns that.
    Otherwise, returns a standard Python logger with the given name.
    """
    if _custom_logger is not None:
        return _custom_logger

    logger = logging.getLogger(name)

    # Ensure we have at least a NullHandler to avoid "No handler found" warnings
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger

"""Core package - errors and logging."""

from .errors import ExtensionHostError, format_exception_chain
from .logging import get_logger, setup_logging

__all__ = ["ExtensionHostError", "format_exception_chain", "get_logger", "setup_logging"]

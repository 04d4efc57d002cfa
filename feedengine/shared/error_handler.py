"""
Centralized error handling utilities.

Nothing in the engine is fatal to the hosting application: transient I/O,
storage and protocol failures are logged here and the caller continues with
a degraded result (staler data, cache miss, no live updates).
"""
import inspect
from functools import wraps
from typing import Any, Dict, Optional

from feedengine.shared.exceptions import (
    ContentNotFoundError,
    ContentStoreError,
    StorageError,
)
from feedengine.shared.utils import get_logger


class ErrorHandler:
    """Centralized error handler for services"""

    def __init__(self, logger_name: str):
        self.logger = get_logger(logger_name)

    def handle_transient_error(self, error: Exception, operation: str, context: Optional[Dict[str, Any]] = None) -> None:
        """Log fetch/send failures. Not-found is treated like any other transient failure."""
        context = context or {}

        if isinstance(error, ContentNotFoundError):
            self.logger.warning(f"Resource not found during {operation}: {error.path}", extra=context)
        elif isinstance(error, ContentStoreError):
            self.logger.warning(f"Content Store error during {operation}: {error}", extra=context)
        else:
            self.logger.warning(f"Transient error during {operation}: {error}", extra=context)

    def handle_storage_error(self, error: Exception, operation: str, context: Optional[Dict[str, Any]] = None) -> None:
        """Log serialization/storage failures; the affected write becomes a no-op."""
        context = context or {}
        self.logger.error(f"Storage error during {operation}: {error}", extra=context)

    def handle_protocol_error(self, error: Exception, operation: str, context: Optional[Dict[str, Any]] = None) -> None:
        """Log a malformed push frame; the frame is discarded."""
        context = context or {}
        self.logger.warning(f"Protocol error during {operation}: {error}", extra=context)

    def handle_general_error(self, error: Exception, operation: str, context: Optional[Dict[str, Any]] = None) -> None:
        """Dispatch to the matching handler, logging unknown errors with a traceback"""
        if isinstance(error, ContentStoreError):
            self.handle_transient_error(error, operation, context)
        elif isinstance(error, StorageError):
            self.handle_storage_error(error, operation, context)
        else:
            self.logger.error(f"Unexpected error during {operation}: {error}",
                              extra=context or {}, exc_info=True)


def swallow_errors(operation: str, default: Any = None):
    """Decorator for service methods that must degrade instead of raising.

    Any exception is logged through the instance's ``_error_handler`` and the
    call returns ``default``. ``asyncio.CancelledError`` is a BaseException and
    still propagates.
    """
    def decorator(func):
        def _handler(self) -> ErrorHandler:
            return getattr(self, "_error_handler", None) or ErrorHandler(self.__class__.__name__)

        def _context(args, kwargs) -> Dict[str, Any]:
            return {
                "method": func.__name__,
                "function_args": str(args)[:100],
                "function_kwargs": str(kwargs)[:100],
            }

        @wraps(func)
        async def async_wrapper(self, *args, **kwargs):
            try:
                return await func(self, *args, **kwargs)
            except Exception as e:
                _handler(self).handle_general_error(e, operation, _context(args, kwargs))
                return default

        @wraps(func)
        def sync_wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except Exception as e:
                _handler(self).handle_general_error(e, operation, _context(args, kwargs))
                return default

        return async_wrapper if inspect.iscoroutinefunction(func) else sync_wrapper

    return decorator

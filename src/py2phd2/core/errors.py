"""
Unified error handling framework for py2phd2.

This module defines the error hierarchy raised by the PHD2 client and
provides consistent error formatting for logging and user display.

Error Code Ranges:
- 1000-1999: Connection errors
- 2000-2999: Protocol errors
- 5000-5999: State errors
- 6000-6999: Configuration errors
- 7000-7999: Validation errors
- 8000-8999: Timeout errors
- 9000-9999: Unknown/System errors
"""

from typing import Optional, Dict, Any, List
from datetime import datetime
import traceback


class ErrorCodes:
    """Standard error codes for common error scenarios."""

    # Connection errors (1000-1999)
    CONNECTION_REFUSED = 1001
    CONNECTION_LOST = 1003
    SEND_FAILED = 1004

    # Protocol errors (2000-2999)
    INVALID_RESPONSE = 2002
    PROTOCOL_ERROR = 2003
    RESPONSE_PARSE_ERROR = 2005

    # State errors (5000-5999)
    NOT_SETTLING = 5004

    # Configuration errors (6000-6999)
    CONFIG_UNREADABLE = 6001
    CONFIG_INVALID = 6002

    # Validation errors (7000-7999)
    INVALID_PARAMETER = 7001
    OUT_OF_RANGE = 7002

    # Timeout errors (8000-8999)
    RESPONSE_TIMEOUT = 8002

    # System errors (9000-9999)
    UNKNOWN_ERROR = 9000


class PHD2Error(Exception):
    """
    Base exception for all PHD2 client errors.

    Provides structured error information with context tracking.
    """

    DEFAULT_CODE = ErrorCodes.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        error_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        suggestions: Optional[List[str]] = None
    ):
        """
        Initialize a PHD2 error.

        Args:
            message: Human-readable error description
            error_code: Numeric error code for categorization
            context: Additional context information (method, host, ...)
            cause: Original exception if this wraps another error
            suggestions: List of possible solutions or next steps
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.DEFAULT_CODE
        self.context = context or {}
        self.cause = cause
        self.suggestions = suggestions or []
        self.timestamp = datetime.now()

        self.stack_trace = traceback.format_exc() if cause else None

        if cause:
            self.context['original_error'] = str(cause)
            self.context['original_type'] = type(cause).__name__

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'code': self.error_code,
            'context': self.context,
            'suggestions': self.suggestions,
            'timestamp': self.timestamp.isoformat(),
            'cause': str(self.cause) if self.cause else None,
            'stack_trace': self.stack_trace
        }

    def format_user_message(self) -> str:
        """Format error for user display (without technical details)."""
        msg = f"{self.message}"
        if self.suggestions:
            msg += "\n\nSuggestions:"
            for i, suggestion in enumerate(self.suggestions, 1):
                msg += f"\n  {i}. {suggestion}"
        return msg

    def format_log_message(self) -> str:
        """Format error for logging (with all details)."""
        parts = [
            f"[{self.error_code}] {self.__class__.__name__}: {self.message}"
        ]

        if self.context:
            parts.append(f"Context: {self.context}")

        if self.cause:
            parts.append(f"Caused by: {self.cause}")

        if self.stack_trace:
            parts.append(f"Stack trace:\n{self.stack_trace}")

        return " | ".join(parts)


class DisconnectedError(PHD2Error):
    """No connection to PHD2, or the connection was lost mid-call."""
    DEFAULT_CODE = ErrorCodes.CONNECTION_LOST

    def __init__(self, message: str = "PHD2 Server disconnected", **kwargs):
        if 'context' not in kwargs:
            kwargs['context'] = {}
        kwargs['context']['category'] = 'CONNECTION'
        super().__init__(message, **kwargs)


class ProtocolError(PHD2Error):
    """PHD2 answered a call with an error object, or with an unusable result."""
    DEFAULT_CODE = ErrorCodes.PROTOCOL_ERROR

    def __init__(self, message: str, method: Optional[str] = None,
                 rpc_code: Optional[int] = None, **kwargs):
        if 'context' not in kwargs:
            kwargs['context'] = {}
        kwargs['context']['category'] = 'PROTOCOL'
        if method is not None:
            kwargs['context']['method'] = method
        if rpc_code is not None:
            kwargs['context']['rpc_code'] = rpc_code
        super().__init__(message, **kwargs)
        self.method = method
        self.rpc_code = rpc_code


class NotSettlingError(PHD2Error):
    """Settle progress was requested while no settle record exists."""
    DEFAULT_CODE = ErrorCodes.NOT_SETTLING

    def __init__(self, message: str = "Not settling", **kwargs):
        if 'context' not in kwargs:
            kwargs['context'] = {}
        kwargs['context']['category'] = 'STATE'
        super().__init__(message, **kwargs)


class ConfigurationError(PHD2Error):
    """Errors related to client configuration and settings files."""
    DEFAULT_CODE = ErrorCodes.CONFIG_INVALID

    def __init__(self, message: str, setting_name: Optional[str] = None, **kwargs):
        if 'context' not in kwargs:
            kwargs['context'] = {}
        kwargs['context']['category'] = 'CONFIGURATION'
        if setting_name:
            kwargs['context']['setting'] = setting_name
        super().__init__(message, **kwargs)


class ValidationError(PHD2Error):
    """Local argument validation failed; raised before any network activity."""
    DEFAULT_CODE = ErrorCodes.INVALID_PARAMETER

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        if 'context' not in kwargs:
            kwargs['context'] = {}
        kwargs['context']['category'] = 'VALIDATION'
        if field_name:
            kwargs['context']['field'] = field_name
        super().__init__(message, **kwargs)


class CallTimeoutError(PHD2Error):
    """No response arrived for a call within the timeout budget."""
    DEFAULT_CODE = ErrorCodes.RESPONSE_TIMEOUT

    def __init__(self, message: str, method: Optional[str] = None,
                 timeout_seconds: Optional[float] = None, **kwargs):
        if 'context' not in kwargs:
            kwargs['context'] = {}
        kwargs['context']['category'] = 'TIMEOUT'
        if method is not None:
            kwargs['context']['method'] = method
        if timeout_seconds is not None:
            kwargs['context']['timeout_seconds'] = timeout_seconds
        super().__init__(message, **kwargs)
        self.method = method


def wrap_external_error(e: Exception, message: str, error_class=PHD2Error,
                        error_code: Optional[int] = None, **context) -> PHD2Error:
    """
    Wrap an external exception in a PHD2Error.

    Args:
        e: The original exception
        message: Context-specific error message
        error_class: The PHD2Error subclass to use
        error_code: Overrides the class default code
        **context: Additional context information

    Returns:
        A PHD2Error instance wrapping the original exception
    """
    return error_class(
        message=message,
        error_code=error_code,
        cause=e,
        context=context
    )

"""
Custom exceptions for LogRelay.

Provides structured error handling with a stable error code and
details for the operator diagnostics channel.
"""

from typing import Any, Dict, Optional


class LogRelayException(Exception):
    """Base exception for LogRelay."""
    
    def __init__(
        self,
        message: str,
        error_code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}


class ConfigurationError(LogRelayException):
    """Raised when configuration values cannot be accepted."""
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            error_code="configuration_error",
            details=details,
        )


class MaskingError(LogRelayException):
    """Raised when data masking fails."""
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            error_code="masking_error",
            details=details,
        )


class DeliveryError(LogRelayException):
    """Raised when a transport fails to deliver a batch."""
    
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = dict(details or {})
        if status_code is not None:
            details["status_code"] = status_code
            
        super().__init__(
            message=message,
            error_code="delivery_error",
            details=details,
        )
        self.status_code = status_code


class DispatcherClosedError(LogRelayException):
    """Raised when work is handed to a dispatcher that has been shut down."""
    
    def __init__(self, message: str = "Dispatcher is shut down") -> None:
        super().__init__(
            message=message,
            error_code="dispatcher_closed",
        )

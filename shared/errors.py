"""
Shared error handling for the Products Lookup Service.
"""

from typing import Dict, Any, Optional


class AccessLayerException(Exception):
    """Base exception for service errors.

    ``status_code`` is the HTTP status a handler answers with and
    ``public_message`` is the only text a caller ever sees; ``message`` and
    ``details`` are for logs.
    """

    status_code: int = 500
    public_message: str = "Internal server error"

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(AccessLayerException):
    """Validation-related errors."""

    status_code = 400
    public_message = "Validation failed"

    def __init__(
        self,
        message: str = "Validation failed",
        details: Optional[Dict[str, Any]] = None,
        code: str = "VALIDATION_ERROR",
    ):
        super().__init__(code, message, details)


class ServiceStartupError(AccessLayerException):
    """A backend could not be reached while the service was starting."""

    def __init__(self, component: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("SERVICE_START_FAILED", f"{component}: {message}", details)

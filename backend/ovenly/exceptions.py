"""
Ovenly Backend: Custom Exception Hierarchy
=============================================

What:  Application-specific exceptions for the different failure scenarios.
Why:   Each exception carries the HTTP status it maps to, so global handlers
       (registered in main.py) and the route registry's completion logging
       agree on the outcome of a request.
How:   Every class stores a user-facing message and an optional context dict.
       Context is logged server-side and only returned for client errors.

Exception Hierarchy:
    OvenlyError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    │   └── SecurityError        → 400 Bad Request (path traversal)
    ├── PayloadTooLargeError     → 413 Payload Too Large
    ├── NotFoundError            → 404 Not Found
    ├── ConflictError            → 409 Conflict
    ├── FileStorageError         → 500 Internal Server Error
    ├── DatabaseError            → 500 Internal Server Error
    ├── ConfigurationError       → 500 Internal Server Error (fatal at startup)
    └── RouteDiscoveryError      → 500 Internal Server Error (fatal at startup)
"""

from typing import Any, Dict, Optional


class OvenlyError(Exception):
    """
    Base exception for all Ovenly application errors.

    Attributes:
        message:     User-facing error description
        context:     Additional debug info
        status_code: HTTP status returned by the global handler
        error:       Machine-readable error code in the JSON body
    """

    status_code: int = 500
    error: str = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(OvenlyError):
    """
    Raised when client input fails validation.

    When: Malformed JSON, schema violations, wrong upload field name,
          MIME type / extension mismatch, empty upload.
    """

    status_code = 400
    error = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class SecurityError(ValidationError):
    """
    Raised when a computed file path escapes the uploads directory.

    Always raised before any file is moved, renamed or deleted.
    """

    error = "security_error"

    def __init__(
        self,
        message: str = "Invalid path: File path is outside allowed uploads directory",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PayloadTooLargeError(OvenlyError):
    """An uploaded file exceeds the configured size limit."""

    status_code = 413
    error = "payload_too_large"

    def __init__(
        self,
        max_size: int,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"File too large. Maximum size: {max_size / 1024 / 1024:.0f}MB"
        ctx = context or {}
        ctx["max_size"] = max_size
        super().__init__(message=message, context=ctx)


class NotFoundError(OvenlyError):
    """Raised when a requested resource does not exist."""

    status_code = 404
    error = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(OvenlyError):
    """Raised when a write would duplicate a unique resource (e.g. user email)."""

    status_code = 409
    error = "conflict"

    def __init__(
        self,
        message: str = "Resource already exists",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class FileStorageError(OvenlyError):
    """
    Raised when file system operations fail.

    When: Disk full, permission denied, directory not writable, I/O error.
    The client receives the message; paths stay in the server log.
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(OvenlyError):
    """
    Raised when MongoDB operations fail unexpectedly.

    Security Note:
        The message returned to the client is always generic.
        Connection strings and driver errors are logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ConfigurationError(OvenlyError):
    """
    Raised when a required setting is missing (e.g. no database target).

    Fatal at startup: surfaced from the first initialization step, never retried.
    """

    error = "configuration_error"

    def __init__(
        self,
        message: str = "Application is misconfigured",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RouteDiscoveryError(OvenlyError):
    """The feature modules directory could not be located."""

    error = "route_discovery_error"

    def __init__(
        self,
        message: str = "Could not locate the modules directory",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)

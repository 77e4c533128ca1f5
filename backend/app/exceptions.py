"""
Catalog Backend — Custom Exception Hierarchy
==============================================

What:  Defines application-specific exceptions for different error scenarios.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by services and routes; caught by global handlers.

Exception Hierarchy:
    CatalogError (base)
    ├── ValidationError    → 400 Bad Request (client can fix)
    ├── NotFoundError      → 404 Not Found
    ├── FileStorageError   → 500 Internal Server Error
    └── InternalError      → 500 Internal Server Error (generic message)
"""

from typing import Any, Dict, List, Optional


class CatalogError(Exception):
    """
    Base exception for all catalog application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(CatalogError):
    """
    Raised when client input fails validation.

    When:    Missing or malformed form fields, unknown fields, bad query
             parameters, unsupported image type or size.
    HTTP:    400 Bad Request

    Field-level detail is carried in ``context["fields"]`` as a list of
    ``{"field": ..., "message": ...}`` entries.

    Example response:
        {
            "error": "validation_error",
            "message": "Invalid product data",
            "details": {"fields": [{"field": "price", "message": "..."}]}
        }
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        errors: Optional[List[Dict[str, str]]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        if errors:
            ctx["fields"] = errors
        super().__init__(message=message, context=ctx)
        self.field = field
        self.errors = errors or []


class NotFoundError(CatalogError):
    """
    Raised when a requested resource does not exist.

    When:    GET/PATCH/DELETE /products/{id} with an id that matches no record.
    HTTP:    404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class FileStorageError(CatalogError):
    """
    Raised when an uploaded image cannot be written to disk.

    When:    Disk full, permission denied, directory not writable, I/O error.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class InternalError(CatalogError):
    """
    Raised when persistence fails unexpectedly.

    When:    A database insert, update, delete or query failed.
    HTTP:    500 Internal Server Error

    The message returned to the client is always generic; ``context`` is
    logged server-side only.
    """

    def __init__(
        self,
        message: str = "An internal error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)

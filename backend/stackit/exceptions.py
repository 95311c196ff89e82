"""
StackIt Backend — Custom Exception Hierarchy
==============================================

What:  Application-specific exceptions, one per kind of failure a client can see.
Why:   Services raise a typed error; the handlers registered in main.py turn it
       into the response envelope with the right status code. No service ever
       builds an HTTP response itself.
How:   Each exception carries a user-safe message and an optional context dict
       that is logged but never returned.

Exception Hierarchy:
    StackItError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── AuthenticationError      → 401 Unauthorized (missing/invalid/expired token)
    ├── AuthorizationError       → 403 Forbidden (role or ownership mismatch)
    ├── NotFoundError            → 404 Not Found
    ├── ConflictError            → 409 Conflict (uniqueness violation)
    ├── RateLimitExceededError   → 429 Too Many Requests
    └── DatabaseError            → 500 Internal Server Error
"""

from typing import Any, Dict, List, Optional


class StackItError(Exception):
    """
    Base exception for all StackIt application errors.

    Attributes:
        message:      User-facing error description (safe to return in API response)
        context:      Additional debug info (logged, NOT returned to client)
        status_code:  HTTP status the global handler responds with
    """

    status_code = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(StackItError):
    """
    Raised when client input breaks a business rule.

    Schema-level problems (missing fields, wrong types) are caught by FastAPI
    first and rendered with the same 400 envelope; this class covers the rules
    only a service can check, such as answering a closed question.
    """

    status_code = 400

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
        super().__init__(message=message, context=ctx)
        self.field = field
        self.errors = errors or ([{"field": field, "message": message}] if field else [])


class AuthenticationError(StackItError):
    """Missing, malformed or expired credentials. HTTP 401."""

    status_code = 401

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthorizationError(StackItError):
    """Authenticated, but not allowed to do this. HTTP 403."""

    status_code = 403

    def __init__(
        self,
        message: str = "You do not have permission to perform this action",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(StackItError):
    """
    Raised when a requested resource does not exist.

    SQLAlchemy returns None for missing rows; services convert that into this
    exception so routes never check for None themselves.
    """

    status_code = 404

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id is not None:
            ctx["resource_id"] = str(resource_id)
        super().__init__(message=f"{resource} not found", context=ctx)
        self.resource = resource


class ConflictError(StackItError):
    """
    Raised on uniqueness violations.

    Covers the checks done up front (username taken, tag exists) and the
    races detected only when the INSERT fails (duplicate vote).
    """

    status_code = 409

    def __init__(
        self,
        message: str = "Resource already exists",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(StackItError):
    """
    Raised when a client exceeds a per-IP request budget.

    Response includes a Retry-After header with the seconds until the oldest
    request leaves the window.
    """

    status_code = 429

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Too many requests. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class DatabaseError(StackItError):
    """
    Raised when a database operation fails unexpectedly.

    The message returned to the client is always generic. The SQL error is
    logged server-side only.
    """

    status_code = 500

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)

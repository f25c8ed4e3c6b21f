"""Error taxonomy: every failure the store reports across its boundary.

Each error carries a stable machine-readable code, a human message, and the
HTTP status the route layer maps it to. Internal detail (tracebacks, driver
messages) never goes into the message: the exception handler in main.py
renders only code and message.

Tier 1 leaf module: no project imports.

Usage:
    from roomstate.errors import Conflict, NotFound

    raise NotFound("Room not found.")
"""


class StoreError(Exception):
    """Base class for all expected, user-facing failures."""

    code: str = "STORE_ERROR"
    http_status: int = 500
    default_message: str = "The request could not be completed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(StoreError):
    """Malformed room code, email, name or update payload."""

    code = "INVALID_INPUT"
    http_status = 400
    default_message = "Invalid input."


class WeakPassword(InvalidInput):
    code = "WEAK_PASSWORD"
    default_message = (
        "Password must be at least 8 characters and contain uppercase, "
        "lowercase, and numbers."
    )


class Conflict(StoreError):
    """Duplicate room code or email."""

    code = "CONFLICT"
    http_status = 409
    default_message = "Resource already exists."


class NotFound(StoreError):
    code = "NOT_FOUND"
    http_status = 404
    default_message = "Resource not found."


class InvalidCredentials(StoreError):
    """Sign-in failure. Deliberately does not say which field was wrong."""

    code = "INVALID_CREDENTIALS"
    http_status = 401
    default_message = "Invalid email or password."


class Unauthorized(StoreError):
    code = "UNAUTHORIZED"
    http_status = 401
    default_message = "Invalid or expired session."


class RateLimited(StoreError):
    """Too many requests. retry_after is in whole seconds, at least 1."""

    code = "RATE_LIMITED"
    http_status = 429
    default_message = "Too many requests. Please try again later."

    def __init__(self, retry_after: int, message: str | None = None) -> None:
        self.retry_after = max(1, retry_after)
        super().__init__(message)


class CsrfRejected(StoreError):
    code = "CSRF_REJECTED"
    http_status = 403
    default_message = "Invalid or expired CSRF token."


class BackendUnavailable(StoreError):
    """Storage could not be reached in time. Callers may retry with backoff."""

    code = "BACKEND_UNAVAILABLE"
    http_status = 503
    default_message = "Storage backend is temporarily unavailable."

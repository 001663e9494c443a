"""Typed exception hierarchy for Confluence-related errors.

This module defines all custom exceptions raised at the remote store boundary.
All exceptions inherit from ConfluenceError so callers can catch any failure
of the remote client in one place, while the sync engine distinguishes the
individual kinds (auth, rate limit, version conflict, ...) to decide whether
a failure aborts the run or is recorded against a single page.
"""

from typing import Optional


class SyncError(Exception):
    """Base exception for all confluence-space-sync errors.

    Use this to catch any application-level error from the sync tool.
    """
    pass


class ConfluenceError(SyncError):
    """Base exception for all Confluence-related errors."""
    pass


class InvalidCredentialsError(ConfluenceError):
    """Raised when API credentials are missing or rejected."""

    def __init__(self, user: str, endpoint: str):
        super().__init__(
            f"API key is invalid (user: {user}, endpoint: {endpoint})"
        )
        self.user = user
        self.endpoint = endpoint


class AuthError(ConfluenceError):
    """Raised when the API refuses a request for authorization reasons."""

    def __init__(self, status_code: int, message: Optional[str] = None):
        text = f"Authentication failed (HTTP {status_code})"
        if message:
            text += f": {message}"
        super().__init__(text)
        self.status_code = status_code


class ApiError(ConfluenceError):
    """Raised for any other failed API call, or a malformed API payload."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"Confluence API error (HTTP {status_code}): {message}")
        self.status_code = status_code
        self.message = message


class RateLimitError(ConfluenceError):
    """Raised when the API keeps answering 429 after all retries."""

    def __init__(self, retry_after: Optional[float] = None):
        message = "Confluence API rate limit exceeded"
        if retry_after is not None:
            message += f" (retry after {retry_after:g}s)"
        super().__init__(message)
        self.retry_after = retry_after


class NetworkError(ConfluenceError):
    """Raised when the API cannot be reached (timeouts, refused connections)."""

    def __init__(self, endpoint: str, cause: Optional[Exception] = None):
        message = f"API is not available at {endpoint}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
        self.endpoint = endpoint
        self.cause = cause


class PageNotFoundError(ConfluenceError):
    """Raised when a requested page does not exist."""

    def __init__(self, page_id: str):
        super().__init__(f"Page {page_id} not found")
        self.page_id = page_id


class VersionConflictError(ConfluenceError):
    """Raised when an update is based on a version that is no longer current."""

    def __init__(self, page_id: str, local_version: int, remote_version: Optional[int] = None):
        if remote_version is None:
            message = (
                f"Version conflict on page {page_id}: local version {local_version} "
                f"is out of date"
            )
        else:
            message = (
                f"Version conflict on page {page_id}: local version {local_version}, "
                f"remote version {remote_version}"
            )
        super().__init__(message)
        self.page_id = page_id
        self.local_version = local_version
        self.remote_version = remote_version


class ConversionError(ConfluenceError):
    """Raised when content conversion between formats fails."""

    def __init__(self, message: str):
        super().__init__(message)

"""Confluence client library for space sync.

This package provides Python abstractions over the Confluence Cloud REST API,
exposing typed tree/content/folder/page operations and a typed error hierarchy.
"""

from .api_wrapper import APIWrapper
from .auth import Authenticator, Credentials
from .errors import (
    SyncError,
    ConfluenceError,
    InvalidCredentialsError,
    AuthError,
    ApiError,
    RateLimitError,
    NetworkError,
    PageNotFoundError,
    VersionConflictError,
    ConversionError,
)
from .models import (
    RemoteNode,
    RemoteFolder,
    RemoteTree,
    RemoteDocument,
    RemoteUser,
    RemoteSpace,
)

__all__ = [
    "APIWrapper",
    "Authenticator",
    "Credentials",
    "SyncError",
    "ConfluenceError",
    "InvalidCredentialsError",
    "AuthError",
    "ApiError",
    "RateLimitError",
    "NetworkError",
    "PageNotFoundError",
    "VersionConflictError",
    "ConversionError",
    "RemoteNode",
    "RemoteFolder",
    "RemoteTree",
    "RemoteDocument",
    "RemoteUser",
    "RemoteSpace",
]

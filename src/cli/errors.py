"""Typed exception hierarchy for CLI-related errors.

Engine and client errors propagate through the CLI unchanged and are mapped
to exit codes there; only failures owned by the commands themselves live
here.
"""

from src.confluence_client.errors import SyncError


class CLIError(SyncError):
    """Base exception for all CLI-related errors."""
    pass


class InitError(CLIError):
    """Raised when initialization fails."""

    def __init__(self, message: str):
        super().__init__(message)

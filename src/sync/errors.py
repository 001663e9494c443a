"""Typed exception hierarchy for the sync engine.

Every exception here is structural: it describes input or local state the
engine cannot work with, and it aborts the current run instead of being
recorded against a single page.
"""

from enum import Enum
from typing import Optional

from src.confluence_client.errors import SyncError


class EngineError(SyncError):
    """Base exception for all sync engine errors."""
    pass


class StateError(EngineError):
    """Raised when the state file is malformed or a mutation would corrupt it."""

    def __init__(self, message: str, state_field: Optional[str] = None):
        if state_field:
            full_message = f"State error in field '{state_field}': {message}"
        else:
            full_message = f"State error: {message}"
        super().__init__(full_message)
        self.state_field = state_field
        self.original_message = message


class StateFilesystemError(EngineError):
    """Raised when the state file cannot be read or written."""

    def __init__(self, file_path: str, operation: str, reason: Optional[str] = None):
        message = f"State file operation '{operation}' failed for {file_path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.file_path = file_path
        self.operation = operation
        self.reason = reason


class StateNotFoundError(EngineError):
    """Raised when a directory has never been initialized for sync."""

    def __init__(self, work_dir: str):
        super().__init__(
            f"No sync state found in {work_dir}. "
            f"Run 'confluence-sync init <SPACE_KEY>' first."
        )
        self.work_dir = work_dir


class PathTraversalError(EngineError):
    """Raised when a local path would resolve outside the working directory."""

    def __init__(self, path: str, base_dir: str):
        super().__init__(f'Path traversal detected: "{path}" escapes base directory {base_dir}')
        self.path = path
        self.base_dir = base_dir


class FolderErrorCode(str, Enum):
    """Failure categories of folder hierarchy resolution."""
    INVALID_PATH = "INVALID_PATH"
    FOLDER_EXISTS = "FOLDER_EXISTS"
    CREATE_FAILED = "CREATE_FAILED"


class FolderHierarchyError(EngineError):
    """Raised when a file's directory cannot be mirrored as remote folders."""

    def __init__(self, reason: str, code: FolderErrorCode):
        super().__init__(reason)
        self.reason = reason
        self.code = code

"""Typed exception hierarchy for file mapper errors.

All exceptions inherit from FileMapperError so local file problems can be
caught separately from remote and engine failures.
"""

from src.confluence_client.errors import SyncError


class FileMapperError(SyncError):
    """Base exception for all file mapper errors."""
    pass


class FrontmatterError(FileMapperError):
    """Raised when YAML frontmatter parsing or validation fails."""

    def __init__(self, file_path: str, message: str):
        super().__init__(
            f"Frontmatter error in {file_path}: {message}"
        )
        self.file_path = file_path
        self.message = message

"""Command-line interface for Confluence space sync.

This package provides the `confluence-sync` CLI tool that binds a local
directory to a Confluence space, pulls it as Markdown files and pushes
local edits back, with progress indication and exit codes per failure kind.
"""

from .sync_command import SyncCommand, exit_code_for
from .init_command import InitCommand
from .models import ExitCode
from .errors import CLIError, InitError

__all__ = [
    'SyncCommand',
    'exit_code_for',
    'InitCommand',
    'ExitCode',
    'CLIError',
    'InitError',
]

"""Data models for CLI operations."""

from enum import IntEnum


class ExitCode(IntEnum):
    """Exit codes of the confluence-sync command.

    - SUCCESS (0): Operation completed successfully
    - GENERAL_ERROR (1): Page failures, invalid state, folder problems
    - CONFLICTS (2): The remote page changed since the last pull
    - AUTH_ERROR (3): Authentication or authorization failure
    - NETWORK_ERROR (4): Network connectivity or API availability issues
    - INVALID_ARGUMENTS (6): Bad command-line input
    - CANCELLED (130): Interrupted with Ctrl+C

    Example:
        >>> raise typer.Exit(ExitCode.CONFLICTS)
    """
    SUCCESS = 0
    GENERAL_ERROR = 1
    CONFLICTS = 2
    AUTH_ERROR = 3
    NETWORK_ERROR = 4
    INVALID_ARGUMENTS = 6
    CANCELLED = 130

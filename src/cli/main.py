"""Main CLI entry point for confluence-sync command.

This module provides the Typer application that serves as the entry point
for the confluence-sync command-line tool: ``init`` binds a directory to a
space, ``pull`` downloads it, ``push`` uploads one file and ``status`` shows
what is tracked.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import typer

from src.cli.output import OutputHandler
from src.cli.sync_command import SyncCommand

app = typer.Typer(
    name="confluence-sync",
    help="""Sync a Confluence space with a local directory of Markdown files.

QUICK START:
  confluence-sync init TEAM --dir ./docs       # Bind ./docs to space TEAM
  confluence-sync pull --dir ./docs            # Download the space
  confluence-sync pull --dry-run               # Preview changes
  confluence-sync push docs/guide.md           # Upload one file""",
    add_completion=False,
    rich_markup_mode=None,
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)


class _Settings:
    """Global options shared by every command."""
    verbosity: int = 0
    logdir: Optional[str] = None
    no_color: bool = False


def _configure_logging(verbosity: int, logdir: Optional[str] = None) -> None:
    """Configure logging based on verbosity level.

    Configures only the 'src' namespace logger to avoid affecting third-party
    libraries. The root logger is left unchanged.

    Args:
        verbosity: Verbosity level (0=WARNING, 1=INFO, 2=DEBUG)
        logdir: Optional directory for log files (creates timestamped log file)
    """
    if verbosity == 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    app_logger = logging.getLogger("src")
    app_logger.setLevel(level)

    date_format = "%Y-%m-%d %H:%M:%S"
    formatter = logging.Formatter("%(asctime)s [%(levelname)8s] %(message)s", datefmt=date_format)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    app_logger.addHandler(console_handler)

    if logdir:
        log_path = Path(logdir)
        log_path.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_path / f"confluence-sync_{timestamp}.log"

        file_formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt=date_format
        )
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(file_formatter)
        app_logger.addHandler(file_handler)

        logger.info(f"Logging to file: {log_file}")


def _command() -> SyncCommand:
    _configure_logging(_Settings.verbosity, _Settings.logdir)
    output = OutputHandler(verbosity=_Settings.verbosity, no_color=_Settings.no_color)
    return SyncCommand(output_handler=output)


@app.callback()
def main_callback(
    verbosity: int = typer.Option(
        0,
        "--verbosity",
        "-v",
        help="Verbosity level: 0=summary, 1=info, 2=debug",
    ),
    logdir: Optional[str] = typer.Option(
        None,
        "--logdir",
        help="Directory for log files (creates timestamped log file)",
    ),
    no_color: bool = typer.Option(
        False,
        "--no-color",
        help="Disable colored output",
    ),
) -> None:
    _Settings.verbosity = verbosity
    _Settings.logdir = logdir
    _Settings.no_color = no_color


@app.command()
def init(
    space: str = typer.Argument(..., help="Space key, or a space/page URL copied from the browser"),
    work_dir: str = typer.Option(".", "--dir", "-d", help="Local directory for synced files"),
) -> None:
    """Bind a local directory to a Confluence space."""
    raise typer.Exit(_command().init(work_dir, space))


@app.command()
def pull(
    work_dir: str = typer.Option(".", "--dir", "-d", help="Directory initialized with 'init'"),
    dry_run: bool = typer.Option(False, "--dry-run", "--dryrun", help="Preview changes without applying them"),
    force: bool = typer.Option(False, "--force", help="Re-download every page"),
    depth: Optional[int] = typer.Option(None, "--depth", help="Only pull pages at most this deep (root pages are 1)"),
    pages: Optional[List[str]] = typer.Option(
        None,
        "--page",
        "-p",
        help="Local path or page ID to re-pull (can be used multiple times)",
        metavar="REF",
    ),
) -> None:
    """Download changes from Confluence."""
    raise typer.Exit(_command().pull(work_dir, dry_run=dry_run, force=force, depth=depth, pages=pages))


@app.command()
def push(
    file: str = typer.Argument(..., help="Markdown file to upload, relative to --dir"),
    work_dir: str = typer.Option(".", "--dir", "-d", help="Directory initialized with 'init'"),
    dry_run: bool = typer.Option(False, "--dry-run", "--dryrun", help="Preview without uploading"),
    force: bool = typer.Option(False, "--force", help="Overwrite the page even if it changed remotely"),
) -> None:
    """Upload one local file to Confluence."""
    raise typer.Exit(_command().push(work_dir, file, dry_run=dry_run, force=force))


@app.command()
def status(
    work_dir: str = typer.Option(".", "--dir", "-d", help="Directory initialized with 'init'"),
) -> None:
    """Show the tracked space and pages (with -v, also pending remote changes)."""
    raise typer.Exit(_command().status(work_dir))


def main() -> None:
    """Main entry point for the CLI application.

    This function is called when the module is executed directly or
    when the console script is invoked.
    """
    app()


# Allow running as: python -m src.cli.main
if __name__ == "__main__":
    main()

"""Terminal output handling using Rich library.

This module provides the OutputHandler class for all CLI terminal output and
a progress reporter that drives a Rich progress bar from the sync engine's
progress callbacks. Supports verbosity levels and the --no-color flag.
"""

from contextlib import contextmanager
from typing import Iterator, Optional

from rich.console import Console
from rich.live import Live
from rich.markup import escape
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeRemainingColumn,
)
from rich.spinner import Spinner

from src.sync.models import ChangeType, PushResult, SpaceState, SyncDiff, SyncProgressReporter, SyncResult


class OutputHandler:
    """Handles all terminal output using Rich library.

    Attributes:
        verbosity: Verbosity level (0=summary, 1=info, 2=debug)
        console: Rich Console instance for output

    Example:
        >>> handler = OutputHandler(verbosity=1, no_color=False)
        >>> handler.success("Operation completed")
        >>> with handler.spinner("Processing..."):
        ...     pass
    """

    def __init__(self, verbosity: int = 0, no_color: bool = False, console: Optional[Console] = None):
        """Initialize output handler.

        Args:
            verbosity: Verbosity level (0=summary, 1=info, 2=debug)
            no_color: Disable color output if True
            console: Console to print to (tests pass a recording console)
        """
        self.verbosity = verbosity
        self.console = console or Console(
            no_color=no_color,
            highlight=False,
        )

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {escape(message)}")

    def error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {escape(message)}", style="red")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]⚠[/yellow] {escape(message)}", style="yellow")

    def info(self, message: str) -> None:
        """Display info message (only if verbosity >= 1)."""
        if self.verbosity >= 1:
            self.console.print(escape(message))

    def debug(self, message: str) -> None:
        """Display debug message (only if verbosity >= 2)."""
        if self.verbosity >= 2:
            self.console.print(f"[dim]{escape(message)}[/dim]")

    def print(self, message: str) -> None:
        self.console.print(escape(message))

    @contextmanager
    def spinner(self, message: str) -> Iterator[None]:
        """Display spinner for single operations.

        Example:
            >>> with handler.spinner("Resolving space..."):
            ...     pass
        """
        spinner = Spinner("dots", text=message)
        with Live(spinner, console=self.console, refresh_per_second=10, transient=True):
            yield

    def new_progress(self) -> Progress:
        """Progress display used during the apply loop."""
        return Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeRemainingColumn(),
            console=self.console,
            transient=True,
        )

    def print_dryrun_summary(self, diff: SyncDiff) -> None:
        """Display what a pull would change."""
        self.console.print("\n[bold]Dry Run - Changes Preview:[/bold]")

        sections = (
            ("green", "Would add", diff.added),
            ("blue", "Would update", diff.modified),
            ("red", "Would delete", diff.deleted),
        )
        for color, label, changes in sections:
            if not changes:
                continue
            self.console.print(f"\n[{color}]{label} ({len(changes)} page(s)):[/{color}]")
            for change in changes:
                where = f" → {change.local_path}" if change.local_path else ""
                self.console.print(f"  • {escape(change.title)}{escape(where)}")

        if diff.is_empty():
            self.console.print("\n[green]Already in sync. No changes to apply.[/green]")

    def print_pull_summary(self, result: SyncResult) -> None:
        """Display the outcome of a pull with color coding."""
        for warning in result.warnings:
            self.warning(warning)
        for error in result.errors:
            self.error(error)

        diff = result.changes
        self.console.print("\n[bold]Pull Summary:[/bold]")
        if diff.added:
            self.console.print(f"  [green]+[/green] Added: {len(diff.added)} page(s)")
        if diff.modified:
            self.console.print(f"  [blue]↓[/blue] Updated: {len(diff.modified)} page(s)")
        if diff.deleted:
            self.console.print(f"  [red]✗[/red] Deleted: {len(diff.deleted)} page(s)")
        if result.errors:
            self.console.print(f"  [red]⚡[/red] Failed: {len(result.errors)} page(s)")

        if result.cancelled:
            self.console.print(
                f"\n[yellow]Pull cancelled after {result.applied} of {diff.total} change(s)[/yellow]"
            )
        elif diff.is_empty():
            self.console.print("\n[green]Already in sync. No changes detected.[/green]")
        elif not result.success:
            self.console.print("\n[red]Pull completed with errors[/red]")
        else:
            self.console.print("\n[green]Pull completed successfully[/green]")

    def print_push_result(self, result: PushResult) -> None:
        for warning in result.warnings:
            self.warning(warning)

        if result.dry_run:
            action = "create" if result.created else f"update page {result.page_id}"
            self.console.print(f"[yellow]Dry run:[/yellow] would {action} ({escape(result.title)})")
            return

        action = "Created" if result.created else "Updated"
        self.success(f"{action} \"{result.title}\" (page {result.page_id}, version {result.version})")
        if result.moved:
            self.info("  Moved under its parent on Confluence")
        if result.renamed_from:
            self.print(f"  Renamed {result.renamed_from} -> {result.local_path} to match the page title")

    def print_status(self, state: SpaceState, work_dir: str) -> None:
        """Display the tracking state of a directory."""
        name = f" ({state.space_name})" if state.space_name else ""
        self.console.print(f"[bold]Space:[/bold] {escape(state.space_key)}{escape(name)}")
        self.console.print(f"[bold]Directory:[/bold] {escape(work_dir)}")
        self.console.print(f"[bold]Tracked pages:[/bold] {len(state.pages)}")
        self.console.print(f"[bold]Tracked folders:[/bold] {len(state.folders)}")
        self.console.print(f"[bold]Last sync:[/bold] {state.last_sync_at or 'never'}")

        if self.verbosity >= 1:
            for page_id, link in sorted(state.pages.items(), key=lambda item: item[1].local_path):
                version = link.version if link.version is not None else '?'
                self.console.print(f"  {escape(link.local_path)}  [dim](id {page_id}, v{version})[/dim]")


class ProgressReporter(SyncProgressReporter):
    """Drives a Rich progress bar from the sync engine's callbacks."""

    def __init__(self, output: OutputHandler):
        self._output = output
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None

    def on_fetch_start(self) -> None:
        self._output.info("Fetching page tree...")

    def on_fetch_complete(self, page_count: int, folder_count: int) -> None:
        self._output.info(f"Found {page_count} page(s) and {folder_count} folder(s)")

    def on_page_start(self, index: int, total: int, title: str, change_type: ChangeType) -> None:
        if self._progress is None:
            self._progress = self._output.new_progress()
            self._progress.start()
            self._task = self._progress.add_task("Pulling pages", total=total)
        self._progress.update(self._task, description=f"{change_type.capitalize()}: {escape(title)}")

    def on_page_complete(self, index: int, total: int, title: str, local_path: str) -> None:
        self._advance()
        self._output.debug(f"{title} → {local_path}")

    def on_page_error(self, title: str, error: str) -> None:
        self._advance()

    def _advance(self) -> None:
        if self._progress is not None:
            self._progress.update(self._task, advance=1)

    def close(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None

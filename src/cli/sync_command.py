"""Command orchestration for the CLI.

SyncCommand wires the Confluence client, the markdown converter and the
sync engines to the terminal: it runs one operation, prints its outcome
through OutputHandler and translates every failure into an ExitCode.
"""

import logging
import signal
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional

from src.cli.errors import InitError
from src.cli.init_command import InitCommand
from src.cli.models import ExitCode
from src.cli.output import OutputHandler, ProgressReporter
from src.confluence_client.api_wrapper import APIWrapper
from src.confluence_client.auth import Authenticator
from src.confluence_client.errors import (
    AuthError,
    InvalidCredentialsError,
    NetworkError,
    RateLimitError,
    SyncError,
    VersionConflictError,
)
from src.content_converter.markdown_converter import MarkdownConverter
from src.sync.diff_engine import compute_diff
from src.sync.models import CancellationToken, PushOptions, SyncOptions
from src.sync.push_engine import PushEngine
from src.sync.state_store import StateManager
from src.sync.sync_engine import SyncEngine

logger = logging.getLogger(__name__)


def exit_code_for(error: BaseException) -> ExitCode:
    """Exit code reported for an exception that ended a command."""
    if isinstance(error, VersionConflictError):
        return ExitCode.CONFLICTS
    if isinstance(error, (AuthError, InvalidCredentialsError)):
        return ExitCode.AUTH_ERROR
    if isinstance(error, (NetworkError, RateLimitError)):
        return ExitCode.NETWORK_ERROR
    return ExitCode.GENERAL_ERROR


@contextmanager
def cancel_on_interrupt(token: CancellationToken, output: OutputHandler) -> Iterator[None]:
    """Turn the first Ctrl+C into a cancellation request.

    The page in flight is finished and the loop stops before the next one.
    A second Ctrl+C falls back to the default KeyboardInterrupt.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    previous = signal.getsignal(signal.SIGINT)

    def handle(signum, frame):
        output.warning("Cancelling after the current page (press Ctrl+C again to abort)")
        token.cancel()
        signal.signal(signal.SIGINT, signal.default_int_handler)

    signal.signal(signal.SIGINT, handle)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


class SyncCommand:
    """Runs init, pull, push and status for the CLI.

    Example:
        >>> output = OutputHandler(verbosity=1)
        >>> exit_code = SyncCommand(output_handler=output).pull("./docs")
        >>> sys.exit(exit_code)
    """

    def __init__(
        self,
        output_handler: Optional[OutputHandler] = None,
        authenticator: Optional[Authenticator] = None,
        api_wrapper: Optional[APIWrapper] = None,
        converter: Optional[MarkdownConverter] = None,
    ):
        """Initialize the command.

        Args:
            output_handler: Terminal output (defaults to a plain OutputHandler)
            authenticator: Credential loader used to build the default client
            api_wrapper: Confluence client; tests pass a fake
            converter: Markdown converter; tests pass a fake
        """
        self.output = output_handler or OutputHandler()
        self._authenticator = authenticator
        self._api_wrapper = api_wrapper
        self._converter = converter or MarkdownConverter()

    def _get_api_wrapper(self) -> APIWrapper:
        if self._api_wrapper is None:
            self._api_wrapper = APIWrapper(self._authenticator or Authenticator())
        return self._api_wrapper

    def _base_url(self) -> Optional[str]:
        return getattr(self._get_api_wrapper(), 'base_url', None)

    def _fail(self, error: BaseException, action: str) -> ExitCode:
        code = exit_code_for(error)
        if isinstance(error, VersionConflictError):
            self.output.error(f"{action} refused: {error}")
            self.output.print("Pull the page first, or push with --force to overwrite it.")
        elif isinstance(error, SyncError):
            logger.error(f"{action} failed: {error}")
            self.output.error(f"{action} failed: {error}")
        else:
            logger.exception(f"Unexpected error during {action.lower()}")
            self.output.error(f"Unexpected error: {error}")
        return code

    def init(self, work_dir: str, space: str) -> ExitCode:
        """Bind ``work_dir`` to a space."""
        try:
            with self.output.spinner("Resolving space..."):
                state = InitCommand(self._get_api_wrapper()).run(work_dir, space)
        except InitError as e:
            logger.error(f"Initialization failed: {e}")
            self.output.error(f"Initialization failed: {e}")
            return ExitCode.GENERAL_ERROR
        except Exception as e:
            return self._fail(e, "Initialization")

        self.output.success(f"Initialized {work_dir} for space {state.space_key}")
        self.output.info(f"  State file: {StateManager.state_path(work_dir)}")
        self.output.info("")
        self.output.info("Next steps:")
        self.output.info(f"  Run 'confluence-sync pull --dir {work_dir}' to download the space")
        return ExitCode.SUCCESS

    def pull(
        self,
        work_dir: str,
        dry_run: bool = False,
        force: bool = False,
        depth: Optional[int] = None,
        pages: Optional[List[str]] = None,
    ) -> ExitCode:
        """Pull the space tracked in ``work_dir``."""
        if depth is not None and depth < 1:
            self.output.error("--depth must be at least 1")
            return ExitCode.INVALID_ARGUMENTS

        token = CancellationToken()
        reporter = ProgressReporter(self.output)
        options = SyncOptions(
            dry_run=dry_run,
            force=force,
            depth=depth,
            specific_pages=list(pages or []),
            cancellation_token=token,
            progress=reporter,
        )

        try:
            engine = SyncEngine(self._get_api_wrapper(), self._converter, base_url=self._base_url())
            with cancel_on_interrupt(token, self.output):
                try:
                    result = engine.sync(work_dir, options)
                finally:
                    reporter.close()
        except Exception as e:
            return self._fail(e, "Pull")

        if dry_run:
            for warning in result.warnings:
                self.output.warning(warning)
            self.output.print_dryrun_summary(result.changes)
            return ExitCode.SUCCESS

        self.output.print_pull_summary(result)
        if result.cancelled:
            return ExitCode.CANCELLED
        if not result.success:
            return ExitCode.GENERAL_ERROR
        return ExitCode.SUCCESS

    def push(self, work_dir: str, file_path: str, dry_run: bool = False, force: bool = False) -> ExitCode:
        """Push one local file."""
        try:
            engine = PushEngine(self._get_api_wrapper(), self._converter, base_url=self._base_url())
            result = engine.push(work_dir, file_path, PushOptions(dry_run=dry_run, force=force))
        except FileNotFoundError as e:
            self.output.error(f"File not found: {e.filename or file_path}")
            return ExitCode.INVALID_ARGUMENTS
        except Exception as e:
            return self._fail(e, "Push")

        self.output.print_push_result(result)
        return ExitCode.SUCCESS

    def status(self, work_dir: str) -> ExitCode:
        """Show what is tracked, and with -v what a pull would change."""
        try:
            state = StateManager.load_required(work_dir)
            self.output.print_status(state, work_dir)
            if self.output.verbosity >= 1:
                tree = self._get_api_wrapper().fetch_tree(state.space_id)
                self.output.print_dryrun_summary(compute_diff(tree.pages, state))
        except Exception as e:
            return self._fail(e, "Status")
        return ExitCode.SUCCESS

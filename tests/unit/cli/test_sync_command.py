"""Unit tests for cli.sync_command module."""

import io
import signal
from unittest.mock import patch

import pytest
from rich.console import Console

from src.cli.models import ExitCode
from src.cli.output import OutputHandler
from src.cli.sync_command import SyncCommand, cancel_on_interrupt, exit_code_for
from src.confluence_client.errors import (
    ApiError,
    AuthError,
    InvalidCredentialsError,
    NetworkError,
    RateLimitError,
    VersionConflictError,
)
from src.sync.errors import StateNotFoundError
from src.sync.models import CancellationToken, SpaceState, SyncResult
from src.sync.state_store import StateManager
from tests.helpers.fake_remote import FakeConverter, FakeRemote


def create_output(verbosity=0):
    buffer = io.StringIO()
    console = Console(file=buffer, width=200, no_color=True)
    return OutputHandler(verbosity=verbosity, console=console), buffer


def create_remote():
    remote = FakeRemote()
    remote.add_page("1", "Home")
    remote.add_page("2", "Guide", version=2, parent_id="1")
    return remote


@pytest.fixture
def work_dir(tmp_path):
    StateManager.save(str(tmp_path), SpaceState(space_id="98765", space_key="DOCS"))
    return tmp_path


class TestExitCodeFor:
    """Test cases for exit_code_for."""

    @pytest.mark.parametrize("error,expected", [
        (VersionConflictError("1", 2, 3), ExitCode.CONFLICTS),
        (AuthError(403), ExitCode.AUTH_ERROR),
        (InvalidCredentialsError("bot@example.com", "https://acme.atlassian.net"), ExitCode.AUTH_ERROR),
        (NetworkError("https://acme.atlassian.net"), ExitCode.NETWORK_ERROR),
        (RateLimitError(30), ExitCode.NETWORK_ERROR),
        (ApiError(500, "boom"), ExitCode.GENERAL_ERROR),
        (StateNotFoundError("./docs"), ExitCode.GENERAL_ERROR),
        (RuntimeError("bug"), ExitCode.GENERAL_ERROR),
    ])
    def test_mapping(self, error, expected):
        assert exit_code_for(error) == expected


class TestInit:
    """Test cases for SyncCommand.init."""

    def test_success(self, tmp_path):
        output, buffer = create_output()

        code = SyncCommand(output, api_wrapper=create_remote()).init(str(tmp_path / "docs"), "DOCS")

        assert code == ExitCode.SUCCESS
        assert "Initialized" in buffer.getvalue()
        assert StateManager.exists(str(tmp_path / "docs"))

    def test_unknown_space(self, tmp_path):
        output, buffer = create_output()

        code = SyncCommand(output, api_wrapper=create_remote()).init(str(tmp_path), "NOPE")

        assert code == ExitCode.GENERAL_ERROR
        assert "Initialization failed" in buffer.getvalue()

    def test_auth_failure(self, tmp_path):
        output, _ = create_output()
        remote = create_remote()

        with patch.object(remote, "get_space", side_effect=AuthError(401)):
            code = SyncCommand(output, api_wrapper=remote).init(str(tmp_path), "DOCS")

        assert code == ExitCode.AUTH_ERROR


class TestPull:
    """Test cases for SyncCommand.pull."""

    def test_success(self, work_dir):
        output, buffer = create_output()

        code = SyncCommand(output, api_wrapper=create_remote(), converter=FakeConverter()).pull(str(work_dir))

        assert code == ExitCode.SUCCESS
        assert "Added: 2 page(s)" in buffer.getvalue()
        assert "Pull completed successfully" in buffer.getvalue()
        assert (work_dir / "guide.md").exists()

    def test_dry_run_prints_preview(self, work_dir):
        output, buffer = create_output()

        code = SyncCommand(output, api_wrapper=create_remote(), converter=FakeConverter()).pull(
            str(work_dir), dry_run=True
        )

        assert code == ExitCode.SUCCESS
        assert "Would add (2 page(s)):" in buffer.getvalue()
        assert "Guide → guide.md" in buffer.getvalue()
        assert not (work_dir / "guide.md").exists()

    def test_page_failure_is_general_error(self, work_dir):
        output, buffer = create_output()
        remote = create_remote()
        remote.fail_on[("fetch_content", "2")] = ApiError(500, "boom")

        code = SyncCommand(output, api_wrapper=remote, converter=FakeConverter()).pull(str(work_dir))

        assert code == ExitCode.GENERAL_ERROR
        assert 'Failed to sync page "Guide"' in buffer.getvalue()

    def test_uninitialized_directory(self, tmp_path):
        output, buffer = create_output()

        code = SyncCommand(output, api_wrapper=create_remote(), converter=FakeConverter()).pull(str(tmp_path))

        assert code == ExitCode.GENERAL_ERROR
        assert "No sync state found" in buffer.getvalue()

    def test_invalid_depth(self, work_dir):
        output, buffer = create_output()
        remote = create_remote()

        code = SyncCommand(output, api_wrapper=remote, converter=FakeConverter()).pull(str(work_dir), depth=0)

        assert code == ExitCode.INVALID_ARGUMENTS
        assert remote.calls == []

    def test_rejected_credentials(self, work_dir):
        output, _ = create_output()
        remote = create_remote()
        remote.fail_on[("fetch_tree", "98765")] = AuthError(401)

        code = SyncCommand(output, api_wrapper=remote, converter=FakeConverter()).pull(str(work_dir))

        assert code == ExitCode.AUTH_ERROR

    def test_cancelled_run(self, work_dir):
        output, buffer = create_output()

        with patch("src.cli.sync_command.SyncEngine") as mock_engine:
            mock_engine.return_value.sync.return_value = SyncResult(cancelled=True)
            code = SyncCommand(output, api_wrapper=create_remote()).pull(str(work_dir))

        assert code == ExitCode.CANCELLED
        assert "Pull cancelled" in buffer.getvalue()

    def test_unexpected_error(self, work_dir):
        output, buffer = create_output()

        with patch("src.cli.sync_command.SyncEngine") as mock_engine:
            mock_engine.return_value.sync.side_effect = RuntimeError("bug")
            code = SyncCommand(output, api_wrapper=create_remote()).pull(str(work_dir))

        assert code == ExitCode.GENERAL_ERROR
        assert "Unexpected error: bug" in buffer.getvalue()


class TestPush:
    """Test cases for SyncCommand.push."""

    def pulled(self, work_dir, remote):
        SyncCommand(create_output()[0], api_wrapper=remote, converter=FakeConverter()).pull(str(work_dir))

    def test_success(self, work_dir):
        remote = create_remote()
        self.pulled(work_dir, remote)
        output, buffer = create_output()

        code = SyncCommand(output, api_wrapper=remote, converter=FakeConverter()).push(str(work_dir), "guide.md")

        assert code == ExitCode.SUCCESS
        assert 'Updated "Guide" (page 2, version 3)' in buffer.getvalue()

    def test_conflict(self, work_dir):
        remote = create_remote()
        self.pulled(work_dir, remote)
        remote.pages["2"].version = 7
        output, buffer = create_output()

        code = SyncCommand(output, api_wrapper=remote, converter=FakeConverter()).push(str(work_dir), "guide.md")

        assert code == ExitCode.CONFLICTS
        assert "Pull the page first" in buffer.getvalue()

    def test_network_failure(self, work_dir):
        remote = create_remote()
        self.pulled(work_dir, remote)
        output, _ = create_output()

        with patch.object(remote, "update", side_effect=NetworkError("https://acme.atlassian.net")):
            code = SyncCommand(output, api_wrapper=remote, converter=FakeConverter()).push(str(work_dir), "guide.md")

        assert code == ExitCode.NETWORK_ERROR

    def test_missing_file(self, work_dir):
        output, buffer = create_output()

        code = SyncCommand(output, api_wrapper=create_remote(), converter=FakeConverter()).push(
            str(work_dir), "missing.md"
        )

        assert code == ExitCode.INVALID_ARGUMENTS
        assert "File not found" in buffer.getvalue()


class TestStatus:
    """Test cases for SyncCommand.status."""

    def test_prints_tracking_summary(self, work_dir):
        output, buffer = create_output()

        code = SyncCommand(output, api_wrapper=create_remote()).status(str(work_dir))

        assert code == ExitCode.SUCCESS
        assert "Space: DOCS" in buffer.getvalue()
        assert "Tracked pages: 0" in buffer.getvalue()

    def test_verbose_shows_pending_changes(self, work_dir):
        output, buffer = create_output(verbosity=1)

        SyncCommand(output, api_wrapper=create_remote()).status(str(work_dir))

        assert "Would add (2 page(s)):" in buffer.getvalue()

    def test_uninitialized_directory(self, tmp_path):
        output, _ = create_output()

        assert SyncCommand(output, api_wrapper=create_remote()).status(str(tmp_path)) == ExitCode.GENERAL_ERROR


class TestCancelOnInterrupt:
    """Test cases for the SIGINT cancellation handler."""

    def test_first_interrupt_cancels_token(self):
        token = CancellationToken()
        output, buffer = create_output()
        previous = signal.getsignal(signal.SIGINT)

        with cancel_on_interrupt(token, output):
            handler = signal.getsignal(signal.SIGINT)
            handler(signal.SIGINT, None)

            assert token.cancelled is True
            assert signal.getsignal(signal.SIGINT) is signal.default_int_handler

        assert signal.getsignal(signal.SIGINT) is previous
        assert "Cancelling after the current page" in buffer.getvalue()

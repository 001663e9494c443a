"""InitCommand: bind a local directory to a Confluence space.

Initialization resolves the space (from its key, or from a space or page URL
copied from the browser) and writes an empty state file to
``<dir>/.confluence-sync/state.yaml``. No page is downloaded; the first
``pull`` does that.
"""

import logging
import os
import re
from typing import Optional
from urllib.parse import urlparse

from src.confluence_client.errors import ApiError
from src.sync.models import SpaceState
from src.sync.state_store import StateManager

from .errors import InitError

logger = logging.getLogger(__name__)


class InitCommand:
    """Creates the sync state of a directory.

    Example:
        >>> init = InitCommand(api_wrapper)
        >>> state = init.run("./docs", "TEAM")
        >>> state = init.run("./docs", "https://example.atlassian.net/wiki/spaces/TEAM/overview")
    """

    # /spaces/SPACE[/overview | /pages/PAGE_ID[/title]]
    URL_SPACE_PATTERN = re.compile(
        r'^https?://[^/]+(?:/wiki)?/spaces/([^/]+)(?:/overview|/pages/\d+(?:/.*)?)?/?$'
    )
    SPACE_KEY_PATTERN = re.compile(r'^~?[A-Za-z0-9_]+$')

    def __init__(self, api_wrapper):
        """Initialize the init command.

        Args:
            api_wrapper: Client used to resolve the space (see APIWrapper)
        """
        self.api_wrapper = api_wrapper

    def _parse_space_key(self, space: str) -> str:
        """Space key from a bare key or a Confluence URL.

        Raises:
            InitError: If the input is neither
        """
        space = (space or '').strip()
        if not space:
            raise InitError("Space key cannot be empty")

        if urlparse(space).scheme in ('http', 'https'):
            match = self.URL_SPACE_PATTERN.match(space)
            if match is None:
                raise InitError(
                    f"Invalid Confluence URL format: '{space}'\n"
                    "Supported formats:\n"
                    "  - https://domain.atlassian.net/wiki/spaces/SPACE\n"
                    "  - https://domain.atlassian.net/wiki/spaces/SPACE/overview\n"
                    "  - https://domain.atlassian.net/wiki/spaces/SPACE/pages/PAGE_ID"
                )
            return match.group(1)

        if not self.SPACE_KEY_PATTERN.match(space):
            raise InitError(f"Invalid space key: '{space}'")
        return space

    def _check_existing_state(self, work_dir: str, space_key: str) -> Optional[SpaceState]:
        """Existing state of the directory, if it belongs to the same space.

        Raises:
            InitError: If the directory is bound to another space
        """
        existing = StateManager.load(work_dir)
        if existing is not None and existing.space_key != space_key:
            raise InitError(
                f"{work_dir} is already initialized for space '{existing.space_key}'\n"
                f"Delete {StateManager.state_path(work_dir)} first to bind it to '{space_key}'."
            )
        return existing

    def run(self, work_dir: str, space: str) -> SpaceState:
        """Initialize ``work_dir`` for a space.

        Re-running for the same space keeps the tracked pages and refreshes
        the space identity.

        Args:
            work_dir: Local directory for synced files (created if missing)
            space: Space key or Confluence URL

        Returns:
            The saved SpaceState

        Raises:
            InitError: If the space cannot be resolved or the directory is
                       bound to another space
            AuthError, NetworkError: From the remote lookup
        """
        space_key = self._parse_space_key(space)
        work_dir = os.path.normpath(work_dir)
        existing = self._check_existing_state(work_dir, space_key)

        try:
            remote_space = self.api_wrapper.get_space(space_key)
        except ApiError as e:
            raise InitError(f"Failed to resolve space '{space_key}': {e}") from e
        logger.info(f"Resolved space '{remote_space.name}' ({remote_space.key}, id {remote_space.id})")

        try:
            os.makedirs(work_dir, exist_ok=True)
        except OSError as e:
            raise InitError(f"Failed to create local directory {work_dir}: {e}") from e

        if existing is not None:
            state = SpaceState(
                space_id=remote_space.id,
                space_key=remote_space.key,
                space_name=remote_space.name,
                homepage_id=remote_space.homepage_id,
                pages=existing.pages,
                folders=existing.folders,
                last_sync_at=existing.last_sync_at,
            )
        else:
            state = SpaceState(
                space_id=remote_space.id,
                space_key=remote_space.key,
                space_name=remote_space.name,
                homepage_id=remote_space.homepage_id,
            )

        StateManager.save(work_dir, state)
        logger.info(f"State saved to {StateManager.state_path(work_dir)}")
        return state

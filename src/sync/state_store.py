"""Local state store: the per-directory record of what has been synced.

The state lives in ``<work_dir>/.confluence-sync/state.yaml`` and maps remote
page and folder IDs to local paths. It is read at the start of every run and
rewritten wholesale after every remote-affecting operation, so an interrupted
run loses at most the item that was in flight.

State file structure:
    space_id: "98765"
    space_key: DOCS
    space_name: Documentation
    homepage_id: "123"
    last_sync_at: "2024-01-15T10:30:00Z"
    pages:
      "123":
        local_path: getting-started.md
        version: 4
        last_modified: "2024-01-14T09:00:00Z"
    folders:
      "456":
        title: Guides
        parent_id: null
        local_path: guides
"""

import logging
import os
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import yaml

from .errors import StateError, StateFilesystemError, StateNotFoundError
from .models import FolderLink, PageLink, SpaceState

logger = logging.getLogger(__name__)


def utc_timestamp() -> str:
    """Current time as an ISO 8601 UTC timestamp with a Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class StateManager:
    """Handles state file loading, validation, mutation and saving."""

    DEFAULT_STATE_DIR = '.confluence-sync'
    DEFAULT_STATE_FILE = 'state.yaml'

    @classmethod
    def state_path(cls, work_dir: str) -> str:
        return os.path.join(work_dir, cls.DEFAULT_STATE_DIR, cls.DEFAULT_STATE_FILE)

    @classmethod
    def exists(cls, work_dir: str) -> bool:
        return os.path.isfile(cls.state_path(work_dir))

    @classmethod
    def load(cls, work_dir: str) -> Optional[SpaceState]:
        """Load the state of a working directory.

        Args:
            work_dir: Root of the synced directory tree

        Returns:
            SpaceState, or None if the directory was never initialized

        Raises:
            StateFilesystemError: If the file exists but cannot be read
            StateError: If the file is not a valid state record
        """
        state_path = cls.state_path(work_dir)
        try:
            with open(state_path, 'r', encoding='utf-8') as f:
                content = f.read()
        except FileNotFoundError:
            return None
        except PermissionError:
            raise StateFilesystemError(state_path, 'read', 'Permission denied')
        except OSError as e:
            raise StateFilesystemError(state_path, 'read', str(e))

        if not content.strip():
            raise StateError("State file is empty")

        try:
            state_dict = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise StateError(f"Invalid YAML syntax: {str(e)}")

        if not isinstance(state_dict, dict):
            raise StateError(
                f"State must be a YAML dictionary, got {type(state_dict).__name__}"
            )

        return cls._parse_state(state_dict)

    @classmethod
    def load_required(cls, work_dir: str) -> SpaceState:
        """Load the state, failing if the directory was never initialized.

        Raises:
            StateNotFoundError: If no state file exists
        """
        state = cls.load(work_dir)
        if state is None:
            raise StateNotFoundError(work_dir)
        return state

    @classmethod
    def save(cls, work_dir: str, state: SpaceState) -> None:
        """Validate and write the state file, replacing any previous content.

        Raises:
            StateError: If the state violates the unique local path rule
            StateFilesystemError: If the file cannot be written
        """
        cls.validate(state)

        state_dict = {
            'space_id': state.space_id,
            'space_key': state.space_key,
            'space_name': state.space_name,
            'homepage_id': state.homepage_id,
            'last_sync_at': state.last_sync_at,
            'pages': {
                page_id: {
                    'local_path': link.local_path,
                    'version': link.version,
                    'last_modified': link.last_modified,
                }
                for page_id, link in state.pages.items()
            },
            'folders': {
                folder_id: {
                    'title': link.title,
                    'parent_id': link.parent_id,
                    'local_path': link.local_path,
                }
                for folder_id, link in state.folders.items()
            },
        }

        yaml_str = yaml.safe_dump(
            state_dict,
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False
        )

        state_path = cls.state_path(work_dir)
        state_dir = os.path.dirname(state_path)
        try:
            os.makedirs(state_dir, exist_ok=True)
        except OSError as e:
            raise StateFilesystemError(state_dir, 'create_directory', str(e))

        try:
            with open(state_path, 'w', encoding='utf-8') as f:
                f.write(yaml_str)
        except PermissionError:
            raise StateFilesystemError(state_path, 'write', 'Permission denied')
        except OSError as e:
            raise StateFilesystemError(state_path, 'write', str(e))

        logger.debug(f"Saved state with {len(state.pages)} pages and {len(state.folders)} folders")

    @classmethod
    def validate(cls, state: SpaceState) -> None:
        """Check that no two pages, and no two folders, share a local path.

        Raises:
            StateError: Naming both IDs claiming the same path
        """
        for section, links in (('pages', state.pages), ('folders', state.folders)):
            seen: Dict[str, str] = {}
            for item_id, link in links.items():
                other = seen.get(link.local_path)
                if other is not None:
                    raise StateError(
                        f"'{other}' and '{item_id}' both claim local path '{link.local_path}'",
                        section
                    )
                seen[link.local_path] = item_id

    @classmethod
    def with_page(cls, state: SpaceState, page_id: str, link: PageLink) -> SpaceState:
        """Return a copy of the state tracking ``page_id`` at ``link.local_path``.

        Raises:
            StateError: If another page already owns that path
        """
        owner = state.page_id_for_path(link.local_path)
        if owner is not None and owner != page_id:
            raise StateError(
                f"Cannot track page '{page_id}' at '{link.local_path}': "
                f"already tracked for page '{owner}'",
                'pages'
            )
        pages = dict(state.pages)
        pages[page_id] = link
        return replace(state, pages=pages)

    @classmethod
    def without_page(cls, state: SpaceState, page_id: str) -> SpaceState:
        pages = {pid: link for pid, link in state.pages.items() if pid != page_id}
        return replace(state, pages=pages)

    @classmethod
    def with_folder(cls, state: SpaceState, folder_id: str, link: FolderLink) -> SpaceState:
        """Return a copy of the state tracking ``folder_id`` at ``link.local_path``.

        Raises:
            StateError: If another folder already owns that path
        """
        owner = state.folder_id_for_path(link.local_path)
        if owner is not None and owner != folder_id:
            raise StateError(
                f"Cannot track folder '{folder_id}' at '{link.local_path}': "
                f"already tracked for folder '{owner}'",
                'folders'
            )
        folders = dict(state.folders)
        folders[folder_id] = link
        return replace(state, folders=folders)

    @classmethod
    def with_last_sync(cls, state: SpaceState, timestamp: Optional[str] = None) -> SpaceState:
        return replace(state, last_sync_at=timestamp or utc_timestamp())

    @classmethod
    def _parse_state(cls, state_dict: Dict[str, Any]) -> SpaceState:
        """Parse and validate a raw state dictionary.

        Raises:
            StateError: If a field is missing or has the wrong type
        """
        identity = {}
        for key in ('space_id', 'space_key'):
            value = state_dict.get(key)
            if value is None or not str(value).strip():
                raise StateError(f"Field '{key}' is required", key)
            identity[key] = str(value).strip()

        space_name = state_dict.get('space_name') or ''
        if not isinstance(space_name, str):
            raise StateError(
                f"Field 'space_name' must be a string, got {type(space_name).__name__}",
                'space_name'
            )

        last_sync_at = state_dict.get('last_sync_at')
        if last_sync_at is not None and not isinstance(last_sync_at, str):
            # PyYAML turns unquoted ISO timestamps into datetime objects
            if isinstance(last_sync_at, datetime):
                last_sync_at = last_sync_at.strftime("%Y-%m-%dT%H:%M:%SZ")
            else:
                raise StateError(
                    f"Field 'last_sync_at' must be a string (ISO 8601 timestamp), "
                    f"got {type(last_sync_at).__name__}",
                    'last_sync_at'
                )

        pages = {
            page_id: PageLink(
                local_path=cls._required_str(entry, 'local_path', f"pages.{page_id}"),
                version=cls._optional_int(entry, 'version', f"pages.{page_id}"),
                last_modified=cls._optional_str(entry.get('last_modified')),
            )
            for page_id, entry in cls._section(state_dict, 'pages').items()
        }

        folders = {
            folder_id: FolderLink(
                title=cls._required_str(entry, 'title', f"folders.{folder_id}"),
                local_path=cls._required_str(entry, 'local_path', f"folders.{folder_id}"),
                parent_id=cls._optional_str(entry.get('parent_id')),
            )
            for folder_id, entry in cls._section(state_dict, 'folders').items()
        }

        state = SpaceState(
            space_id=identity['space_id'],
            space_key=identity['space_key'],
            space_name=space_name,
            pages=pages,
            folders=folders,
            last_sync_at=last_sync_at,
            homepage_id=cls._optional_str(state_dict.get('homepage_id')),
        )
        cls.validate(state)
        return state

    @staticmethod
    def _section(state_dict: Dict[str, Any], name: str) -> Dict[str, Dict[str, Any]]:
        raw = state_dict.get(name)
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise StateError(
                f"Field '{name}' must be a dictionary, got {type(raw).__name__}",
                name
            )
        section = {}
        for key, entry in raw.items():
            if isinstance(key, bool) or not isinstance(key, (str, int)):
                raise StateError(
                    f"Field '{name}' keys must be IDs, got {type(key).__name__}",
                    name
                )
            if not isinstance(entry, dict):
                raise StateError(
                    f"Entry '{key}' must be a dictionary, got {type(entry).__name__}",
                    name
                )
            section[str(key)] = entry
        return section

    @staticmethod
    def _required_str(entry: Dict[str, Any], key: str, where: str) -> str:
        value = entry.get(key)
        if not isinstance(value, str) or not value.strip():
            raise StateError(f"Field '{key}' must be a non-empty string", where)
        return value

    @staticmethod
    def _optional_int(entry: Dict[str, Any], key: str, where: str) -> Optional[int]:
        value = entry.get(key)
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int):
            raise StateError(f"Field '{key}' must be an integer, got {type(value).__name__}", where)
        return value

    @staticmethod
    def _optional_str(value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, datetime):
            return value.strftime("%Y-%m-%dT%H:%M:%SZ")
        return str(value)

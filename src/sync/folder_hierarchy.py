"""Folder hierarchy manager: mirror a file's directory as remote folders.

Given the local path of a page file, ``ensure_folder_hierarchy`` walks its
directory segments from the root, reusing folders already tracked in the
state and creating the missing ones on the remote side. Each created folder
is written to the state file before the next one is attempted, so the state
never loses track of a folder that exists remotely.
"""

import logging
import posixpath
import re
from typing import List, Optional, Tuple

from src.confluence_client.errors import ApiError, ConfluenceError

from .errors import FolderErrorCode, FolderHierarchyError
from .models import FolderHierarchyResult, FolderLink, SpaceState
from .path_utils import normalize_local_path
from .state_store import StateManager

logger = logging.getLogger(__name__)

# Deeper hierarchies are rejected by Confluence
MAX_FOLDER_DEPTH = 10

# Characters Confluence does not accept in folder titles
INVALID_TITLE_CHARS = re.compile(r'[|\\/:*?"<>]')


def sanitize_folder_title(title: str) -> Tuple[str, bool]:
    """Replace characters Confluence rejects in titles.

    Returns:
        Tuple of (sanitized title, whether it differs from the input)

    Example:
        >>> sanitize_folder_title('Q1: "Plans"')
        ('Q1- -Plans-', True)
    """
    sanitized = INVALID_TITLE_CHARS.sub('-', title).strip()
    return sanitized, sanitized != title


def directory_segments(file_path: str) -> List[str]:
    """Directory segments of a file path relative to the working directory.

    Raises:
        FolderHierarchyError: INVALID_PATH for ``..`` segments or more than
                              MAX_FOLDER_DEPTH segments
    """
    dir_path = posixpath.dirname(normalize_local_path(file_path))
    if dir_path in ('', '.'):
        return []

    segments = [s for s in dir_path.split('/') if s and s != '.']

    if any(s == '..' for s in segments):
        raise FolderHierarchyError(
            f'Invalid path: "{dir_path}" contains path traversal sequences',
            FolderErrorCode.INVALID_PATH,
        )

    if len(segments) > MAX_FOLDER_DEPTH:
        raise FolderHierarchyError(
            f"Folder hierarchy too deep: {len(segments)} levels (max: {MAX_FOLDER_DEPTH})",
            FolderErrorCode.INVALID_PATH,
        )

    return segments


def _is_duplicate_error(error: Exception) -> bool:
    return (
        isinstance(error, ApiError)
        and error.status_code in (400, 409)
        and 'already exists' in str(error).lower()
    )


def ensure_folder_hierarchy(
    remote,
    state: SpaceState,
    work_dir: str,
    file_path: str,
    dry_run: bool = False,
    notices: Optional[List[str]] = None,
    create_missing: bool = True,
) -> FolderHierarchyResult:
    """Make sure the folders containing ``file_path`` exist remotely.

    Args:
        remote: Client exposing ``create_folder(space_id, title, parent_id)``
        state: Current state; never mutated, an updated copy is returned
        work_dir: Root of the synced tree, where the state file lives
        file_path: Page file path relative to ``work_dir``
        dry_run: Report the first missing folder instead of creating it
        notices: Collects user-facing notices (sanitized titles, dry-run plans)
        create_missing: When False, stop at the first untracked folder
                        without creating it (read-only resolution)

    Returns:
        FolderHierarchyResult with the innermost folder ID (None at the root,
        or when resolution stopped at a missing folder)

    Raises:
        FolderHierarchyError: INVALID_PATH before any remote call for ``..``
            or too-deep paths; FOLDER_EXISTS when a folder exists remotely but
            is not tracked; CREATE_FAILED for other creation failures
    """
    segments = directory_segments(file_path)
    if not segments:
        return FolderHierarchyResult(parent_id=None, updated_state=state)

    current_state = state
    current_parent_id: Optional[str] = None
    current_path = ''

    for segment in segments:
        current_path = f"{current_path}/{segment}" if current_path else segment

        existing_id = current_state.folder_id_for_path(current_path)
        if existing_id is not None:
            current_parent_id = existing_id
            continue

        if not create_missing:
            logger.debug(f"Folder '{current_path}' is not tracked; parent left unresolved")
            return FolderHierarchyResult(parent_id=None, updated_state=current_state)

        folder_title, was_modified = sanitize_folder_title(segment)
        if was_modified:
            notice = f'Folder title sanitized: "{segment}" -> "{folder_title}"'
            logger.warning(notice)
            if notices is not None:
                notices.append(notice)

        if dry_run:
            if notices is not None:
                notices.append(f"Would create folder: {current_path}")
            return FolderHierarchyResult(parent_id=None, updated_state=current_state, would_create=True)

        logger.info(f"Creating folder: {folder_title}")
        try:
            folder = remote.create_folder(current_state.space_id, folder_title, current_parent_id)
        except ConfluenceError as e:
            if _is_duplicate_error(e):
                raise FolderHierarchyError(
                    f'Folder "{folder_title}" exists on Confluence but is not tracked locally. '
                    f'Run "confluence-sync pull" to refresh the folder structure, then try again.',
                    FolderErrorCode.FOLDER_EXISTS,
                ) from e
            raise FolderHierarchyError(
                f'Failed to create folder "{folder_title}": {e}',
                FolderErrorCode.CREATE_FAILED,
            ) from e

        current_state = StateManager.with_folder(
            current_state,
            folder.id,
            FolderLink(title=folder.title, local_path=current_path, parent_id=current_parent_id),
        )
        StateManager.save(work_dir, current_state)
        logger.info(f"Created folder: {folder.title} (id: {folder.id})")

        current_parent_id = folder.id

    return FolderHierarchyResult(parent_id=current_parent_id, updated_state=current_state)

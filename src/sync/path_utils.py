"""Local path rules shared by pull and push.

Local paths are always POSIX-style and relative to the working directory.
The remote hierarchy is mirrored as follows:

- the space homepage becomes ``README.md`` at the root, and its children
  sit at the root level
- a page with children becomes ``<slug>/README.md``
- a leaf page becomes ``<slug>.md``
- folders become directories named after their slug
- collisions get a ``-2``, ``-3``, ... suffix
"""

import logging
import os
import posixpath
from typing import Dict, Iterable, Optional, Set, Union

from src.confluence_client.models import RemoteFolder, RemoteNode
from src.file_mapper.filesafe_converter import FilesafeConverter

from .errors import PathTraversalError

logger = logging.getLogger(__name__)

RESERVED_FILENAMES = frozenset({'claude.md', 'agents.md'})

HOMEPAGE_PATH = 'README.md'
INDEX_FILENAME = 'README.md'

ContentItem = Union[RemoteNode, RemoteFolder]


def normalize_local_path(path: str) -> str:
    """Strip a leading ``./`` and convert separators to ``/``."""
    normalized = path.replace('\\', '/')
    while normalized.startswith('./'):
        normalized = normalized[2:]
    return normalized


def is_reserved_path(local_path: str) -> bool:
    """True when the file name is reserved for agent instructions."""
    return posixpath.basename(normalize_local_path(local_path)).lower() in RESERVED_FILENAMES


def assert_path_within_directory(base_dir: str, target_path: str) -> str:
    """Resolve ``target_path`` against ``base_dir`` and check it stays inside.

    Returns:
        The resolved absolute path

    Raises:
        PathTraversalError: If the path escapes the base directory
    """
    resolved_base = os.path.realpath(base_dir)
    resolved_target = os.path.realpath(os.path.join(resolved_base, target_path))
    if resolved_target != resolved_base and not resolved_target.startswith(resolved_base + os.sep):
        raise PathTraversalError(target_path, base_dir)
    return resolved_target


def _parent_chain(
    parent_id: Optional[str],
    content_map: Dict[str, ContentItem],
    stop_at: Optional[str] = None,
) -> list:
    """Slugs of the ancestors of a node, root first."""
    chain = []
    visited: Set[str] = set()
    current = parent_id
    while current and current != stop_at and current not in visited:
        visited.add(current)
        parent = content_map.get(current)
        if parent is None:
            break
        chain.insert(0, FilesafeConverter.slugify(parent.title))
        current = parent.parent_id
    if current and current in visited:
        logger.warning(f"Circular parent reference detected at {current}; path may be truncated")
    return chain


def generate_folder_path(folder: RemoteFolder, content_map: Dict[str, ContentItem]) -> str:
    """Local directory of a remote folder, relative to the working directory."""
    chain = _parent_chain(folder.parent_id, content_map)
    chain.append(FilesafeConverter.slugify(folder.title))
    return '/'.join(chain)


def generate_local_path(
    page: RemoteNode,
    content_map: Dict[str, ContentItem],
    pages_with_children: Set[str],
    existing_paths: Set[str],
    homepage_id: Optional[str] = None,
    own_path: Optional[str] = None,
) -> str:
    """Compute the local path of a page and reserve it in ``existing_paths``.

    Args:
        page: The page to place
        content_map: All pages and folders of the space by ID
        pages_with_children: IDs of pages that have at least one child
        existing_paths: Paths already taken; updated with the result
        homepage_id: ID of the space homepage
        own_path: The page's current path, which it may keep

    Returns:
        Relative POSIX path of the page file
    """
    if page.id == homepage_id:
        existing_paths.add(HOMEPAGE_PATH)
        return HOMEPAGE_PATH

    chain = _parent_chain(page.parent_id, content_map, stop_at=homepage_id)
    slug = FilesafeConverter.slugify(page.title)
    has_children = page.id in pages_with_children

    def candidate(suffix: str) -> str:
        if has_children:
            return '/'.join([*chain, f"{slug}{suffix}", INDEX_FILENAME])
        return '/'.join([*chain, f"{slug}{suffix}.md"])

    def taken(path: str) -> bool:
        return path in existing_paths and path != own_path

    path = candidate('')
    counter = 2
    while taken(path):
        path = candidate(f"-{counter}")
        counter += 1

    existing_paths.add(path)
    return path


def find_homepage_id(pages: Iterable[RemoteNode], homepage_id: Optional[str] = None) -> Optional[str]:
    """The space homepage: the declared one if listed, else the first root page."""
    pages = list(pages)
    if homepage_id and any(p.id == homepage_id for p in pages):
        return homepage_id
    for page in pages:
        if not page.parent_id:
            return page.id
    return None


def remove_file_and_empty_parents(work_dir: str, local_path: str) -> bool:
    """Delete a tracked file and prune directories it leaves empty.

    Returns:
        True if a file was removed

    Raises:
        PathTraversalError: If the path escapes the working directory
    """
    full_path = assert_path_within_directory(work_dir, local_path)
    if not os.path.isfile(full_path):
        return False

    os.remove(full_path)
    root = os.path.realpath(work_dir)
    parent = os.path.dirname(full_path)
    while parent != root and parent.startswith(root + os.sep):
        if os.path.isdir(parent) and not os.listdir(parent):
            os.rmdir(parent)
            parent = os.path.dirname(parent)
        else:
            break
    return True

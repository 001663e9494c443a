"""Page state cache built from the front matter of tracked files.

The front matter of each synced file records which remote page and version
it was written from. Reading it back gives the engine an independent view of
local reality that is used as the local version during diffing and as the
input of link resolution. The cache is rebuilt for every run and never
written back.
"""

import logging
import os
from typing import Dict, Iterable, Optional

from src.confluence_client.models import RemoteNode
from src.sync.models import PageInfo, PageStateCache, SpaceState

from .errors import FileMapperError
from .frontmatter_handler import FrontmatterHandler

logger = logging.getLogger(__name__)

# A tracked file whose front matter has no version is treated as never pulled
MISSING_VERSION = 0


def build_page_state_from_files(work_dir: str, state: Optional[SpaceState]) -> PageStateCache:
    """Read the front matter of every tracked page file.

    Problems with individual files are recorded as warnings on the cache and
    the page is left out; they never raise.

    Args:
        work_dir: Root of the synced directory tree
        state: Tracked pages (page_id -> local path); None yields an empty cache

    Returns:
        PageStateCache with one entry per readable tracked file
    """
    cache = PageStateCache()
    if state is None:
        return cache

    root = os.path.realpath(work_dir)

    for page_id, link in state.pages.items():
        local_path = link.local_path
        full_path = os.path.realpath(os.path.join(root, local_path))

        if not full_path.startswith(root + os.sep):
            cache.warnings.append(f"Skipping path outside directory for page {page_id}: {local_path}")
            continue

        if not os.path.isfile(full_path):
            cache.warnings.append(f"File not found for page {page_id}: {local_path}")
            continue

        try:
            with open(full_path, 'r', encoding='utf-8') as f:
                content = f.read()
            page = FrontmatterHandler.parse(local_path, content)
        except (OSError, UnicodeDecodeError, FileMapperError) as e:
            cache.warnings.append(f"Failed to parse frontmatter for {local_path}: {e}")
            continue

        if page.page_id and page.page_id != page_id:
            cache.warnings.append(
                f'Page ID mismatch for {local_path}: state has "{page_id}", '
                f'frontmatter has "{page.page_id}"'
            )

        cache.add(PageInfo(
            page_id=page_id,
            local_path=local_path,
            title=page.title or '',
            version=page.version if page.version is not None else MISSING_VERSION,
            updated_at=_as_text(page.metadata.get('updated_at')),
            synced_at=_as_text(page.metadata.get('synced_at')),
        ))

    for warning in cache.warnings:
        logger.warning(warning)
    logger.debug(f"Built page state cache with {len(cache.pages)} pages")
    return cache


def project_planned_pages(
    cache: PageStateCache,
    remote_pages: Iterable[RemoteNode],
    planned_paths: Dict[str, str],
) -> PageStateCache:
    """Cache describing the tree as it will look once a pull completes.

    Pages about to be written are placed at their planned path with their
    remote title, so links to pages pulled in the same run resolve. Pages
    that keep their current file come from ``cache``. Pages absent from the
    remote tree are dropped.
    """
    projected = PageStateCache()
    for node in remote_pages:
        path = planned_paths.get(node.id)
        if path is not None:
            projected.add(PageInfo(
                page_id=node.id,
                local_path=path,
                title=node.title,
                version=node.version,
            ))
            continue
        info = cache.pages.get(node.id)
        if info is not None:
            projected.add(info)
    return projected


def _as_text(value) -> Optional[str]:
    return None if value is None else str(value)

"""Diff engine: classify remote pages against the local state.

Every remote page is either new (``added``), newer than the local copy
(``modified``) or up to date (left out). Every tracked page missing from the
remote tree is ``deleted``. A page ID never appears in two lists.
"""

import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

from src.confluence_client.models import RemoteNode
from src.file_mapper.filesafe_converter import FilesafeConverter

from .models import PageLink, PageStateCache, SpaceState, SyncChange, SyncDiff
from .path_utils import normalize_local_path

logger = logging.getLogger(__name__)


def local_version(page_id: str, link: PageLink, cache: Optional[PageStateCache]) -> int:
    """Version of the local copy of a tracked page.

    The front matter read into the cache wins; the version recorded in the
    state is the fallback; 0 when neither knows, which forces a re-pull.
    """
    if cache is not None:
        info = cache.pages.get(page_id)
        if info is not None:
            return info.version
    if link.version is not None:
        return link.version
    return 0


def title_from_path(page_id: str, local_path: str) -> str:
    """Display title of a page known only by its tracked path."""
    return FilesafeConverter.path_to_title(local_path) or page_id


def compute_diff(
    remote_nodes: Iterable[RemoteNode],
    local_state: Optional[SpaceState],
    cache: Optional[PageStateCache] = None,
    force_page_ids: Optional[Set[str]] = None,
    protected_page_ids: Optional[Set[str]] = None,
) -> SyncDiff:
    """Compare the remote tree with the tracked pages.

    Args:
        remote_nodes: Pages to consider, in remote order
        local_state: Tracked pages, None if nothing was ever synced
        cache: Front matter view of the tracked files
        force_page_ids: Tracked pages to report as modified regardless of version
        protected_page_ids: Tracked pages that must not be reported as deleted
                            even though they are not in ``remote_nodes``

    Returns:
        SyncDiff with added/modified in remote order and deleted in state order
    """
    diff = SyncDiff()
    force_page_ids = force_page_ids or set()
    protected_page_ids = protected_page_ids or set()
    local_pages: Dict[str, PageLink] = local_state.pages if local_state is not None else {}
    remote_ids: Set[str] = set()

    for node in remote_nodes:
        if node.id in remote_ids:
            continue
        remote_ids.add(node.id)

        link = local_pages.get(node.id)
        if link is None:
            diff.added.append(SyncChange(type='added', page_id=node.id, title=node.title))
            continue

        if node.version > local_version(node.id, link, cache) or node.id in force_page_ids:
            diff.modified.append(SyncChange(
                type='modified',
                page_id=node.id,
                title=node.title,
                local_path=link.local_path,
            ))

    for page_id, link in local_pages.items():
        if page_id in remote_ids or page_id in protected_page_ids:
            continue
        diff.deleted.append(SyncChange(
            type='deleted',
            page_id=page_id,
            title=title_from_path(page_id, link.local_path),
            local_path=link.local_path,
        ))

    logger.debug(
        f"Diff: {len(diff.added)} added, {len(diff.modified)} modified, "
        f"{len(diff.deleted)} deleted"
    )
    return diff


def build_forced_diff(remote_nodes: Iterable[RemoteNode]) -> SyncDiff:
    """Diff that re-downloads every remote page."""
    return SyncDiff(added=[
        SyncChange(type='added', page_id=node.id, title=node.title)
        for node in remote_nodes
    ])


def resolve_specific_pages(
    refs: Iterable[str],
    local_state: SpaceState,
    cache: Optional[PageStateCache] = None,
) -> Tuple[List[str], List[str]]:
    """Resolve user-supplied page references to tracked page IDs.

    Each reference is tried as a local path without a leading ``./``, as the
    raw path, then as a page ID.

    Returns:
        Tuple of (page_ids in reference order without duplicates, warnings)
    """
    path_to_page_id: Dict[str, str] = {
        link.local_path: page_id for page_id, link in local_state.pages.items()
    }
    if cache is not None:
        for path, page_id in cache.path_to_page_id.items():
            path_to_page_id.setdefault(path, page_id)

    page_ids: List[str] = []
    warnings: List[str] = []
    for ref in refs:
        page_id = (
            path_to_page_id.get(normalize_local_path(ref))
            or path_to_page_id.get(ref)
            or (ref if ref in local_state.pages else None)
        )
        if page_id is None:
            warnings.append(f"Could not find page for: {ref}")
            continue
        if page_id not in page_ids:
            page_ids.append(page_id)
    return page_ids, warnings


def build_specific_diff(
    page_ids: Iterable[str],
    local_state: SpaceState,
    cache: Optional[PageStateCache] = None,
) -> SyncDiff:
    """Diff marking each resolved page as modified, without a tree comparison."""
    diff = SyncDiff()
    for page_id in page_ids:
        link = local_state.pages[page_id]
        info = cache.pages.get(page_id) if cache is not None else None
        title = info.title if info is not None and info.title else title_from_path(page_id, link.local_path)
        diff.modified.append(SyncChange(
            type='modified',
            page_id=page_id,
            title=title,
            local_path=link.local_path,
        ))
    return diff

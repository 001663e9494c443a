"""Link resolution between remote page references and local relative paths.

Remote content refers to other pages by title; local markdown refers to them
by a path relative to the current file. Both directions go through a
PageLookupMap built from the page state cache. A reference that cannot be
resolved yields None so the caller can keep the original text.
"""

import logging
import os
import posixpath
import re
from typing import Dict, List, Optional, Tuple

from src.file_mapper.frontmatter_handler import FrontmatterHandler

from .models import PageInfo, PageLookupMap, PageStateCache, RemoteLinkTarget
from .path_utils import normalize_local_path

logger = logging.getLogger(__name__)


def build_lookup_map(cache: PageStateCache, warn_duplicates: bool = False) -> PageLookupMap:
    """Index the cache by page ID, local path and title.

    When two pages share a title, the one with the lexicographically smaller
    page ID owns the title, whatever the iteration order of the cache.

    Args:
        cache: Page state cache
        warn_duplicates: Record a warning naming both paths for each duplicate

    Returns:
        PageLookupMap; duplicate warnings are in its ``warnings`` list
    """
    lookup = PageLookupMap()

    for page_id, info in cache.pages.items():
        lookup.id_to_page[page_id] = info
        lookup.path_to_page[info.local_path] = info

        if not info.title:
            continue

        current = lookup.title_to_page.get(info.title)
        if current is None:
            lookup.title_to_page[info.title] = info
            continue
        if current.page_id == page_id:
            continue

        winner, loser = (info, current) if page_id < current.page_id else (current, info)
        lookup.title_to_page[info.title] = winner

        if warn_duplicates:
            warning = (
                f'Duplicate title "{info.title}" found in {winner.local_path} and '
                f'{loser.local_path}. Links to this title will resolve to '
                f'{winner.local_path}.'
            )
            lookup.warnings.append(warning)
            logger.warning(warning)

    return lookup


def remote_link_to_relative_path(
    target_title: str,
    current_local_path: str,
    lookup: PageLookupMap,
) -> Optional[str]:
    """Relative path from the current file to the page titled ``target_title``.

    Example:
        From ``guides/setup.md``, a link to the page at ``api/README.md``
        becomes ``../api/README.md``; a sibling becomes ``./intro.md``.

    Returns:
        The relative path, or None if no page has that title
    """
    target: Optional[PageInfo] = lookup.title_to_page.get(target_title)
    if target is None:
        return None

    current_dir = posixpath.dirname(normalize_local_path(current_local_path)) or '.'
    relative = posixpath.relpath(normalize_local_path(target.local_path), current_dir)
    if not relative.startswith('.'):
        relative = f"./{relative}"
    return relative


def relative_path_to_remote_link(
    relative_path: str,
    current_local_path: str,
    space_root: str,
    lookup: PageLookupMap,
) -> Optional[RemoteLinkTarget]:
    """Page targeted by a relative link written in the current file.

    Args:
        relative_path: Link target as written (``../api/README.md``)
        current_local_path: Path of the file containing the link, relative to
                            ``space_root``
        space_root: Root directory of the synced tree
        lookup: Lookup map of the run

    Returns:
        RemoteLinkTarget with the canonical title of the target page, or None
    """
    root = posixpath.normpath('/' + normalize_local_path(space_root).strip('/'))
    current_dir = posixpath.dirname(posixpath.join(root, normalize_local_path(current_local_path)))
    absolute = posixpath.normpath(posixpath.join(current_dir, relative_path.replace('\\', '/')))

    if absolute != root and not absolute.startswith(root.rstrip('/') + '/'):
        return None

    target = lookup.path_to_page.get(posixpath.relpath(absolute, root))
    if target is None or not target.title:
        return None
    return RemoteLinkTarget(title=target.title, page_id=target.page_id)


def _relative_link(from_path: str, to_path: str) -> str:
    from_dir = posixpath.dirname(from_path) or '.'
    return posixpath.relpath(to_path, from_dir)


def update_references_after_rename(
    space_root: str,
    old_path: str,
    new_path: str,
) -> Tuple[Dict[str, int], List[str]]:
    """Point markdown links at a renamed file's new location.

    Every ``.md`` file under ``space_root`` (hidden directories excluded) is
    scanned for inline links to ``old_path``, written relative to that file
    with or without a leading ``./`` and optionally followed by an anchor.
    Only the markdown body is rewritten; front matter is left as is.

    Args:
        space_root: Root directory of the synced tree
        old_path: Previous path of the renamed file, relative to ``space_root``
        new_path: Its new path, relative to ``space_root``

    Returns:
        Tuple of (updated link count per file, warnings for unreadable files)
    """
    old_path = normalize_local_path(old_path)
    new_path = normalize_local_path(new_path)
    updated: Dict[str, int] = {}
    warnings: List[str] = []

    for dirpath, dirnames, filenames in os.walk(space_root):
        dirnames[:] = sorted(d for d in dirnames if not d.startswith('.'))
        for filename in sorted(filenames):
            if not filename.endswith('.md'):
                continue
            full_path = os.path.join(dirpath, filename)
            local_path = os.path.relpath(full_path, space_root).replace(os.sep, '/')
            if local_path in (old_path, new_path):
                continue

            old_link = _relative_link(local_path, old_path)
            new_link = _relative_link(local_path, new_path)
            pattern = re.compile(r'(\[[^\]]*\]\()(\./)?' + re.escape(old_link) + r'(#[^)\s]*)?\)')

            try:
                with open(full_path, 'r', encoding='utf-8') as f:
                    content = f.read()
            except (OSError, UnicodeError) as e:
                warnings.append(f"Could not update links in {local_path}: {e}")
                continue

            match = FrontmatterHandler.FRONTMATTER_PATTERN.match(content)
            header, body = (content[:match.end()], content[match.end():]) if match else ('', content)

            new_body, count = pattern.subn(
                lambda m: f"{m.group(1)}{m.group(2) or ''}{new_link}{m.group(3) or ''})",
                body,
            )
            if not count:
                continue

            try:
                with open(full_path, 'w', encoding='utf-8') as f:
                    f.write(header + new_body)
            except OSError as e:
                warnings.append(f"Could not update links in {local_path}: {e}")
                continue
            updated[local_path] = count
            logger.info(f"Updated {count} link(s) to {old_path} in {local_path}")

    return updated, warnings

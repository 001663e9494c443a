"""Push a local markdown file to Confluence.

Existing pages (front matter carries a ``page_id``) are updated with
optimistic locking: the push is refused when the remote page moved past the
version the file was pulled from, unless forced. New pages are created under
the page owning the file's directory, or under the remote folders mirroring
it, which are created on the way.

After a successful push the file is renamed to match the page title, and
relative links to it in other files are updated.
"""

import logging
import os
import posixpath
from typing import List, Optional, Tuple

from src.confluence_client.errors import ConfluenceError, SyncError, VersionConflictError
from src.confluence_client.models import RemoteDocument
from src.file_mapper.filesafe_converter import FALLBACK_SLUG, FilesafeConverter
from src.file_mapper.frontmatter_handler import FrontmatterHandler
from src.file_mapper.models import LocalPage
from src.file_mapper.page_state import build_page_state_from_files

from .folder_hierarchy import ensure_folder_hierarchy
from .link_resolver import build_lookup_map, update_references_after_rename
from .models import PageLink, PushOptions, PushResult, SpaceState
from .path_utils import INDEX_FILENAME, assert_path_within_directory, is_reserved_path, normalize_local_path
from .state_store import StateManager, utc_timestamp

logger = logging.getLogger(__name__)

# Files named after their directory rather than their title
INDEX_FILENAMES = (INDEX_FILENAME, 'index.md')


class PushEngine:
    """Uploads one local file at a time.

    Args:
        remote: Client with ``fetch_content``, ``create_page``, ``update``,
                ``move`` and ``create_folder`` (see APIWrapper)
        converter: Converter with ``to_remote`` (see MarkdownConverter)
        base_url: Site URL used to build page URLs in front matter
    """

    def __init__(self, remote, converter, base_url: Optional[str] = None):
        self._remote = remote
        self._converter = converter
        self._base_url = base_url

    def push(self, work_dir: str, file_path: str, options: Optional[PushOptions] = None) -> PushResult:
        """Create or update the remote page of ``file_path``.

        Args:
            work_dir: Root of the synced tree
            file_path: File to push, relative to ``work_dir``
            options: Dry-run and force flags

        Returns:
            PushResult describing what was (or would be) done

        Raises:
            StateNotFoundError: If the directory was never initialized
            PathTraversalError: If the file is outside ``work_dir``
            VersionConflictError: If the remote page changed since the last pull
            FolderHierarchyError: If the parent folders cannot be resolved
            ConversionError: If the markdown cannot be converted
        """
        options = options or PushOptions()
        state = StateManager.load_required(work_dir)

        local_path = normalize_local_path(file_path)
        full_path = assert_path_within_directory(work_dir, local_path)
        local_path = os.path.relpath(full_path, os.path.realpath(work_dir)).replace(os.sep, '/')

        if is_reserved_path(local_path):
            raise SyncError(f"Refusing to push {local_path}: reserved filename")

        with open(full_path, 'r', encoding='utf-8') as f:
            page = FrontmatterHandler.parse(local_path, f.read())

        title = page.title or FilesafeConverter.path_to_title(local_path)
        if not title:
            raise SyncError(f"Cannot determine a page title for {local_path}")

        lookup = build_lookup_map(build_page_state_from_files(work_dir, state))
        body, warnings = self._converter.to_remote(page.content, lookup, local_path, work_dir)

        if page.page_id:
            result = self._update_page(work_dir, state, page, local_path, title, body, options)
        else:
            result = self._create_page(work_dir, state, page, local_path, title, body, options)

        result.warnings = warnings + result.warnings
        return result

    def _update_page(
        self,
        work_dir: str,
        state: SpaceState,
        page: LocalPage,
        local_path: str,
        title: str,
        body: str,
        options: PushOptions,
    ) -> PushResult:
        remote = self._remote.fetch_content(page.page_id)

        local_version = page.version
        if local_version is None:
            link = state.pages.get(page.page_id)
            local_version = link.version if link is not None else None

        if remote.version != local_version and not options.force:
            raise VersionConflictError(page.page_id, local_version or 0, remote.version)

        base_version = remote.version if options.force else local_version
        move_to = page.parent_id if page.parent_id and page.parent_id != remote.parent_id else None

        if options.dry_run:
            logger.info(f"Would update page {page.page_id} ({title}) to version {base_version + 1}")
            return PushResult(
                page_id=page.page_id, title=title, local_path=local_path,
                version=base_version + 1, moved=move_to is not None, dry_run=True,
            )

        updated = self._remote.update(page.page_id, title, body, base_version + 1)
        logger.info(f"Updated page {page.page_id} ({title}) to version {updated.version}")
        if move_to is not None:
            # Recorded as the intended parent so a failed move is retried by the next push
            updated.parent_id = move_to

        final_path, notices = self._record(work_dir, state, page, local_path, updated)
        moved = move_to is not None and self._move(page.page_id, move_to, notices)
        return PushResult(
            page_id=updated.id, title=updated.title, local_path=final_path,
            version=updated.version, moved=moved, warnings=notices,
            renamed_from=local_path if final_path != local_path else None,
        )

    def _create_page(
        self,
        work_dir: str,
        state: SpaceState,
        page: LocalPage,
        local_path: str,
        title: str,
        body: str,
        options: PushOptions,
    ) -> PushResult:
        notices = []
        parent_id = page.parent_id or self._index_page_id(state, local_path)
        parent_is_folder = False

        if parent_id is None:
            hierarchy = ensure_folder_hierarchy(
                self._remote, state, work_dir, local_path,
                dry_run=options.dry_run, notices=notices,
            )
            state = hierarchy.updated_state
            parent_id = hierarchy.parent_id
            parent_is_folder = parent_id is not None
        elif parent_id in state.folders:
            parent_is_folder = True

        if options.dry_run:
            logger.info(f"Would create page {title}")
            return PushResult(
                page_id=None, title=title, local_path=local_path,
                created=True, dry_run=True, warnings=notices,
            )

        if parent_is_folder:
            # v2 page creation does not accept a folder parent
            created = self._remote.create_page(state.space_id, title, body)
            created.parent_id = parent_id
        else:
            created = self._remote.create_page(state.space_id, title, body, parent_id)
        logger.info(f"Created page {created.id} ({title})")

        final_path, record_notices = self._record(work_dir, state, page, local_path, created)
        notices.extend(record_notices)
        moved = parent_is_folder and self._move(created.id, parent_id, notices)
        return PushResult(
            page_id=created.id, title=created.title, local_path=final_path,
            version=created.version, created=True, moved=moved, warnings=notices,
            renamed_from=local_path if final_path != local_path else None,
        )

    def _move(self, page_id: str, parent_id: str, notices: List[str]) -> bool:
        """Re-parent a page already recorded locally, reporting a failure as a notice."""
        try:
            self._remote.move(page_id, parent_id)
        except ConfluenceError as e:
            message = (
                f"Page {page_id} was saved but could not be moved under {parent_id}: {e}. "
                f"Push again to retry."
            )
            logger.warning(message)
            notices.append(message)
            return False
        logger.info(f"Moved page {page_id} under {parent_id}")
        return True

    @staticmethod
    def _index_page_id(state: SpaceState, local_path: str) -> Optional[str]:
        """Tracked page owning the directory the file sits in."""
        directory = posixpath.dirname(local_path)
        if posixpath.basename(local_path) == INDEX_FILENAME:
            if not directory:
                return None
            directory = posixpath.dirname(directory)
        return state.page_id_for_path(posixpath.join(directory, INDEX_FILENAME))

    @staticmethod
    def _title_path(state: SpaceState, page_id: str, local_path: str, title: str) -> Optional[str]:
        """Path the file should move to so its name follows the page title.

        Index files keep their name. None when no rename is needed.
        """
        filename = posixpath.basename(local_path)
        if filename in INDEX_FILENAMES:
            return None
        slug = FilesafeConverter.slugify(title)
        if slug == FALLBACK_SLUG or f"{slug}.md" == filename:
            return None
        target = posixpath.join(posixpath.dirname(local_path), f"{slug}.md")
        owner = state.page_id_for_path(target)
        if owner is not None and owner != page_id:
            return None
        return target

    def _record(
        self,
        work_dir: str,
        state: SpaceState,
        page: LocalPage,
        local_path: str,
        document: RemoteDocument,
    ) -> Tuple[str, List[str]]:
        """Rewrite the file's front matter, rename it after the title and track the page.

        Returns:
            Tuple of (final local path, notices for the user)
        """
        notices: List[str] = []
        metadata = FrontmatterHandler.metadata_for_document(
            document,
            space_key=state.space_key,
            synced_at=utc_timestamp(),
            base_url=self._base_url,
        )
        # Keep what the pull wrote when the response omits it
        for key, value in page.metadata.items():
            if metadata.get(key) is None:
                metadata[key] = value
        content = FrontmatterHandler.generate(metadata, page.content.lstrip('\n'), page.metadata)

        full_path = assert_path_within_directory(work_dir, local_path)
        final_path = local_path
        target = self._title_path(state, document.id, local_path, document.title)
        if target is not None:
            target_full = assert_path_within_directory(work_dir, target)
            if os.path.exists(target_full):
                notices.append(f"Keeping file name {local_path} ({target} already exists)")
                target = None

        if target is None:
            with open(full_path, 'w', encoding='utf-8') as f:
                f.write(content)
        else:
            with open(target_full, 'w', encoding='utf-8') as f:
                f.write(content)
            os.remove(full_path)
            final_path = target
            logger.info(f"Renamed {local_path} -> {target} to match the page title")
            _, link_warnings = update_references_after_rename(work_dir, local_path, target)
            notices.extend(link_warnings)

        state = StateManager.with_page(state, document.id, PageLink(
            local_path=final_path,
            version=document.version,
            last_modified=document.updated_at,
        ))
        StateManager.save(work_dir, state)
        return final_path, notices

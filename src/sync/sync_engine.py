"""Sync orchestrator: pull a Confluence space into a local directory.

A run goes through ``fetch tree → diff → apply → persist``. Dry runs stop
after the diff. Changes are applied one page at a time; a failing page is
recorded in the result and the loop moves on, while structural problems
(missing state, invalid folder paths, rejected credentials on the first call)
abort the run. The state file is rewritten after every page so an
interrupted run loses at most the page in flight.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Set, Tuple, Union

from src.confluence_client.errors import AuthError, ConfluenceError, InvalidCredentialsError
from src.confluence_client.models import RemoteFolder, RemoteNode, RemoteUser
from src.file_mapper.errors import FileMapperError
from src.file_mapper.frontmatter_handler import FrontmatterHandler
from src.file_mapper.page_state import build_page_state_from_files, project_planned_pages

from .diff_engine import build_forced_diff, build_specific_diff, compute_diff, resolve_specific_pages
from .errors import FolderHierarchyError, PathTraversalError, StateError
from .folder_hierarchy import ensure_folder_hierarchy
from .link_resolver import build_lookup_map
from .models import (
    FolderLink,
    ItemOutcome,
    PageLink,
    PageLookupMap,
    SpaceState,
    SyncChange,
    SyncDiff,
    SyncOptions,
    SyncProgressReporter,
    SyncResult,
)
from .path_utils import (
    assert_path_within_directory,
    find_homepage_id,
    generate_folder_path,
    generate_local_path,
    is_reserved_path,
    remove_file_and_empty_parents,
)
from .state_store import StateManager, utc_timestamp

logger = logging.getLogger(__name__)

ContentItem = Union[RemoteNode, RemoteFolder]


class _SafeProgress:
    """Forwards progress calls to a sink, logging and dropping its exceptions."""

    def __init__(self, sink: Optional[SyncProgressReporter]):
        self._sink = sink

    def __getattr__(self, name):
        method = getattr(self._sink, name, None) if self._sink is not None else None

        def call(*args, **kwargs) -> None:
            if method is None:
                return
            try:
                method(*args, **kwargs)
            except Exception as e:
                logger.warning(f"Progress reporter failed in {name}: {e}")

        return call


@dataclass
class _RunContext:
    """Per-run indices shared by the apply loop."""
    lookup: PageLookupMap
    content_map: Dict[str, ContentItem] = field(default_factory=dict)
    planned_paths: Dict[str, str] = field(default_factory=dict)
    user_cache: Dict[str, Optional[RemoteUser]] = field(default_factory=dict)


class SyncEngine:
    """Pulls remote pages into local markdown files.

    Args:
        remote: Client with ``fetch_tree``, ``fetch_content``, ``get_labels``,
                ``get_user`` and ``create_folder`` (see APIWrapper)
        converter: Converter with ``to_local`` (see MarkdownConverter)
        base_url: Site URL used to build page URLs in front matter

    Example:
        >>> engine = SyncEngine(APIWrapper(Authenticator()), MarkdownConverter())
        >>> result = engine.sync("./docs", SyncOptions(dry_run=True))
    """

    def __init__(self, remote, converter, base_url: Optional[str] = None):
        self._remote = remote
        self._converter = converter
        self._base_url = base_url

    def sync(self, work_dir: str, options: Optional[SyncOptions] = None) -> SyncResult:
        """Pull the space tracked in ``work_dir``.

        Returns:
            SyncResult with the diff and aggregated warnings/errors

        Raises:
            StateNotFoundError: If the directory was never initialized
            StateError: If the state file is invalid
            FolderHierarchyError: If a page path is not a valid folder path
            AuthError, InvalidCredentialsError: If the tree fetch is refused
        """
        options = options or SyncOptions()
        result = SyncResult()
        progress = _SafeProgress(options.progress)

        state = StateManager.load_required(work_dir)

        if options.specific_pages and not options.force:
            return self._sync_specific_pages(work_dir, state, options, result, progress)

        progress.on_fetch_start()
        try:
            tree = self._remote.fetch_tree(state.space_id)
        except (AuthError, InvalidCredentialsError):
            raise
        except ConfluenceError as e:
            logger.error(f"Failed to fetch page tree: {e}")
            result.errors.append(f"Sync failed: {e}")
            result.success = False
            return result
        progress.on_fetch_complete(len(tree.pages), len(tree.folders))

        content_map: Dict[str, ContentItem] = {}
        for item in [*tree.pages, *tree.folders]:
            content_map[item.id] = item
        homepage_id = find_homepage_id(tree.pages, state.homepage_id)

        considered, out_of_depth = self._filter_depth(tree.pages, content_map, options.depth)

        cache = build_page_state_from_files(work_dir, state)
        result.warnings.extend(cache.warnings)

        if options.force:
            diff = build_forced_diff(considered)
        else:
            diff = compute_diff(considered, state, cache, protected_page_ids=out_of_depth)

        planned = self._plan_local_paths(
            diff, tree.pages, content_map, state, homepage_id,
            keep_page_ids=out_of_depth if options.force else None,
        )
        for change in diff.added:
            change.local_path = planned.get(change.page_id)

        result.changes = diff
        progress.on_diff_complete(len(diff.added), len(diff.modified), len(diff.deleted))
        logger.info(
            f"Changes: {len(diff.added)} added, {len(diff.modified)} modified, "
            f"{len(diff.deleted)} deleted"
        )

        if options.dry_run:
            return result

        state = self._register_folders(work_dir, state, tree.folders, content_map, result)

        lookup = build_lookup_map(project_planned_pages(cache, tree.pages, planned), warn_duplicates=True)
        result.warnings.extend(lookup.warnings)
        context = _RunContext(lookup=lookup, content_map=content_map, planned_paths=planned)

        previously_tracked: Dict[str, PageLink] = {}
        if options.force:
            previously_tracked = dict(state.pages)
            state = replace(state, pages={
                page_id: link for page_id, link in state.pages.items() if page_id in out_of_depth
            })
            StateManager.save(work_dir, state)

        state = self._apply_changes(work_dir, state, diff, context, options, result, progress)

        if options.force and not result.cancelled:
            remote_ids = {page.id for page in tree.pages}
            self._clean_up_untracked(work_dir, state, previously_tracked, remote_ids, result)

        self._persist_last_sync(work_dir, state, result)
        return result

    def _sync_specific_pages(
        self,
        work_dir: str,
        state: SpaceState,
        options: SyncOptions,
        result: SyncResult,
        progress: _SafeProgress,
    ) -> SyncResult:
        """Re-pull selected pages without fetching or diffing the whole tree."""
        cache = build_page_state_from_files(work_dir, state)
        result.warnings.extend(cache.warnings)

        page_ids, warnings = resolve_specific_pages(options.specific_pages, state, cache)
        result.warnings.extend(warnings)

        diff = build_specific_diff(page_ids, state, cache)
        result.changes = diff
        progress.on_diff_complete(0, len(diff.modified), 0)

        if options.dry_run or diff.is_empty():
            return result

        lookup = build_lookup_map(cache, warn_duplicates=True)
        result.warnings.extend(lookup.warnings)
        context = _RunContext(lookup=lookup)

        state = self._apply_changes(work_dir, state, diff, context, options, result, progress)
        self._persist_last_sync(work_dir, state, result)
        return result

    @staticmethod
    def _filter_depth(
        pages: List[RemoteNode],
        content_map: Dict[str, ContentItem],
        depth: Optional[int],
    ) -> Tuple[List[RemoteNode], Set[str]]:
        """Split pages into those within ``depth`` and the IDs of the rest."""
        if depth is None:
            return list(pages), set()

        def depth_of(node: RemoteNode) -> int:
            level = 1
            seen = {node.id}
            current = node.parent_id
            while current and current in content_map and current not in seen:
                seen.add(current)
                level += 1
                current = content_map[current].parent_id
            return level

        considered = [p for p in pages if depth_of(p) <= depth]
        kept = {p.id for p in considered}
        return considered, {p.id for p in pages if p.id not in kept}

    @staticmethod
    def _plan_local_paths(
        diff: SyncDiff,
        pages: List[RemoteNode],
        content_map: Dict[str, ContentItem],
        state: SpaceState,
        homepage_id: Optional[str],
        keep_page_ids: Optional[Set[str]] = None,
    ) -> Dict[str, str]:
        """Local path of every page that is about to be written."""
        parents: Set[str] = {item.parent_id for item in content_map.values() if item.parent_id}
        if keep_page_ids is None:
            existing = {link.local_path for link in state.pages.values()}
        else:
            existing = {
                link.local_path for page_id, link in state.pages.items() if page_id in keep_page_ids
            }

        nodes = {p.id: p for p in pages}
        planned: Dict[str, str] = {}
        for change in [*diff.added, *diff.modified]:
            node = nodes.get(change.page_id)
            if node is None:
                continue
            own_path = change.local_path if change.type == 'modified' else None
            planned[node.id] = generate_local_path(
                node, content_map, parents, existing, homepage_id, own_path=own_path,
            )
        return planned

    @staticmethod
    def _register_folders(
        work_dir: str,
        state: SpaceState,
        folders: List[RemoteFolder],
        content_map: Dict[str, ContentItem],
        result: SyncResult,
    ) -> SpaceState:
        """Mirror the remote folders of the tree in ``state.folders``.

        Folders no longer in the tree are dropped first so a folder recreated
        under the same title can take over its directory.
        """
        changed = False
        remote_ids = {folder.id for folder in folders}
        stale = [folder_id for folder_id in state.folders if folder_id not in remote_ids]
        if stale:
            logger.info(f"Dropping {len(stale)} folder(s) no longer in the space: {', '.join(stale)}")
            state = replace(state, folders={
                folder_id: link for folder_id, link in state.folders.items() if folder_id in remote_ids
            })
            changed = True

        for folder in folders:
            link = FolderLink(
                title=folder.title,
                local_path=generate_folder_path(folder, content_map),
                parent_id=folder.parent_id,
            )
            if state.folders.get(folder.id) == link:
                continue
            try:
                state = StateManager.with_folder(state, folder.id, link)
            except StateError as e:
                result.warnings.append(f'Folder "{folder.title}" not tracked: {e}')
                continue
            changed = True

        if changed:
            StateManager.save(work_dir, state)
        return state

    def _apply_changes(
        self,
        work_dir: str,
        state: SpaceState,
        diff: SyncDiff,
        context: _RunContext,
        options: SyncOptions,
        result: SyncResult,
        progress: _SafeProgress,
    ) -> SpaceState:
        """Apply the diff page by page, honouring the cancellation token."""
        token = options.cancellation_token
        total = diff.total

        for index, change in enumerate(diff.all_changes(), start=1):
            if token is not None and token.cancelled:
                logger.info(f"Sync cancelled with {total - index + 1} change(s) pending")
                result.cancelled = True
                break

            progress.on_page_start(index, total, change.title, change.type)

            if change.type == 'deleted':
                outcome, state = self._apply_deletion(work_dir, state, change)
            else:
                outcome, state = self._apply_write(work_dir, state, change, context)

            result.warnings.extend(outcome.warnings)
            if outcome.error is not None:
                logger.error(outcome.error)
                result.errors.append(outcome.error)
                result.success = False
                progress.on_page_error(change.title, outcome.error)
            elif outcome.applied:
                result.applied += 1
                progress.on_page_complete(index, total, change.title, outcome.local_path or '')

        return state

    def _apply_write(
        self,
        work_dir: str,
        state: SpaceState,
        change: SyncChange,
        context: _RunContext,
    ) -> Tuple[ItemOutcome, SpaceState]:
        """Fetch, convert and write one added or modified page."""
        target_path = context.planned_paths.get(change.page_id) or change.local_path
        old_path = change.local_path if change.type == 'modified' else None

        if not target_path:
            return ItemOutcome(error=f'Failed to sync page "{change.title}": no local path'), state

        if is_reserved_path(target_path):
            return ItemOutcome(skipped=True, warnings=[
                f'Skipping "{change.title}": {target_path} is a reserved filename'
            ]), state

        try:
            document = self._remote.fetch_content(change.page_id)
            labels = self._remote.get_labels(change.page_id)
            author = self._lookup_user(document.author_id, context.user_cache)
            last_modifier = self._lookup_user(document.version_author_id, context.user_cache)

            # Validates the folder path; FolderHierarchyError aborts the run
            ensure_folder_hierarchy(
                self._remote, state, work_dir, target_path, create_missing=False,
            )

            text, warnings = self._converter.to_local(document.body, context.lookup, target_path)
            full_path = assert_path_within_directory(work_dir, target_path)

            existing = self._read_existing_metadata(work_dir, old_path or target_path)
            parent = context.content_map.get(document.parent_id) if document.parent_id else None
            if parent is not None:
                parent_title = parent.title
            elif document.parent_id and str(existing.get('parent_id')) == document.parent_id:
                # No tree was fetched; keep the title recorded by the last pull
                parent_title = existing.get('parent_title')
            else:
                parent_title = None

            metadata = FrontmatterHandler.metadata_for_document(
                document,
                space_key=state.space_key,
                synced_at=utc_timestamp(),
                base_url=self._base_url,
                parent_title=parent_title,
                author=author,
                last_modifier=last_modifier,
                labels=labels,
            )
            content = FrontmatterHandler.generate(metadata, text, existing)

            new_state = StateManager.with_page(state, change.page_id, PageLink(
                local_path=target_path,
                version=document.version,
                last_modified=document.updated_at,
            ))

            os.makedirs(os.path.dirname(full_path), exist_ok=True)
            with open(full_path, 'w', encoding='utf-8') as f:
                f.write(content)

            if old_path and old_path != target_path:
                remove_file_and_empty_parents(work_dir, old_path)
                logger.info(f"Moved {old_path} -> {target_path}")

            StateManager.save(work_dir, new_state)
        except FolderHierarchyError:
            raise
        except Exception as e:
            logger.debug(f"Page {change.page_id} failed", exc_info=True)
            return ItemOutcome(error=f'Failed to sync page "{change.title}": {e}'), state

        change.local_path = target_path
        logger.info(f"Wrote {target_path} (version {document.version})")
        return ItemOutcome(
            applied=True,
            local_path=target_path,
            warnings=[f"{document.title or change.title}: {w}" for w in warnings],
        ), new_state

    @staticmethod
    def _apply_deletion(
        work_dir: str,
        state: SpaceState,
        change: SyncChange,
    ) -> Tuple[ItemOutcome, SpaceState]:
        """Remove the local file of a page deleted remotely and stop tracking it."""
        try:
            if change.local_path:
                remove_file_and_empty_parents(work_dir, change.local_path)
            new_state = StateManager.without_page(state, change.page_id)
            StateManager.save(work_dir, new_state)
        except (OSError, PathTraversalError) as e:
            return ItemOutcome(error=f'Failed to delete page "{change.title}": {e}'), state

        logger.info(f"Deleted {change.local_path}")
        return ItemOutcome(applied=True, local_path=change.local_path), new_state

    def _lookup_user(
        self,
        account_id: Optional[str],
        user_cache: Dict[str, Optional[RemoteUser]],
    ) -> Optional[RemoteUser]:
        """Fetch a user once per run; failures are remembered as None."""
        if not account_id:
            return None
        if account_id in user_cache:
            return user_cache[account_id]
        try:
            user = self._remote.get_user(account_id)
        except ConfluenceError as e:
            logger.debug(f"Could not fetch user {account_id}: {e}")
            user = None
        user_cache[account_id] = user
        return user

    @staticmethod
    def _read_existing_metadata(work_dir: str, local_path: str) -> Dict:
        """Front matter of the file about to be replaced, to keep user-added keys."""
        full_path = os.path.join(work_dir, local_path)
        if not os.path.isfile(full_path):
            return {}
        try:
            with open(full_path, 'r', encoding='utf-8') as f:
                metadata, _ = FrontmatterHandler.extract_frontmatter_and_content(f.read(), local_path)
        except (OSError, UnicodeError, FileMapperError) as e:
            logger.debug(f"Ignoring unreadable front matter in {local_path}: {e}")
            return {}
        return metadata

    @staticmethod
    def _clean_up_untracked(
        work_dir: str,
        state: SpaceState,
        previously_tracked: Dict[str, PageLink],
        remote_ids: Set[str],
        result: SyncResult,
    ) -> None:
        """After a forced pull, remove old files that no tracked page owns.

        Files of pages that still exist remotely but failed to re-download
        are kept.
        """
        tracked_paths = {link.local_path for link in state.pages.values()}
        for page_id, link in previously_tracked.items():
            if link.local_path in tracked_paths:
                continue
            if page_id in remote_ids and page_id not in state.pages:
                continue
            try:
                remove_file_and_empty_parents(work_dir, link.local_path)
            except (OSError, PathTraversalError) as e:
                result.warnings.append(f"Failed to clean up old file {link.local_path}: {e}")

    @staticmethod
    def _persist_last_sync(work_dir: str, state: SpaceState, result: SyncResult) -> None:
        if result.cancelled and result.applied == 0:
            return
        StateManager.save(work_dir, StateManager.with_last_sync(state))

"""Data models for the sync engine.

This module defines the persisted state record, the per-run indices derived
from local files, and the value types that flow between the diff engine,
the folder hierarchy manager and the orchestrator. All models are dataclasses,
following the patterns of the other model modules in this code base.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional

ChangeType = Literal['added', 'modified', 'deleted']


@dataclass
class PageLink:
    """Tracking record of one synced page.

    Attributes:
        local_path: File path relative to the working directory
        version: Remote version the local file was written from
        last_modified: Remote timestamp of that version (ISO 8601)
    """
    local_path: str
    version: Optional[int] = None
    last_modified: Optional[str] = None


@dataclass
class FolderLink:
    """Tracking record of one remote folder mirrored as a local directory."""
    title: str
    local_path: str
    parent_id: Optional[str] = None


@dataclass
class SpaceState:
    """Per-directory sync state stored in .confluence-sync/state.yaml.

    ``pages`` and ``folders`` are each injective on ``local_path``; the
    StateManager rejects any mutation that would break this.

    Example:
        >>> state = SpaceState(space_id="98765", space_key="DOCS", space_name="Docs")
        >>> state.pages["1"] = PageLink(local_path="README.md", version=3)
    """
    space_id: str
    space_key: str
    space_name: str = ''
    pages: Dict[str, PageLink] = field(default_factory=dict)
    folders: Dict[str, FolderLink] = field(default_factory=dict)
    last_sync_at: Optional[str] = None
    homepage_id: Optional[str] = None

    def page_id_for_path(self, local_path: str) -> Optional[str]:
        for page_id, link in self.pages.items():
            if link.local_path == local_path:
                return page_id
        return None

    def folder_id_for_path(self, local_path: str) -> Optional[str]:
        for folder_id, link in self.folders.items():
            if link.local_path == local_path:
                return folder_id
        return None


@dataclass
class PageInfo:
    """What the local copy of a page says about itself (from front matter)."""
    page_id: str
    local_path: str
    title: str
    version: int
    updated_at: Optional[str] = None
    synced_at: Optional[str] = None


@dataclass
class PageStateCache:
    """In-memory index of local page files, rebuilt for every run.

    Attributes:
        pages: page_id -> PageInfo
        path_to_page_id: local_path -> page_id (reverse index)
        warnings: Problems found while scanning the files
    """
    pages: Dict[str, PageInfo] = field(default_factory=dict)
    path_to_page_id: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    def add(self, info: PageInfo) -> None:
        previous = self.pages.get(info.page_id)
        if previous is not None:
            self.path_to_page_id.pop(previous.local_path, None)
        self.pages[info.page_id] = info
        self.path_to_page_id[info.local_path] = info.page_id


@dataclass
class PageLookupMap:
    """Three indices over the page state cache used for link resolution.

    ``id_to_page`` and ``path_to_page`` are injective. ``title_to_page`` keeps
    one page per title, the one with the lexicographically smallest ID.
    """
    id_to_page: Dict[str, PageInfo] = field(default_factory=dict)
    path_to_page: Dict[str, PageInfo] = field(default_factory=dict)
    title_to_page: Dict[str, PageInfo] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)


@dataclass
class RemoteLinkTarget:
    """A resolved link target on the remote side."""
    title: str
    page_id: str


@dataclass
class SyncChange:
    """One classified page in a diff."""
    type: ChangeType
    page_id: str
    title: str
    local_path: Optional[str] = None


@dataclass
class SyncDiff:
    """Result of comparing the remote tree against the local state.

    A page ID appears in at most one of the three lists.
    """
    added: List[SyncChange] = field(default_factory=list)
    modified: List[SyncChange] = field(default_factory=list)
    deleted: List[SyncChange] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.added) + len(self.modified) + len(self.deleted)

    def is_empty(self) -> bool:
        return self.total == 0

    def all_changes(self) -> List[SyncChange]:
        """Changes in the order they are applied."""
        return [*self.added, *self.modified, *self.deleted]


@dataclass
class SyncResult:
    """Outcome of a sync run.

    ``success`` is False iff a page-level operation failed. ``cancelled`` is
    independent: a cancelled run may also carry errors.
    """
    success: bool = True
    changes: SyncDiff = field(default_factory=SyncDiff)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    cancelled: bool = False
    applied: int = 0


@dataclass
class ItemOutcome:
    """Result of applying one change inside the apply loop."""
    applied: bool = False
    skipped: bool = False
    local_path: Optional[str] = None
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


class CancellationToken:
    """Cooperative cancellation flag shared between a trigger and the engine.

    The engine polls ``cancelled`` between items; it never interrupts an
    in-flight remote call.

    Example:
        >>> token = CancellationToken()
        >>> token.cancel()
        >>> token.cancelled
        True
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class SyncProgressReporter:
    """Progress sink called by the orchestrator at fixed points.

    All methods are no-ops; subclasses override what they need. Exceptions
    raised by a sink are logged and never fail the sync.
    """

    def on_fetch_start(self) -> None:
        pass

    def on_fetch_complete(self, page_count: int, folder_count: int) -> None:
        pass

    def on_diff_complete(self, added: int, modified: int, deleted: int) -> None:
        pass

    def on_page_start(self, index: int, total: int, title: str, change_type: ChangeType) -> None:
        pass

    def on_page_complete(self, index: int, total: int, title: str, local_path: str) -> None:
        pass

    def on_page_error(self, title: str, error: str) -> None:
        pass


@dataclass
class SyncOptions:
    """Options of a pull run.

    Attributes:
        dry_run: Compute and return the diff without touching anything
        force: Re-download every remote page
        depth: Only consider pages at most this deep (root pages are depth 1)
        specific_pages: Paths or page IDs to re-pull unconditionally
        cancellation_token: Polled between items
        progress: Progress sink
    """
    dry_run: bool = False
    force: bool = False
    depth: Optional[int] = None
    specific_pages: List[str] = field(default_factory=list)
    cancellation_token: Optional[CancellationToken] = None
    progress: Optional[SyncProgressReporter] = None


@dataclass
class FolderHierarchyResult:
    """Result of resolving a file's directory to a remote parent folder.

    Attributes:
        parent_id: ID of the innermost folder, None at the root or when unresolved
        updated_state: State including any folders created on the way
        would_create: True when a dry run stopped at a missing folder
    """
    parent_id: Optional[str]
    updated_state: SpaceState
    would_create: bool = False


@dataclass
class PushOptions:
    dry_run: bool = False
    force: bool = False


@dataclass
class PushResult:
    """Outcome of pushing one local file."""
    page_id: Optional[str]
    title: str
    local_path: str
    version: Optional[int] = None
    created: bool = False
    moved: bool = False
    dry_run: bool = False
    warnings: List[str] = field(default_factory=list)
    renamed_from: Optional[str] = None

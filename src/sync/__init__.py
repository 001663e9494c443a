"""Synchronization engine between a Confluence space and a local directory.

The engine modules (state store, diff engine, folder hierarchy, link
resolution, pull and push orchestration) are imported from their own
modules; this package only re-exports the shared models and errors.
"""

from .errors import (
    EngineError,
    StateError,
    StateFilesystemError,
    StateNotFoundError,
    PathTraversalError,
    FolderErrorCode,
    FolderHierarchyError,
)
from .models import (
    PageLink,
    FolderLink,
    SpaceState,
    PageInfo,
    PageStateCache,
    PageLookupMap,
    SyncChange,
    SyncDiff,
    SyncResult,
    SyncOptions,
    CancellationToken,
    SyncProgressReporter,
)

__all__ = [
    'EngineError',
    'StateError',
    'StateFilesystemError',
    'StateNotFoundError',
    'PathTraversalError',
    'FolderErrorCode',
    'FolderHierarchyError',
    'PageLink',
    'FolderLink',
    'SpaceState',
    'PageInfo',
    'PageStateCache',
    'PageLookupMap',
    'SyncChange',
    'SyncDiff',
    'SyncResult',
    'SyncOptions',
    'CancellationToken',
    'SyncProgressReporter',
]

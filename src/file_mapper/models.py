"""Data models for file mapper.

This module defines the models used to read and write local markdown files.
All models use dataclasses for clean, type-safe data structures.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class LocalPage:
    """A local markdown file split into front matter and body.

    Files that have never been synced carry no ``page_id``.

    Attributes:
        file_path: Path of the file (as given to the parser)
        content: Markdown body without the front matter block
        page_id: Confluence page ID
        title: Page title
        version: Remote version the file was written from
        space_key: Key of the space the page belongs to
        parent_id: ID of the remote parent page or folder
        metadata: The complete front matter, including user-added keys
    """
    file_path: str
    content: str = ""
    page_id: Optional[str] = None
    title: Optional[str] = None
    version: Optional[int] = None
    space_key: Optional[str] = None
    parent_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

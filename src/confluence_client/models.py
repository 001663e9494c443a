"""Typed records decoded from Confluence REST API payloads.

The API returns loosely-typed JSON. Every payload the sync engine consumes is
decoded here into one of a small, closed set of dataclasses, and a payload
missing a required field is rejected with ApiError instead of leaking ``None``
into the engine.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import ApiError


def _require(payload: Any, key: str, kind: str) -> Any:
    if not isinstance(payload, dict):
        raise ApiError(200, f"Malformed {kind} payload: expected an object, got {type(payload).__name__}")
    value = payload.get(key)
    if value is None or value == '':
        raise ApiError(200, f"Malformed {kind} payload: missing '{key}'")
    return value


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == '':
        return None
    return str(value)


def _version_number(payload: Dict[str, Any], kind: str) -> int:
    version = payload.get('version')
    if version is None:
        return 0
    number = version.get('number') if isinstance(version, dict) else version
    try:
        return int(number or 0)
    except (TypeError, ValueError):
        raise ApiError(200, f"Malformed {kind} payload: non-numeric version {number!r}")


@dataclass
class RemoteNode:
    """A page as listed in the space tree.

    Attributes:
        id: Confluence page ID
        title: Page title
        version: Current version number (monotonic)
        parent_id: ID of the parent page or folder, None for root pages
        parent_type: "page" or "folder" when known
    """
    id: str
    title: str
    version: int
    parent_id: Optional[str] = None
    parent_type: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> 'RemoteNode':
        return cls(
            id=str(_require(payload, 'id', 'page')),
            title=str(payload.get('title') or ''),
            version=_version_number(payload, 'page'),
            parent_id=_optional_str(payload.get('parentId')),
            parent_type=_optional_str(payload.get('parentType')),
        )


@dataclass
class RemoteFolder:
    """A Confluence folder (a container node without content)."""
    id: str
    title: str
    parent_id: Optional[str] = None
    parent_type: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> 'RemoteFolder':
        return cls(
            id=str(_require(payload, 'id', 'folder')),
            title=str(_require(payload, 'title', 'folder')),
            parent_id=_optional_str(payload.get('parentId')),
            parent_type=_optional_str(payload.get('parentType')),
        )


@dataclass
class RemoteTree:
    """All pages and folders of a space, in API order."""
    pages: List[RemoteNode] = field(default_factory=list)
    folders: List[RemoteFolder] = field(default_factory=list)


@dataclass
class RemoteDocument:
    """Full content and metadata of a single page.

    Attributes:
        body: Storage-format XHTML
        author_id: Account ID of the page creator
        version_author_id: Account ID of the last editor
        web_url: Relative web UI link as returned by the API
    """
    id: str
    title: str
    version: int
    body: str = ''
    parent_id: Optional[str] = None
    space_id: Optional[str] = None
    author_id: Optional[str] = None
    version_author_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    web_url: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> 'RemoteDocument':
        page_id = str(_require(payload, 'id', 'page'))
        version = payload.get('version') if isinstance(payload.get('version'), dict) else {}
        body = payload.get('body') or {}
        storage = (body.get('storage') or {}) if isinstance(body, dict) else {}
        links = payload.get('_links') or {}
        return cls(
            id=page_id,
            title=str(payload.get('title') or ''),
            version=_version_number(payload, 'page'),
            body=str(storage.get('value') or ''),
            parent_id=_optional_str(payload.get('parentId')),
            space_id=_optional_str(payload.get('spaceId')),
            author_id=_optional_str(payload.get('authorId')),
            version_author_id=_optional_str(version.get('authorId')),
            created_at=_optional_str(payload.get('createdAt')),
            updated_at=_optional_str(version.get('createdAt')),
            web_url=_optional_str(links.get('webui')),
        )


@dataclass
class RemoteUser:
    """A Confluence user as returned by the v1 user endpoint."""
    account_id: str
    display_name: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> 'RemoteUser':
        return cls(
            account_id=str(_require(payload, 'accountId', 'user')),
            display_name=_optional_str(payload.get('displayName') or payload.get('publicName')),
            email=_optional_str(payload.get('email')),
        )


@dataclass
class RemoteSpace:
    """Identity of a Confluence space."""
    id: str
    key: str
    name: str
    homepage_id: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> 'RemoteSpace':
        return cls(
            id=str(_require(payload, 'id', 'space')),
            key=str(_require(payload, 'key', 'space')),
            name=str(payload.get('name') or ''),
            homepage_id=_optional_str(payload.get('homepageId')),
        )

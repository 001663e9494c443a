"""YAML frontmatter parsing and generation for markdown files.

Every synced file starts with a front matter block describing the remote
page it mirrors:

    ---
    page_id: '123456'
    title: Getting Started
    space_key: DOCS
    version: 4
    ...
    ---

``page_id``, ``title`` and ``version`` are what the sync engine relies on;
the remaining fields are informational. Keys added by the user are kept
when a file is rewritten.
"""

import re
from typing import Any, Dict, List, Optional, Tuple

import yaml

from src.confluence_client.models import RemoteDocument, RemoteUser

from .errors import FrontmatterError
from .models import LocalPage

# Order in which managed keys are written
FIELD_ORDER = (
    'page_id',
    'title',
    'space_key',
    'created_at',
    'updated_at',
    'version',
    'parent_id',
    'parent_title',
    'author_id',
    'author_name',
    'author_email',
    'last_modifier_id',
    'last_modifier_name',
    'last_modifier_email',
    'labels',
    'url',
    'synced_at',
)


class FrontmatterHandler:
    """Handles YAML frontmatter operations for markdown files."""

    # Regex pattern to match YAML frontmatter (between --- delimiters)
    FRONTMATTER_PATTERN = re.compile(
        r'^---\s*\n(.*?)\n---\s*\n',
        re.DOTALL
    )

    # Maximum allowed depth for YAML structures to prevent DoS attacks
    MAX_YAML_DEPTH = 10

    @classmethod
    def _validate_yaml_depth(cls, obj, current_depth: int = 0, max_depth: int = MAX_YAML_DEPTH) -> None:
        """Reject YAML structures nested deeper than ``max_depth``.

        Raises:
            FrontmatterError: If depth exceeds maximum
        """
        if current_depth > max_depth:
            raise FrontmatterError(
                "<yaml>",
                f"YAML structure exceeds maximum depth of {max_depth}"
            )

        if isinstance(obj, dict):
            for value in obj.values():
                cls._validate_yaml_depth(value, current_depth + 1, max_depth)
        elif isinstance(obj, list):
            for item in obj:
                cls._validate_yaml_depth(item, current_depth + 1, max_depth)

    @classmethod
    def extract_frontmatter_and_content(cls, content: str, file_path: str = "<unknown>") -> Tuple[Dict[str, Any], str]:
        """Split content into the front matter dict and the markdown body.

        Returns:
            Tuple of (frontmatter_dict, markdown_content).
            Returns ({}, content) if no frontmatter found.

        Raises:
            FrontmatterError: If the block is not a valid YAML mapping
        """
        match = cls.FRONTMATTER_PATTERN.match(content)
        if not match:
            return {}, content

        frontmatter_str = match.group(1)
        markdown_content = content[match.end():]

        try:
            frontmatter = yaml.safe_load(frontmatter_str)
        except yaml.YAMLError as e:
            raise FrontmatterError(file_path, f"Invalid YAML syntax: {str(e)}")

        if frontmatter is None:
            return {}, markdown_content

        if not isinstance(frontmatter, dict):
            raise FrontmatterError(
                file_path,
                f"Frontmatter must be a YAML dictionary, got {type(frontmatter).__name__}"
            )

        try:
            cls._validate_yaml_depth(frontmatter)
        except FrontmatterError as e:
            raise FrontmatterError(file_path, e.message)

        return frontmatter, markdown_content

    @classmethod
    def parse(cls, file_path: str, content: str) -> LocalPage:
        """Parse YAML frontmatter from markdown content.

        Files without frontmatter are treated as new files (not yet synced).

        Raises:
            FrontmatterError: If frontmatter is malformed or a field has the wrong type
        """
        frontmatter, markdown_content = cls.extract_frontmatter_and_content(content, file_path)

        # YAML reads unquoted numeric IDs as integers
        page_id = frontmatter.get('page_id')
        page_id = str(page_id) if page_id not in (None, '') else None

        version = frontmatter.get('version')
        if version is not None:
            if isinstance(version, bool):
                raise FrontmatterError(file_path, "Field 'version' must be an integer")
            try:
                version = int(version)
            except (TypeError, ValueError):
                raise FrontmatterError(file_path, f"Field 'version' must be an integer, got {version!r}")

        title = frontmatter.get('title')
        parent_id = frontmatter.get('parent_id')
        space_key = frontmatter.get('space_key')

        return LocalPage(
            file_path=file_path,
            content=markdown_content,
            page_id=page_id,
            title=str(title) if title is not None else None,
            version=version,
            space_key=str(space_key) if space_key is not None else None,
            parent_id=str(parent_id) if parent_id not in (None, '') else None,
            metadata=frontmatter,
        )

    @classmethod
    def generate(cls, metadata: Dict[str, Any], body: str, existing: Optional[Dict[str, Any]] = None) -> str:
        """Render a markdown file with a front matter block.

        Managed keys are written first in FIELD_ORDER; keys with a None value
        are omitted. Keys from ``existing`` that are not managed (user-added)
        follow in their original order.

        Args:
            metadata: Managed front matter values
            body: Markdown body
            existing: Front matter previously read from the file, if any

        Returns:
            Full file content
        """
        ordered: Dict[str, Any] = {}
        for key in FIELD_ORDER:
            value = metadata.get(key)
            if value is not None:
                ordered[key] = value
        for key, value in metadata.items():
            if key not in ordered and value is not None:
                ordered[key] = value
        for key, value in (existing or {}).items():
            if key not in FIELD_ORDER and key not in ordered:
                ordered[key] = value

        yaml_str = yaml.safe_dump(
            ordered,
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False
        )

        if not body.startswith('\n'):
            body = '\n' + body
        return f"---\n{yaml_str}---\n{body}"

    @staticmethod
    def metadata_for_document(
        document: RemoteDocument,
        space_key: str,
        synced_at: str,
        base_url: Optional[str] = None,
        parent_title: Optional[str] = None,
        author: Optional[RemoteUser] = None,
        last_modifier: Optional[RemoteUser] = None,
        labels: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Build the managed front matter of a pulled page.

        An empty label list is omitted rather than written as ``labels: []``.
        """
        url = None
        if document.web_url and base_url:
            url = f"{base_url.rstrip('/')}{document.web_url}"
        return {
            'page_id': document.id,
            'title': document.title,
            'space_key': space_key,
            'created_at': document.created_at,
            'updated_at': document.updated_at,
            'version': document.version,
            'parent_id': document.parent_id,
            'parent_title': parent_title,
            'author_id': document.author_id,
            'author_name': author.display_name if author else None,
            'author_email': author.email if author else None,
            'last_modifier_id': document.version_author_id,
            'last_modifier_name': last_modifier.display_name if last_modifier else None,
            'last_modifier_email': last_modifier.email if last_modifier else None,
            'labels': list(labels) if labels else None,
            'url': url,
            'synced_at': synced_at,
        }

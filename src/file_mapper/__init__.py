"""File mapper library for Confluence space sync.

This package maps between Confluence pages and local markdown files: slug
file names, YAML front matter, and the page state cache read back from it.
"""

from .models import LocalPage
from .errors import (
    FileMapperError,
    FrontmatterError,
)
from .filesafe_converter import FilesafeConverter
from .frontmatter_handler import FrontmatterHandler
from .page_state import build_page_state_from_files, project_planned_pages

__all__ = [
    'LocalPage',
    'FileMapperError',
    'FrontmatterError',
    'FilesafeConverter',
    'FrontmatterHandler',
    'build_page_state_from_files',
    'project_planned_pages',
]

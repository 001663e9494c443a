"""Content conversion between Confluence storage XHTML and markdown.

MarkdownConverter converts page bodies in both directions and rewrites links
between pages (titles on the remote side, relative paths locally).
"""

from .markdown_converter import MarkdownConverter

__all__ = ['MarkdownConverter']

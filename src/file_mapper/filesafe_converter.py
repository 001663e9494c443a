"""Filesafe filename conversion for page titles.

Page titles become lowercase slugs so that local paths are stable, portable
across file systems and easy to type in relative links.
"""

import posixpath
import re

# ASCII word characters only, so slugs are the same on every platform
_STRIP_PATTERN = re.compile(r'[^\w\s-]', re.ASCII)
_SPACE_PATTERN = re.compile(r'\s+')
_HYPHEN_PATTERN = re.compile(r'-+')

FALLBACK_SLUG = 'untitled'


class FilesafeConverter:
    """Converts page titles to filesafe slugs and back (best effort).

    Conversion rules:
    - Lowercase and trim
    - Characters other than ASCII letters, digits, underscore, whitespace
      and hyphen are removed
    - Whitespace runs → a single hyphen
    - Hyphen runs collapsed, leading/trailing hyphens trimmed

    Examples:
        - "Customer Feedback" → "customer-feedback"
        - "API Reference: Getting Started" → "api-reference-getting-started"
        - "Q&A Session" → "qa-session"
    """

    @staticmethod
    def slugify(title: str) -> str:
        """Convert a title to a slug, ``untitled`` if nothing survives.

        Examples:
            >>> FilesafeConverter.slugify("API Reference: Getting Started")
            'api-reference-getting-started'
        """
        slug = _STRIP_PATTERN.sub('', title.lower().strip())
        slug = _SPACE_PATTERN.sub('-', slug)
        slug = _HYPHEN_PATTERN.sub('-', slug).strip('-')
        return slug or FALLBACK_SLUG

    @staticmethod
    def path_to_title(local_path: str) -> str:
        """Derive a display title from a tracked local path.

        Takes the last path segment, drops the extension, then drops a
        trailing ``readme`` in any case. Returns an empty string when nothing
        is left (e.g. for the space homepage ``README.md``).

        Examples:
            >>> FilesafeConverter.path_to_title("guides/setup.md")
            'setup'
            >>> FilesafeConverter.path_to_title("guides/README.md")
            ''
        """
        name = posixpath.basename(local_path.replace('\\', '/'))
        stem, _ext = posixpath.splitext(name)
        if stem.lower().endswith('readme'):
            stem = stem[:-len('readme')]
        return stem.strip('-_ ')

"""Markdown converter using markdownify and Pandoc, with page link rewriting.

This module converts between Confluence storage format (XHTML) and markdown.
markdownify handles XHTML→markdown (clean pipe tables) and Pandoc handles
markdown→XHTML. Links between pages are rewritten on the way through: remote
``<ac:link><ri:page ri:content-title="..."/></ac:link>`` references become
relative ``.md`` links and back, using the lookup map of the current run.

A link that cannot be resolved is never dropped: its original markup (or
markdown) is kept as written and one warning is returned for it.
"""

import html
import logging
import re
import subprocess
from typing import Dict, List, Tuple

from bs4 import BeautifulSoup
from markdownify import MarkdownConverter as BaseMarkdownConverter

from ..confluence_client.errors import ConversionError
from ..sync.link_resolver import relative_path_to_remote_link, remote_link_to_relative_path
from ..sync.models import PageLookupMap

logger = logging.getLogger(__name__)

# Letters and digits only, so markdownify and Pandoc leave the token untouched
_TOKEN_TEMPLATE = "CFLINKTOKEN{index}END"
_TOKEN_PATTERN = re.compile(r'CFLINKTOKEN(\d+)END')

_CDATA_PATTERN = re.compile(r'<!\[CDATA\[(.*?)\]\]>', re.DOTALL)

_AC_LINK_PATTERN = re.compile(r'<ac:link\b[^>]*?(?:/>|>.*?</ac:link>)', re.DOTALL)

# [text](target) or [text](target "title"), not preceded by ! (images)
_MARKDOWN_LINK_PATTERN = re.compile(r'(?<!!)\[([^\]\n]*)\]\(([^)\s]+)(?:\s+"[^"\n]*")?\)')

_FENCE_PATTERN = re.compile(r'^\s*(```|~~~)')

_SCHEME_PATTERN = re.compile(r'^[a-zA-Z][a-zA-Z0-9+.-]*:')


class _CustomMarkdownConverter(BaseMarkdownConverter):
    """Custom markdownify converter with Confluence-friendly settings."""

    def __init__(self, **options):
        options.setdefault('heading_style', 'atx')
        options.setdefault('bullets', '-')
        options.setdefault('strong_em_symbol', '*')
        super().__init__(**options)

    @staticmethod
    def _is_in_table_cell(parent_tags) -> bool:
        return 'td' in parent_tags or 'th' in parent_tags

    def convert_p(self, el, text, parent_tags):
        """Confluence stores multi-line table cells as several <p> tags; keep the breaks."""
        text = text.strip()
        if not text:
            return ''
        if self._is_in_table_cell(parent_tags):
            return text + '\n'
        if '_inline' in parent_tags:
            return ' ' + text + ' '
        return '\n\n%s\n\n' % text

    def _convert_cell(self, el, text):
        colspan = 1
        if 'colspan' in el.attrs and el['colspan'].isdigit():
            colspan = max(1, min(1000, int(el['colspan'])))
        cell_text = re.sub(r'(<br>)+', '<br>', text.strip().replace('\n', '<br>'))
        while cell_text.endswith('<br>'):
            cell_text = cell_text.removesuffix('<br>')
        return ' ' + cell_text + ' |' * colspan

    def convert_td(self, el, text, parent_tags):
        return self._convert_cell(el, text)

    def convert_th(self, el, text, parent_tags):
        return self._convert_cell(el, text)

    def convert_br(self, el, text, parent_tags):
        if self._is_in_table_cell(parent_tags):
            return '<br>'
        if '_inline' in parent_tags:
            return ' '
        if self.options['newline_style'].lower() == 'backslash':
            return '\\\n'
        return '  \n'


def _markdownify(xhtml: str, **options) -> str:
    """Convert HTML to markdown using custom converter."""
    return _CustomMarkdownConverter(**options).convert(xhtml)


def _restore_tokens(text: str, replacements: Dict[int, str]) -> str:
    return _TOKEN_PATTERN.sub(lambda m: replacements.get(int(m.group(1)), m.group(0)), text)


def _page_link_markup(title: str, text: str) -> str:
    """Storage-format link to a page of the same space."""
    body = text.replace(']]>', ']]]]><![CDATA[>')
    return (
        f'<ac:link><ri:page ri:content-title="{html.escape(title, quote=True)}" />'
        f'<ac:plain-text-link-body><![CDATA[{body}]]></ac:plain-text-link-body></ac:link>'
    )


class MarkdownConverter:
    """Converts between Confluence storage XHTML and markdown.

    Pandoc is only needed for markdown→XHTML and is looked up on first use.

    Example:
        >>> converter = MarkdownConverter()
        >>> text, warnings = converter.to_local(body, lookup, "guides/setup.md")
    """

    def __init__(self):
        self._pandoc_checked = False

    def to_local(
        self,
        remote_body: str,
        lookup_map: PageLookupMap,
        current_path: str,
    ) -> Tuple[str, List[str]]:
        """Convert a storage-format page body to markdown.

        Args:
            remote_body: Storage-format XHTML
            lookup_map: Lookup map of the run, for page links
            current_path: Local path of the page being converted

        Returns:
            Tuple of (markdown, warnings)

        Raises:
            ConversionError: If markdownify fails on the content
        """
        if not remote_body:
            return "", []

        warnings: List[str] = []
        preserved: Dict[int, str] = {}

        def keep(original: str) -> str:
            index = len(preserved)
            preserved[index] = original
            return _TOKEN_TEMPLATE.format(index=index)

        def rewrite_link(match: 're.Match') -> str:
            original = match.group(0)
            # CDATA link bodies do not survive the HTML parser
            snippet = BeautifulSoup(
                _CDATA_PATTERN.sub(lambda m: html.escape(m.group(1), quote=False), original),
                "lxml",
            )
            page_ref = snippet.find("ri:page")
            if page_ref is None or page_ref.get("ri:space-key"):
                # Attachment, user and cross-space links are kept as written
                return keep(original)

            title = page_ref.get("ri:content-title") or ""
            body_tag = snippet.find("ac:plain-text-link-body") or snippet.find("ac:link-body")
            text = body_tag.get_text().strip() if body_tag is not None else ""
            target = remote_link_to_relative_path(title, current_path, lookup_map) if title else None

            if target is None:
                warnings.append(f'Unresolved link to page "{title}" kept as written')
                return keep(original)

            return (
                f'<a href="{html.escape(target, quote=True)}">'
                f'{html.escape(text or title, quote=False)}</a>'
            )

        prepared = _AC_LINK_PATTERN.sub(rewrite_link, remote_body)

        try:
            markdown = _markdownify(prepared)
        except Exception as e:
            raise ConversionError(f"Markdownify conversion failed: {e}") from e

        markdown = _restore_tokens(markdown, preserved).strip() + "\n"
        for warning in warnings:
            logger.debug(f"{current_path}: {warning}")
        return markdown, warnings

    def to_remote(
        self,
        local_text: str,
        lookup_map: PageLookupMap,
        current_path: str,
        space_root: str,
    ) -> Tuple[str, List[str]]:
        """Convert markdown to storage-format XHTML.

        Relative links to tracked ``.md`` files become page links; any other
        link is left to Pandoc.

        Args:
            local_text: Markdown body without front matter
            lookup_map: Lookup map of the run, for page links
            current_path: Local path of the file being converted
            space_root: Root directory of the synced tree

        Returns:
            Tuple of (xhtml, warnings)

        Raises:
            ConversionError: If Pandoc is missing, fails or times out
        """
        if not local_text or not local_text.strip():
            return "", []

        warnings: List[str] = []
        links: Dict[int, str] = {}

        def replace_link(match: 're.Match') -> str:
            text, target = match.group(1), match.group(2)
            path = target.split('#', 1)[0]
            if not path or _SCHEME_PATTERN.match(path) or not path.lower().endswith('.md'):
                return match.group(0)

            resolved = relative_path_to_remote_link(path, current_path, space_root, lookup_map)
            if resolved is None:
                warnings.append(f'Unresolved link to "{target}" kept as written')
                return match.group(0)

            index = len(links)
            links[index] = _page_link_markup(resolved.title, text or resolved.title)
            return _TOKEN_TEMPLATE.format(index=index)

        lines = []
        in_fence = False
        for line in local_text.split('\n'):
            if _FENCE_PATTERN.match(line):
                in_fence = not in_fence
                lines.append(line)
            elif in_fence:
                lines.append(line)
            else:
                lines.append(_MARKDOWN_LINK_PATTERN.sub(replace_link, line))

        xhtml = self.markdown_to_xhtml('\n'.join(lines))
        return _restore_tokens(xhtml, links), warnings

    def markdown_to_xhtml(self, markdown: str) -> str:
        """Convert markdown to XHTML using Pandoc.

        Raises:
            ConversionError: If Pandoc is missing, fails or times out
        """
        if not markdown:
            return ""

        self._ensure_pandoc()
        try:
            result = subprocess.run(
                ["pandoc", "-f", "markdown", "-t", "html"],
                input=markdown,
                text=True,
                capture_output=True,
                check=True,
                timeout=10
            )
        except subprocess.CalledProcessError as e:
            raise ConversionError(f"Pandoc conversion failed: {e.stderr}")
        except subprocess.TimeoutExpired:
            raise ConversionError("Pandoc conversion timed out (>10s)")
        return result.stdout

    def _ensure_pandoc(self) -> None:
        if self._pandoc_checked:
            return
        if not self._pandoc_installed():
            raise ConversionError(
                "Pandoc not found. Install: brew install pandoc (macOS) or "
                "apt-get install pandoc (Linux) or download from "
                "https://pandoc.org/installing.html"
            )
        self._pandoc_checked = True

    def _pandoc_installed(self) -> bool:
        """Check if Pandoc is installed on system PATH."""
        try:
            result = subprocess.run(
                ["which", "pandoc"],
                capture_output=True,
                timeout=5
            )
            return result.returncode == 0
        except (subprocess.TimeoutExpired, FileNotFoundError):
            return False

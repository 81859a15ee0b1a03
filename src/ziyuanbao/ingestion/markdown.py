"""
Markdown Module - Rule-based HTML to Markdown normalization.
===========================================================

Converts scraped HTML fragments (detail descriptions, mis-wrapped catalog
descriptions) into Markdown with a fixed sequence of regex rewrites:

- comments and div wrappers removed
- headings, bold/italic, links, images, lists, rules, blockquotes, breaks
- remaining tags stripped
- the five common HTML entities decoded

This is a heuristic, not an HTML parser: nested or malformed tags can
mis-convert, and a second pass over Markdown that contains a literal "<"
is undefined. Text with no tags only has its entities decoded.
"""

import re
from typing import Optional

from ziyuanbao.shared.logging import get_logger

logger = get_logger(__name__)

_FLAGS = re.IGNORECASE | re.DOTALL

_TAG_SNIFF = re.compile(r"<[a-z][\s\S]*>", re.IGNORECASE)
_ENTITIES = {"amp": "&", "lt": "<", "gt": ">", "quot": '"', "#39": "'"}
_ENTITY_PATTERN = re.compile(r"&(amp|lt|gt|quot|#39);")
_MARKDOWN_FENCE = re.compile(r"^```markdown")
_CLOSING_FENCE = re.compile(r"```$")


def is_html(text: Optional[str]) -> bool:
    """
    Check whether a string contains an HTML tag.

    Example:
        >>> is_html("<div>x</div>")
        True
        >>> is_html("plain text")
        False
    """
    if not text:
        return False
    return bool(_TAG_SNIFF.search(text))


def decode_entities(text: str) -> str:
    """Decode &amp; &lt; &gt; &quot; &#39; in a single pass."""
    return _ENTITY_PATTERN.sub(lambda m: _ENTITIES[m.group(1)], text)


# ─────────────────────────────────────────────────────────────────────────────
# Normalizer
# ─────────────────────────────────────────────────────────────────────────────


class MarkdownNormalizer:
    """
    Sequential regex HTML→Markdown converter.

    Example:
        >>> MarkdownNormalizer().convert("<h2>Intro</h2><p>Hello <b>world</b></p>")
        '## Intro\\n\\nHello **world**'
    """

    def __init__(self) -> None:
        # Pre-compile regex patterns, applied in this order
        self._comment = re.compile(r"<!--.*?-->", re.DOTALL)
        self._div = re.compile(r"</?div(?:\s[^>]*)?>", re.IGNORECASE)
        self._headings = [
            (re.compile(rf"<h{level}(?:\s[^>]*)?>(.*?)</h{level}>", _FLAGS), "#" * level)
            for level in range(1, 7)
        ]
        self._span = re.compile(r"<span(?:\s[^>]*)?>(.*?)</span>", _FLAGS)
        self._paragraph = re.compile(r"<p(?:\s[^>]*)?>(.*?)</p>", _FLAGS)
        self._bold = re.compile(r"<(strong|b)(?:\s[^>]*)?>(.*?)</\1>", _FLAGS)
        self._italic = re.compile(r"<(em|i)(?:\s[^>]*)?>(.*?)</\1>", _FLAGS)
        self._link = re.compile(r"<a\s[^>]*href=[\"'](.*?)[\"'][^>]*>(.*?)</a>", _FLAGS)
        self._image_src_alt = re.compile(
            r"<img\s[^>]*src=[\"'](.*?)[\"'][^>]*alt=[\"'](.*?)[\"'][^>]*/?>", _FLAGS
        )
        self._image_alt_src = re.compile(
            r"<img\s[^>]*alt=[\"'](.*?)[\"'][^>]*src=[\"'](.*?)[\"'][^>]*/?>", _FLAGS
        )
        self._image_src = re.compile(r"<img\s[^>]*src=[\"'](.*?)[\"'][^>]*/?>", _FLAGS)
        self._unordered = re.compile(r"<ul(?:\s[^>]*)?>(.*?)</ul>", _FLAGS)
        self._ordered = re.compile(r"<ol(?:\s[^>]*)?>(.*?)</ol>", _FLAGS)
        self._list_item = re.compile(r"<li(?:\s[^>]*)?>(.*?)</li>", _FLAGS)
        self._rule = re.compile(r"<hr(?:\s[^>]*)?/?>", re.IGNORECASE)
        self._blockquote = re.compile(r"<blockquote(?:\s[^>]*)?>(.*?)</blockquote>", _FLAGS)
        self._line_break = re.compile(r"<br(?:\s[^>]*)?/?>", re.IGNORECASE)
        self._extra_newlines = re.compile(r"\n{3,}")
        self._any_tag = re.compile(r"<[^>]*>")

    def _convert_unordered(self, match: re.Match[str]) -> str:
        return self._list_item.sub(lambda item: f"- {item.group(1)}\n", match.group(1))

    def _convert_ordered(self, match: re.Match[str]) -> str:
        counter = iter(range(1, 10_000))
        return self._list_item.sub(
            lambda item: f"{next(counter)}. {item.group(1)}\n", match.group(1)
        )

    def _convert_blockquote(self, match: re.Match[str]) -> str:
        lines = match.group(1).split("\n")
        return "\n".join(f"> {line}" for line in lines) + "\n\n"

    def convert(self, html: Optional[str]) -> str:
        """
        Convert an HTML fragment to Markdown.

        Args:
            html: HTML fragment (None or empty gives "")

        Returns:
            Markdown text
        """
        if not html:
            return ""

        if not is_html(html):
            return decode_entities(html)

        result = self._comment.sub("", html)
        result = self._div.sub("", result)

        for pattern, hashes in self._headings:
            result = pattern.sub(lambda m, h=hashes: f"{h} {m.group(1)}\n\n", result)

        result = self._span.sub(r"\1", result)
        result = self._paragraph.sub(r"\1\n\n", result)
        result = self._bold.sub(r"**\2**", result)
        result = self._italic.sub(r"*\2*", result)
        result = self._link.sub(r"[\2](\1)", result)

        result = self._image_src_alt.sub(r"![\2](\1)", result)
        result = self._image_alt_src.sub(r"![\1](\2)", result)
        result = self._image_src.sub(r"![](\1)", result)

        result = self._unordered.sub(self._convert_unordered, result)
        result = self._ordered.sub(self._convert_ordered, result)

        result = self._rule.sub("---\n\n", result)
        result = self._blockquote.sub(self._convert_blockquote, result)
        result = self._line_break.sub("\n", result)

        result = self._extra_newlines.sub("\n\n", result)
        result = self._any_tag.sub("", result)
        result = decode_entities(result)

        return result.strip()


# ─────────────────────────────────────────────────────────────────────────────
# Convenience Functions
# ─────────────────────────────────────────────────────────────────────────────

_default_normalizer: Optional[MarkdownNormalizer] = None


def get_normalizer() -> MarkdownNormalizer:
    """Get the shared normalizer (patterns compiled once)."""
    global _default_normalizer
    if _default_normalizer is None:
        _default_normalizer = MarkdownNormalizer()
    return _default_normalizer


def html_to_markdown(html: Optional[str]) -> str:
    """Convert HTML to Markdown with the shared normalizer."""
    return get_normalizer().convert(html)


def fix_markdown_content(content: Optional[str]) -> str:
    """
    Repair content that should be Markdown.

    Unwraps raw HTML mistakenly fenced as a ```markdown block, converts any
    other HTML, and leaves Markdown or plain text untouched.

    Example:
        >>> fix_markdown_content("```markdown\\n<p>Hi</p>\\n```")
        'Hi'
    """
    if not content:
        return ""

    stripped = content.strip()
    if stripped.startswith("```markdown") and is_html(content):
        unwrapped = _CLOSING_FENCE.sub("", _MARKDOWN_FENCE.sub("", stripped)).strip()
        logger.debug("Unwrapping HTML fenced as a markdown code block")
        return html_to_markdown(unwrapped)

    if is_html(content):
        return html_to_markdown(content)

    return content

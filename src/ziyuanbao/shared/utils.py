"""
Utilities Module - Common helper functions.
==========================================

Provides utility functions for:
- Title handling (bracket tags, bilingual split, normalization)
- Number extraction from scraped labels
- Politeness delays
"""

import re
import time
from typing import Optional

from ziyuanbao.shared.logging import get_logger

logger = get_logger(__name__)

_TAG_PATTERN = re.compile(r"\[(.*?)\]")
_WHITESPACE = re.compile(r"\s+")


# ─────────────────────────────────────────────────────────────────────────────
# Title Helpers
# ─────────────────────────────────────────────────────────────────────────────


def extract_bracket_tags(title: str) -> tuple[str, list[str]]:
    """
    Lift bracketed tags out of a listing title.

    Tags are lower-cased and de-duplicated in order of appearance.

    Example:
        >>> extract_bracket_tags("[Udemy] Python 入门 [udemy][中字]")
        ('Python 入门', ['udemy', '中字'])
    """
    tags: list[str] = []
    for match in _TAG_PATTERN.finditer(title):
        tag = match.group(1).strip().lower()
        if tag and tag not in tags:
            tags.append(tag)

    clean = _TAG_PATTERN.sub("", title).strip()
    return clean, tags


def split_bilingual_title(title: str, fallback: str) -> tuple[str, Optional[str]]:
    """
    Split "中文标题 | English Title" into its two halves.

    An empty native half falls back to ``fallback`` (usually the URL) and an
    empty English half becomes None.

    Example:
        >>> split_bilingual_title("机器学习 | Machine Learning", "u")
        ('机器学习', 'Machine Learning')
    """
    if "|" not in title:
        return (title or fallback), None

    native, english = title.split("|", 1)
    native = native.strip() or fallback
    english = english.strip() or None
    return native, english


def normalize_name(name: str) -> str:
    """Remove all whitespace and lower-case, for loose name comparison."""
    return _WHITESPACE.sub("", name or "").lower()


def extract_int(text: Optional[str]) -> Optional[int]:
    """
    Pull the first integer out of a scraped label.

    Example:
        >>> extract_int("38金币")
        38
    """
    if not text:
        return None
    match = re.search(r"\d+", text)
    return int(match.group(0)) if match else None


# ─────────────────────────────────────────────────────────────────────────────
# Timing
# ─────────────────────────────────────────────────────────────────────────────


def polite_sleep(seconds: float, reason: str = "") -> None:
    """Pause between items so the scraped site and AI provider aren't hammered."""
    if seconds <= 0:
        return
    if reason:
        logger.debug(f"Sleeping {seconds:.1f}s ({reason})")
    time.sleep(seconds)


def truncate(text: Optional[str], limit: int = 60) -> str:
    """Shorten text for log lines."""
    if not text:
        return ""
    return text if len(text) <= limit else text[: limit - 3] + "..."

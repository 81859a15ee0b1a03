"""
Heuristic Outline Module - Parse chapter/lecture lists without a model.
======================================================================

Recognises the layouts course pages commonly use for their curriculum:

1. Section containers: elements whose class/id ends in "section" or
   "chapter", each with a heading and a list of lectures
2. Headings followed by lists: <h3>Chapter</h3><ul><li>Lecture</li></ul>
3. Markdown (or HTML flattened to Markdown): "#" headings, "第N章" lines or
   bold lines as chapters, list items as lectures

Lecture text is split into title, duration and preview flag. When none of
the layouts yields a lecture, OutlineError is raised.
"""

import re
from typing import Optional

from bs4 import BeautifulSoup, Tag

from ziyuanbao.ingestion.markdown import html_to_markdown, is_html
from ziyuanbao.shared.errors import OutlineError
from ziyuanbao.shared.logging import get_logger
from ziyuanbao.shared.schemas import Chapter, CourseOutline, Lecture

logger = get_logger(__name__)

DURATION_PATTERN = re.compile(
    r"(\d{1,2}:\d{2}(?::\d{2})?"
    r"|\d+\s*小时(?:\s*\d+\s*分钟)?"
    r"|\d+\s*分钟"
    r"|\d+\s*(?:hours?|hrs?|h)(?:\s*\d+\s*(?:minutes?|mins?|m))?\b"
    r"|\d+\s*(?:minutes?|mins?)\b)",
    re.IGNORECASE,
)
PREVIEW_PATTERN = re.compile(r"预览|试看|免费观看|preview", re.IGNORECASE)
CONTAINER_TOKEN = re.compile(r"(?:^|[-_])(?:section|chapter)$", re.IGNORECASE)
LECTURE_TOKEN = re.compile(r"lecture|lesson|item", re.IGNORECASE)
HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]

MD_HEADING = re.compile(r"^#{1,6}\s+(.+)$")
MD_CHAPTER_LINE = re.compile(r"^(第[一二三四五六七八九十百零\d]+(?:章|部分|篇).*)$")
MD_BOLD_LINE = re.compile(r"^\*\*(.+)\*\*$")
MD_LIST_ITEM = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+(.+)$")

DEFAULT_CHAPTER_TITLE = "课程内容"


# ─────────────────────────────────────────────────────────────────────────────
# Text Helpers
# ─────────────────────────────────────────────────────────────────────────────


def split_duration(text: str) -> tuple[str, str]:
    """
    Separate a trailing or embedded duration from a title.

    Example:
        >>> split_duration("Introduction 05:30")
        ('Introduction', '05:30')
    """
    match = DURATION_PATTERN.search(text)
    if not match:
        return text.strip(), ""
    duration = match.group(1).strip()
    title = (text[: match.start()] + text[match.end():]).strip()
    return _tidy_title(title), duration


def _tidy_title(title: str) -> str:
    title = re.sub(r"[(（\[]\s*[)）\]]", "", title)
    return title.strip(" \t-–|·:：,，")


def parse_lecture_text(text: str, marked_preview: bool = False) -> Optional[Lecture]:
    """Build a Lecture from one list item's text, or None if it's empty."""
    text = " ".join(text.split())
    if not text:
        return None
    preview = marked_preview or bool(PREVIEW_PATTERN.search(text))
    text = PREVIEW_PATTERN.sub("", text)
    title, duration = split_duration(text)
    if not title:
        return None
    return Lecture(title=title, duration=duration, preview=preview)


def _tag_tokens(tag: Tag) -> list[str]:
    tokens = list(tag.get("class") or [])
    if tag.get("id"):
        tokens.append(tag["id"])
    return tokens


def _is_container(tag: Tag) -> bool:
    if tag.name in HEADING_TAGS or tag.name in ("li", "a", "span"):
        return False
    return any(CONTAINER_TOKEN.search(token) for token in _tag_tokens(tag))


def _has_preview_token(tag: Tag) -> bool:
    return any(PREVIEW_PATTERN.search(token) for token in _tag_tokens(tag))


def _is_preview_tag(tag: Tag) -> bool:
    """A lecture is a preview if it or any descendant carries a preview class."""
    return _has_preview_token(tag) or tag.find(_has_preview_token) is not None


# ─────────────────────────────────────────────────────────────────────────────
# Parser Class
# ─────────────────────────────────────────────────────────────────────────────


class HeuristicOutlineParser:
    """
    Rule-based outline parser for HTML or Markdown course content.

    Example:
        >>> parser = HeuristicOutlineParser()
        >>> outline = parser.parse("<h3>第一章</h3><ul><li>简介 05:00</li></ul>")
        >>> outline.chapters[0].lectures[0].duration
        '05:00'
    """

    def _lectures_from_items(self, items: list[Tag]) -> list[Lecture]:
        lectures = []
        for item in items:
            lecture = parse_lecture_text(item.get_text(" ", strip=True), _is_preview_tag(item))
            if lecture:
                lectures.append(lecture)
        return lectures

    def _chapter_from_heading_text(self, text: str, lectures: list[Lecture]) -> Chapter:
        title, duration = split_duration(" ".join(text.split()))
        return Chapter(title=title or DEFAULT_CHAPTER_TITLE, duration=duration, lectures=lectures)

    def _parse_containers(self, soup: BeautifulSoup) -> list[Chapter]:
        candidates = soup.find_all(lambda tag: isinstance(tag, Tag) and _is_container(tag))
        candidate_ids = {id(tag) for tag in candidates}
        top_level = [
            tag
            for tag in candidates
            if not any(id(parent) in candidate_ids for parent in tag.parents)
        ]

        chapters: list[Chapter] = []
        for container in top_level:
            title_el = container.find(HEADING_TAGS) or container.find(
                class_=re.compile(r"title|header", re.IGNORECASE)
            )
            items = container.find_all("li") or container.find_all(
                lambda tag: isinstance(tag, Tag)
                and tag is not title_el
                and any(LECTURE_TOKEN.search(token) for token in _tag_tokens(tag))
            )
            lectures = self._lectures_from_items(items)
            if not lectures:
                continue
            title_text = title_el.get_text(" ", strip=True) if title_el else ""
            chapters.append(self._chapter_from_heading_text(title_text, lectures))
        return chapters

    def _parse_headings(self, soup: BeautifulSoup) -> list[Chapter]:
        chapters: list[Chapter] = []
        for heading in soup.find_all(HEADING_TAGS):
            items: list[Tag] = []
            for sibling in heading.find_next_siblings():
                if sibling.name in HEADING_TAGS:
                    break
                if sibling.name == "li":
                    items.append(sibling)
                else:
                    items.extend(sibling.find_all("li"))
            lectures = self._lectures_from_items(items)
            if lectures:
                chapters.append(
                    self._chapter_from_heading_text(heading.get_text(" ", strip=True), lectures)
                )
        return chapters

    def _parse_markdown(self, text: str) -> list[Chapter]:
        chapters: list[Chapter] = []
        current: Optional[Chapter] = None

        for raw_line in text.splitlines():
            line = raw_line.strip()
            if not line:
                continue

            heading = (
                MD_HEADING.match(line) or MD_CHAPTER_LINE.match(line) or MD_BOLD_LINE.match(line)
            )
            if heading:
                current = self._chapter_from_heading_text(heading.group(1).strip("* "), [])
                chapters.append(current)
                continue

            item = MD_LIST_ITEM.match(line)
            if item:
                lecture = parse_lecture_text(item.group(1).replace("**", ""))
                if lecture is None:
                    continue
                if current is None:
                    current = Chapter(title=DEFAULT_CHAPTER_TITLE)
                    chapters.append(current)
                current.lectures.append(lecture)

        return [chapter for chapter in chapters if chapter.lectures]

    def parse(self, content: Optional[str]) -> CourseOutline:
        """
        Parse course content into an outline.

        Args:
            content: Raw course-content HTML, or Markdown

        Returns:
            CourseOutline with at least one lecture

        Raises:
            OutlineError: If no recognisable chapter/lecture structure exists
        """
        if not content or not content.strip():
            raise OutlineError("No course content to parse")

        chapters: list[Chapter] = []
        if is_html(content):
            soup = BeautifulSoup(content, "lxml")
            chapters = self._parse_containers(soup)
            if chapters:
                logger.debug(f"Outline from section containers: {len(chapters)} chapters")
            else:
                chapters = self._parse_headings(soup)
                if chapters:
                    logger.debug(f"Outline from headings + lists: {len(chapters)} chapters")
            if not chapters:
                chapters = self._parse_markdown(html_to_markdown(content))
        else:
            chapters = self._parse_markdown(content)

        if not chapters:
            raise OutlineError("No recognisable chapter/lecture structure found")

        outline = CourseOutline(chapters=chapters)
        summary = outline.summary()
        logger.info(
            f"Heuristic outline: {summary.total_chapters} chapters, "
            f"{summary.total_lectures} lectures"
        )
        return outline


def parse_outline(content: Optional[str]) -> CourseOutline:
    """Convenience function using a default parser."""
    return HeuristicOutlineParser().parse(content)

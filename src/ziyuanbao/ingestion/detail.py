"""
Detail Module - Extract resource fields from a detail page.
==========================================================

Parses one resource detail page into a flat DetailFields record using
BeautifulSoup with configurable selectors.

Every field is best-effort: the source site's markup varies between
resource pages, so a missing or broken field becomes None and the
remaining fields are still extracted.
"""

import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

from bs4 import BeautifulSoup, Tag

from ziyuanbao.shared.logging import get_logger
from ziyuanbao.shared.schemas import DetailFields

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Selector Configuration
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class DetailSelectors:
    """CSS selectors for the source site's detail pages."""

    tags: str = ".entry-tags a"
    meta_items: str = ".article-meta li"
    price_item: str = ".prices-info .price-item.no"
    preview_link: str = 'a.btn:-soup-contains("查看预览"), a:-soup-contains("查看预览")'
    image: str = ".wp-post-image, img.attachment-large"
    details_text: str = ".entry-content"
    article: str = "article.post-content, article"
    toc: str = '[class*="lwptoc"]'
    course_block: str = (
        '[id*="course-content"], [class*="course-content"], '
        '[id*="curriculum"], [class*="curriculum"]'
    )


# Labelled rows in the article meta list and the field each one fills
META_LABELS: dict[str, str] = {
    "资源分类": "resource_category",
    "浏览热度": "popularity",
    "发布时间": "publish_date",
    "最近更新": "last_update",
    "文件内容": "content_info",
    "视频尺寸": "video_size",
    "视频大小": "file_size",
    "课时": "duration",
    "视频语言": "language",
    "视频字幕": "subtitle",
}

COURSE_HEADINGS = re.compile(r"课程内容|课程目录|课程大纲|course\s*content|curriculum", re.IGNORECASE)
DECLARATION_MARKERS = ("本站所有文章", "原创发布")
PRICE_PATTERN = re.compile(r"(\d+)\s*金币")
POPULARITY_PATTERN = re.compile(r"\((\d+)\)")


def _inner_html(element: Tag) -> str:
    return "".join(str(child) for child in element.contents).strip()


# ─────────────────────────────────────────────────────────────────────────────
# Extractor Class
# ─────────────────────────────────────────────────────────────────────────────


class DetailPageExtractor:
    """
    Extractor for resource detail pages.

    Example:
        >>> extractor = DetailPageExtractor()
        >>> fields = extractor.extract(html)
        >>> print(fields.coin_price, fields.tags)
    """

    def __init__(self, selectors: Optional[DetailSelectors] = None):
        self.selectors = selectors or DetailSelectors()

    def _create_soup(self, html: str) -> BeautifulSoup:
        return BeautifulSoup(html, "lxml")

    def _best_effort(self, name: str, func: Callable[[], Any]) -> Any:
        """Run one field extractor; a failure leaves that field empty."""
        try:
            return func()
        except Exception as e:
            logger.debug(f"Field '{name}' not extracted: {e}")
            return None

    # ── individual fields ────────────────────────────────────────────────────

    def _extract_tags(self, soup: BeautifulSoup) -> list[str]:
        tags: list[str] = []
        for anchor in soup.select(self.selectors.tags):
            name = anchor.get_text(strip=True)
            if name and name not in tags:
                tags.append(name)
        return tags

    def _extract_meta(self, soup: BeautifulSoup) -> dict[str, str]:
        meta: dict[str, str] = {}
        for item in soup.select(self.selectors.meta_items):
            text = item.get_text(" ", strip=True)
            for label, field_name in META_LABELS.items():
                match = re.match(rf"^\s*{label}\s*[:：]\s*(.*)$", text, re.DOTALL)
                if not match:
                    continue
                value = match.group(1).strip()
                if field_name == "resource_category":
                    anchor = item.find("a")
                    value = anchor.get_text(strip=True) if anchor else value
                elif field_name == "popularity":
                    bracketed = POPULARITY_PATTERN.search(value)
                    value = bracketed.group(1) if bracketed else value
                if value:
                    meta[field_name] = value
                break
        return meta

    def _extract_coin_price(self, soup: BeautifulSoup) -> Optional[str]:
        item = soup.select_one(self.selectors.price_item)
        if item is None:
            return None
        match = PRICE_PATTERN.search(item.get_text(strip=True))
        return match.group(1) if match else None

    def _extract_preview_url(self, soup: BeautifulSoup) -> Optional[str]:
        for selector in self.selectors.preview_link.split(","):
            anchor = soup.select_one(selector.strip())
            if anchor is not None and anchor.get("href"):
                return anchor["href"].strip()
        return None

    def _extract_image_url(self, soup: BeautifulSoup) -> Optional[str]:
        og_image = soup.select_one('meta[property="og:image"]')
        if og_image is not None and og_image.get("content"):
            return og_image["content"].strip()
        for selector in self.selectors.image.split(","):
            image = soup.select_one(selector.strip())
            if image is not None and image.get("src"):
                return image["src"].strip()
        return None

    def _extract_details_text(self, soup: BeautifulSoup) -> Optional[str]:
        content = soup.select_one(self.selectors.details_text)
        if content is None:
            return None
        return content.get_text("\n", strip=True) or None

    def _extract_details_html(self, soup: BeautifulSoup) -> Optional[str]:
        """Article body without the site's copyright notice and table of contents."""
        article = None
        for selector in self.selectors.article.split(","):
            article = soup.select_one(selector.strip())
            if article is not None:
                break
        if article is None:
            return None

        for toc in article.select(self.selectors.toc):
            toc.decompose()
        for paragraph in article.find_all("p"):
            text = paragraph.get_text(strip=True)
            if all(marker in text for marker in DECLARATION_MARKERS):
                paragraph.decompose()

        return _inner_html(article) or None

    def _extract_course_html(self, soup: BeautifulSoup) -> Optional[str]:
        """Raw course-content block: a dedicated container or a headed section."""
        block = soup.select_one(self.selectors.course_block)
        if block is not None:
            return _inner_html(block) or None

        for heading in soup.find_all(["h2", "h3", "h4", "h5"]):
            if not COURSE_HEADINGS.search(heading.get_text(strip=True)):
                continue
            level = int(heading.name[1])
            parts: list[str] = []
            for sibling in heading.find_next_siblings():
                if (
                    sibling.name
                    and re.fullmatch(r"h[1-6]", sibling.name)
                    and int(sibling.name[1]) <= level
                ):
                    break
                parts.append(str(sibling))
            html = "".join(parts).strip()
            if html:
                return html
        return None

    def _extract_page_html(self, soup: BeautifulSoup) -> Optional[str]:
        body = soup.body
        return _inner_html(body) if body is not None else None

    # ── public API ───────────────────────────────────────────────────────────

    def extract(self, html: str) -> DetailFields:
        """
        Extract every field from a detail page.

        Args:
            html: Raw detail page HTML

        Returns:
            DetailFields with None for anything the page lacks
        """
        if not html or not html.strip():
            logger.warning("Empty detail page HTML")
            return DetailFields()

        soup = self._create_soup(html)

        # Capture the raw page before the article cleanup mutates the tree
        page_html = self._best_effort("page_html", lambda: self._extract_page_html(soup))
        course_html = self._best_effort("course_html", lambda: self._extract_course_html(soup))
        meta = self._best_effort("meta", lambda: self._extract_meta(soup)) or {}

        fields = DetailFields(
            page_html=page_html,
            course_html=course_html,
            tags=self._best_effort("tags", lambda: self._extract_tags(soup)) or [],
            coin_price=self._best_effort("coin_price", lambda: self._extract_coin_price(soup)),
            preview_url=self._best_effort("preview_url", lambda: self._extract_preview_url(soup)),
            image_url=self._best_effort("image_url", lambda: self._extract_image_url(soup)),
            details=self._best_effort("details", lambda: self._extract_details_text(soup)),
            details_html=self._best_effort(
                "details_html", lambda: self._extract_details_html(soup)
            ),
            **meta,
        )

        missing = [name for name, value in fields.model_dump().items() if value in (None, [])]
        if missing:
            logger.debug(f"Detail page missing fields: {', '.join(missing)}")
        return fields


def extract_detail_fields(html: str) -> DetailFields:
    """Convenience function using the default selectors."""
    return DetailPageExtractor().extract(html)

"""
Listing Module - Extract category and resource links from listing pages.
=======================================================================

Two extractors over the source site's listing markup:

- extract_category_links: navigation menu → category listing URLs
- extract_resource_links: category listing page → resource detail URLs

Plus crawl_category_listing, which follows a category's "/page/N/"
pagination. Scraped markup is unreliable, so malformed pages produce empty
or partial lists and a log line, never an exception.
"""

from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from ziyuanbao.ingestion.fetcher import Fetcher
from ziyuanbao.shared.errors import FetchError
from ziyuanbao.shared.logging import get_logger
from ziyuanbao.shared.schemas import CategoryLink, ResourceLink
from ziyuanbao.shared.utils import extract_bracket_tags, polite_sleep, split_bilingual_title

logger = get_logger(__name__)

DEFAULT_LISTING_SELECTOR = "section.container a"
NAV_SKIP_WORDS = ("登录", "注册", "首页", "会员", "关于", "VIP")


def _create_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def _resolve(href: Optional[str], base_url: str) -> Optional[str]:
    """Resolve an href against the page URL, keeping only http(s) targets."""
    if not href:
        return None
    href = href.strip()
    if not href or href.startswith(("#", "javascript:", "mailto:")):
        return None
    url = urljoin(base_url, href)
    if urlparse(url).scheme not in ("http", "https"):
        return None
    return url


def _is_category_url(url: str) -> bool:
    return urlparse(url).path.startswith("/category")


# ─────────────────────────────────────────────────────────────────────────────
# Resource Links
# ─────────────────────────────────────────────────────────────────────────────


def extract_resource_links(
    html: str,
    base_url: str,
    selector: str = DEFAULT_LISTING_SELECTOR,
) -> list[ResourceLink]:
    """
    Enumerate resource detail links on a category listing page.

    Order follows the page layout. The anchor's title attribute wins over
    its text; bracketed tags are lifted out and "中文 | English" titles split.

    Args:
        html: Listing page HTML
        base_url: URL the page was fetched from (for relative hrefs)
        selector: CSS selector for candidate anchors

    Returns:
        Ordered list of ResourceLink (possibly empty)
    """
    links: list[ResourceLink] = []
    if not html or not html.strip():
        return links

    try:
        soup = _create_soup(html)
        for anchor in soup.select(selector):
            url = _resolve(anchor.get("href"), base_url)
            if not url or _is_category_url(url):
                continue

            raw_title = (anchor.get("title") or "").strip() or anchor.get_text(strip=True)
            clean_title, tags = extract_bracket_tags(raw_title)
            chinese_title, english_title = split_bilingual_title(clean_title, fallback=url)

            links.append(
                ResourceLink(
                    chinese_title=chinese_title,
                    english_title=english_title,
                    url=url,
                    tags=tags,
                )
            )
    except Exception as e:
        logger.warning(f"Listing page {base_url} only partially parsed: {e}")

    return links


# ─────────────────────────────────────────────────────────────────────────────
# Category Links (site navigation)
# ─────────────────────────────────────────────────────────────────────────────


def extract_category_links(html: str, base_url: str) -> list[CategoryLink]:
    """
    Discover category listing URLs from the site navigation menu.

    Parent menu entries become categories themselves and each sub-menu
    entry becomes "主分类-子分类". When the menu markup is missing, any
    same-site anchor that isn't a login/home/membership link is used.
    """
    links: list[CategoryLink] = []
    if not html or not html.strip():
        return links

    try:
        soup = _create_soup(html)

        for item in soup.select("li.menu-item-has-children"):
            parent_anchor = item.find("a", recursive=False)
            if parent_anchor is None:
                continue
            parent_text = parent_anchor.get_text(strip=True)
            if not parent_text:
                continue

            parent_url = _resolve(parent_anchor.get("href"), base_url)
            if parent_url:
                links.append(CategoryLink(title=parent_text, url=parent_url))

            for sub_anchor in item.select("ul.sub-menu > li > a"):
                sub_text = sub_anchor.get_text(strip=True)
                sub_url = _resolve(sub_anchor.get("href"), base_url)
                if sub_text and sub_url:
                    links.append(
                        CategoryLink(
                            title=f"{parent_text}-{sub_text}",
                            url=sub_url,
                            parent=parent_text,
                        )
                    )

        if not links:
            logger.info("No navigation sub-menus found, falling back to anchor scan")
            site_host = urlparse(base_url).netloc
            for anchor in soup.find_all("a"):
                text = anchor.get_text(strip=True)
                url = _resolve(anchor.get("href"), base_url)
                if not url or len(text) < 2 or urlparse(url).netloc != site_host:
                    continue
                if any(word in text for word in NAV_SKIP_WORDS):
                    continue
                links.append(CategoryLink(title=text, url=url))
    except Exception as e:
        logger.warning(f"Navigation of {base_url} only partially parsed: {e}")

    logger.info(f"Discovered {len(links)} category links on {base_url}")
    return links


# ─────────────────────────────────────────────────────────────────────────────
# Paginated Crawl
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class ListingCrawl:
    """Result of crawling every page of one category listing."""

    links: list[ResourceLink] = field(default_factory=list)
    pages_crawled: int = 0
    stopped_reason: str = ""


def listing_page_url(category_url: str, page: int) -> str:
    """
    URL of page N of a category listing.

    Example:
        >>> listing_page_url("https://x.com/category/design", 3)
        'https://x.com/category/design/page/3/'
    """
    if page <= 1:
        return category_url
    separator = "" if category_url.endswith("/") else "/"
    return f"{category_url}{separator}page/{page}/"


def crawl_category_listing(
    fetcher: Fetcher,
    category_url: str,
    max_pages: int = 50,
    page_delay: float = 0.0,
    selector: str = DEFAULT_LISTING_SELECTOR,
) -> ListingCrawl:
    """
    Fetch every page of a category listing and collect its resource links.

    Stops on a 404, an empty page after the first, the page cap, or a fetch
    error on a later page. A fetch error on the first page propagates so
    the operator sees it.
    """
    crawl = ListingCrawl()

    for page in range(1, max_pages + 1):
        page_url = listing_page_url(category_url, page)
        try:
            fetched = fetcher.fetch(page_url, allow_not_found=True)
        except FetchError as e:
            if page == 1:
                raise
            logger.warning(f"Stopping pagination at page {page}: {e}")
            crawl.stopped_reason = "fetch_error"
            break

        if fetched.is_not_found:
            if page == 1:
                raise FetchError(page_url, "HTTP 404", status_code=404)
            crawl.stopped_reason = "not_found"
            break

        page_links = extract_resource_links(fetched.html, page_url, selector=selector)
        logger.debug(f"Page {page}: {len(page_links)} resource links")

        if not page_links and page > 1:
            crawl.stopped_reason = "empty_page"
            break

        crawl.links.extend(page_links)
        crawl.pages_crawled = page
        polite_sleep(page_delay, "listing pagination")
    else:
        crawl.stopped_reason = "max_pages"

    logger.info(
        f"Crawled {crawl.pages_crawled} page(s) of {category_url}: "
        f"{len(crawl.links)} links ({crawl.stopped_reason})"
    )
    return crawl

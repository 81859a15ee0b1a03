"""
Fetcher Module - Rate-limited page retrieval from the Feifei site.
==================================================================

Every listing page and detail page goes through Fetcher.fetch(). A failed
request raises FetchError straight away; the pipeline never retries a page
on its own and the operator re-triggers the action instead. Listing
pagination is the one caller that treats a 404 as data (the page after the
last one), so it asks for that explicitly with allow_not_found.
"""

import time
from dataclasses import dataclass
from typing import Optional

import requests

from ziyuanbao.shared.config import Settings, get_settings
from ziyuanbao.shared.errors import FetchError
from ziyuanbao.shared.logging import get_logger

logger = get_logger(__name__)

BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.5",
}

# requests falls back to this when the server sends no charset
_DEFAULT_HTTP_CHARSET = "iso-8859-1"


@dataclass
class FetchedPage:
    url: str
    html: str
    status_code: int

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


@dataclass
class FetchCounters:
    """Request outcomes since the fetcher was created."""

    successful: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.successful + self.failed


class Fetcher:
    """
    Shared HTTP session for one pipeline context.

    Example:
        >>> with Fetcher() as fetcher:
        ...     page = fetcher.fetch("https://www.feifeiziyuan.com/category/x")
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        rate_limit: Optional[float] = None,
        timeout: Optional[int] = None,
        user_agent: Optional[str] = None,
    ):
        scraping = (settings or get_settings()).scraping

        self.rate_limit = scraping.rate_limit if rate_limit is None else rate_limit
        self.timeout = scraping.timeout if timeout is None else timeout
        self.user_agent = user_agent or scraping.user_agent
        self.stats = FetchCounters()

        self._session = session
        self._next_request_at = 0.0

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({"User-Agent": self.user_agent, **BROWSER_HEADERS})
        return self._session

    def _throttle(self) -> None:
        delay = self._next_request_at - time.monotonic()
        if delay > 0:
            logger.debug(f"Throttling for {delay:.2f}s")
            time.sleep(delay)
        self._next_request_at = time.monotonic() + self.rate_limit

    def _fail(self, url: str, reason: str, status_code: Optional[int] = None) -> FetchError:
        self.stats.failed += 1
        logger.warning(f"Fetch failed for {url}: {reason}")
        return FetchError(url, reason, status_code=status_code)

    def fetch(self, url: str, allow_not_found: bool = False) -> FetchedPage:
        """
        GET a page and decode it.

        Args:
            url: Absolute page URL
            allow_not_found: Return an empty 404 page instead of raising

        Raises:
            FetchError: Network failure or an error status
        """
        self._throttle()
        logger.info(f"Fetching: {url}")

        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise self._fail(url, str(e)) from e

        status = response.status_code
        if status == 404 and allow_not_found:
            return FetchedPage(url=url, html="", status_code=status)
        if status >= 400:
            raise self._fail(url, f"HTTP {status}", status_code=status)

        # Chinese pages often omit the charset header
        if (response.encoding or _DEFAULT_HTTP_CHARSET).lower() == _DEFAULT_HTTP_CHARSET:
            response.encoding = response.apparent_encoding

        self.stats.successful += 1
        return FetchedPage(url=url, html=response.text, status_code=status)

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> "Fetcher":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        self.close()

"""
Service Module - Scrape and parse operations over the staging store.
===================================================================

Wires the fetcher and extractors to the staging store:

- discover_categories: site navigation → staging categories
- parse_category: category listing pages → staged resource rows
- fetch_and_parse_resource: one detail page → that row's fields
- extract_outline: stored course content → canonical outline (ai/heuristic)
- save_cloud_disk_text: pasted text → share link fields
- parse_category_resources: crawl + parse every detail page (batch)

Fetch and outline failures propagate to the caller; the staging row is
only written once a step has fully succeeded.
"""

from typing import Callable, Optional

from ziyuanbao.ingestion.cloud_disk import extract_cloud_disk_link
from ziyuanbao.ingestion.detail import DetailPageExtractor
from ziyuanbao.ingestion.fetcher import Fetcher
from ziyuanbao.ingestion.listing import crawl_category_listing, extract_category_links
from ziyuanbao.ingestion.markdown import fix_markdown_content
from ziyuanbao.outline.ai import OutlineGenerator
from ziyuanbao.outline.heuristic import HeuristicOutlineParser
from ziyuanbao.pipeline.batch import run_batch
from ziyuanbao.shared.config import Settings, get_settings
from ziyuanbao.shared.errors import OutlineError
from ziyuanbao.shared.logging import get_logger
from ziyuanbao.shared.schemas import (
    BatchResult,
    CategoryParseResult,
    CourseOutline,
    DiscoveryResult,
    OutlineMode,
)
from ziyuanbao.shared.utils import polite_sleep, truncate
from ziyuanbao.storage.models import FeifeiResource
from ziyuanbao.storage.staging import StagingStore

logger = get_logger(__name__)


class PipelineService:
    """
    Scrape-and-parse operations.

    Example:
        >>> service = PipelineService(staging, settings=settings)
        >>> service.parse_category(category_id)
        >>> service.fetch_and_parse_resource(resource_id)
    """

    def __init__(
        self,
        staging: StagingStore,
        settings: Optional[Settings] = None,
        fetcher: Optional[Fetcher] = None,
        detail_extractor: Optional[DetailPageExtractor] = None,
        heuristic_parser: Optional[HeuristicOutlineParser] = None,
        generator: Optional[OutlineGenerator] = None,
    ):
        """
        Initialize the service.

        Args:
            staging: Staging repository
            settings: Settings (cached settings if None)
            fetcher: HTTP fetcher (built from settings if None)
            detail_extractor: Detail-page extractor
            heuristic_parser: Rule-based outline parser
            generator: AI outline generator (built lazily if None)
        """
        self.settings = settings or get_settings()
        self.staging = staging
        self.fetcher = fetcher or Fetcher(settings=self.settings)
        self.detail_extractor = detail_extractor or DetailPageExtractor()
        self.heuristic_parser = heuristic_parser or HeuristicOutlineParser()
        self._generator = generator

    @property
    def generator(self) -> OutlineGenerator:
        if self._generator is None:
            self._generator = OutlineGenerator(settings=self.settings)
        return self._generator

    # ─────────────────────────────────────────────────────────────────────
    # Categories
    # ─────────────────────────────────────────────────────────────────────

    def discover_categories(self, site_url: Optional[str] = None) -> DiscoveryResult:
        """
        Scan the site navigation and store every category listing found.

        Existing categories keep their invalid flag.
        """
        site_url = site_url or self.settings.scraping.base_url
        page = self.fetcher.fetch(site_url)
        links = extract_category_links(page.html, site_url)
        created, updated = self.staging.upsert_categories(links)
        return DiscoveryResult(found=len(links), created=created, updated=updated)

    def parse_category(self, category_id: int) -> CategoryParseResult:
        """
        Crawl a category listing and upsert its resource rows.

        Running this twice over unchanged pages leaves the row count as is.
        """
        category = self.staging.get_category(category_id)
        logger.info(f"Parsing category {category_id}: {category.title}")

        crawl = crawl_category_listing(
            self.fetcher,
            category.url,
            max_pages=self.settings.scraping.max_pages,
            selector=self.settings.scraping.listing_selector,
        )
        created, updated = self.staging.upsert_resource_links(category_id, crawl.links)

        return CategoryParseResult(
            category_id=category_id,
            links_found=len(crawl.links),
            created=created,
            updated=updated,
            pages_crawled=crawl.pages_crawled,
            stopped_reason=crawl.stopped_reason,
        )

    # ─────────────────────────────────────────────────────────────────────
    # Resources
    # ─────────────────────────────────────────────────────────────────────

    def fetch_and_parse_resource(self, resource_id: int) -> FeifeiResource:
        """
        Re-fetch one detail page and overwrite the row's extracted fields.

        Raises:
            NotFoundError: Unknown resource
            FetchError: The page could not be retrieved (row untouched)
        """
        resource = self.staging.get_resource(resource_id)
        page = self.fetcher.fetch(resource.url)

        fields = self.detail_extractor.extract(page.html)
        markdown = fix_markdown_content(fields.details_html) if fields.details_html else None

        updated = self.staging.apply_detail_fields(resource_id, fields, markdown_content=markdown)
        logger.info(f"Parsed resource {resource_id}: {truncate(updated.chinese_title)}")
        return updated

    def compute_outline(
        self, resource_id: int, mode: OutlineMode = OutlineMode.HEURISTIC
    ) -> CourseOutline:
        """Compute an outline from stored course content without saving it."""
        resource = self.staging.get_resource(resource_id)
        content = resource.course_html or resource.details_html or resource.markdown_content
        if not content:
            raise OutlineError(f"Resource {resource_id} has no course content to parse")

        if mode == OutlineMode.AI:
            return self.generator.generate(content)
        return self.heuristic_parser.parse(content)

    def extract_outline(
        self, resource_id: int, mode: OutlineMode = OutlineMode.HEURISTIC
    ) -> CourseOutline:
        """
        Compute and store a resource's outline.

        Raises:
            OutlineError: Nothing usable came back; parsed_content is unchanged
            ConfigurationError: AI mode without an API key
        """
        outline = self.compute_outline(resource_id, mode)
        self.staging.save_outline(resource_id, outline)
        logger.info(f"Outline stored for resource {resource_id} ({mode.value})")
        return outline

    def save_cloud_disk_text(self, resource_id: int, text: str) -> FeifeiResource:
        """
        Extract a share link from pasted text and store it.

        Raises:
            CloudDiskLinkError: No share URL in the text (nothing stored)
        """
        self.staging.get_resource(resource_id)
        link = extract_cloud_disk_link(text)
        return self.staging.save_cloud_disk(resource_id, link)

    # ─────────────────────────────────────────────────────────────────────
    # Batch
    # ─────────────────────────────────────────────────────────────────────

    def parse_category_resources(
        self,
        category_id: Optional[int] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
        on_item: Optional[Callable[[bool], None]] = None,
        on_total: Optional[Callable[[int], None]] = None,
    ) -> BatchResult:
        """
        Crawl categories and parse every resource detail page in them.

        Args:
            category_id: One category, or None for every valid category
            should_cancel: Polled between items
            on_item: Progress callback per resource
            on_total: Called with the running item total as categories are crawled

        Returns:
            Combined BatchResult over all categories
        """
        if category_id is not None:
            category_ids = [category_id]
        else:
            categories, _ = self.staging.list_categories(invalid=False)
            category_ids = [category.id for category in categories]

        combined = BatchResult()
        for index, current_id in enumerate(category_ids):
            if should_cancel is not None and should_cancel():
                combined.cancelled = True
                break

            try:
                self.parse_category(current_id)
            except Exception as e:
                if category_id is not None:
                    raise
                # A broken listing only costs its own category in a full sweep
                logger.error(f"Skipping category {current_id}: {e}")
                continue

            resource_ids = self.staging.list_resource_ids(current_id)
            combined.total += len(resource_ids)
            if on_total is not None:
                on_total(combined.total)

            result = run_batch(
                resource_ids,
                lambda resource_id: bool(self.fetch_and_parse_resource(resource_id)),
                should_cancel=should_cancel,
                on_item=on_item,
                delay=self.settings.pipeline.item_delay,
                label=f"parse category {current_id}",
            )
            combined.succeeded += result.succeeded
            combined.skipped += result.skipped
            combined.failed += result.failed
            combined.failures.update(result.failures)
            if result.cancelled:
                combined.cancelled = True
                break

            if index < len(category_ids) - 1:
                polite_sleep(self.settings.pipeline.category_delay, "next category")

        return combined

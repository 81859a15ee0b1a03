"""
Ingestion Module - Fetch and parse pages from the source site.
==============================================================

This module handles the scraping half of the pipeline:

- fetcher: HTTP page retrieval with rate limiting
- listing: Site navigation and category listing link extraction
- detail: Best-effort detail-page field extraction
- markdown: Rule-based HTML to Markdown normalization
- cloud_disk: Share link and extraction code parsing
"""

from ziyuanbao.ingestion.cloud_disk import detect_provider, extract_cloud_disk_link
from ziyuanbao.ingestion.detail import DetailPageExtractor, extract_detail_fields
from ziyuanbao.ingestion.fetcher import FetchedPage, Fetcher
from ziyuanbao.ingestion.listing import (
    crawl_category_listing,
    extract_category_links,
    extract_resource_links,
)
from ziyuanbao.ingestion.markdown import fix_markdown_content, html_to_markdown, is_html

__all__ = [
    # Fetcher
    "Fetcher",
    "FetchedPage",
    # Listing
    "extract_category_links",
    "extract_resource_links",
    "crawl_category_listing",
    # Detail
    "DetailPageExtractor",
    "extract_detail_fields",
    # Markdown
    "html_to_markdown",
    "is_html",
    "fix_markdown_content",
    # Cloud disk
    "extract_cloud_disk_link",
    "detect_provider",
]

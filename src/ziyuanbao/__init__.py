"""
Ziyuanbao (资源宝) - Feifei scrape-parse-import pipeline
=======================================================

Fetches course listing and detail pages from the Feifei source site,
parses them into staging records (titles, price, metadata, media links,
course outlines, cloud-disk links), optionally normalizes outlines with
an LLM, and promotes staged records into the 资源宝 resource catalog.

Operated through a FastAPI admin API and a Typer CLI.
"""

__version__ = "0.1.0"
__author__ = "Ziyuanbao Team"
__license__ = "MIT"

# Public API - lazy imports to avoid circular dependencies and speed up startup
__all__ = [
    # Version info
    "__version__",
    "__author__",
    "__license__",
    # Main modules (imported on demand)
    "shared",
    "ingestion",
    "outline",
    "storage",
    "pipeline",
    "api",
    "cli",
]

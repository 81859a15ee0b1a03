"""
Shared Module - Common utilities, configuration, schemas, and logging.
======================================================================

This module provides foundational components used across all other modules:

- config: Configuration loading and management
- logging: Structured logging setup
- errors: Exception hierarchy
- schemas: Pydantic data models
- utils: Utility functions (title helpers, delays, etc.)
"""

from ziyuanbao.shared.config import Settings, get_settings
from ziyuanbao.shared.errors import (
    AlreadyLinkedError,
    CloudDiskLinkError,
    ConfigurationError,
    FetchError,
    JobConflictError,
    NotFoundError,
    OutlineError,
    ZiyuanbaoError,
)
from ziyuanbao.shared.logging import get_logger, setup_logging
from ziyuanbao.shared.schemas import (
    CatalogStatus,
    Chapter,
    CloudDiskLink,
    CourseOutline,
    DetailFields,
    JobKind,
    JobStatus,
    Lecture,
    OutlineMode,
    ResourceLink,
)

__all__ = [
    # Config
    "get_settings",
    "Settings",
    # Logging
    "get_logger",
    "setup_logging",
    # Errors
    "ZiyuanbaoError",
    "ConfigurationError",
    "NotFoundError",
    "FetchError",
    "OutlineError",
    "CloudDiskLinkError",
    "AlreadyLinkedError",
    "JobConflictError",
    # Schemas
    "CatalogStatus",
    "Chapter",
    "CloudDiskLink",
    "CourseOutline",
    "DetailFields",
    "JobKind",
    "JobStatus",
    "Lecture",
    "OutlineMode",
    "ResourceLink",
]

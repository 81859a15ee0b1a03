"""
Schemas Module - Pydantic data models for the application.
==========================================================

Defines all data contracts used across the application:
- Extractor outputs (listing links, detail-page fields, cloud-disk links)
- The canonical course outline and its bilingual deserialization
- Import and batch results
- Read models returned by the HTTP API
"""

import json
import re
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from ziyuanbao.shared.errors import OutlineError


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────


class CatalogStatus(str, Enum):
    """Catalog resource visibility."""

    UNLISTED = "unlisted"
    LISTED = "listed"


class JobKind(str, Enum):
    """Long-running batch operations."""

    PARSE_CATEGORY_RESOURCES = "parse_category_resources"
    BATCH_IMPORT = "batch_import"


class JobStatus(str, Enum):
    """Batch job lifecycle."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.PENDING, JobStatus.RUNNING)


class OutlineMode(str, Enum):
    """How an outline is extracted from stored course HTML."""

    AI = "ai"
    HEURISTIC = "heuristic"


class CloudDiskProvider(str, Enum):
    """Cloud-disk hosts recognised from share URLs."""

    BAIDU = "baidu"
    ALIYUN = "aliyun"
    QUARK = "quark"
    XUNLEI = "xunlei"
    PAN123 = "123pan"
    OTHER = "other"


# ─────────────────────────────────────────────────────────────────────────────
# Extractor Outputs
# ─────────────────────────────────────────────────────────────────────────────


class CategoryLink(BaseModel):
    """A category listing page discovered in the site navigation."""

    title: str
    url: str
    parent: Optional[str] = None


class ResourceLink(BaseModel):
    """A resource detail page discovered on a category listing page."""

    chinese_title: str = Field(..., description="Native title (falls back to the URL)")
    english_title: Optional[str] = Field(default=None, description="Translated title")
    url: str
    tags: list[str] = Field(default_factory=list)

    @property
    def title(self) -> str:
        return self.chinese_title


class DetailFields(BaseModel):
    """
    Flat best-effort record extracted from one detail page.

    Any field the page does not provide stays None; partial records are
    normal and must never block the rest of the pipeline.
    """

    image_url: Optional[str] = None
    resource_category: Optional[str] = None
    popularity: Optional[str] = None
    publish_date: Optional[str] = None
    last_update: Optional[str] = None
    content_info: Optional[str] = None
    video_size: Optional[str] = None
    file_size: Optional[str] = None
    duration: Optional[str] = None
    language: Optional[str] = None
    subtitle: Optional[str] = None
    details: Optional[str] = None
    details_html: Optional[str] = None
    course_html: Optional[str] = None
    page_html: Optional[str] = None
    coin_price: Optional[str] = None
    preview_url: Optional[str] = None
    tags: list[str] = Field(default_factory=list)

    def storable_fields(self) -> dict[str, Any]:
        """Fields to write onto a staged resource, skipping misses."""
        return {
            key: value
            for key, value in self.model_dump(exclude={"tags"}).items()
            if value not in (None, "")
        }


class CloudDiskLink(BaseModel):
    """Share URL and optional extraction code pasted by an operator."""

    url: str
    code: Optional[str] = None
    provider: CloudDiskProvider = CloudDiskProvider.OTHER

    model_config = ConfigDict(use_enum_values=True)


# ─────────────────────────────────────────────────────────────────────────────
# Course Outline
# ─────────────────────────────────────────────────────────────────────────────

_CHAPTERS_KEYS = ("chapters", "章节")
_LECTURES_KEYS = ("lectures", "讲座")
_TITLE_KEYS = ("title", "标题")
_DURATION_KEYS = ("duration", "时长")
_PREVIEW_KEYS = ("preview", "预览")

_FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)


def _pick(data: dict[str, Any], keys: tuple[str, ...], default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1", "是", "y"}
    return bool(value)


def parse_duration_minutes(text: Optional[str]) -> int:
    """
    Convert a duration label to whole minutes.

    Handles "12 分钟", "1 小时 30 分钟", "05:23", "1:02:03", "45min", "2h".
    Partial minutes in clock formats round up. Unknown formats count as 0.

    Example:
        >>> parse_duration_minutes("1 小时 5 分钟")
        65
        >>> parse_duration_minutes("03:10")
        4
    """
    if not text:
        return 0
    text = text.strip()

    if "小时" in text or "分钟" in text:
        hours = re.search(r"(\d+)\s*小时", text)
        minutes = re.search(r"(\d+)\s*分钟", text)
        return (int(hours.group(1)) * 60 if hours else 0) + (
            int(minutes.group(1)) if minutes else 0
        )

    if ":" in text:
        parts = [int(p) if p.isdigit() else 0 for p in text.split(":")]
        if len(parts) == 3:
            hours, minutes, seconds = parts
            return hours * 60 + minutes + (1 if seconds > 0 else 0)
        if len(parts) == 2:
            minutes, seconds = parts
            return minutes + (1 if seconds > 0 else 0)
        return 0

    match = re.fullmatch(
        r"(?:(\d+)\s*h(?:ours?|rs?)?)?\s*(?:(\d+)\s*m(?:in(?:ute)?s?)?)?",
        text,
        re.IGNORECASE,
    )
    if match and (match.group(1) or match.group(2)):
        return int(match.group(1) or 0) * 60 + int(match.group(2) or 0)

    return 0


def format_minutes(minutes: int) -> str:
    """Format minutes as "X 小时 Y 分钟" the way the catalog shows totals."""
    hours, remaining = divmod(minutes, 60)
    if hours > 0 and remaining > 0:
        return f"{hours} 小时 {remaining} 分钟"
    if hours > 0:
        return f"{hours} 小时"
    return f"{remaining} 分钟"


class Lecture(BaseModel):
    """A single lecture inside a chapter."""

    title: str
    duration: str = ""
    preview: bool = False

    @classmethod
    def from_data(cls, data: Any) -> "Lecture":
        if isinstance(data, str):
            return cls(title=data.strip())
        if not isinstance(data, dict):
            raise OutlineError(f"Lecture entry must be an object, got {type(data).__name__}")
        return cls(
            title=_as_text(_pick(data, _TITLE_KEYS)),
            duration=_as_text(_pick(data, _DURATION_KEYS)),
            preview=_as_bool(_pick(data, _PREVIEW_KEYS, False)),
        )


class Chapter(BaseModel):
    """A chapter with its lectures."""

    title: str
    duration: str = ""
    lectures: list[Lecture] = Field(default_factory=list)

    @classmethod
    def from_data(cls, data: Any) -> "Chapter":
        if not isinstance(data, dict):
            raise OutlineError(f"Chapter entry must be an object, got {type(data).__name__}")
        lectures = _pick(data, _LECTURES_KEYS, [])
        if not isinstance(lectures, list):
            lectures = []
        return cls(
            title=_as_text(_pick(data, _TITLE_KEYS)),
            duration=_as_text(_pick(data, _DURATION_KEYS)),
            lectures=[Lecture.from_data(item) for item in lectures],
        )

    @property
    def minutes(self) -> int:
        """Chapter duration wins; otherwise the sum of its lectures."""
        if self.duration:
            return parse_duration_minutes(self.duration)
        return sum(parse_duration_minutes(lecture.duration) for lecture in self.lectures)


class OutlineSummary(BaseModel):
    """Totals shown above a course outline."""

    total_chapters: int
    total_lectures: int
    total_minutes: int

    @computed_field
    @property
    def total_duration(self) -> str:
        return format_minutes(self.total_minutes)


class CourseOutline(BaseModel):
    """
    Canonical structured chapter/lecture breakdown of a course.

    Outlines arrive with either English (chapters/lectures/title/duration)
    or Chinese (章节/讲座/标题/时长) keys. They are normalized here, once,
    and always stored with the English keys.
    """

    chapters: list[Chapter] = Field(default_factory=list)

    @classmethod
    def from_data(cls, data: Any) -> "CourseOutline":
        """Build an outline from decoded JSON in either key language."""
        if isinstance(data, list):
            chapters = data
        elif isinstance(data, dict):
            chapters = _pick(data, _CHAPTERS_KEYS)
            if chapters is None:
                raise OutlineError("Outline JSON has no 'chapters' or '章节' field")
        else:
            raise OutlineError(f"Outline JSON must be an object, got {type(data).__name__}")

        if not isinstance(chapters, list):
            raise OutlineError("Outline chapters must be a list")

        return cls(chapters=[Chapter.from_data(item) for item in chapters])

    @classmethod
    def from_json(cls, text: Optional[str]) -> "CourseOutline":
        """
        Parse outline JSON text, tolerating markdown code fences.

        Raises:
            OutlineError: If the text is empty, not JSON, or not outline-shaped
        """
        if not text or not text.strip():
            raise OutlineError("Outline text is empty", raw_response=text)

        cleaned = _FENCE_PATTERN.sub("", text).strip()
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as e:
            raise OutlineError(f"Outline is not valid JSON: {e}", raw_response=text) from e

        try:
            return cls.from_data(data)
        except OutlineError as e:
            e.raw_response = text
            raise

    def to_json(self) -> str:
        """Serialize with canonical English keys."""
        return json.dumps(self.model_dump(), ensure_ascii=False, indent=2)

    @property
    def is_empty(self) -> bool:
        return not self.chapters

    def summary(self) -> OutlineSummary:
        return OutlineSummary(
            total_chapters=len(self.chapters),
            total_lectures=sum(len(chapter.lectures) for chapter in self.chapters),
            total_minutes=sum(chapter.minutes for chapter in self.chapters),
        )


# ─────────────────────────────────────────────────────────────────────────────
# Parse / Import Results
# ─────────────────────────────────────────────────────────────────────────────


class DiscoveryResult(BaseModel):
    """Outcome of scanning the site navigation for categories."""

    found: int = 0
    created: int = 0
    updated: int = 0


class CategoryParseResult(BaseModel):
    """Outcome of crawling one category listing."""

    category_id: int
    links_found: int = 0
    created: int = 0
    updated: int = 0
    pages_crawled: int = 0
    stopped_reason: str = ""


class ImportResult(BaseModel):
    """Outcome of promoting one staged resource."""

    staged_resource_id: int
    catalog_resource_id: Optional[int] = None
    created: bool = False
    skipped: bool = False
    message: str = ""


class BatchResult(BaseModel):
    """Aggregated outcome of a batch loop."""

    total: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    cancelled: bool = False
    failures: dict[int, str] = Field(default_factory=dict)


class CategoryImportResult(BaseModel):
    """Counts from copying staging categories into catalog categories."""

    created: int = 0
    updated: int = 0


# ─────────────────────────────────────────────────────────────────────────────
# API Read Models
# ─────────────────────────────────────────────────────────────────────────────


class TagOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    url: str
    sort_order: int = 0
    is_invalid: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StagedResourceOut(BaseModel):
    """Staged resource as the admin screens see it (raw HTML omitted)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    category_id: int
    url: str
    chinese_title: str
    english_title: Optional[str] = None
    image_url: Optional[str] = None
    resource_category: Optional[str] = None
    popularity: Optional[str] = None
    publish_date: Optional[str] = None
    last_update: Optional[str] = None
    content_info: Optional[str] = None
    video_size: Optional[str] = None
    file_size: Optional[str] = None
    duration: Optional[str] = None
    language: Optional[str] = None
    subtitle: Optional[str] = None
    details: Optional[str] = None
    coin_price: Optional[str] = None
    preview_url: Optional[str] = None
    parsed_content: Optional[str] = None
    markdown_content: Optional[str] = None
    cloud_disk_url: Optional[str] = None
    cloud_disk_code: Optional[str] = None
    cloud_disk_provider: Optional[str] = None
    linked_resource_id: Optional[int] = None
    has_course_html: bool = False
    tags: list[TagOut] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StagedResourceDetailOut(StagedResourceOut):
    """Single staged resource including the stored raw HTML."""

    details_html: Optional[str] = None
    course_html: Optional[str] = None
    page_html: Optional[str] = None


class CatalogResourceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    subtitle: Optional[str] = None
    category_id: Optional[int] = None
    price: int = 0
    status: str
    source_type: Optional[str] = None
    source_url: Optional[str] = None
    resource_url: Optional[str] = None
    resource_type: Optional[str] = None
    resource_code: Optional[str] = None
    contents: Optional[str] = None


class JobOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: str
    category_id: Optional[int] = None
    status: str
    total: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    cancel_requested: bool = False
    error: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

"""
Importer Module - Promote staged resources into the catalog.
===========================================================

Each staged resource becomes one unlisted catalog resource. The staged row
is then linked to it, once; a linked row is skipped on every later import
attempt. A catalog row that already carries the staged URL as its
source_url is updated rather than duplicated.

Also here:
- catalog category resolution from the staging category title
- copying staging categories into catalog categories
- repairing catalog descriptions that hold HTML fenced as Markdown
"""

from typing import Any, Callable, Optional

from ziyuanbao.ingestion.markdown import fix_markdown_content
from ziyuanbao.pipeline.batch import run_batch
from ziyuanbao.shared.config import Settings, get_settings
from ziyuanbao.shared.errors import AlreadyLinkedError
from ziyuanbao.shared.logging import get_logger
from ziyuanbao.shared.schemas import (
    BatchResult,
    CatalogStatus,
    CategoryImportResult,
    CourseOutline,
    ImportResult,
)
from ziyuanbao.shared.utils import extract_int, normalize_name, truncate
from ziyuanbao.storage.catalog import CatalogWriter
from ziyuanbao.storage.models import CatalogCategory, FeifeiResource
from ziyuanbao.storage.staging import StagingStore

logger = get_logger(__name__)

SOURCE_TYPE = "feifei"
FALLBACK_CATEGORY_WORDS = ("设计", "创意")
MARKDOWN_FENCE = "```markdown"


# ─────────────────────────────────────────────────────────────────────────────
# Category Resolution
# ─────────────────────────────────────────────────────────────────────────────


def resolve_catalog_category(
    staging_title: Optional[str], categories: list[CatalogCategory]
) -> Optional[int]:
    """
    Pick the catalog category for a staging category title.

    Tried in order: exact match (whitespace and case ignored); the
    "主-子" title joined with or without its hyphen; the main part, then
    the sub part; the longest containment either way; a 设计/创意
    category; the first category.

    Example:
        >>> resolve_catalog_category("设计-平面设计", [CatalogCategory(id=3, name="设计")])
        3
    """
    if not categories:
        return None
    if not staging_title:
        return categories[0].id

    names = [(category, normalize_name(category.name)) for category in categories]
    target = normalize_name(staging_title)

    for category, name in names:
        if name == target:
            return category.id

    parts = [part.strip() for part in staging_title.split("-") if part.strip()]
    if len(parts) > 1:
        joined = normalize_name("-".join(parts))
        joined_plain = normalize_name("".join(parts))
        for category, name in names:
            if name in (joined, joined_plain) or joined in name or name in joined:
                return category.id

    if parts:
        main = normalize_name(parts[0])
        for category, name in names:
            if name == main or main in name:
                return category.id
        if len(parts) > 1:
            sub = normalize_name(parts[1])
            for category, name in names:
                if sub in name:
                    return category.id

    best_id, best_score = None, 0
    for category, name in names:
        score = 0
        if target in name:
            score = len(target)
        elif name and name in target:
            score = len(name)
        if score > best_score:
            best_id, best_score = category.id, score
    if best_id is not None:
        return best_id

    for category in categories:
        if any(word in category.name for word in FALLBACK_CATEGORY_WORDS):
            return category.id
    return categories[0].id


# ─────────────────────────────────────────────────────────────────────────────
# Importer Class
# ─────────────────────────────────────────────────────────────────────────────


class Importer:
    """
    Staging → catalog promotion.

    Example:
        >>> importer = Importer(staging, catalog)
        >>> result = importer.import_resource(42)
        >>> print(result.catalog_resource_id, result.created)
    """

    def __init__(
        self,
        staging: StagingStore,
        catalog: CatalogWriter,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.staging = staging
        self.catalog = catalog

    def build_catalog_data(
        self,
        resource: FeifeiResource,
        category_id: Optional[int],
        contents: Optional[str],
    ) -> dict[str, Any]:
        """Map a staged row onto catalog resource columns."""
        description = resource.markdown_content
        if not description and resource.details_html:
            description = fix_markdown_content(resource.details_html)
        if not description:
            description = resource.details or ""

        return {
            "title": resource.chinese_title,
            "subtitle": resource.english_title or "",
            "cover_image": resource.image_url or "",
            "category_id": category_id,
            "price": extract_int(resource.coin_price) or 0,
            "language": resource.language or "",
            "subtitle_languages": resource.subtitle or "",
            "resolution": resource.video_size or "",
            "source_type": SOURCE_TYPE,
            "source_url": resource.url,
            "description": description,
            "contents": contents or "",
            "resource_url": resource.cloud_disk_url,
            "resource_type": resource.cloud_disk_provider,
            "resource_code": resource.cloud_disk_code,
        }

    def import_resource(
        self, resource_id: int, outline: Optional[CourseOutline] = None
    ) -> ImportResult:
        """
        Promote one staged resource.

        Args:
            resource_id: Staged resource id
            outline: Freshly computed outline to use (and store) instead of
                the stored parsed_content

        Returns:
            ImportResult; skipped=True when the row was already linked

        Raises:
            NotFoundError: Unknown resource
        """
        resource = self.staging.get_resource(resource_id)
        if resource.linked_resource_id is not None:
            logger.info(
                f"Resource {resource_id} already imported as {resource.linked_resource_id}, skipping"
            )
            return ImportResult(
                staged_resource_id=resource_id,
                catalog_resource_id=resource.linked_resource_id,
                skipped=True,
                message="already imported",
            )

        if outline is not None:
            resource = self.staging.save_outline(resource_id, outline)

        category = self.staging.get_category(resource.category_id)
        category_id = resolve_catalog_category(category.title, self.catalog.list_categories())
        data = self.build_catalog_data(resource, category_id, resource.parsed_content)

        existing = self.catalog.find_resource_by_source_url(resource.url)
        if existing is not None:
            catalog_row = self.catalog.update_resource(existing.id, data)
            created = False
        else:
            data["status"] = CatalogStatus.UNLISTED.value
            catalog_row = self.catalog.create_resource(data)
            created = True

        try:
            self.staging.link_resource(resource_id, catalog_row.id)
        except AlreadyLinkedError as e:
            logger.warning(f"Resource {resource_id} was linked concurrently: {e}")
            if created and catalog_row.id != e.linked_resource_id:
                # The concurrent import owns the link; our row would be orphaned
                self.catalog.delete_resource(catalog_row.id)
            return ImportResult(
                staged_resource_id=resource_id,
                catalog_resource_id=e.linked_resource_id,
                skipped=True,
                message="already imported",
            )

        logger.info(
            f"Imported resource {resource_id} ({truncate(resource.chinese_title)}) "
            f"as catalog resource {catalog_row.id}"
        )
        return ImportResult(
            staged_resource_id=resource_id,
            catalog_resource_id=catalog_row.id,
            created=created,
            message="created" if created else "updated existing catalog resource",
        )

    def batch_import(
        self,
        category_id: int,
        should_cancel: Optional[Callable[[], bool]] = None,
        on_item: Optional[Callable[[bool], None]] = None,
    ) -> BatchResult:
        """
        Import every staged resource of a category.

        Linked rows are skipped; a failing row is logged and counted and
        the remaining rows are still imported.
        """
        resource_ids = self.staging.list_resource_ids(category_id)
        return run_batch(
            resource_ids,
            lambda resource_id: not self.import_resource(resource_id).skipped,
            should_cancel=should_cancel,
            on_item=on_item,
            label=f"import category {category_id}",
        )

    def import_categories(self) -> CategoryImportResult:
        """Copy valid staging categories into catalog categories by name."""
        result = CategoryImportResult()
        categories, _ = self.staging.list_categories(invalid=False)
        for category in categories:
            if self.catalog.upsert_category(category.title, category.sort_order):
                result.created += 1
            else:
                result.updated += 1
        logger.info(f"Catalog categories: {result.created} created, {result.updated} updated")
        return result

    def fix_catalog_descriptions(self) -> int:
        """
        Convert catalog descriptions that hold HTML inside a ```markdown fence.

        Returns:
            Number of catalog resources rewritten
        """
        fixed = 0
        for row in self.catalog.list_resources_with_description_like(MARKDOWN_FENCE):
            repaired = fix_markdown_content(row.description)
            if repaired != row.description:
                self.catalog.update_resource(row.id, {"description": repaired})
                fixed += 1
        logger.info(f"Repaired {fixed} catalog description(s)")
        return fixed

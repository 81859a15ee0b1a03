"""
Staging Module - Persisted scrape state for categories and resources.
====================================================================

All writes are keyed by source URL so every operation can be re-run:

- re-discovering categories refreshes titles, never the invalid flag
- re-parsing a category upserts one row per resource URL
- re-parsing one detail page overwrites that row's fields
- tag associations are added idempotently

linked_resource_id moves from null to a catalog id exactly once; no
method here clears it.
"""

from typing import Any, Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, sessionmaker

from ziyuanbao.shared.errors import AlreadyLinkedError, NotFoundError
from ziyuanbao.shared.logging import get_logger
from ziyuanbao.shared.schemas import CategoryLink, CloudDiskLink, CourseOutline, DetailFields, ResourceLink
from ziyuanbao.storage.models import FeifeiCategory, FeifeiResource, FeifeiTag, utcnow

logger = get_logger(__name__)

CATEGORY_EDITABLE_FIELDS = {"title", "url", "sort_order", "is_invalid"}
RESOURCE_EDITABLE_FIELDS = {
    "chinese_title",
    "english_title",
    "image_url",
    "resource_category",
    "popularity",
    "publish_date",
    "last_update",
    "content_info",
    "video_size",
    "file_size",
    "duration",
    "language",
    "subtitle",
    "details",
    "details_html",
    "page_html",
    "course_html",
    "coin_price",
    "preview_url",
    "parsed_content",
    "markdown_content",
}


class StagingStore:
    """
    Repository for the feifei_* staging tables.

    Every method runs in its own short transaction. Returned ORM objects
    are detached but fully loaded (tags included).

    Example:
        >>> store = StagingStore(session_factory)
        >>> category, created = store.upsert_category("设计", "https://x.com/category/design")
        >>> store.upsert_resource_links(category.id, links)
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    # ─────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────

    def _get_category(self, session: Session, category_id: int) -> FeifeiCategory:
        category = session.get(FeifeiCategory, category_id)
        if category is None:
            raise NotFoundError("Category", category_id)
        return category

    def _get_resource(self, session: Session, resource_id: int) -> FeifeiResource:
        resource = session.get(FeifeiResource, resource_id)
        if resource is None:
            raise NotFoundError("Resource", resource_id)
        return resource

    def _ensure_tags(self, session: Session, names: Iterable[str]) -> list[FeifeiTag]:
        # Tag names are case-insensitive; the first spelling stored wins
        wanted: dict[str, str] = {}
        for name in names:
            name = name.strip()
            if name:
                wanted.setdefault(name.lower(), name)
        if not wanted:
            return []

        existing = {
            tag.name.lower(): tag
            for tag in session.scalars(
                select(FeifeiTag).where(func.lower(FeifeiTag.name).in_(list(wanted)))
            )
        }
        tags = []
        for key, name in wanted.items():
            tag = existing.get(key)
            if tag is None:
                tag = FeifeiTag(name=name)
                session.add(tag)
            tags.append(tag)
        return tags

    def _add_tags(self, session: Session, resource: FeifeiResource, names: Iterable[str]) -> None:
        current = {tag.name.lower() for tag in resource.tags}
        for tag in self._ensure_tags(session, names):
            if tag.name.lower() not in current:
                resource.tags.append(tag)
                current.add(tag.name.lower())

    # ─────────────────────────────────────────────────────────────────────
    # Categories
    # ─────────────────────────────────────────────────────────────────────

    def upsert_category(
        self, title: str, url: str, sort_order: Optional[int] = None
    ) -> tuple[FeifeiCategory, bool]:
        """
        Create a category or refresh the title of the one with this URL.

        Returns:
            (category, created)
        """
        with self._session_factory() as session:
            category = session.scalar(select(FeifeiCategory).where(FeifeiCategory.url == url))
            created = category is None
            if category is None:
                category = FeifeiCategory(title=title, url=url, sort_order=sort_order or 0)
                session.add(category)
            else:
                category.title = title
                if sort_order is not None:
                    category.sort_order = sort_order
            session.commit()
            return category, created

    def upsert_categories(self, links: list[CategoryLink]) -> tuple[int, int]:
        """
        Store discovered category links.

        Returns:
            (created, updated) counts
        """
        created = updated = 0
        with self._session_factory() as session:
            existing = {
                category.url: category
                for category in session.scalars(
                    select(FeifeiCategory).where(
                        FeifeiCategory.url.in_([link.url for link in links])
                    )
                )
            }
            for index, link in enumerate(links):
                category = existing.get(link.url)
                if category is None:
                    category = FeifeiCategory(title=link.title, url=link.url, sort_order=index)
                    session.add(category)
                    existing[link.url] = category
                    created += 1
                elif category.title != link.title:
                    category.title = link.title
                    updated += 1
            session.commit()

        logger.info(f"Categories stored: {created} new, {updated} renamed")
        return created, updated

    def get_category(self, category_id: int) -> FeifeiCategory:
        with self._session_factory() as session:
            return self._get_category(session, category_id)

    def list_categories(
        self,
        invalid: Optional[bool] = None,
        page: int = 1,
        page_size: int = 1000,
    ) -> tuple[list[FeifeiCategory], int]:
        """
        List categories ordered by sort_order then id.

        Args:
            invalid: Filter on the invalid flag (None = all)
            page: 1-based page number
            page_size: Rows per page

        Returns:
            (categories, total matching rows)
        """
        query = select(FeifeiCategory)
        if invalid is not None:
            query = query.where(FeifeiCategory.is_invalid == invalid)

        with self._session_factory() as session:
            total = session.scalar(select(func.count()).select_from(query.subquery())) or 0
            rows = session.scalars(
                query.order_by(FeifeiCategory.sort_order, FeifeiCategory.id)
                .offset((max(page, 1) - 1) * page_size)
                .limit(page_size)
            ).all()
            return list(rows), total

    def update_category(self, category_id: int, **fields: Any) -> FeifeiCategory:
        with self._session_factory() as session:
            category = self._get_category(session, category_id)
            for key, value in fields.items():
                if key in CATEGORY_EDITABLE_FIELDS and value is not None:
                    setattr(category, key, value)
            session.commit()
            return category

    def set_category_invalid(self, category_id: int, is_invalid: bool = True) -> FeifeiCategory:
        """Soft-exclude a category from bulk operations (or re-include it)."""
        category = self.update_category(category_id, is_invalid=is_invalid)
        logger.info(f"Category {category_id} is_invalid={is_invalid}")
        return category

    def delete_category(self, category_id: int) -> None:
        """Delete a category and its staged resources."""
        with self._session_factory() as session:
            category = self._get_category(session, category_id)
            session.delete(category)
            session.commit()
        logger.info(f"Category {category_id} deleted")

    # ─────────────────────────────────────────────────────────────────────
    # Resources
    # ─────────────────────────────────────────────────────────────────────

    def upsert_resource_links(
        self, category_id: int, links: list[ResourceLink]
    ) -> tuple[int, int]:
        """
        Store resource links found on a category listing.

        Rows are keyed by URL: an existing row gets its titles refreshed and
        any new tags attached; nothing is ever duplicated.

        Returns:
            (created, updated) counts
        """
        created = updated = 0
        with self._session_factory() as session:
            self._get_category(session, category_id)

            existing = {
                resource.url: resource
                for resource in session.scalars(
                    select(FeifeiResource).where(
                        FeifeiResource.url.in_([link.url for link in links])
                    )
                )
            }
            for link in links:
                resource = existing.get(link.url)
                if resource is None:
                    resource = FeifeiResource(
                        category_id=category_id,
                        url=link.url,
                        chinese_title=link.chinese_title,
                        english_title=link.english_title,
                    )
                    session.add(resource)
                    existing[link.url] = resource
                    created += 1
                else:
                    resource.chinese_title = link.chinese_title
                    resource.english_title = link.english_title
                    updated += 1
                self._add_tags(session, resource, link.tags)
            session.commit()

        logger.info(f"Category {category_id}: {created} new resources, {updated} refreshed")
        return created, updated

    def get_resource(self, resource_id: int) -> FeifeiResource:
        with self._session_factory() as session:
            return self._get_resource(session, resource_id)

    def list_resources(
        self, category_id: int, page: int = 1, page_size: int = 10
    ) -> tuple[list[FeifeiResource], int]:
        """Paged staged resources of one category, oldest first."""
        with self._session_factory() as session:
            self._get_category(session, category_id)
            condition = FeifeiResource.category_id == category_id
            total = session.scalar(
                select(func.count()).select_from(FeifeiResource).where(condition)
            ) or 0
            rows = session.scalars(
                select(FeifeiResource)
                .where(condition)
                .order_by(FeifeiResource.id)
                .offset((max(page, 1) - 1) * page_size)
                .limit(page_size)
            ).all()
            return list(rows), total

    def list_resource_ids(self, category_id: int, unlinked_only: bool = False) -> list[int]:
        with self._session_factory() as session:
            self._get_category(session, category_id)
            query = select(FeifeiResource.id).where(FeifeiResource.category_id == category_id)
            if unlinked_only:
                query = query.where(FeifeiResource.linked_resource_id.is_(None))
            return list(session.scalars(query.order_by(FeifeiResource.id)))

    def apply_detail_fields(
        self,
        resource_id: int,
        fields: DetailFields,
        markdown_content: Optional[str] = None,
    ) -> FeifeiResource:
        """
        Overwrite a row with freshly extracted detail-page fields.

        Fields the page did not provide keep their stored value; tags are
        added to the existing set.
        """
        with self._session_factory() as session:
            resource = self._get_resource(session, resource_id)
            for key, value in fields.storable_fields().items():
                setattr(resource, key, value)
            if markdown_content:
                resource.markdown_content = markdown_content
            self._add_tags(session, resource, fields.tags)
            resource.updated_at = utcnow()
            session.commit()
            return resource

    def update_resource(self, resource_id: int, **fields: Any) -> FeifeiResource:
        """
        Edit staged fields by hand.

        parsed_content is normalized to the canonical outline JSON first
        (raising OutlineError if it isn't an outline). linked_resource_id
        is not editable here.
        """
        updates = {
            key: value for key, value in fields.items() if key in RESOURCE_EDITABLE_FIELDS
        }
        if updates.get("parsed_content"):
            updates["parsed_content"] = CourseOutline.from_json(updates["parsed_content"]).to_json()

        with self._session_factory() as session:
            resource = self._get_resource(session, resource_id)
            for key, value in updates.items():
                setattr(resource, key, value)
            session.commit()
            return resource

    def save_outline(self, resource_id: int, outline: CourseOutline) -> FeifeiResource:
        """Store an outline as canonical JSON."""
        with self._session_factory() as session:
            resource = self._get_resource(session, resource_id)
            resource.parsed_content = outline.to_json()
            session.commit()
            return resource

    def save_cloud_disk(self, resource_id: int, link: CloudDiskLink) -> FeifeiResource:
        with self._session_factory() as session:
            resource = self._get_resource(session, resource_id)
            resource.cloud_disk_url = link.url
            resource.cloud_disk_code = link.code
            resource.cloud_disk_provider = link.provider
            session.commit()
            return resource

    def link_resource(self, resource_id: int, catalog_resource_id: int) -> None:
        """
        Record the catalog row a staged resource was imported as.

        Raises:
            AlreadyLinkedError: If the row is already linked
        """
        with self._session_factory() as session:
            result = session.execute(
                update(FeifeiResource)
                .where(
                    FeifeiResource.id == resource_id,
                    FeifeiResource.linked_resource_id.is_(None),
                )
                .values(linked_resource_id=catalog_resource_id, updated_at=utcnow())
            )
            if result.rowcount == 0:
                resource = self._get_resource(session, resource_id)
                session.rollback()
                raise AlreadyLinkedError(resource_id, resource.linked_resource_id)
            session.commit()
        logger.info(f"Resource {resource_id} linked to catalog resource {catalog_resource_id}")

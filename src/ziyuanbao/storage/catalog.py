"""
Catalog Module - Write interface onto the marketplace catalog.
=============================================================

The importer only needs to create or update catalog resource and category
records and read them back. CatalogWriter names that contract; SqlCatalog
implements it over the catalog_* tables in the same database.
"""

from typing import Any, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from ziyuanbao.shared.errors import NotFoundError
from ziyuanbao.shared.logging import get_logger
from ziyuanbao.storage.models import CatalogCategory, CatalogResource

logger = get_logger(__name__)


class CatalogWriter(Protocol):
    """What the importer requires from the catalog."""

    def find_resource_by_source_url(self, source_url: str) -> Optional[CatalogResource]: ...

    def create_resource(self, data: dict[str, Any]) -> CatalogResource: ...

    def update_resource(self, resource_id: int, data: dict[str, Any]) -> CatalogResource: ...

    def delete_resource(self, resource_id: int) -> None: ...

    def list_resources_with_description_like(self, fragment: str) -> list[CatalogResource]: ...

    def list_categories(self) -> list[CatalogCategory]: ...

    def upsert_category(self, name: str, sort_order: int = 0) -> bool: ...


class SqlCatalog:
    """
    Catalog tables accessed through SQLAlchemy.

    Example:
        >>> catalog = SqlCatalog(session_factory)
        >>> row = catalog.create_resource({"title": "Python", "status": "unlisted"})
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    # ── resources ────────────────────────────────────────────────────────────

    def get_resource(self, resource_id: int) -> CatalogResource:
        with self._session_factory() as session:
            resource = session.get(CatalogResource, resource_id)
            if resource is None:
                raise NotFoundError("Catalog resource", resource_id)
            return resource

    def find_resource_by_source_url(self, source_url: str) -> Optional[CatalogResource]:
        with self._session_factory() as session:
            return session.scalar(
                select(CatalogResource)
                .where(CatalogResource.source_url == source_url)
                .order_by(CatalogResource.id)
                .limit(1)
            )

    def create_resource(self, data: dict[str, Any]) -> CatalogResource:
        with self._session_factory() as session:
            resource = CatalogResource(**data)
            session.add(resource)
            session.commit()
            logger.info(f"Catalog resource {resource.id} created: {resource.title}")
            return resource

    def update_resource(self, resource_id: int, data: dict[str, Any]) -> CatalogResource:
        with self._session_factory() as session:
            resource = session.get(CatalogResource, resource_id)
            if resource is None:
                raise NotFoundError("Catalog resource", resource_id)
            for key, value in data.items():
                setattr(resource, key, value)
            session.commit()
            logger.info(f"Catalog resource {resource_id} updated")
            return resource

    def delete_resource(self, resource_id: int) -> None:
        with self._session_factory() as session:
            resource = session.get(CatalogResource, resource_id)
            if resource is None:
                raise NotFoundError("Catalog resource", resource_id)
            session.delete(resource)
            session.commit()
            logger.info(f"Catalog resource {resource_id} deleted")

    def list_resources(self) -> list[CatalogResource]:
        with self._session_factory() as session:
            return list(session.scalars(select(CatalogResource).order_by(CatalogResource.id)))

    def list_resources_with_description_like(self, fragment: str) -> list[CatalogResource]:
        with self._session_factory() as session:
            return list(
                session.scalars(
                    select(CatalogResource)
                    .where(CatalogResource.description.contains(fragment))
                    .order_by(CatalogResource.id)
                )
            )

    # ── categories ───────────────────────────────────────────────────────────

    def list_categories(self) -> list[CatalogCategory]:
        with self._session_factory() as session:
            return list(
                session.scalars(
                    select(CatalogCategory).order_by(CatalogCategory.sort_order, CatalogCategory.id)
                )
            )

    def upsert_category(self, name: str, sort_order: int = 0) -> bool:
        """
        Create a catalog category or update the sort order of one with this name.

        Returns:
            True if created
        """
        with self._session_factory() as session:
            category = session.scalar(select(CatalogCategory).where(CatalogCategory.name == name))
            created = category is None
            if category is None:
                session.add(CatalogCategory(name=name, sort_order=sort_order))
            else:
                category.sort_order = sort_order
            session.commit()
            return created

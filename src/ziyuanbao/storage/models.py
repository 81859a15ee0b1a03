"""
Models Module - SQLAlchemy ORM tables.
=====================================

Staging tables (feifei_*) hold scrape state keyed by source URL. The
catalog tables are the pipeline's write target. Jobs record batch runs.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.utcnow()


class Base(DeclarativeBase):
    pass


resource_tags = Table(
    "feifei_resource_tags",
    Base.metadata,
    Column(
        "resource_id",
        Integer,
        ForeignKey("feifei_resources.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("tag_id", Integer, ForeignKey("feifei_tags.id", ondelete="CASCADE"), primary_key=True),
    UniqueConstraint("resource_id", "tag_id", name="uq_feifei_resource_tag"),
)


# ─────────────────────────────────────────────────────────────────────────────
# Staging Tables
# ─────────────────────────────────────────────────────────────────────────────


class FeifeiCategory(Base):
    __tablename__ = "feifei_categories"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(255))
    url: Mapped[str] = mapped_column(String(1024), unique=True, index=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    is_invalid: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    resources: Mapped[list["FeifeiResource"]] = relationship(
        back_populates="category",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"FeifeiCategory(id={self.id}, title={self.title!r})"


class FeifeiTag(Base):
    __tablename__ = "feifei_tags"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, index=True)


class FeifeiResource(Base):
    __tablename__ = "feifei_resources"

    id: Mapped[int] = mapped_column(primary_key=True)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("feifei_categories.id", ondelete="CASCADE"), index=True
    )
    url: Mapped[str] = mapped_column(String(1024), unique=True, index=True)
    chinese_title: Mapped[str] = mapped_column(String(512))
    english_title: Mapped[Optional[str]] = mapped_column(String(512))

    # Detail-page fields
    image_url: Mapped[Optional[str]] = mapped_column(String(1024))
    resource_category: Mapped[Optional[str]] = mapped_column(String(255))
    popularity: Mapped[Optional[str]] = mapped_column(String(64))
    publish_date: Mapped[Optional[str]] = mapped_column(String(64))
    last_update: Mapped[Optional[str]] = mapped_column(String(64))
    content_info: Mapped[Optional[str]] = mapped_column(String(255))
    video_size: Mapped[Optional[str]] = mapped_column(String(64))
    file_size: Mapped[Optional[str]] = mapped_column(String(64))
    duration: Mapped[Optional[str]] = mapped_column(String(64))
    language: Mapped[Optional[str]] = mapped_column(String(64))
    subtitle: Mapped[Optional[str]] = mapped_column(String(64))
    details: Mapped[Optional[str]] = mapped_column(Text)
    details_html: Mapped[Optional[str]] = mapped_column(Text)
    page_html: Mapped[Optional[str]] = mapped_column(Text)
    course_html: Mapped[Optional[str]] = mapped_column(Text)
    coin_price: Mapped[Optional[str]] = mapped_column(String(32))
    preview_url: Mapped[Optional[str]] = mapped_column(String(1024))

    # Derived content
    parsed_content: Mapped[Optional[str]] = mapped_column(Text)
    markdown_content: Mapped[Optional[str]] = mapped_column(Text)

    # Operator-supplied download link
    cloud_disk_url: Mapped[Optional[str]] = mapped_column(String(1024))
    cloud_disk_code: Mapped[Optional[str]] = mapped_column(String(32))
    cloud_disk_provider: Mapped[Optional[str]] = mapped_column(String(32))

    # Set once on import, never cleared
    linked_resource_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("catalog_resources.id"), index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    category: Mapped[FeifeiCategory] = relationship(back_populates="resources")
    tags: Mapped[list[FeifeiTag]] = relationship(secondary=resource_tags, lazy="selectin")

    @property
    def has_course_html(self) -> bool:
        return bool(self.course_html)

    def __repr__(self) -> str:
        return f"FeifeiResource(id={self.id}, url={self.url!r})"


# ─────────────────────────────────────────────────────────────────────────────
# Catalog Tables
# ─────────────────────────────────────────────────────────────────────────────


class CatalogCategory(Base):
    __tablename__ = "catalog_categories"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)


class CatalogResource(Base):
    __tablename__ = "catalog_resources"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(512))
    subtitle: Mapped[Optional[str]] = mapped_column(String(512))
    cover_image: Mapped[Optional[str]] = mapped_column(String(1024))
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("catalog_categories.id"))
    price: Mapped[int] = mapped_column(Integer, default=0)
    language: Mapped[Optional[str]] = mapped_column(String(64))
    subtitle_languages: Mapped[Optional[str]] = mapped_column(String(64))
    resolution: Mapped[Optional[str]] = mapped_column(String(64))
    source_type: Mapped[Optional[str]] = mapped_column(String(32))
    source_url: Mapped[Optional[str]] = mapped_column(String(1024), index=True)
    status: Mapped[str] = mapped_column(String(16), default="unlisted")
    description: Mapped[Optional[str]] = mapped_column(Text)
    contents: Mapped[Optional[str]] = mapped_column(Text)
    resource_url: Mapped[Optional[str]] = mapped_column(String(1024))
    resource_type: Mapped[Optional[str]] = mapped_column(String(32))
    resource_code: Mapped[Optional[str]] = mapped_column(String(32))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


# ─────────────────────────────────────────────────────────────────────────────
# Jobs
# ─────────────────────────────────────────────────────────────────────────────


class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(primary_key=True)
    kind: Mapped[str] = mapped_column(String(64), index=True)
    category_id: Mapped[Optional[int]] = mapped_column(Integer, index=True)
    status: Mapped[str] = mapped_column(String(16), default="pending", index=True)
    total: Mapped[int] = mapped_column(Integer, default=0)
    processed: Mapped[int] = mapped_column(Integer, default=0)
    succeeded: Mapped[int] = mapped_column(Integer, default=0)
    failed: Mapped[int] = mapped_column(Integer, default=0)
    cancel_requested: Mapped[bool] = mapped_column(Boolean, default=False)
    error: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

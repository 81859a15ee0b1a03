"""
Context Module - Build every pipeline component from one Settings.
=================================================================

The API app and the CLI both start here, so neither reaches for module
level singletons: the engine, session factory, fetcher and AI client are
created once and passed down explicitly.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ziyuanbao.ingestion.fetcher import Fetcher
from ziyuanbao.outline.ai import OutlineGenerator
from ziyuanbao.pipeline.importer import Importer
from ziyuanbao.pipeline.jobs import JobRunner
from ziyuanbao.pipeline.service import PipelineService
from ziyuanbao.shared.config import Settings, get_settings
from ziyuanbao.storage.catalog import SqlCatalog
from ziyuanbao.storage.database import create_db_engine, create_session_factory, init_database
from ziyuanbao.storage.jobs import JobStore
from ziyuanbao.storage.staging import StagingStore


@dataclass
class PipelineContext:
    """All wired components."""

    settings: Settings
    engine: Engine
    session_factory: sessionmaker[Session]
    staging: StagingStore
    catalog: SqlCatalog
    jobs: JobStore
    service: PipelineService
    importer: Importer
    runner: JobRunner

    def close(self) -> None:
        self.service.fetcher.close()
        self.engine.dispose()


def build_context(
    settings: Optional[Settings] = None,
    database_url: Optional[str] = None,
    fetcher: Optional[Fetcher] = None,
    generator: Optional[OutlineGenerator] = None,
    create_tables: bool = True,
) -> PipelineContext:
    """
    Wire the pipeline.

    Args:
        settings: Settings (cached settings if None)
        database_url: Override the configured database URL
        fetcher: HTTP fetcher to use (tests pass a fake)
        generator: AI outline generator to use (tests pass one with a fake client)
        create_tables: Create missing tables on startup

    Returns:
        PipelineContext
    """
    settings = settings or get_settings()
    engine = create_db_engine(database_url, settings=settings)
    if create_tables:
        init_database(engine)
    session_factory = create_session_factory(engine)

    staging = StagingStore(session_factory)
    catalog = SqlCatalog(session_factory)
    jobs = JobStore(session_factory)
    service = PipelineService(staging, settings=settings, fetcher=fetcher, generator=generator)
    importer = Importer(staging, catalog, settings=settings)
    runner = JobRunner(jobs, service, importer)

    return PipelineContext(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        staging=staging,
        catalog=catalog,
        jobs=jobs,
        service=service,
        importer=importer,
        runner=runner,
    )

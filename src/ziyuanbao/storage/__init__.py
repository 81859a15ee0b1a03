"""
Storage Module - Relational persistence.
=======================================

- models: SQLAlchemy tables (staging, catalog, jobs)
- database: Engine, session factory and schema creation
- staging: Idempotent staging repository
- catalog: Catalog write interface and its SQL implementation
- jobs: Batch job records
"""

from ziyuanbao.storage.catalog import CatalogWriter, SqlCatalog
from ziyuanbao.storage.database import create_db_engine, create_session_factory, init_database
from ziyuanbao.storage.jobs import JobStore
from ziyuanbao.storage.staging import StagingStore

__all__ = [
    "CatalogWriter",
    "SqlCatalog",
    "JobStore",
    "StagingStore",
    "create_db_engine",
    "create_session_factory",
    "init_database",
]

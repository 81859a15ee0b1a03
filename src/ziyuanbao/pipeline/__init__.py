"""
Pipeline Module - Scrape, parse and import orchestration.
========================================================

- service: Scrape/parse operations writing to the staging store
- importer: Staging → catalog promotion
- batch: Failure-tolerant per-item loop
- jobs: Job-record driven batch runs with cancellation
- context: Wiring of all components from one Settings instance
"""

from ziyuanbao.pipeline.batch import run_batch
from ziyuanbao.pipeline.context import PipelineContext, build_context
from ziyuanbao.pipeline.importer import Importer, resolve_catalog_category
from ziyuanbao.pipeline.jobs import JobRunner
from ziyuanbao.pipeline.service import PipelineService

__all__ = [
    "Importer",
    "JobRunner",
    "PipelineContext",
    "PipelineService",
    "build_context",
    "resolve_catalog_category",
    "run_batch",
]

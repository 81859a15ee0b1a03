"""
Jobs Module - Run batch operations as observable, cancellable jobs.
==================================================================

submit_* creates the job record (refusing overlapping runs) and returns at
once; run() executes it, typically from a FastAPI background task or
directly from the CLI. Progress counters and the cancel flag live on the
record, so any process sharing the database can watch or stop a run.
"""

from typing import Optional

from ziyuanbao.pipeline.importer import Importer
from ziyuanbao.pipeline.service import PipelineService
from ziyuanbao.shared.logging import get_job_logger, get_logger
from ziyuanbao.shared.schemas import BatchResult, JobKind, JobStatus
from ziyuanbao.storage.jobs import JobStore
from ziyuanbao.storage.models import Job

logger = get_logger(__name__)


class JobRunner:
    """
    Batch job orchestration.

    Example:
        >>> job = runner.submit_batch_import(category_id=3)
        >>> runner.run(job.id)
        >>> print(jobs.get(job.id).status)
    """

    def __init__(self, jobs: JobStore, service: PipelineService, importer: Importer):
        self.jobs = jobs
        self.service = service
        self.importer = importer

    def submit_parse_resources(self, category_id: Optional[int] = None) -> Job:
        """Queue a crawl + detail parse of one category (or all valid ones)."""
        if category_id is not None:
            self.service.staging.get_category(category_id)
        return self.jobs.create(JobKind.PARSE_CATEGORY_RESOURCES, category_id)

    def submit_batch_import(self, category_id: int) -> Job:
        """Queue an import of every staged resource in a category."""
        self.service.staging.get_category(category_id)
        return self.jobs.create(JobKind.BATCH_IMPORT, category_id)

    def cancel(self, job_id: int) -> Job:
        return self.jobs.request_cancel(job_id)

    def run(self, job_id: int) -> Optional[BatchResult]:
        """
        Execute a pending job to completion, failure or cancellation.

        Never raises: the outcome is written to the job record.
        """
        job = self.jobs.get(job_id)
        if job.status != JobStatus.PENDING.value:
            logger.warning(f"Job {job_id} is {job.status}, not running it")
            return None

        job_log = get_job_logger(__name__, job_id)
        self.jobs.start(job_id, total=0)
        job_log.info(f"Started {job.kind} (category={job.category_id})")

        def should_cancel() -> bool:
            return self.jobs.is_cancel_requested(job_id)

        def on_item(success: bool) -> None:
            self.jobs.record_item(job_id, success)

        try:
            if job.kind == JobKind.BATCH_IMPORT.value:
                self.jobs.set_total(
                    job_id, len(self.service.staging.list_resource_ids(job.category_id))
                )
                result = self.importer.batch_import(
                    job.category_id, should_cancel=should_cancel, on_item=on_item
                )
            elif job.kind == JobKind.PARSE_CATEGORY_RESOURCES.value:
                result = self.service.parse_category_resources(
                    job.category_id,
                    should_cancel=should_cancel,
                    on_item=on_item,
                    on_total=lambda total: self.jobs.set_total(job_id, total),
                )
            else:
                raise ValueError(f"Unknown job kind: {job.kind}")
        except Exception as e:
            job_log.exception(f"Failed: {e}")
            self.jobs.finish(job_id, JobStatus.FAILED, error=str(e))
            return None

        status = JobStatus.CANCELLED if result.cancelled else JobStatus.COMPLETED
        self.jobs.finish(job_id, status)
        job_log.info(f"{status.value}: {result.succeeded} ok, {result.failed} failed")
        return result

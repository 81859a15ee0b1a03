"""
Jobs Module - Persisted records of batch runs.
=============================================

A job moves pending → running → completed | failed | cancelled. Counters
are bumped after each item and cancel_requested is polled between items.
Creating a job refuses to start a second active job of the same kind for
the same category.
"""

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from ziyuanbao.shared.errors import JobConflictError, NotFoundError
from ziyuanbao.shared.logging import get_logger
from ziyuanbao.shared.schemas import JobKind, JobStatus
from ziyuanbao.storage.models import Job, utcnow

logger = get_logger(__name__)

ACTIVE_STATUSES = [JobStatus.PENDING.value, JobStatus.RUNNING.value]


class JobStore:
    """Repository for the jobs table."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def _get(self, session: Session, job_id: int) -> Job:
        job = session.get(Job, job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        return job

    def create(self, kind: JobKind, category_id: Optional[int] = None) -> Job:
        """
        Create a pending job.

        Raises:
            JobConflictError: If a pending/running job of this kind already
                targets the same category
        """
        with self._session_factory() as session:
            active = session.scalar(
                select(Job).where(
                    Job.kind == kind.value,
                    Job.category_id.is_(None)
                    if category_id is None
                    else Job.category_id == category_id,
                    Job.status.in_(ACTIVE_STATUSES),
                )
            )
            if active is not None:
                raise JobConflictError(active.id)

            job = Job(kind=kind.value, category_id=category_id, status=JobStatus.PENDING.value)
            session.add(job)
            session.commit()
            logger.info(f"Job {job.id} created: {kind.value} (category={category_id})")
            return job

    def get(self, job_id: int) -> Job:
        with self._session_factory() as session:
            return self._get(session, job_id)

    def list_jobs(self, limit: int = 50, active_only: bool = False) -> list[Job]:
        query = select(Job)
        if active_only:
            query = query.where(Job.status.in_(ACTIVE_STATUSES))
        with self._session_factory() as session:
            return list(session.scalars(query.order_by(Job.id.desc()).limit(limit)))

    def start(self, job_id: int, total: int) -> None:
        with self._session_factory() as session:
            job = self._get(session, job_id)
            job.status = JobStatus.RUNNING.value
            job.total = total
            job.started_at = utcnow()
            session.commit()

    def set_total(self, job_id: int, total: int) -> None:
        with self._session_factory() as session:
            self._get(session, job_id).total = total
            session.commit()

    def record_item(self, job_id: int, success: bool) -> None:
        """Count one processed item."""
        counter = Job.succeeded if success else Job.failed
        with self._session_factory() as session:
            session.execute(
                update(Job)
                .where(Job.id == job_id)
                .values({Job.processed: Job.processed + 1, counter: counter + 1})
            )
            session.commit()

    def finish(self, job_id: int, status: JobStatus, error: Optional[str] = None) -> Job:
        with self._session_factory() as session:
            job = self._get(session, job_id)
            job.status = status.value
            job.error = error
            job.finished_at = utcnow()
            session.commit()
            logger.info(
                f"Job {job_id} {status.value}: {job.succeeded} ok, {job.failed} failed "
                f"of {job.total}"
            )
            return job

    def request_cancel(self, job_id: int) -> Job:
        """Flag a job for cancellation; it stops before its next item."""
        with self._session_factory() as session:
            job = self._get(session, job_id)
            if JobStatus(job.status).is_active:
                job.cancel_requested = True
                session.commit()
                logger.info(f"Cancellation requested for job {job_id}")
            return job

    def is_cancel_requested(self, job_id: int) -> bool:
        with self._session_factory() as session:
            return bool(
                session.scalar(select(Job.cancel_requested).where(Job.id == job_id))
            )

    def fail_interrupted(self) -> int:
        """
        Mark jobs left active by a previous process as failed.

        Background jobs run in-process, so none can still be alive at startup.
        """
        with self._session_factory() as session:
            result = session.execute(
                update(Job)
                .where(Job.status.in_(ACTIVE_STATUSES))
                .values(
                    status=JobStatus.FAILED.value,
                    error="Interrupted by process restart",
                    finished_at=utcnow(),
                )
            )
            session.commit()
            count = result.rowcount or 0
        if count:
            logger.warning(f"Marked {count} interrupted job(s) as failed")
        return count

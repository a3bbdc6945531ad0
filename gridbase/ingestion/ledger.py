"""
Ingestion Ledger Module
Durable record of ingestion jobs: status, totals and monotonic progress.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import update

from gridbase.database.connection import DatabaseConnection, get_db
from gridbase.database.models import IngestionJob
from gridbase.errors import JobStateError, NotFoundError, ValidationError
from gridbase.utils.helpers import isoformat, new_id, sanitize_string, utcnow
from gridbase.utils.logger import get_logger

logger = get_logger(__name__)

# Progress stays below 100 until the job is COMPLETED.
RUNNING_PROGRESS_CEILING = 99.99
MAX_ERROR_DETAIL = 1000


class JobStatus(str, Enum):
    PENDING = 'PENDING'
    PROCESSING = 'PROCESSING'
    COMPLETED = 'COMPLETED'
    FAILED = 'FAILED'

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


ACTIVE_STATUSES = (JobStatus.PENDING.value, JobStatus.PROCESSING.value)


def compute_progress(processed_rows: int, total_rows: int) -> float:
    """Percentage complete for a running job."""
    if total_rows <= 0:
        return 0.0
    percent = min(100.0, processed_rows / total_rows * 100.0)
    return min(percent, RUNNING_PROGRESS_CEILING)


def serialize_job(job: IngestionJob) -> Dict[str, Any]:
    return {
        'id': job.id,
        'table_id': job.table_id,
        'status': job.status,
        'total_rows': job.total_rows,
        'processed_rows': job.processed_rows,
        'base_position': job.base_position,
        'progress': round(float(job.progress or 0.0), 2),
        'error_message': job.error_message,
        'created_at': isoformat(job.created_at),
        'updated_at': isoformat(job.updated_at),
        'started_at': isoformat(job.started_at),
        'completed_at': isoformat(job.completed_at),
    }


class IngestionLedger:
    """
    Job ledger over the ``ingestion_jobs`` table.

    Allowed transitions are PENDING -> PROCESSING -> COMPLETED | FAILED.
    COMPLETED and FAILED are terminal.
    """

    def __init__(self, db: Optional[DatabaseConnection] = None):
        self.db = db or get_db()

    def create(self, table_id: str, total_rows: int) -> IngestionJob:
        """Register a new PENDING job."""
        if not isinstance(total_rows, int) or isinstance(total_rows, bool) or total_rows < 0:
            raise ValidationError("total_rows must be a non-negative integer")

        job = IngestionJob(
            id=new_id('job'),
            table_id=table_id,
            status=JobStatus.PENDING.value,
            total_rows=total_rows,
            processed_rows=0,
            progress=0.0,
        )
        with self.db.session_scope() as session:
            session.add(job)
        logger.info(f"Created ingestion job {job.id} for table {table_id} ({total_rows:,} rows)")
        return job

    def get(self, job_id: str) -> IngestionJob:
        with self.db.session_scope() as session:
            job = session.get(IngestionJob, job_id)
        if job is None:
            raise NotFoundError(f"Ingestion job not found: {job_id}")
        return job

    def find_active(self, table_id: Optional[str] = None) -> Optional[IngestionJob]:
        """Most recently created PENDING or PROCESSING job."""
        with self.db.session_scope() as session:
            query = session.query(IngestionJob).filter(IngestionJob.status.in_(ACTIVE_STATUSES))
            if table_id:
                query = query.filter(IngestionJob.table_id == table_id)
            return query.order_by(IngestionJob.created_at.desc(), IngestionJob.id.desc()).first()

    def claim_or_create(self, table_id: Optional[str] = None, total_rows: Optional[int] = None) -> IngestionJob:
        """
        Return the active job to work on, creating one when none exists.

        Raises:
            NotFoundError: no active job and not enough information to create one
        """
        job = self.find_active(table_id)
        if job is not None:
            logger.info(f"Found active job {job.id} ({job.status})")
            return job
        if table_id is None or total_rows is None:
            raise NotFoundError("No pending ingestion job")
        return self.create(table_id, total_rows)

    def list_jobs(self, table_id: Optional[str] = None, limit: int = 20) -> List[IngestionJob]:
        with self.db.session_scope() as session:
            query = session.query(IngestionJob)
            if table_id:
                query = query.filter(IngestionJob.table_id == table_id)
            return query.order_by(IngestionJob.created_at.desc(), IngestionJob.id.desc()).limit(limit).all()

    # ========================================
    # Transitions
    # ========================================

    def mark_processing(self, job_id: str, resume_from: Optional[int] = None,
                        base_position: Optional[int] = None) -> IngestionJob:
        """
        Move a job to PROCESSING. Calling it again on a PROCESSING job is a no-op
        apart from re-basing the processed count on ``resume_from``.

        Args:
            job_id: Job to start
            resume_from: Rows already durable in the row store
            base_position: Position of the job's first row; only the first
                value given is kept
        """
        with self.db.session_scope() as session:
            job = session.get(IngestionJob, job_id)
            if job is None:
                raise NotFoundError(f"Ingestion job not found: {job_id}")
            if job.status not in ACTIVE_STATUSES:
                raise JobStateError(f"Job {job_id} is {job.status} and cannot be processed")

            now = utcnow()
            if job.status == JobStatus.PENDING.value:
                job.status = JobStatus.PROCESSING.value
                job.started_at = now
            if job.base_position is None and base_position is not None:
                job.base_position = max(0, base_position)
            if resume_from is not None:
                job.processed_rows = min(max(0, resume_from), job.total_rows)
                job.progress = max(job.progress or 0.0, compute_progress(job.processed_rows, job.total_rows))
            job.updated_at = now
        logger.info(f"Job {job_id} PROCESSING from row {job.processed_rows:,}")
        return job

    def advance(self, job_id: str, processed_delta: int) -> float:
        """
        Record ``processed_delta`` more durable rows.

        The UPDATE runs before any read in the transaction so concurrent
        writers never need to upgrade a shared lock. Progress only moves up.

        Returns:
            Progress after the update
        """
        if processed_delta < 0:
            raise ValidationError("processed_delta must be non-negative")

        with self.db.session_scope() as session:
            result = session.execute(
                update(IngestionJob)
                .where(IngestionJob.id == job_id, IngestionJob.status == JobStatus.PROCESSING.value)
                .values(processed_rows=IngestionJob.processed_rows + processed_delta, updated_at=utcnow())
            )
            if result.rowcount == 0:
                job = session.get(IngestionJob, job_id)
                if job is None:
                    raise NotFoundError(f"Ingestion job not found: {job_id}")
                raise JobStateError(f"Job {job_id} is {job.status}; progress can only advance while PROCESSING")

            processed, total, current = session.query(
                IngestionJob.processed_rows, IngestionJob.total_rows, IngestionJob.progress
            ).filter(IngestionJob.id == job_id).one()

            progress = compute_progress(processed, total)
            if progress > (current or 0.0):
                session.execute(
                    update(IngestionJob)
                    .where(IngestionJob.id == job_id, IngestionJob.progress < progress)
                    .values(progress=progress)
                )
            return max(progress, current or 0.0)

    def complete(self, job_id: str) -> IngestionJob:
        with self.db.session_scope() as session:
            job = self._transition(session, job_id, JobStatus.COMPLETED)
            job.progress = 100.0
            job.completed_at = job.updated_at
        logger.info(f"Job {job_id} COMPLETED ({job.processed_rows:,}/{job.total_rows:,} rows)")
        return job

    def fail(self, job_id: str, detail: str) -> IngestionJob:
        with self.db.session_scope() as session:
            job = self._transition(session, job_id, JobStatus.FAILED)
            job.error_message = sanitize_string(str(detail), MAX_ERROR_DETAIL)
            job.completed_at = job.updated_at
        logger.error(f"Job {job_id} FAILED: {detail}")
        return job

    def _transition(self, session, job_id: str, target: JobStatus) -> IngestionJob:
        job = session.get(IngestionJob, job_id)
        if job is None:
            raise NotFoundError(f"Ingestion job not found: {job_id}")
        if job.status != JobStatus.PROCESSING.value:
            raise JobStateError(f"Job {job_id} is {job.status} and cannot become {target.value}")
        job.status = target.value
        job.updated_at = utcnow()
        return job

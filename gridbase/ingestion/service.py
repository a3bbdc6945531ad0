"""
Ingestion Service Module
Externally triggered ingestion operations, gated by table ownership.
"""

from typing import Any, Callable, Dict, List, Optional

from gridbase.database.connection import DatabaseConnection, get_db
from gridbase.database.metadata import MetadataStore
from gridbase.errors import ValidationError
from gridbase.ingestion.ledger import IngestionLedger, serialize_job
from gridbase.utils.logger import get_logger

logger = get_logger(__name__)


class IngestionService:
    """
    Start and observe ingestion jobs.

    ``on_job_created`` is called with the new job id after the job is
    durable; the app uses it to wake the background worker.
    """

    def __init__(self, db: Optional[DatabaseConnection] = None,
                 on_job_created: Optional[Callable[[str], None]] = None):
        self.db = db or get_db()
        self.ledger = IngestionLedger(self.db)
        self.metadata = MetadataStore(self.db)
        self.on_job_created = on_job_created

    def start_ingestion(self, actor_id: str, table_id: str, total_rows: Any) -> Dict[str, str]:
        """
        Accept an ingestion request; the rows are written in the background.

        Returns:
            ``{'jobId': ...}``
        """
        if not isinstance(total_rows, int) or isinstance(total_rows, bool) or total_rows < 0:
            raise ValidationError("totalRows must be a non-negative integer")

        self.metadata.ensure_owner(actor_id, table_id)
        job = self.ledger.create(table_id, total_rows)

        if self.on_job_created is not None:
            try:
                self.on_job_created(job.id)
            except Exception as e:
                # The job is durable; the next worker tick still picks it up.
                logger.warning(f"Could not wake ingestion worker for job {job.id}: {e}")

        return {'jobId': job.id}

    def get_job_status(self, job_id: str, actor_id: Optional[str] = None) -> Dict[str, Any]:
        job = self.ledger.get(job_id)
        if actor_id is not None:
            self.metadata.ensure_owner(actor_id, job.table_id)

        status = {
            'status': job.status,
            'progress': round(float(job.progress or 0.0), 2),
        }
        if job.error_message:
            status['errorDetail'] = job.error_message
        return status

    def get_job(self, job_id: str, actor_id: Optional[str] = None) -> Dict[str, Any]:
        job = self.ledger.get(job_id)
        if actor_id is not None:
            self.metadata.ensure_owner(actor_id, job.table_id)
        return serialize_job(job)

    def list_jobs(self, actor_id: str, table_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        self.metadata.ensure_owner(actor_id, table_id)
        return [serialize_job(j) for j in self.ledger.list_jobs(table_id, limit=limit)]

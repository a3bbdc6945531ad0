"""
Ingestion Runner Module
Resolves where a job resumes, runs it through the scheduler and drains pending jobs.
"""

from typing import Callable, List, Optional, Sequence, Set, Tuple

from gridbase.cells import ColumnType
from gridbase.config_manager import ConfigManager
from gridbase.database.connection import DatabaseConnection, get_db
from gridbase.database.metadata import MetadataStore
from gridbase.database.models import IngestionJob
from gridbase.database.row_store import RowStore
from gridbase.errors import JobStateError
from gridbase.ingestion.checkpoint import CheckpointStore
from gridbase.ingestion.ledger import IngestionLedger, JobStatus
from gridbase.ingestion.row_sources import RowSource, SyntheticRowSource
from gridbase.ingestion.scheduler import BatchScheduler
from gridbase.utils.logger import get_logger

logger = get_logger(__name__)

RowSourceFactory = Callable[[IngestionJob, Sequence[Tuple[str, ColumnType]]], RowSource]


class IngestionRunner:
    """
    Runs ingestion jobs to a terminal status.

    Usage:
        runner = IngestionRunner()
        runner.run_pending()
    """

    def __init__(
        self,
        db: Optional[DatabaseConnection] = None,
        ingestion_config: Optional[dict] = None,
        row_source_factory: Optional[RowSourceFactory] = None,
    ):
        self.db = db or get_db()
        self.config = ingestion_config or ConfigManager().get_ingestion_config()

        self.ledger = IngestionLedger(self.db)
        self.row_store = RowStore(self.db)
        self.metadata = MetadataStore(self.db)
        self.checkpoints = CheckpointStore(self.config['checkpoint_dir'])
        self.scheduler = BatchScheduler(
            self.row_store,
            self.ledger,
            self.checkpoints,
            batch_size=int(self.config['batch_size']),
            concurrency=int(self.config['concurrency']),
            stagger_seconds=float(self.config['stagger_seconds']),
        )
        self.row_source_factory = row_source_factory or self._synthetic_source

    def _synthetic_source(self, job: IngestionJob, columns: Sequence[Tuple[str, ColumnType]]) -> RowSource:
        return SyntheticRowSource(job.id, columns, number_max=int(self.config['number_max']))

    def resume_offset(self, job: IngestionJob) -> int:
        """
        Rows of ``job`` that are already durable.

        A checkpoint for the job wins. Without one, a job that was already
        PROCESSING resumes after the rows it wrote itself, which its
        deterministic row ids identify. Otherwise the job starts from zero.
        """
        saved = self.checkpoints.load(job.id)
        if saved is not None:
            logger.info(f"Resuming job {job.id} from checkpoint at row {saved:,}")
            return min(saved, job.total_rows)

        if job.status == JobStatus.PROCESSING.value:
            persisted = self.row_store.count_job_rows(job.table_id, job.id)
            logger.warning(
                f"No checkpoint for PROCESSING job {job.id}; resuming from its {persisted:,} stored rows"
            )
            return min(persisted, job.total_rows)

        return 0

    def run(self, job_id: str) -> IngestionJob:
        """
        Run one job to completion.

        Raises:
            JobStateError: the job is already COMPLETED or FAILED
            EncodingFailure, StorageFailure: a batch failed; the job is FAILED
        """
        job = self.ledger.get(job_id)
        if JobStatus(job.status).is_terminal:
            raise JobStateError(f"Job {job_id} is already {job.status}")

        processed = self.resume_offset(job)
        base_position = job.base_position
        if base_position is None:
            base_position = self.row_store.next_position(job.table_id)
        job = self.ledger.mark_processing(job.id, resume_from=processed, base_position=base_position)

        columns = [(c.id, ColumnType.parse(c.type)) for c in self.metadata.get_columns(job.table_id)]
        source = self.row_source_factory(job, columns)
        return self.scheduler.run(job, source, processed)

    def run_pending(self, table_id: Optional[str] = None) -> List[IngestionJob]:
        """
        Run active jobs, most recently created first, until none are left.

        A failing job is logged and left FAILED; the loop moves on.
        """
        finished: List[IngestionJob] = []
        attempted: Set[str] = set()

        while True:
            job = self.ledger.find_active(table_id)
            if job is None or job.id in attempted:
                break
            attempted.add(job.id)
            try:
                finished.append(self.run(job.id))
            except Exception as e:
                logger.error(f"Ingestion job {job.id} did not complete: {e}")

        if finished:
            logger.info(f"Ingestion worker completed {len(finished)} job(s)")
        return finished

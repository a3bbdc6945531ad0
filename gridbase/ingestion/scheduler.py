"""
Batch Scheduler Module
Splits a job's remaining range into batches and drives them through a bounded pool.
"""

import time
from concurrent.futures import ALL_COMPLETED, FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Dict, Iterator, Optional

from gridbase.database.models import IngestionJob
from gridbase.database.row_store import RowStore
from gridbase.errors import ValidationError
from gridbase.ingestion.checkpoint import CheckpointStore
from gridbase.ingestion.encoder import encode_batch
from gridbase.ingestion.ledger import IngestionLedger
from gridbase.ingestion.row_sources import RowSource
from gridbase.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class BatchDescriptor:
    offset: int
    size: int
    batch_index: int


@dataclass(frozen=True)
class BatchResult:
    descriptor: BatchDescriptor
    inserted: int
    build_ms: float
    db_ms: float


def iter_batches(processed: int, batch_size: int, total_rows: int) -> Iterator[BatchDescriptor]:
    """
    Lazily yield the batches covering ``[processed, total_rows)``.

    The sequence depends only on its three arguments, so it can be
    re-derived at any time from the last durable processed count.
    """
    if batch_size <= 0:
        raise ValidationError("batch_size must be positive")

    offset = max(0, processed)
    while offset < total_rows:
        size = min(batch_size, total_rows - offset)
        yield BatchDescriptor(offset=offset, size=size, batch_index=offset // batch_size)
        offset += size


class _RunState:
    """Bookkeeping owned by the coordinating thread for one job run."""

    def __init__(self, processed: int):
        self.processed = processed
        self.started = time.perf_counter()
        self.error: Optional[BaseException] = None
        self.failed_batch: Optional[BatchDescriptor] = None

    def record_failure(self, error: BaseException, descriptor: Optional[BatchDescriptor] = None) -> None:
        if self.error is None:
            self.error = error
            self.failed_batch = descriptor

    def failure_detail(self) -> str:
        reason = f"{type(self.error).__name__}: {self.error}"
        if self.failed_batch is None:
            return reason
        d = self.failed_batch
        return f"Batch {d.batch_index} (offset {d.offset}, size {d.size}) failed: {reason}"


class BatchScheduler:
    """
    Runs one job's batches with at most ``concurrency`` in flight.

    Batches are admitted in ascending offset order and may complete in any
    order. Only the coordinating thread touches the ledger and the
    checkpoint; batch tasks only read their row source and append rows.
    """

    def __init__(
        self,
        row_store: RowStore,
        ledger: IngestionLedger,
        checkpoints: CheckpointStore,
        batch_size: int = 25000,
        concurrency: int = 2,
        stagger_seconds: float = 0.2,
    ):
        if concurrency < 1:
            raise ValidationError("concurrency must be at least 1")
        if batch_size < 1:
            raise ValidationError("batch_size must be positive")
        self.row_store = row_store
        self.ledger = ledger
        self.checkpoints = checkpoints
        self.batch_size = batch_size
        self.concurrency = concurrency
        self.stagger_seconds = stagger_seconds

    def run(self, job: IngestionJob, row_source: RowSource, processed: int = 0) -> IngestionJob:
        """
        Ingest the rows of ``job`` from ``processed`` up to its total.

        The job must already be PROCESSING. On success the job is COMPLETED
        and its checkpoint removed. On the first batch failure no further
        batches are admitted, in-flight ones are awaited, the job is marked
        FAILED and the causing exception is re-raised.

        Returns:
            The COMPLETED job
        """
        state = _RunState(processed)
        logger.info(
            f"Ingesting job {job.id}: rows {processed:,}..{job.total_rows:,} "
            f"(batch {self.batch_size:,}, concurrency {self.concurrency})"
        )

        try:
            with ThreadPoolExecutor(max_workers=self.concurrency,
                                    thread_name_prefix=f"ingest-{job.id[-8:]}") as executor:
                self._drive(executor, job, row_source, state)
        except Exception as e:
            state.record_failure(e)

        if state.error is not None:
            detail = state.failure_detail()
            try:
                self.ledger.fail(job.id, detail)
            except Exception as fail_error:
                logger.error(f"Could not mark job {job.id} FAILED: {fail_error}")
            raise state.error

        completed = self.ledger.complete(job.id)
        self.checkpoints.clear(job.id)

        elapsed = time.perf_counter() - state.started
        logger.info(f"Job {job.id} finished {state.processed:,} rows in {elapsed:.1f}s")
        return completed

    def _drive(self, executor: ThreadPoolExecutor, job: IngestionJob,
               row_source: RowSource, state: _RunState) -> None:
        in_flight: Dict[Future, BatchDescriptor] = {}
        admitted = 0

        for descriptor in iter_batches(state.processed, self.batch_size, job.total_rows):
            while len(in_flight) >= self.concurrency and state.error is None:
                self._collect(in_flight, FIRST_COMPLETED, job, state)
            if state.error is not None:
                break

            future = executor.submit(self._execute_batch, job, row_source, descriptor)
            in_flight[future] = descriptor
            admitted += 1
            if admitted == 1 and self.stagger_seconds > 0:
                time.sleep(self.stagger_seconds)

        while in_flight:
            self._collect(in_flight, ALL_COMPLETED, job, state)

    def _collect(self, in_flight: Dict[Future, BatchDescriptor], return_when: str,
                 job: IngestionJob, state: _RunState) -> None:
        done, _ = wait(list(in_flight), return_when=return_when)
        for future in sorted(done, key=lambda f: in_flight[f].offset):
            descriptor = in_flight.pop(future)
            error = future.exception()
            if error is not None:
                logger.error(f"Job {job.id} batch {descriptor.batch_index} failed: {error}")
                state.record_failure(error, descriptor)
                continue
            self._record_success(job, future.result(), state)

    def _record_success(self, job: IngestionJob, result: BatchResult, state: _RunState) -> None:
        state.processed += result.descriptor.size
        progress = self.ledger.advance(job.id, result.descriptor.size)
        try:
            self.checkpoints.save(job.id, state.processed)
        except OSError as e:
            logger.warning(f"Checkpoint save failed for job {job.id}: {e}")

        elapsed = max(time.perf_counter() - state.started, 1e-9)
        logger.info(
            f"Batch {result.descriptor.batch_index} done. Inserted: {state.processed:,} | "
            f"RPS: {state.processed / elapsed:,.0f} | Progress: {progress:.1f}%"
        )

    def _execute_batch(self, job: IngestionJob, row_source: RowSource,
                       descriptor: BatchDescriptor) -> BatchResult:
        """Runs on a pool thread: build, encode and append one batch."""
        t0 = time.perf_counter()
        rows = row_source.rows(descriptor.offset, descriptor.size, descriptor.batch_index)
        payload = encode_batch(
            rows,
            start_position=(job.base_position or 0) + descriptor.offset,
            batch_index=descriptor.batch_index,
            job_id=job.id,
        )
        del rows
        t1 = time.perf_counter()
        inserted = self.row_store.bulk_append(job.table_id, payload)
        t2 = time.perf_counter()

        build_ms = (t1 - t0) * 1000
        db_ms = (t2 - t1) * 1000
        logger.debug(
            f"[BulkInsert] Payload Build: {build_ms:.0f}ms | DB Round Trip: {db_ms:.0f}ms | "
            f"Rows: {len(payload):,}"
        )
        return BatchResult(descriptor=descriptor, inserted=inserted, build_ms=build_ms, db_ms=db_ms)

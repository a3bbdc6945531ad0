"""
Integration Tests for Batch Scheduling and the Ingestion Runner
"""

import os
import unittest
from unittest.mock import Mock

from support import DatabaseTestCase

from gridbase.cells import ColumnType
from gridbase.errors import EncodingFailure, JobStateError, ValidationError
from gridbase.ingestion import (
    BatchDescriptor, IngestionRunner, JobStatus, RowSource, SyntheticRowSource, iter_batches
)
from gridbase.ingestion.encoder import encode_batch
from gridbase.query import compile_filter, compile_query


class TestIterBatches(unittest.TestCase):
    """Test descriptor generation."""

    def test_covers_range_in_order(self):
        batches = list(iter_batches(0, 250, 1000))
        self.assertEqual([b.offset for b in batches], [0, 250, 500, 750])
        self.assertEqual([b.batch_index for b in batches], [0, 1, 2, 3])
        self.assertTrue(all(b.size == 250 for b in batches))

    def test_last_batch_is_short(self):
        batches = list(iter_batches(0, 300, 1000))
        self.assertEqual(batches[-1], BatchDescriptor(offset=900, size=100, batch_index=3))
        self.assertEqual(sum(b.size for b in batches), 1000)

    def test_resumes_from_processed(self):
        batches = list(iter_batches(500, 250, 1000))
        self.assertEqual([b.batch_index for b in batches], [2, 3])

    def test_finished_or_empty(self):
        self.assertEqual(list(iter_batches(1000, 250, 1000)), [])
        self.assertEqual(list(iter_batches(0, 250, 0)), [])

    def test_rederivable(self):
        self.assertEqual(list(iter_batches(10, 7, 100)), list(iter_batches(10, 7, 100)))

    def test_invalid_batch_size(self):
        with self.assertRaises(ValidationError):
            list(iter_batches(0, 0, 10))


class TestSyntheticRowSource(unittest.TestCase):

    def test_type_aware_and_reproducible(self):
        source = SyntheticRowSource('job_1', [('t', ColumnType.TEXT), ('n', ColumnType.NUMBER)], number_max=50)
        rows = source.rows(250, 10, 1)
        self.assertEqual(rows, source.rows(250, 10, 1))
        self.assertEqual(rows[3]['t'], 'Jobjob_1-B1-R3')
        self.assertTrue(all(0 <= r['n'] < 50 for r in rows))


class FailingSource(RowSource):
    """Produces an unserializable value in one batch."""

    def __init__(self, column_id, bad_batch):
        self.column_id = column_id
        self.bad_batch = bad_batch

    def rows(self, offset, size, batch_index):
        value = object() if batch_index == self.bad_batch else 'ok'
        return [{self.column_id: value} for _ in range(size)]


class IngestionTestCase(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.table_id, (self.c1, self.c2) = self.make_table()
        self.config = {
            'batch_size': 250,
            'concurrency': 2,
            'stagger_seconds': 0,
            'checkpoint_dir': os.path.join(self.tmpdir, 'checkpoints'),
            'number_max': 1000,
            'worker_interval_seconds': 30,
        }
        self.runner = IngestionRunner(self.db, self.config)

    def make_runner(self, **overrides):
        factory = overrides.pop('row_source_factory', None)
        config = dict(self.config, **overrides)
        return IngestionRunner(self.db, config, row_source_factory=factory)


class TestIngestionRun(IngestionTestCase):
    """End-to-end ingestion into a table."""

    def test_ingest_1000_rows(self):
        job = self.runner.ledger.create(self.table_id, 1000)

        done = self.runner.run(job.id)

        self.assertEqual(done.status, JobStatus.COMPLETED.value)
        self.assertEqual(done.progress, 100.0)
        self.assertEqual(done.processed_rows, 1000)
        self.assertEqual(self.runner.row_store.count(self.table_id), 1000)
        self.assertIsNone(self.runner.checkpoints.load(job.id))

        positions = [r.position for r in self.runner.row_store.all_rows(self.table_id)]
        self.assertEqual(positions, list(range(1000)))

    def test_filter_over_ingested_numbers(self):
        job = self.runner.ledger.create(self.table_id, 1000)
        self.runner.run(job.id)

        columns = {self.c1: ColumnType.TEXT, self.c2: ColumnType.NUMBER}
        raw = {'conditions': [{'columnId': self.c2, 'operator': 'greaterThan', 'value': 500}]}
        rows = self.runner.row_store.scan(self.table_id, compile_query(raw, None, columns))
        everything = self.runner.row_store.all_rows(self.table_id)

        self.assertTrue(all(r.data[self.c2] > 500 for r in rows))
        self.assertEqual(len(rows), sum(1 for r in everything if r.data[self.c2] > 500))
        self.assertEqual(len(rows), self.runner.row_store.count(self.table_id, compile_filter(raw, columns)))

    def test_zero_rows_completes_immediately(self):
        job = self.runner.ledger.create(self.table_id, 0)
        done = self.runner.run(job.id)
        self.assertEqual(done.status, JobStatus.COMPLETED.value)
        self.assertEqual(done.progress, 100.0)

    def test_terminal_job_cannot_run_again(self):
        job = self.runner.ledger.create(self.table_id, 10)
        self.runner.run(job.id)
        with self.assertRaises(JobStateError):
            self.runner.run(job.id)

    def test_batch_failure_marks_job_failed(self):
        runner = self.make_runner(
            concurrency=1,
            row_source_factory=lambda job, columns: FailingSource(self.c1, bad_batch=2),
        )
        job = runner.ledger.create(self.table_id, 1000)

        with self.assertRaises(EncodingFailure):
            runner.run(job.id)

        failed = runner.ledger.get(job.id)
        self.assertEqual(failed.status, JobStatus.FAILED.value)
        self.assertIn('Batch 2', failed.error_message)
        self.assertLess(failed.progress, 100.0)
        # Batches before the failure are durable and checkpointed; nothing after it ran.
        self.assertEqual(runner.row_store.count(self.table_id), 500)
        self.assertEqual(runner.checkpoints.load(job.id), 500)

    def test_failure_with_concurrency_records_in_flight_successes(self):
        runner = self.make_runner(
            concurrency=2,
            row_source_factory=lambda job, columns: FailingSource(self.c1, bad_batch=0),
        )
        job = runner.ledger.create(self.table_id, 1000)

        with self.assertRaises(EncodingFailure):
            runner.run(job.id)

        failed = runner.ledger.get(job.id)
        persisted = runner.row_store.count(self.table_id)
        self.assertEqual(failed.status, JobStatus.FAILED.value)
        self.assertEqual(failed.processed_rows, persisted)
        self.assertLess(persisted, 1000)
        self.assertEqual(persisted % 250, 0)


class TestResume(IngestionTestCase):
    """Restart after an interrupted run."""

    def interrupt_after(self, job, batches, checkpoint_rows=None):
        """Leave ``job`` PROCESSING with its first ``batches`` batches written."""
        base = self.runner.row_store.next_position(self.table_id)
        self.runner.ledger.mark_processing(job.id, base_position=base)
        columns = [(self.c1, ColumnType.TEXT), (self.c2, ColumnType.NUMBER)]
        source = SyntheticRowSource(job.id, columns, number_max=1000)
        for b in iter_batches(0, 250, batches * 250):
            payload = encode_batch(source.rows(b.offset, b.size, b.batch_index),
                                   start_position=base + b.offset, batch_index=b.batch_index, job_id=job.id)
            self.runner.row_store.bulk_append(self.table_id, payload)
            self.runner.ledger.advance(job.id, b.size)
        if checkpoint_rows is not None:
            self.runner.checkpoints.save(job.id, checkpoint_rows)

    def test_resume_from_checkpoint(self):
        job = self.runner.ledger.create(self.table_id, 1000)
        self.interrupt_after(job, 2, checkpoint_rows=500)
        self.assertEqual(self.runner.resume_offset(self.runner.ledger.get(job.id)), 500)

        done = self.runner.run(job.id)

        self.assertEqual(done.status, JobStatus.COMPLETED.value)
        self.assertEqual(done.processed_rows, 1000)
        self.assertEqual(self.runner.row_store.count(self.table_id), 1000)

    def test_stale_checkpoint_does_not_duplicate_rows(self):
        job = self.runner.ledger.create(self.table_id, 1000)
        self.interrupt_after(job, 2, checkpoint_rows=250)

        self.runner.run(job.id)

        self.assertEqual(self.runner.row_store.count(self.table_id), 1000)

    def test_resume_without_checkpoint_counts_job_rows(self):
        job = self.runner.ledger.create(self.table_id, 1000)
        self.interrupt_after(job, 3)
        self.assertEqual(self.runner.resume_offset(self.runner.ledger.get(job.id)), 750)

        self.runner.run(job.id)

        self.assertEqual(self.runner.row_store.count(self.table_id), 1000)

    def test_resume_without_checkpoint_ignores_other_rows(self):
        self.runner.row_store.bulk_append(
            self.table_id, encode_batch([{self.c1: 'scaffold'} for _ in range(50)])
        )
        first = self.runner.ledger.create(self.table_id, 1000)
        self.runner.run(first.id)
        self.assertEqual(self.runner.row_store.count(self.table_id), 1050)

        second = self.runner.ledger.create(self.table_id, 1000)
        self.interrupt_after(second, 1)
        self.assertEqual(self.runner.resume_offset(self.runner.ledger.get(second.id)), 250)

        done = self.runner.run(second.id)

        self.assertEqual(done.status, JobStatus.COMPLETED.value)
        self.assertEqual(self.runner.row_store.count_job_rows(self.table_id, second.id), 1000)
        self.assertEqual(self.runner.row_store.count(self.table_id), 2050)
        positions = [r.position for r in self.runner.row_store.all_rows(self.table_id)]
        self.assertEqual(positions, list(range(2050)))

    def test_pending_job_starts_from_zero(self):
        job = self.runner.ledger.create(self.table_id, 100)
        self.assertEqual(self.runner.resume_offset(job), 0)


class TestRunPending(IngestionTestCase):

    def test_runs_every_active_job(self):
        first = self.runner.ledger.create(self.table_id, 300)
        second = self.runner.ledger.create(self.table_id, 200)

        finished = self.runner.run_pending()

        self.assertEqual({j.id for j in finished}, {first.id, second.id})
        self.assertEqual(self.runner.row_store.count(self.table_id), 500)
        self.assertIsNone(self.runner.ledger.find_active())

    def test_failed_job_does_not_stop_the_worker(self):
        runner = self.make_runner(
            row_source_factory=lambda job, columns: FailingSource(self.c1, bad_batch=0)
        )
        job = runner.ledger.create(self.table_id, 100)

        self.assertEqual(runner.run_pending(), [])
        self.assertEqual(runner.ledger.get(job.id).status, JobStatus.FAILED.value)

    def test_nothing_to_do(self):
        self.runner.ledger = Mock(wraps=self.runner.ledger)
        self.assertEqual(self.runner.run_pending(), [])
        self.runner.ledger.find_active.assert_called_once_with(None)


if __name__ == '__main__':
    unittest.main()

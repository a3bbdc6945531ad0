"""
Bulk ingestion engine: encoder, job ledger, checkpoints, batch scheduler and runner.
"""

from gridbase.ingestion.checkpoint import Checkpoint, CheckpointStore
from gridbase.ingestion.encoder import encode_batch, encode_cells
from gridbase.ingestion.ledger import IngestionLedger, JobStatus, serialize_job
from gridbase.ingestion.row_sources import RowSource, SyntheticRowSource
from gridbase.ingestion.runner import IngestionRunner
from gridbase.ingestion.scheduler import BatchDescriptor, BatchScheduler, iter_batches
from gridbase.ingestion.service import IngestionService

__all__ = [
    'Checkpoint',
    'CheckpointStore',
    'encode_batch',
    'encode_cells',
    'IngestionLedger',
    'JobStatus',
    'serialize_job',
    'RowSource',
    'SyntheticRowSource',
    'IngestionRunner',
    'BatchDescriptor',
    'BatchScheduler',
    'iter_batches',
    'IngestionService',
]

"""
Checkpoint Store Module
File-backed "rows processed so far" markers used to resume interrupted jobs.
"""

import json
import os
import re
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from gridbase.errors import ValidationError
from gridbase.utils.helpers import parse_timestamp, utcnow_iso
from gridbase.utils.logger import get_logger

logger = get_logger(__name__)

_SAFE_JOB_ID = re.compile(r'^[A-Za-z0-9_.-]+$')


@dataclass(frozen=True)
class Checkpoint:
    job_id: str
    rows_processed: int
    timestamp: Optional[datetime]

    def to_dict(self) -> dict:
        return {
            'jobId': self.job_id,
            'rowsProcessed': self.rows_processed,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
        }


class CheckpointStore:
    """
    One JSON file per job: ``{"jobId", "rowsProcessed", "timestamp"}``.

    Writes go to a temporary file in the same directory, are fsynced and
    then atomically renamed over the previous checkpoint, so a crash leaves
    either the old or the new marker and never a torn one.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def path_for(self, job_id: str) -> Path:
        if not job_id or not _SAFE_JOB_ID.match(job_id):
            raise ValidationError(f"Invalid job id for checkpoint: {job_id!r}")
        return self.directory / f"{job_id}.json"

    def read(self, job_id: str) -> Optional[Checkpoint]:
        """Checkpoint for a job, or None when missing or unreadable."""
        path = self.path_for(job_id)
        if not path.exists():
            return None

        try:
            with open(path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable checkpoint {path}: {e}")
            return None

        if not isinstance(raw, dict) or raw.get('jobId') != job_id:
            logger.warning(f"Ignoring checkpoint {path}: not a checkpoint for job {job_id}")
            return None
        rows = raw.get('rowsProcessed')
        if not isinstance(rows, int) or isinstance(rows, bool) or rows < 0:
            logger.warning(f"Ignoring checkpoint {path}: invalid rowsProcessed {rows!r}")
            return None

        return Checkpoint(job_id=job_id, rows_processed=rows, timestamp=parse_timestamp(raw.get('timestamp')))

    def load(self, job_id: str) -> Optional[int]:
        """Rows processed according to the checkpoint, or None."""
        checkpoint = self.read(job_id)
        return checkpoint.rows_processed if checkpoint else None

    def save(self, job_id: str, rows_processed: int) -> None:
        """Durably overwrite the checkpoint for a job."""
        path = self.path_for(job_id)
        self.directory.mkdir(parents=True, exist_ok=True)
        body = json.dumps({
            'jobId': job_id,
            'rowsProcessed': int(rows_processed),
            'timestamp': utcnow_iso(),
        })

        fd, tmp_name = tempfile.mkstemp(prefix=f".{job_id}.", suffix='.tmp', dir=str(self.directory))
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(body)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def clear(self, job_id: str) -> None:
        path = self.path_for(job_id)
        try:
            path.unlink()
            logger.debug(f"Cleared checkpoint for job {job_id}")
        except FileNotFoundError:
            pass

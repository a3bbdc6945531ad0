"""
Batch Encoder Module
Turns a bounded slice of row mappings into a single bulk-append payload.
"""

import json
from typing import Iterable, List, Mapping, Optional

from gridbase.cells import classify
from gridbase.database.connection import EncodedCells
from gridbase.database.row_store import BatchPayload
from gridbase.errors import EncodingFailure
from gridbase.utils.helpers import monotonic_millis, random_suffix


def deterministic_row_id(job_id: str, batch_index: int, row_index: int) -> str:
    """Row id that is identical every time the same job batch is re-derived."""
    return f"row_{job_id}_{batch_index}_{row_index}"


def adhoc_row_id(stamp: int, batch_index: int, row_index: int) -> str:
    """Collision-resistant row id for inserts that are not part of a job."""
    return f"row_{stamp}_{batch_index}_{row_index}_{random_suffix()}"


def encode_cells(row: Mapping, batch_index: int = 0, row_index: int = 0) -> EncodedCells:
    """
    Serialize one row mapping.

    Raises:
        EncodingFailure: the row is not a mapping of column id -> text/number/null
    """
    where = f"Batch {batch_index}, row {row_index}"
    if not isinstance(row, Mapping):
        raise EncodingFailure(f"{where}: row must be a mapping, got {type(row).__name__}",
                              batch_index=batch_index, row_index=row_index)
    for key, value in row.items():
        if not isinstance(key, str):
            raise EncodingFailure(f"{where}: column id {key!r} is not a string",
                                  batch_index=batch_index, row_index=row_index)
        if classify(value) is None:
            raise EncodingFailure(f"{where}: column '{key}' holds unsupported value {value!r}",
                                  batch_index=batch_index, row_index=row_index)
    try:
        return EncodedCells(json.dumps(dict(row), allow_nan=False, ensure_ascii=False, separators=(',', ':')))
    except (TypeError, ValueError) as e:
        raise EncodingFailure(f"{where}: {e}", batch_index=batch_index, row_index=row_index) from e


def encode_batch(
    rows: Iterable[Mapping],
    start_position: int = 0,
    batch_index: int = 0,
    job_id: Optional[str] = None,
) -> BatchPayload:
    """
    Encode a batch into parallel arrays of ids, serialized cells and positions.

    One bad row fails the whole batch; nothing is returned for partial
    batches. The payload holds no reference to ``rows``.

    Args:
        rows: Row mappings (column id -> scalar)
        start_position: Position of the first row; later rows follow consecutively
        batch_index: Index of the batch within its job
        job_id: When given, row ids are derived from (job, batch, row index)
            so a re-submitted batch collides with itself instead of duplicating

    Returns:
        BatchPayload ready for RowStore.bulk_append
    """
    stamp = None if job_id else monotonic_millis()
    ids: List[str] = []
    payloads: List[EncodedCells] = []
    positions: List[int] = []

    for i, row in enumerate(rows):
        payloads.append(encode_cells(row, batch_index, i))
        if job_id:
            ids.append(deterministic_row_id(job_id, batch_index, i))
        else:
            ids.append(adhoc_row_id(stamp, batch_index, i))
        positions.append(start_position + i)

    return BatchPayload(ids=tuple(ids), payloads=tuple(payloads), positions=tuple(positions))

"""
Row Sources Module
Producers of row mappings for a batch descriptor.
"""

import random
from abc import ABC, abstractmethod
from typing import List, Sequence, Tuple

from gridbase.cells import ColumnType, RowData


class RowSource(ABC):
    """Produces the row mappings for one batch."""

    @abstractmethod
    def rows(self, offset: int, size: int, batch_index: int) -> List[RowData]:
        """
        Build the rows for a batch.

        Must return the same rows every time it is called with the same
        arguments so a re-run batch writes identical payloads.
        """
        pass


class SyntheticRowSource(RowSource):
    """
    Type-aware generated rows for load and scale testing.

    NUMBER columns get integers in [0, number_max); TEXT columns get
    ``Job<job>-B<batch>-R<row>``. Each batch is seeded from (job, batch) so
    regeneration after a restart is identical.
    """

    def __init__(self, job_id: str, columns: Sequence[Tuple[str, ColumnType]], number_max: int = 10000):
        self.job_id = job_id
        self.columns = list(columns)
        self.number_max = max(1, int(number_max))

    def rows(self, offset: int, size: int, batch_index: int) -> List[RowData]:
        rng = random.Random(f"{self.job_id}:{batch_index}")
        batch: List[RowData] = []
        for i in range(size):
            row: RowData = {}
            for column_id, column_type in self.columns:
                if column_type is ColumnType.NUMBER:
                    row[column_id] = rng.randrange(self.number_max)
                else:
                    row[column_id] = f"Job{self.job_id}-B{batch_index}-R{i}"
            batch.append(row)
        return batch

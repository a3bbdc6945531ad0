"""
Row Store Module
Persistent payload store for rows: bulk append, point update, scan and count.
"""

import json
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Generator, List, Optional, Sequence, Tuple

from sqlalchemy import Text, cast, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gridbase.cells import as_text
from gridbase.database.connection import DatabaseConnection, EncodedCells, get_db
from gridbase.database.models import GridRow
from gridbase.errors import NotFoundError, StorageFailure
from gridbase.query.compiler import CompiledFilter, QueryPlan, contains_clause, text_contains
from gridbase.utils.helpers import isoformat, utcnow
from gridbase.utils.logger import get_logger

logger = get_logger(__name__)

SEARCH_FETCH_SIZE = 500


def _serialized_needle(needle: Any) -> str:
    """``needle`` as it appears inside a JSON string literal of a stored payload."""
    return json.dumps(as_text(needle) or '', ensure_ascii=False)[1:-1]


def _like_literal(text: str) -> str:
    return text.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


@dataclass(frozen=True)
class BatchPayload:
    """Column-oriented bulk-append request: parallel arrays of ids, serialized cells and positions."""
    ids: Tuple[str, ...]
    payloads: Tuple[EncodedCells, ...]
    positions: Tuple[int, ...]

    def __len__(self) -> int:
        return len(self.ids)


def serialize_row(row: GridRow) -> Dict[str, Any]:
    """API representation of a row."""
    return {
        'id': row.id,
        'table_id': row.table_id,
        'position': row.position,
        'data': row.data or {},
        'created_at': isoformat(row.created_at),
        'updated_at': isoformat(row.updated_at),
    }


class RowStore:
    """Row payload operations over the shared database connection."""

    def __init__(self, db: Optional[DatabaseConnection] = None):
        self.db = db or get_db()

    @contextmanager
    def _storage_errors(self, action: str) -> Generator[None, None, None]:
        try:
            yield
        except SQLAlchemyError as e:
            logger.error(f"Row store {action} failed: {e}")
            raise StorageFailure(f"Row store {action} failed: {e}") from e

    # ========================================
    # Writes
    # ========================================

    def _insert_ignoring_duplicates(self):
        """INSERT that drops rows whose id already exists."""
        dialect = self.db.dialect
        if dialect == 'postgresql':
            return pg_insert(GridRow.__table__).on_conflict_do_nothing(index_elements=['id'])
        if dialect == 'sqlite':
            return sqlite_insert(GridRow.__table__).on_conflict_do_nothing(index_elements=['id'])
        raise StorageFailure(f"Bulk append is not supported on dialect '{dialect}'")

    def bulk_append(self, table_id: str, payload: BatchPayload, session: Optional[Session] = None) -> int:
        """
        Insert a whole batch in one statement.

        Duplicate row ids are silently skipped, so re-submitting a batch that
        was already applied is harmless.

        Args:
            table_id: Owning table
            payload: Encoded batch
            session: Optional session to join; a new transaction is used otherwise

        Returns:
            Number of rows submitted (or inserted, when the driver reports it)
        """
        if len(payload) == 0:
            return 0

        now = utcnow()
        params = [
            {
                'id': row_id,
                'table_id': table_id,
                'position': position,
                'data': cells,
                'created_at': now,
                'updated_at': now,
            }
            for row_id, cells, position in zip(payload.ids, payload.payloads, payload.positions)
        ]
        stmt = self._insert_ignoring_duplicates()

        with self._storage_errors('bulk append'):
            if session is not None:
                result = session.execute(stmt, params)
            else:
                with self.db.session_scope() as own_session:
                    result = own_session.execute(stmt, params)

        inserted = result.rowcount
        return inserted if inserted is not None and inserted >= 0 else len(params)

    def update_cell(self, row_id: str, column_id: str, value: Any) -> GridRow:
        """Set one key of a row's payload."""
        with self._storage_errors('update'):
            with self.db.session_scope() as session:
                row = session.get(GridRow, row_id)
                if row is None:
                    raise NotFoundError(f"Row not found: {row_id}")
                data = dict(row.data or {})
                data[column_id] = value
                row.data = data
                row.updated_at = utcnow()
                session.flush()
                return row

    def delete_row(self, row_id: str) -> None:
        with self._storage_errors('delete'):
            with self.db.session_scope() as session:
                row = session.get(GridRow, row_id)
                if row is None:
                    raise NotFoundError(f"Row not found: {row_id}")
                session.delete(row)

    def delete_table_rows(self, table_id: str, session: Optional[Session] = None) -> int:
        with self._storage_errors('delete'):
            if session is not None:
                return session.query(GridRow).filter(GridRow.table_id == table_id).delete(
                    synchronize_session=False
                )
            with self.db.session_scope() as own_session:
                return own_session.query(GridRow).filter(GridRow.table_id == table_id).delete(
                    synchronize_session=False
                )

    def remove_key(self, table_id: str, column_id: str, session: Optional[Session] = None) -> int:
        """
        Remove a column key from every row payload of a table.

        Returns:
            Number of rows rewritten (zero when no row holds the key)
        """
        with self._storage_errors('key removal'):
            if session is not None:
                return self._remove_key(session, table_id, column_id)
            with self.db.session_scope() as own_session:
                return self._remove_key(own_session, table_id, column_id)

    def _remove_key(self, session: Session, table_id: str, column_id: str) -> int:
        dialect = self.db.dialect
        query = session.query(GridRow).filter(GridRow.table_id == table_id)

        if dialect == 'postgresql':
            data = GridRow.data
            return query.filter(data.op('?')(column_id)).update(
                {GridRow.data: data.op('-', return_type=JSONB)(column_id), GridRow.updated_at: utcnow()},
                synchronize_session=False
            )

        if dialect == 'sqlite':
            path = '$."{}"'.format(column_id.replace('"', '\\"'))
            return query.filter(func.json_type(GridRow.data, path).isnot(None)).update(
                {GridRow.data: func.json_remove(GridRow.data, path), GridRow.updated_at: utcnow()},
                synchronize_session=False
            )

        rewritten = 0
        for row in query.yield_per(SEARCH_FETCH_SIZE):
            if row.data and column_id in row.data:
                data = dict(row.data)
                del data[column_id]
                row.data = data
                rewritten += 1
        return rewritten

    # ========================================
    # Reads
    # ========================================

    def get_row(self, row_id: str) -> GridRow:
        with self._storage_errors('lookup'):
            with self.db.session_scope() as session:
                row = session.get(GridRow, row_id)
        if row is None:
            raise NotFoundError(f"Row not found: {row_id}")
        return row

    def scan(self, table_id: str, plan: QueryPlan, limit: Optional[int] = None, offset: int = 0) -> List[GridRow]:
        """
        Rows of a table matching a compiled plan, in plan order.

        Args:
            table_id: Table to scan
            plan: Compiled filter and sort
            limit: Maximum number of rows (None for all)
            offset: Rows to skip
        """
        with self._storage_errors('scan'):
            with self.db.session_scope() as session:
                query = session.query(GridRow).filter(GridRow.table_id == table_id)
                if not plan.filter.matches_all:
                    query = query.filter(plan.filter.where(GridRow.data))
                query = query.order_by(*plan.sort.order_by(GridRow))
                if offset:
                    query = query.offset(offset)
                if limit is not None:
                    query = query.limit(limit)
                return query.all()

    def count(self, table_id: str, compiled_filter: Optional[CompiledFilter] = None) -> int:
        """Number of rows of a table, optionally restricted by a compiled filter."""
        with self._storage_errors('count'):
            with self.db.session_scope() as session:
                query = session.query(func.count(GridRow.id)).filter(GridRow.table_id == table_id)
                if compiled_filter is not None and not compiled_filter.matches_all:
                    query = query.filter(compiled_filter.where(GridRow.data))
                return int(query.scalar() or 0)

    def count_job_rows(self, table_id: str, job_id: str) -> int:
        """Rows of a table written by ingestion job ``job_id``."""
        prefix = _like_literal(f"row_{job_id}_")
        with self._storage_errors('count'):
            with self.db.session_scope() as session:
                return int(
                    session.query(func.count(GridRow.id))
                    .filter(GridRow.table_id == table_id)
                    .filter(GridRow.id.like(f"{prefix}%", escape='\\'))
                    .scalar() or 0
                )

    def next_position(self, table_id: str) -> int:
        """Position after the current last row of a table."""
        with self._storage_errors('lookup'):
            with self.db.session_scope() as session:
                current = session.query(func.max(GridRow.position)).filter(
                    GridRow.table_id == table_id
                ).scalar()
        return 0 if current is None else int(current) + 1

    def search(self, table_ids: Sequence[str], needle: str, limit: int) -> List[GridRow]:
        """
        Rows whose cell values contain ``needle`` (case-insensitive).

        The serialized payload is pre-filtered in SQL with the needle escaped
        the way JSON escapes it; each candidate is then confirmed against its
        individual values so column ids never match.
        """
        if not table_ids or limit <= 0:
            return []

        found: List[GridRow] = []
        with self._storage_errors('search'):
            with self.db.session_scope() as session:
                query = (
                    session.query(GridRow)
                    .filter(GridRow.table_id.in_(list(table_ids)))
                    .filter(contains_clause(cast(GridRow.data, Text), _serialized_needle(needle)))
                    .order_by(GridRow.table_id, GridRow.position, GridRow.id)
                )
                for row in query.yield_per(SEARCH_FETCH_SIZE):
                    if any(text_contains(v, needle) for v in (row.data or {}).values()):
                        found.append(row)
                        if len(found) >= limit:
                            break
        return found

    def all_rows(self, table_id: str) -> List[GridRow]:
        """All rows of a table in position order."""
        with self._storage_errors('scan'):
            with self.db.session_scope() as session:
                return (
                    session.query(GridRow)
                    .filter(GridRow.table_id == table_id)
                    .order_by(GridRow.position, GridRow.id)
                    .all()
                )

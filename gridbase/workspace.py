"""
Workspace Service Module
Owner-gated operations on bases, tables, columns, rows and views.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence

from gridbase.cells import ColumnType, coerce_for_column
from gridbase.config_manager import ConfigManager
from gridbase.database.connection import DatabaseConnection, get_db
from gridbase.database.metadata import (
    MetadataStore, serialize_base, serialize_column, serialize_table, serialize_view
)
from gridbase.database.models import GridColumn, GridRow, GridTable, IngestionJob
from gridbase.database.row_store import RowStore, serialize_row
from gridbase.errors import NotFoundError, ValidationError
from gridbase.ingestion.encoder import encode_batch
from gridbase.query import compile_filter, compile_query, parse_filter_config, parse_sort_config
from gridbase.utils.helpers import chunk_list, random_suffix, utcnow
from gridbase.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_COLUMN_COUNT = 5
SAMPLE_ROW_COUNT = 50


def parse_page(limit: Any, offset: Any, query_config: Mapping[str, Any]) -> tuple:
    """
    Validate paging arguments.

    Returns:
        (limit, offset) with the configured default limit applied
    """
    max_limit = int(query_config['max_limit'])
    if limit is None or limit == '':
        limit = int(query_config['default_limit'])
    try:
        limit = int(limit)
        offset = int(offset or 0)
    except (TypeError, ValueError):
        raise ValidationError("limit and offset must be integers")
    if not 1 <= limit <= max_limit:
        raise ValidationError(f"limit must be between 1 and {max_limit}")
    if offset < 0:
        raise ValidationError("offset must be non-negative")
    return limit, offset


class WorkspaceService:
    """Every public method takes the acting user's id and checks ownership first."""

    def __init__(self, db: Optional[DatabaseConnection] = None, query_config: Optional[dict] = None,
                 batch_size: Optional[int] = None):
        self.db = db or get_db()
        config = ConfigManager()
        self.query_config = query_config or config.get_query_config()
        self.batch_size = batch_size or int(config.get_ingestion_config()['batch_size'])
        self.metadata = MetadataStore(self.db)
        self.rows = RowStore(self.db)

    # ========================================
    # Bases
    # ========================================

    def create_base(self, actor_id: str, name: str) -> Dict[str, Any]:
        return serialize_base(self.metadata.create_base(actor_id, name))

    def list_bases(self, actor_id: str) -> List[Dict[str, Any]]:
        return [serialize_base(b) for b in self.metadata.list_bases(actor_id)]

    # ========================================
    # Tables
    # ========================================

    def create_table(self, actor_id: str, base_id: str, name: str) -> Dict[str, Any]:
        """
        Create a table scaffolded with default TEXT columns and sample rows.

        Table, columns and rows are written in a single transaction.
        """
        self.metadata.ensure_base_owner(actor_id, base_id)

        with self.db.session_scope() as session:
            table = self.metadata.create_table(base_id, name, session=session)
            columns = [
                self.metadata.create_column(
                    table.id, f"Column {i + 1}", ColumnType.TEXT, display_order=i, session=session
                )
                for i in range(DEFAULT_COLUMN_COUNT)
            ]
            sample = [
                {c.id: f"sample_{random_suffix()}" for c in columns}
                for _ in range(SAMPLE_ROW_COUNT)
            ]
            self.rows.bulk_append(table.id, encode_batch(sample), session=session)

        logger.info(f"Created table {table.id} in base {base_id} with {SAMPLE_ROW_COUNT} sample rows")
        return {
            'table': serialize_table(table),
            'columns': [serialize_column(c) for c in columns],
        }

    def get_table(self, actor_id: str, table_id: str) -> Dict[str, Any]:
        table = self.metadata.ensure_owner(actor_id, table_id)
        data = serialize_table(table)
        data['columns'] = [serialize_column(c) for c in self.metadata.get_columns(table_id)]
        return data

    def delete_table(self, actor_id: str, table_id: str) -> None:
        """Delete a table with its rows, columns, views and ingestion jobs."""
        self.metadata.ensure_owner(actor_id, table_id)
        with self.db.session_scope() as session:
            removed = self.rows.delete_table_rows(table_id, session=session)
            session.query(IngestionJob).filter(IngestionJob.table_id == table_id).delete(
                synchronize_session=False
            )
            table = session.get(GridTable, table_id)
            if table is not None:
                session.delete(table)
        logger.info(f"Deleted table {table_id} ({removed:,} rows)")

    # ========================================
    # Columns
    # ========================================

    def add_column(self, actor_id: str, table_id: str, name: str,
                   column_type: Any = ColumnType.TEXT, order: Optional[int] = None) -> Dict[str, Any]:
        self.metadata.ensure_owner(actor_id, table_id)
        if order is None:
            order = len(self.metadata.get_columns(table_id))
        column = self.metadata.create_column(table_id, name, column_type, display_order=order)
        return serialize_column(column)

    def update_column(self, actor_id: str, column_id: str, name: Optional[str] = None,
                      column_type: Optional[Any] = None, order: Optional[int] = None) -> Dict[str, Any]:
        column = self.metadata.get_column(column_id)
        self.metadata.ensure_owner(actor_id, column.table_id)

        if column_type is not None:
            target = ColumnType.parse(column_type)
            if target is ColumnType.NUMBER and column.type != ColumnType.NUMBER.value:
                self._convert_to_number(column.table_id, column_id)

        updated = self.metadata.update_column(column_id, name=name, column_type=column_type, display_order=order)
        return serialize_column(updated)

    def _convert_to_number(self, table_id: str, column_id: str) -> None:
        """Rewrite a column's stored values as numbers; fails if any value is not numeric."""
        with self.db.session_scope() as session:
            query = session.query(GridRow).filter(GridRow.table_id == table_id)
            converted = 0
            for row in query.yield_per(500):
                data = row.data or {}
                if column_id not in data:
                    continue
                try:
                    value = coerce_for_column(data[column_id], ColumnType.NUMBER)
                except ValidationError:
                    raise ValidationError(
                        f"Column {column_id} cannot become NUMBER: row {row.id} holds {data[column_id]!r}"
                    )
                if value != data[column_id] or type(value) is not type(data[column_id]):
                    updated = dict(data)
                    updated[column_id] = value
                    row.data = updated
                    row.updated_at = utcnow()
                    converted += 1
        logger.info(f"Converted {converted:,} values of column {column_id} to NUMBER")

    def delete_column(self, actor_id: str, column_id: str) -> int:
        """
        Delete a column and remove its key from every row of the table.

        Returns:
            Number of rows whose payload was rewritten
        """
        column = self.metadata.get_column(column_id)
        self.metadata.ensure_owner(actor_id, column.table_id)

        with self.db.session_scope() as session:
            rewritten = self.rows.remove_key(column.table_id, column_id, session=session)
            session.query(GridColumn).filter(GridColumn.id == column_id).delete(synchronize_session=False)
        logger.info(f"Deleted column {column_id}; removed key from {rewritten:,} rows")
        return rewritten

    # ========================================
    # Rows
    # ========================================

    def list_rows(self, actor_id: str, table_id: str, filter_config: Any = None, sort_config: Any = None,
                  limit: Any = None, offset: Any = 0) -> List[Dict[str, Any]]:
        """One page of rows matching the filter, in sort order."""
        self.metadata.ensure_owner(actor_id, table_id)
        limit, offset = parse_page(limit, offset, self.query_config)
        plan = compile_query(filter_config, sort_config, self.metadata.column_types(table_id))
        return [serialize_row(r) for r in self.rows.scan(table_id, plan, limit=limit, offset=offset)]

    def count_rows(self, actor_id: str, table_id: str, filter_config: Any = None) -> int:
        self.metadata.ensure_owner(actor_id, table_id)
        compiled = compile_filter(filter_config, self.metadata.column_types(table_id))
        return self.rows.count(table_id, compiled)

    def insert_rows(self, actor_id: str, table_id: str, rows: Sequence[Mapping[str, Any]]) -> int:
        """
        Append rows after the current last position.

        Values are coerced to their column types; unknown column ids are
        rejected before anything is written.
        """
        self.metadata.ensure_owner(actor_id, table_id)
        if not isinstance(rows, (list, tuple)):
            raise ValidationError("rows must be a list of objects")

        types = self.metadata.column_types(table_id)
        prepared = []
        for i, row in enumerate(rows):
            if not isinstance(row, Mapping):
                raise ValidationError(f"Row {i} must be an object")
            prepared.append({key: self._coerce(types, key, value) for key, value in row.items()})

        position = self.rows.next_position(table_id)
        inserted = 0
        for batch_index, chunk in enumerate(chunk_list(prepared, self.batch_size)):
            payload = encode_batch(chunk, start_position=position, batch_index=batch_index)
            inserted += self.rows.bulk_append(table_id, payload)
            position += len(chunk)
        logger.info(f"Inserted {inserted:,} rows into table {table_id}")
        return inserted

    def update_cell(self, actor_id: str, row_id: str, column_id: str, value: Any) -> Dict[str, Any]:
        row = self.rows.get_row(row_id)
        self.metadata.ensure_owner(actor_id, row.table_id)
        coerced = self._coerce(self.metadata.column_types(row.table_id), column_id, value)
        return serialize_row(self.rows.update_cell(row_id, column_id, coerced))

    def delete_row(self, actor_id: str, row_id: str) -> None:
        row = self.rows.get_row(row_id)
        self.metadata.ensure_owner(actor_id, row.table_id)
        self.rows.delete_row(row_id)

    @staticmethod
    def _coerce(types: Mapping[str, ColumnType], column_id: str, value: Any) -> Any:
        if column_id not in types:
            raise NotFoundError(f"Column not found: {column_id}")
        return coerce_for_column(value, types[column_id])

    # ========================================
    # Views
    # ========================================

    def create_view(self, actor_id: str, table_id: str, name: str,
                    filter_config: Any = None, sort_config: Any = None) -> Dict[str, Any]:
        self.metadata.ensure_owner(actor_id, table_id)
        filters, sorts = self._validated_view_configs(table_id, filter_config, sort_config)
        view = self.metadata.create_view(
            table_id, name,
            filter_config=filters.to_dict() if filters else {},
            sort_config=sorts.to_list() if sorts else [],
        )
        return serialize_view(view)

    def list_views(self, actor_id: str, table_id: str) -> List[Dict[str, Any]]:
        self.metadata.ensure_owner(actor_id, table_id)
        return [serialize_view(v) for v in self.metadata.list_views(table_id)]

    def get_view(self, actor_id: str, view_id: str) -> Dict[str, Any]:
        view = self.metadata.get_view(view_id)
        self.metadata.ensure_owner(actor_id, view.table_id)
        return serialize_view(view)

    def update_view(self, actor_id: str, view_id: str, name: Optional[str] = None,
                    filter_config: Any = None, sort_config: Any = None) -> Dict[str, Any]:
        view = self.metadata.get_view(view_id)
        self.metadata.ensure_owner(actor_id, view.table_id)
        filters, sorts = self._validated_view_configs(view.table_id, filter_config, sort_config)
        updated = self.metadata.update_view(
            view_id,
            name=name,
            filter_config=filters.to_dict() if filters else None,
            sort_config=sorts.to_list() if sorts else None,
        )
        return serialize_view(updated)

    def list_view_rows(self, actor_id: str, view_id: str, limit: Any = None, offset: Any = 0) -> List[Dict[str, Any]]:
        """Rows of the view's table using the view's stored filter and sort."""
        view = self.metadata.get_view(view_id)
        return self.list_rows(
            actor_id, view.table_id,
            filter_config=view.filter_config or None,
            sort_config=view.sort_config or None,
            limit=limit, offset=offset,
        )

    def _validated_view_configs(self, table_id: str, filter_config: Any, sort_config: Any):
        filters = parse_filter_config(filter_config) if filter_config is not None else None
        sorts = parse_sort_config(sort_config) if sort_config is not None else None
        # Compiling checks every referenced column exists and every operand fits its type.
        compile_query(filters, sorts, self.metadata.column_types(table_id))
        return filters, sorts

    # ========================================
    # Search
    # ========================================

    def search(self, actor_id: str, query: Any, limit: Any = None) -> List[Dict[str, Any]]:
        """Case-insensitive search over every cell of the actor's tables."""
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("Search query is required")
        limit, _ = parse_page(limit, 0, self.query_config)
        table_ids = self.metadata.owned_table_ids(actor_id)
        return [serialize_row(r) for r in self.rows.search(table_ids, query, limit)]

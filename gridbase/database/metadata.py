"""
Metadata Store Module
Key-indexed access to bases, tables, columns and views, plus the ownership gate.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from gridbase.cells import ColumnType
from gridbase.database.connection import DatabaseConnection, get_db
from gridbase.database.models import GridBase, GridColumn, GridTable, TableView
from gridbase.errors import AuthorizationError, NotFoundError, ValidationError
from gridbase.utils.helpers import isoformat, new_id, utcnow
from gridbase.utils.logger import get_logger

logger = get_logger(__name__)


class MetadataStore:
    """Metadata queries and mutations for bases, tables, columns and views."""

    def __init__(self, db: Optional[DatabaseConnection] = None):
        self.db = db or get_db()

    # ========================================
    # Bases
    # ========================================

    def create_base(self, owner_id: str, name: str) -> GridBase:
        if not name or not name.strip():
            raise ValidationError("Base name is required")
        with self.db.session_scope() as session:
            base = GridBase(id=new_id('base'), name=name.strip(), owner_id=owner_id)
            session.add(base)
        logger.info(f"Created base {base.id} for {owner_id}")
        return base

    def list_bases(self, owner_id: str) -> List[GridBase]:
        with self.db.session_scope() as session:
            return (
                session.query(GridBase)
                .filter(GridBase.owner_id == owner_id)
                .order_by(GridBase.created_at)
                .all()
            )

    def get_base(self, base_id: str) -> GridBase:
        with self.db.session_scope() as session:
            base = session.get(GridBase, base_id)
        if base is None:
            raise NotFoundError(f"Base not found: {base_id}")
        return base

    def ensure_base_owner(self, actor_id: str, base_id: str) -> GridBase:
        base = self.get_base(base_id)
        if base.owner_id != actor_id:
            raise AuthorizationError("Forbidden")
        return base

    # ========================================
    # Tables
    # ========================================

    def create_table(self, base_id: str, name: str, session: Optional[Session] = None) -> GridTable:
        if not name or not name.strip():
            raise ValidationError("Table name is required")
        table = GridTable(id=new_id('tbl'), base_id=base_id, name=name.strip())
        if session is not None:
            session.add(table)
            session.flush()
            return table
        with self.db.session_scope() as own_session:
            own_session.add(table)
        return table

    def get_table(self, table_id: str) -> GridTable:
        with self.db.session_scope() as session:
            table = session.get(GridTable, table_id)
        if table is None:
            raise NotFoundError(f"Table not found: {table_id}")
        return table

    def ensure_owner(self, actor_id: str, table_id: str) -> GridTable:
        """
        Ownership gate: the actor must own the base holding the table.

        Raises:
            NotFoundError: unknown table
            AuthorizationError: actor is not the owner
        """
        with self.db.session_scope() as session:
            result = (
                session.query(GridTable, GridBase.owner_id)
                .join(GridBase, GridTable.base_id == GridBase.id)
                .filter(GridTable.id == table_id)
                .first()
            )
        if result is None:
            raise NotFoundError(f"Table not found: {table_id}")
        table, owner_id = result
        if owner_id != actor_id:
            logger.warning(f"Actor {actor_id} denied access to table {table_id}")
            raise AuthorizationError("Forbidden")
        return table

    def owned_table_ids(self, owner_id: str) -> List[str]:
        with self.db.session_scope() as session:
            rows = (
                session.query(GridTable.id)
                .join(GridBase, GridTable.base_id == GridBase.id)
                .filter(GridBase.owner_id == owner_id)
                .all()
            )
        return [r[0] for r in rows]

    # ========================================
    # Columns
    # ========================================

    def get_columns(self, table_id: str) -> List[GridColumn]:
        with self.db.session_scope() as session:
            return (
                session.query(GridColumn)
                .filter(GridColumn.table_id == table_id)
                .order_by(GridColumn.display_order, GridColumn.created_at)
                .all()
            )

    def column_types(self, table_id: str) -> Dict[str, ColumnType]:
        """Column id -> declared type, as consumed by the query compiler."""
        return {c.id: ColumnType.parse(c.type) for c in self.get_columns(table_id)}

    def create_column(self, table_id: str, name: str, column_type: Any = ColumnType.TEXT,
                      display_order: int = 0, session: Optional[Session] = None) -> GridColumn:
        if not name or not str(name).strip():
            raise ValidationError("Column name is required")
        if not isinstance(display_order, int) or isinstance(display_order, bool) or display_order < 0:
            raise ValidationError("Column order must be a non-negative integer")
        column = GridColumn(
            id=new_id('col'),
            table_id=table_id,
            name=str(name).strip(),
            type=ColumnType.parse(column_type).value,
            display_order=display_order,
        )
        if session is not None:
            session.add(column)
            session.flush()
            return column
        with self.db.session_scope() as own_session:
            own_session.add(column)
        return column

    def get_column(self, column_id: str) -> GridColumn:
        with self.db.session_scope() as session:
            column = session.get(GridColumn, column_id)
        if column is None:
            raise NotFoundError(f"Column not found: {column_id}")
        return column

    def update_column(self, column_id: str, name: Optional[str] = None,
                      column_type: Optional[Any] = None, display_order: Optional[int] = None) -> GridColumn:
        with self.db.session_scope() as session:
            column = session.get(GridColumn, column_id)
            if column is None:
                raise NotFoundError(f"Column not found: {column_id}")
            if name is not None:
                if not str(name).strip():
                    raise ValidationError("Column name is required")
                column.name = str(name).strip()
            if column_type is not None:
                column.type = ColumnType.parse(column_type).value
            if display_order is not None:
                if not isinstance(display_order, int) or isinstance(display_order, bool) or display_order < 0:
                    raise ValidationError("Column order must be a non-negative integer")
                column.display_order = display_order
            column.updated_at = utcnow()
            return column

    # ========================================
    # Views
    # ========================================

    def create_view(self, table_id: str, name: str, filter_config: Dict, sort_config: List) -> TableView:
        if not name or not name.strip():
            raise ValidationError("View name is required")
        view = TableView(
            id=new_id('view'),
            table_id=table_id,
            name=name.strip(),
            filter_config=filter_config,
            sort_config=sort_config,
        )
        with self.db.session_scope() as session:
            session.add(view)
        return view

    def get_view(self, view_id: str) -> TableView:
        with self.db.session_scope() as session:
            view = session.get(TableView, view_id)
        if view is None:
            raise NotFoundError(f"View not found: {view_id}")
        return view

    def list_views(self, table_id: str) -> List[TableView]:
        with self.db.session_scope() as session:
            return (
                session.query(TableView)
                .filter(TableView.table_id == table_id)
                .order_by(TableView.created_at)
                .all()
            )

    def update_view(self, view_id: str, name: Optional[str] = None,
                    filter_config: Optional[Dict] = None, sort_config: Optional[List] = None) -> TableView:
        with self.db.session_scope() as session:
            view = session.get(TableView, view_id)
            if view is None:
                raise NotFoundError(f"View not found: {view_id}")
            if name:
                view.name = name.strip()
            if filter_config is not None:
                view.filter_config = filter_config
            if sort_config is not None:
                view.sort_config = sort_config
            view.updated_at = utcnow()
            return view


def serialize_base(base: GridBase) -> Dict[str, Any]:
    return {
        'id': base.id,
        'name': base.name,
        'owner_id': base.owner_id,
        'created_at': isoformat(base.created_at),
    }


def serialize_table(table: GridTable) -> Dict[str, Any]:
    return {
        'id': table.id,
        'base_id': table.base_id,
        'name': table.name,
        'created_at': isoformat(table.created_at),
    }


def serialize_column(column: GridColumn) -> Dict[str, Any]:
    return {
        'id': column.id,
        'table_id': column.table_id,
        'name': column.name,
        'type': column.type,
        'order': column.display_order,
    }


def serialize_view(view: TableView) -> Dict[str, Any]:
    return {
        'id': view.id,
        'table_id': view.table_id,
        'name': view.name,
        'filter_config': view.filter_config or {},
        'sort_config': view.sort_config or [],
    }

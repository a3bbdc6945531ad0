"""
SQLAlchemy ORM Models
Defines all database models for the gridbase system.
"""

from sqlalchemy import (
    JSON, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship

from gridbase.utils.helpers import utcnow

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON on every other dialect.
CellMap = JSON().with_variant(JSONB(), 'postgresql')


# ============================================
# METADATA MODELS
# ============================================

class GridBase(Base):
    """Base model (an owned workspace grouping tables)."""
    __tablename__ = 'bases'

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    owner_id = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    tables = relationship("GridTable", back_populates="base", cascade="all, delete-orphan")


class GridTable(Base):
    """Table model."""
    __tablename__ = 'grid_tables'

    id = Column(String(64), primary_key=True)
    base_id = Column(String(64), ForeignKey('bases.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    base = relationship("GridBase", back_populates="tables")
    columns = relationship(
        "GridColumn", back_populates="table", cascade="all, delete-orphan",
        order_by="GridColumn.display_order"
    )
    views = relationship("TableView", back_populates="table", cascade="all, delete-orphan")


class GridColumn(Base):
    """Column model. The column id is the key used inside every row payload."""
    __tablename__ = 'grid_columns'

    id = Column(String(64), primary_key=True)
    table_id = Column(String(64), ForeignKey('grid_tables.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False, default='TEXT')  # 'TEXT', 'NUMBER'
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    table = relationship("GridTable", back_populates="columns")


class TableView(Base):
    """Saved filter/sort configuration for a table."""
    __tablename__ = 'table_views'

    id = Column(String(64), primary_key=True)
    table_id = Column(String(64), ForeignKey('grid_tables.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    filter_config = Column(JSON, nullable=False, default=dict)
    sort_config = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    table = relationship("GridTable", back_populates="views")


# ============================================
# PAYLOAD MODELS
# ============================================

class GridRow(Base):
    """Row model with a schemaless cell payload."""
    __tablename__ = 'grid_rows'

    id = Column(String(128), primary_key=True)
    table_id = Column(String(64), ForeignKey('grid_tables.id', ondelete='CASCADE'), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    data = Column(CellMap, nullable=False, default=dict)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('ix_grid_rows_table_position', 'table_id', 'position'),
    )


# ============================================
# INGESTION MODELS
# ============================================

class IngestionJob(Base):
    """Ingestion job ledger model."""
    __tablename__ = 'ingestion_jobs'

    id = Column(String(64), primary_key=True)
    table_id = Column(String(64), ForeignKey('grid_tables.id', ondelete='CASCADE'), nullable=False, index=True)
    status = Column(String(20), nullable=False, default='PENDING', index=True)  # PENDING, PROCESSING, COMPLETED, FAILED
    total_rows = Column(Integer, nullable=False, default=0)
    processed_rows = Column(Integer, nullable=False, default=0)
    base_position = Column(Integer)  # position of the job's first row, fixed when it first runs
    progress = Column(Float, nullable=False, default=0.0)
    error_message = Column(Text)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)

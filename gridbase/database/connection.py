"""
Database Connection Module
Handles connection pooling and session management using SQLAlchemy.
"""

import json
import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from gridbase.config_manager import ConfigManager
from gridbase.utils.logger import get_logger

logger = get_logger(__name__)


class EncodedCells(str):
    """A row payload that was already serialized to JSON by the batch encoder."""


def _serialize_json(value) -> str:
    # Pre-encoded payloads pass straight through to the driver.
    if isinstance(value, EncodedCells):
        return str(value)
    return json.dumps(value, allow_nan=False, ensure_ascii=False)


class DatabaseConnection:
    """Manages database connections with connection pooling."""

    def __init__(self, url: Optional[str] = None):
        """
        Initialize the engine.

        Args:
            url: Optional SQLAlchemy URL; defaults to the configured database
        """
        self._engine: Engine = None
        self._session_factory = None
        self._initialize_engine(url)

    def _initialize_engine(self, url: Optional[str]) -> None:
        """Create SQLAlchemy engine with connection pooling."""
        config = ConfigManager()
        db_config = config.get_database_config()

        db_url = url or self._build_connection_url(db_config)

        engine_kwargs = {
            'pool_pre_ping': True,
            'json_serializer': _serialize_json,
            'echo': os.getenv('SQL_ECHO', 'false').lower() == 'true',
        }

        if db_url.startswith('sqlite'):
            # Batch tasks write from worker threads.
            engine_kwargs['connect_args'] = {'check_same_thread': False, 'timeout': 30}
            logger.info(f"Initializing database connection to {db_url}")
        else:
            engine_kwargs.update({
                'pool_size': int(db_config.get('pool_size', 5)),
                'max_overflow': int(db_config.get('max_overflow', 10)),
                'pool_timeout': int(db_config.get('pool_timeout', 30)),
            })
            logger.info(
                f"Initializing database connection to {db_config.get('host')}:"
                f"{db_config.get('port')}/{db_config.get('name')}"
            )

        self._engine = create_engine(db_url, **engine_kwargs)

        # Returned ORM objects stay readable after their session closes.
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)

        logger.info("Database engine initialized successfully")

    def _build_connection_url(self, db_config: dict) -> str:
        """Build the connection URL from config."""
        if db_config.get('url'):
            url = str(db_config['url']).strip()
            if url.startswith('postgres://'):
                url = 'postgresql://' + url[len('postgres://'):]
            return url

        host = db_config.get('host', 'localhost')
        port = db_config.get('port', 5432)
        name = db_config.get('name', 'gridbase')
        user = db_config.get('user', 'gridbase')
        password = db_config.get('password') or ''

        return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{name}"

    @property
    def engine(self) -> Engine:
        """Get the SQLAlchemy engine."""
        return self._engine

    @property
    def dialect(self) -> str:
        """Name of the database dialect, e.g. 'postgresql' or 'sqlite'."""
        return self._engine.dialect.name

    def get_session(self) -> Session:
        """Create a new database session."""
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope around a series of operations.

        Usage:
            with db.session_scope() as session:
                session.query(...)
        """
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    def create_schema(self) -> None:
        """Create all tables."""
        from gridbase.database.models import Base
        Base.metadata.create_all(self._engine)

    def check_connection(self) -> bool:
        """
        Check if database connection is healthy.

        Returns:
            bool: True if connection is healthy, False otherwise.
        """
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.debug("Database connection health check passed")
            return True
        except Exception as e:
            logger.error(f"Database connection health check failed: {e}")
            return False

    def dispose(self) -> None:
        """Dispose of the connection pool."""
        if self._engine:
            self._engine.dispose()
            logger.info("Database connection pool disposed")


_default_connection: Optional[DatabaseConnection] = None


def get_db() -> DatabaseConnection:
    """Get the shared database connection instance."""
    global _default_connection
    if _default_connection is None:
        _default_connection = DatabaseConnection()
    return _default_connection


def set_db(connection: Optional[DatabaseConnection]) -> None:
    """Replace the shared database connection (used by the app factory and tests)."""
    global _default_connection
    _default_connection = connection

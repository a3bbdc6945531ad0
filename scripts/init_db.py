#!/usr/bin/env python
"""
Initialize Database Script
Creates the gridbase schema (bases, tables, columns, views, rows, ingestion jobs).
"""

import argparse
import sys
from pathlib import Path

from sqlalchemy import inspect

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from gridbase.utils.logger import setup_logging, get_logger
from gridbase.database.connection import DatabaseConnection
from gridbase.database.models import Base


def main():
    """Main entry point for database initialization."""
    parser = argparse.ArgumentParser(description='Initialize gridbase database schema')
    parser.add_argument(
        '--drop',
        action='store_true',
        help='Drop existing tables before creating (DANGEROUS)'
    )
    parser.add_argument(
        '--yes',
        action='store_true',
        help='Do not ask for confirmation before dropping'
    )
    parser.add_argument(
        '--url',
        help='SQLAlchemy database URL (defaults to the configured database)'
    )

    args = parser.parse_args()

    setup_logging()
    logger = get_logger(__name__)

    try:
        logger.info("Initializing database")

        db = DatabaseConnection(args.url)
        engine = db.engine

        if not db.check_connection():
            print("Error: Cannot connect to database")
            sys.exit(1)

        print(f"Database connection successful ({db.dialect})")

        if args.drop:
            confirm = 'yes' if args.yes else input("Are you sure you want to drop all tables? (yes/no): ")
            if confirm.lower() == 'yes':
                logger.warning("Dropping all tables")
                Base.metadata.drop_all(engine)
                print("All tables dropped")
            else:
                print("Cancelled")
                sys.exit(0)

        logger.info("Creating tables")
        db.create_schema()

        print(f"\n{'='*50}")
        print("Database Initialized Successfully")
        print(f"{'='*50}")

        tables = inspect(engine).get_table_names()
        print(f"\nTables created: {len(tables)}")
        for table in sorted(tables):
            print(f"  - {table}")

    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        print(f"\nError: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()

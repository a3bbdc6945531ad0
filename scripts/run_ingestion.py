#!/usr/bin/env python
"""
Run Ingestion Script
Claims (or creates) an ingestion job for a table and runs it in the foreground.
"""

import argparse
import sys
import time
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from gridbase.utils.logger import setup_logging, get_logger
from gridbase.config_manager import ConfigManager
from gridbase.database.connection import DatabaseConnection
from gridbase.ingestion import IngestionRunner


def main():
    """Main entry point for the ingestion script."""
    parser = argparse.ArgumentParser(description='Run a gridbase bulk ingestion job')
    parser.add_argument(
        '--table',
        help='Target table id (needed to create a job when none is pending)'
    )
    parser.add_argument(
        '--rows',
        type=int,
        default=1_000_000,
        help='Total rows for a newly created job (default 1,000,000)'
    )
    parser.add_argument('--batch-size', type=int, help='Override ingestion.batch_size')
    parser.add_argument('--concurrency', type=int, help='Override ingestion.concurrency')
    parser.add_argument('--url', help='SQLAlchemy database URL (defaults to the configured database)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log per-batch timings (DEBUG)')

    args = parser.parse_args()

    setup_logging({'level': 'DEBUG'} if args.verbose else None)
    logger = get_logger(__name__)

    ingestion_config = ConfigManager().get_ingestion_config()
    if args.batch_size:
        ingestion_config['batch_size'] = args.batch_size
    if args.concurrency:
        ingestion_config['concurrency'] = args.concurrency

    try:
        db = DatabaseConnection(args.url)
        runner = IngestionRunner(db, ingestion_config)

        job = runner.ledger.claim_or_create(args.table, args.rows)
        logger.info(f"Starting ingestion: job={job.id} table={job.table_id} rows={job.total_rows:,}")

        started = time.perf_counter()
        result = runner.run(job.id)
        elapsed = time.perf_counter() - started

        print(f"\n{'='*50}")
        print("Ingestion Complete")
        print(f"{'='*50}")
        print(f"Job ID: {result.id}")
        print(f"Table: {result.table_id}")
        print(f"Status: {result.status}")
        print(f"Rows Processed: {result.processed_rows:,} / {result.total_rows:,}")
        print(f"Progress: {result.progress:.2f}%")
        print(f"Duration: {elapsed:.2f}s")
        if elapsed > 0:
            print(f"Throughput: {result.processed_rows / elapsed:,.0f} rows/s")

    except Exception as e:
        logger.error(f"Ingestion failed: {e}")
        print(f"\nError: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()

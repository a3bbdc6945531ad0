"""
Flask Application Factory
Main entry point for the gridbase web application.
"""

import os
from datetime import datetime
from typing import Optional

import pytz
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from flask import Flask, jsonify
from flask_cors import CORS

from gridbase.config_manager import ConfigManager
from gridbase.database.connection import DatabaseConnection, get_db, set_db
from gridbase.errors import GridbaseError
from gridbase.ingestion import IngestionRunner, IngestionService
from gridbase.utils.helpers import utcnow_iso
from gridbase.utils.logger import get_logger, setup_logging
from gridbase.workspace import WorkspaceService

WORKER_JOB_ID = 'ingestion-worker'


def create_app(db: Optional[DatabaseConnection] = None, configure_logging: bool = True) -> Flask:
    """
    Application factory for Flask app.

    Args:
        db: Database connection to use; defaults to the configured one
        configure_logging: Install the root log handlers

    Returns:
        Configured Flask application
    """
    if configure_logging:
        setup_logging()
    logger = get_logger(__name__)

    app = Flask(__name__)

    app.config['SECRET_KEY'] = os.getenv('FLASK_SECRET_KEY', 'dev-secret-key-change-in-production')
    app.json.sort_keys = False

    CORS(app)

    if db is not None:
        set_db(db)
    db = get_db()

    app.extensions['gridbase'] = {
        'db': db,
        'workspace': WorkspaceService(db),
        'ingestion': IngestionService(db, on_job_created=lambda job_id: wake_ingestion_worker(app)),
        'scheduler': None,
    }

    # Register blueprints
    from gridbase.api.ingestion_routes import ingestion_bp
    from gridbase.api.row_routes import rows_bp
    from gridbase.api.workspace_routes import workspace_bp

    app.register_blueprint(workspace_bp)
    app.register_blueprint(rows_bp)
    app.register_blueprint(ingestion_bp)

    @app.route('/health', methods=['GET'])
    def health_check():
        """Health check endpoint."""
        db_healthy = db.check_connection()

        return jsonify({
            'status': 'healthy' if db_healthy else 'degraded',
            'timestamp': utcnow_iso(),
            'database': 'connected' if db_healthy else 'disconnected'
        })

    @app.route('/', methods=['GET'])
    def root():
        """Root endpoint with API info."""
        return jsonify({
            'name': 'gridbase API',
            'version': '1.0.0',
            'endpoints': {
                '/health': 'Health check',
                '/api/bases': 'Create (POST) or list (GET) bases',
                '/api/tables': 'Create table with default columns and sample rows (POST)',
                '/api/tables/<table_id>': 'Get (GET) or delete (DELETE) a table',
                '/api/tables/<table_id>/columns': 'Add column (POST)',
                '/api/columns/<column_id>': 'Update (PATCH) or delete (DELETE) a column',
                '/api/tables/<table_id>/rows': 'List rows (GET) or bulk insert (POST)',
                '/api/tables/<table_id>/rows/query': 'List rows with filter/sort in the body (POST)',
                '/api/tables/<table_id>/count': 'Count rows (GET)',
                '/api/rows/<row_id>': 'Update a cell (PATCH) or delete (DELETE) a row',
                '/api/tables/<table_id>/views': 'Create (POST) or list (GET) views',
                '/api/views/<view_id>': 'Get (GET) or update (PATCH) a view',
                '/api/views/<view_id>/rows': 'List rows through a view (GET)',
                '/api/search': 'Global search (GET)',
                '/api/ingestion/jobs': 'Start (POST) or list (GET) ingestion jobs',
                '/api/ingestion/jobs/<job_id>': 'Ingestion job status (GET)'
            }
        })

    # Error handlers
    @app.errorhandler(GridbaseError)
    def gridbase_error(error):
        if error.status_code >= 500:
            logger.error(f"{type(error).__name__}: {error.message}")
        return jsonify({
            'success': False,
            'error': error.message
        }), error.status_code

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({
            'success': False,
            'error': 'Not found'
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({
            'success': False,
            'error': 'Method not allowed'
        }), 405

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"Unhandled error: {getattr(error, 'original_exception', error)}")
        return jsonify({
            'success': False,
            'error': 'Internal server error'
        }), 500

    logger.info("Flask application created")

    return app


def create_scheduler(app: Flask) -> BackgroundScheduler:
    """
    Create the background scheduler hosting the ingestion worker.

    Args:
        app: Flask app whose database connection the worker uses

    Returns:
        Configured scheduler (not started)
    """
    logger = get_logger(__name__)
    config = ConfigManager()
    scheduler_config = config.get_scheduler_config()
    ingestion_config = config.get_ingestion_config()

    scheduler = BackgroundScheduler(timezone=pytz.UTC)
    app.extensions['gridbase']['scheduler'] = scheduler

    if not scheduler_config.get('enabled', True):
        logger.info("Scheduler is disabled")
        return scheduler

    runner = IngestionRunner(app.extensions['gridbase']['db'], ingestion_config)

    def ingestion_worker():
        """Run every pending or interrupted ingestion job."""
        try:
            runner.run_pending()
        except Exception as e:
            logger.error(f"Ingestion worker failed: {e}")

    scheduler.add_job(
        ingestion_worker,
        IntervalTrigger(seconds=int(ingestion_config['worker_interval_seconds'])),
        id=WORKER_JOB_ID,
        max_instances=1,
        coalesce=True,
        next_run_time=datetime.now(pytz.UTC),
    )

    return scheduler


def wake_ingestion_worker(app: Flask) -> None:
    """Bring the ingestion worker's next run forward to now."""
    scheduler = app.extensions['gridbase'].get('scheduler')
    if scheduler is None or not scheduler.running or scheduler.get_job(WORKER_JOB_ID) is None:
        return
    scheduler.modify_job(WORKER_JOB_ID, next_run_time=datetime.now(pytz.UTC))


if __name__ == '__main__':
    # Development server
    app = create_app()
    scheduler = create_scheduler(app)
    scheduler.start()

    try:
        app.run(
            host='0.0.0.0',
            port=int(os.getenv('FLASK_PORT', 6922)),
            debug=os.getenv('FLASK_DEBUG', 'false').lower() == 'true',
            use_reloader=False
        )
    except (KeyboardInterrupt, SystemExit):
        scheduler.shutdown()

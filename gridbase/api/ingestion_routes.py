"""
Ingestion API Blueprint
Provides REST endpoints for starting and monitoring bulk ingestion jobs.
"""

from flask import Blueprint, jsonify, request

from gridbase.api.common import actor_id, json_body, service
from gridbase.errors import ValidationError
from gridbase.workspace import parse_page
from gridbase.utils.logger import get_logger

logger = get_logger(__name__)

ingestion_bp = Blueprint('ingestion', __name__, url_prefix='/api/ingestion')


@ingestion_bp.route('/jobs', methods=['POST'])
def start_ingestion():
    """
    Start an ingestion job. Rows are written in the background.

    Body:
        table_id: Target table
        total_rows: Number of rows to generate

    Returns:
        202 with the job id
    """
    body = json_body()
    table_id = body.get('table_id') or body.get('tableId')
    total_rows = body.get('total_rows', body.get('totalRows'))
    if not table_id:
        raise ValidationError("table_id is required")

    accepted = service('ingestion').start_ingestion(actor_id(), table_id, total_rows)
    logger.info(f"Ingestion accepted via API: job={accepted['jobId']} table={table_id} rows={total_rows}")
    return jsonify({'success': True, **accepted}), 202


@ingestion_bp.route('/jobs/<job_id>', methods=['GET'])
def get_job(job_id: str):
    ingestion = service('ingestion')
    actor = actor_id()
    return jsonify({
        'success': True,
        **ingestion.get_job_status(job_id, actor_id=actor),
        'job': ingestion.get_job(job_id, actor_id=actor),
    })


@ingestion_bp.route('/jobs', methods=['GET'])
def list_jobs():
    """
    Recent jobs of a table.

    Query params:
        table_id: Table to list jobs for
        limit: Number of jobs to return (default 20)
    """
    table_id = request.args.get('table_id')
    if not table_id:
        raise ValidationError("table_id is required")
    limit, _ = parse_page(request.args.get('limit'), 0, service('workspace').query_config)
    jobs = service('ingestion').list_jobs(actor_id(), table_id, limit=limit)
    return jsonify({'success': True, 'count': len(jobs), 'jobs': jobs})

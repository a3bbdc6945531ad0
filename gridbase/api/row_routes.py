"""
Rows API Blueprint
Paged, filtered and sorted row listing plus row mutations.
"""

from flask import Blueprint, jsonify, request

from gridbase.api.common import actor_id, json_arg, json_body, service
from gridbase.errors import ValidationError
from gridbase.utils.logger import get_logger

logger = get_logger(__name__)

rows_bp = Blueprint('rows', __name__, url_prefix='/api')


@rows_bp.route('/tables/<table_id>/rows', methods=['GET'])
def list_rows(table_id: str):
    """
    List rows of a table.

    Query params:
        limit: Page size (default 20, max 100)
        offset: Rows to skip
        filter: JSON filter configuration
        sort: JSON sort configuration
    """
    rows = service('workspace').list_rows(
        actor_id(), table_id,
        filter_config=json_arg('filter'),
        sort_config=json_arg('sort'),
        limit=request.args.get('limit'),
        offset=request.args.get('offset', 0),
    )
    return jsonify({'success': True, 'count': len(rows), 'rows': rows})


@rows_bp.route('/tables/<table_id>/rows/query', methods=['POST'])
def query_rows(table_id: str):
    """Same as listing rows, with filter, sort and paging in the JSON body."""
    body = json_body()
    rows = service('workspace').list_rows(
        actor_id(), table_id,
        filter_config=body.get('filter'),
        sort_config=body.get('sort'),
        limit=body.get('limit'),
        offset=body.get('offset', 0),
    )
    return jsonify({'success': True, 'count': len(rows), 'rows': rows})


@rows_bp.route('/tables/<table_id>/rows', methods=['POST'])
def insert_rows(table_id: str):
    """
    Bulk insert rows.

    Body:
        rows: List of {column_id: value}
    """
    body = json_body()
    if 'rows' not in body:
        raise ValidationError("Body must contain 'rows'")
    inserted = service('workspace').insert_rows(actor_id(), table_id, body['rows'])
    return jsonify({'success': True, 'inserted': inserted}), 201


@rows_bp.route('/tables/<table_id>/count', methods=['GET'])
def count_rows(table_id: str):
    total = service('workspace').count_rows(actor_id(), table_id, filter_config=json_arg('filter'))
    return jsonify({'success': True, 'count': total})


@rows_bp.route('/rows/<row_id>', methods=['PATCH'])
def update_cell(row_id: str):
    """
    Update one cell.

    Body:
        column_id: Column to set
        value: String, number or null
    """
    body = json_body()
    column_id = body.get('column_id') or body.get('columnId')
    if not column_id:
        raise ValidationError("column_id is required")
    row = service('workspace').update_cell(actor_id(), row_id, column_id, body.get('value'))
    return jsonify({'success': True, 'row': row})


@rows_bp.route('/rows/<row_id>', methods=['DELETE'])
def delete_row(row_id: str):
    service('workspace').delete_row(actor_id(), row_id)
    return jsonify({'success': True})

"""
Workspace API Blueprint
REST endpoints for bases, tables, columns, views and global search.
"""

from flask import Blueprint, jsonify, request

from gridbase.api.common import actor_id, json_body, service
from gridbase.utils.logger import get_logger

logger = get_logger(__name__)

workspace_bp = Blueprint('workspace', __name__, url_prefix='/api')


# ========================================
# Bases
# ========================================

@workspace_bp.route('/bases', methods=['POST'])
def create_base():
    """
    Create a base owned by the caller.

    Body:
        name: Base name
    """
    body = json_body()
    base = service('workspace').create_base(actor_id(), body.get('name'))
    return jsonify({'success': True, 'base': base}), 201


@workspace_bp.route('/bases', methods=['GET'])
def list_bases():
    bases = service('workspace').list_bases(actor_id())
    return jsonify({'success': True, 'count': len(bases), 'bases': bases})


# ========================================
# Tables
# ========================================

@workspace_bp.route('/tables', methods=['POST'])
def create_table():
    """
    Create a table with default columns and sample rows.

    Body:
        base_id: Owning base
        name: Table name
    """
    body = json_body()
    base_id = body.get('base_id') or body.get('baseId')
    result = service('workspace').create_table(actor_id(), base_id, body.get('name'))
    return jsonify({'success': True, **result}), 201


@workspace_bp.route('/tables/<table_id>', methods=['GET'])
def get_table(table_id: str):
    table = service('workspace').get_table(actor_id(), table_id)
    return jsonify({'success': True, 'table': table})


@workspace_bp.route('/tables/<table_id>', methods=['DELETE'])
def delete_table(table_id: str):
    service('workspace').delete_table(actor_id(), table_id)
    return jsonify({'success': True})


# ========================================
# Columns
# ========================================

@workspace_bp.route('/tables/<table_id>/columns', methods=['POST'])
def add_column(table_id: str):
    """
    Add a column.

    Body:
        name: Display name
        type: TEXT or NUMBER (default TEXT)
        order: Display order (default: after the last column)
    """
    body = json_body()
    column = service('workspace').add_column(
        actor_id(), table_id, body.get('name'), body.get('type', 'TEXT'), body.get('order')
    )
    return jsonify({'success': True, 'column': column}), 201


@workspace_bp.route('/columns/<column_id>', methods=['PATCH'])
def update_column(column_id: str):
    body = json_body()
    column = service('workspace').update_column(
        actor_id(), column_id,
        name=body.get('name'), column_type=body.get('type'), order=body.get('order')
    )
    return jsonify({'success': True, 'column': column})


@workspace_bp.route('/columns/<column_id>', methods=['DELETE'])
def delete_column(column_id: str):
    rewritten = service('workspace').delete_column(actor_id(), column_id)
    return jsonify({'success': True, 'rows_updated': rewritten})


# ========================================
# Views
# ========================================

@workspace_bp.route('/tables/<table_id>/views', methods=['POST'])
def create_view(table_id: str):
    """
    Save a named filter/sort configuration.

    Body:
        name: View name
        filter: {"conditions": [...], "logic": "AND" | "OR"}
        sort: [{"columnId": ..., "direction": "asc" | "desc"}]
    """
    body = json_body()
    view = service('workspace').create_view(
        actor_id(), table_id, body.get('name'),
        filter_config=body.get('filter'), sort_config=body.get('sort')
    )
    return jsonify({'success': True, 'view': view}), 201


@workspace_bp.route('/tables/<table_id>/views', methods=['GET'])
def list_views(table_id: str):
    views = service('workspace').list_views(actor_id(), table_id)
    return jsonify({'success': True, 'count': len(views), 'views': views})


@workspace_bp.route('/views/<view_id>', methods=['GET'])
def get_view(view_id: str):
    view = service('workspace').get_view(actor_id(), view_id)
    return jsonify({'success': True, 'view': view})


@workspace_bp.route('/views/<view_id>', methods=['PATCH'])
def update_view(view_id: str):
    body = json_body()
    view = service('workspace').update_view(
        actor_id(), view_id, name=body.get('name'),
        filter_config=body.get('filter'), sort_config=body.get('sort')
    )
    return jsonify({'success': True, 'view': view})


@workspace_bp.route('/views/<view_id>/rows', methods=['GET'])
def list_view_rows(view_id: str):
    rows = service('workspace').list_view_rows(
        actor_id(), view_id,
        limit=request.args.get('limit'), offset=request.args.get('offset', 0)
    )
    return jsonify({'success': True, 'count': len(rows), 'rows': rows})


# ========================================
# Search
# ========================================

@workspace_bp.route('/search', methods=['GET'])
def search():
    """
    Search every cell of the caller's tables.

    Query params:
        q: Text to look for (case-insensitive)
        limit: Maximum rows (default 20, max 100)
    """
    rows = service('workspace').search(actor_id(), request.args.get('q'), request.args.get('limit'))
    return jsonify({'success': True, 'count': len(rows), 'rows': rows})

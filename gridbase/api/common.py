"""
Shared request helpers for the API blueprints.
"""

import json
from typing import Any, Dict

from flask import current_app, request

from gridbase.errors import AuthorizationError, ValidationError

ACTOR_HEADER = 'X-Actor-Id'


def actor_id() -> str:
    """Acting user's id from the request header."""
    value = (request.headers.get(ACTOR_HEADER) or '').strip()
    if not value:
        raise AuthorizationError(f"Missing {ACTOR_HEADER} header", status_code=401)
    return value


def json_body() -> Dict[str, Any]:
    """Request JSON object; an absent body is an empty object."""
    if not request.data:
        return {}
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def json_arg(name: str) -> Any:
    """A query-string parameter holding JSON, or None when absent."""
    raw = request.args.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except ValueError as e:
        raise ValidationError(f"Query parameter '{name}' is not valid JSON: {e}")


def service(name: str):
    """Service instance registered by the app factory."""
    return current_app.extensions['gridbase'][name]

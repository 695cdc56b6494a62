# Overview: Shared JSON error responses and query-string parsing for the API blueprints.

from flask import current_app, jsonify, request

from ..errors import PettyCashError, ValidationError
from ..extensions import db


def error_response(exc: PettyCashError):
    """Roll back and map a service error onto its HTTP status."""
    db.session.rollback()
    return jsonify(exc.to_dict()), exc.http_status


def unexpected_error(action: str):
    db.session.rollback()
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def query_int(name: str, default: int | None = None) -> int | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", field=name)

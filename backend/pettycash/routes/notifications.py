# Overview: Flask API routes for in-app notifications.

from flask import Blueprint, jsonify, g, request

from ..decorators import require_auth
from ..errors import PettyCashError
from ..services import notification_service
from .responses import error_response, query_int


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    """Query params: unread (1/true), limit (default 50)."""
    try:
        user_id = g.current_user.id
        unread_only = request.args.get("unread", "").lower() in {"1", "true", "yes"}
        items = notification_service.list_notifications(
            user_id, unread_only=unread_only, limit=query_int("limit", 50)
        )
        return jsonify({
            "items": [n.to_dict() for n in items],
            "count": len(items),
            "unread_count": notification_service.unread_count(user_id),
        }), 200
    except PettyCashError as e:
        return error_response(e)


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    notification = notification_service.mark_as_read(notification_id, g.current_user.id)
    if notification is None:
        return jsonify({"error": "Notification not found", "kind": "not_found"}), 404
    return jsonify(notification.to_dict()), 200


@notifications_bp.post("/read-all")
@require_auth
def mark_all_read_route():
    count = notification_service.mark_all_as_read(g.current_user.id)
    return jsonify({"marked": count}), 200

# Overview: Flask API routes for approval requests; parses input and returns JSON responses.

from flask import Blueprint, jsonify, g, request

from ..decorators import require_auth, require_permission
from ..errors import PettyCashError
from ..permissions import APPROVE_TRANSACTIONS, VIEW_TRANSACTIONS
from ..services import approval_service
from ..services.approval_service import DECISION_ALREADY_DECIDED
from .responses import error_response, json_body, query_int, unexpected_error
from .transactions import validate_rejection_reason


approvals_bp = Blueprint("approvals", __name__, url_prefix="/api/approvals")


def _decision_response(decision):
    if decision:
        return jsonify(decision.approval.to_dict(include_transaction=True)), 200
    status = 409 if decision.reason == DECISION_ALREADY_DECIDED else 403
    return jsonify({
        "error": decision.message,
        "kind": decision.reason,
        "approval": decision.approval.to_dict(),
    }), status


@approvals_bp.get("")
@require_auth
@require_permission(APPROVE_TRANSACTIONS)
def list_approvals_route():
    """
    Approvals submitted by other users.

    Query params: status (pending|approved|rejected|all, default pending), page, per_page
    """
    try:
        status = request.args.get("status", "pending")
        result = approval_service.list_approvals(
            g.current_user,
            status=status,
            page=query_int("page", 1),
            per_page=query_int("per_page"),
        )
        stats = approval_service.approval_stats(g.current_user)
        result["stats"] = stats
        result["pending_count"] = stats["pending"]
        result["filters"] = {"status": status}
        return jsonify(result), 200
    except PettyCashError as e:
        return error_response(e)


@approvals_bp.get("/submitted")
@require_auth
@require_permission(VIEW_TRANSACTIONS)
def submitted_approvals_route():
    """Approval requests submitted by the current user."""
    try:
        result = approval_service.get_submitted_approvals(
            g.current_user.id,
            page=query_int("page", 1),
            per_page=query_int("per_page"),
        )
        return jsonify(result), 200
    except PettyCashError as e:
        return error_response(e)


@approvals_bp.get("/<int:approval_id>")
@require_auth
@require_permission(VIEW_TRANSACTIONS)
def get_approval_route(approval_id: int):
    try:
        approval = approval_service.get_approval(approval_id)
        data = approval.to_dict(include_transaction=True)
        data["can_review"] = approval_service.can_be_reviewed_by(approval, g.current_user)
        return jsonify(data), 200
    except PettyCashError as e:
        return error_response(e)


@approvals_bp.post("/<int:approval_id>/approve")
@require_auth
@require_permission(APPROVE_TRANSACTIONS)
def approve_route(approval_id: int):
    """
    Request body (optional):
    {
        "notes": str
    }
    """
    try:
        approval = approval_service.get_approval(approval_id)
        decision = approval_service.approve(approval, g.current_user, notes=json_body().get("notes"))
        return _decision_response(decision)
    except PettyCashError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("approve request")


@approvals_bp.post("/<int:approval_id>/reject")
@require_auth
@require_permission(APPROVE_TRANSACTIONS)
def reject_route(approval_id: int):
    """
    Request body:
    {
        "rejection_reason": str,   // at least 10 characters
        "notes": str (optional)
    }
    """
    try:
        data = json_body()
        reason = validate_rejection_reason(data.get("rejection_reason"))
        approval = approval_service.get_approval(approval_id)
        decision = approval_service.reject(approval, g.current_user, reason, notes=data.get("notes"))
        return _decision_response(decision)
    except PettyCashError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("reject request")

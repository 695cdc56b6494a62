# Overview: Flask API routes for transactions; parses input and returns JSON responses.

from flask import Blueprint, jsonify, g, request, current_app

from ..decorators import require_auth, require_permission
from ..errors import PettyCashError, ValidationError
from ..permissions import (
    APPROVE_TRANSACTIONS,
    CREATE_TRANSACTIONS,
    DELETE_TRANSACTIONS,
    EDIT_TRANSACTIONS,
    VIEW_TRANSACTIONS,
)
from ..services import transaction_service
from .responses import error_response, json_body, query_int, unexpected_error


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def validate_rejection_reason(reason) -> str:
    """Reviewers must say why, in at least MIN_REJECTION_REASON_LENGTH characters."""
    minimum = current_app.config.get("MIN_REJECTION_REASON_LENGTH", 10)
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("Please provide a reason for rejection", field="rejection_reason")
    if len(reason.strip()) < minimum:
        raise ValidationError(
            f"Rejection reason must be at least {minimum} characters", field="rejection_reason"
        )
    return reason.strip()


@transactions_bp.get("")
@require_auth
@require_permission(VIEW_TRANSACTIONS)
def list_transactions_route():
    """
    Query params: status, direction (in|out|all), category_id, start_date,
    end_date, search, page, per_page.
    """
    try:
        result = transaction_service.list_transactions(
            status=request.args.get("status"),
            direction=request.args.get("direction"),
            category_id=query_int("category_id"),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
            search=request.args.get("search"),
            page=query_int("page", 1),
            per_page=query_int("per_page"),
        )
        return jsonify(result), 200
    except PettyCashError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("list transactions")


@transactions_bp.post("")
@require_auth
@require_permission(CREATE_TRANSACTIONS)
def create_transaction_route():
    """
    Request body:
    {
        "direction": "in" | "out",
        "amount": "125.50",
        "description": str,
        "transaction_date": "YYYY-MM-DD",
        "category_id": int (optional),
        "notes": str (optional)
    }

    Returns:
        201: Created (status "approved", or "pending" when the user's role requires review)
    """
    try:
        data = json_body()
        txn = transaction_service.create_transaction(
            owner=g.current_user,
            direction=data.get("direction"),
            amount=data.get("amount"),
            description=data.get("description"),
            transaction_date=data.get("transaction_date"),
            category_id=data.get("category_id"),
            notes=data.get("notes"),
        )
        return jsonify(txn.to_dict()), 201
    except PettyCashError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("create transaction")


@transactions_bp.get("/<int:transaction_id>")
@require_auth
@require_permission(VIEW_TRANSACTIONS)
def get_transaction_route(transaction_id: int):
    try:
        txn = transaction_service.get_transaction(transaction_id)
        data = txn.to_dict()
        data["approval"] = txn.approval.to_dict() if txn.approval else None
        return jsonify(data), 200
    except PettyCashError as e:
        return error_response(e)


@transactions_bp.patch("/<int:transaction_id>")
@require_auth
@require_permission(EDIT_TRANSACTIONS)
def update_transaction_route(transaction_id: int):
    try:
        txn = transaction_service.get_transaction(transaction_id)
        txn = transaction_service.update_transaction(txn, g.current_user, **json_body())
        return jsonify(txn.to_dict()), 200
    except PettyCashError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("update transaction")


@transactions_bp.delete("/<int:transaction_id>")
@require_auth
@require_permission(DELETE_TRANSACTIONS)
def delete_transaction_route(transaction_id: int):
    try:
        txn = transaction_service.get_transaction(transaction_id)
        transaction_service.delete_transaction(txn, g.current_user)
        return jsonify({"message": "Transaction deleted", "id": transaction_id}), 200
    except PettyCashError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("delete transaction")


@transactions_bp.post("/<int:transaction_id>/approve")
@require_auth
@require_permission(APPROVE_TRANSACTIONS)
def approve_transaction_route(transaction_id: int):
    try:
        txn = transaction_service.get_transaction(transaction_id)
        txn = transaction_service.approve_transaction(txn, g.current_user)
        return jsonify(txn.to_dict()), 200
    except PettyCashError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("approve transaction")


@transactions_bp.post("/<int:transaction_id>/reject")
@require_auth
@require_permission(APPROVE_TRANSACTIONS)
def reject_transaction_route(transaction_id: int):
    """
    Request body:
    {
        "rejection_reason": str   // at least 10 characters
    }
    """
    try:
        reason = validate_rejection_reason(json_body().get("rejection_reason"))
        txn = transaction_service.get_transaction(transaction_id)
        txn = transaction_service.reject_transaction(txn, g.current_user, reason)
        return jsonify(txn.to_dict()), 200
    except PettyCashError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("reject transaction")

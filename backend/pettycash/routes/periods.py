# Overview: Flask API routes for cash periods; parses input and returns JSON responses.

from flask import Blueprint, jsonify, g, request

from ..decorators import require_auth, require_permission
from ..errors import PettyCashError, ValidationError
from ..money import money, parse_amount, to_str
from ..permissions import MANAGE_TRANSACTIONS, VIEW_TRANSACTIONS
from ..services import balance_service, period_service
from .responses import error_response, json_body, query_int, unexpected_error


periods_bp = Blueprint("periods", __name__, url_prefix="/api/periods")


def _period_detail(period) -> dict:
    data = period.to_dict()
    data["balance"] = balance_service.period_balance(period.period_start, period.period_end).to_dict()
    data["transactions"] = [t.to_dict() for t in balance_service.transactions_for_period(period)]
    return data


@periods_bp.get("")
@require_auth
@require_permission(VIEW_TRANSACTIONS)
def list_periods_route():
    try:
        result = period_service.list_periods(
            status=request.args.get("status"),
            page=query_int("page", 1),
            per_page=query_int("per_page"),
        )
        active = balance_service.active_period()
        result["active_period_id"] = active.id if active else None
        result["suggested_opening_balance"] = to_str(period_service.suggested_opening_balance())
        return jsonify(result), 200
    except PettyCashError as e:
        return error_response(e)


@periods_bp.post("")
@require_auth
@require_permission(MANAGE_TRANSACTIONS)
def create_period_route():
    """
    Request body:
    {
        "period_start": "YYYY-MM-DD",
        "period_end": "YYYY-MM-DD",        // after period_start
        "opening_balance": "10000.00",     // optional; carried from the last settled period
        "notes": str (optional)
    }

    Returns:
        201: Created
        409: Overlaps an existing period
    """
    try:
        data = json_body()
        period = period_service.create_period(
            start=data.get("period_start"),
            end=data.get("period_end"),
            actor=g.current_user,
            opening_balance=data.get("opening_balance"),
            notes=data.get("notes"),
        )
        return jsonify(period.to_dict()), 201
    except PettyCashError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("create cash period")


@periods_bp.get("/<int:period_id>")
@require_auth
@require_permission(VIEW_TRANSACTIONS)
def get_period_route(period_id: int):
    try:
        return jsonify(_period_detail(period_service.get_period(period_id))), 200
    except PettyCashError as e:
        return error_response(e)


@periods_bp.delete("/<int:period_id>")
@require_auth
@require_permission(MANAGE_TRANSACTIONS)
def delete_period_route(period_id: int):
    try:
        period = period_service.get_period(period_id)
        period_service.delete_period(period, g.current_user)
        return jsonify({"message": "Cash period deleted", "id": period_id}), 200
    except PettyCashError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("delete cash period")


@periods_bp.post("/<int:period_id>/reconcile")
@require_auth
@require_permission(MANAGE_TRANSACTIONS)
def reconcile_period_route(period_id: int):
    """
    Request body:
    {
        "counted_balance": "12500.00",
        "discrepancy_notes": str   // required when the count differs from the system balance
    }
    """
    try:
        data = json_body()
        period = period_service.get_period(period_id)
        counted = parse_amount(data.get("counted_balance"), "counted_balance", allow_zero=True)
        notes = data.get("discrepancy_notes")

        system = balance_service.period_balance(period.period_start, period.period_end).closing_balance
        if money(counted) != money(system) and not (isinstance(notes, str) and notes.strip()):
            raise ValidationError(
                "Please provide notes explaining the discrepancy", field="discrepancy_notes"
            )

        period = period_service.reconcile_period(period, counted, g.current_user, notes=notes)
        return jsonify(_period_detail(period)), 200
    except PettyCashError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("reconcile cash period")


@periods_bp.post("/<int:period_id>/close")
@require_auth
@require_permission(MANAGE_TRANSACTIONS)
def close_period_route(period_id: int):
    try:
        period = period_service.get_period(period_id)
        period = period_service.close_period(period, g.current_user)
        return jsonify(period.to_dict()), 200
    except PettyCashError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("close cash period")

# Overview: Flask API routes for the period ledger; read-only balance queries.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import PettyCashError, ValidationError
from ..money import to_str
from ..permissions import VIEW_BUDGETS, VIEW_TRANSACTIONS
from ..services import balance_service, budget_service
from ..time_utils import parse_iso_date, today
from .responses import error_response, query_int


balance_bp = Blueprint("balance", __name__, url_prefix="/api/balance")

MAX_HISTORY_DAYS = 366


def _date_arg(name: str, required: bool = True):
    try:
        value = parse_iso_date(request.args.get(name))
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be YYYY-MM-DD", field=name)
    if value is None and required:
        raise ValidationError(f"{name} is required", field=name)
    return value


@balance_bp.get("")
@require_auth
@require_permission(VIEW_TRANSACTIONS)
def current_balance_route():
    """Query params: as_of (YYYY-MM-DD, default today)."""
    try:
        as_of = _date_arg("as_of", required=False)
        balance = balance_service.current_balance(as_of)
        active = balance_service.active_period()
        return jsonify({
            "as_of": (as_of.isoformat() if as_of else None),
            "balance": to_str(balance),
            "low_balance_threshold": to_str(balance_service.low_balance_threshold()),
            "needs_low_balance_alert": balance_service.needs_low_balance_alert(balance),
            "active_period": active.to_dict() if active else None,
        }), 200
    except PettyCashError as e:
        return error_response(e)


@balance_bp.get("/today")
@require_auth
@require_permission(VIEW_TRANSACTIONS)
def today_route():
    summary = balance_service.today_summary()
    return jsonify(summary.to_dict()), 200


@balance_bp.get("/history")
@require_auth
@require_permission(VIEW_TRANSACTIONS)
def history_route():
    """Query params: start, end (YYYY-MM-DD, inclusive, at most 366 days)."""
    try:
        start = _date_arg("start")
        end = _date_arg("end")
        history = balance_service.balance_history(start, end)
        if len(history) > MAX_HISTORY_DAYS:
            raise ValidationError(f"History is limited to {MAX_HISTORY_DAYS} days", field="end")
        return jsonify({"items": [day.to_dict() for day in history], "count": len(history)}), 200
    except PettyCashError as e:
        return error_response(e)


@balance_bp.get("/period")
@require_auth
@require_permission(VIEW_TRANSACTIONS)
def period_route():
    try:
        balance = balance_service.period_balance(_date_arg("start"), _date_arg("end"))
        return jsonify(balance.to_dict()), 200
    except PettyCashError as e:
        return error_response(e)


@balance_bp.get("/summary")
@require_auth
@require_permission(VIEW_TRANSACTIONS)
def summary_route():
    """Query params: months (default 6, max 24)."""
    try:
        months = query_int("months", 6)
        if months > 24:
            raise ValidationError("months must be at most 24", field="months")
        return jsonify({"items": balance_service.balance_summary(months)}), 200
    except PettyCashError as e:
        return error_response(e)


@balance_bp.get("/budgets")
@require_auth
@require_permission(VIEW_BUDGETS)
def budget_alerts_route():
    try:
        on = _date_arg("date", required=False)
        return jsonify({"items": budget_service.budget_alerts(on)}), 200
    except PettyCashError as e:
        return error_response(e)


@balance_bp.get("/budgets/check")
@require_auth
@require_permission(VIEW_BUDGETS)
def budget_check_route():
    """Query params: category_id, amount, date (YYYY-MM-DD, default today)."""
    try:
        category_id = query_int("category_id")
        if category_id is None:
            raise ValidationError("category_id is required", field="category_id")
        on = _date_arg("date", required=False) or today()
        result = budget_service.would_exceed_budget(category_id, request.args.get("amount"), on)
        return jsonify(result), 200
    except PettyCashError as e:
        return error_response(e)


@balance_bp.get("/budgets/spending")
@require_auth
@require_permission(VIEW_BUDGETS)
def category_spending_route():
    """Query params: start, end (YYYY-MM-DD, inclusive)."""
    try:
        items = budget_service.category_spending_summary(_date_arg("start"), _date_arg("end"))
        return jsonify({"items": items}), 200
    except PettyCashError as e:
        return error_response(e)

# Overview: Service-layer operations for budgets; read-only consumer of the ledger.

from __future__ import annotations

from datetime import date
from decimal import Decimal

from ..errors import ConflictError, ValidationError
from ..extensions import db
from ..models import Budget, Category
from ..money import ZERO, money, parse_amount, to_str
from ..time_utils import parse_iso_date, to_iso_date, today
from .balance_service import category_spent


HUNDRED = Decimal("100")


def _percentage(spent: Decimal, amount: Decimal) -> Decimal:
    if amount <= 0:
        return ZERO
    return money(spent / amount * HUNDRED)


def budget_status(budget: Budget) -> dict:
    """Spent/remaining figures for a budget, derived from approved cash-out."""
    amount = money(budget.amount)
    spent = category_spent(budget.category_id, budget.start_date, budget.end_date)
    percentage = _percentage(spent, amount)
    exceeded = spent > amount
    return {
        "id": budget.id,
        "category_id": budget.category_id,
        "category": budget.category.name if budget.category else None,
        "amount": to_str(amount),
        "start_date": to_iso_date(budget.start_date),
        "end_date": to_iso_date(budget.end_date),
        "alert_threshold": to_str(budget.alert_threshold),
        "spent_amount": to_str(spent),
        "remaining_amount": to_str(amount - spent),
        "percentage_spent": to_str(percentage),
        "is_exceeded": exceeded,
        "is_alert_threshold_reached": percentage >= money(budget.alert_threshold),
    }


def active_budgets(on: date | None = None) -> list[Budget]:
    on = on or today()
    return (
        db.session.query(Budget)
        .filter(Budget.start_date <= on, Budget.end_date >= on)
        .order_by(Budget.id.asc())
        .all()
    )


def budget_alerts(on: date | None = None) -> list[dict]:
    """Active budgets that are exceeded or past their alert threshold, worst first."""
    alerts = []
    for budget in active_budgets(on):
        status = budget_status(budget)
        if not (status["is_exceeded"] or status["is_alert_threshold_reached"]):
            continue
        if status["is_exceeded"]:
            status["severity"] = "danger"
            status["message"] = f"Budget exceeded for {status['category']}"
        else:
            status["severity"] = "warning"
            status["message"] = f"Budget alert: {status['percentage_spent']}% spent on {status['category']}"
        alerts.append(status)

    alerts.sort(key=lambda a: Decimal(a["percentage_spent"]), reverse=True)
    return alerts


def budget_for_category(category_id: int, on: date) -> Budget | None:
    return (
        db.session.query(Budget)
        .filter(
            Budget.category_id == category_id,
            Budget.start_date <= on,
            Budget.end_date >= on,
        )
        .order_by(Budget.start_date.desc())
        .first()
    )


def would_exceed_budget(category_id: int, amount, on) -> dict:
    """Would an extra cash-out of amount on the given date push the category over budget?"""
    amount = parse_amount(amount, "amount")
    try:
        on = parse_iso_date(on)
    except (TypeError, ValueError):
        raise ValidationError("date must be YYYY-MM-DD", field="date")
    if on is None:
        raise ValidationError("date is required", field="date")

    budget = budget_for_category(category_id, on)
    if budget is None:
        return {"has_budget": False, "would_exceed": False, "message": None}

    spent = category_spent(category_id, budget.start_date, budget.end_date)
    new_total = spent + amount
    would_exceed = new_total > money(budget.amount)
    return {
        "has_budget": True,
        "would_exceed": would_exceed,
        "budget_amount": to_str(budget.amount),
        "current_spent": to_str(spent),
        "new_total": to_str(new_total),
        "remaining": to_str(money(budget.amount) - new_total),
        "message": "This transaction would exceed the budget for this category." if would_exceed else None,
    }


def _parse_range(start, end) -> tuple[date, date]:
    try:
        start_date = parse_iso_date(start)
        end_date = parse_iso_date(end)
    except (TypeError, ValueError):
        raise ValidationError("Dates must be YYYY-MM-DD", field="start_date")
    if start_date is None or end_date is None or end_date < start_date:
        raise ValidationError("end_date must not be before start_date", field="end_date")
    return start_date, end_date


def _overlapping(query, start: date, end: date):
    return query.filter(
        db.or_(
            Budget.start_date.between(start, end),
            Budget.end_date.between(start, end),
            db.and_(Budget.start_date <= start, Budget.end_date >= end),
        )
    )


def has_overlapping_budget(category_id: int, start: date, end: date, exclude_id: int | None = None) -> bool:
    """True when another budget of the category shares a day with [start, end]."""
    query = _overlapping(db.session.query(Budget.id).filter(Budget.category_id == category_id), start, end)
    if exclude_id is not None:
        query = query.filter(Budget.id != exclude_id)
    return query.first() is not None


def category_spending_summary(start, end) -> list[dict]:
    """
    Approved cash-out per active category over [start, end], biggest spender first.

    The budget shown is the earliest one touching the range; percentage_spent
    is 0.00 for categories without one.
    """
    start_date, end_date = _parse_range(start, end)

    rows = []
    for category in db.session.query(Category).filter(Category.is_active.is_(True)).order_by(Category.name):
        spent = category_spent(category.id, start_date, end_date)
        budget = (
            _overlapping(db.session.query(Budget).filter(Budget.category_id == category.id), start_date, end_date)
            .order_by(Budget.start_date.asc(), Budget.id.asc())
            .first()
        )
        rows.append({
            "category_id": category.id,
            "category": category.name,
            "total_spent": to_str(spent),
            "budget": to_str(budget.amount) if budget else None,
            "percentage_spent": to_str(_percentage(spent, money(budget.amount)) if budget else ZERO),
        })

    rows.sort(key=lambda r: Decimal(r["total_spent"]), reverse=True)
    return rows


def create_budget(*, category_id: int, amount, start, end, alert_threshold=80) -> Budget:
    """Seed a budget (CLI)."""
    amount = parse_amount(amount, "amount")
    start_date, end_date = _parse_range(start, end)
    threshold = money(alert_threshold)
    if threshold <= 0 or threshold > HUNDRED:
        raise ValidationError("alert_threshold must be between 0 and 100", field="alert_threshold")
    if has_overlapping_budget(category_id, start_date, end_date):
        raise ConflictError(
            "This budget overlaps with an existing budget for the category",
            field="start_date",
        )

    budget = Budget(
        category_id=category_id,
        amount=amount,
        start_date=start_date,
        end_date=end_date,
        alert_threshold=threshold,
    )
    db.session.add(budget)
    db.session.commit()
    return budget

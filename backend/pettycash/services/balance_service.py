# Overview: Service-layer operations for the period ledger; balances, history and summaries.

"""
Period Ledger

WHY: The fund balance is never stored. It is derived from approved
transactions plus the opening balance of the period that covers a date, and
periods chain: with no period covering a date, the last settled period's
closing balance carries forward.

RULES:
- Only approved, non-deleted transactions count. Pending and rejected
  transactions never move a balance.
- Cash-in adds, cash-out subtracts.
- Amounts are Decimal, quantized to 2 places.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, asdict
from datetime import date, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import CashPeriod, Transaction
from ..models.ledger import DIRECTION_IN, DIRECTION_OUT, STATUS_APPROVED
from ..models.periods import PERIOD_STATUS_ACTIVE, SETTLED_STATUSES
from ..money import ZERO, money, to_str
from ..time_utils import to_iso_date, today


DEFAULT_LOW_BALANCE_THRESHOLD = "1000.00"


@dataclass(frozen=True)
class PeriodBalance:
    opening_balance: Decimal
    cash_in: Decimal
    cash_out: Decimal
    net_flow: Decimal
    closing_balance: Decimal
    period_start: date
    period_end: date

    def to_dict(self) -> dict:
        return {
            "opening_balance": to_str(self.opening_balance),
            "cash_in": to_str(self.cash_in),
            "cash_out": to_str(self.cash_out),
            "net_flow": to_str(self.net_flow),
            "closing_balance": to_str(self.closing_balance),
            "period_start": to_iso_date(self.period_start),
            "period_end": to_iso_date(self.period_end),
        }


@dataclass(frozen=True)
class DailyBalance:
    date: date
    cash_in: Decimal
    cash_out: Decimal
    net_flow: Decimal
    running_balance: Decimal
    transaction_count: int

    def to_dict(self) -> dict:
        data = asdict(self)
        for key in ("cash_in", "cash_out", "net_flow", "running_balance"):
            data[key] = to_str(data[key])
        data["date"] = to_iso_date(self.date)
        return data


def _approved():
    return db.session.query(Transaction).filter(
        Transaction.status == STATUS_APPROVED,
        Transaction.deleted_at.is_(None),
    )


def _approved_totals(start: date | None, end: date | None, category_id: int | None = None) -> dict:
    query = db.session.query(
        Transaction.direction,
        func.coalesce(func.sum(Transaction.amount), 0),
        func.count(Transaction.id),
    ).filter(
        Transaction.status == STATUS_APPROVED,
        Transaction.deleted_at.is_(None),
    )
    if start is not None:
        query = query.filter(Transaction.transaction_date >= start)
    if end is not None:
        query = query.filter(Transaction.transaction_date <= end)
    if category_id is not None:
        query = query.filter(Transaction.category_id == category_id)

    totals = {DIRECTION_IN: ZERO, DIRECTION_OUT: ZERO, "count": 0}
    for direction, total, count in query.group_by(Transaction.direction).all():
        totals[direction] = money(total)
        totals["count"] += int(count or 0)
    return totals


def _check_range(start: date, end: date) -> None:
    if start is None or end is None:
        raise ValidationError("start and end dates are required", field="start" if start is None else "end")
    if end < start:
        raise ValidationError("end date must not be before start date", field="end")


def _live_periods():
    return db.session.query(CashPeriod).filter(CashPeriod.deleted_at.is_(None))


# =============================================================================
# BALANCES
# =============================================================================

def period_covering(on: date) -> CashPeriod | None:
    return (
        _live_periods()
        .filter(CashPeriod.period_start <= on, CashPeriod.period_end >= on)
        .order_by(CashPeriod.period_start.desc())
        .first()
    )


def latest_settled_period(before: date | None = None) -> CashPeriod | None:
    query = _live_periods().filter(CashPeriod.status.in_(SETTLED_STATUSES))
    if before is not None:
        query = query.filter(CashPeriod.period_end < before)
    return query.order_by(CashPeriod.period_end.desc(), CashPeriod.id.desc()).first()


def carried_balance(period: CashPeriod) -> Decimal:
    """What a settled period hands to the next one."""
    if period.closing_balance is not None:
        return money(period.closing_balance)
    return money(period.opening_balance)


def opening_balance(on: date) -> Decimal:
    """
    Opening balance in effect on a date.

    1. The covering period's opening balance
    2. Else the latest settled period ending before the date (chaining)
    3. Else 0.00
    """
    covering = period_covering(on)
    if covering is not None:
        return money(covering.opening_balance)

    previous = latest_settled_period(before=on)
    if previous is not None:
        return carried_balance(previous)

    return ZERO


def transaction_balance(start: date | None = None, end: date | None = None) -> Decimal:
    """Approved cash-in minus cash-out in [start, end]; a None bound is open."""
    totals = _approved_totals(start, end)
    return totals[DIRECTION_IN] - totals[DIRECTION_OUT]


def period_balance(start: date, end: date) -> PeriodBalance:
    _check_range(start, end)
    opening = opening_balance(start)
    totals = _approved_totals(start, end)
    net_flow = totals[DIRECTION_IN] - totals[DIRECTION_OUT]
    return PeriodBalance(
        opening_balance=opening,
        cash_in=totals[DIRECTION_IN],
        cash_out=totals[DIRECTION_OUT],
        net_flow=net_flow,
        closing_balance=opening + net_flow,
        period_start=start,
        period_end=end,
    )


def current_balance(as_of: date | None = None) -> Decimal:
    """
    Opening balance on as_of plus every approved movement up to as_of.

    NOTE: transactions before the covering period's start are summed on top
    of its opening balance as well. Callers relying on exact period
    arithmetic should use period_balance().
    """
    if as_of is None:
        as_of = today()
    return opening_balance(as_of) + transaction_balance(None, as_of)


def low_balance_threshold() -> Decimal:
    return money(current_app.config.get("LOW_BALANCE_THRESHOLD", DEFAULT_LOW_BALANCE_THRESHOLD))


def needs_low_balance_alert(balance) -> bool:
    return money(balance) < low_balance_threshold()


# =============================================================================
# HISTORY
# =============================================================================

class BalanceHistory:
    """
    Daily balances from start to end inclusive, one entry per day.

    Lazy: nothing is queried until iteration. Each iteration re-reads the
    ledger, so the sequence can be walked any number of times.
    """

    def __init__(self, start: date, end: date):
        _check_range(start, end)
        self.start = start
        self.end = end

    def __len__(self) -> int:
        return (self.end - self.start).days + 1

    def _daily_totals(self) -> dict:
        rows = (
            db.session.query(
                Transaction.transaction_date,
                Transaction.direction,
                func.coalesce(func.sum(Transaction.amount), 0),
                func.count(Transaction.id),
            )
            .filter(
                Transaction.status == STATUS_APPROVED,
                Transaction.deleted_at.is_(None),
                Transaction.transaction_date >= self.start,
                Transaction.transaction_date <= self.end,
            )
            .group_by(Transaction.transaction_date, Transaction.direction)
            .all()
        )
        days: dict = {}
        for day, direction, total, count in rows:
            entry = days.setdefault(day, {DIRECTION_IN: ZERO, DIRECTION_OUT: ZERO, "count": 0})
            entry[direction] = money(total)
            entry["count"] += int(count or 0)
        return days

    def __iter__(self):
        running = opening_balance(self.start)
        days = self._daily_totals()
        empty = {DIRECTION_IN: ZERO, DIRECTION_OUT: ZERO, "count": 0}

        current = self.start
        while current <= self.end:
            totals = days.get(current, empty)
            net_flow = totals[DIRECTION_IN] - totals[DIRECTION_OUT]
            running += net_flow
            yield DailyBalance(
                date=current,
                cash_in=totals[DIRECTION_IN],
                cash_out=totals[DIRECTION_OUT],
                net_flow=net_flow,
                running_balance=running,
                transaction_count=totals["count"],
            )
            current += timedelta(days=1)


def balance_history(start: date, end: date) -> BalanceHistory:
    return BalanceHistory(start, end)


def today_summary() -> DailyBalance:
    on = today()
    totals = _approved_totals(on, on)
    return DailyBalance(
        date=on,
        cash_in=totals[DIRECTION_IN],
        cash_out=totals[DIRECTION_OUT],
        net_flow=totals[DIRECTION_IN] - totals[DIRECTION_OUT],
        running_balance=current_balance(on),
        transaction_count=totals["count"],
    )


# =============================================================================
# SUMMARIES
# =============================================================================

def _shift_month(year: int, month: int, back: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) - back
    return index // 12, index % 12 + 1


def balance_summary(months: int = 6) -> list[dict]:
    """Month-by-month period balances, oldest first, ending with the current month."""
    if months < 1:
        raise ValidationError("months must be at least 1", field="months")

    now = today()
    summary = []
    for back in range(months):
        year, month = _shift_month(now.year, now.month, back)
        start = date(year, month, 1)
        end = date(year, month, calendar.monthrange(year, month)[1])

        row = period_balance(start, end).to_dict()
        period = period_covering(start)
        row.update({
            "month": start.strftime("%B %Y"),
            "status": period.status if period else "no_record",
            "is_reconciled": bool(period and period.is_reconciled()),
            "cash_period_id": period.id if period else None,
        })
        summary.append(row)

    summary.reverse()
    return summary


def transactions_for_period(period: CashPeriod) -> list[Transaction]:
    return (
        _approved()
        .filter(
            Transaction.transaction_date >= period.period_start,
            Transaction.transaction_date <= period.period_end,
        )
        .order_by(Transaction.transaction_date.desc(), Transaction.created_at.desc(), Transaction.id.desc())
        .all()
    )


def active_period() -> CashPeriod | None:
    return (
        _live_periods()
        .filter(CashPeriod.status == PERIOD_STATUS_ACTIVE)
        .order_by(CashPeriod.period_start.desc())
        .first()
    )


def category_spent(category_id: int, start: date, end: date) -> Decimal:
    """Approved cash-out booked against a category in [start, end]."""
    return _approved_totals(start, end, category_id=category_id)[DIRECTION_OUT]

# Overview: Service-layer operations for cash periods; overlap guard and reconciliation.

"""
Cash Period Lifecycle

WHY: The fund is physically counted at the end of each period. Periods must
never overlap (a date belongs to at most one period) and a count is recorded
exactly once.

LIFECYCLE:
1. ACTIVE: created with an explicit opening balance or the one carried from
   the latest settled period ending before it starts
2. RECONCILED: counted balance stored as closing balance, discrepancy
   recorded when the count disagrees with the ledger
3. CLOSED: terminal; financial fields never change again

Only ACTIVE periods can be deleted (soft delete).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import CashPeriod, PeriodGuard, User
from ..models.periods import (
    PERIOD_STATUS_ACTIVE,
    PERIOD_STATUS_CLOSED,
    PERIOD_STATUS_RECONCILED,
    PERIOD_STATUSES,
)
from ..money import ZERO, money, parse_amount
from ..pagination import paginate
from ..permissions import MANAGE_TRANSACTIONS
from ..time_utils import parse_iso_date, utcnow
from . import balance_service
from .concurrency import lock_for_update, run_with_retry
from .permission_service import require_capability


GUARD_ROW_ID = 1
MAX_NOTES_LENGTH = 1000


def _parse_date(value, field: str) -> date:
    try:
        parsed = parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be YYYY-MM-DD", field=field)
    if parsed is None:
        raise ValidationError(f"{field} is required", field=field)
    return parsed


def _validate_notes(value, field: str = "notes") -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    if len(value) > MAX_NOTES_LENGTH:
        raise ValidationError(f"{field} cannot exceed {MAX_NOTES_LENGTH} characters", field=field)
    return value


def has_overlapping_period(start: date, end: date, exclude_id: int | None = None) -> bool:
    """
    True when a live period starts or ends inside [start, end], or spans it.

    Together the three cases catch every overlap, including containment in
    either direction.
    """
    query = db.session.query(CashPeriod.id).filter(
        CashPeriod.deleted_at.is_(None),
        db.or_(
            CashPeriod.period_start.between(start, end),
            CashPeriod.period_end.between(start, end),
            db.and_(CashPeriod.period_start <= start, CashPeriod.period_end >= end),
        ),
    )
    if exclude_id is not None:
        query = query.filter(CashPeriod.id != exclude_id)
    return query.first() is not None


def suggested_opening_balance(start: date | None = None) -> Decimal:
    """Balance carried from the latest settled period ending before start, else 0.00."""
    previous = balance_service.latest_settled_period(before=start)
    if previous is None:
        return ZERO
    return balance_service.carried_balance(previous)


def _acquire_guard() -> None:
    """
    Bump the guard row; its write lock serializes period creators until commit.
    """
    stmt = (
        update(PeriodGuard)
        .where(PeriodGuard.id == GUARD_ROW_ID)
        .values(generation=PeriodGuard.generation + 1)
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount:
        return
    try:
        with db.session.begin_nested():
            db.session.add(PeriodGuard(id=GUARD_ROW_ID, generation=1))
    except IntegrityError:
        db.session.execute(stmt)


def create_period(
    *,
    start,
    end,
    actor: User,
    opening_balance=None,
    notes: str | None = None,
) -> CashPeriod:
    """
    Open a new cash period.

    Raises:
        UnauthorizedError: Actor lacks MANAGE_TRANSACTIONS
        ValidationError: Bad dates (end must be after start) or negative opening balance
        ConflictError: The range overlaps a live period
    """
    require_capability(actor, MANAGE_TRANSACTIONS)

    start = _parse_date(start, "period_start")
    end = _parse_date(end, "period_end")
    if end <= start:
        raise ValidationError("period_end must be after period_start", field="period_end")

    opening = None
    if opening_balance is not None:
        opening = parse_amount(opening_balance, "opening_balance", allow_zero=True)
    notes = _validate_notes(notes)
    actor_id = actor.id

    def _op():
        _acquire_guard()

        if has_overlapping_period(start, end):
            db.session.rollback()
            raise ConflictError(
                "This period overlaps with an existing cash period",
                field="period_start",
            )

        period = CashPeriod(
            period_start=start,
            period_end=end,
            opening_balance=opening if opening is not None else suggested_opening_balance(start),
            status=PERIOD_STATUS_ACTIVE,
            notes=notes,
            created_by_user_id=actor_id,
        )
        db.session.add(period)
        db.session.commit()
        return period

    period = run_with_retry(_op)
    current_app.logger.info(
        "Cash period %s opened (%s..%s) by user %s", period.id, start, end, actor_id
    )
    return period


def _locked_period(period_id: int) -> CashPeriod:
    period = lock_for_update(
        db.session.query(CashPeriod).filter(CashPeriod.id == period_id, CashPeriod.deleted_at.is_(None))
    ).first()
    if period is None:
        raise NotFoundError("Cash period", period_id)
    return period


def reconcile_period(period: CashPeriod, counted_balance, reviewer: User, notes: str | None = None) -> CashPeriod:
    """
    Record the physical count for a period.

    discrepancy = counted - computed closing balance, both at 2 places. An
    exact match stores no discrepancy (NULL).

    Raises:
        ConflictError: Period already reconciled or closed
    """
    require_capability(reviewer, MANAGE_TRANSACTIONS)
    counted = parse_amount(counted_balance, "counted_balance", allow_zero=True)
    notes = _validate_notes(notes, "discrepancy_notes")
    period_id = period.id
    reviewer_id = reviewer.id

    def _op():
        locked = _locked_period(period_id)
        if locked.is_settled():
            raise ConflictError(f"Cash period is already {locked.status}")

        system = balance_service.period_balance(locked.period_start, locked.period_end).closing_balance
        discrepancy = money(counted) - money(system)

        locked.status = PERIOD_STATUS_RECONCILED
        locked.closing_balance = counted
        locked.reconciliation_date = utcnow()
        locked.reconciled_by_user_id = reviewer_id
        locked.discrepancy_amount = discrepancy if discrepancy != 0 else None
        locked.discrepancy_notes = notes
        db.session.commit()
        return locked

    reconciled = run_with_retry(_op)
    current_app.logger.info(
        "Cash period %s reconciled by user %s (discrepancy: %s)",
        period_id, reviewer_id, reconciled.discrepancy_amount,
    )
    return reconciled


def close_period(period: CashPeriod, actor: User) -> CashPeriod:
    """active|reconciled -> closed. Balances are left as they are."""
    require_capability(actor, MANAGE_TRANSACTIONS)
    period_id = period.id

    def _op():
        locked = _locked_period(period_id)
        if locked.is_closed():
            raise ConflictError("Cash period is already closed")
        locked.status = PERIOD_STATUS_CLOSED
        locked.closed_at = utcnow()
        db.session.commit()
        return locked

    return run_with_retry(_op)


def delete_period(period: CashPeriod, actor: User) -> CashPeriod:
    """Soft delete an active period."""
    require_capability(actor, MANAGE_TRANSACTIONS)
    period_id = period.id

    def _op():
        locked = _locked_period(period_id)
        if locked.is_settled():
            raise ConflictError("Cannot delete a reconciled or closed cash period")
        locked.deleted_at = utcnow()
        db.session.commit()
        return locked

    return run_with_retry(_op)


def get_period(period_id: int) -> CashPeriod:
    period = db.session.get(CashPeriod, period_id)
    if period is None or period.deleted_at is not None:
        raise NotFoundError("Cash period", period_id)
    return period


def list_periods(status: str | None = None, page: int | None = 1, per_page: int | None = None) -> dict:
    query = db.session.query(CashPeriod).filter(CashPeriod.deleted_at.is_(None))
    if status and status != "all":
        if status not in PERIOD_STATUSES:
            raise ValidationError(f"Invalid status: {status}", field="status")
        query = query.filter(CashPeriod.status == status)
    query = query.order_by(CashPeriod.period_start.desc(), CashPeriod.id.desc())
    return paginate(query, page, per_page)

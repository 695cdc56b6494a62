from __future__ import annotations

from ..extensions import db
from ..money import to_str
from ..time_utils import to_utc_z, to_iso_date


PERIOD_STATUS_ACTIVE = "active"
PERIOD_STATUS_RECONCILED = "reconciled"
PERIOD_STATUS_CLOSED = "closed"
PERIOD_STATUSES = {PERIOD_STATUS_ACTIVE, PERIOD_STATUS_RECONCILED, PERIOD_STATUS_CLOSED}
SETTLED_STATUSES = {PERIOD_STATUS_RECONCILED, PERIOD_STATUS_CLOSED}


class CashPeriod(db.Model):
    """
    Cash balance accounting window.

    WHY: The fund is counted physically at the end of each window. The period
    records what the system expected, what was counted, and the gap.

    LIFECYCLE:
    - active: open for transactions, deletable
    - reconciled: counted; closing_balance = counted amount
    - closed: terminal

    Periods never overlap (reconciliation_service guards creation). They own
    no transactions: membership is the date range.
    """
    __tablename__ = "cash_periods"
    __table_args__ = (
        db.CheckConstraint("period_end >= period_start", name="ck_cash_periods_range"),
        db.Index("ix_cash_periods_range", "period_start", "period_end"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    period_start = db.Column(db.Date, nullable=False, index=True)
    period_end = db.Column(db.Date, nullable=False, index=True)

    opening_balance = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    closing_balance = db.Column(db.Numeric(15, 2), nullable=True)  # Set on reconcile

    status = db.Column(db.String(16), nullable=False, default=PERIOD_STATUS_ACTIVE, index=True)

    # Reconciliation outcome
    reconciliation_date = db.Column(db.DateTime(timezone=True), nullable=True)
    reconciled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    discrepancy_amount = db.Column(db.Numeric(15, 2), nullable=True)  # NULL = no discrepancy
    discrepancy_notes = db.Column(db.Text, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    reconciled_by = db.relationship("User", foreign_keys=[reconciled_by_user_id])
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    def is_active(self) -> bool:
        return self.status == PERIOD_STATUS_ACTIVE

    def is_reconciled(self) -> bool:
        return self.status == PERIOD_STATUS_RECONCILED

    def is_closed(self) -> bool:
        return self.status == PERIOD_STATUS_CLOSED

    def is_settled(self) -> bool:
        return self.status in SETTLED_STATUSES

    def has_discrepancy(self) -> bool:
        return self.discrepancy_amount is not None and self.discrepancy_amount != 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "period_start": to_iso_date(self.period_start),
            "period_end": to_iso_date(self.period_end),
            "opening_balance": to_str(self.opening_balance),
            "closing_balance": to_str(self.closing_balance),
            "status": self.status,
            "reconciliation_date": to_utc_z(self.reconciliation_date) if self.reconciliation_date else None,
            "reconciled_by_user_id": self.reconciled_by_user_id,
            "has_discrepancy": self.has_discrepancy(),
            "discrepancy_amount": to_str(self.discrepancy_amount),
            "discrepancy_notes": self.discrepancy_notes,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class PeriodGuard(db.Model):
    """
    Single-row serialization point for period creation.

    Creating a period first bumps this row, so two concurrent creators queue
    on its row lock before the overlap re-check and insert.
    """
    __tablename__ = "period_guards"

    id = db.Column(db.Integer, primary_key=True)
    generation = db.Column(db.Integer, nullable=False, default=0)

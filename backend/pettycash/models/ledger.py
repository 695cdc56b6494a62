from __future__ import annotations

from ..extensions import db
from ..money import to_str
from ..time_utils import to_utc_z, to_iso_date


# Shared by Transaction and Approval
STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
REVIEW_STATUSES = {STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED}

DIRECTION_IN = "in"
DIRECTION_OUT = "out"
DIRECTIONS = {DIRECTION_IN, DIRECTION_OUT}


class Category(db.Model):
    """Expense/income category. Managed outside the core (CLI seeds them)."""
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
        }


class Transaction(db.Model):
    """
    A single petty cash movement.

    LIFECYCLE:
    - pending: recorded, not yet money (ignored by every balance)
    - approved: authoritative, counted by the period ledger
    - rejected: terminal, carries rejection_reason

    IMMUTABLE once approved or rejected. Soft-deleted (deleted_at) only while
    pending so the number sequence keeps no silent gaps for auditors.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        db.Index("ix_transactions_status_date", "status", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # TXN-2025-00001 (unique, strictly increasing within a year)
    transaction_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    direction = db.Column(db.String(8), nullable=False, index=True)  # in, out
    amount = db.Column(db.Numeric(15, 2), nullable=False)
    description = db.Column(db.String(1000), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    transaction_date = db.Column(db.Date, nullable=False, index=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)

    # Review outcome
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    category = db.relationship("Category", backref=db.backref("transactions", lazy=True))
    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("transactions", lazy=True))
    approver = db.relationship("User", foreign_keys=[approved_by_user_id])
    approval = db.relationship(
        "Approval",
        back_populates="transaction",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def is_pending(self) -> bool:
        return self.status == STATUS_PENDING

    def is_approved(self) -> bool:
        return self.status == STATUS_APPROVED

    def is_rejected(self) -> bool:
        return self.status == STATUS_REJECTED

    def has_pending_approval(self) -> bool:
        return self.approval is not None and self.approval.is_pending()

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_number": self.transaction_number,
            "direction": self.direction,
            "amount": to_str(self.amount),
            "description": self.description,
            "notes": self.notes,
            "transaction_date": to_iso_date(self.transaction_date),
            "category_id": self.category_id,
            "user_id": self.user_id,
            "status": self.status,
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "rejection_reason": self.rejection_reason,
            "approval_id": self.approval.id if self.approval else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Approval(db.Model):
    """
    Review request for a transaction created by a review-requiring user.

    1:1 with Transaction and lives and dies with it. Its status always equals
    the transaction's status: approval_service.decide() moves both rows in one
    unit of work.
    """
    __tablename__ = "approvals"
    __table_args__ = (
        db.Index("ix_approvals_status_submitted", "status", "submitted_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(
        db.Integer,
        db.ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    submitted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    reviewed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)
    notes = db.Column(db.Text, nullable=True)
    review_notes = db.Column(db.Text, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    submitted_at = db.Column(db.DateTime(timezone=True), nullable=False)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    transaction = db.relationship("Transaction", back_populates="approval")
    submitted_by = db.relationship("User", foreign_keys=[submitted_by_user_id], backref=db.backref("submitted_approvals", lazy=True))
    reviewed_by = db.relationship("User", foreign_keys=[reviewed_by_user_id], backref=db.backref("reviewed_approvals", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def is_pending(self) -> bool:
        return self.status == STATUS_PENDING

    def is_approved(self) -> bool:
        return self.status == STATUS_APPROVED

    def is_rejected(self) -> bool:
        return self.status == STATUS_REJECTED

    def to_dict(self, include_transaction: bool = False) -> dict:
        data = {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "submitted_by_user_id": self.submitted_by_user_id,
            "reviewed_by_user_id": self.reviewed_by_user_id,
            "status": self.status,
            "notes": self.notes,
            "review_notes": self.review_notes,
            "rejection_reason": self.rejection_reason,
            "submitted_at": to_utc_z(self.submitted_at),
            "reviewed_at": to_utc_z(self.reviewed_at) if self.reviewed_at else None,
        }
        if include_transaction:
            data["transaction"] = self.transaction.to_dict()
        return data


class TransactionSequence(db.Model):
    """
    Atomic per-year transaction number counter.

    WHY: "select max(number) + 1" loses updates under concurrent creation.
    A single counter row per year is bumped with UPDATE ... SET n = n + 1.
    """
    __tablename__ = "transaction_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    year = db.Column(db.Integer, nullable=False, unique=True, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "year": self.year,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }


class Budget(db.Model):
    """
    Spending cap for a category over a date range.

    Read-only consumer of the ledger: spent amount is always derived from
    approved cash-out transactions, never stored.
    """
    __tablename__ = "budgets"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_budgets_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)
    amount = db.Column(db.Numeric(15, 2), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)

    # Percentage of amount at which an alert is raised
    alert_threshold = db.Column(db.Numeric(5, 2), nullable=False, default=80)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    category = db.relationship("Category", backref=db.backref("budgets", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "amount": to_str(self.amount),
            "start_date": to_iso_date(self.start_date),
            "end_date": to_iso_date(self.end_date),
            "alert_threshold": to_str(self.alert_threshold),
        }

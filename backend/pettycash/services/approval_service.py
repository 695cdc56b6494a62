# Overview: Service-layer operations for the approval workflow; encapsulates business logic and database work.

"""
Approval Workflow Engine

WHY: A transaction recorded by a review-requiring user is not money until a
second person looks at it. The Approval row is the review request; its
status and the transaction's status always move together.

LIFECYCLE:
1. submit: Approval created pending alongside the pending transaction
2. decide: reviewer approves or rejects; Approval then Transaction updated
   under row locks in ONE database transaction
3. notify: after commit, reviewers (on submit) or the submitter (on
   decision) are notified; a notifier failure never undoes the decision

RULES:
- Reviewer must hold APPROVE_TRANSACTIONS
- Reviewer must not be the submitter
- An approval is decided exactly once
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Approval, Transaction, User
from ..models.ledger import STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED
from ..pagination import paginate
from ..permissions import APPROVE_TRANSACTIONS
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .notification_service import get_notifier
from .permission_service import get_policy


OUTCOMES = {STATUS_APPROVED, STATUS_REJECTED}

# Decision failure reasons
DECISION_NOT_ALLOWED = "not_allowed"
DECISION_ALREADY_DECIDED = "already_decided"


@dataclass
class Decision:
    """
    Outcome of decide(). Truthy when the decision was recorded.

    A failed Decision is not an error: the approval was already decided, or
    the reviewer may not decide it. Nothing was written in that case.
    """
    ok: bool
    approval: Approval
    outcome: str
    reason: str | None = None
    message: str | None = None

    def __bool__(self) -> bool:
        return self.ok


def can_be_reviewed_by(approval: Approval, user: User, policy=None) -> bool:
    policy = policy or get_policy()
    return (
        policy.can(user, APPROVE_TRANSACTIONS)
        and user.id != approval.submitted_by_user_id
        and approval.status == STATUS_PENDING
    )


def can_user_approve(user: User) -> bool:
    return get_policy().can(user, APPROVE_TRANSACTIONS)


def apply_decision(transaction: Transaction, approval: Approval | None, reviewer: User,
                   outcome: str, reason: str | None = None, notes: str | None = None) -> None:
    """
    Move the Approval (when there is one) and then the Transaction to outcome.

    Mutates only; the caller owns locking and the commit.
    """
    now = utcnow()
    rejection_reason = reason if outcome == STATUS_REJECTED else None

    if approval is not None:
        approval.status = outcome
        approval.reviewed_by_user_id = reviewer.id
        approval.reviewed_at = now
        approval.rejection_reason = rejection_reason
        if notes is not None:
            approval.review_notes = notes

    transaction.status = outcome
    transaction.approved_by_user_id = reviewer.id
    transaction.approved_at = now
    transaction.rejection_reason = rejection_reason


def open_approval(transaction: Transaction, notes: str | None = None) -> Approval:
    """Create the pending Approval for a transaction. Caller commits."""
    approval = Approval(
        transaction=transaction,
        submitted_by_user_id=transaction.user_id,
        status=STATUS_PENDING,
        notes=notes,
        submitted_at=utcnow(),
    )
    db.session.add(approval)
    db.session.flush()
    return approval


def submit_for_approval(transaction: Transaction, notes: str | None = None) -> Approval:
    """
    Open a review request for a pending transaction and notify reviewers.

    Raises:
        ConflictError: If the transaction is not pending or already has an approval
    """
    transaction_id = transaction.id

    def _op():
        txn = lock_for_update(db.session.query(Transaction).filter_by(id=transaction_id)).first()
        if txn is None or txn.is_deleted:
            raise NotFoundError("Transaction", transaction_id)
        if not txn.is_pending():
            raise ConflictError(f"Cannot submit {txn.status} transaction for approval")
        if txn.approval is not None:
            raise ConflictError("Transaction already has an approval request")

        approval = open_approval(txn, notes=notes)
        db.session.commit()
        return approval

    approval = run_with_retry(_op)
    notify_approval_requested(approval)
    return approval


def decide(approval: Approval, reviewer: User, outcome: str,
           reason: str | None = None, notes: str | None = None) -> Decision:
    """
    Record a reviewer's decision on a pending approval.

    Both rows are locked and the reviewability check is repeated under the
    locks, so of two racing reviewers exactly one gets a successful Decision.

    Raises:
        ValidationError: Unknown outcome, or rejecting without a reason
    """
    if outcome not in OUTCOMES:
        raise ValidationError(f"Invalid outcome: {outcome}", field="outcome")
    if outcome == STATUS_REJECTED:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Rejection reason is required", field="rejection_reason")
    else:
        reason = None

    approval_id = approval.id
    policy = get_policy()

    def _op():
        locked = lock_for_update(db.session.query(Approval).filter_by(id=approval_id)).first()
        if locked is None:
            raise NotFoundError("Approval", approval_id)
        txn = lock_for_update(db.session.query(Transaction).filter_by(id=locked.transaction_id)).first()

        if not locked.is_pending():
            return Decision(
                ok=False, approval=locked, outcome=outcome, reason=DECISION_ALREADY_DECIDED,
                message=f"Approval already {locked.status}",
            )
        if txn.is_deleted or not can_be_reviewed_by(locked, reviewer, policy):
            return Decision(
                ok=False, approval=locked, outcome=outcome, reason=DECISION_NOT_ALLOWED,
                message="You are not allowed to review this approval",
            )

        apply_decision(txn, locked, reviewer, outcome, reason=reason, notes=notes)
        db.session.commit()
        return Decision(ok=True, approval=locked, outcome=outcome)

    decision = run_with_retry(_op)

    if decision:
        current_app.logger.info(
            "Approval %s %s by user %s", approval_id, outcome, reviewer.id
        )
        notify_approval_decided(decision.approval)
    else:
        db.session.rollback()
    return decision


def approve(approval: Approval, reviewer: User, notes: str | None = None) -> Decision:
    return decide(approval, reviewer, STATUS_APPROVED, notes=notes)


def reject(approval: Approval, reviewer: User, reason: str, notes: str | None = None) -> Decision:
    return decide(approval, reviewer, STATUS_REJECTED, reason=reason, notes=notes)


# =============================================================================
# NOTIFICATION DISPATCH
# =============================================================================

def _dispatch(method_name: str, approval: Approval) -> None:
    approval_id = approval.id
    try:
        getattr(get_notifier(), method_name)(approval)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Notifier %s failed for approval %s", method_name, approval_id)


def notify_approval_requested(approval: Approval) -> None:
    _dispatch("notify_approval_requested", approval)


def notify_approval_decided(approval: Approval) -> None:
    _dispatch("notify_approval_decided", approval)


# =============================================================================
# QUERIES
# =============================================================================

def _pending_query():
    return (
        db.session.query(Approval)
        .join(Transaction, Transaction.id == Approval.transaction_id)
        .filter(Approval.status == STATUS_PENDING, Transaction.deleted_at.is_(None))
    )


def get_pending_approvals(reviewer: User, page: int | None = 1, per_page: int | None = None) -> dict:
    """Pending approvals the reviewer may act on (their own submissions excluded), oldest first."""
    query = (
        _pending_query()
        .filter(Approval.submitted_by_user_id != reviewer.id)
        .order_by(Approval.submitted_at.asc(), Approval.id.asc())
    )
    return paginate(query, page, per_page, serialize=lambda a: a.to_dict(include_transaction=True))


def get_pending_approvals_count(reviewer: User) -> int:
    return _pending_query().filter(Approval.submitted_by_user_id != reviewer.id).count()


def list_approvals(reviewer: User, status: str | None = STATUS_PENDING,
                   page: int | None = 1, per_page: int | None = None) -> dict:
    """
    Approvals submitted by other users, filtered by status.

    status: pending (default, oldest first), approved, rejected or all
    (newest first).

    Raises:
        ValidationError: Unknown status
    """
    status = status or STATUS_PENDING
    if status == STATUS_PENDING:
        return get_pending_approvals(reviewer, page, per_page)
    if status != "all" and status not in OUTCOMES:
        raise ValidationError(f"Invalid status: {status}", field="status")

    query = (
        db.session.query(Approval)
        .join(Transaction, Transaction.id == Approval.transaction_id)
        .filter(Approval.submitted_by_user_id != reviewer.id, Transaction.deleted_at.is_(None))
    )
    if status != "all":
        query = query.filter(Approval.status == status)
    query = query.order_by(Approval.submitted_at.desc(), Approval.id.desc())
    return paginate(query, page, per_page, serialize=lambda a: a.to_dict(include_transaction=True))


def approval_stats(reviewer: User) -> dict:
    """Counts for the approvals queue: pending for this reviewer, decided overall."""
    decided = dict(
        db.session.query(Approval.status, db.func.count(Approval.id))
        .filter(Approval.status.in_(OUTCOMES))
        .group_by(Approval.status)
        .all()
    )
    return {
        "pending": get_pending_approvals_count(reviewer),
        "approved": decided.get(STATUS_APPROVED, 0),
        "rejected": decided.get(STATUS_REJECTED, 0),
    }


def get_user_pending_count(user_id: int) -> int:
    """Open requests a submitter is still waiting on."""
    return _pending_query().filter(Approval.submitted_by_user_id == user_id).count()


def get_submitted_approvals(user_id: int, page: int | None = 1, per_page: int | None = None) -> dict:
    query = (
        db.session.query(Approval)
        .filter(Approval.submitted_by_user_id == user_id)
        .order_by(Approval.submitted_at.desc(), Approval.id.desc())
    )
    return paginate(query, page, per_page, serialize=lambda a: a.to_dict(include_transaction=True))


def get_approval(approval_id: int) -> Approval:
    approval = db.session.get(Approval, approval_id)
    if approval is None:
        raise NotFoundError("Approval", approval_id)
    return approval

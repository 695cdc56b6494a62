# Overview: Service-layer operations for transactions; encapsulates business logic and database work.

"""
Transaction Service

WHY: A transaction only becomes money once it is approved. This module owns
the pending -> approved | rejected state machine; nothing else writes
Transaction.status.

LIFECYCLE:
1. create: numbered, stored pending
   - owner requires review: an Approval is opened, reviewers are notified
   - otherwise: approved on the spot with the owner as reviewer
2. approve / reject: by a reviewer who is not the owner, while pending
3. edit / delete (soft): only while pending, by the owner or an admin

Approved and rejected transactions are immutable.
"""

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from ..models import Category, Transaction, User
from ..models.ledger import (
    DIRECTIONS,
    REVIEW_STATUSES,
    STATUS_APPROVED,
    STATUS_PENDING,
    STATUS_REJECTED,
)
from ..money import parse_amount
from ..pagination import paginate
from ..permissions import (
    APPROVE_TRANSACTIONS,
    CREATE_TRANSACTIONS,
    DELETE_TRANSACTIONS,
    EDIT_TRANSACTIONS,
)
from ..time_utils import parse_iso_date, today, utcnow
from . import approval_service
from .concurrency import lock_for_update, run_with_retry
from .permission_service import get_policy, require_capability
from .sequence_service import next_transaction_number


MAX_DESCRIPTION_LENGTH = 1000
MAX_NOTES_LENGTH = 2000

TRANSACTION_MUTABLE_FIELDS = {"direction", "amount", "description", "notes", "transaction_date", "category_id"}


# =============================================================================
# VALIDATION
# =============================================================================

def _validate_direction(value) -> str:
    if value not in DIRECTIONS:
        raise ValidationError("direction must be 'in' or 'out'", field="direction")
    return value


def _validate_description(value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("description is required", field="description")
    value = value.strip()
    if len(value) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"description must be at most {MAX_DESCRIPTION_LENGTH} characters", field="description"
        )
    return value


def _validate_notes(value) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("notes must be a string", field="notes")
    if len(value) > MAX_NOTES_LENGTH:
        raise ValidationError(f"notes must be at most {MAX_NOTES_LENGTH} characters", field="notes")
    return value or None


def _validate_transaction_date(value) -> date:
    try:
        parsed = parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError("transaction_date must be YYYY-MM-DD", field="transaction_date")
    if parsed is None:
        raise ValidationError("transaction_date is required", field="transaction_date")
    if parsed > today():
        raise ValidationError("transaction_date cannot be in the future", field="transaction_date")
    return parsed


def _validate_category(category_id) -> int | None:
    if category_id is None:
        return None
    if isinstance(category_id, bool) or not isinstance(category_id, int):
        raise ValidationError("category_id must be an integer", field="category_id")
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError("Category", category_id)
    if not category.is_active:
        raise ValidationError("Category is not active", field="category_id")
    return category_id


def _can_act_as_owner(transaction: Transaction, actor: User, policy) -> bool:
    return transaction.user_id == actor.id or policy.is_admin(actor)


# =============================================================================
# CREATE
# =============================================================================

def create_transaction(
    *,
    owner: User,
    direction: str,
    amount,
    description: str,
    transaction_date,
    category_id: int | None = None,
    notes: str | None = None,
) -> Transaction:
    """
    Record a cash movement.

    Returns the transaction, approved when the owner's role skips review,
    pending with an open Approval otherwise.

    Raises:
        UnauthorizedError: Owner lacks CREATE_TRANSACTIONS
        ValidationError: Bad direction, amount, description, notes or date
        NotFoundError: Unknown category
    """
    policy = get_policy()
    require_capability(owner, CREATE_TRANSACTIONS, policy)

    direction = _validate_direction(direction)
    amount = parse_amount(amount, "amount")
    description = _validate_description(description)
    notes = _validate_notes(notes)
    transaction_date = _validate_transaction_date(transaction_date)
    category_id = _validate_category(category_id)

    review_required = policy.is_review_required(owner)
    owner_id = owner.id

    def _op():
        txn = Transaction(
            transaction_number=next_transaction_number(),
            direction=direction,
            amount=amount,
            description=description,
            notes=notes,
            transaction_date=transaction_date,
            category_id=category_id,
            user_id=owner_id,
            status=STATUS_PENDING,
        )
        db.session.add(txn)
        db.session.flush()

        if review_required:
            approval_service.open_approval(txn)
        else:
            # Self-approval: a trusted owner is their own reviewer
            txn.status = STATUS_APPROVED
            txn.approved_by_user_id = owner_id
            txn.approved_at = utcnow()

        db.session.commit()
        return txn

    txn = run_with_retry(_op)

    if review_required:
        approval_service.notify_approval_requested(txn.approval)
    return txn


# =============================================================================
# REVIEW
# =============================================================================

def _review(transaction: Transaction, reviewer: User, outcome: str, reason: str | None = None) -> Transaction:
    policy = get_policy()
    if transaction.is_deleted:
        raise NotFoundError("Transaction", transaction.id)
    require_capability(reviewer, APPROVE_TRANSACTIONS, policy)
    if transaction.user_id == reviewer.id:
        raise UnauthorizedError("You cannot review your own transaction")

    transaction_id = transaction.id

    def _op():
        txn = lock_for_update(db.session.query(Transaction).filter_by(id=transaction_id)).first()
        if not txn.is_pending():
            raise UnauthorizedError(f"Transaction is already {txn.status}")

        approval = txn.approval
        apply_to = approval if approval is not None and approval.is_pending() else None
        approval_service.apply_decision(txn, apply_to, reviewer, outcome, reason=reason)
        db.session.commit()
        return txn, apply_to

    txn, approval = run_with_retry(_op)

    if approval is not None:
        approval_service.notify_approval_decided(approval)
    return txn


def approve_transaction(transaction: Transaction, reviewer: User) -> Transaction:
    """
    Approve a pending transaction (and its Approval, in the same commit).

    Raises:
        UnauthorizedError: Reviewer lacks APPROVE_TRANSACTIONS, owns the
            transaction, or the transaction is no longer pending
    """
    return _review(transaction, reviewer, STATUS_APPROVED)


def reject_transaction(transaction: Transaction, reviewer: User, reason: str) -> Transaction:
    """Reject a pending transaction. Same preconditions as approve plus a non-empty reason."""
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("Rejection reason is required", field="rejection_reason")
    return _review(transaction, reviewer, STATUS_REJECTED, reason=reason.strip())


# =============================================================================
# EDIT / DELETE
# =============================================================================

def _check_owner_action(transaction: Transaction, actor: User, permission_code: str, action: str, policy) -> None:
    require_capability(actor, permission_code, policy)
    if transaction.is_deleted:
        raise NotFoundError("Transaction", transaction.id)
    if not transaction.is_pending():
        raise ConflictError(f"Cannot {action} a {transaction.status} transaction")
    if not _can_act_as_owner(transaction, actor, policy):
        raise UnauthorizedError(f"You can only {action} your own transactions")


def update_transaction(transaction: Transaction, actor: User, **fields) -> Transaction:
    """
    Edit a pending transaction.

    Raises:
        UnauthorizedError: Missing EDIT_TRANSACTIONS, or not owner/admin
        ConflictError: Not pending, or an approval is still pending
        ValidationError: Unknown field or invalid value
    """
    policy = get_policy()
    _check_owner_action(transaction, actor, EDIT_TRANSACTIONS, "edit", policy)
    if transaction.has_pending_approval():
        raise ConflictError("Transaction is awaiting approval and cannot be edited")

    unknown = set(fields) - TRANSACTION_MUTABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown field: {sorted(unknown)[0]}", field=sorted(unknown)[0])

    validators = {
        "direction": _validate_direction,
        "amount": lambda v: parse_amount(v, "amount"),
        "description": _validate_description,
        "notes": _validate_notes,
        "transaction_date": _validate_transaction_date,
        "category_id": _validate_category,
    }
    patch = {k: validators[k](v) for k, v in fields.items()}

    for k, v in patch.items():
        setattr(transaction, k, v)
    db.session.commit()
    return transaction


def delete_transaction(transaction: Transaction, actor: User) -> Transaction:
    """Soft delete a pending transaction (owner or admin, DELETE_TRANSACTIONS)."""
    policy = get_policy()
    _check_owner_action(transaction, actor, DELETE_TRANSACTIONS, "delete", policy)
    transaction.deleted_at = utcnow()
    db.session.commit()
    return transaction


# =============================================================================
# QUERIES
# =============================================================================

def get_transaction(transaction_id: int) -> Transaction:
    txn = db.session.get(Transaction, transaction_id)
    if txn is None or txn.is_deleted:
        raise NotFoundError("Transaction", transaction_id)
    return txn


def list_transactions(
    *,
    status: str | None = None,
    direction: str | None = None,
    category_id: int | None = None,
    user_id: int | None = None,
    start_date=None,
    end_date=None,
    search: str | None = None,
    page: int | None = 1,
    per_page: int | None = None,
) -> dict:
    """
    Filtered, newest-first transaction listing.

    "all" (or None) disables the status/direction filters.
    """
    query = db.session.query(Transaction).filter(Transaction.deleted_at.is_(None))

    if status and status != "all":
        if status not in REVIEW_STATUSES:
            raise ValidationError(f"Invalid status: {status}", field="status")
        query = query.filter(Transaction.status == status)
    if direction and direction != "all":
        _validate_direction(direction)
        query = query.filter(Transaction.direction == direction)
    if category_id is not None:
        query = query.filter(Transaction.category_id == category_id)
    if user_id is not None:
        query = query.filter(Transaction.user_id == user_id)

    try:
        start = parse_iso_date(start_date)
        end = parse_iso_date(end_date)
    except (TypeError, ValueError):
        raise ValidationError("Dates must be YYYY-MM-DD", field="start_date")
    if start is not None:
        query = query.filter(Transaction.transaction_date >= start)
    if end is not None:
        query = query.filter(Transaction.transaction_date <= end)

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Transaction.transaction_number.ilike(pattern),
            Transaction.description.ilike(pattern),
        ))

    query = query.order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
    return paginate(query, page, per_page)

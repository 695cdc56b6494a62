# Overview: Service-layer operations for in-app notifications; the default notifier.

from __future__ import annotations

import json
from datetime import timedelta

from flask import current_app, has_app_context

from ..extensions import db, NOTIFIER_EXTENSION
from ..models import Approval, Notification
from ..models.notifications import NOTIFICATION_APPROVAL_REQUEST, NOTIFICATION_APPROVAL_DECISION
from ..money import to_str
from ..permissions import APPROVE_TRANSACTIONS
from ..time_utils import utcnow
from .permission_service import get_policy


def create_notification(
    *,
    user_id: int,
    type: str,
    title: str,
    message: str,
    action_url: str | None = None,
    data: dict | None = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        action_url=action_url,
        data=json.dumps(data) if data is not None else None,
    )
    db.session.add(notification)
    return notification


class InAppNotifier:
    """
    Default notifier: writes Notification rows and commits them.

    Called after the approval unit of work has committed, so its own commit
    never carries ledger changes with it.
    """

    def notify_approval_requested(self, approval: Approval) -> list[Notification]:
        txn = approval.transaction
        submitter = approval.submitted_by
        reviewers = get_policy().reviewers(APPROVE_TRANSACTIONS, exclude_user_id=approval.submitted_by_user_id)

        created = []
        for reviewer in reviewers:
            created.append(create_notification(
                user_id=reviewer.id,
                type=NOTIFICATION_APPROVAL_REQUEST,
                title="New Approval Request",
                message=(
                    f"{submitter.display_name} submitted transaction {txn.transaction_number} "
                    f"for approval (Amount: {to_str(txn.amount)})"
                ),
                action_url=f"/approvals/{approval.id}",
                data={
                    "approval_id": approval.id,
                    "transaction_id": txn.id,
                    "transaction_number": txn.transaction_number,
                    "amount": to_str(txn.amount),
                    "submitted_by": submitter.display_name,
                },
            ))
        db.session.commit()
        return created

    def notify_approval_decided(self, approval: Approval) -> Notification:
        txn = approval.transaction
        reviewer = approval.reviewed_by
        approved = approval.is_approved()

        message = (
            f"Your transaction {txn.transaction_number} has been "
            f"{'approved' if approved else 'rejected'} by {reviewer.display_name}"
        )
        if not approved:
            message += f". Reason: {approval.rejection_reason}"

        notification = create_notification(
            user_id=approval.submitted_by_user_id,
            type=NOTIFICATION_APPROVAL_DECISION,
            title="Transaction Approved" if approved else "Transaction Rejected",
            message=message,
            action_url=f"/transactions/{txn.id}",
            data={
                "approval_id": approval.id,
                "transaction_id": txn.id,
                "transaction_number": txn.transaction_number,
                "status": approval.status,
                "reviewed_by": reviewer.display_name,
                "rejection_reason": approval.rejection_reason,
            },
        )
        db.session.commit()
        return notification


_default_notifier = InAppNotifier()


def get_notifier():
    """Notifier installed on the current app, or the in-app default."""
    if has_app_context():
        return current_app.extensions.get(NOTIFIER_EXTENSION, _default_notifier)
    return _default_notifier


# =============================================================================
# INBOX
# =============================================================================

def list_notifications(user_id: int, *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    query = db.session.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.read_at.is_(None))
    limit = max(1, min(int(limit or 50), 200))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def unread_count(user_id: int) -> int:
    return (
        db.session.query(Notification)
        .filter(Notification.user_id == user_id, Notification.read_at.is_(None))
        .count()
    )


def mark_as_read(notification_id: int, user_id: int) -> Notification | None:
    """Mark one of the user's notifications read. None when it is not theirs."""
    notification = db.session.query(Notification).filter_by(id=notification_id, user_id=user_id).first()
    if not notification:
        return None
    if notification.read_at is None:
        notification.read_at = utcnow()
        db.session.commit()
    return notification


def mark_all_as_read(user_id: int) -> int:
    count = (
        db.session.query(Notification)
        .filter(Notification.user_id == user_id, Notification.read_at.is_(None))
        .update({"read_at": utcnow()}, synchronize_session=False)
    )
    db.session.commit()
    return count


def delete_old_notifications(user_id: int | None = None, days_old: int = 30) -> int:
    """Delete read notifications older than days_old (every user's when user_id is None)."""
    cutoff = utcnow() - timedelta(days=days_old)
    query = db.session.query(Notification).filter(
        Notification.read_at.isnot(None),
        Notification.created_at < cutoff,
    )
    if user_id is not None:
        query = query.filter(Notification.user_id == user_id)
    count = query.delete(synchronize_session=False)
    db.session.commit()
    return count

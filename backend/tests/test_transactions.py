"""
Transaction lifecycle tests.

Verifies:
- Numbering: TXN-<year>-<5 digits>, per year, never reused
- Validation happens before anything is written
- Review-requiring owners get a pending transaction plus an Approval
- Everyone else is approved on the spot
- Edit/delete only while pending, by the owner or an admin
"""

from decimal import Decimal

import pytest

from conftest import record
from pettycash.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from pettycash.models import Approval, Transaction
from pettycash.services import sequence_service, transaction_service


def _states(txn):
    return [txn.is_pending(), txn.is_approved(), txn.is_rejected()]


# =============================================================================
# NUMBERING
# =============================================================================


class TestNumbering:

    def test_first_number_of_the_year(self, cashier):
        txn = record(cashier)
        assert txn.transaction_number == "TXN-2025-00001"

    def test_numbers_increase(self, cashier, requester):
        numbers = [record(cashier).transaction_number, record(requester).transaction_number, record(cashier).transaction_number]
        assert numbers == ["TXN-2025-00001", "TXN-2025-00002", "TXN-2025-00003"]

    def test_numbers_restart_each_year(self, db_session, clock, cashier):
        from datetime import datetime

        record(cashier, on="2025-01-10")
        clock.set(datetime(2026, 1, 2, 9, 0, 0))
        txn = record(cashier, on="2026-01-02")
        assert txn.transaction_number == "TXN-2026-00001"

    def test_deleted_transaction_number_not_reused(self, requester, admin):
        first = record(requester)
        transaction_service.delete_transaction(first, admin)
        assert first.is_deleted
        second = record(requester)
        assert second.transaction_number == "TXN-2025-00002"

    def test_allocate_number_is_sequential(self, db_session):
        assert [sequence_service.allocate_number(2030) for _ in range(3)] == [1, 2, 3]
        db_session.commit()

    def test_format_transaction_number(self, app):
        assert sequence_service.format_transaction_number(2025, 42) == "TXN-2025-00042"
        assert sequence_service.format_transaction_number(2025, 7, prefix="PC") == "PC-2025-00007"


# =============================================================================
# VALIDATION
# =============================================================================


class TestCreateValidation:

    @pytest.mark.parametrize("amount", ["0", "0.00", "-5", "abc", None, True])
    def test_rejects_bad_amount(self, db_session, cashier, amount):
        with pytest.raises(ValidationError) as exc:
            record(cashier, amount=amount)
        assert exc.value.field == "amount"
        assert db_session.query(Transaction).count() == 0

    def test_rejects_future_date(self, db_session, cashier):
        with pytest.raises(ValidationError) as exc:
            record(cashier, on="2025-02-01")
        assert exc.value.field == "transaction_date"
        assert db_session.query(Transaction).count() == 0

    def test_today_is_allowed(self, cashier):
        assert record(cashier, on="2025-01-31").transaction_date.isoformat() == "2025-01-31"

    def test_rejects_bad_direction(self, cashier):
        with pytest.raises(ValidationError) as exc:
            record(cashier, direction="sideways")
        assert exc.value.field == "direction"

    def test_rejects_blank_description(self, cashier):
        with pytest.raises(ValidationError) as exc:
            record(cashier, description="   ")
        assert exc.value.field == "description"

    def test_rejects_overlong_description(self, cashier):
        with pytest.raises(ValidationError):
            record(cashier, description="x" * 1001)

    def test_unknown_category(self, cashier):
        with pytest.raises(NotFoundError):
            record(cashier, category_id=999999)

    def test_inactive_category(self, db_session, cashier, category):
        category.is_active = False
        db_session.commit()
        with pytest.raises(ValidationError) as exc:
            record(cashier, category_id=category.id)
        assert exc.value.field == "category_id"

    def test_amount_is_quantized(self, cashier):
        txn = record(cashier, amount="10.005")
        assert txn.amount == Decimal("10.01")

    def test_owner_without_create_permission(self, outsider):
        with pytest.raises(UnauthorizedError):
            record(outsider)


# =============================================================================
# AUTO-APPROVAL VS REVIEW
# =============================================================================


class TestCreateClassification:

    def test_trusted_owner_is_self_approved(self, db_session, cashier):
        txn = record(cashier)
        assert txn.status == "approved"
        assert txn.approved_by_user_id == cashier.id
        assert txn.approved_at is not None
        assert txn.approval is None
        assert db_session.query(Approval).count() == 0

    def test_requester_gets_pending_with_approval(self, db_session, requester):
        txn = record(requester, notes="Taxi to supplier")
        assert txn.status == "pending"
        assert txn.approved_by_user_id is None
        approval = txn.approval
        assert approval is not None
        assert approval.status == "pending"
        assert approval.submitted_by_user_id == requester.id
        assert approval.submitted_at is not None

    def test_exactly_one_state_at_a_time(self, requester, accountant):
        pending = record(requester)
        assert _states(pending) == [True, False, False]

        transaction_service.approve_transaction(pending, accountant)
        assert _states(pending) == [False, True, False]

        other = record(requester)
        transaction_service.reject_transaction(other, accountant, "Receipt missing")
        assert _states(other) == [False, False, True]


# =============================================================================
# DIRECT REVIEW
# =============================================================================


class TestDirectReview:

    def test_approve_moves_approval_too(self, requester, accountant):
        txn = record(requester)
        transaction_service.approve_transaction(txn, accountant)
        assert txn.status == "approved"
        assert txn.approved_by_user_id == accountant.id
        assert txn.rejection_reason is None
        assert txn.approval.status == "approved"
        assert txn.approval.reviewed_by_user_id == accountant.id

    def test_reject_records_reason(self, requester, accountant):
        txn = record(requester)
        transaction_service.reject_transaction(txn, accountant, "  No receipt attached  ")
        assert txn.status == "rejected"
        assert txn.rejection_reason == "No receipt attached"
        assert txn.approval.rejection_reason == "No receipt attached"

    def test_reject_requires_reason(self, requester, accountant):
        txn = record(requester)
        with pytest.raises(ValidationError):
            transaction_service.reject_transaction(txn, accountant, "   ")
        assert txn.is_pending()

    def test_cannot_review_own_transaction(self, accountant):
        from pettycash.services.auth_service import assign_role

        # Reviewer whose own movements still go to review
        assign_role(accountant.id, "requester")
        txn = record(accountant)
        assert txn.is_pending()

        with pytest.raises(UnauthorizedError) as exc:
            transaction_service.approve_transaction(txn, accountant)
        assert "own" in exc.value.message
        assert txn.is_pending()

    def test_reviewer_needs_capability(self, requester, db_session, setup_roles):
        from conftest import make_user

        other = make_user(db_session, "requester2", "requester")
        txn = record(requester)
        with pytest.raises(UnauthorizedError):
            transaction_service.approve_transaction(txn, other)

    def test_cannot_review_decided_transaction(self, requester, accountant, admin):
        txn = record(requester)
        transaction_service.approve_transaction(txn, accountant)
        with pytest.raises(UnauthorizedError):
            transaction_service.reject_transaction(txn, admin, "Changed my mind")
        assert txn.is_approved()
        assert txn.rejection_reason is None


# =============================================================================
# EDIT / DELETE
# =============================================================================


class TestEditDelete:

    def _pending_without_approval(self, db_session, requester):
        txn = record(requester)
        db_session.delete(txn.approval)
        db_session.commit()
        db_session.refresh(txn)
        return txn

    def test_edit_blocked_while_awaiting_approval(self, requester):
        from pettycash.services.permission_service import grant_permission_to_role

        grant_permission_to_role("requester", "EDIT_TRANSACTIONS")
        txn = record(requester)
        with pytest.raises(ConflictError, match="awaiting approval"):
            transaction_service.update_transaction(txn, requester, amount="50")
        assert txn.amount == Decimal("100.00")

    def test_owner_edits_pending(self, db_session, requester, setup_roles):
        from pettycash.services.permission_service import grant_permission_to_role

        grant_permission_to_role("requester", "EDIT_TRANSACTIONS")
        txn = self._pending_without_approval(db_session, requester)
        transaction_service.update_transaction(txn, requester, amount="75.50", description="Corrected")
        assert txn.amount == Decimal("75.50")
        assert txn.description == "Corrected"

    def test_edit_rejects_unknown_field(self, db_session, requester, admin):
        txn = self._pending_without_approval(db_session, requester)
        with pytest.raises(ValidationError):
            transaction_service.update_transaction(txn, admin, status="approved")

    def test_cannot_edit_approved(self, cashier):
        txn = record(cashier)
        with pytest.raises(ConflictError):
            transaction_service.update_transaction(txn, cashier, amount="1")

    def test_non_owner_cannot_edit(self, db_session, requester, cashier):
        txn = self._pending_without_approval(db_session, requester)
        with pytest.raises(UnauthorizedError):
            transaction_service.update_transaction(txn, cashier, amount="1")

    def test_admin_deletes_pending(self, db_session, requester, admin):
        txn = record(requester)
        transaction_service.delete_transaction(txn, admin)
        assert txn.is_deleted
        with pytest.raises(NotFoundError):
            transaction_service.get_transaction(txn.id)

    def test_non_owner_cannot_delete(self, requester, cashier):
        txn = record(requester)
        with pytest.raises(UnauthorizedError):
            transaction_service.delete_transaction(txn, cashier)
        assert not txn.is_deleted

    def test_cannot_delete_approved(self, cashier):
        txn = record(cashier)
        with pytest.raises(ConflictError):
            transaction_service.delete_transaction(txn, cashier)

    def test_requester_lacks_delete_permission(self, requester):
        txn = record(requester)
        with pytest.raises(UnauthorizedError):
            transaction_service.delete_transaction(txn, requester)


# =============================================================================
# LISTING
# =============================================================================


class TestListing:

    def test_filters(self, cashier, requester):
        record(cashier, direction="in", amount="500", on="2025-01-05", description="Fund top-up")
        record(cashier, direction="out", amount="20", on="2025-01-10", description="Coffee")
        record(requester, direction="out", amount="30", on="2025-01-12", description="Taxi")

        assert transaction_service.list_transactions(status="pending")["count"] == 1
        assert transaction_service.list_transactions(direction="in")["count"] == 1
        assert transaction_service.list_transactions(status="all", direction="all")["count"] == 3
        assert transaction_service.list_transactions(start_date="2025-01-06", end_date="2025-01-11")["count"] == 1
        assert transaction_service.list_transactions(search="taxi")["items"][0]["description"] == "Taxi"

    def test_newest_first_and_paginated(self, cashier):
        for day in ("2025-01-01", "2025-01-03", "2025-01-02"):
            record(cashier, on=day)
        result = transaction_service.list_transactions(page=1, per_page=2)
        assert [t["transaction_date"] for t in result["items"]] == ["2025-01-03", "2025-01-02"]
        assert result["pagination"]["total"] == 3
        assert result["pagination"]["has_next"] is True

    def test_invalid_status_filter(self, db_session):
        with pytest.raises(ValidationError):
            transaction_service.list_transactions(status="lost")

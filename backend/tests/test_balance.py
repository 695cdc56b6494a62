"""
Period ledger tests.

Verifies:
- Only approved, non-deleted transactions move a balance
- Period balance arithmetic and additivity over adjacent ranges
- Chaining from the latest settled period
- Daily history length and its final running balance
"""

from datetime import date
from decimal import Decimal

import pytest

from conftest import record
from pettycash.errors import ValidationError
from pettycash.services import approval_service, balance_service, period_service


@pytest.fixture
def january(db_session, cashier, requester, accountant):
    """
    January 2025 with a 10000.00 opening balance:
    +5000 on the 10th, -2000 on the 20th, and a pending -9999 on the 25th.
    """
    period = period_service.create_period(
        start="2025-01-01", end="2025-01-31", actor=accountant, opening_balance="10000.00"
    )
    record(cashier, direction="in", amount="5000.00", on="2025-01-10")
    record(cashier, direction="out", amount="2000.00", on="2025-01-20")
    record(requester, direction="out", amount="9999.00", on="2025-01-25")
    return period


# =============================================================================
# PERIOD BALANCE
# =============================================================================


class TestPeriodBalance:

    def test_january_snapshot(self, january):
        snapshot = balance_service.period_balance(date(2025, 1, 1), date(2025, 1, 31))
        assert snapshot.opening_balance == Decimal("10000.00")
        assert snapshot.cash_in == Decimal("5000.00")
        assert snapshot.cash_out == Decimal("2000.00")
        assert snapshot.net_flow == Decimal("3000.00")
        assert snapshot.closing_balance == Decimal("13000.00")

    def test_to_dict_uses_money_strings(self, january):
        data = balance_service.period_balance(date(2025, 1, 1), date(2025, 1, 31)).to_dict()
        assert data["closing_balance"] == "13000.00"
        assert data["period_start"] == "2025-01-01"

    @pytest.mark.parametrize("split", [date(2025, 1, 1), date(2025, 1, 10), date(2025, 1, 15), date(2025, 1, 30)])
    def test_net_flow_is_additive(self, january, split):
        start, end = date(2025, 1, 1), date(2025, 1, 31)
        whole = balance_service.period_balance(start, end).net_flow
        left = balance_service.period_balance(start, split).net_flow
        right = balance_service.period_balance(date.fromordinal(split.toordinal() + 1), end).net_flow
        assert whole == left + right

    def test_end_before_start_rejected(self, db_session):
        with pytest.raises(ValidationError):
            balance_service.period_balance(date(2025, 1, 10), date(2025, 1, 9))

    def test_no_periods_opens_at_zero(self, db_session, cashier):
        record(cashier, direction="in", amount="40.00", on="2025-01-05")
        snapshot = balance_service.period_balance(date(2025, 1, 1), date(2025, 1, 31))
        assert snapshot.opening_balance == Decimal("0.00")
        assert snapshot.closing_balance == Decimal("40.00")


# =============================================================================
# PENDING EXCLUSION
# =============================================================================


class TestPendingExclusion:

    def test_pending_and_rejected_do_not_count(self, db_session, cashier, requester, accountant):
        record(cashier, direction="in", amount="300.00", on="2025-01-02")
        before = balance_service.current_balance()

        pending = record(requester, direction="out", amount="120.00", on="2025-01-03")
        assert balance_service.current_balance() == before

        rejected = record(requester, direction="in", amount="999.00", on="2025-01-04")
        approval_service.reject(rejected.approval, accountant, "Not a real deposit")
        assert balance_service.current_balance() == before

        approval_service.approve(pending.approval, accountant)
        assert balance_service.current_balance() == before - Decimal("120.00")

    def test_deleted_pending_does_not_count(self, db_session, requester, admin):
        txn = record(requester, direction="in", amount="50.00")
        period_total = balance_service.transaction_balance()
        from pettycash.services import transaction_service

        transaction_service.delete_transaction(txn, admin)
        assert balance_service.transaction_balance() == period_total == Decimal("0.00")


# =============================================================================
# OPENING BALANCE / CHAINING
# =============================================================================


class TestOpeningBalance:

    def test_covering_period_wins(self, january):
        assert balance_service.opening_balance(date(2025, 1, 15)) == Decimal("10000.00")

    def test_chains_from_reconciled_period(self, january, accountant):
        period_service.reconcile_period(january, "12500.00", accountant, notes="Short 500")
        assert balance_service.opening_balance(date(2025, 3, 1)) == Decimal("12500.00")

    def test_chains_from_closed_period_without_count(self, january, accountant):
        period_service.close_period(january, accountant)
        # Closed without reconciling: opening balance is carried
        assert balance_service.opening_balance(date(2025, 2, 1)) == Decimal("10000.00")

    def test_active_period_is_not_chained(self, january):
        assert balance_service.opening_balance(date(2025, 2, 1)) == Decimal("0.00")

    def test_latest_settled_period_wins(self, db_session, accountant):
        first = period_service.create_period(
            start="2024-11-01", end="2024-11-30", actor=accountant, opening_balance="100.00"
        )
        second = period_service.create_period(
            start="2024-12-01", end="2024-12-31", actor=accountant, opening_balance="200.00"
        )
        period_service.reconcile_period(first, "100.00", accountant)
        period_service.reconcile_period(second, "250.00", accountant, notes="Found cash")
        assert balance_service.opening_balance(date(2025, 1, 15)) == Decimal("250.00")

    def test_current_balance(self, january):
        # Opening of the covering period plus every approved movement to date
        assert balance_service.current_balance(date(2025, 1, 31)) == Decimal("13000.00")
        assert balance_service.current_balance(date(2025, 1, 15)) == Decimal("15000.00")


# =============================================================================
# HISTORY
# =============================================================================


class TestHistory:

    def test_one_entry_per_day(self, january):
        history = balance_service.balance_history(date(2025, 1, 1), date(2025, 1, 31))
        days = list(history)
        assert len(history) == 31
        assert len(days) == 31
        assert days[0].date == date(2025, 1, 1)
        assert days[-1].date == date(2025, 1, 31)

    def test_last_running_balance_matches_period_closing(self, january):
        start, end = date(2025, 1, 1), date(2025, 1, 31)
        days = list(balance_service.balance_history(start, end))
        assert days[-1].running_balance == balance_service.period_balance(start, end).closing_balance

    def test_quiet_days_carry_balance(self, january):
        days = list(balance_service.balance_history(date(2025, 1, 8), date(2025, 1, 12)))
        assert [d.net_flow for d in days] == [
            Decimal("0.00"), Decimal("0.00"), Decimal("5000.00"), Decimal("0.00"), Decimal("0.00")
        ]
        assert [d.running_balance for d in days] == [
            Decimal("10000.00"), Decimal("10000.00"), Decimal("15000.00"),
            Decimal("15000.00"), Decimal("15000.00"),
        ]
        assert days[2].transaction_count == 1

    def test_restartable(self, january, cashier):
        history = balance_service.balance_history(date(2025, 1, 1), date(2025, 1, 31))
        first = [d.running_balance for d in history]
        second = [d.running_balance for d in history]
        assert first == second

        record(cashier, direction="in", amount="1.00", on="2025-01-31")
        assert list(history)[-1].running_balance == Decimal("13001.00")

    def test_single_day(self, db_session):
        history = balance_service.balance_history(date(2025, 1, 5), date(2025, 1, 5))
        assert len(history) == 1
        assert list(history)[0].running_balance == Decimal("0.00")

    def test_reversed_range_rejected(self, db_session):
        with pytest.raises(ValidationError):
            balance_service.balance_history(date(2025, 1, 5), date(2025, 1, 4))


# =============================================================================
# TODAY / LOW BALANCE / SUMMARY
# =============================================================================


class TestSummaries:

    def test_today_summary(self, january, cashier):
        record(cashier, direction="out", amount="25.00", on="2025-01-31")
        record(cashier, direction="in", amount="10.00", on="2025-01-31")

        summary = balance_service.today_summary()
        assert summary.date == date(2025, 1, 31)
        assert summary.cash_in == Decimal("10.00")
        assert summary.cash_out == Decimal("25.00")
        assert summary.net_flow == Decimal("-15.00")
        assert summary.transaction_count == 2
        assert summary.running_balance == Decimal("12985.00")

    def test_low_balance_alert_uses_threshold(self, app):
        assert balance_service.needs_low_balance_alert(Decimal("999.99"))
        assert not balance_service.needs_low_balance_alert(Decimal("1000.00"))

    def test_low_balance_threshold_is_configurable(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "LOW_BALANCE_THRESHOLD", Decimal("50"))
        assert balance_service.low_balance_threshold() == Decimal("50.00")
        assert not balance_service.needs_low_balance_alert("60")

    def test_monthly_summary(self, january):
        rows = balance_service.balance_summary(months=3)
        assert [r["month"] for r in rows] == ["November 2024", "December 2024", "January 2025"]
        assert rows[-1]["closing_balance"] == "13000.00"
        assert rows[-1]["status"] == "active"
        assert rows[0]["status"] == "no_record"

    def test_transactions_for_period_lists_approved_only(self, january):
        txns = balance_service.transactions_for_period(january)
        assert [t.amount for t in txns] == [Decimal("2000.00"), Decimal("5000.00")]

"""CLI smoke tests (flask system/ledger/budgets groups)."""

from conftest import record
from pettycash.models import Category, Permission, User


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "init"])
    assert result.exit_code == 0, result.output
    assert "DONE Petty cash system initialized" in result.output
    assert db_session.query(User).count() == 4
    assert db_session.query(Category).count() == 5
    assert db_session.query(Permission).count() > 0

    again = runner.invoke(args=["system", "init"])
    assert again.exit_code == 0
    assert "already exists" in again.output
    assert db_session.query(User).count() == 4


def test_ledger_balance(app, cashier):
    record(cashier, direction="in", amount="1500.00")
    result = app.test_cli_runner().invoke(args=["ledger", "balance"])
    assert "Balance: 1500.00" in result.output
    assert "WARN" not in result.output


def test_ledger_history(app, cashier):
    record(cashier, direction="in", amount="20.00", on="2025-01-02")
    result = app.test_cli_runner().invoke(args=["ledger", "history", "--start", "2025-01-01", "--end", "2025-01-03"])
    lines = [line for line in result.output.splitlines() if line.startswith("2025-")]
    assert len(lines) == 3
    assert lines[-1].split()[3] == "20.00"


def test_budget_alerts_empty(app, db_session):
    result = app.test_cli_runner().invoke(args=["budgets", "alerts"])
    assert "No budget alerts" in result.output


def test_users_deactivate_revokes_sessions(app, cashier):
    from pettycash.services import session_service

    _, token = session_service.create_session(cashier.id)
    result = app.test_cli_runner().invoke(args=["users", "deactivate", "cashier"])

    assert "PASS Deactivated 'cashier' (1 sessions revoked)" in result.output
    assert session_service.validate_session(token) is None


def test_perms_check_unknown_code(app, cashier):
    result = app.test_cli_runner().invoke(args=["perms", "check", "cashier", "FLY_TO_MOON"])
    assert "FAIL Unknown permission code" in result.output


def test_prune_notifications(app, db_session, requester):
    from datetime import datetime

    from pettycash.models import Notification

    db_session.add_all([
        Notification(user_id=requester.id, type="approval_decision", title="Old", message="old",
                     created_at=datetime(2024, 11, 1), read_at=datetime(2024, 11, 2)),
        Notification(user_id=requester.id, type="approval_decision", title="Unread", message="old",
                     created_at=datetime(2024, 11, 1)),
        Notification(user_id=requester.id, type="approval_decision", title="Recent", message="new",
                     created_at=datetime(2025, 1, 30), read_at=datetime(2025, 1, 30)),
    ])
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["system", "prune-notifications", "--days", "30"])
    assert "Deleted 1 read notifications" in result.output
    assert sorted(n.title for n in db_session.query(Notification)) == ["Recent", "Unread"]

"""
HTTP API tests.

Verifies:
- Unauthenticated requests return 401
- Missing permissions return 403
- Service errors map onto 400/403/404/409 JSON bodies
- Boundary-only rules: rejection reason length, discrepancy notes
"""

import pytest

from conftest import auth_headers, make_user, record
from pettycash.services.auth_service import hash_password


# =============================================================================
# UNAUTHENTICATED ACCESS: 401
# =============================================================================


class TestUnauthenticatedAccess:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/transactions"),
            ("POST", "/api/transactions"),
            ("GET", "/api/approvals"),
            ("GET", "/api/periods"),
            ("POST", "/api/periods"),
            ("GET", "/api/balance"),
            ("GET", "/api/balance/history"),
            ("GET", "/api/notifications"),
            ("GET", "/api/auth/me"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_bad_token(self, client, db_session):
        resp = client.get("/api/balance", headers=auth_headers("not-a-token"))
        assert resp.status_code == 401


class TestHealth:

    def test_degraded_before_seed(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "degraded"

    def test_healthy_after_seed(self, client, setup_roles):
        resp = client.get("/api/health")
        assert resp.json["status"] == "healthy"
        assert resp.json["checks"]["database"]["details"]["permissions"] > 0


# =============================================================================
# AUTH
# =============================================================================


class TestAuth:

    def test_login_me_logout(self, client, db_session, setup_roles):
        make_user(db_session, "dana", "cashier", password_hash=hash_password("Password123!"))

        resp = client.post("/api/auth/login", json={"username": "dana", "password": "Password123!"})
        assert resp.status_code == 200
        token = resp.json["token"]
        assert "CREATE_TRANSACTIONS" in resp.json["permissions"]

        me = client.get("/api/auth/me", headers=auth_headers(token))
        assert me.status_code == 200
        assert me.json["user"]["username"] == "dana"
        assert me.json["requires_review"] is False
        assert me.json["can_approve"] is True

        assert client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

    def test_login_wrong_password(self, client, db_session, setup_roles):
        make_user(db_session, "dana", "cashier", password_hash=hash_password("Password123!"))
        resp = client.post("/api/auth/login", json={"username": "dana", "password": "nope"})
        assert resp.status_code == 401

    def test_login_missing_fields(self, client, db_session):
        assert client.post("/api/auth/login", json={"username": "dana"}).status_code == 400


# =============================================================================
# TRANSACTIONS
# =============================================================================


class TestTransactionRoutes:

    def _create(self, client, headers, **overrides):
        body = {
            "direction": "out",
            "amount": "42.50",
            "description": "Printer paper",
            "transaction_date": "2025-01-15",
        }
        body.update(overrides)
        return client.post("/api/transactions", json=body, headers=headers)

    def test_cashier_creates_approved(self, client, cashier_headers):
        resp = self._create(client, cashier_headers)
        assert resp.status_code == 201
        assert resp.json["status"] == "approved"
        assert resp.json["amount"] == "42.50"
        assert resp.json["transaction_number"] == "TXN-2025-00001"

    def test_requester_creates_pending(self, client, requester_headers):
        resp = self._create(client, requester_headers)
        assert resp.status_code == 201
        assert resp.json["status"] == "pending"
        assert resp.json["approval_id"] is not None

    def test_validation_error_body(self, client, cashier_headers):
        resp = self._create(client, cashier_headers, amount="0")
        assert resp.status_code == 400
        assert resp.json["kind"] == "validation"
        assert resp.json["field"] == "amount"

    def test_future_date(self, client, cashier_headers):
        resp = self._create(client, cashier_headers, transaction_date="2025-06-01")
        assert resp.status_code == 400
        assert resp.json["field"] == "transaction_date"

    def test_unknown_transaction(self, client, cashier_headers):
        resp = client.get("/api/transactions/987654", headers=cashier_headers)
        assert resp.status_code == 404
        assert resp.json["kind"] == "not_found"

    def test_requester_cannot_approve(self, client, requester, requester_headers):
        txn = record(requester)
        resp = client.post(f"/api/transactions/{txn.id}/approve", headers=requester_headers)
        assert resp.status_code == 403
        assert resp.json["required_permission"] == "APPROVE_TRANSACTIONS"

    def test_approve(self, client, requester, accountant_headers):
        txn = record(requester)
        resp = client.post(f"/api/transactions/{txn.id}/approve", headers=accountant_headers)
        assert resp.status_code == 200
        assert resp.json["status"] == "approved"

    def test_reject_reason_too_short(self, client, requester, accountant_headers):
        txn = record(requester)
        resp = client.post(
            f"/api/transactions/{txn.id}/reject",
            json={"rejection_reason": "no"},
            headers=accountant_headers,
        )
        assert resp.status_code == 400
        assert resp.json["field"] == "rejection_reason"

    def test_reject(self, client, requester, accountant_headers):
        txn = record(requester)
        resp = client.post(
            f"/api/transactions/{txn.id}/reject",
            json={"rejection_reason": "Receipt is illegible"},
            headers=accountant_headers,
        )
        assert resp.status_code == 200
        assert resp.json["status"] == "rejected"
        assert resp.json["rejection_reason"] == "Receipt is illegible"

    def test_delete_approved_conflicts(self, client, cashier, cashier_headers):
        txn = record(cashier)
        resp = client.delete(f"/api/transactions/{txn.id}", headers=cashier_headers)
        assert resp.status_code == 409
        assert resp.json["kind"] == "conflict"

    def test_list(self, client, cashier, cashier_headers):
        record(cashier)
        record(cashier, direction="in", amount="10")
        resp = client.get("/api/transactions?direction=in", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 1
        assert resp.json["pagination"]["total"] == 1


# =============================================================================
# APPROVALS
# =============================================================================


class TestApprovalRoutes:

    def test_pending_list(self, client, requester, accountant_headers):
        record(requester)
        resp = client.get("/api/approvals", headers=accountant_headers)
        assert resp.status_code == 200
        assert resp.json["pending_count"] == 1
        assert resp.json["items"][0]["transaction"]["status"] == "pending"

    def test_status_filter(self, client, requester, accountant, accountant_headers):
        from pettycash.services import approval_service

        decided = record(requester)
        record(requester)
        approval_service.approve(decided.approval, accountant)

        resp = client.get("/api/approvals?status=approved", headers=accountant_headers)
        assert resp.status_code == 200
        assert [a["id"] for a in resp.json["items"]] == [decided.approval.id]
        assert resp.json["stats"] == {"pending": 1, "approved": 1, "rejected": 0}
        assert resp.json["filters"] == {"status": "approved"}

        bad = client.get("/api/approvals?status=archived", headers=accountant_headers)
        assert bad.status_code == 400
        assert bad.json["field"] == "status"

    def test_approve_then_conflict(self, client, requester, accountant_headers, admin_headers):
        txn = record(requester)
        approval_id = txn.approval.id

        first = client.post(f"/api/approvals/{approval_id}/approve", headers=accountant_headers)
        assert first.status_code == 200
        assert first.json["status"] == "approved"

        second = client.post(
            f"/api/approvals/{approval_id}/reject",
            json={"rejection_reason": "Second opinion says no"},
            headers=admin_headers,
        )
        assert second.status_code == 409
        assert second.json["kind"] == "already_decided"

    def test_self_review_forbidden(self, client, accountant, accountant_headers):
        from pettycash.services.auth_service import assign_role

        assign_role(accountant.id, "requester")
        txn = record(accountant)
        resp = client.post(f"/api/approvals/{txn.approval.id}/approve", headers=accountant_headers)
        assert resp.status_code == 403
        assert resp.json["kind"] == "not_allowed"

    def test_submitted_and_detail(self, client, requester, requester_headers):
        txn = record(requester)
        submitted = client.get("/api/approvals/submitted", headers=requester_headers)
        assert submitted.json["count"] == 1

        detail = client.get(f"/api/approvals/{txn.approval.id}", headers=requester_headers)
        assert detail.status_code == 200
        assert detail.json["can_review"] is False


# =============================================================================
# PERIODS / BALANCE
# =============================================================================


class TestPeriodRoutes:

    def _january(self, client, headers):
        return client.post(
            "/api/periods",
            json={"period_start": "2025-01-01", "period_end": "2025-01-31", "opening_balance": "10000.00"},
            headers=headers,
        )

    def test_create_and_overlap(self, client, accountant_headers):
        assert self._january(client, accountant_headers).status_code == 201
        resp = client.post(
            "/api/periods",
            json={"period_start": "2025-01-15", "period_end": "2025-02-15"},
            headers=accountant_headers,
        )
        assert resp.status_code == 409

    def test_requester_cannot_create(self, client, requester_headers):
        assert self._january(client, requester_headers).status_code == 403

    def test_reconcile_requires_notes_on_discrepancy(self, client, cashier, accountant_headers):
        period_id = self._january(client, accountant_headers).json["id"]
        record(cashier, direction="in", amount="5000.00", on="2025-01-10")
        record(cashier, direction="out", amount="2000.00", on="2025-01-20")

        resp = client.post(
            f"/api/periods/{period_id}/reconcile",
            json={"counted_balance": "12500.00"},
            headers=accountant_headers,
        )
        assert resp.status_code == 400
        assert resp.json["field"] == "discrepancy_notes"

        resp = client.post(
            f"/api/periods/{period_id}/reconcile",
            json={"counted_balance": "12500.00", "discrepancy_notes": "Float short after audit"},
            headers=accountant_headers,
        )
        assert resp.status_code == 200
        assert resp.json["status"] == "reconciled"
        assert resp.json["discrepancy_amount"] == "-500.00"
        assert resp.json["balance"]["closing_balance"] == "13000.00"

    def test_reconcile_exact_without_notes(self, client, accountant_headers):
        period_id = self._january(client, accountant_headers).json["id"]
        resp = client.post(
            f"/api/periods/{period_id}/reconcile",
            json={"counted_balance": "10000.00"},
            headers=accountant_headers,
        )
        assert resp.status_code == 200
        assert resp.json["discrepancy_amount"] is None

        again = client.post(
            f"/api/periods/{period_id}/reconcile",
            json={"counted_balance": "10000.00"},
            headers=accountant_headers,
        )
        assert again.status_code == 409

        delete = client.delete(f"/api/periods/{period_id}", headers=accountant_headers)
        assert delete.status_code == 409

    def test_balance_endpoints(self, client, cashier, accountant_headers):
        self._january(client, accountant_headers)
        record(cashier, direction="out", amount="9500.00", on="2025-01-05")

        resp = client.get("/api/balance", headers=accountant_headers)
        assert resp.status_code == 200
        assert resp.json["balance"] == "500.00"
        assert resp.json["needs_low_balance_alert"] is True

        history = client.get(
            "/api/balance/history?start=2025-01-01&end=2025-01-07", headers=accountant_headers
        )
        assert history.json["count"] == 7
        assert history.json["items"][-1]["running_balance"] == "500.00"

        period = client.get(
            "/api/balance/period?start=2025-01-01&end=2025-01-31", headers=accountant_headers
        )
        assert period.json["closing_balance"] == "500.00"

        today = client.get("/api/balance/today", headers=accountant_headers)
        assert today.json["date"] == "2025-01-31"

    def test_history_requires_dates(self, client, accountant_headers):
        resp = client.get("/api/balance/history?start=2025-01-01", headers=accountant_headers)
        assert resp.status_code == 400
        assert resp.json["field"] == "end"

    def test_history_limit(self, client, accountant_headers):
        resp = client.get(
            "/api/balance/history?start=2023-01-01&end=2025-01-01", headers=accountant_headers
        )
        assert resp.status_code == 400


class TestNotificationRoutes:

    def test_inbox_and_read_all(self, client, requester, requester_headers, accountant):
        from pettycash.services import approval_service

        txn = record(requester)
        approval_service.approve(txn.approval, accountant)

        resp = client.get("/api/notifications", headers=requester_headers)
        assert resp.json["unread_count"] == 1
        note_id = resp.json["items"][0]["id"]

        assert client.post("/api/notifications/999999/read", headers=requester_headers).status_code == 404
        assert client.post(f"/api/notifications/{note_id}/read", headers=requester_headers).status_code == 200

        resp = client.post("/api/notifications/read-all", headers=requester_headers)
        assert resp.json["marked"] == 0


class TestBudgetRoutes:

    def test_alerts_and_check(self, client, db_session, cashier, category, admin_headers):
        from pettycash.services import budget_service

        budget_service.create_budget(
            category_id=category.id, amount="100.00", start="2025-01-01", end="2025-01-31"
        )
        record(cashier, direction="out", amount="90.00", category_id=category.id)

        alerts = client.get("/api/balance/budgets", headers=admin_headers)
        assert alerts.status_code == 200
        assert alerts.json["items"][0]["severity"] == "warning"

        check = client.get(
            f"/api/balance/budgets/check?category_id={category.id}&amount=20.00",
            headers=admin_headers,
        )
        assert check.status_code == 200
        assert check.json["would_exceed"] is True

        missing = client.get("/api/balance/budgets/check?amount=20.00", headers=admin_headers)
        assert missing.status_code == 400

    def test_cashier_cannot_view_budgets(self, client, cashier_headers):
        assert client.get("/api/balance/budgets", headers=cashier_headers).status_code == 403

    def test_category_spending(self, client, cashier, category, accountant_headers):
        record(cashier, direction="out", amount="60.00", category_id=category.id)

        resp = client.get(
            "/api/balance/budgets/spending?start=2025-01-01&end=2025-01-31", headers=accountant_headers
        )
        assert resp.status_code == 200
        assert resp.json["items"][0]["category"] == "Office Supplies"
        assert resp.json["items"][0]["total_spent"] == "60.00"

        missing = client.get("/api/balance/budgets/spending?start=2025-01-01", headers=accountant_headers)
        assert missing.status_code == 400
        assert missing.json["field"] == "end"

# Overview: Pytest coverage for ledger transactions, accounts and budget reporting.

import pytest

from siteledger.errors import InvalidTransitionError, UnauthorizedError, ValidationError
from siteledger.extensions import db
from siteledger.models import Account, Project
from siteledger.services.finance_service import DEFAULT_COA, compute_budget_health
from siteledger.services.timeline_service import timeline_for


def _spend(project):
    return db.session.get(Project, project.id).actual_spend_cents


@pytest.fixture
def expense(services, accountant_a, project_a):
    return services.ledger.create_transaction(
        accountant_a,
        direction="EXPENSE",
        category="Overheads",
        amount_cents=250000,
        project_id=project_a.id,
        cgst_cents=22500,
        sgst_cents=22500,
        description="Site office rent",
        ledger_date="2026-10-05",
    )


class TestTransactions:

    def test_manual_expense_counts_as_spend(self, expense, project_a):
        assert expense.status == "PENDING"
        assert expense.source == "MANUAL"
        assert expense.transaction_number.startswith("EXP-")
        assert expense.ledger_date.isoformat() == "2026-10-05"
        assert _spend(project_a) == 250000

    def test_income_does_not_touch_spend(self, services, accountant_a, project_a):
        txn = services.ledger.create_transaction(
            accountant_a, direction="INCOME", category="Revenue", amount_cents=900000, project_id=project_a.id
        )
        assert txn.transaction_number.startswith("INC-")
        assert _spend(project_a) == 0

    def test_approve_then_settle(self, services, accountant_a, finance_a, expense):
        services.ledger.approve(expense.id, finance_a)
        settled = services.ledger.settle(expense.id, accountant_a)
        assert settled.status == "SETTLED"
        assert settled.settled_at is not None

        statuses = [t.status for t in timeline_for("transaction", expense.id)]
        assert statuses == ["PENDING", "APPROVED", "SETTLED"]

    def test_settle_requires_approval(self, services, accountant_a, expense):
        with pytest.raises(InvalidTransitionError):
            services.ledger.settle(expense.id, accountant_a)

    def test_cancel_returns_spend(self, services, finance_a, expense, project_a):
        services.ledger.cancel(expense.id, finance_a)
        assert _spend(project_a) == 0

    def test_settled_is_final(self, services, accountant_a, finance_a, expense, project_a):
        services.ledger.approve(expense.id, finance_a)
        services.ledger.settle(expense.id, accountant_a)
        with pytest.raises(InvalidTransitionError):
            services.ledger.cancel(expense.id, finance_a)
        assert _spend(project_a) == 250000

    def test_accountant_cannot_approve(self, services, accountant_a, expense):
        with pytest.raises(UnauthorizedError):
            services.ledger.transition(expense.id, "approve", accountant_a)

    @pytest.mark.parametrize("overrides", [
        {"direction": "TRANSFER"},
        {"category": "Snacks"},
        {"amount_cents": -5},
        {"amount_cents": None},
        {"payment_mode": "Barter"},
        {"ledger_date": "05/10/2026"},
    ])
    def test_field_validation(self, services, accountant_a, project_a, overrides):
        fields = dict(direction="EXPENSE", category="Other", amount_cents=100, project_id=project_a.id)
        fields.update(overrides)
        with pytest.raises(ValidationError):
            services.ledger.create_transaction(accountant_a, **fields)

    def test_list_filters(self, services, accountant_a, expense, project_a):
        services.ledger.create_transaction(
            accountant_a, direction="INCOME", category="Revenue", amount_cents=1, project_id=project_a.id
        )
        assert len(services.ledger.list(accountant_a)) == 2
        assert [t.id for t in services.ledger.list(accountant_a, direction="EXPENSE")] == [expense.id]
        assert services.ledger.list(accountant_a, status="SETTLED") == []

    def test_storekeeper_cannot_view_finance(self, services, storekeeper_a, expense):
        with pytest.raises(UnauthorizedError):
            services.ledger.list(storekeeper_a)


class TestAccounts:

    def test_default_chart_once(self, services, accountant_a):
        accounts = services.ledger.setup_default_coa(accountant_a)
        assert len(accounts) == len(DEFAULT_COA)
        with pytest.raises(ValidationError):
            services.ledger.setup_default_coa(accountant_a)

    def test_duplicate_code(self, services, accountant_a):
        services.ledger.create_account(accountant_a, code="1500", name="Site Imprest", type="Asset")
        with pytest.raises(ValidationError):
            services.ledger.create_account(accountant_a, code="1500", name="Other", type="Asset")

    def test_settle_moves_asset_balance(self, services, accountant_a, finance_a, project_a):
        bank = services.ledger.create_account(
            accountant_a, code="1100", name="Main Bank Account", type="Asset", opening_balance_cents=1_000_000
        )
        txn = services.ledger.create_transaction(
            accountant_a, direction="EXPENSE", category="Material", amount_cents=300000,
            project_id=project_a.id, account_id=bank.id, payment_mode="NEFT",
        )
        services.ledger.approve(txn.id, finance_a)
        services.ledger.settle(txn.id, accountant_a)
        assert db.session.get(Account, bank.id).balance_cents == 700000

    def test_settle_accumulates_expense_account(self, services, accountant_a, finance_a, project_a):
        labour = services.ledger.create_account(accountant_a, code="5100", name="Direct Labor Charges", type="Expense")
        txn = services.ledger.create_transaction(
            accountant_a, direction="EXPENSE", category="Labor", amount_cents=40000,
            project_id=project_a.id, account_id=labour.id,
        )
        services.ledger.approve(txn.id, finance_a)
        services.ledger.settle(txn.id, accountant_a)
        assert db.session.get(Account, labour.id).balance_cents == 40000


class TestBudgetHealth:

    def test_fresh_project_is_green(self, services, accountant_a, project_a):
        health = services.ledger.budget_health(project_a.id, accountant_a)
        assert health["total_budget_cents"] == 105_000_000
        assert health["available_budget_cents"] == 105_000_000
        assert health["health_status"] == "GREEN"

    def test_overspend_alerts(self, services, sink, accountant_a, project_a):
        services.ledger.create_transaction(
            accountant_a, direction="EXPENSE", category="Contractor", amount_cents=100_000_000, project_id=project_a.id
        )
        health = services.ledger.budget_health(project_a.id, accountant_a)
        assert health["utilization_percent"] > 90
        assert health["health_status"] == "RED"
        assert len(sink.of_type("BUDGET_ALERT")) == 1

    def test_locked_amount_reduces_available(self):
        project = Project(
            name="P", approved_budget_cents=1000, revised_budget_cents=0, contingency_fund_cents=0,
            actual_spend_cents=100, locked_amount_cents=300, progress=10,
        )
        health = compute_budget_health(project)
        assert health["available_budget_cents"] == 600
        assert health["utilization_percent"] == 10.0
        assert health["health_status"] == "GREEN"

    def test_zero_budget(self):
        project = Project(name="P", approved_budget_cents=0, actual_spend_cents=0, locked_amount_cents=0)
        assert compute_budget_health(project)["utilization_percent"] == 0.0

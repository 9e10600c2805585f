# Overview: Monetary transactions, chart of accounts, budget health and cash-flow forecast.

"""
Ledger primitives.

LIFECYCLE (Transaction):
PENDING --approve--> APPROVED --settle--> SETTLED
PENDING/APPROVED --cancel--> CANCELLED
A SETTLED transaction never changes again.

SPEND INVARIANT:
project.actual_spend_cents moves together with EXPENSE transactions: +amount
when the transaction is recorded, -amount when it is cancelled. Material
issues, payment releases and payroll settlements record their expenses
through record(), so they share this rule.

ACCOUNT BALANCES:
Settling a transaction that names an account moves the account balance.
Asset accounts track cash (INCOME adds, EXPENSE subtracts); every other
account type accumulates the settled amount.
"""

from __future__ import annotations

from datetime import timedelta

from ..errors import InvalidTransitionError, ValidationError
from ..extensions import db
from ..models import Account, PaymentRequest, Project, Transaction, Vendor
from ..notifications import company_topic, publish_safely
from ..permissions import require_role
from ..time_utils import to_calendar_date, utcnow
from .concurrency import lock_for_update, run_in_transaction
from .sequence_service import next_transaction_number
from .tenant_service import get_owned, scoped
from .timeline_service import append_timeline


DIRECTIONS = ("INCOME", "EXPENSE")
CATEGORIES = (
    "Material",
    "Labor",
    "Machinery",
    "Overheads",
    "Compliance",
    "Revenue",
    "Payroll",
    "Consultancy",
    "Contractor",
    "Other",
)
PAYMENT_MODES = ("Cash", "Bank", "UPI", "Cheque", "NEFT", "RTGS")
ACCOUNT_TYPES = ("Asset", "Liability", "Equity", "Revenue", "Expense")

DEFAULT_COA = (
    ("1000", "Cash in Hand", "Asset"),
    ("1010", "Petty Cash", "Asset"),
    ("1100", "Main Bank Account", "Asset"),
    ("1200", "Accounts Receivable (Clients)", "Asset"),
    ("1300", "Project Advances", "Asset"),
    ("2000", "Accounts Payable (Vendors)", "Liability"),
    ("2100", "GST Payable", "Liability"),
    ("2200", "TDS Payable", "Liability"),
    ("3000", "Equity / Initial Capital", "Equity"),
    ("3100", "Retained Earnings", "Equity"),
    ("4000", "Project Revenue", "Revenue"),
    ("4100", "Consultancy Income", "Revenue"),
    ("5000", "Material Procurement", "Expense"),
    ("5100", "Direct Labor Charges", "Expense"),
    ("5200", "Site Overheads", "Expense"),
    ("5300", "Office Rent & Utilities", "Expense"),
    ("5400", "Design & Engineering Costs", "Expense"),
)

BUDGET_ALERT_THRESHOLD_PERCENT = 90
FORECAST_DAYS = 30


def _non_negative_int(name: str, value) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer")
    return value


def init_default_coa(company_id: int) -> list[Account]:
    """Insert the default chart of accounts for a company (caller commits)."""
    accounts = [
        Account(company_id=company_id, code=code, name=name, type=acc_type, balance_cents=0)
        for code, name, acc_type in DEFAULT_COA
    ]
    db.session.add_all(accounts)
    db.session.flush()
    return accounts


def compute_budget_health(project: Project) -> dict:
    """
    Budget health snapshot for a project.

    total = approved + revised + contingency
    available = total - actual_spend - locked
    utilization = actual_spend / total as a percentage (0 when total is 0)

    health_status compares utilization against physical progress:
    RED when more than 10 points ahead of progress, YELLOW when more than 5.
    """
    total = (
        (project.approved_budget_cents or 0)
        + (project.revised_budget_cents or 0)
        + (project.contingency_fund_cents or 0)
    )
    spend = project.actual_spend_cents or 0
    locked = project.locked_amount_cents or 0
    utilization = round(spend * 100 / total, 2) if total else 0.0
    progress = project.progress or 0

    if utilization > progress + 10:
        health = "RED"
    elif utilization > progress + 5:
        health = "YELLOW"
    else:
        health = "GREEN"

    return {
        "project": {"id": project.id, "name": project.name},
        "total_budget_cents": total,
        "approved_budget_cents": project.approved_budget_cents or 0,
        "revised_budget_cents": project.revised_budget_cents or 0,
        "contingency_fund_cents": project.contingency_fund_cents or 0,
        "actual_spend_cents": spend,
        "locked_amount_cents": locked,
        "available_budget_cents": total - spend - locked,
        "utilization_percent": utilization,
        "progress": progress,
        "variance": round(progress - utilization, 2),
        "health_status": health,
    }


class LedgerService:
    """Transactions and accounts for one company at a time (via the actor)."""

    def __init__(self, notifier=None):
        self.notifier = notifier

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def create_transaction(
        self,
        actor,
        *,
        direction: str,
        category: str,
        amount_cents: int,
        project_id: int,
        vendor_id: int | None = None,
        account_id: int | None = None,
        cgst_cents: int = 0,
        sgst_cents: int = 0,
        igst_cents: int = 0,
        payment_mode: str | None = None,
        reference_id: str | None = None,
        boq_item: str | None = None,
        description: str | None = None,
        ledger_date=None,
    ) -> Transaction:
        """Record a manual transaction in PENDING."""
        require_role(actor, "transaction.create")
        fields = self._validate_fields(
            direction=direction,
            category=category,
            amount_cents=amount_cents,
            cgst_cents=cgst_cents,
            sgst_cents=sgst_cents,
            igst_cents=igst_cents,
            payment_mode=payment_mode,
            ledger_date=ledger_date,
        )

        def _op():
            return self.record(
                actor,
                project_id=project_id,
                vendor_id=vendor_id,
                account_id=account_id,
                reference_id=reference_id,
                boq_item=boq_item,
                description=description,
                status="PENDING",
                source="MANUAL",
                note="Transaction initiated",
                **fields,
            )

        return run_in_transaction(_op)

    def record(
        self,
        actor,
        *,
        direction: str,
        category: str,
        amount_cents: int,
        project_id: int,
        status: str,
        source: str,
        source_id: int | None = None,
        vendor_id: int | None = None,
        account_id: int | None = None,
        cgst_cents: int = 0,
        sgst_cents: int = 0,
        igst_cents: int = 0,
        payment_mode: str | None = None,
        reference_id: str | None = None,
        boq_item: str | None = None,
        description: str | None = None,
        ledger_date=None,
        note: str | None = None,
    ) -> Transaction:
        """
        Insert a transaction inside the caller's transaction.

        Used directly by workflows that generate expenses. An EXPENSE adds
        its amount to the project's actual spend in the same unit of work.
        """
        if direction not in DIRECTIONS:
            raise ValidationError(f"Invalid direction: {direction}")
        project = get_owned(Project, project_id, actor, label="Project", for_update=True)
        if vendor_id is not None:
            get_owned(Vendor, vendor_id, actor, label="Vendor")
        if account_id is not None:
            get_owned(Account, account_id, actor, label="Account")

        txn = Transaction(
            company_id=actor.company_id,
            transaction_number=next_transaction_number(actor.company_id, direction),
            direction=direction,
            category=category,
            amount_cents=amount_cents,
            project_id=project.id,
            vendor_id=vendor_id,
            account_id=account_id,
            cgst_cents=cgst_cents or 0,
            sgst_cents=sgst_cents or 0,
            igst_cents=igst_cents or 0,
            payment_mode=payment_mode,
            reference_id=reference_id,
            boq_item=boq_item,
            description=description,
            ledger_date=ledger_date,
            source=source,
            source_id=source_id,
            status=status,
            created_by_user_id=actor.user_id,
            approved_by_user_id=actor.user_id if status == "APPROVED" else None,
        )
        db.session.add(txn)
        if direction == "EXPENSE":
            project.actual_spend_cents = (project.actual_spend_cents or 0) + amount_cents
        db.session.flush()
        append_timeline("transaction", txn, status, actor, note)
        return txn

    def approve(self, transaction_id: int, actor, note: str | None = None) -> Transaction:
        require_role(actor, "transaction.approve")

        def _op():
            txn = self._load(transaction_id, actor)
            self._require_status(txn, ("PENDING",), "approve")
            txn.status = "APPROVED"
            txn.approved_by_user_id = actor.user_id
            append_timeline("transaction", txn, "APPROVED", actor, note or "Transaction approved")
            return txn

        return run_in_transaction(_op)

    def settle(self, transaction_id: int, actor, note: str | None = None) -> Transaction:
        """APPROVED -> SETTLED; moves the linked account's balance."""
        require_role(actor, "transaction.settle")

        def _op():
            txn = self._load(transaction_id, actor)
            self._require_status(txn, ("APPROVED",), "settle")
            txn.status = "SETTLED"
            txn.settled_at = utcnow()
            if txn.account_id is not None:
                account = lock_for_update(db.session.query(Account).filter_by(id=txn.account_id)).one()
                account.balance_cents = (account.balance_cents or 0) + self._balance_delta(account, txn)
            append_timeline("transaction", txn, "SETTLED", actor, note or "Transaction settled")
            return txn

        return run_in_transaction(_op)

    def cancel(self, transaction_id: int, actor, note: str | None = None) -> Transaction:
        """PENDING/APPROVED -> CANCELLED; an EXPENSE gives its amount back to the project."""
        require_role(actor, "transaction.cancel")

        def _op():
            txn = self._load(transaction_id, actor)
            self._require_status(txn, ("PENDING", "APPROVED"), "cancel")
            txn.status = "CANCELLED"
            if txn.direction == "EXPENSE":
                project = lock_for_update(db.session.query(Project).filter_by(id=txn.project_id)).one()
                project.actual_spend_cents = (project.actual_spend_cents or 0) - txn.amount_cents
            append_timeline("transaction", txn, "CANCELLED", actor, note or "Transaction cancelled")
            return txn

        return run_in_transaction(_op)

    def transition(self, transaction_id: int, action: str, actor, payload: dict | None = None) -> Transaction:
        payload = payload or {}
        handlers = {
            "approve": self.approve,
            "settle": self.settle,
            "cancel": self.cancel,
        }
        handler = handlers.get(action)
        if handler is None:
            raise ValidationError(f"Unknown transaction action: {action}")
        return handler(transaction_id, actor, note=payload.get("note"))

    def get(self, transaction_id: int, actor) -> Transaction:
        return get_owned(Transaction, transaction_id, actor, label="Transaction")

    def list(
        self,
        actor,
        *,
        project_id: int | None = None,
        category: str | None = None,
        direction: str | None = None,
        status: str | None = None,
        account_id: int | None = None,
        start=None,
        end=None,
    ) -> list[Transaction]:
        require_role(actor, "finance.view")
        query = scoped(Transaction, actor)
        if project_id is not None:
            query = query.filter(Transaction.project_id == project_id)
        if category:
            query = query.filter(Transaction.category == category)
        if direction:
            query = query.filter(Transaction.direction == direction)
        if status:
            query = query.filter(Transaction.status == status)
        if account_id is not None:
            query = query.filter(Transaction.account_id == account_id)
        if start is not None:
            query = query.filter(Transaction.created_at >= start)
        if end is not None:
            query = query.filter(Transaction.created_at <= end)
        return query.order_by(Transaction.created_at.desc(), Transaction.id.desc()).all()

    # ------------------------------------------------------------------
    # Chart of accounts
    # ------------------------------------------------------------------

    def list_accounts(self, actor) -> list[Account]:
        require_role(actor, "finance.view")
        return scoped(Account, actor).order_by(Account.code.asc()).all()

    def create_account(
        self,
        actor,
        *,
        code: str,
        name: str,
        type: str,
        description: str | None = None,
        opening_balance_cents: int = 0,
    ) -> Account:
        require_role(actor, "account.manage")
        code = (code or "").strip()
        name = (name or "").strip()
        if not code or not name:
            raise ValidationError("code and name are required")
        if type not in ACCOUNT_TYPES:
            raise ValidationError(f"Invalid account type: {type}")
        if isinstance(opening_balance_cents, bool) or not isinstance(opening_balance_cents, int):
            raise ValidationError("opening_balance_cents must be an integer")

        def _op():
            if scoped(Account, actor).filter_by(code=code).first():
                raise ValidationError(f"Account code '{code}' already exists")
            account = Account(
                company_id=actor.company_id,
                code=code,
                name=name,
                type=type,
                description=description,
                balance_cents=opening_balance_cents,
            )
            db.session.add(account)
            db.session.flush()
            return account

        return run_in_transaction(_op)

    def setup_default_coa(self, actor) -> list[Account]:
        """Initialize defaults once; refused when the company already has accounts."""
        require_role(actor, "account.manage")

        def _op():
            if scoped(Account, actor).first():
                raise ValidationError("Chart of Accounts already initialized for this company")
            return init_default_coa(actor.company_id)

        return run_in_transaction(_op)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def budget_health(self, project_id: int, actor) -> dict:
        """Budget health for a project; publishes BUDGET_ALERT above 90% utilization."""
        project = get_owned(Project, project_id, actor, label="Project")
        health = compute_budget_health(project)
        if health["utilization_percent"] > BUDGET_ALERT_THRESHOLD_PERCENT:
            publish_safely(self.notifier, company_topic(actor.company_id), "BUDGET_ALERT", {
                "project_id": project.id,
                "project_name": project.name,
                "message": f"Budget utilization at {health['utilization_percent']}%!",
            })
        return health

    def cash_flow_forecast(self, actor) -> dict:
        """
        Expected outflow over the next 30 days: every payment request still
        awaiting release. Inflows are not modelled yet.
        """
        require_role(actor, "finance.view")
        pending = (
            scoped(PaymentRequest, actor)
            .filter(PaymentRequest.status.in_(("PENDING", "VERIFIED")))
            .all()
        )
        outflow = sum(p.amount_cents for p in pending)
        today = utcnow().date()
        return {
            "period_days": FORECAST_DAYS,
            "from_date": today.isoformat(),
            "to_date": (today + timedelta(days=FORECAST_DAYS)).isoformat(),
            "expected_outflow_cents": outflow,
            "expected_inflow_cents": 0,
            "net_position_cents": -outflow,
            "pending_payments": len(pending),
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate_fields(self, **fields) -> dict:
        if fields["direction"] not in DIRECTIONS:
            raise ValidationError(f"Invalid direction: {fields['direction']}")
        if fields["category"] not in CATEGORIES:
            raise ValidationError(f"Invalid category: {fields['category']}")
        if fields["amount_cents"] is None:
            raise ValidationError("amount_cents is required")
        for key in ("amount_cents", "cgst_cents", "sgst_cents", "igst_cents"):
            fields[key] = _non_negative_int(key, fields[key])
        if fields["payment_mode"] is not None and fields["payment_mode"] not in PAYMENT_MODES:
            raise ValidationError(f"Invalid payment mode: {fields['payment_mode']}")
        try:
            fields["ledger_date"] = to_calendar_date(fields["ledger_date"])
        except ValueError:
            raise ValidationError("ledger_date must be an ISO date")
        return fields

    def _load(self, transaction_id: int, actor) -> Transaction:
        return get_owned(Transaction, transaction_id, actor, label="Transaction", for_update=True)

    def _require_status(self, txn: Transaction, allowed: tuple, action: str) -> None:
        if txn.status not in allowed:
            raise InvalidTransitionError(
                f"Cannot {action} transaction {txn.transaction_number} in status {txn.status}"
            )

    def _balance_delta(self, account: Account, txn: Transaction) -> int:
        if account.type == "Asset":
            return txn.amount_cents if txn.direction == "INCOME" else -txn.amount_cents
        return txn.amount_cents


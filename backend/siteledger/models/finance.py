from __future__ import annotations

from ..extensions import db
from siteledger.time_utils import to_utc_z


class Account(db.Model):
    """
    Chart of accounts entry.

    MULTI-TENANT: code is unique within a company.
    balance_cents moves when a transaction linked to the account is SETTLED.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        db.UniqueConstraint("company_id", "code", name="uq_accounts_company_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    code = db.Column(db.String(16), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    # Asset, Liability, Equity, Revenue, Expense
    type = db.Column(db.String(16), nullable=False)
    description = db.Column(db.Text, nullable=True)

    balance_cents = db.Column(db.BigInteger, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "code": self.code,
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "balance_cents": self.balance_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Transaction(db.Model):
    """
    Monetary transaction (income or expense) against a project.

    LIFECYCLE:
    PENDING -> APPROVED -> SETTLED
    PENDING/APPROVED -> CANCELLED

    IMMUTABLE: Once SETTLED, a transaction cannot change status or amount.

    source/source_id link auto-generated rows back to what created them
    (MATERIAL_ISSUE -> material_requests, PAYMENT_RELEASE -> payment_requests,
    PAYROLL -> worker_settlements).
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.UniqueConstraint("company_id", "transaction_number", name="uq_transactions_company_number"),
        db.Index("ix_transactions_company_project", "company_id", "project_id"),
        db.Index("ix_transactions_source", "source", "source_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    # e.g., "EXP-2610-00042"
    transaction_number = db.Column(db.String(32), nullable=False)

    # INCOME, EXPENSE
    direction = db.Column(db.String(8), nullable=False, index=True)
    category = db.Column(db.String(32), nullable=False, index=True)
    amount_cents = db.Column(db.BigInteger, nullable=False)

    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)

    cgst_cents = db.Column(db.BigInteger, nullable=False, default=0)
    sgst_cents = db.Column(db.BigInteger, nullable=False, default=0)
    igst_cents = db.Column(db.BigInteger, nullable=False, default=0)

    payment_mode = db.Column(db.String(16), nullable=True)
    reference_id = db.Column(db.String(128), nullable=True)  # invoice number, UTR, cheque number
    boq_item = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=True)
    ledger_date = db.Column(db.Date, nullable=True)

    # MANUAL, MATERIAL_ISSUE, PAYMENT_RELEASE, PAYROLL
    source = db.Column(db.String(24), nullable=False, default="MANUAL")
    source_id = db.Column(db.Integer, nullable=True)

    # PENDING, APPROVED, SETTLED, CANCELLED
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    settled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    project = db.relationship("Project")
    vendor = db.relationship("Vendor")
    account = db.relationship("Account")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def gst_total_cents(self) -> int:
        return (self.cgst_cents or 0) + (self.sgst_cents or 0) + (self.igst_cents or 0)

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} number={self.transaction_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "transaction_number": self.transaction_number,
            "direction": self.direction,
            "category": self.category,
            "amount_cents": self.amount_cents,
            "project_id": self.project_id,
            "vendor_id": self.vendor_id,
            "account_id": self.account_id,
            "gst": {
                "cgst_cents": self.cgst_cents,
                "sgst_cents": self.sgst_cents,
                "igst_cents": self.igst_cents,
                "total_cents": self.gst_total_cents,
            },
            "payment_mode": self.payment_mode,
            "reference_id": self.reference_id,
            "boq_item": self.boq_item,
            "description": self.description,
            "ledger_date": self.ledger_date.isoformat() if self.ledger_date else None,
            "source": self.source,
            "source_id": self.source_id,
            "status": self.status,
            "approved_by_user_id": self.approved_by_user_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "settled_at": to_utc_z(self.settled_at) if self.settled_at else None,
            "version_id": self.version_id,
        }


class PaymentRequest(db.Model):
    """
    Vendor payment request with budget locking.

    LIFECYCLE:
    1. PENDING: amount locked into project.locked_amount_cents at creation
    2. VERIFIED: accounts checked the invoice (no money moves)
    3. RELEASED: unlocked, added to actual spend, expense transaction created
    4. REJECTED: unlocked without spend
    """
    __tablename__ = "payment_requests"
    __table_args__ = (
        db.UniqueConstraint("company_id", "request_number", name="uq_payment_requests_company_number"),
        db.Index("ix_payment_requests_company_status", "company_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    # e.g., "PAY-2610-00003"
    request_number = db.Column(db.String(32), nullable=False)

    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    purpose = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(32), nullable=False, default="Other")

    # Advance sub-ledger
    advance_paid_cents = db.Column(db.BigInteger, nullable=False, default=0)
    advance_adjusted_cents = db.Column(db.BigInteger, nullable=False, default=0)
    advance_balance_cents = db.Column(db.BigInteger, nullable=False, default=0)

    # Retention sub-ledger (percentage in basis points)
    retention_bps = db.Column(db.Integer, nullable=False, default=0)
    retention_cents = db.Column(db.BigInteger, nullable=False, default=0)
    retention_release_condition = db.Column(db.String(255), nullable=True)
    retention_release_date = db.Column(db.Date, nullable=True)

    invoice_number = db.Column(db.String(64), nullable=True)
    invoice_date = db.Column(db.Date, nullable=True)
    invoice_url = db.Column(db.String(512), nullable=True)

    payment_mode = db.Column(db.String(16), nullable=True)
    payment_reference_id = db.Column(db.String(128), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # PENDING, VERIFIED, RELEASED, REJECTED
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    requested_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    verified_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    released_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    vendor = db.relationship("Vendor")
    project = db.relationship("Project")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PaymentRequest id={self.id} number={self.request_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "request_number": self.request_number,
            "vendor_id": self.vendor_id,
            "project_id": self.project_id,
            "amount_cents": self.amount_cents,
            "purpose": self.purpose,
            "category": self.category,
            "advance": {
                "paid_cents": self.advance_paid_cents,
                "adjusted_cents": self.advance_adjusted_cents,
                "balance_cents": self.advance_balance_cents,
            },
            "retention": {
                "percentage_bps": self.retention_bps,
                "amount_cents": self.retention_cents,
                "release_condition": self.retention_release_condition,
                "release_date": self.retention_release_date.isoformat() if self.retention_release_date else None,
            },
            "invoice": {
                "number": self.invoice_number,
                "date": self.invoice_date.isoformat() if self.invoice_date else None,
                "url": self.invoice_url,
            },
            "payment": {
                "mode": self.payment_mode,
                "reference_id": self.payment_reference_id,
                "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            },
            "status": self.status,
            "requested_by_user_id": self.requested_by_user_id,
            "verified_by_user_id": self.verified_by_user_id,
            "released_by_user_id": self.released_by_user_id,
            "transaction_id": self.transaction_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }

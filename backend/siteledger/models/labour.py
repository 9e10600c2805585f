from __future__ import annotations

from ..extensions import db
from siteledger.time_utils import to_utc_z


class Worker(db.Model):
    """
    Daily-wage site worker with a running payroll ledger.

    PAYROLL LEDGER:
    - attendance: one entry per calendar day, paid=False until settled
    - advances: cash handed out before settlement, settled=False until deducted
    - pending_dues_cents: carry-forward from the last settlement
      (positive = still owed to the worker, negative = overpaid)

    version_id serializes concurrent settlements on the same worker.
    """
    __tablename__ = "workers"
    __table_args__ = (
        db.UniqueConstraint("company_id", "worker_code", name="uq_workers_company_code"),
        db.UniqueConstraint("company_id", "id_number", name="uq_workers_company_id_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=True, index=True)

    # e.g., "LAB0012"
    worker_code = db.Column(db.String(16), nullable=False)
    # National ID (Aadhaar) number
    id_number = db.Column(db.String(32), nullable=True)

    full_name = db.Column(db.String(255), nullable=False)
    mobile = db.Column(db.String(32), nullable=True)
    gender = db.Column(db.String(16), nullable=True)
    address = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(64), nullable=False, default="Helper / Mazdoor")
    photo_url = db.Column(db.String(512), nullable=True)

    daily_wage_cents = db.Column(db.Integer, nullable=False, default=0)
    pending_dues_cents = db.Column(db.BigInteger, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    attendance = db.relationship(
        "AttendanceEntry",
        backref="worker",
        lazy=True,
        order_by="AttendanceEntry.work_date",
        cascade="all, delete-orphan",
    )
    advances = db.relationship("WorkerAdvance", backref="worker", lazy=True, order_by="WorkerAdvance.id")
    settlements = db.relationship("WorkerSettlement", backref="worker", lazy=True, order_by="WorkerSettlement.id")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Worker id={self.id} code={self.worker_code!r} dues={self.pending_dues_cents}>"

    def to_dict(self, include_ledger: bool = True) -> dict:
        result = {
            "id": self.id,
            "company_id": self.company_id,
            "project_id": self.project_id,
            "worker_code": self.worker_code,
            "id_number": self.id_number,
            "full_name": self.full_name,
            "mobile": self.mobile,
            "gender": self.gender,
            "address": self.address,
            "category": self.category,
            "photo_url": self.photo_url,
            "daily_wage_cents": self.daily_wage_cents,
            "pending_dues_cents": self.pending_dues_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_ledger:
            result["attendance"] = [a.to_dict() for a in self.attendance]
            result["advances"] = [a.to_dict() for a in self.advances]
            result["settlements"] = [s.to_dict() for s in self.settlements]
        return result


class AttendanceEntry(db.Model):
    __tablename__ = "attendance_entries"
    __table_args__ = (
        db.UniqueConstraint("worker_id", "work_date", name="uq_attendance_worker_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    worker_id = db.Column(db.Integer, db.ForeignKey("workers.id"), nullable=False, index=True)

    work_date = db.Column(db.Date, nullable=False)
    # Present, Absent, HalfDay, Late
    status = db.Column(db.String(16), nullable=False, default="Present")
    late_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    paid = db.Column(db.Boolean, nullable=False, default=False, index=True)

    settlement_id = db.Column(db.Integer, db.ForeignKey("worker_settlements.id"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "work_date": self.work_date.isoformat(),
            "status": self.status,
            "late_fee_cents": self.late_fee_cents,
            "paid": self.paid,
            "settlement_id": self.settlement_id,
        }


class WorkerAdvance(db.Model):
    __tablename__ = "worker_advances"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    worker_id = db.Column(db.Integer, db.ForeignKey("workers.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    given_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    given_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    settled = db.Column(db.Boolean, nullable=False, default=False, index=True)
    settlement_id = db.Column(db.Integer, db.ForeignKey("worker_settlements.id"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount_cents": self.amount_cents,
            "reason": self.reason,
            "given_at": to_utc_z(self.given_at),
            "given_by_user_id": self.given_by_user_id,
            "settled": self.settled,
            "settlement_id": self.settlement_id,
        }


class WorkerSettlement(db.Model):
    """
    One payroll settlement.

    net_payable = total_earnings + previous_dues - total_deductions
    carry_forward = net_payable - amount_paid (becomes the worker's pending dues)
    """
    __tablename__ = "worker_settlements"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    worker_id = db.Column(db.Integer, db.ForeignKey("workers.id"), nullable=False, index=True)

    settled_at = db.Column(db.DateTime(timezone=True), nullable=False)
    total_earnings_cents = db.Column(db.BigInteger, nullable=False)
    total_deductions_cents = db.Column(db.BigInteger, nullable=False)
    previous_dues_cents = db.Column(db.BigInteger, nullable=False)
    net_payable_cents = db.Column(db.BigInteger, nullable=False)
    amount_paid_cents = db.Column(db.BigInteger, nullable=False)
    carry_forward_cents = db.Column(db.BigInteger, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    settled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "settled_at": to_utc_z(self.settled_at),
            "total_earnings_cents": self.total_earnings_cents,
            "total_deductions_cents": self.total_deductions_cents,
            "previous_dues_cents": self.previous_dues_cents,
            "net_payable_cents": self.net_payable_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "carry_forward_cents": self.carry_forward_cents,
            "notes": self.notes,
            "settled_by_user_id": self.settled_by_user_id,
            "transaction_id": self.transaction_id,
        }

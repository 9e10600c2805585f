from __future__ import annotations

from ..extensions import db
from siteledger.time_utils import to_utc_z


class Company(db.Model):
    """
    Multi-tenant root: every tenant is a Company.

    WHY: Shared-database multi-tenancy with strict isolation.
    Projects, users, materials, vendors, workers and every financial
    document belong to exactly one company. No data crosses companies.
    """
    __tablename__ = "companies"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)
    gst_number = db.Column(db.String(32), nullable=True)
    address = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Company id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "gst_number": self.gst_number,
            "address": self.address,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Project(db.Model):
    """
    Construction project with budget tracking.

    BUDGET FIELDS (all cents):
    - approved_budget_cents: defaults to budget_cents
    - revised_budget_cents: approved variations on top of the original budget
    - contingency_fund_cents: defaults to 5% of budget_cents
    - locked_amount_cents: committed by payment requests, not yet released
    - actual_spend_cents: released payments, issued materials, payroll

    locked_amount_cents and actual_spend_cents are owned by the finance,
    material and payroll workflows. Generic project edits never touch them.
    """
    __tablename__ = "projects"
    __table_args__ = (
        db.UniqueConstraint("company_id", "code", name="uq_projects_company_code"),
        db.Index("ix_projects_company_status", "company_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(64), nullable=True)
    location = db.Column(db.String(255), nullable=True)
    client_name = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)

    # Planning, In Progress, On Hold, Completed, Cancelled
    status = db.Column(db.String(32), nullable=False, default="Planning")
    progress = db.Column(db.Integer, nullable=False, default=0)  # 0..100

    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)

    budget_cents = db.Column(db.BigInteger, nullable=False, default=0)
    approved_budget_cents = db.Column(db.BigInteger, nullable=False, default=0)
    revised_budget_cents = db.Column(db.BigInteger, nullable=False, default=0)
    contingency_fund_cents = db.Column(db.BigInteger, nullable=False, default=0)
    locked_amount_cents = db.Column(db.BigInteger, nullable=False, default=0)
    actual_spend_cents = db.Column(db.BigInteger, nullable=False, default=0)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    company = db.relationship("Company", backref=db.backref("projects", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Project id={self.id} name={self.name!r} company_id={self.company_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "code": self.code,
            "location": self.location,
            "client_name": self.client_name,
            "description": self.description,
            "status": self.status,
            "progress": self.progress,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "budget_cents": self.budget_cents,
            "approved_budget_cents": self.approved_budget_cents,
            "revised_budget_cents": self.revised_budget_cents,
            "contingency_fund_cents": self.contingency_fund_cents,
            "locked_amount_cents": self.locked_amount_cents,
            "actual_spend_cents": self.actual_spend_cents,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

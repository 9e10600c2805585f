from __future__ import annotations

from ..extensions import db
from siteledger.time_utils import to_utc_z


class Material(db.Model):
    """
    Material master data (cement, steel, aggregates, ...).

    MULTI-TENANT: item_code is unique within a company.
    """
    __tablename__ = "materials"
    __table_args__ = (
        db.UniqueConstraint("company_id", "item_code", name="uq_materials_company_item_code"),
        db.Index("ix_materials_company_name", "company_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    item_code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(32), nullable=False, default="Other")
    unit = db.Column(db.String(16), nullable=False, default="Nos")
    brand = db.Column(db.String(128), nullable=True)
    grade = db.Column(db.String(64), nullable=True)
    specifications = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    company = db.relationship("Company", backref=db.backref("materials", lazy=True))

    def __repr__(self) -> str:
        return f"<Material id={self.id} item_code={self.item_code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "item_code": self.item_code,
            "name": self.name,
            "category": self.category,
            "unit": self.unit,
            "brand": self.brand,
            "grade": self.grade,
            "specifications": self.specifications,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class StockRecord(db.Model):
    """
    Current stock position of one material for one company.

    INVARIANTS:
    - total_stock == available_stock + reserved_stock at rest
    - available_stock >= 0 and reserved_stock >= 0 always
    - damaged_stock and wastage are running tallies of quantity already
      removed from total; they are not part of the available/reserved split

    Every change goes through StockLedger.adjust(), which appends a
    StockMovement in the same transaction. version_id guards against lost
    updates when two adjustments race on the same material.
    """
    __tablename__ = "stock_records"
    __table_args__ = (
        db.UniqueConstraint("company_id", "material_id", name="uq_stock_company_material"),
        db.CheckConstraint("available_stock >= 0", name="ck_stock_available_nonneg"),
        db.CheckConstraint("reserved_stock >= 0", name="ck_stock_reserved_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=True)

    total_stock = db.Column(db.Integer, nullable=False, default=0)
    available_stock = db.Column(db.Integer, nullable=False, default=0)
    reserved_stock = db.Column(db.Integer, nullable=False, default=0)
    damaged_stock = db.Column(db.Integer, nullable=False, default=0)
    wastage = db.Column(db.Integer, nullable=False, default=0)

    reorder_level = db.Column(db.Integer, nullable=False, default=0)
    min_order_qty = db.Column(db.Integer, nullable=False, default=0)
    preferred_vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=True)
    last_audit_date = db.Column(db.Date, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    material = db.relationship("Material", backref=db.backref("stock_records", lazy=True))
    batches = db.relationship(
        "StockBatch",
        backref="stock_record",
        lazy=True,
        order_by="StockBatch.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<StockRecord material_id={self.material_id} total={self.total_stock} "
            f"available={self.available_stock} reserved={self.reserved_stock}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "material_id": self.material_id,
            "project_id": self.project_id,
            "total_stock": self.total_stock,
            "available_stock": self.available_stock,
            "reserved_stock": self.reserved_stock,
            "damaged_stock": self.damaged_stock,
            "wastage": self.wastage,
            "reorder_level": self.reorder_level,
            "min_order_qty": self.min_order_qty,
            "preferred_vendor_id": self.preferred_vendor_id,
            "last_audit_date": self.last_audit_date.isoformat() if self.last_audit_date else None,
            "batches": [b.to_dict() for b in self.batches],
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class StockBatch(db.Model):
    """Received batch; the most recently added one prices material issues."""
    __tablename__ = "stock_batches"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    stock_record_id = db.Column(db.Integer, db.ForeignKey("stock_records.id"), nullable=False, index=True)

    batch_number = db.Column(db.String(64), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=True)
    mfg_date = db.Column(db.Date, nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)
    test_report_url = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_number": self.batch_number,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "mfg_date": self.mfg_date.isoformat() if self.mfg_date else None,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "test_report_url": self.test_report_url,
            "created_at": to_utc_z(self.created_at),
        }


class StockMovement(db.Model):
    """
    Append-only timeline of stock adjustments.

    One row per successful StockLedger.adjust() call. The *_after columns
    snapshot the record so the history can be audited without replaying it.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_record_occurred", "stock_record_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    stock_record_id = db.Column(db.Integer, db.ForeignKey("stock_records.id"), nullable=False, index=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    # ADD, RESERVE, UNRESERVE, ISSUE, WASTE, DAMAGE, DELIVER
    kind = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    total_after = db.Column(db.Integer, nullable=False)
    available_after = db.Column(db.Integer, nullable=False)
    reserved_after = db.Column(db.Integer, nullable=False)

    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=True)
    reference_type = db.Column(db.String(32), nullable=True)  # material_request, purchase_order
    reference_id = db.Column(db.Integer, nullable=True)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    actor_name = db.Column(db.String(255), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    stock_record = db.relationship("StockRecord", backref=db.backref("movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stock_record_id": self.stock_record_id,
            "kind": self.kind,
            "quantity": self.quantity,
            "total_after": self.total_after,
            "available_after": self.available_after,
            "reserved_after": self.reserved_after,
            "project_id": self.project_id,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "actor_user_id": self.actor_user_id,
            "actor_name": self.actor_name,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class MaterialRequest(db.Model):
    """
    Site request for material from the company store.

    LIFECYCLE:
    1. PENDING: raised by a site engineer
    2. APPROVED: supervisor approved; quantity reserved from stock
    3. ISSUED: storekeeper handed over; reserved and total stock reduced,
       expense transaction linked
    4. REJECTED / CANCELLED: terminal, no stock held

    expense_status records the best-effort expense link made at issue:
    NONE (not issued yet), LINKED, SKIPPED (zero cost), FAILED (retry with
    relink_expense).
    """
    __tablename__ = "material_requests"
    __table_args__ = (
        db.UniqueConstraint("company_id", "request_number", name="uq_material_requests_company_number"),
        db.Index("ix_material_requests_company_status", "company_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    # Human-readable number (e.g., "REQ-2610-0007")
    request_number = db.Column(db.String(32), nullable=False)

    material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    priority = db.Column(db.String(16), nullable=False, default="NORMAL")
    purpose = db.Column(db.Text, nullable=True)
    remarks = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    requester_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    approver_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    issuer_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    expense_status = db.Column(db.String(16), nullable=False, default="NONE")
    expense_transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    issued_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    material = db.relationship("Material")
    project = db.relationship("Project")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<MaterialRequest id={self.id} number={self.request_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "request_number": self.request_number,
            "material_id": self.material_id,
            "project_id": self.project_id,
            "quantity": self.quantity,
            "priority": self.priority,
            "purpose": self.purpose,
            "remarks": self.remarks,
            "status": self.status,
            "requester_user_id": self.requester_user_id,
            "approver_user_id": self.approver_user_id,
            "issuer_user_id": self.issuer_user_id,
            "expense_status": self.expense_status,
            "expense_transaction_id": self.expense_transaction_id,
            "created_at": to_utc_z(self.created_at),
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "issued_at": to_utc_z(self.issued_at) if self.issued_at else None,
            "version_id": self.version_id,
        }

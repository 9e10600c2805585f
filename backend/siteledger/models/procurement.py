from __future__ import annotations

from ..extensions import db
from siteledger.time_utils import to_utc_z


class Vendor(db.Model):
    """
    Supplier with credit tracking.

    MULTI-TENANT: Vendors are scoped to companies. Codes are unique within a
    company when specified.

    outstanding_payables_cents grows when a purchase order is issued and is
    compared against credit_limit_cents before a new order is accepted.
    """
    __tablename__ = "vendors"
    __table_args__ = (
        db.UniqueConstraint("company_id", "code", name="uq_vendors_company_code"),
        db.Index("ix_vendors_company_active", "company_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(64), nullable=True, index=True)
    category = db.Column(db.String(64), nullable=True)

    contact_name = db.Column(db.String(255), nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    contact_phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)
    gst_number = db.Column(db.String(32), nullable=True)

    credit_limit_cents = db.Column(db.BigInteger, nullable=False, default=0)
    outstanding_payables_cents = db.Column(db.BigInteger, nullable=False, default=0)
    payment_terms_days = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    company = db.relationship("Company", backref=db.backref("vendors", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Vendor id={self.id} name={self.name!r} company_id={self.company_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "code": self.code,
            "category": self.category,
            "contact_name": self.contact_name,
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "address": self.address,
            "gst_number": self.gst_number,
            "credit_limit_cents": self.credit_limit_cents,
            "outstanding_payables_cents": self.outstanding_payables_cents,
            "payment_terms_days": self.payment_terms_days,
            "is_active": self.is_active,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class PurchaseOrder(db.Model):
    """
    Purchase order to a vendor for project materials.

    LIFECYCLE:
    DRAFT -> PENDING_APPROVAL -> APPROVED -> ISSUED -> IN_TRANSIT -> DELIVERED -> CLOSED
    Any state except CLOSED may be CANCELLED.

    TOTALS (cents):
    - total_cents = sum of line totals
    - gst_total_cents = cgst + sgst + igst (opaque figures supplied by caller)
    - grand_total_cents = total_cents + gst_total_cents

    delivery_status is recomputed from every recorded delivery: COMPLETE only
    when each line's delivered quantity reaches the ordered quantity.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.Index("ix_purchase_orders_vendor_status", "vendor_id", "status"),
        db.Index("ix_purchase_orders_company_status", "company_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    # Externally assigned (vendor-facing) number; optional
    po_number = db.Column(db.String(64), nullable=True, index=True)

    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)

    total_cents = db.Column(db.BigInteger, nullable=False, default=0)
    cgst_cents = db.Column(db.BigInteger, nullable=False, default=0)
    sgst_cents = db.Column(db.BigInteger, nullable=False, default=0)
    igst_cents = db.Column(db.BigInteger, nullable=False, default=0)
    gst_total_cents = db.Column(db.BigInteger, nullable=False, default=0)
    grand_total_cents = db.Column(db.BigInteger, nullable=False, default=0)

    status = db.Column(db.String(24), nullable=False, default="DRAFT", index=True)
    delivery_status = db.Column(db.String(16), nullable=False, default="PENDING")

    expected_delivery_date = db.Column(db.Date, nullable=True)
    actual_delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)

    requested_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    issued_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    vendor = db.relationship("Vendor", backref=db.backref("purchase_orders", lazy=True))
    project = db.relationship("Project")
    lines = db.relationship("PurchaseOrderLine", backref="purchase_order", lazy=True, order_by="PurchaseOrderLine.id")
    approvals = db.relationship(
        "PurchaseOrderApproval",
        backref="purchase_order",
        lazy=True,
        order_by="PurchaseOrderApproval.level",
        cascade="all, delete-orphan",
    )
    deliveries = db.relationship(
        "PurchaseOrderDelivery",
        backref="purchase_order",
        lazy=True,
        order_by="PurchaseOrderDelivery.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} po_number={self.po_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "po_number": self.po_number,
            "vendor_id": self.vendor_id,
            "project_id": self.project_id,
            "total_cents": self.total_cents,
            "gst": {
                "cgst_cents": self.cgst_cents,
                "sgst_cents": self.sgst_cents,
                "igst_cents": self.igst_cents,
                "total_cents": self.gst_total_cents,
            },
            "grand_total_cents": self.grand_total_cents,
            "status": self.status,
            "delivery_status": self.delivery_status,
            "expected_delivery_date": (
                self.expected_delivery_date.isoformat() if self.expected_delivery_date else None
            ),
            "actual_delivery_date": to_utc_z(self.actual_delivery_date) if self.actual_delivery_date else None,
            "requested_by_user_id": self.requested_by_user_id,
            "lines": [line.to_dict() for line in self.lines],
            "approvals": [a.to_dict() for a in self.approvals],
            "deliveries": [d.to_dict() for d in self.deliveries],
            "created_at": to_utc_z(self.created_at),
            "issued_at": to_utc_z(self.issued_at) if self.issued_at else None,
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "version_id": self.version_id,
        }


class PurchaseOrderLine(db.Model):
    __tablename__ = "purchase_order_lines"
    __table_args__ = (
        db.UniqueConstraint("purchase_order_id", "material_id", name="uq_po_lines_order_material"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    rate_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.BigInteger, nullable=False)

    material = db.relationship("Material")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "material_id": self.material_id,
            "quantity": self.quantity,
            "rate_cents": self.rate_cents,
            "total_cents": self.total_cents,
        }


class PurchaseOrderApproval(db.Model):
    """One rung of the approval ladder (level 1 = procurement, 2 = finance)."""
    __tablename__ = "purchase_order_approvals"
    __table_args__ = (
        db.UniqueConstraint("purchase_order_id", "level", name="uq_po_approvals_order_level"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    level = db.Column(db.Integer, nullable=False)

    # PENDING, APPROVED, REJECTED
    status = db.Column(db.String(16), nullable=False, default="PENDING")
    approver_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    comments = db.Column(db.Text, nullable=True)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "level": self.level,
            "status": self.status,
            "approver_user_id": self.approver_user_id,
            "comments": self.comments,
            "decided_at": to_utc_z(self.decided_at) if self.decided_at else None,
        }


class PurchaseOrderDelivery(db.Model):
    __tablename__ = "purchase_order_deliveries"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)

    delivered_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    note = db.Column(db.Text, nullable=True)

    lines = db.relationship("PurchaseOrderDeliveryLine", backref="delivery", lazy=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "delivered_at": to_utc_z(self.delivered_at),
            "received_by_user_id": self.received_by_user_id,
            "note": self.note,
            "lines": [
                {"material_id": line.material_id, "quantity_delivered": line.quantity_delivered}
                for line in self.lines
            ],
        }


class PurchaseOrderDeliveryLine(db.Model):
    __tablename__ = "purchase_order_delivery_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    delivery_id = db.Column(db.Integer, db.ForeignKey("purchase_order_deliveries.id"), nullable=False, index=True)
    material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=False)
    quantity_delivered = db.Column(db.Integer, nullable=False)

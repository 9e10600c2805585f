# Overview: Purchase order workflow (credit check, approval ladder, issue, deliveries).

"""
Purchase Order Workflow

LIFECYCLE:
DRAFT --submit--> PENDING_APPROVAL --(every level APPROVED)--> APPROVED
APPROVED --issue--> ISSUED --delivery(partial)--> IN_TRANSIT
ISSUED/IN_TRANSIT --delivery(complete)--> DELIVERED --close--> CLOSED
PENDING_APPROVAL --reject(level)--> DRAFT
any state except CLOSED/CANCELLED --cancel--> CANCELLED

MONEY:
- create refuses the order when vendor outstanding + grand total would
  exceed the vendor's credit limit
- issue adds the grand total to vendor outstanding payables
- cancelling an ISSUED order with nothing delivered takes it back off

STOCK:
Every delivered line books a DELIVER adjustment in the same DB transaction
as the delivery record.
"""

from __future__ import annotations

from ..errors import CreditLimitExceededError, InvalidTransitionError, ValidationError
from ..extensions import db
from ..models import (
    Material,
    Project,
    PurchaseOrder,
    PurchaseOrderApproval,
    PurchaseOrderDelivery,
    PurchaseOrderDeliveryLine,
    PurchaseOrderLine,
    Vendor,
)
from ..notifications import publish_project_event
from ..permissions import require_role
from ..time_utils import to_calendar_date, utcnow
from .concurrency import lock_for_update, run_in_transaction
from .stock_service import validate_quantity
from .tenant_service import get_owned, scoped
from .timeline_service import append_timeline


ENTITY = "purchase_order"


def _money(name: str, value) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer")
    return value


def delivered_quantities(order: PurchaseOrder) -> dict[int, int]:
    """Total delivered quantity per material across every recorded delivery."""
    totals: dict[int, int] = {}
    for delivery in order.deliveries:
        for line in delivery.lines:
            totals[line.material_id] = totals.get(line.material_id, 0) + line.quantity_delivered
    return totals


def is_delivery_complete(order: PurchaseOrder) -> bool:
    delivered = delivered_quantities(order)
    return all(delivered.get(line.material_id, 0) >= line.quantity for line in order.lines)


class PurchaseOrderWorkflow:

    def __init__(self, notifier, stock, approval_levels: int = 2):
        if approval_levels < 1:
            raise ValueError("approval_levels must be >= 1")
        self.notifier = notifier
        self.stock = stock
        self.approval_levels = approval_levels

    def create(
        self,
        actor,
        *,
        vendor_id: int,
        project_id: int,
        lines: list[dict],
        cgst_cents: int = 0,
        sgst_cents: int = 0,
        igst_cents: int = 0,
        po_number: str | None = None,
        expected_delivery_date=None,
    ) -> PurchaseOrder:
        """
        Create a DRAFT order.

        Each line is {material_id, quantity, rate_cents}; line total is
        quantity * rate_cents. GST figures are taken as supplied.
        """
        require_role(actor, "purchase_order.create")
        if not lines:
            raise ValidationError("At least one line is required")

        parsed = []
        seen = set()
        for raw in lines:
            material_id = raw.get("material_id")
            if material_id is None:
                raise ValidationError("material_id is required on every line")
            if material_id in seen:
                raise ValidationError(f"Material {material_id} appears on more than one line")
            seen.add(material_id)
            quantity = validate_quantity(raw.get("quantity"))
            rate = _money("rate_cents", raw.get("rate_cents"))
            parsed.append((material_id, quantity, rate, quantity * rate))

        cgst = _money("cgst_cents", cgst_cents)
        sgst = _money("sgst_cents", sgst_cents)
        igst = _money("igst_cents", igst_cents)
        total = sum(p[3] for p in parsed)
        gst_total = cgst + sgst + igst
        grand_total = total + gst_total
        try:
            expected = to_calendar_date(expected_delivery_date)
        except ValueError:
            raise ValidationError("expected_delivery_date must be an ISO date")

        def _op():
            vendor = get_owned(Vendor, vendor_id, actor, label="Vendor", for_update=True)
            if not vendor.is_active:
                raise ValidationError(f"Vendor {vendor.name} is inactive")
            project = get_owned(Project, project_id, actor, label="Project")
            for material_id, *_ in parsed:
                get_owned(Material, material_id, actor, label="Material")

            if vendor.outstanding_payables_cents + grand_total > vendor.credit_limit_cents:
                raise CreditLimitExceededError(
                    f"PO amount {grand_total} exceeds credit limit of {vendor.name}: "
                    f"outstanding {vendor.outstanding_payables_cents}, limit {vendor.credit_limit_cents}"
                )

            order = PurchaseOrder(
                company_id=actor.company_id,
                po_number=po_number,
                vendor_id=vendor.id,
                project_id=project.id,
                total_cents=total,
                cgst_cents=cgst,
                sgst_cents=sgst,
                igst_cents=igst,
                gst_total_cents=gst_total,
                grand_total_cents=grand_total,
                status="DRAFT",
                delivery_status="PENDING",
                expected_delivery_date=expected,
                requested_by_user_id=actor.user_id,
            )
            db.session.add(order)
            db.session.flush()
            for material_id, quantity, rate, line_total in parsed:
                db.session.add(PurchaseOrderLine(
                    purchase_order_id=order.id,
                    material_id=material_id,
                    quantity=quantity,
                    rate_cents=rate,
                    total_cents=line_total,
                ))
            db.session.flush()
            append_timeline(ENTITY, order, "DRAFT", actor, "PO created")
            return order

        return run_in_transaction(_op)

    def submit(self, order_id: int, actor, note: str | None = None) -> PurchaseOrder:
        """
        DRAFT -> PENDING_APPROVAL with a fresh ladder of PENDING levels.

        A resubmitted order reuses its approval rows, reset to PENDING.
        """
        require_role(actor, "purchase_order.submit")

        def _op():
            order = self._load(order_id, actor)
            self._require_status(order, ("DRAFT",), "submit")
            existing = {a.level: a for a in order.approvals}
            for level in range(1, self.approval_levels + 1):
                approval = existing.pop(level, None)
                if approval is None:
                    order.approvals.append(PurchaseOrderApproval(level=level, status="PENDING"))
                else:
                    approval.status = "PENDING"
                    approval.approver_user_id = None
                    approval.comments = None
                    approval.decided_at = None
            for stale in existing.values():
                order.approvals.remove(stale)
            order.status = "PENDING_APPROVAL"
            append_timeline(ENTITY, order, "PENDING_APPROVAL", actor, note or "Submitted for approval")
            return order

        order = run_in_transaction(_op)
        publish_project_event(self.notifier, actor.company_id, order.project_id, "PO_APPROVAL_PENDING", {
            "order_id": order.id,
            "po_number": order.po_number,
            "amount_cents": order.grand_total_cents,
            "message": f"PO {order.po_number or order.id} pending approval",
        })
        return order

    def approve(self, order_id: int, level: int, actor, comments: str | None = None) -> PurchaseOrder:
        """Sign one level; the order becomes APPROVED once every level is APPROVED."""
        require_role(actor, "purchase_order.approve")

        def _op():
            order = self._load(order_id, actor)
            self._require_status(order, ("PENDING_APPROVAL",), "approve")
            approval = self._approval(order, level)
            if approval.status == "APPROVED":
                raise InvalidTransitionError(f"Level {level} is already approved")
            approval.status = "APPROVED"
            approval.approver_user_id = actor.user_id
            approval.comments = comments
            approval.decided_at = utcnow()

            promoted = all(a.status == "APPROVED" for a in order.approvals)
            if promoted:
                order.status = "APPROVED"
                append_timeline(ENTITY, order, "APPROVED", actor, "All approvals complete")
            return order, promoted

        order, promoted = run_in_transaction(_op)
        if promoted:
            publish_project_event(self.notifier, actor.company_id, order.project_id, "PO_APPROVED", {
                "order_id": order.id,
                "po_number": order.po_number,
            })
        return order

    def reject(self, order_id: int, level: int, actor, comments: str | None = None) -> PurchaseOrder:
        """Mark one level REJECTED and send the order back to DRAFT for rework."""
        require_role(actor, "purchase_order.approve")

        def _op():
            order = self._load(order_id, actor)
            self._require_status(order, ("PENDING_APPROVAL",), "reject")
            approval = self._approval(order, level)
            approval.status = "REJECTED"
            approval.approver_user_id = actor.user_id
            approval.comments = comments
            approval.decided_at = utcnow()
            order.status = "DRAFT"
            append_timeline(ENTITY, order, "DRAFT", actor, comments or f"Rejected at level {level}")
            return order

        order = run_in_transaction(_op)
        publish_project_event(self.notifier, actor.company_id, order.project_id, "PO_REJECTED", {
            "order_id": order.id,
            "po_number": order.po_number,
            "level": level,
        })
        return order

    def issue(self, order_id: int, actor, note: str | None = None) -> PurchaseOrder:
        """APPROVED -> ISSUED; the grand total becomes a vendor payable."""
        require_role(actor, "purchase_order.issue")

        def _op():
            order = self._load(order_id, actor)
            self._require_status(order, ("APPROVED",), "issue")
            vendor = lock_for_update(db.session.query(Vendor).filter_by(id=order.vendor_id)).one()
            vendor.outstanding_payables_cents = vendor.outstanding_payables_cents + order.grand_total_cents
            order.status = "ISSUED"
            order.issued_at = utcnow()
            append_timeline(ENTITY, order, "ISSUED", actor, note or "PO issued to vendor")
            return order

        order = run_in_transaction(_op)
        publish_project_event(self.notifier, actor.company_id, order.project_id, "PO_ISSUED", {
            "order_id": order.id,
            "po_number": order.po_number,
            "message": f"PO {order.po_number or order.id} issued to vendor",
        })
        return order

    def record_delivery(self, order_id: int, actor, lines: list[dict], note: str | None = None) -> PurchaseOrder:
        """
        Append a (possibly partial) delivery of {material_id, quantity} lines.

        Completeness is recomputed over every delivery so far: COMPLETE and
        DELIVERED once each ordered line is fully received, otherwise
        PARTIAL and IN_TRANSIT.
        """
        require_role(actor, "purchase_order.receive")
        if not lines:
            raise ValidationError("At least one delivered line is required")
        parsed = []
        for raw in lines:
            if raw.get("material_id") is None:
                raise ValidationError("material_id is required on every delivered line")
            parsed.append((raw["material_id"], validate_quantity(raw.get("quantity"))))

        def _op():
            order = self._load(order_id, actor)
            self._require_status(order, ("ISSUED", "IN_TRANSIT"), "record a delivery for")
            ordered = {line.material_id for line in order.lines}
            for material_id, _ in parsed:
                if material_id not in ordered:
                    raise ValidationError(f"Material {material_id} is not on this order")

            delivery = PurchaseOrderDelivery(
                purchase_order_id=order.id,
                delivered_at=utcnow(),
                received_by_user_id=actor.user_id,
                note=note,
            )
            db.session.add(delivery)
            db.session.flush()
            for material_id, quantity in parsed:
                db.session.add(PurchaseOrderDeliveryLine(
                    delivery_id=delivery.id,
                    material_id=material_id,
                    quantity_delivered=quantity,
                ))
            db.session.flush()
            db.session.expire(order, ["deliveries"])

            complete = is_delivery_complete(order)
            order.delivery_status = "COMPLETE" if complete else "PARTIAL"
            order.status = "DELIVERED" if complete else "IN_TRANSIT"
            if complete:
                order.actual_delivery_date = utcnow()

            records = []
            for material_id, quantity in parsed:
                records.append(self.stock.apply(
                    material_id, quantity, "DELIVER", actor,
                    project_id=order.project_id,
                    reference_type=ENTITY, reference_id=order.id,
                    note=f"From PO {order.po_number or order.id}",
                ))
            append_timeline(
                ENTITY, order, order.status, actor,
                f"{'Full' if complete else 'Partial'} delivery recorded",
            )
            return order, records

        order, records = run_in_transaction(_op)
        for record in records:
            self.stock.check_reorder(record)
        publish_project_event(self.notifier, actor.company_id, order.project_id, "PO_DELIVERY_RECORDED", {
            "order_id": order.id,
            "po_number": order.po_number,
            "delivery_status": order.delivery_status,
        })
        return order

    def close(self, order_id: int, actor, note: str | None = None) -> PurchaseOrder:
        """
        Close the order. Closing does not require a completed delivery;
        only CLOSED and CANCELLED orders are refused.
        """
        require_role(actor, "purchase_order.close")

        def _op():
            order = self._load(order_id, actor)
            if order.status in ("CLOSED", "CANCELLED"):
                raise InvalidTransitionError(f"Cannot close order in status {order.status}")
            order.status = "CLOSED"
            order.closed_at = utcnow()
            append_timeline(ENTITY, order, "CLOSED", actor, note or "PO closed")
            return order

        return run_in_transaction(_op)

    def cancel(self, order_id: int, actor, note: str | None = None) -> PurchaseOrder:
        require_role(actor, "purchase_order.cancel")

        def _op():
            order = self._load(order_id, actor)
            if order.status in ("CLOSED", "CANCELLED"):
                raise InvalidTransitionError(f"Cannot cancel order in status {order.status}")
            if order.status == "ISSUED" and not order.deliveries:
                vendor = lock_for_update(db.session.query(Vendor).filter_by(id=order.vendor_id)).one()
                vendor.outstanding_payables_cents = vendor.outstanding_payables_cents - order.grand_total_cents
            order.status = "CANCELLED"
            append_timeline(ENTITY, order, "CANCELLED", actor, note or "PO cancelled")
            return order

        order = run_in_transaction(_op)
        publish_project_event(self.notifier, actor.company_id, order.project_id, "PO_CANCELLED", {
            "order_id": order.id,
            "po_number": order.po_number,
        })
        return order

    def transition(self, order_id: int, action: str, actor, payload: dict | None = None) -> PurchaseOrder:
        payload = payload or {}
        if action in ("approve", "reject"):
            level = payload.get("level")
            if isinstance(level, bool) or not isinstance(level, int):
                raise ValidationError("level must be an integer")
            handler = self.approve if action == "approve" else self.reject
            return handler(order_id, level, actor, comments=payload.get("comments"))
        if action == "deliver":
            return self.record_delivery(order_id, actor, payload.get("lines") or [], note=payload.get("note"))
        handlers = {
            "submit": self.submit,
            "issue": self.issue,
            "close": self.close,
            "cancel": self.cancel,
        }
        handler = handlers.get(action)
        if handler is None:
            raise ValidationError(f"Unknown purchase order action: {action}")
        return handler(order_id, actor, note=payload.get("note"))

    def get(self, order_id: int, actor) -> PurchaseOrder:
        return get_owned(PurchaseOrder, order_id, actor, label="Purchase order")

    def list(
        self,
        actor,
        *,
        vendor_id: int | None = None,
        project_id: int | None = None,
        status: str | None = None,
    ) -> list[PurchaseOrder]:
        query = scoped(PurchaseOrder, actor)
        if vendor_id is not None:
            query = query.filter(PurchaseOrder.vendor_id == vendor_id)
        if project_id is not None:
            query = query.filter(PurchaseOrder.project_id == project_id)
        if status:
            query = query.filter(PurchaseOrder.status == status)
        return query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).all()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, order_id: int, actor) -> PurchaseOrder:
        return get_owned(PurchaseOrder, order_id, actor, label="Purchase order", for_update=True)

    def _require_status(self, order: PurchaseOrder, allowed: tuple, action: str) -> None:
        if order.status not in allowed:
            raise InvalidTransitionError(f"Cannot {action} order in status {order.status}")

    def _approval(self, order: PurchaseOrder, level) -> PurchaseOrderApproval:
        for approval in order.approvals:
            if approval.level == level:
                return approval
        raise ValidationError(f"Invalid approval level: {level}")

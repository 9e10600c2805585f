# Overview: Material request workflow (request, approve/reserve, issue, expense link).

"""
Material Request Workflow

LIFECYCLE:
PENDING --approve--> APPROVED --issue--> ISSUED
PENDING --reject--> REJECTED
PENDING/APPROVED --cancel--> CANCELLED

STOCK:
- approve reserves the requested quantity (RESERVE)
- issue consumes the reservation (ISSUE)
- cancel from APPROVED releases it (UNRESERVE)
The status change and the stock movement commit in one DB transaction, so
a failed reservation leaves the request PENDING and stock unchanged.

EXPENSE LINK:
After an issue, the quantity is priced at the unit cost of the most recently
added batch and booked as an APPROVED Material expense. This step runs in a
savepoint: if it fails, the issue still commits with expense_status=FAILED,
and relink_expense() books it later.
"""

from __future__ import annotations

from flask import current_app

from ..errors import InvalidTransitionError, ValidationError
from ..extensions import db
from ..models import Material, MaterialRequest, Project
from ..notifications import publish_project_event
from ..permissions import require_role
from ..time_utils import utcnow
from .concurrency import run_in_transaction
from .sequence_service import next_material_request_number
from .stock_service import validate_quantity
from .tenant_service import get_owned, scoped
from .timeline_service import append_timeline


PRIORITIES = ("NORMAL", "URGENT", "CRITICAL")
ENTITY = "material_request"


class MaterialRequestWorkflow:

    def __init__(self, notifier, stock, ledger):
        self.notifier = notifier
        self.stock = stock
        self.ledger = ledger

    def create(
        self,
        actor,
        *,
        material_id: int,
        project_id: int,
        quantity: int,
        priority: str = "NORMAL",
        purpose: str | None = None,
        remarks: str | None = None,
    ) -> MaterialRequest:
        require_role(actor, "material_request.create")
        validate_quantity(quantity)
        if priority not in PRIORITIES:
            raise ValidationError(f"Invalid priority: {priority}")

        def _op():
            material = get_owned(Material, material_id, actor, label="Material")
            project = get_owned(Project, project_id, actor, label="Project")
            request = MaterialRequest(
                company_id=actor.company_id,
                request_number=next_material_request_number(actor.company_id),
                material_id=material.id,
                project_id=project.id,
                quantity=quantity,
                priority=priority,
                purpose=purpose,
                remarks=remarks,
                status="PENDING",
                requester_user_id=actor.user_id,
            )
            db.session.add(request)
            db.session.flush()
            append_timeline(ENTITY, request, "PENDING", actor, "Request raised")
            return request

        request = run_in_transaction(_op)
        publish_project_event(self.notifier, actor.company_id, request.project_id, "MATERIAL_REQUEST_CREATED", {
            "request_id": request.id,
            "request_number": request.request_number,
            "message": f"New Material Request: {quantity} units requested for project.",
        })
        return request

    def approve(self, request_id: int, actor, note: str | None = None) -> MaterialRequest:
        """PENDING -> APPROVED, reserving the quantity from stock."""
        require_role(actor, "material_request.approve")

        def _op():
            request = self._load(request_id, actor)
            self._require_status(request, ("PENDING",), "approve")
            record = self.stock.apply(
                request.material_id, request.quantity, "RESERVE", actor,
                project_id=request.project_id,
                reference_type=ENTITY, reference_id=request.id,
                note=f"Reserved for {request.request_number}",
            )
            request.status = "APPROVED"
            request.approver_user_id = actor.user_id
            request.approved_at = utcnow()
            append_timeline(ENTITY, request, "APPROVED", actor, note or "Approved and stock reserved")
            return request, record

        request, record = run_in_transaction(_op)
        self.stock.check_reorder(record)
        publish_project_event(self.notifier, actor.company_id, request.project_id, "MATERIAL_REQUEST_APPROVED", {
            "request_id": request.id,
            "request_number": request.request_number,
            "message": f"Request {request.request_number} approved and stock reserved.",
        })
        return request

    def issue(self, request_id: int, actor, note: str | None = None) -> MaterialRequest:
        """APPROVED -> ISSUED; consumes the reservation, then links the expense best-effort."""
        require_role(actor, "material_request.issue")

        def _op():
            request = self._load(request_id, actor)
            self._require_status(request, ("APPROVED",), "issue")
            record = self.stock.apply(
                request.material_id, request.quantity, "ISSUE", actor,
                project_id=request.project_id,
                reference_type=ENTITY, reference_id=request.id,
                note=f"Issued for {request.request_number}",
            )
            request.status = "ISSUED"
            request.issuer_user_id = actor.user_id
            request.issued_at = utcnow()
            request.expense_status = "PENDING"
            append_timeline(ENTITY, request, "ISSUED", actor, note or "Material issued")
            self._link_expense_best_effort(request, actor)
            return request, record

        request, record = run_in_transaction(_op)
        self.stock.check_reorder(record)
        publish_project_event(self.notifier, actor.company_id, request.project_id, "MATERIAL_ISSUED", {
            "request_id": request.id,
            "request_number": request.request_number,
            "expense_status": request.expense_status,
            "message": f"Materials for {request.request_number} have been issued.",
        })
        return request

    def reject(self, request_id: int, actor, note: str | None = None) -> MaterialRequest:
        require_role(actor, "material_request.reject")

        def _op():
            request = self._load(request_id, actor)
            self._require_status(request, ("PENDING",), "reject")
            request.status = "REJECTED"
            request.approver_user_id = actor.user_id
            append_timeline(ENTITY, request, "REJECTED", actor, note or "Request rejected")
            return request

        request = run_in_transaction(_op)
        publish_project_event(self.notifier, actor.company_id, request.project_id, "MATERIAL_REQUEST_REJECTED", {
            "request_id": request.id,
            "request_number": request.request_number,
        })
        return request

    def cancel(self, request_id: int, actor, note: str | None = None) -> MaterialRequest:
        """PENDING/APPROVED -> CANCELLED; an APPROVED request gives its reservation back."""
        require_role(actor, "material_request.cancel")

        def _op():
            request = self._load(request_id, actor)
            self._require_status(request, ("PENDING", "APPROVED"), "cancel")
            if request.status == "APPROVED":
                self.stock.apply(
                    request.material_id, request.quantity, "UNRESERVE", actor,
                    project_id=request.project_id,
                    reference_type=ENTITY, reference_id=request.id,
                    note=f"Released from {request.request_number}",
                )
            request.status = "CANCELLED"
            append_timeline(ENTITY, request, "CANCELLED", actor, note or "Request cancelled")
            return request

        request = run_in_transaction(_op)
        publish_project_event(self.notifier, actor.company_id, request.project_id, "MATERIAL_REQUEST_CANCELLED", {
            "request_id": request.id,
            "request_number": request.request_number,
        })
        return request

    def relink_expense(self, request_id: int, actor) -> MaterialRequest:
        """
        Reconciliation path for an issue whose expense was not booked.

        Only ISSUED requests with expense_status FAILED or PENDING qualify.
        Unlike the best-effort step, a failure here propagates to the caller.
        """
        require_role(actor, "material_request.relink_expense")

        def _op():
            request = self._load(request_id, actor)
            if request.status != "ISSUED" or request.expense_status not in ("FAILED", "PENDING"):
                raise InvalidTransitionError(
                    f"Request {request.request_number} has no expense to relink "
                    f"(status {request.status}, expense {request.expense_status})"
                )
            self._link_expense(request, actor)
            append_timeline(ENTITY, request, "ISSUED", actor, f"Expense relinked ({request.expense_status})")
            return request

        return run_in_transaction(_op)

    def transition(self, request_id: int, action: str, actor, payload: dict | None = None) -> MaterialRequest:
        payload = payload or {}
        handlers = {
            "approve": self.approve,
            "issue": self.issue,
            "reject": self.reject,
            "cancel": self.cancel,
        }
        if action == "relink_expense":
            return self.relink_expense(request_id, actor)
        handler = handlers.get(action)
        if handler is None:
            raise ValidationError(f"Unknown material request action: {action}")
        return handler(request_id, actor, note=payload.get("note"))

    def get(self, request_id: int, actor) -> MaterialRequest:
        return get_owned(MaterialRequest, request_id, actor, label="Material request")

    def list(
        self,
        actor,
        *,
        status: str | None = None,
        project_id: int | None = None,
        material_id: int | None = None,
        expense_status: str | None = None,
    ) -> list[MaterialRequest]:
        query = scoped(MaterialRequest, actor)
        if status:
            query = query.filter(MaterialRequest.status == status)
        if project_id is not None:
            query = query.filter(MaterialRequest.project_id == project_id)
        if material_id is not None:
            query = query.filter(MaterialRequest.material_id == material_id)
        if expense_status:
            query = query.filter(MaterialRequest.expense_status == expense_status)
        return query.order_by(MaterialRequest.created_at.desc(), MaterialRequest.id.desc()).all()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, request_id: int, actor) -> MaterialRequest:
        return get_owned(MaterialRequest, request_id, actor, label="Material request", for_update=True)

    def _require_status(self, request: MaterialRequest, allowed: tuple, action: str) -> None:
        if request.status not in allowed:
            raise InvalidTransitionError(
                f"Cannot {action} request {request.request_number} in status {request.status}"
            )

    def _link_expense(self, request: MaterialRequest, actor) -> None:
        unit_cost = self.stock.latest_unit_cost_cents(request.material_id, request.company_id)
        total_cost = request.quantity * unit_cost
        if total_cost <= 0:
            request.expense_status = "SKIPPED"
            return
        material = request.material
        txn = self.ledger.record(
            actor,
            direction="EXPENSE",
            category="Material",
            amount_cents=total_cost,
            project_id=request.project_id,
            status="APPROVED",
            source="MATERIAL_ISSUE",
            source_id=request.id,
            description=(
                f"Auto-expense: {request.quantity} {material.unit} of {material.name} issued"
            ),
            note="Auto-generated from material issue",
        )
        request.expense_transaction_id = txn.id
        request.expense_status = "LINKED"

    def _link_expense_best_effort(self, request: MaterialRequest, actor) -> None:
        try:
            with db.session.begin_nested():
                self._link_expense(request, actor)
        except Exception:
            current_app.logger.warning(
                "Expense link failed for material request %s; marked FAILED",
                request.request_number,
                exc_info=True,
            )
            request.expense_status = "FAILED"
            request.expense_transaction_id = None

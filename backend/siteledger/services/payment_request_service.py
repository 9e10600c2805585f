# Overview: Vendor payment requests with project budget locking.

"""
Payment Request Workflow

LIFECYCLE:
PENDING --verify--> VERIFIED --release--> RELEASED
PENDING/VERIFIED --reject--> REJECTED

BUDGET:
- create:  project.locked += amount
- release: project.locked -= amount, APPROVED expense recorded
           (the ledger adds it to project.actual_spend)
- reject:  project.locked -= amount
Each of these commits together with the status change.
"""

from __future__ import annotations

from ..errors import InvalidTransitionError, ValidationError
from ..extensions import db
from ..models import PaymentRequest, Project, Vendor
from ..notifications import publish_project_event
from ..permissions import require_role
from ..time_utils import to_calendar_date, utcnow
from .concurrency import lock_for_update, run_in_transaction
from .finance_service import PAYMENT_MODES
from .sequence_service import next_payment_request_number
from .tenant_service import get_owned, scoped
from .timeline_service import append_timeline


CATEGORIES = ("Material", "Labor", "Machinery", "Contractor", "Other")
ENTITY = "payment_request"


def _non_negative(name: str, value) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer")
    return value


class PaymentRequestWorkflow:

    def __init__(self, notifier, ledger, blob_store=None):
        self.notifier = notifier
        self.ledger = ledger
        self.blob_store = blob_store

    def create(
        self,
        actor,
        *,
        vendor_id: int,
        project_id: int,
        amount_cents: int,
        purpose: str,
        category: str = "Other",
        advance: dict | None = None,
        retention: dict | None = None,
        invoice: dict | None = None,
    ) -> PaymentRequest:
        """
        Raise a request and lock its amount against the project budget.

        retention is {percentage_bps, amount_cents?, release_condition,
        release_date}; amount defaults to amount_cents * bps / 10000.
        advance is {paid_cents, adjusted_cents}; balance is derived.
        """
        require_role(actor, "payment_request.create")
        if amount_cents is None:
            raise ValidationError("amount_cents is required")
        amount_cents = _non_negative("amount_cents", amount_cents)
        if not purpose or not purpose.strip():
            raise ValidationError("purpose is required")
        if category not in CATEGORIES:
            raise ValidationError(f"Invalid category: {category}")

        advance = advance or {}
        advance_paid = _non_negative("advance.paid_cents", advance.get("paid_cents"))
        advance_adjusted = _non_negative("advance.adjusted_cents", advance.get("adjusted_cents"))

        retention = retention or {}
        retention_bps = _non_negative("retention.percentage_bps", retention.get("percentage_bps"))
        if retention_bps > 10000:
            raise ValidationError("retention.percentage_bps must be <= 10000")
        retention_amount = retention.get("amount_cents")
        if retention_amount is None:
            retention_amount = amount_cents * retention_bps // 10000
        retention_amount = _non_negative("retention.amount_cents", retention_amount)

        invoice = invoice or {}
        try:
            retention_release_date = to_calendar_date(retention.get("release_date"))
            invoice_date = to_calendar_date(invoice.get("date"))
        except ValueError:
            raise ValidationError("dates must be ISO dates")

        def _op():
            vendor = get_owned(Vendor, vendor_id, actor, label="Vendor")
            project = get_owned(Project, project_id, actor, label="Project", for_update=True)
            request = PaymentRequest(
                company_id=actor.company_id,
                request_number=next_payment_request_number(actor.company_id),
                vendor_id=vendor.id,
                project_id=project.id,
                amount_cents=amount_cents,
                purpose=purpose.strip(),
                category=category,
                advance_paid_cents=advance_paid,
                advance_adjusted_cents=advance_adjusted,
                advance_balance_cents=advance_paid - advance_adjusted,
                retention_bps=retention_bps,
                retention_cents=retention_amount,
                retention_release_condition=retention.get("release_condition"),
                retention_release_date=retention_release_date,
                invoice_number=invoice.get("number"),
                invoice_date=invoice_date,
                invoice_url=invoice.get("url"),
                status="PENDING",
                requested_by_user_id=actor.user_id,
            )
            db.session.add(request)
            project.locked_amount_cents = (project.locked_amount_cents or 0) + amount_cents
            db.session.flush()
            append_timeline(ENTITY, request, "PENDING", actor, "Payment request initiated")
            return request

        request = run_in_transaction(_op)
        publish_project_event(self.notifier, actor.company_id, request.project_id, "PAYMENT_REQUEST_CREATED", {
            "request_id": request.id,
            "request_number": request.request_number,
            "amount_cents": request.amount_cents,
            "message": f"New payment request {request.request_number}",
        })
        return request

    def verify(self, request_id: int, actor, note: str | None = None) -> PaymentRequest:
        require_role(actor, "payment_request.verify")

        def _op():
            request = self._load(request_id, actor)
            self._require_status(request, ("PENDING",), "verify")
            request.status = "VERIFIED"
            request.verified_by_user_id = actor.user_id
            append_timeline(ENTITY, request, "VERIFIED", actor, note or "Payment request verified by accounts")
            return request

        request = run_in_transaction(_op)
        publish_project_event(self.notifier, actor.company_id, request.project_id, "PAYMENT_VERIFIED", {
            "request_id": request.id,
            "request_number": request.request_number,
            "message": f"Payment {request.request_number} verified and awaiting release",
        })
        return request

    def release(
        self,
        request_id: int,
        actor,
        *,
        payment_mode: str | None = None,
        reference_id: str | None = None,
        note: str | None = None,
    ) -> PaymentRequest:
        """VERIFIED -> RELEASED; unlocks the amount and books it as spend."""
        require_role(actor, "payment_request.release")
        if payment_mode is not None and payment_mode not in PAYMENT_MODES:
            raise ValidationError(f"Invalid payment mode: {payment_mode}")

        def _op():
            request = self._load(request_id, actor)
            self._require_status(request, ("VERIFIED",), "release")
            project = lock_for_update(db.session.query(Project).filter_by(id=request.project_id)).one()
            project.locked_amount_cents = (project.locked_amount_cents or 0) - request.amount_cents

            txn = self.ledger.record(
                actor,
                direction="EXPENSE",
                category=request.category,
                amount_cents=request.amount_cents,
                project_id=request.project_id,
                vendor_id=request.vendor_id,
                status="APPROVED",
                source="PAYMENT_RELEASE",
                source_id=request.id,
                payment_mode=payment_mode,
                reference_id=reference_id,
                description=request.purpose,
                note=f"Auto-generated from payment request {request.request_number}",
            )
            request.status = "RELEASED"
            request.released_by_user_id = actor.user_id
            request.payment_mode = payment_mode
            request.payment_reference_id = reference_id
            request.paid_at = utcnow()
            request.transaction_id = txn.id
            append_timeline(ENTITY, request, "RELEASED", actor, note or "Payment released to vendor")
            return request

        request = run_in_transaction(_op)
        publish_project_event(self.notifier, actor.company_id, request.project_id, "PAYMENT_RELEASED", {
            "request_id": request.id,
            "request_number": request.request_number,
            "amount_cents": request.amount_cents,
            "message": f"Payment {request.request_number} released successfully",
        })
        return request

    def reject(self, request_id: int, actor, note: str | None = None) -> PaymentRequest:
        """PENDING/VERIFIED -> REJECTED; unlocks the amount without spending it."""
        require_role(actor, "payment_request.reject")

        def _op():
            request = self._load(request_id, actor)
            self._require_status(request, ("PENDING", "VERIFIED"), "reject")
            project = lock_for_update(db.session.query(Project).filter_by(id=request.project_id)).one()
            project.locked_amount_cents = (project.locked_amount_cents or 0) - request.amount_cents
            request.status = "REJECTED"
            append_timeline(ENTITY, request, "REJECTED", actor, note or "Payment request rejected")
            return request

        request = run_in_transaction(_op)
        publish_project_event(self.notifier, actor.company_id, request.project_id, "PAYMENT_REJECTED", {
            "request_id": request.id,
            "request_number": request.request_number,
        })
        return request

    def attach_invoice(self, request_id: int, actor, data: bytes, filename: str | None = None) -> PaymentRequest:
        """Upload an invoice file and store its URL on a request that is not yet released."""
        require_role(actor, "payment_request.create")
        if self.blob_store is None:
            raise ValidationError("No blob store configured")
        get_owned(PaymentRequest, request_id, actor, label="Payment request")
        if not data:
            raise ValidationError("Invoice file is empty")
        url = self.blob_store.upload(data, filename)

        def _op():
            request = self._load(request_id, actor)
            self._require_status(request, ("PENDING", "VERIFIED"), "attach an invoice to")
            request.invoice_url = url
            return request

        return run_in_transaction(_op)

    def transition(self, request_id: int, action: str, actor, payload: dict | None = None) -> PaymentRequest:
        payload = payload or {}
        if action == "release":
            return self.release(
                request_id, actor,
                payment_mode=payload.get("payment_mode"),
                reference_id=payload.get("reference_id"),
                note=payload.get("note"),
            )
        handlers = {
            "verify": self.verify,
            "reject": self.reject,
        }
        handler = handlers.get(action)
        if handler is None:
            raise ValidationError(f"Unknown payment request action: {action}")
        return handler(request_id, actor, note=payload.get("note"))

    def get(self, request_id: int, actor) -> PaymentRequest:
        return get_owned(PaymentRequest, request_id, actor, label="Payment request")

    def list(
        self,
        actor,
        *,
        status: str | None = None,
        project_id: int | None = None,
        vendor_id: int | None = None,
    ) -> list[PaymentRequest]:
        query = scoped(PaymentRequest, actor)
        if status:
            query = query.filter(PaymentRequest.status == status)
        if project_id is not None:
            query = query.filter(PaymentRequest.project_id == project_id)
        if vendor_id is not None:
            query = query.filter(PaymentRequest.vendor_id == vendor_id)
        return query.order_by(PaymentRequest.created_at.desc(), PaymentRequest.id.desc()).all()

    def _load(self, request_id: int, actor) -> PaymentRequest:
        return get_owned(PaymentRequest, request_id, actor, label="Payment request", for_update=True)

    def _require_status(self, request: PaymentRequest, allowed: tuple, action: str) -> None:
        if request.status not in allowed:
            raise InvalidTransitionError(
                f"Cannot {action} payment request {request.request_number} in status {request.status}"
            )

# Overview: Labour workers, attendance, advances and payroll settlement.

"""
Payroll Engine

WORKER LEDGER:
- attendance is keyed by calendar day (one entry per worker per date)
- advances are cash handed over before the next settlement
- pending_dues_cents carries the remainder of the last settlement

SETTLEMENT:
    earnings   = sum over unpaid attendance
                 (Present = wage, HalfDay = wage // 2,
                  Late = wage - late_fee, Absent = 0)
    deductions = sum of unsettled advances
    net        = earnings + pending_dues - deductions
    paid       = amount_paid if given, else net
    pending_dues <- net - paid

Everything summed is marked paid/settled in the same commit as the new
pending_dues, with the worker row locked. pending_dues may go negative
when a worker was overpaid.
"""

from __future__ import annotations

from flask import current_app

from ..errors import InvalidTransitionError, NotFoundError, ValidationError
from ..extensions import db
from ..models import AttendanceEntry, Project, Worker, WorkerAdvance, WorkerSettlement
from ..notifications import company_topic, publish_safely
from ..permissions import require_role
from ..time_utils import to_calendar_date, utcnow
from .concurrency import run_in_transaction
from .sequence_service import next_worker_code
from .tenant_service import get_owned, scoped


ATTENDANCE_STATUSES = ("Present", "Absent", "HalfDay", "Late")
WORKER_CATEGORIES = (
    "Helper / Mazdoor",
    "Mason (Mistri)",
    "Electrician",
    "Plumber",
    "Carpenter",
    "Painter",
    "Tile Layer",
    "Bar Bender",
    "Supervisor (Site)",
)
GENDERS = ("Male", "Female", "Other")

EDITABLE_FIELDS = (
    "full_name",
    "id_number",
    "mobile",
    "gender",
    "address",
    "category",
    "daily_wage_cents",
    "project_id",
)


def _text(name: str, value) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    return value.strip()


def _money(name: str, value, allow_zero: bool = True) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer amount in cents")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{name} must be {'>= 0' if allow_zero else '> 0'}")
    return value


def unlinked_settlements(company_id: int | None = None) -> list[WorkerSettlement]:
    """Paid settlements of project workers that have no ledger transaction."""
    query = (
        db.session.query(WorkerSettlement)
        .join(Worker, Worker.id == WorkerSettlement.worker_id)
        .filter(
            Worker.project_id.isnot(None),
            WorkerSettlement.amount_paid_cents > 0,
            WorkerSettlement.transaction_id.is_(None),
        )
    )
    if company_id is not None:
        query = query.filter(Worker.company_id == company_id)
    return query.order_by(WorkerSettlement.id.asc()).all()


def day_earnings(entry: AttendanceEntry, daily_wage_cents: int) -> int:
    """Earnings for one attendance entry."""
    if entry.status == "Present":
        return daily_wage_cents
    if entry.status == "HalfDay":
        return daily_wage_cents // 2
    if entry.status == "Late":
        return daily_wage_cents - (entry.late_fee_cents or 0)
    return 0


class PayrollEngine:

    def __init__(self, notifier, ledger, blob_store=None):
        self.notifier = notifier
        self.ledger = ledger
        self.blob_store = blob_store

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    def create_worker(self, actor, **fields) -> Worker:
        """Register a worker. full_name is required; id_number is unique per company."""
        require_role(actor, "labour.manage")
        cleaned = self._clean(fields)
        if not cleaned.get("full_name"):
            raise ValidationError("full_name is required")

        def _op():
            self._check_id_number_free(actor, cleaned.get("id_number"))
            if cleaned.get("project_id") is not None:
                get_owned(Project, cleaned["project_id"], actor, label="Project")
            worker = Worker(
                company_id=actor.company_id,
                worker_code=next_worker_code(actor.company_id),
                **cleaned,
            )
            db.session.add(worker)
            db.session.flush()
            return worker

        worker = run_in_transaction(_op)
        current_app.logger.info("Worker %s registered in company %s", worker.worker_code, actor.company_id)
        return worker

    def update_worker(self, worker_id: int, actor, **fields) -> Worker:
        require_role(actor, "labour.manage")
        if "pending_dues_cents" in fields:
            raise ValidationError("pending_dues_cents is managed by settlements")
        cleaned = self._clean(fields)
        if "full_name" in cleaned and not cleaned["full_name"]:
            raise ValidationError("full_name is required")

        def _op():
            worker = self._load(worker_id, actor)
            if "id_number" in cleaned:
                self._check_id_number_free(actor, cleaned["id_number"], exclude_id=worker.id)
            if cleaned.get("project_id") is not None:
                get_owned(Project, cleaned["project_id"], actor, label="Project")
            for key, value in cleaned.items():
                setattr(worker, key, value)
            return worker

        return run_in_transaction(_op)

    def deactivate_worker(self, worker_id: int, actor) -> Worker:
        require_role(actor, "labour.manage")

        def _op():
            worker = self._load(worker_id, actor)
            worker.is_active = False
            return worker

        return run_in_transaction(_op)

    def upload_photo(self, worker_id: int, actor, data: bytes, filename: str | None = None) -> Worker:
        require_role(actor, "labour.manage")
        if self.blob_store is None:
            raise ValidationError("No blob store configured")
        if not data:
            raise ValidationError("Photo file is empty")
        get_owned(Worker, worker_id, actor, label="Worker")
        url = self.blob_store.upload(data, filename)

        def _op():
            worker = self._load(worker_id, actor)
            worker.photo_url = url
            return worker

        return run_in_transaction(_op)

    def get_worker(self, worker_id: int, actor) -> Worker:
        return get_owned(Worker, worker_id, actor, label="Worker")

    def list_workers(
        self,
        actor,
        *,
        include_inactive: bool = False,
        project_id: int | None = None,
        category: str | None = None,
    ) -> list[Worker]:
        query = scoped(Worker, actor)
        if not include_inactive:
            query = query.filter(Worker.is_active.is_(True))
        if project_id is not None:
            query = query.filter(Worker.project_id == project_id)
        if category:
            query = query.filter(Worker.category == category)
        return query.order_by(Worker.created_at.desc(), Worker.id.desc()).all()

    # ------------------------------------------------------------------
    # Attendance and advances
    # ------------------------------------------------------------------

    def mark_attendance(self, worker_id: int, actor, work_date, status, late_fee_cents: int = 0) -> Worker:
        """
        Upsert the entry for a calendar day.

        status None (or "None") removes an unpaid entry. Entries already
        covered by a settlement cannot change.
        """
        return self.mark_attendance_batch(
            worker_id, actor,
            [{"work_date": work_date, "status": status, "late_fee_cents": late_fee_cents}],
        )

    def mark_attendance_batch(self, worker_id: int, actor, updates: list) -> Worker:
        """Apply several attendance updates to one worker in a single commit."""
        require_role(actor, "labour.manage")
        if not isinstance(updates, list):
            raise ValidationError("updates must be a list")
        # later updates for the same date replace earlier ones
        parsed = {}
        for update in updates:
            work_date, status, late_fee = self._parse_attendance(update)
            parsed[work_date] = (status, late_fee)

        def _op():
            worker = self._load(worker_id, actor)
            by_date = {entry.work_date: entry for entry in worker.attendance}
            for work_date, (status, late_fee) in parsed.items():
                entry = by_date.get(work_date)
                if entry is not None and entry.paid:
                    raise InvalidTransitionError(
                        f"Attendance for {work_date.isoformat()} is already settled"
                    )
                if status is None:
                    if entry is not None:
                        worker.attendance.remove(entry)
                        del by_date[work_date]
                    continue
                if entry is None:
                    entry = AttendanceEntry(work_date=work_date)
                    worker.attendance.append(entry)
                    by_date[work_date] = entry
                entry.status = status
                entry.late_fee_cents = late_fee
            # attendance lives in child rows; bump the worker version explicitly
            worker.updated_at = utcnow()
            return worker

        return run_in_transaction(_op)

    def add_advance(self, worker_id: int, actor, amount_cents: int, reason: str | None = None) -> WorkerAdvance:
        require_role(actor, "labour.manage")
        _money("amount_cents", amount_cents, allow_zero=False)

        def _op():
            worker = self._load(worker_id, actor)
            advance = WorkerAdvance(
                worker_id=worker.id,
                amount_cents=amount_cents,
                reason=reason,
                given_at=utcnow(),
                given_by_user_id=actor.user_id,
            )
            db.session.add(advance)
            worker.updated_at = utcnow()
            db.session.flush()
            return advance

        return run_in_transaction(_op)

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def settle(
        self,
        worker_id: int,
        actor,
        amount_paid_cents: int | None = None,
        notes: str | None = None,
    ) -> WorkerSettlement:
        require_role(actor, "labour.settle")
        if amount_paid_cents is not None:
            _money("amount_paid_cents", amount_paid_cents)

        def _op():
            worker = self._load(worker_id, actor)
            wage = worker.daily_wage_cents or 0
            unpaid = [entry for entry in worker.attendance if not entry.paid]
            advances = [advance for advance in worker.advances if not advance.settled]

            earnings = sum(day_earnings(entry, wage) for entry in unpaid)
            deductions = sum(advance.amount_cents for advance in advances)
            previous_dues = worker.pending_dues_cents or 0
            net = earnings + previous_dues - deductions
            paid = net if amount_paid_cents is None else amount_paid_cents
            carry_forward = net - paid

            summary = (
                f"{len(unpaid)} attendance entries, {len(advances)} advances, "
                f"previous dues {previous_dues}"
            )
            settlement = WorkerSettlement(
                worker_id=worker.id,
                settled_at=utcnow(),
                total_earnings_cents=earnings,
                total_deductions_cents=deductions,
                previous_dues_cents=previous_dues,
                net_payable_cents=net,
                amount_paid_cents=paid,
                carry_forward_cents=carry_forward,
                notes=f"{notes}: {summary}" if notes else f"Settlement: {summary}",
                settled_by_user_id=actor.user_id,
            )
            db.session.add(settlement)
            db.session.flush()

            for entry in unpaid:
                entry.paid = True
                entry.settlement_id = settlement.id
            for advance in advances:
                advance.settled = True
                advance.settlement_id = settlement.id
            worker.pending_dues_cents = carry_forward

            if paid > 0 and worker.project_id is not None:
                self._record_payroll_expense_best_effort(worker, settlement, actor)
            return worker, settlement

        worker, settlement = run_in_transaction(_op)
        publish_safely(self.notifier, company_topic(actor.company_id), "WORKER_SETTLED", {
            "worker_id": worker.id,
            "worker_code": worker.worker_code,
            "settlement_id": settlement.id,
            "amount_paid_cents": settlement.amount_paid_cents,
            "carry_forward_cents": settlement.carry_forward_cents,
        })
        return settlement

    def relink_settlement_expense(self, settlement_id: int, actor) -> WorkerSettlement:
        """
        Book the Payroll expense for a settlement whose best-effort booking failed.

        The settlement must have paid something, carry no transaction yet and
        belong to a worker assigned to a project. Failures propagate.
        """
        require_role(actor, "labour.settle")

        def _op():
            settlement = db.session.get(WorkerSettlement, settlement_id)
            if settlement is None:
                raise NotFoundError(f"Settlement {settlement_id} not found")
            worker = self._load(settlement.worker_id, actor)
            if settlement.transaction_id is not None or settlement.amount_paid_cents <= 0:
                raise InvalidTransitionError(f"Settlement {settlement.id} has no expense to relink")
            if worker.project_id is None:
                raise InvalidTransitionError(
                    f"Worker {worker.worker_code} has no project to book the expense against"
                )
            self._link_payroll_expense(worker, settlement, actor)
            return settlement

        return run_in_transaction(_op)

    def list_unlinked_settlements(self, actor) -> list[WorkerSettlement]:
        require_role(actor, "labour.settle")
        return unlinked_settlements(actor.company_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, worker_id: int, actor) -> Worker:
        return get_owned(Worker, worker_id, actor, label="Worker", for_update=True)

    def _clean(self, fields: dict) -> dict:
        unknown = [f for f in fields if f not in EDITABLE_FIELDS]
        if unknown:
            raise ValidationError(f"Unknown worker fields: {', '.join(sorted(unknown))}")
        cleaned = dict(fields)
        if "full_name" in cleaned:
            cleaned["full_name"] = _text("full_name", cleaned["full_name"])
        if "id_number" in cleaned:
            cleaned["id_number"] = _text("id_number", cleaned["id_number"]) or None
        for name in ("mobile", "address"):
            if cleaned.get(name) is not None:
                cleaned[name] = _text(name, cleaned[name])
        if "category" in cleaned and cleaned["category"] not in WORKER_CATEGORIES:
            raise ValidationError(f"Invalid worker category: {cleaned['category']}")
        if cleaned.get("gender") is not None and cleaned["gender"] not in GENDERS:
            raise ValidationError(f"Invalid gender: {cleaned['gender']}")
        if "daily_wage_cents" in cleaned:
            _money("daily_wage_cents", cleaned["daily_wage_cents"])
        return cleaned

    def _check_id_number_free(self, actor, id_number: str | None, exclude_id: int | None = None) -> None:
        if not id_number:
            return
        query = scoped(Worker, actor).filter(Worker.id_number == id_number)
        if exclude_id is not None:
            query = query.filter(Worker.id != exclude_id)
        if query.first():
            raise ValidationError("A worker with this ID number already exists")

    def _parse_attendance(self, update) -> tuple:
        if not isinstance(update, dict):
            raise ValidationError("Each attendance update must be an object")
        try:
            work_date = to_calendar_date(update.get("work_date") or update.get("date"))
        except ValueError:
            raise ValidationError("work_date must be an ISO date")
        if work_date is None:
            raise ValidationError("work_date is required")
        status = update.get("status")
        if status == "None":
            status = None
        if status is not None and status not in ATTENDANCE_STATUSES:
            raise ValidationError(f"Invalid attendance status: {status}")
        late_fee = update.get("late_fee_cents") or 0
        _money("late_fee_cents", late_fee)
        return work_date, status, late_fee

    def _link_payroll_expense(self, worker: Worker, settlement: WorkerSettlement, actor) -> None:
        txn = self.ledger.record(
            actor,
            direction="EXPENSE",
            category="Payroll",
            amount_cents=settlement.amount_paid_cents,
            project_id=worker.project_id,
            status="APPROVED",
            source="PAYROLL",
            source_id=settlement.id,
            description=f"Wages paid to {worker.full_name} ({worker.worker_code})",
            note="Auto-generated from payroll settlement",
        )
        settlement.transaction_id = txn.id

    def _record_payroll_expense_best_effort(self, worker: Worker, settlement: WorkerSettlement, actor) -> None:
        try:
            with db.session.begin_nested():
                self._link_payroll_expense(worker, settlement, actor)
        except Exception:
            current_app.logger.warning(
                "Payroll expense failed for worker %s settlement %s",
                worker.worker_code,
                settlement.id,
                exc_info=True,
            )
            settlement.transaction_id = None

# Overview: Flask API routes for labour workers, attendance, advances and settlement.

from flask import Blueprint, request, jsonify, g

from ..container import services
from ..decorators import require_auth
from ..errors import ValidationError


labour_bp = Blueprint("labour", __name__, url_prefix="/api/labour")


@labour_bp.get("/workers")
@require_auth
def list_workers_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    workers = services().payroll.list_workers(
        g.actor,
        include_inactive=include_inactive,
        project_id=request.args.get("project_id", type=int),
        category=request.args.get("category"),
    )
    return jsonify({
        "items": [w.to_dict(include_ledger=False) for w in workers],
        "count": len(workers),
    })


@labour_bp.post("/workers")
@require_auth
def create_worker_route():
    """
    Register a worker.

    Request body:
    {
        "full_name": "Ramesh Kumar",          // required
        "id_number": "1234 5678 9012",        // unique within company
        "category": "Mason (Mistri)",
        "daily_wage_cents": 80000,
        "project_id": 1,
        "mobile": "...", "gender": "Male", "address": "..."
    }
    """
    data = request.get_json() or {}
    worker = services().payroll.create_worker(g.actor, **data)
    return jsonify({"worker": worker.to_dict()}), 201


@labour_bp.get("/workers/<int:worker_id>")
@require_auth
def get_worker_route(worker_id: int):
    worker = services().payroll.get_worker(worker_id, g.actor)
    return jsonify({"worker": worker.to_dict()})


@labour_bp.patch("/workers/<int:worker_id>")
@require_auth
def update_worker_route(worker_id: int):
    data = request.get_json() or {}
    worker = services().payroll.update_worker(worker_id, g.actor, **data)
    return jsonify({"worker": worker.to_dict()})


@labour_bp.delete("/workers/<int:worker_id>")
@require_auth
def deactivate_worker_route(worker_id: int):
    worker = services().payroll.deactivate_worker(worker_id, g.actor)
    return jsonify({"worker": worker.to_dict(include_ledger=False)})


@labour_bp.post("/workers/<int:worker_id>/photo")
@require_auth
def upload_photo_route(worker_id: int):
    """multipart/form-data with a single "file" field."""
    upload = request.files.get("file")
    if upload is None:
        raise ValidationError("file is required")
    worker = services().payroll.upload_photo(worker_id, g.actor, upload.read(), upload.filename)
    return jsonify({"worker": worker.to_dict(include_ledger=False)})


@labour_bp.post("/workers/<int:worker_id>/attendance")
@require_auth
def mark_attendance_route(worker_id: int):
    """Body: {work_date, status (Present|Absent|HalfDay|Late|None), late_fee_cents?}"""
    data = request.get_json() or {}
    worker = services().payroll.mark_attendance(
        worker_id,
        g.actor,
        data.get("work_date") or data.get("date"),
        data.get("status"),
        late_fee_cents=data.get("late_fee_cents", 0),
    )
    return jsonify({"worker": worker.to_dict()})


@labour_bp.post("/workers/<int:worker_id>/attendance/batch")
@require_auth
def mark_attendance_batch_route(worker_id: int):
    """Body: {updates: [{work_date, status, late_fee_cents?}, ...]}"""
    data = request.get_json() or {}
    worker = services().payroll.mark_attendance_batch(worker_id, g.actor, data.get("updates"))
    return jsonify({"worker": worker.to_dict()})


@labour_bp.post("/workers/<int:worker_id>/advances")
@require_auth
def add_advance_route(worker_id: int):
    data = request.get_json() or {}
    advance = services().payroll.add_advance(
        worker_id, g.actor, data.get("amount_cents"), reason=data.get("reason")
    )
    return jsonify({"advance": advance.to_dict()}), 201


@labour_bp.post("/workers/<int:worker_id>/settle")
@require_auth
def settle_route(worker_id: int):
    """Body: {amount_paid_cents?, notes?}; omitting amount_paid_cents pays the full net."""
    data = request.get_json(silent=True) or {}
    settlement = services().payroll.settle(
        worker_id,
        g.actor,
        amount_paid_cents=data.get("amount_paid_cents"),
        notes=data.get("notes"),
    )
    worker = services().payroll.get_worker(worker_id, g.actor)
    return jsonify({"settlement": settlement.to_dict(), "worker": worker.to_dict(include_ledger=False)})


@labour_bp.get("/settlements/unlinked")
@require_auth
def unlinked_settlements_route():
    settlements = services().payroll.list_unlinked_settlements(g.actor)
    return jsonify({"items": [s.to_dict() for s in settlements], "count": len(settlements)})


@labour_bp.post("/settlements/<int:settlement_id>/relink-expense")
@require_auth
def relink_settlement_expense_route(settlement_id: int):
    settlement = services().payroll.relink_settlement_expense(settlement_id, g.actor)
    return jsonify({"settlement": settlement.to_dict()})

# Overview: Flask API routes for the material master, stock ledger and material requests.

"""
Material Routes

- /api/materials                        material master (catalog)
- /api/materials/<id>/stock             stock record, settings, adjustments
- /api/materials/<id>/movements         append-only movement history
- /api/stock                            stock positions (low_stock filter)
- /api/material-requests                request -> approve -> issue workflow

SECURITY: All routes require authentication; role checks run in the services.
"""

from flask import Blueprint, request, jsonify, g

from ..container import services
from ..decorators import require_auth
from ..services import material_service
from ..services.material_request_service import ENTITY as MATERIAL_REQUEST_ENTITY
from ..services.timeline_service import timeline_for


materials_bp = Blueprint("materials", __name__, url_prefix="/api")


def _arg_int(name: str):
    return request.args.get(name, type=int)


# ----------------------------------------------------------------------
# Material master
# ----------------------------------------------------------------------

@materials_bp.get("/materials")
@require_auth
def list_materials_route():
    materials = material_service.list_materials(
        g.actor,
        category=request.args.get("category"),
        search=request.args.get("search"),
    )
    return jsonify({"items": [m.to_dict() for m in materials], "count": len(materials)})


@materials_bp.post("/materials")
@require_auth
def create_material_route():
    data = request.get_json() or {}
    material = material_service.create_material(g.actor, **data)
    return jsonify({"material": material.to_dict()}), 201


@materials_bp.get("/materials/<int:material_id>")
@require_auth
def get_material_route(material_id: int):
    material = material_service.get_material(material_id, g.actor)
    return jsonify({"material": material.to_dict()})


@materials_bp.patch("/materials/<int:material_id>")
@require_auth
def update_material_route(material_id: int):
    data = request.get_json() or {}
    material = material_service.update_material(material_id, g.actor, **data)
    return jsonify({"material": material.to_dict()})


# ----------------------------------------------------------------------
# Stock ledger
# ----------------------------------------------------------------------

@materials_bp.get("/stock")
@require_auth
def list_stock_route():
    low_stock_only = request.args.get("low_stock", "false").lower() == "true"
    records = services().stock.list_stock(
        g.actor,
        low_stock_only=low_stock_only,
        category=request.args.get("category"),
    )
    return jsonify({"items": [r.to_dict() for r in records], "count": len(records)})


@materials_bp.get("/materials/<int:material_id>/stock")
@require_auth
def get_stock_route(material_id: int):
    record = services().stock.get_stock(material_id, g.actor)
    return jsonify({"stock": record.to_dict()})


@materials_bp.post("/materials/<int:material_id>/stock")
@require_auth
def create_stock_route(material_id: int):
    """
    Start tracking stock for a material.

    Request body:
    {
        "reorder_level": 20,
        "min_order_qty": 50,
        "preferred_vendor_id": 3,
        "project_id": 1,
        "opening_quantity": 100,
        "batch": {"batch_number": "B-01", "unit_cost_cents": 38000}
    }
    """
    data = request.get_json() or {}
    record = services().stock.create_stock_record(
        material_id,
        g.actor,
        reorder_level=data.get("reorder_level", 0),
        min_order_qty=data.get("min_order_qty", 0),
        preferred_vendor_id=data.get("preferred_vendor_id"),
        project_id=data.get("project_id"),
        opening_quantity=data.get("opening_quantity", 0),
        batch=data.get("batch"),
    )
    return jsonify({"stock": record.to_dict()}), 201


@materials_bp.patch("/materials/<int:material_id>/stock")
@require_auth
def update_stock_settings_route(material_id: int):
    data = request.get_json() or {}
    record = services().stock.update_settings(material_id, g.actor, **data)
    return jsonify({"stock": record.to_dict()})


@materials_bp.post("/materials/<int:material_id>/adjust")
@require_auth
def adjust_stock_route(material_id: int):
    """
    Apply one stock movement.

    Request body: {quantity, kind (ADD|RESERVE|UNRESERVE|ISSUE|WASTE|DAMAGE|DELIVER),
    note?, project_id?, batch?}
    """
    data = request.get_json() or {}
    record = services().stock.adjust(
        material_id,
        data.get("quantity"),
        data.get("kind"),
        g.actor,
        note=data.get("note"),
        batch=data.get("batch"),
        project_id=data.get("project_id"),
    )
    return jsonify({"stock": record.to_dict()})


@materials_bp.get("/materials/<int:material_id>/movements")
@require_auth
def list_movements_route(material_id: int):
    movements = services().stock.list_movements(material_id, g.actor)
    return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)})


# ----------------------------------------------------------------------
# Material requests
# ----------------------------------------------------------------------

@materials_bp.get("/material-requests")
@require_auth
def list_material_requests_route():
    requests_ = services().material_requests.list(
        g.actor,
        status=request.args.get("status"),
        project_id=_arg_int("project_id"),
        material_id=_arg_int("material_id"),
        expense_status=request.args.get("expense_status"),
    )
    return jsonify({"items": [r.to_dict() for r in requests_], "count": len(requests_)})


@materials_bp.post("/material-requests")
@require_auth
def create_material_request_route():
    """
    Raise a material request.

    Request body: {material_id, project_id, quantity, priority?, purpose?, remarks?}
    """
    data = request.get_json() or {}
    material_request = services().material_requests.create(
        g.actor,
        material_id=data.get("material_id"),
        project_id=data.get("project_id"),
        quantity=data.get("quantity"),
        priority=data.get("priority", "NORMAL"),
        purpose=data.get("purpose"),
        remarks=data.get("remarks"),
    )
    return jsonify({"material_request": material_request.to_dict()}), 201


@materials_bp.get("/material-requests/<int:request_id>")
@require_auth
def get_material_request_route(request_id: int):
    material_request = services().material_requests.get(request_id, g.actor)
    return jsonify({
        "material_request": material_request.to_dict(),
        "timeline": [t.to_dict() for t in timeline_for(MATERIAL_REQUEST_ENTITY, material_request.id)],
    })


@materials_bp.post("/material-requests/<int:request_id>/<action>")
@require_auth
def transition_material_request_route(request_id: int, action: str):
    """Actions: approve, issue, reject, cancel, relink_expense. Body: {note?}"""
    data = request.get_json(silent=True) or {}
    material_request = services().material_requests.transition(request_id, action, g.actor, data)
    return jsonify({"material_request": material_request.to_dict()})

# Overview: Flask API routes for purchase orders and their approval ladder.

"""
Purchase Order Routes

DRAFT -> PENDING_APPROVAL -> APPROVED -> ISSUED -> IN_TRANSIT/DELIVERED -> CLOSED

All state changes go through POST /api/purchase-orders/<id>/<action>:
- submit, issue, close, cancel     body: {note?}
- approve, reject                  body: {level, comments?}
- deliver                          body: {lines: [{material_id, quantity}], note?}
"""

from flask import Blueprint, request, jsonify, g

from ..container import services
from ..decorators import require_auth
from ..services.purchase_order_service import ENTITY as PURCHASE_ORDER_ENTITY
from ..services.timeline_service import timeline_for


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.get("")
@require_auth
def list_purchase_orders_route():
    orders = services().purchase_orders.list(
        g.actor,
        vendor_id=request.args.get("vendor_id", type=int),
        project_id=request.args.get("project_id", type=int),
        status=request.args.get("status"),
    )
    return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)})


@purchase_orders_bp.post("")
@require_auth
def create_purchase_order_route():
    """
    Create a DRAFT purchase order.

    Request body:
    {
        "vendor_id": 1,
        "project_id": 2,
        "lines": [{"material_id": 5, "quantity": 10, "rate_cents": 38000}],
        "cgst_cents": 0, "sgst_cents": 0, "igst_cents": 0,
        "po_number": "PO-ACME-001",          // optional
        "expected_delivery_date": "2026-11-01"
    }
    """
    data = request.get_json() or {}
    order = services().purchase_orders.create(
        g.actor,
        vendor_id=data.get("vendor_id"),
        project_id=data.get("project_id"),
        lines=data.get("lines") or [],
        cgst_cents=data.get("cgst_cents", 0),
        sgst_cents=data.get("sgst_cents", 0),
        igst_cents=data.get("igst_cents", 0),
        po_number=data.get("po_number"),
        expected_delivery_date=data.get("expected_delivery_date"),
    )
    return jsonify({"purchase_order": order.to_dict()}), 201


@purchase_orders_bp.get("/<int:order_id>")
@require_auth
def get_purchase_order_route(order_id: int):
    order = services().purchase_orders.get(order_id, g.actor)
    return jsonify({
        "purchase_order": order.to_dict(),
        "timeline": [t.to_dict() for t in timeline_for(PURCHASE_ORDER_ENTITY, order.id)],
    })


@purchase_orders_bp.post("/<int:order_id>/<action>")
@require_auth
def transition_purchase_order_route(order_id: int, action: str):
    data = request.get_json(silent=True) or {}
    order = services().purchase_orders.transition(order_id, action, g.actor, data)
    return jsonify({"purchase_order": order.to_dict()})

# Overview: Flask API routes for vendor operations; parses input and returns JSON responses.

"""
Vendor Routes

SECURITY: All routes require authentication.
Create/update/deactivate require the vendor.manage role.

Vendors are scoped to companies (multi-tenant).
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..services import vendor_service


vendors_bp = Blueprint("vendors", __name__, url_prefix="/api/vendors")


@vendors_bp.get("")
@require_auth
def list_vendors_route():
    """
    List vendors for the current company.

    Query parameters:
    - include_inactive: Include inactive vendors (default: false)
    - category: Filter by vendor category
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    vendors = vendor_service.list_vendors(
        g.actor,
        include_inactive=include_inactive,
        category=request.args.get("category"),
    )
    return jsonify({"items": [v.to_dict() for v in vendors], "count": len(vendors)})


@vendors_bp.post("")
@require_auth
def create_vendor_route():
    """
    Create a new vendor.

    Request body:
    {
        "name": "Vendor Name",        // required
        "code": "VCODE",              // optional, unique within company
        "credit_limit_cents": 100000000,
        "gst_number": "...",
        ...
    }
    """
    data = request.get_json() or {}
    vendor = vendor_service.create_vendor(g.actor, **data)
    return jsonify({"vendor": vendor.to_dict()}), 201


@vendors_bp.get("/<int:vendor_id>")
@require_auth
def get_vendor_route(vendor_id: int):
    vendor = vendor_service.get_vendor(vendor_id, g.actor)
    return jsonify({"vendor": vendor.to_dict()})


@vendors_bp.patch("/<int:vendor_id>")
@require_auth
def update_vendor_route(vendor_id: int):
    data = request.get_json() or {}
    vendor = vendor_service.update_vendor(vendor_id, g.actor, **data)
    return jsonify({"vendor": vendor.to_dict()})


@vendors_bp.delete("/<int:vendor_id>")
@require_auth
def deactivate_vendor_route(vendor_id: int):
    """Soft delete: the vendor stays on existing orders but takes no new ones."""
    vendor = vendor_service.deactivate_vendor(vendor_id, g.actor)
    return jsonify({"vendor": vendor.to_dict()})

# Overview: Vendor master data with credit limits.

"""
Vendor Service

MULTI-TENANT: Vendors are scoped to companies via company_id.
Vendor codes are unique within a company when specified.

outstanding_payables_cents is never edited here; the purchase order
workflow owns it.
"""

from __future__ import annotations

from ..errors import ValidationError
from ..extensions import db
from ..models import Vendor
from ..permissions import require_role
from .concurrency import run_in_transaction
from .tenant_service import get_owned, scoped


EDITABLE_FIELDS = (
    "name",
    "code",
    "category",
    "contact_name",
    "contact_email",
    "contact_phone",
    "address",
    "gst_number",
    "credit_limit_cents",
    "payment_terms_days",
    "notes",
)


def _clean(fields: dict) -> dict:
    if "outstanding_payables_cents" in fields:
        raise ValidationError("outstanding_payables_cents is managed by purchase orders")
    unknown = [f for f in fields if f not in EDITABLE_FIELDS]
    if unknown:
        raise ValidationError(f"Unknown vendor fields: {', '.join(sorted(unknown))}")

    cleaned = dict(fields)
    if "name" in cleaned:
        if not cleaned["name"] or not cleaned["name"].strip():
            raise ValidationError("Vendor name is required")
        cleaned["name"] = cleaned["name"].strip()
    if "code" in cleaned:
        code = (cleaned["code"] or "").strip().upper()
        cleaned["code"] = code or None
    if "credit_limit_cents" in cleaned:
        try:
            cleaned["credit_limit_cents"] = int(cleaned["credit_limit_cents"] or 0)
        except (TypeError, ValueError):
            raise ValidationError("credit_limit_cents must be an integer")
        if cleaned["credit_limit_cents"] < 0:
            raise ValidationError("credit_limit_cents must be >= 0")
    return cleaned


def _check_code_free(actor, code: str | None, exclude_id: int | None = None) -> None:
    if not code:
        return
    query = scoped(Vendor, actor).filter(Vendor.code == code)
    if exclude_id is not None:
        query = query.filter(Vendor.id != exclude_id)
    if query.first():
        raise ValidationError(f"Vendor code '{code}' already exists in this company")


def create_vendor(actor, **fields) -> Vendor:
    """
    Create a vendor. name is required; credit_limit_cents defaults to 0,
    which refuses any purchase order with a positive total.
    """
    require_role(actor, "vendor.manage")
    cleaned = _clean(fields)
    if "name" not in cleaned:
        raise ValidationError("Vendor name is required")

    def _op():
        _check_code_free(actor, cleaned.get("code"))
        vendor = Vendor(company_id=actor.company_id, is_active=True, **cleaned)
        db.session.add(vendor)
        db.session.flush()
        return vendor

    return run_in_transaction(_op)


def update_vendor(vendor_id: int, actor, **fields) -> Vendor:
    require_role(actor, "vendor.manage")
    cleaned = _clean(fields)

    def _op():
        vendor = get_owned(Vendor, vendor_id, actor, for_update=True)
        if "code" in cleaned:
            _check_code_free(actor, cleaned["code"], exclude_id=vendor.id)
        for key, value in cleaned.items():
            setattr(vendor, key, value)
        return vendor

    return run_in_transaction(_op)


def deactivate_vendor(vendor_id: int, actor) -> Vendor:
    """Soft delete; purchase order history keeps pointing at the row."""
    require_role(actor, "vendor.manage")

    def _op():
        vendor = get_owned(Vendor, vendor_id, actor, for_update=True)
        vendor.is_active = False
        return vendor

    return run_in_transaction(_op)


def get_vendor(vendor_id: int, actor) -> Vendor:
    return get_owned(Vendor, vendor_id, actor)


def list_vendors(actor, *, include_inactive: bool = False, category: str | None = None) -> list[Vendor]:
    query = scoped(Vendor, actor)
    if not include_inactive:
        query = query.filter(Vendor.is_active.is_(True))
    if category:
        query = query.filter(Vendor.category == category)
    return query.order_by(Vendor.name.asc()).all()

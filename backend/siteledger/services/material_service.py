# Overview: Material master data (item codes, units, categories).

from __future__ import annotations

from ..errors import ValidationError
from ..extensions import db
from ..models import Material
from ..permissions import require_role
from .concurrency import run_in_transaction
from .tenant_service import get_owned, scoped


MATERIAL_CATEGORIES = (
    "Cement",
    "Steel",
    "Aggregates",
    "Electrical",
    "Plumbing",
    "Finishing",
    "Other",
)

MATERIAL_UNITS = ("Bags", "Tons", "Kgs", "Meters", "Trucks", "Pieces", "Nos")

EDITABLE_FIELDS = ("item_code", "name", "category", "unit", "brand", "grade", "specifications", "is_active")


def _clean(fields: dict) -> dict:
    unknown = [f for f in fields if f not in EDITABLE_FIELDS]
    if unknown:
        raise ValidationError(f"Unknown material fields: {', '.join(sorted(unknown))}")
    cleaned = dict(fields)
    for key in ("item_code", "name", "brand", "grade", "specifications"):
        if cleaned.get(key) is not None and not isinstance(cleaned[key], str):
            raise ValidationError(f"{key} must be a string")
    for key in ("item_code", "name"):
        if key in cleaned:
            value = (cleaned[key] or "").strip()
            if not value:
                raise ValidationError(f"{key} is required")
            cleaned[key] = value
    if "item_code" in cleaned:
        cleaned["item_code"] = cleaned["item_code"].upper()
    if "category" in cleaned and cleaned["category"] not in MATERIAL_CATEGORIES:
        raise ValidationError(f"Invalid material category: {cleaned['category']}")
    if "unit" in cleaned and cleaned["unit"] not in MATERIAL_UNITS:
        raise ValidationError(f"Invalid unit: {cleaned['unit']}")
    return cleaned


def create_material(actor, **fields) -> Material:
    require_role(actor, "material.manage")
    cleaned = _clean(fields)
    if "item_code" not in cleaned or "name" not in cleaned:
        raise ValidationError("item_code and name are required")

    def _op():
        if scoped(Material, actor).filter_by(item_code=cleaned["item_code"]).first():
            raise ValidationError(f"Item code '{cleaned['item_code']}' already exists")
        material = Material(company_id=actor.company_id, **cleaned)
        db.session.add(material)
        db.session.flush()
        return material

    return run_in_transaction(_op)


def update_material(material_id: int, actor, **fields) -> Material:
    require_role(actor, "material.manage")
    cleaned = _clean(fields)

    def _op():
        material = get_owned(Material, material_id, actor, label="Material")
        if "item_code" in cleaned and cleaned["item_code"] != material.item_code:
            if scoped(Material, actor).filter_by(item_code=cleaned["item_code"]).first():
                raise ValidationError(f"Item code '{cleaned['item_code']}' already exists")
        for key, value in cleaned.items():
            setattr(material, key, value)
        return material

    return run_in_transaction(_op)


def get_material(material_id: int, actor) -> Material:
    return get_owned(Material, material_id, actor, label="Material")


def list_materials(actor, *, category: str | None = None, search: str | None = None) -> list[Material]:
    query = scoped(Material, actor).filter(Material.is_active.is_(True))
    if category:
        query = query.filter(Material.category == category)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(Material.name.ilike(like), Material.item_code.ilike(like)))
    return query.order_by(Material.item_code.asc()).all()

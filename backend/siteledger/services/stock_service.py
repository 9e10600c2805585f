# Overview: Stock ledger; the only writer of stock record quantities.

"""
Stock Ledger

WHY: Every change to a stock position goes through one contract,
adjust(material_id, quantity, kind), so the quantity invariants are enforced
in exactly one place:

- total_stock == available_stock + reserved_stock after every kind
- available_stock >= 0 and reserved_stock >= 0 always

Each successful adjustment appends one StockMovement in the same DB
transaction as the quantity change.

TRANSACTIONS:
- adjust() is the public entry point: role check, own transaction, then the
  low-stock check after commit.
- apply() mutates inside the caller's transaction. Workflows (material
  requests, purchase order deliveries) call it so their status change and
  the stock change commit together, then call check_reorder() after commit.
"""

from __future__ import annotations

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Material, Project, StockBatch, StockMovement, StockRecord, Vendor
from ..notifications import company_topic, publish_safely
from ..permissions import require_role
from ..time_utils import to_calendar_date
from .concurrency import lock_for_update, run_in_transaction
from .tenant_service import get_owned, scoped


# kind -> (total, available, reserved, damaged, wastage) multipliers
KIND_DELTAS = {
    "ADD": (1, 1, 0, 0, 0),
    "DELIVER": (1, 1, 0, 0, 0),
    "RESERVE": (0, -1, 1, 0, 0),
    "UNRESERVE": (0, 1, -1, 0, 0),
    "ISSUE": (-1, 0, -1, 0, 0),
    "WASTE": (-1, -1, 0, 0, 1),
    "DAMAGE": (-1, -1, 0, 1, 0),
}

BATCH_KINDS = ("ADD", "DELIVER")


def validate_quantity(quantity) -> int:
    """Quantities are positive integers; bools and floats are rejected."""
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be a positive integer")
    if quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    return quantity


class StockLedger:
    """Stock positions per (company, material) with an append-only movement log."""

    def __init__(self, notifier=None):
        self.notifier = notifier

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def adjust(
        self,
        material_id: int,
        quantity: int,
        kind: str,
        actor,
        *,
        note: str | None = None,
        batch: dict | None = None,
        project_id: int | None = None,
    ) -> StockRecord:
        """Apply one adjustment as its own transaction and publish any low-stock alert."""
        require_role(actor, "stock.adjust")
        self._validate(quantity, kind, batch)

        def _op():
            return self.apply(
                material_id, quantity, kind, actor,
                note=note, batch=batch, project_id=project_id,
            )

        record = run_in_transaction(_op)
        self.check_reorder(record)
        return record

    def apply(
        self,
        material_id: int,
        quantity: int,
        kind: str,
        actor,
        *,
        note: str | None = None,
        batch: dict | None = None,
        project_id: int | None = None,
        reference_type: str | None = None,
        reference_id: int | None = None,
    ) -> StockRecord:
        """
        Apply one adjustment inside the caller's transaction.

        DELIVER creates the stock record on first receipt; every other kind
        requires an existing record (NotFoundError). Raises
        InsufficientStockError before touching anything if available or
        reserved stock would go negative.
        """
        self._validate(quantity, kind, batch)
        material = get_owned(Material, material_id, actor, label="Material")
        if project_id is not None:
            get_owned(Project, project_id, actor, label="Project")

        record = lock_for_update(
            db.session.query(StockRecord).filter_by(company_id=actor.company_id, material_id=material.id)
        ).first()
        if record is None:
            if kind != "DELIVER":
                raise NotFoundError(f"No stock record for material {material.item_code}")
            record = StockRecord(
                company_id=actor.company_id,
                material_id=material.id,
                project_id=project_id,
                total_stock=0,
                available_stock=0,
                reserved_stock=0,
                damaged_stock=0,
                wastage=0,
            )
            db.session.add(record)
            db.session.flush()

        d_total, d_available, d_reserved, d_damaged, d_wastage = KIND_DELTAS[kind]
        new_available = record.available_stock + d_available * quantity
        new_reserved = record.reserved_stock + d_reserved * quantity
        if new_available < 0:
            raise InsufficientStockError(
                f"Insufficient stock for {material.item_code}: "
                f"{record.available_stock} available, {quantity} requested"
            )
        if new_reserved < 0:
            raise InsufficientStockError(
                f"Insufficient reserved stock for {material.item_code}: "
                f"{record.reserved_stock} reserved, {quantity} requested"
            )

        record.total_stock = record.total_stock + d_total * quantity
        record.available_stock = new_available
        record.reserved_stock = new_reserved
        record.damaged_stock = record.damaged_stock + d_damaged * quantity
        record.wastage = record.wastage + d_wastage * quantity

        if batch:
            db.session.add(self._make_batch(record, quantity, batch))

        db.session.add(StockMovement(
            stock_record=record,
            company_id=actor.company_id,
            kind=kind,
            quantity=quantity,
            total_after=record.total_stock,
            available_after=record.available_stock,
            reserved_after=record.reserved_stock,
            project_id=project_id,
            reference_type=reference_type,
            reference_id=reference_id,
            actor_user_id=actor.user_id,
            actor_name=actor.name,
            note=note,
        ))
        db.session.flush()
        return record

    def check_reorder(self, record: StockRecord) -> bool:
        """Publish LOW_STOCK_ALERT when available stock is at or below the reorder level."""
        if record.available_stock > record.reorder_level:
            return False
        publish_safely(self.notifier, company_topic(record.company_id), "LOW_STOCK_ALERT", {
            "material_id": record.material_id,
            "available_stock": record.available_stock,
            "reorder_level": record.reorder_level,
            "message": f"Low stock alert: {record.available_stock} units remaining.",
        })
        return True

    def create_stock_record(
        self,
        material_id: int,
        actor,
        *,
        reorder_level: int = 0,
        min_order_qty: int = 0,
        preferred_vendor_id: int | None = None,
        project_id: int | None = None,
        opening_quantity: int = 0,
        batch: dict | None = None,
    ) -> StockRecord:
        """
        Start tracking a material. An opening quantity is booked as an ADD
        movement so the history starts from zero.
        """
        require_role(actor, "stock.adjust")
        for name, value in (("reorder_level", reorder_level), ("min_order_qty", min_order_qty)):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValidationError(f"{name} must be a non-negative integer")
        if opening_quantity:
            validate_quantity(opening_quantity)

        def _op():
            material = get_owned(Material, material_id, actor, label="Material")
            if preferred_vendor_id is not None:
                get_owned(Vendor, preferred_vendor_id, actor, label="Vendor")
            if project_id is not None:
                get_owned(Project, project_id, actor, label="Project")
            existing = scoped(StockRecord, actor).filter_by(material_id=material.id).first()
            if existing:
                raise ValidationError(f"Stock record already exists for {material.item_code}")

            record = StockRecord(
                company_id=actor.company_id,
                material_id=material.id,
                project_id=project_id,
                total_stock=0,
                available_stock=0,
                reserved_stock=0,
                damaged_stock=0,
                wastage=0,
                reorder_level=reorder_level,
                min_order_qty=min_order_qty,
                preferred_vendor_id=preferred_vendor_id,
            )
            db.session.add(record)
            db.session.flush()
            if opening_quantity:
                self.apply(material.id, opening_quantity, "ADD", actor,
                           note="Opening stock", batch=batch, project_id=project_id)
            return record

        record = run_in_transaction(_op)
        self.check_reorder(record)
        return record

    def update_settings(self, material_id: int, actor, **fields) -> StockRecord:
        """Edit reorder settings; quantity columns are not editable here."""
        require_role(actor, "stock.adjust")
        allowed = {"reorder_level", "min_order_qty", "preferred_vendor_id", "last_audit_date", "project_id"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValidationError(f"Unknown stock fields: {', '.join(sorted(unknown))}")

        def _op():
            record = self.get_stock(material_id, actor, for_update=True)
            for key, value in fields.items():
                if key in ("reorder_level", "min_order_qty"):
                    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                        raise ValidationError(f"{key} must be a non-negative integer")
                if key == "preferred_vendor_id" and value is not None:
                    get_owned(Vendor, value, actor, label="Vendor")
                if key == "project_id" and value is not None:
                    get_owned(Project, value, actor, label="Project")
                if key == "last_audit_date":
                    value = to_calendar_date(value)
                setattr(record, key, value)
            return record

        return run_in_transaction(_op)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_stock(self, material_id: int, actor, *, for_update: bool = False) -> StockRecord:
        material = get_owned(Material, material_id, actor, label="Material")
        query = scoped(StockRecord, actor).filter_by(material_id=material.id)
        if for_update:
            query = lock_for_update(query)
        record = query.first()
        if record is None:
            raise NotFoundError(f"No stock record for material {material.item_code}")
        return record

    def list_stock(self, actor, *, low_stock_only: bool = False, category: str | None = None) -> list[StockRecord]:
        query = scoped(StockRecord, actor)
        if category:
            query = query.join(Material, Material.id == StockRecord.material_id).filter(Material.category == category)
        if low_stock_only:
            query = query.filter(StockRecord.available_stock <= StockRecord.reorder_level)
        return query.order_by(StockRecord.material_id.asc()).all()

    def list_movements(self, material_id: int, actor) -> list[StockMovement]:
        record = self.get_stock(material_id, actor)
        return (
            db.session.query(StockMovement)
            .filter_by(stock_record_id=record.id)
            .order_by(StockMovement.id.asc())
            .all()
        )

    def latest_unit_cost_cents(self, material_id: int, company_id: int) -> int:
        """Unit cost of the most recently added batch; 0 if there is none."""
        batch = (
            db.session.query(StockBatch)
            .join(StockRecord, StockRecord.id == StockBatch.stock_record_id)
            .filter(StockRecord.company_id == company_id, StockRecord.material_id == material_id)
            .order_by(StockBatch.id.desc())
            .first()
        )
        if batch is None:
            return 0
        return batch.unit_cost_cents or 0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate(self, quantity, kind: str, batch: dict | None) -> None:
        if kind not in KIND_DELTAS:
            raise ValidationError(f"Unknown adjustment kind: {kind}")
        validate_quantity(quantity)
        if batch is not None:
            if kind not in BATCH_KINDS:
                raise ValidationError(f"{kind} adjustments cannot carry a batch")
            if not isinstance(batch, dict) or not batch.get("batch_number"):
                raise ValidationError("batch_number is required for a batch")
            cost = batch.get("unit_cost_cents")
            if cost is not None and (isinstance(cost, bool) or not isinstance(cost, int) or cost < 0):
                raise ValidationError("unit_cost_cents must be a non-negative integer")
            if batch.get("quantity") not in (None, quantity):
                raise ValidationError("batch quantity must match the adjustment quantity")

    def _make_batch(self, record: StockRecord, quantity: int, batch: dict) -> StockBatch:
        try:
            mfg_date = to_calendar_date(batch.get("mfg_date"))
            expiry_date = to_calendar_date(batch.get("expiry_date"))
        except ValueError:
            raise ValidationError("batch dates must be ISO dates")
        return StockBatch(
            stock_record=record,
            batch_number=str(batch["batch_number"]),
            quantity=quantity,
            unit_cost_cents=batch.get("unit_cost_cents"),
            mfg_date=mfg_date,
            expiry_date=expiry_date,
            test_report_url=batch.get("test_report_url"),
        )

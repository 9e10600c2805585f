from __future__ import annotations

from ..extensions import db
from siteledger.time_utils import to_utc_z


class TimelineEntry(db.Model):
    """
    Append-only status history for workflow documents.

    Generic pointer (entity_type, entity_id) so material requests, purchase
    orders, payment requests and transactions share one audit table.
    Entries are written in the same DB transaction as the status change they
    record; a rejected transition writes nothing.
    """
    __tablename__ = "timeline_entries"
    __table_args__ = (
        db.Index("ix_timeline_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    # material_request, purchase_order, payment_request, transaction
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(24), nullable=False)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    actor_name = db.Column(db.String(255), nullable=True)
    note = db.Column(db.Text, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "actor_user_id": self.actor_user_id,
            "actor_name": self.actor_name,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-company document counters.

    WHY: Prevent two concurrent creates from computing the same number.
    scope is the full prefix the counter belongs to, e.g. "REQ-2610" or
    "EXP-2610", so numbering restarts each month.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("company_id", "scope", name="uq_doc_sequences_company_scope"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    scope = db.Column(db.String(32), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "scope": self.scope,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }

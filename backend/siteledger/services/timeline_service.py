# Overview: Append-only status history shared by workflow documents.

from __future__ import annotations

from ..extensions import db
from ..models import TimelineEntry


def append_timeline(entity_type: str, entity, status: str, actor=None, note: str | None = None) -> TimelineEntry:
    """Add a timeline row in the caller's transaction."""
    entry = TimelineEntry(
        company_id=entity.company_id,
        entity_type=entity_type,
        entity_id=entity.id,
        status=status,
        actor_user_id=actor.user_id if actor else None,
        actor_name=actor.name if actor else None,
        note=note,
    )
    db.session.add(entry)
    return entry


def timeline_for(entity_type: str, entity_id: int) -> list[TimelineEntry]:
    return (
        db.session.query(TimelineEntry)
        .filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(TimelineEntry.id.asc())
        .all()
    )

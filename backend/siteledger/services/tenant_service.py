"""
Multi-Tenant Service: ownership checks for company-scoped entities.

SECURITY INVARIANTS:
1. Every service call carries an Actor with company_id
2. Ids from client input are resolved through get_owned() before use
3. A record owned by another company is rejected as Unauthorized and the
   attempt is logged
"""

from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError, UnauthorizedError
from ..extensions import db


def get_owned(model, entity_id, actor, *, label: str | None = None, for_update: bool = False):
    """
    Load model row by id and verify it belongs to actor.company_id.

    Raises NotFoundError if no row exists at all, UnauthorizedError if it
    belongs to another company.
    """
    label = label or model.__name__
    if entity_id is None:
        raise NotFoundError(f"{label} not found")
    try:
        entity_id = int(entity_id)
    except (TypeError, ValueError):
        raise NotFoundError(f"{label} not found")

    query = db.session.query(model).filter(model.id == entity_id)
    if for_update:
        query = query.with_for_update()
    entity = query.first()
    if entity is None:
        raise NotFoundError(f"{label} not found")

    if entity.company_id != actor.company_id:
        current_app.logger.warning(
            "Cross-tenant access denied: user=%s company=%s target=%s#%s",
            actor.user_id, actor.company_id, label, entity_id,
        )
        raise UnauthorizedError(f"Access to {label} denied")
    return entity


def scoped(model, actor):
    """Base query for model filtered to the actor's company."""
    return db.session.query(model).filter(model.company_id == actor.company_id)
